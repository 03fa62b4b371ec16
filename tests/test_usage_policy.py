"""
Unit tests for token/cost estimation and plan limit evaluation
"""
import os
import sys
import time
from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lib_usage_tracking.usage_policy import (
    PLANS,
    estimate_cost,
    estimate_tokens,
    evaluate_limit,
    get_plan,
    month_start,
    to_minor_units
)


@pytest.mark.parametrize("text,expected", [
    ("", 0),
    (None, 0),
    ("a", 1),
    ("abcd", 1),
    ("abcde", 2),
    ("hello", 2),
    ("hi there", 2),
    ("x" * 401, 101),
])
def test_estimate_tokens(text, expected):
    assert estimate_tokens(text) == expected


def test_estimate_tokens_custom_divisor():
    assert estimate_tokens("abcdefg", chars_per_token=3) == 3


def test_estimate_cost():
    assert estimate_cost(100) == Decimal("0.02")
    assert estimate_cost(0) == 0
    assert estimate_cost(100, cost_per_token=Decimal("0.001")) == Decimal("0.1")


@pytest.mark.parametrize("amount,expected", [
    (Decimal("0"), 0),
    (Decimal("0.02"), 2),
    (Decimal("0.0008"), 0),
    (Decimal("0.005"), 1),
    (Decimal("0.0049"), 0),
    (Decimal("1.235"), 124),
])
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


def test_month_start_is_first_of_month_local_midnight():
    now = datetime(2026, 10, 19, 15, 30, 12)
    expected = datetime(2026, 10, 1).astimezone(timezone.utc).replace(tzinfo=None)
    assert month_start(now) == expected


def test_month_start_from_aware_datetime():
    now = datetime(2026, 3, 31, 23, 0, tzinfo=timezone.utc)
    local = now.astimezone()
    expected = datetime(local.year, local.month, 1).astimezone(timezone.utc).replace(tzinfo=None)
    assert month_start(now) == expected


@pytest.fixture
def london_time(monkeypatch):
    monkeypatch.setenv("TZ", "Europe/London")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
def test_month_start_across_daylight_saving_change(london_time):
    # 1 March is GMT, 31 March is BST
    aware = month_start(datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc))
    naive = month_start(datetime(2026, 3, 31, 13, 0))

    assert aware == datetime(2026, 3, 1, 0, 0)
    assert aware == naive


def test_month_start_defaults_to_now():
    start = month_start()
    assert start.tzinfo is None
    assert start <= datetime.now(timezone.utc).replace(tzinfo=None)
    assert datetime.now(timezone.utc).replace(tzinfo=None) - start < timedelta(days=32)


def test_plans_table():
    assert PLANS["free"].conversations == 5
    assert PLANS["starter"].conversations == 50
    assert PLANS["pro"].conversations == 200
    assert PLANS["business"].conversations == 1000
    assert PLANS["pro"].max_duration_minutes == 0


def test_get_plan_falls_back_to_free():
    assert get_plan("pro").plan_type == "pro"
    assert get_plan("enterprise-gold").plan_type == "free"
    assert get_plan(None).plan_type == "free"


def test_evaluate_limit_under_quota():
    status = evaluate_limit(used=2, limit=5, plan_type="free")
    assert status.can_start is True
    assert status.remaining == 3
    assert status.upgrade_required is False
    assert status.near_limit is False


def test_evaluate_limit_near_quota():
    status = evaluate_limit(used=4, limit=5, plan_type="free")
    assert status.can_start is True
    assert status.near_limit is True


def test_evaluate_limit_at_quota():
    status = evaluate_limit(used=5, limit=5, plan_type="free")
    assert status.can_start is False
    assert status.remaining == 0
    assert status.upgrade_required is True
    assert status.to_dict()["plan"] == "free"


def test_evaluate_limit_over_quota_never_negative():
    status = evaluate_limit(used=12, limit=5, plan_type="free")
    assert status.can_start is False
    assert status.remaining == 0


def test_evaluate_limit_zero_quota():
    status = evaluate_limit(used=0, limit=0, plan_type="free")
    assert status.can_start is False
    assert status.near_limit is False
