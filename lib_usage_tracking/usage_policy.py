"""
Usage Policy

Token and cost estimation for conversation metering, plan definitions and
monthly usage-limit evaluation. Everything here is a pure function of its
inputs.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from app.config import (
    CHARS_PER_TOKEN,
    COST_PER_TOKEN,
    DEFAULT_PLAN,
    USAGE_WARNING_RATIO
)


@dataclass(frozen=True)
class Plan:
    """Subscription tier with a monthly conversation quota."""
    plan_type: str
    name: str
    price: int                      # Minor currency units per month
    conversations: int              # Monthly conversation quota
    max_duration_minutes: int = 0   # 0 = unlimited
    features: tuple = ()


PLANS: Dict[str, Plan] = {
    "free": Plan(
        plan_type="free",
        name="Free",
        price=0,
        conversations=5,
        max_duration_minutes=10,
        features=("Voice conversations", "Basic AI model", "Conversation history")
    ),
    "starter": Plan(
        plan_type="starter",
        name="Starter",
        price=900,
        conversations=50,
        max_duration_minutes=30,
        features=("Everything in Free", "Priority processing", "Extended conversations", "Email support")
    ),
    "pro": Plan(
        plan_type="pro",
        name="Pro",
        price=2900,
        conversations=200,
        max_duration_minutes=0,
        features=("Everything in Starter", "Advanced AI model", "Export conversations", "Premium support")
    ),
    "business": Plan(
        plan_type="business",
        name="Business",
        price=9900,
        conversations=1000,
        max_duration_minutes=0,
        features=("Everything in Pro", "Custom voice models", "API access", "Dedicated support")
    ),
}


@dataclass
class UsageLimitStatus:
    """
    Result of checking a user's monthly usage against their plan.
    """
    can_start: bool
    used: int
    limit: int
    plan: str
    remaining: int = 0
    upgrade_required: bool = False
    near_limit: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def get_plan(plan_type: Optional[str]) -> Plan:
    """Look up a plan, falling back to the default plan for unknown types."""
    if plan_type in PLANS:
        return PLANS[plan_type]
    return PLANS.get(DEFAULT_PLAN, PLANS["free"])


def estimate_tokens(text: Optional[str], chars_per_token: int = CHARS_PER_TOKEN) -> int:
    """
    Estimate the token count of a message.

    ~4 characters per token is a conservative approximation of sub-word
    tokenization; it has not been calibrated against a real tokenizer.
    """
    if not text:
        return 0
    return -(-len(text) // chars_per_token)


def estimate_cost(tokens: int, cost_per_token: Decimal = COST_PER_TOKEN) -> Decimal:
    """Estimated cost in major currency units for a token count."""
    return Decimal(tokens) * cost_per_token


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (e.g. pounds) to whole minor units (pence)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def month_start(now: Optional[datetime] = None) -> datetime:
    """
    Start of the current usage period: the first of the month at 00:00 local time.

    Returns a naive UTC datetime so it compares directly against stored
    ``created_at`` values.
    """
    local_now = now or datetime.now()
    if local_now.tzinfo is not None:
        # Drop the fixed offset so the 1st is resolved with its own DST offset
        local_now = local_now.astimezone().replace(tzinfo=None)
    start = local_now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(timezone.utc).replace(tzinfo=None)


def evaluate_limit(
    used: int,
    limit: int,
    plan_type: str,
    warning_ratio: float = USAGE_WARNING_RATIO
) -> UsageLimitStatus:
    """
    Decide whether a new conversation may start.

    Args:
        used: Conversations already started this period
        limit: Monthly conversation quota
        plan_type: Plan the quota comes from
        warning_ratio: Fraction of the quota at which near_limit is raised

    Returns:
        UsageLimitStatus
    """
    used = max(0, used)
    can_start = used < limit
    near_limit = limit > 0 and (used / limit) >= warning_ratio
    return UsageLimitStatus(
        can_start=can_start,
        used=used,
        limit=limit,
        plan=plan_type,
        remaining=max(0, limit - used),
        upgrade_required=not can_start,
        near_limit=near_limit
    )
