import sys
import os
from fastapi.testclient import TestClient
import pytest
from unittest.mock import MagicMock, AsyncMock

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app
from app.api import get_conversation_repository, get_usage_repository
from lib_database.models import ConversationRecord, UserUsageSummary, UsageStats
from lib_usage_tracking.usage_policy import evaluate_limit

client = TestClient(app)


@pytest.fixture
def conversation_repo():
    repo = MagicMock()
    repo.create = AsyncMock(return_value="conv-1")
    repo.get_conversation = AsyncMock(return_value=None)
    repo.list_conversations = AsyncMock(return_value=[])
    repo.delete_conversation = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def usage_repo():
    repo = MagicMock()
    repo.check_limit = AsyncMock(return_value=evaluate_limit(2, 5, "free"))
    repo.get_user_usage = AsyncMock()
    repo.get_usage_stats = AsyncMock()
    return repo


@pytest.fixture(autouse=True)
def override_repositories(conversation_repo, usage_repo):
    app.dependency_overrides[get_conversation_repository] = lambda: conversation_repo
    app.dependency_overrides[get_usage_repository] = lambda: usage_repo
    yield
    app.dependency_overrides.clear()


def make_record(**kwargs) -> ConversationRecord:
    defaults = dict(user_id="user-123", title="Chat", transcript="user: hi", duration_seconds=42,
                    estimated_tokens=100, cost_cents=2)
    defaults.update(kwargs)
    return ConversationRecord(**defaults)


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ==================== Conversations ====================

def test_create_conversation(conversation_repo):
    response = client.post("/api/v1/conversations", json={
        "user_id": "user-123",
        "title": "Morning chat",
        "transcript": "user: hello\nassistant: hi there",
        "duration_seconds": 5,
        "estimated_tokens": 4,
        "cost_cents": 0,
        "usage_metadata": {"user_speech_duration": 3, "ai_speech_duration": 2}
    })

    assert response.status_code == 200
    conversation = response.json()["conversation"]
    assert conversation["user_id"] == "user-123"
    assert conversation["duration_seconds"] == 5
    assert conversation["id"]

    record = conversation_repo.create.await_args.args[0]
    assert record.usage_metadata["ai_speech_duration"] == 2


def test_create_conversation_missing_fields():
    response = client.post("/api/v1/conversations", json={"user_id": "user-123"})
    assert response.status_code == 422


def test_create_conversation_storage_failure(conversation_repo):
    conversation_repo.create.side_effect = Exception("write failed")
    response = client.post("/api/v1/conversations", json={"user_id": "user-123", "title": "Chat"})
    assert response.status_code == 500


def test_list_conversations(conversation_repo):
    conversation_repo.list_conversations.return_value = [make_record(), make_record(title="Second")]

    response = client.get("/api/v1/conversations", params={"user_id": "user-123"})

    assert response.status_code == 200
    assert [c["title"] for c in response.json()["conversations"]] == ["Chat", "Second"]
    assert all("transcript" not in c for c in response.json()["conversations"])
    conversation_repo.list_conversations.assert_awaited_once_with("user-123")


def test_list_conversations_requires_user_id():
    response = client.get("/api/v1/conversations")
    assert response.status_code == 422


def test_get_conversation(conversation_repo):
    record = make_record()
    conversation_repo.get_conversation.return_value = record

    response = client.get(f"/api/v1/conversations/{record.id}")

    assert response.status_code == 200
    assert response.json()["conversation"]["transcript"] == "user: hi"


def test_get_conversation_not_found():
    response = client.get("/api/v1/conversations/missing")
    assert response.status_code == 404


def test_delete_conversation(conversation_repo):
    response = client.delete("/api/v1/conversations/conv-1")
    assert response.status_code == 200
    assert response.json() == {"success": True}

    conversation_repo.delete_conversation.return_value = False
    response = client.delete("/api/v1/conversations/conv-1")
    assert response.status_code == 404


# ==================== Usage ====================

def test_check_limit(usage_repo):
    response = client.post("/api/v1/usage/check-limit", json={"user_id": "user-123"})

    assert response.status_code == 200
    assert response.json() == {
        "can_start_conversation": True,
        "conversations_used": 2,
        "conversations_limit": 5,
        "plan_type": "free",
        "conversations_remaining": 3,
        "upgrade_required": False,
        "near_limit": False
    }


def test_check_limit_at_quota(usage_repo):
    usage_repo.check_limit.return_value = evaluate_limit(5, 5, "free")

    body = client.post("/api/v1/usage/check-limit", json={"user_id": "user-123"}).json()

    assert body["can_start_conversation"] is False
    assert body["upgrade_required"] is True


def test_check_limit_missing_user_id():
    response = client.post("/api/v1/usage/check-limit", json={})
    assert response.status_code == 422


def test_check_limit_failure(usage_repo):
    usage_repo.check_limit.side_effect = Exception("database unavailable")
    response = client.post("/api/v1/usage/check-limit", json={"user_id": "user-123"})
    assert response.status_code == 500


def test_get_user_usage(usage_repo):
    usage_repo.get_user_usage.return_value = UserUsageSummary(
        user_id="user-123",
        plan_type="starter",
        conversations_used=1,
        conversations_limit=50,
        total_duration=42,
        total_tokens=100,
        total_cost=2,
        recent_conversations=[make_record()]
    )

    response = client.get("/api/v1/usage/user", params={"user_id": "user-123"})

    assert response.status_code == 200
    body = response.json()
    assert body["plan_type"] == "starter"
    assert body["total_cost"] == 2
    assert body["recent_conversations"][0]["duration_seconds"] == 42


def test_list_plans():
    response = client.get("/api/v1/plans")

    assert response.status_code == 200
    plans = {p["plan_type"]: p for p in response.json()}
    assert plans["free"]["conversations"] == 5
    assert plans["business"]["price"] == 9900


def test_admin_usage_stats(usage_repo):
    usage_repo.get_usage_stats.return_value = UsageStats(
        total_conversations=1,
        total_users=1,
        total_duration=42,
        total_tokens=100,
        total_cost=2,
        average_conversation_length=42,
        average_tokens_per_conversation=100,
        conversations=[make_record()]
    )

    response = client.get("/api/v1/admin/usage-stats")

    assert response.status_code == 200
    assert response.json()["average_tokens_per_conversation"] == 100


# ==================== Conversation socket ====================

def receive_event(websocket) -> dict:
    """Next server event, skipping real-time metrics pushes."""
    while True:
        data = websocket.receive_json()
        if data["type"] != "metrics":
            return data


def test_socket_session_flow(conversation_repo):
    with client.websocket_connect("/ws/conversation/user-123") as websocket:
        websocket.send_json({"type": "start", "title": "Socket chat"})
        started = receive_event(websocket)
        assert started["type"] == "started"
        assert started["usage"]["remaining"] == 3

        websocket.send_json({"type": "user_speech_start"})
        websocket.send_json({"type": "user_speech_end"})
        websocket.send_json({"type": "message", "text": "hello", "is_user": True})
        websocket.send_json({"type": "message", "text": "hi there", "is_user": False})
        websocket.send_json({"type": "end"})

        ended = receive_event(websocket)
        assert ended["type"] == "ended"
        assert ended["conversation_id"] == "conv-1"
        assert ended["metrics"]["message_count"] == 2
        assert ended["metrics"]["estimated_tokens"] == 4
        assert ended["estimated_cost"] == "0.0008"
        assert ended["cost_cents"] == 0

    record = conversation_repo.create.await_args.args[0]
    assert record.title == "Socket chat"
    assert record.transcript == "user: hello\nassistant: hi there"


def test_socket_limit_reached(usage_repo, conversation_repo):
    usage_repo.check_limit.return_value = evaluate_limit(5, 5, "free")

    with client.websocket_connect("/ws/conversation/user-123") as websocket:
        websocket.send_json({"type": "start"})
        event = receive_event(websocket)
        assert event["type"] == "limit_reached"
        assert event["usage"]["upgrade_required"] is True

        websocket.send_json({"type": "message", "text": "hello"})
        assert receive_event(websocket) == {"type": "error", "detail": "No active session"}

    conversation_repo.create.assert_not_awaited()


def test_socket_rejects_invalid_events():
    with client.websocket_connect("/ws/conversation/user-123") as websocket:
        websocket.send_text("not json")
        assert receive_event(websocket)["type"] == "error"

        websocket.send_json({"type": "dance"})
        assert receive_event(websocket)["type"] == "error"


def test_socket_disconnect_saves_session(conversation_repo):
    with client.websocket_connect("/ws/conversation/user-123") as websocket:
        websocket.send_json({"type": "start"})
        assert receive_event(websocket)["type"] == "started"
        websocket.send_json({"type": "message", "text": "are you there?", "is_user": True})

    conversation_repo.create.assert_awaited_once()
