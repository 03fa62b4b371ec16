"""
Conversation socket: a voice client streams its session events here and the
server meters the session, pushing real-time metrics back every tick.

Client -> server:  {"type": "start", "title": "..."}
                   {"type": "user_speech_start"} ... {"type": "ai_speech_end"}
                   {"type": "message", "text": "...", "is_user": true}
                   {"type": "end"}
Server -> client:  started | limit_reached | metrics | ended | error
"""
import logging
from fastapi import APIRouter, Depends, WebSocket
from fastapi.websockets import WebSocketDisconnect
from pydantic import ValidationError

from api_request_schemas import SessionEvent, SessionEventType
from lib_database.conversation_repository import ConversationRepository
from lib_database.usage_repository import UsageRepository
from lib_usage_tracking.session_recorder import ConversationSessionRecorder
from lib_usage_tracking.usage_models import ConversationMetrics
from lib_usage_tracking.usage_policy import to_minor_units
from lib_usage_tracking.usage_tracker import ConversationUsageTracker
from .api import get_conversation_repository, get_usage_repository
from .config import USAGE_DEBUG_MODE

logger = logging.getLogger(__name__)

socket_router = APIRouter()

_SPEECH_HANDLERS = {
    SessionEventType.user_speech_start: "user_speech_start",
    SessionEventType.user_speech_end: "user_speech_end",
    SessionEventType.ai_speech_start: "ai_speech_start",
    SessionEventType.ai_speech_end: "ai_speech_end",
}


def _metrics_payload(tracker: ConversationUsageTracker, metrics: ConversationMetrics) -> dict:
    cost = tracker.get_estimated_cost(metrics)
    return {
        "metrics": metrics.to_dict(),
        "estimated_cost": str(cost),
        "cost_cents": to_minor_units(cost)
    }


async def _send_error(websocket: WebSocket, detail: str):
    await websocket.send_json({"type": "error", "detail": detail})


async def _handle_event(websocket: WebSocket, recorder: ConversationSessionRecorder, event: SessionEvent):
    if event.type == SessionEventType.start:
        if recorder.is_recording:
            await recorder.finish()
        status = await recorder.start(event.title)
        await websocket.send_json({
            "type": "started" if status.can_start else "limit_reached",
            "usage": status.to_dict()
        })
        return

    if not recorder.is_recording:
        await _send_error(websocket, "No active session")
        return

    if event.type == SessionEventType.end:
        conversation_id = await recorder.finish()
        payload = {"type": "ended", "conversation_id": conversation_id}
        payload.update(_metrics_payload(recorder.tracker, recorder.last_metrics))
        await websocket.send_json(payload)
    elif event.type == SessionEventType.message:
        recorder.message(event.text or "", event.is_user)
    else:
        getattr(recorder, _SPEECH_HANDLERS[event.type])()


@socket_router.websocket("/ws/conversation/{user_id}")
async def conversation_socket(
    websocket: WebSocket,
    user_id: str,
    debug: bool = False,
    conversations: ConversationRepository = Depends(get_conversation_repository),
    usage: UsageRepository = Depends(get_usage_repository)
):
    await websocket.accept()
    logger.info(f"Conversation socket opened for user {user_id}")

    # One tracker per connection, reused for every session on it
    tracker = ConversationUsageTracker(debug=debug or USAGE_DEBUG_MODE)

    async def send_metrics(metrics: ConversationMetrics):
        payload = {"type": "metrics"}
        payload.update(_metrics_payload(tracker, metrics))
        await websocket.send_json(payload)

    recorder = ConversationSessionRecorder(
        user_id, tracker, conversations, usage, on_metrics=send_metrics
    )

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                event = SessionEvent.model_validate_json(raw)
            except ValidationError as e:
                await _send_error(websocket, f"Invalid event: {e.errors()[0]['msg']}")
                continue
            await _handle_event(websocket, recorder, event)
    except WebSocketDisconnect:
        logger.info(f"Conversation socket closed for user {user_id}")
    finally:
        # A disconnect mid-session still stores what was metered
        await recorder.finish()
