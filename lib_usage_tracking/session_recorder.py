"""
Conversation Session Recorder

Owns one user's conversation session around the usage tracker:
1. Checks the monthly plan limit before a session starts
2. Drives the tracker and its metrics ticker while the session is live
3. Persists the finalized metrics and transcript when the session ends

Persistence is best effort and at most once: failures are logged, never
retried and never raised to the caller.
"""
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from lib_database.conversation_repository import ConversationRepository
from lib_database.models import ConversationRecord, utcnow
from lib_database.usage_repository import UsageRepository
from lib_usage_tracking.metrics_ticker import MetricsTicker
from lib_usage_tracking.usage_models import ConversationMetrics
from lib_usage_tracking.usage_policy import UsageLimitStatus, to_minor_units
from lib_usage_tracking.usage_tracker import ConversationUsageTracker
from app.config import METRICS_REFRESH_INTERVAL_MS

logger = logging.getLogger(__name__)


class ConversationSessionRecorder:
    """
    Session lifecycle around a ConversationUsageTracker for a single user.
    """

    def __init__(
        self,
        user_id: str,
        tracker: ConversationUsageTracker,
        conversation_repository: ConversationRepository,
        usage_repository: UsageRepository,
        interval_ms: int = METRICS_REFRESH_INTERVAL_MS,
        on_metrics: Optional[Callable[[ConversationMetrics], Awaitable[None]]] = None
    ):
        """
        Initialize the recorder.

        Args:
            user_id: User identifier
            tracker: Tracker reused across this user's sessions
            conversation_repository: Where finalized conversations are stored
            usage_repository: Plan limit checks
            interval_ms: Real-time metrics refresh period
            on_metrics: Optional coroutine receiving metrics on every tick
        """
        self.user_id = user_id
        self.tracker = tracker
        self.conversation_repository = conversation_repository
        self.usage_repository = usage_repository
        self.ticker = MetricsTicker(tracker, interval_ms=interval_ms, on_tick=on_metrics)

        self.title: Optional[str] = None
        self.transcript: List[str] = []
        self.started_at: Optional[datetime] = None
        self.last_metrics: Optional[ConversationMetrics] = None

    @property
    def is_recording(self) -> bool:
        return self.started_at is not None

    # ==================== LIFECYCLE ====================

    async def start(self, title: Optional[str] = None) -> UsageLimitStatus:
        """
        Check the user's plan limit and start a session if allowed.

        Args:
            title: Optional conversation title

        Returns:
            UsageLimitStatus; the session only started if can_start is True
        """
        status = await self._check_limit()
        if not status.can_start:
            logger.info(f"[SessionRecorder] User {self.user_id} is at their limit "
                        f"({status.used}/{status.limit}), session not started")
            return status

        if status.near_limit:
            logger.info(f"[SessionRecorder] User {self.user_id} is close to their limit "
                        f"({status.used}/{status.limit})")

        self.title = title
        self.transcript = []
        self.started_at = utcnow()
        self.last_metrics = None
        self.tracker.start_conversation()
        self.ticker.start()
        return status

    async def _check_limit(self) -> UsageLimitStatus:
        try:
            return await self.usage_repository.check_limit(self.user_id)
        except Exception as e:
            # A broken limit check must not lock users out
            logger.error(f"[SessionRecorder] Error checking usage limits: {e}")
            return UsageLimitStatus(can_start=True, used=0, limit=0, plan="unknown")

    async def finish(self) -> Optional[str]:
        """
        End the session and store it.

        Returns:
            Stored conversation id, or None if nothing was saved
        """
        await self.ticker.stop()

        if not self.is_recording:
            return None

        metrics = self.tracker.end_conversation()
        self.last_metrics = metrics
        started_at, self.started_at = self.started_at, None

        if not self.transcript:
            logger.info("[SessionRecorder] Skipping save: no messages in session")
            return None

        record = self._build_record(metrics, started_at)
        try:
            conversation_id = await self.conversation_repository.create(record)
        except Exception as e:
            logger.error(f"[SessionRecorder] Failed to save conversation for user {self.user_id}: {e}")
            return None

        logger.info(f"[SessionRecorder] Conversation saved: {conversation_id} "
                    f"({metrics.duration_seconds}s, {metrics.estimated_tokens} tokens, "
                    f"{record.cost_cents} cost cents)")
        return conversation_id

    def _build_record(self, metrics: ConversationMetrics, started_at: datetime) -> ConversationRecord:
        title = self.title or f"Conversation on {started_at.strftime('%d/%m/%Y')}"
        cost = self.tracker.get_estimated_cost(metrics)
        return ConversationRecord(
            user_id=self.user_id,
            title=title,
            transcript="\n".join(self.transcript),
            duration_seconds=metrics.duration_seconds,
            estimated_tokens=metrics.estimated_tokens,
            cost_cents=to_minor_units(cost),
            usage_metadata={
                "user_speech_duration": metrics.user_speech_duration,
                "ai_speech_duration": metrics.ai_speech_duration,
                "message_count": metrics.message_count,
                "user_message_count": metrics.user_message_count,
                "ai_message_count": metrics.ai_message_count,
                "raw_data": metrics.to_dict()
            },
            started_at=started_at,
            ended_at=utcnow()
        )

    # ==================== SESSION EVENTS ====================

    def user_speech_start(self):
        self.tracker.handle_user_speech_start()

    def user_speech_end(self):
        self.tracker.handle_user_speech_end()

    def ai_speech_start(self):
        self.tracker.handle_ai_speech_start()

    def ai_speech_end(self):
        self.tracker.handle_ai_speech_end()

    def message(self, text: str, is_user: bool):
        """Record a transcript message."""
        self.tracker.handle_message(text, is_user)
        role = "user" if is_user else "assistant"
        self.transcript.append(f"{role}: {text or ''}")
