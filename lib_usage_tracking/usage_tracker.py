"""
Conversation Usage Tracker

Real-time accounting of a single voice conversation: wall-clock duration,
user/assistant speech split, message counts and estimated tokens. A tracker
is reused for every session on the same client connection.
"""
import logging
import threading
import time
from dataclasses import replace
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from lib_usage_tracking.usage_models import (
    ConversationMetrics,
    UsageEvent,
    UsageEventType
)
from lib_usage_tracking.usage_policy import estimate_tokens, estimate_cost
from app.config import CHARS_PER_TOKEN, COST_PER_TOKEN

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ConversationUsageTracker:
    """
    Accumulates usage for the active conversation session.

    Lifecycle:
        start_conversation() -> speech/message events and ticks -> end_conversation()

    end_conversation() does not reset anything; start_conversation() is
    required before the tracker is used for the next session.
    """

    def __init__(
        self,
        debug: bool = False,
        clock: Optional[Callable[[], int]] = None,
        chars_per_token: int = CHARS_PER_TOKEN,
        cost_per_token: Decimal = COST_PER_TOKEN
    ):
        """
        Initialize the tracker.

        Args:
            debug: Log every usage event and keep raw message content in the event log
            clock: Returns the current time in milliseconds since epoch
            chars_per_token: Token estimation divisor
            cost_per_token: Cost of one token in major currency units
        """
        self._debug = debug
        self._clock = clock or _now_ms
        self.chars_per_token = chars_per_token
        self.cost_per_token = cost_per_token

        self._lock = threading.Lock()

        self._metrics = ConversationMetrics()
        self._events: List[UsageEvent] = []

        # Session timing state, None means unset
        self._conversation_start_time: Optional[int] = None
        self._conversation_end_time: Optional[int] = None
        self._user_speech_start_time: Optional[int] = None
        self._ai_speech_start_time: Optional[int] = None
        self._user_speech_total_ms = 0
        self._ai_speech_total_ms = 0

    # ==================== SESSION LIFECYCLE ====================

    def start_conversation(self) -> None:
        """Reset all counters and begin a new session."""
        with self._lock:
            now = self._clock()
            self._metrics = ConversationMetrics()
            self._events = []
            self._conversation_start_time = now
            self._conversation_end_time = None
            self._user_speech_start_time = None
            self._ai_speech_start_time = None
            self._user_speech_total_ms = 0
            self._ai_speech_total_ms = 0
            self._log_event(UsageEvent(UsageEventType.CONVERSATION_START, now))

        logger.info("[UsageTracker] Conversation started")

    def end_conversation(self) -> ConversationMetrics:
        """
        Finalize the session and return a snapshot of its metrics.

        Returns:
            ConversationMetrics as of now
        """
        with self._lock:
            now = self._clock()
            # The first call fixes the session end so repeated calls agree
            if self._conversation_start_time is not None and self._conversation_end_time is None:
                self._conversation_end_time = now
            self._refresh(now)
            final_metrics = replace(self._metrics)

        if self._debug:
            logger.debug(f"[UsageTracker] Final conversation metrics: {final_metrics.to_dict()}")
            logger.debug(f"[UsageTracker] Events log: {[e.to_dict() for e in self.events]}")

        logger.info(f"[UsageTracker] Conversation ended - Duration: {final_metrics.duration_seconds}s, "
                    f"Messages: {final_metrics.message_count}, Tokens: {final_metrics.estimated_tokens}")
        return final_metrics

    # ==================== SPEECH EVENTS ====================

    def handle_user_speech_start(self) -> None:
        """Open a user speech interval (overwrites an interval that is still open)."""
        with self._lock:
            now = self._clock()
            self._user_speech_start_time = now
            self._log_event(UsageEvent(UsageEventType.USER_SPEECH_START, now))

    def handle_user_speech_end(self) -> None:
        """Close the open user speech interval and add it to the user total."""
        with self._lock:
            now = self._clock()
            duration = self._interval_ms(self._user_speech_start_time, now)
            self._user_speech_start_time = None
            self._user_speech_total_ms += duration
            self._log_event(UsageEvent(
                UsageEventType.USER_SPEECH_END, now, {"duration_ms": duration}
            ))

    def handle_ai_speech_start(self) -> None:
        """Open an assistant speech interval (overwrites an interval that is still open)."""
        with self._lock:
            now = self._clock()
            self._ai_speech_start_time = now
            self._log_event(UsageEvent(UsageEventType.AI_SPEECH_START, now))

    def handle_ai_speech_end(self) -> None:
        """Close the open assistant speech interval and add it to the assistant total."""
        with self._lock:
            now = self._clock()
            duration = self._interval_ms(self._ai_speech_start_time, now)
            self._ai_speech_start_time = None
            self._ai_speech_total_ms += duration
            self._log_event(UsageEvent(
                UsageEventType.AI_SPEECH_END, now, {"duration_ms": duration}
            ))

    @staticmethod
    def _interval_ms(start: Optional[int], end: int) -> int:
        # Unmatched end events and clock skew both count as zero
        if start is None:
            return 0
        return max(0, end - start)

    # ==================== MESSAGES ====================

    def handle_message(self, message_text: Optional[str], is_user: bool) -> None:
        """
        Count a transcript message and add its token estimate.

        Args:
            message_text: Message content
            is_user: True for user messages, False for assistant messages
        """
        content = message_text or ""
        token_estimate = estimate_tokens(content, self.chars_per_token)

        with self._lock:
            self._metrics.message_count += 1
            if is_user:
                self._metrics.user_message_count += 1
            else:
                self._metrics.ai_message_count += 1
            self._metrics.estimated_tokens += token_estimate

            data = {
                "is_user": is_user,
                "length": len(content),
                "tokens": token_estimate
            }
            if self._debug:
                data["content"] = content
            self._log_event(UsageEvent(UsageEventType.MESSAGE_RECEIVED, self._clock(), data))

    # ==================== METRICS ====================

    def update_real_time_metrics(self) -> None:
        """Refresh duration and speech totals; meant to be called on a fixed interval."""
        with self._lock:
            self._refresh(self._clock())

    def _refresh(self, now: int) -> None:
        if self._conversation_start_time is None:
            return
        if self._conversation_end_time is not None:
            now = self._conversation_end_time
        self._metrics.duration_seconds = max(0, now - self._conversation_start_time) // 1000
        self._metrics.user_speech_duration = self._user_speech_total_ms // 1000
        self._metrics.ai_speech_duration = self._ai_speech_total_ms // 1000

    def get_estimated_cost(self, metrics: ConversationMetrics) -> Decimal:
        """Estimated cost of a metrics snapshot in major currency units."""
        return estimate_cost(metrics.estimated_tokens, self.cost_per_token)

    # ==================== EVENT LOG ====================

    def _log_event(self, event: UsageEvent) -> None:
        # Timestamps never go backwards within a session, even if the clock does
        if self._events and event.timestamp < self._events[-1].timestamp:
            event = replace(event, timestamp=self._events[-1].timestamp)
        self._events.append(event)
        if self._debug:
            logger.debug(f"[UsageTracker] Usage event: {event.to_dict()}")

    # ==================== ACCESSORS ====================

    @property
    def current_metrics(self) -> ConversationMetrics:
        """Copy of the metrics as of the last refresh."""
        with self._lock:
            return replace(self._metrics)

    @property
    def events(self) -> Tuple[UsageEvent, ...]:
        """Usage events of the current session in the order they were recorded."""
        with self._lock:
            return tuple(self._events)

    @property
    def is_active(self) -> bool:
        """True between start_conversation() and end_conversation()."""
        return self._conversation_start_time is not None and self._conversation_end_time is None

    @property
    def debug(self) -> bool:
        return self._debug
