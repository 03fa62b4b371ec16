"""
Usage Tracking Data Models for per-conversation metering.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class UsageEventType(str, Enum):
    """Type of event recorded in a session's usage log."""
    CONVERSATION_START = "conversation_start"
    USER_SPEECH_START = "user_speech_start"
    USER_SPEECH_END = "user_speech_end"
    AI_SPEECH_START = "ai_speech_start"
    AI_SPEECH_END = "ai_speech_end"
    MESSAGE_RECEIVED = "message_received"


@dataclass
class ConversationMetrics:
    """
    Running counters for a single conversation session.
    """
    duration_seconds: int = 0        # Wall-clock time since session start
    user_speech_duration: int = 0    # Seconds of user speech
    ai_speech_duration: int = 0      # Seconds of assistant speech
    estimated_tokens: int = 0
    message_count: int = 0
    user_message_count: int = 0
    ai_message_count: int = 0

    def to_dict(self) -> dict:
        """Convert to the finalized record shape."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationMetrics":
        """Create ConversationMetrics from dictionary, ignoring unknown keys."""
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)


@dataclass(frozen=True)
class UsageEvent:
    """
    Append-only entry in the session usage log.

    ``data`` is copied into a read-only mapping so a logged event cannot be
    changed through a reference handed out by the tracker.
    """
    type: UsageEventType
    timestamp: int  # Milliseconds since epoch
    data: Optional[Mapping] = field(default=None)

    def __post_init__(self):
        if self.data is not None:
            object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        payload = {"type": self.type.value, "timestamp": self.timestamp}
        if self.data is not None:
            payload["data"] = dict(self.data)
        return payload
