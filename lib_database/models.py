"""
MongoDB Data Models for Conversations, Plans and Usage
"""
from datetime import datetime, timezone
from typing import List, Optional
from dataclasses import dataclass, field, asdict
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every stored document uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value):
    return value.isoformat() if isinstance(value, datetime) else value


def _known_fields(cls, data: dict) -> dict:
    # Drops MongoDB's _id and any field this version of the model does not define
    return {k: v for k, v in data.items() if k in cls.__dataclass_fields__}


def _parse_datetimes(data: dict, field_names: List[str]) -> dict:
    for field_name in field_names:
        if isinstance(data.get(field_name), str):
            data[field_name] = datetime.fromisoformat(data[field_name])
    return data


@dataclass
class ConversationRecord:
    """
    A finalized conversation with its usage metrics.
    """
    user_id: str
    title: str
    transcript: str = ""
    duration_seconds: int = 0
    estimated_tokens: int = 0
    cost_cents: int = 0  # Estimated cost in minor currency units
    usage_metadata: Optional[dict] = None  # Speech/message split of the session
    audio_url: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    ended_at: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = asdict(self)
        for field_name in ['started_at', 'ended_at', 'created_at']:
            data[field_name] = _isoformat(data[field_name])
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationRecord":
        """Create ConversationRecord from dictionary."""
        data = _known_fields(cls, data)
        return cls(**_parse_datetimes(data, ['started_at', 'ended_at', 'created_at']))


@dataclass
class UserPlan:
    """
    A user's subscription tier and cached monthly usage.
    """
    user_id: str
    plan_type: str = "free"
    conversations_limit: int = 5
    conversations_used: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = asdict(self)
        data['created_at'] = _isoformat(self.created_at)
        data['updated_at'] = _isoformat(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UserPlan":
        """Create UserPlan from dictionary."""
        data = _known_fields(cls, data)
        return cls(**_parse_datetimes(data, ['created_at', 'updated_at']))


@dataclass
class UsageLimitEvent:
    """
    Records when a user is blocked by their monthly quota.
    """
    user_id: str
    plan_type: str
    event_type: str = "limit_hit"
    conversations_remaining: int = 0
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = asdict(self)
        data['created_at'] = _isoformat(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UsageLimitEvent":
        """Create UsageLimitEvent from dictionary."""
        data = _known_fields(cls, data)
        return cls(**_parse_datetimes(data, ['created_at']))


@dataclass
class UserUsageSummary:
    """
    A user's usage for the current monthly period.
    """
    user_id: str
    plan_type: str
    conversations_used: int = 0
    conversations_limit: int = 0
    total_duration: int = 0   # Seconds
    total_tokens: int = 0
    total_cost: int = 0       # Minor currency units
    recent_conversations: List[ConversationRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "user_id": self.user_id,
            "plan_type": self.plan_type,
            "conversations_used": self.conversations_used,
            "conversations_limit": self.conversations_limit,
            "total_duration": self.total_duration,
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
            "recent_conversations": [c.to_dict() for c in self.recent_conversations]
        }


@dataclass
class UsageStats:
    """
    Usage aggregated over every stored conversation (admin view).
    """
    total_conversations: int = 0
    total_users: int = 0
    total_duration: int = 0
    total_tokens: int = 0
    total_cost: int = 0
    average_conversation_length: int = 0
    average_tokens_per_conversation: int = 0
    conversations: List[ConversationRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {k: v for k, v in asdict(self).items() if k != 'conversations'}
        data['conversations'] = [c.to_dict() for c in self.conversations]
        return data
