from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class CreateConversationRequest(BaseModel):
    """Request model for storing a finalized conversation."""

    user_id: str = Field(
        ...,
        min_length=1,
        description="Unique user identifier",
        examples=["user_abc123"]
    )

    title: str = Field(
        ...,
        min_length=1,
        description="Conversation title",
        examples=["Conversation on 19/10/2026"]
    )

    transcript: str = Field(
        default="",
        description="Transcript as 'role: content' lines",
        examples=["user: hello\nassistant: hi there"]
    )

    started_at: Optional[datetime] = Field(default=None, description="Session start (defaults to now)")
    ended_at: Optional[datetime] = Field(default=None, description="Session end (defaults to now)")

    duration_seconds: int = Field(default=0, ge=0, description="Wall-clock session duration")
    estimated_tokens: int = Field(default=0, ge=0, description="Estimated token consumption")
    cost_cents: int = Field(default=0, ge=0, description="Estimated cost in minor currency units")

    usage_metadata: Optional[dict] = Field(
        default=None,
        description="Speech/message split of the session",
        examples=[{
            "user_speech_duration": 3,
            "ai_speech_duration": 2,
            "message_count": 2,
            "user_message_count": 1,
            "ai_message_count": 1
        }]
    )

    audio_url: Optional[str] = Field(default=None, description="Recording location, if any")


class ConversationSummaryOut(BaseModel):
    """A stored conversation as listed; the transcript is only returned by id."""
    model_config = {"from_attributes": True}

    id: str
    user_id: str
    title: str
    duration_seconds: int = 0
    estimated_tokens: int = 0
    cost_cents: int = 0
    usage_metadata: Optional[dict] = None
    audio_url: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ConversationOut(ConversationSummaryOut):
    """A stored conversation including its transcript."""
    transcript: Optional[str] = None


class ConversationResponse(BaseModel):
    conversation: ConversationOut


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummaryOut]


class DeleteResponse(BaseModel):
    success: bool = Field(..., description="Whether the conversation was deleted")


class CheckLimitRequest(BaseModel):
    """Request model for checking a user's monthly conversation quota."""
    user_id: str = Field(..., min_length=1, description="Unique user identifier", examples=["user_abc123"])


class CheckLimitResponse(BaseModel):
    """Whether the user may start a new conversation."""
    can_start_conversation: bool = Field(..., description="True while under the monthly quota")
    conversations_used: int = Field(..., description="Conversations started this month")
    conversations_limit: int = Field(..., description="Monthly conversation quota of the plan")
    plan_type: str = Field(..., description="Plan the quota comes from")
    conversations_remaining: int = Field(..., description="Conversations left this month")
    upgrade_required: bool = Field(default=False, description="True when the quota is exhausted")
    near_limit: bool = Field(default=False, description="True at 80% of the quota or more")


class UserUsageResponse(BaseModel):
    """A user's usage for the current month."""
    user_id: str
    plan_type: str
    conversations_used: int
    conversations_limit: int
    total_duration: int = Field(..., description="Total seconds this month")
    total_tokens: int
    total_cost: int = Field(..., description="Total cost in minor currency units")
    recent_conversations: List[ConversationSummaryOut]


class UsageStatsResponse(BaseModel):
    """Usage across all users."""
    total_conversations: int
    total_users: int
    total_duration: int
    total_tokens: int
    total_cost: int
    average_conversation_length: int
    average_tokens_per_conversation: int
    conversations: List[ConversationSummaryOut]


class PlanOut(BaseModel):
    """A subscription plan."""
    model_config = {"from_attributes": True}

    plan_type: str
    name: str
    price: int = Field(..., description="Monthly price in minor currency units")
    conversations: int = Field(..., description="Monthly conversation quota")
    max_duration_minutes: int = Field(..., description="Maximum session length, 0 for unlimited")
    features: List[str]
