import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.requests import HTTPConnection
from typing import List

from .schemas import (
    CreateConversationRequest, ConversationOut, ConversationSummaryOut, ConversationResponse,
    ConversationListResponse, DeleteResponse, CheckLimitRequest,
    CheckLimitResponse, UserUsageResponse, UsageStatsResponse, PlanOut
)
from lib_database.database import Database
from lib_database.models import ConversationRecord, utcnow
from lib_database.conversation_repository import ConversationRepository
from lib_database.usage_repository import UsageRepository
from lib_usage_tracking.usage_policy import PLANS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


# ==============================
# DEPENDENCIES
# ==============================

def get_database(connection: HTTPConnection) -> Database:
    return connection.app.state.database


def get_conversation_repository(database: Database = Depends(get_database)) -> ConversationRepository:
    return ConversationRepository(database)


def get_usage_repository(database: Database = Depends(get_database)) -> UsageRepository:
    return UsageRepository(database)


# ==============================
# CONVERSATIONS
# ==============================

@router.post("/conversations", response_model=ConversationResponse, tags=["Conversations"])
async def create_conversation(
    req: CreateConversationRequest,
    repo: ConversationRepository = Depends(get_conversation_repository)
):
    """Store a finalized conversation with its usage metrics."""
    now = utcnow()
    record = ConversationRecord(
        user_id=req.user_id,
        title=req.title,
        transcript=req.transcript,
        duration_seconds=req.duration_seconds,
        estimated_tokens=req.estimated_tokens,
        cost_cents=req.cost_cents,
        usage_metadata=req.usage_metadata,
        audio_url=req.audio_url,
        started_at=req.started_at or now,
        ended_at=req.ended_at or now,
        created_at=now
    )
    try:
        await repo.create(record)
    except Exception as e:
        logger.error(f"Error saving conversation: {e}")
        raise HTTPException(status_code=500, detail="Failed to save conversation")

    return ConversationResponse(conversation=ConversationOut.model_validate(record))


@router.get("/conversations", response_model=ConversationListResponse, tags=["Conversations"])
async def list_conversations(
    user_id: str = Query(..., min_length=1),
    repo: ConversationRepository = Depends(get_conversation_repository)
):
    """List a user's conversations, newest first."""
    try:
        conversations = await repo.list_conversations(user_id)
    except Exception as e:
        logger.error(f"Error fetching conversations: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversations")

    return ConversationListResponse(
        conversations=[ConversationSummaryOut.model_validate(c) for c in conversations]
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse, tags=["Conversations"])
async def get_conversation(
    conversation_id: str,
    repo: ConversationRepository = Depends(get_conversation_repository)
):
    """Get a conversation including its transcript."""
    try:
        conversation = await repo.get_conversation(conversation_id)
    except Exception as e:
        logger.error(f"Error fetching conversation: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversation")

    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    return ConversationResponse(conversation=ConversationOut.model_validate(conversation))


@router.delete("/conversations/{conversation_id}", response_model=DeleteResponse, tags=["Conversations"])
async def delete_conversation(
    conversation_id: str,
    repo: ConversationRepository = Depends(get_conversation_repository)
):
    """Delete a conversation."""
    try:
        deleted = await repo.delete_conversation(conversation_id)
    except Exception as e:
        logger.error(f"Error deleting conversation: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete conversation")

    if not deleted:
        raise HTTPException(status_code=404, detail="Conversation not found")

    return DeleteResponse(success=True)


# ==============================
# USAGE
# ==============================

@router.post("/usage/check-limit", response_model=CheckLimitResponse, tags=["Usage"])
async def check_limit(
    req: CheckLimitRequest,
    repo: UsageRepository = Depends(get_usage_repository)
):
    """Check whether a user may start a new conversation this month."""
    try:
        status = await repo.check_limit(req.user_id)
    except Exception as e:
        logger.error(f"Error checking usage limit: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return CheckLimitResponse(
        can_start_conversation=status.can_start,
        conversations_used=status.used,
        conversations_limit=status.limit,
        plan_type=status.plan,
        conversations_remaining=status.remaining,
        upgrade_required=status.upgrade_required,
        near_limit=status.near_limit
    )


@router.get("/usage/user", response_model=UserUsageResponse, tags=["Usage"])
async def get_user_usage(
    user_id: str = Query(..., min_length=1),
    repo: UsageRepository = Depends(get_usage_repository)
):
    """Usage totals for the current month."""
    try:
        summary = await repo.get_user_usage(user_id)
    except Exception as e:
        logger.error(f"Error fetching user usage: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return UserUsageResponse.model_validate(summary, from_attributes=True)


@router.get("/plans", response_model=List[PlanOut], tags=["Usage"])
async def list_plans():
    """Available subscription plans."""
    return [PlanOut.model_validate(plan) for plan in PLANS.values()]


# ==============================
# ADMIN
# ==============================

@router.get("/admin/usage-stats", response_model=UsageStatsResponse, tags=["Admin"])
async def get_usage_stats(repo: UsageRepository = Depends(get_usage_repository)):
    """Usage aggregated over all conversations."""
    try:
        stats = await repo.get_usage_stats()
    except Exception as e:
        logger.error(f"Error generating usage stats: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return UsageStatsResponse.model_validate(stats, from_attributes=True)
