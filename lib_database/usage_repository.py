"""
Usage Repository - plan lookup, monthly limit checks and usage aggregates.
"""
import logging
from datetime import datetime
from typing import Optional
from lib_database.database import Database
from lib_database.conversation_repository import ConversationRepository
from lib_database.models import (
    UserPlan,
    UsageLimitEvent,
    UserUsageSummary,
    UsageStats,
    utcnow
)
from lib_usage_tracking.usage_policy import (
    UsageLimitStatus,
    evaluate_limit,
    get_plan,
    month_start
)
from app.config import DEFAULT_PLAN

logger = logging.getLogger(__name__)

RECENT_CONVERSATIONS = 10


def _rounded_average(total: int, count: int) -> int:
    if count == 0:
        return 0
    return int(total / count + 0.5)


class UsageRepository:
    """
    Repository for plans and conversation usage in MongoDB.
    """

    def __init__(self, database: Database, conversations: Optional[ConversationRepository] = None):
        """
        Initialize repository with database connection.

        Args:
            database: Connected Database instance
            conversations: Conversation repository used for usage counts
        """
        self.db = database
        self.conversations = conversations or ConversationRepository(database)

    # ==================== PLAN OPERATIONS ====================

    async def get_plan(self, user_id: str) -> Optional[UserPlan]:
        """
        Get a user's plan record.

        Args:
            user_id: User identifier

        Returns:
            UserPlan or None if the user has no plan yet
        """
        data = await self.db.user_plans.find_one({"user_id": user_id})
        if data:
            return UserPlan.from_dict(data)
        return None

    async def get_or_create_plan(self, user_id: str) -> UserPlan:
        """
        Get a user's plan, creating a default plan record on first use.

        Args:
            user_id: User identifier

        Returns:
            UserPlan
        """
        plan = await self.get_plan(user_id)
        if plan:
            return plan

        default = get_plan(DEFAULT_PLAN)
        plan = UserPlan(
            user_id=user_id,
            plan_type=default.plan_type,
            conversations_limit=default.conversations
        )
        await self.db.user_plans.insert_one(plan.to_dict())
        logger.info(f"[Usage] Created {plan.plan_type} plan for user: {user_id}")
        return plan

    async def _sync_conversations_used(self, plan: UserPlan, used: int):
        if used == plan.conversations_used:
            return
        await self.db.user_plans.update_one(
            {"user_id": plan.user_id},
            {"$set": {
                "conversations_used": used,
                "updated_at": utcnow().isoformat()
            }}
        )
        plan.conversations_used = used

    # ==================== LIMIT CHECKS ====================

    async def check_limit(self, user_id: str, now: Optional[datetime] = None) -> UsageLimitStatus:
        """
        Check whether a user may start another conversation this month.

        Usage resets on the first of each month at 00:00 local time.

        Args:
            user_id: User identifier
            now: Reference time, defaults to the current local time

        Returns:
            UsageLimitStatus
        """
        plan = await self.get_or_create_plan(user_id)
        used = await self.conversations.count_since(user_id, month_start(now))
        await self._sync_conversations_used(plan, used)

        status = evaluate_limit(used, plan.conversations_limit, plan.plan_type)

        if not status.can_start:
            await self.record_limit_event(plan, used)

        logger.info(f"[Usage] Limit check - User: {user_id}, Plan: {plan.plan_type}, "
                    f"Used: {used}/{plan.conversations_limit}, Can start: {status.can_start}")
        return status

    async def record_limit_event(self, plan: UserPlan, used: int) -> UsageLimitEvent:
        """
        Record that a user hit their monthly conversation quota.

        Args:
            plan: The user's plan
            used: Conversations used this month

        Returns:
            Created UsageLimitEvent
        """
        event = UsageLimitEvent(
            user_id=plan.user_id,
            plan_type=plan.plan_type,
            conversations_remaining=0,
            metadata={
                "limit_type": "conversations",
                "conversations_used": used,
                "conversations_limit": plan.conversations_limit
            }
        )
        await self.db.usage_events.insert_one(event.to_dict())
        logger.warning(f"[Usage] Limit hit - User: {plan.user_id}, Plan: {plan.plan_type}, "
                       f"Used: {used}/{plan.conversations_limit}")
        return event

    # ==================== AGGREGATES ====================

    async def get_user_usage(self, user_id: str, now: Optional[datetime] = None) -> UserUsageSummary:
        """
        Summarize a user's usage for the current month.

        Users without a plan record are reported against the default plan.

        Args:
            user_id: User identifier
            now: Reference time, defaults to the current local time

        Returns:
            UserUsageSummary
        """
        plan = await self.get_plan(user_id)
        conversations = await self.conversations.list_since(user_id, month_start(now))

        if plan:
            await self._sync_conversations_used(plan, len(conversations))
            plan_type, limit = plan.plan_type, plan.conversations_limit
        else:
            default = get_plan(DEFAULT_PLAN)
            plan_type, limit = default.plan_type, default.conversations

        return UserUsageSummary(
            user_id=user_id,
            plan_type=plan_type,
            conversations_used=len(conversations),
            conversations_limit=limit,
            total_duration=sum(c.duration_seconds or 0 for c in conversations),
            total_tokens=sum(c.estimated_tokens or 0 for c in conversations),
            total_cost=sum(c.cost_cents or 0 for c in conversations),
            recent_conversations=conversations[:RECENT_CONVERSATIONS]
        )

    async def get_usage_stats(self) -> UsageStats:
        """
        Aggregate usage over every stored conversation.

        Returns:
            UsageStats
        """
        conversations = await self.conversations.list_all()

        total = len(conversations)
        total_duration = sum(c.duration_seconds or 0 for c in conversations)
        total_tokens = sum(c.estimated_tokens or 0 for c in conversations)

        return UsageStats(
            total_conversations=total,
            total_users=len({c.user_id for c in conversations if c.user_id}),
            total_duration=total_duration,
            total_tokens=total_tokens,
            total_cost=sum(c.cost_cents or 0 for c in conversations),
            average_conversation_length=_rounded_average(total_duration, total),
            average_tokens_per_conversation=_rounded_average(total_tokens, total),
            conversations=conversations
        )
