"""
Conversation Repository - CRUD operations for finalized conversations
"""
import logging
from datetime import datetime
from typing import List, Optional
from lib_database.database import Database
from lib_database.models import ConversationRecord

logger = logging.getLogger(__name__)

# Listing endpoints never need the full transcript
_SUMMARY_PROJECTION = {"transcript": 0}


class ConversationRepository:
    """
    Repository for managing stored conversations in MongoDB.
    """

    def __init__(self, database: Database):
        """
        Initialize repository with database connection.

        Args:
            database: Connected Database instance
        """
        self.db = database

    # ==================== WRITE OPERATIONS ====================

    async def create(self, conversation: ConversationRecord) -> str:
        """
        Store a finalized conversation.

        Args:
            conversation: Conversation with its usage metrics

        Returns:
            Identifier of the stored record
        """
        await self.db.conversations.insert_one(conversation.to_dict())
        logger.info(f"[Conversations] Created conversation: {conversation.id} for user: {conversation.user_id}")
        return conversation.id

    async def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation.

        Args:
            conversation_id: Conversation ID

        Returns:
            True if a record was deleted
        """
        result = await self.db.conversations.delete_one({"id": conversation_id})
        if result.deleted_count > 0:
            logger.info(f"[Conversations] Deleted conversation: {conversation_id}")
            return True
        return False

    # ==================== READ OPERATIONS ====================

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        """
        Get conversation by ID, including its transcript.

        Args:
            conversation_id: Conversation ID

        Returns:
            ConversationRecord or None
        """
        data = await self.db.conversations.find_one({"id": conversation_id})
        if data:
            return ConversationRecord.from_dict(data)
        return None

    async def list_conversations(self, user_id: str, limit: int = 100) -> List[ConversationRecord]:
        """
        List a user's conversations, newest first.

        Args:
            user_id: User identifier
            limit: Maximum number of conversations to return

        Returns:
            List of ConversationRecord objects without transcripts
        """
        cursor = self.db.conversations.find(
            {"user_id": user_id}, _SUMMARY_PROJECTION
        ).sort("created_at", -1).limit(limit)

        return [ConversationRecord.from_dict(data) async for data in cursor]

    async def list_since(self, user_id: str, since: datetime) -> List[ConversationRecord]:
        """
        List a user's conversations created at or after a point in time, newest first.

        Args:
            user_id: User identifier
            since: Naive UTC lower bound

        Returns:
            List of ConversationRecord objects without transcripts
        """
        cursor = self.db.conversations.find(
            {"user_id": user_id, "created_at": {"$gte": since.isoformat()}},
            _SUMMARY_PROJECTION
        ).sort("created_at", -1)

        return [ConversationRecord.from_dict(data) async for data in cursor]

    async def count_since(self, user_id: str, since: datetime) -> int:
        """
        Count a user's conversations created at or after a point in time.

        Args:
            user_id: User identifier
            since: Naive UTC lower bound

        Returns:
            Number of conversations
        """
        return await self.db.conversations.count_documents(
            {"user_id": user_id, "created_at": {"$gte": since.isoformat()}}
        )

    async def list_all(self) -> List[ConversationRecord]:
        """
        List every stored conversation, newest first.

        Returns:
            List of ConversationRecord objects without transcripts
        """
        cursor = self.db.conversations.find({}, _SUMMARY_PROJECTION).sort("created_at", -1)
        return [ConversationRecord.from_dict(data) async for data in cursor]
