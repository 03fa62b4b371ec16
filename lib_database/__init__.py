# lib_database module
from lib_database.database import Database
from lib_database.models import ConversationRecord, UserPlan
from lib_database.conversation_repository import ConversationRepository
from lib_database.usage_repository import UsageRepository

__all__ = ["Database", "ConversationRecord", "UserPlan", "ConversationRepository", "UsageRepository"]
