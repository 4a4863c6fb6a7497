from app.models.user import User
from app.models.learning import Course, UserProgress, Certificate, Note, CreditLedgerEntry
from app.models.conversation import Conversation, ConversationMessage
from app.models.context import UserCollection, UserContextItem
from app.models.ai import AiLog, AiSystemPrompt
from app.models.insights import PersonalInsight

__all__ = [
    "User",
    "Course", "UserProgress", "Certificate", "Note", "CreditLedgerEntry",
    "Conversation", "ConversationMessage",
    "UserCollection", "UserContextItem",
    "AiLog", "AiSystemPrompt",
    "PersonalInsight",
]
