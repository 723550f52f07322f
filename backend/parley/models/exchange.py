"""
Exchange model: one persisted request/response pair.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from parley.db.database import Base


DEFAULT_CONVERSATION_ID = "default"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_conversation_id(conversation_id: str | None) -> str:
    """Map empty/absent conversation ids to the shared default conversation"""
    if conversation_id is None or not str(conversation_id).strip():
        return DEFAULT_CONVERSATION_ID
    return str(conversation_id).strip()


class Exchange(Base):
    """
    Append-only chat log. Rows are never updated; they are removed only in bulk
    per (user_id, conversation_id).

    Fields:
        id: Primary key, monotonic
        user_id: Owner (issued by the identity service, not a local FK)
        conversation_id: Conversation key; legacy rows may be NULL ("default")
        model_name: Identifier of the strategy that produced the response
        request_text: The user message
        response_text: The returned text (generated or fallback)
        locale: 'en' or 'ar'
        created_at: Server-assigned creation timestamp
    """
    __tablename__ = "chat_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    conversation_id = Column(String(255), nullable=True, default=DEFAULT_CONVERSATION_ID)
    model_name = Column(String, nullable=False)
    request_text = Column(Text, nullable=False)
    response_text = Column(Text, nullable=False)
    locale = Column(String(8), nullable=False, default="en")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_chat_history_user_conversation", "user_id", "conversation_id"),
    )

    def __repr__(self):
        preview = self.request_text[:50] + "..." if len(self.request_text) > 50 else self.request_text
        return f"<Exchange(id={self.id}, conversation='{self.conversation_id}', request='{preview}')>"
