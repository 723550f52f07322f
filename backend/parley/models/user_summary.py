"""
User summary snapshot written by the summary strategy.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from parley.db.database import Base
from parley.models.exchange import utcnow


MAX_SUMMARY_LENGTH = 5000


class UserSummary(Base):
    """
    One summary per user, overwritten on every summary request.

    Fields:
        id: Primary key
        user_id: Owner, unique
        summary_text: Latest generated summary (at most 5000 characters)
        locale: Locale the summary was written in
        updated_at: Last overwrite time
    """
    __tablename__ = "user_summaries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True)
    summary_text = Column(Text, nullable=True)
    locale = Column(String(8), nullable=False, default="en")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserSummary(user_id={self.user_id}, locale='{self.locale}')>"
