"""
Exchange Store - append-only chat log on top of SQLAlchemy async.

All writes commit immediately. Any SQLAlchemy failure rolls the session back
and surfaces as PersistenceError; there is no safe local fallback for a broken
store, so callers let it propagate.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, delete, func, case, or_, literal_column
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from parley.core.errors import PersistenceError
from parley.models.exchange import Exchange, DEFAULT_CONVERSATION_ID, normalize_conversation_id
from parley.models.user_summary import UserSummary, MAX_SUMMARY_LENGTH


logger = logging.getLogger(__name__)

# Rendered inline so SELECT and GROUP BY produce identical SQL text.
_conversation_key = func.coalesce(
    Exchange.conversation_id,
    literal_column(f"'{DEFAULT_CONVERSATION_ID}'"),
)


@dataclass
class ConversationGroup:
    """Aggregated row for one (conversation, locale) group"""
    conversation_id: str
    locale: str
    message_count: int
    created_at: datetime
    last_activity: datetime


@dataclass
class UserStatistics:
    """Per-user counters shown next to the stored summary"""
    total_messages: int
    total_conversations: int
    arabic_messages: int
    english_messages: int
    last_activity: Optional[datetime]


class ExchangeStore:
    """
    Store for Exchange rows and the per-user summary snapshot.

    One instance wraps one request-scoped AsyncSession.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Exchange store failed to %s: %s", action, e)
            await self.db.rollback()
            raise PersistenceError(f"Failed to {action}") from e

    @staticmethod
    def _conversation_filter(conversation_id: str):
        """
        Filter for one conversation. The default conversation also owns legacy
        rows stored with a NULL conversation id.
        """
        if conversation_id == DEFAULT_CONVERSATION_ID:
            return or_(
                Exchange.conversation_id == DEFAULT_CONVERSATION_ID,
                Exchange.conversation_id.is_(None),
            )
        return Exchange.conversation_id == conversation_id

    async def append_exchange(
        self,
        user_id: int,
        conversation_id: Optional[str],
        model_name: str,
        request_text: str,
        response_text: str,
        locale: str
    ) -> Exchange:
        """
        Insert a new Exchange.

        Raises:
            ValueError: If request or response text is empty
            PersistenceError: If the insert fails
        """
        if not request_text or not request_text.strip():
            raise ValueError("request_text must not be empty")
        if not response_text or not response_text.strip():
            raise ValueError("response_text must not be empty")

        exchange = Exchange(
            user_id=user_id,
            conversation_id=normalize_conversation_id(conversation_id),
            model_name=model_name,
            request_text=request_text,
            response_text=response_text,
            locale=locale,
        )
        async with self._guard("append exchange"):
            self.db.add(exchange)
            await self.db.commit()
            await self.db.refresh(exchange)
        return exchange

    async def query_exchanges(
        self,
        user_id: int,
        conversation_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
        order: str = "asc"
    ) -> List[Exchange]:
        """
        Scan a user's exchanges, optionally restricted to one conversation.

        Args:
            order: 'asc' (oldest first) or 'desc' (newest first)
        """
        stmt = select(Exchange).where(Exchange.user_id == user_id)
        if conversation_id is not None:
            stmt = stmt.where(self._conversation_filter(normalize_conversation_id(conversation_id)))

        if order.lower() == "desc":
            stmt = stmt.order_by(Exchange.created_at.desc(), Exchange.id.desc())
        else:
            stmt = stmt.order_by(Exchange.created_at.asc(), Exchange.id.asc())

        stmt = stmt.limit(limit).offset(offset)

        async with self._guard("query exchanges"):
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def count_exchanges(self, user_id: int, conversation_id: Optional[str] = None) -> int:
        stmt = select(func.count(Exchange.id)).where(Exchange.user_id == user_id)
        if conversation_id is not None:
            stmt = stmt.where(self._conversation_filter(normalize_conversation_id(conversation_id)))

        async with self._guard("count exchanges"):
            result = await self.db.execute(stmt)
            return int(result.scalar_one() or 0)

    async def group_exchanges(
        self,
        user_id: int,
        limit: int = 20,
        offset: int = 0
    ) -> List[ConversationGroup]:
        """
        Group a user's exchanges by (conversation, locale), most recently
        active first. Ties on activity fall back to conversation id.
        """
        last_activity = func.max(Exchange.created_at)
        stmt = (
            select(
                _conversation_key.label("conversation_id"),
                Exchange.locale,
                func.count(Exchange.id).label("message_count"),
                func.min(Exchange.created_at).label("created_at"),
                last_activity.label("last_activity"),
            )
            .where(Exchange.user_id == user_id)
            .group_by(_conversation_key, Exchange.locale)
            .order_by(last_activity.desc(), _conversation_key.asc(), Exchange.locale.asc())
            .limit(limit)
            .offset(offset)
        )

        async with self._guard("group exchanges"):
            result = await self.db.execute(stmt)
            rows = result.all()

        return [
            ConversationGroup(
                conversation_id=row.conversation_id,
                locale=row.locale,
                message_count=int(row.message_count),
                created_at=row.created_at,
                last_activity=row.last_activity,
            )
            for row in rows
        ]

    async def count_conversations(self, user_id: int) -> int:
        """Distinct conversation keys for the user, regardless of locale"""
        stmt = (
            select(func.count(func.distinct(_conversation_key)))
            .where(Exchange.user_id == user_id)
        )
        async with self._guard("count conversations"):
            result = await self.db.execute(stmt)
            return int(result.scalar_one() or 0)

    async def first_exchange(
        self,
        user_id: int,
        conversation_id: str,
        locale: Optional[str] = None
    ) -> Optional[Exchange]:
        """Chronologically first exchange of a conversation (optionally of one locale)"""
        stmt = (
            select(Exchange)
            .where(Exchange.user_id == user_id)
            .where(self._conversation_filter(normalize_conversation_id(conversation_id)))
        )
        if locale is not None:
            stmt = stmt.where(Exchange.locale == locale)
        stmt = stmt.order_by(Exchange.created_at.asc(), Exchange.id.asc()).limit(1)

        async with self._guard("load first exchange"):
            result = await self.db.execute(stmt)
            return result.scalars().first()

    async def delete_exchanges(self, user_id: int, conversation_id: Optional[str]) -> int:
        """
        Delete every exchange of one conversation.

        Returns:
            Number of deleted rows
        """
        target = normalize_conversation_id(conversation_id)
        stmt = (
            delete(Exchange)
            .where(Exchange.user_id == user_id)
            .where(self._conversation_filter(target))
        )
        async with self._guard("delete exchanges"):
            result = await self.db.execute(stmt)
            await self.db.commit()

        deleted = int(result.rowcount or 0)
        logger.info("Deleted %d exchanges for user %s, conversation %s", deleted, user_id, target)
        return deleted

    async def upsert_user_summary(self, user_id: int, summary_text: str, locale: str) -> UserSummary:
        """Create or overwrite the user's summary snapshot"""
        text = (summary_text or "")[:MAX_SUMMARY_LENGTH]

        async with self._guard("upsert user summary"):
            result = await self.db.execute(
                select(UserSummary).where(UserSummary.user_id == user_id)
            )
            summary = result.scalar_one_or_none()

            if summary is None:
                summary = UserSummary(user_id=user_id, summary_text=text, locale=locale)
                self.db.add(summary)
            else:
                summary.summary_text = text
                summary.locale = locale

            await self.db.commit()
            await self.db.refresh(summary)
        return summary

    async def get_user_summary(self, user_id: int) -> Optional[UserSummary]:
        async with self._guard("load user summary"):
            result = await self.db.execute(
                select(UserSummary).where(UserSummary.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def statistics(self, user_id: int) -> UserStatistics:
        stmt = (
            select(
                func.count(Exchange.id).label("total_messages"),
                func.count(func.distinct(_conversation_key)).label("total_conversations"),
                func.count(case((Exchange.locale == "ar", 1))).label("arabic_messages"),
                func.count(case((Exchange.locale == "en", 1))).label("english_messages"),
                func.max(Exchange.created_at).label("last_activity"),
            )
            .where(Exchange.user_id == user_id)
        )
        async with self._guard("compute statistics"):
            result = await self.db.execute(stmt)
            row = result.one()

        return UserStatistics(
            total_messages=int(row.total_messages or 0),
            total_conversations=int(row.total_conversations or 0),
            arabic_messages=int(row.arabic_messages or 0),
            english_messages=int(row.english_messages or 0),
            last_activity=row.last_activity,
        )
