"""
Conversation Aggregator - turns the flat exchange log into a browsable list
of titled conversations.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional
from parley.core.errors import TitleSynthesisError
from parley.models.exchange import Exchange, normalize_conversation_id
from parley.services.exchange_store import ExchangeStore
from parley.services.prompts import default_title


logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 50
TRUNCATED_TITLE_LENGTH = 47
MIN_TITLE_LENGTH = 3

# Anything that is not a word character, whitespace or Arabic script.
_TITLE_NOISE = re.compile(r"[^\w\s\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]")


def synthesize_title(message: Optional[str], locale: str) -> str:
    """
    Build a display title from a conversation's first message.

    Keeps the first 3 (Arabic) or 4 (other locales) cleaned tokens; titles
    shorter than 3 characters become the locale default and titles longer than
    50 characters are cut to 47 plus an ellipsis.

    Raises:
        TitleSynthesisError: If message is not a string
    """
    if message is None:
        return default_title(locale)
    if not isinstance(message, str):
        raise TitleSynthesisError(f"Cannot build a title from {type(message).__name__}")

    cleaned = _TITLE_NOISE.sub("", message)
    tokens = [token for token in cleaned.split() if token]
    word_count = 3 if locale == "ar" else 4
    title = " ".join(tokens[:word_count])

    if len(title) < MIN_TITLE_LENGTH:
        return default_title(locale)
    if len(title) > MAX_TITLE_LENGTH:
        return title[:TRUNCATED_TITLE_LENGTH] + "..."
    return title


@dataclass
class ConversationSummary:
    conversation_id: str
    locale: str
    title: str
    message_count: int
    created_at: datetime
    last_activity: datetime


@dataclass
class ConversationPage:
    items: List[ConversationSummary]
    total: int
    limit: int
    offset: int


@dataclass
class HistoryPage:
    conversation_id: Optional[str]
    exchanges: List[Exchange]
    total: int
    limit: int
    offset: int
    order: str


class ConversationAggregator:
    """
    Read-side view over the ExchangeStore.
    """

    def __init__(self, store: ExchangeStore):
        self.store = store

    async def _title_for(self, user_id: Any, conversation_id: str, locale: str) -> str:
        try:
            first = await self.store.first_exchange(user_id, conversation_id, locale)
            if first is None:
                raise TitleSynthesisError(f"Conversation {conversation_id} has no exchanges")
            return synthesize_title(first.request_text, locale)
        except Exception as e:
            logger.warning("Title synthesis failed for conversation %s: %s", conversation_id, e)
            return default_title(locale)

    async def list_conversations(self, user_id: Any, limit: int = 20, offset: int = 0) -> ConversationPage:
        """
        Page through a user's conversations, most recently active first.

        `total` counts distinct conversations and ignores limit/offset.
        """
        groups = await self.store.group_exchanges(user_id, limit=limit, offset=offset)

        items = []
        for group in groups:
            items.append(
                ConversationSummary(
                    conversation_id=group.conversation_id,
                    locale=group.locale,
                    title=await self._title_for(user_id, group.conversation_id, group.locale),
                    message_count=group.message_count,
                    created_at=group.created_at,
                    last_activity=group.last_activity,
                )
            )

        total = await self.store.count_conversations(user_id)
        return ConversationPage(items=items, total=total, limit=limit, offset=offset)

    async def conversation_history(
        self,
        user_id: Any,
        conversation_id: Optional[str],
        limit: int = 50,
        offset: int = 0,
        order: str = "asc"
    ) -> HistoryPage:
        """Exchanges of a single conversation plus its total size"""
        conversation_id = normalize_conversation_id(conversation_id)
        order = "desc" if order.lower() == "desc" else "asc"
        exchanges = await self.store.query_exchanges(
            user_id, conversation_id, limit=limit, offset=offset, order=order
        )
        total = await self.store.count_exchanges(user_id, conversation_id)
        return HistoryPage(
            conversation_id=conversation_id,
            exchanges=exchanges,
            total=total,
            limit=limit,
            offset=offset,
            order=order,
        )

    async def all_history(self, user_id: Any, limit: int = 20, offset: int = 0) -> HistoryPage:
        """All of a user's exchanges, newest first"""
        exchanges = await self.store.query_exchanges(user_id, limit=limit, offset=offset, order="desc")
        total = await self.store.count_exchanges(user_id)
        return HistoryPage(
            conversation_id=None,
            exchanges=exchanges,
            total=total,
            limit=limit,
            offset=offset,
            order="desc",
        )
