"""
Chat endpoints for sending messages and browsing conversations.
"""
import logging
import uuid
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Query
from parley.api.deps import (
    get_current_user,
    get_conversation_aggregator,
    get_direct_chat,
    get_exchange_store,
    get_intent_router,
    get_session_manager,
)
from parley.core.config import settings
from parley.core.errors import ValidationError
from parley.models.exchange import Exchange, normalize_conversation_id
from parley.schemas.chat import (
    AgentInfoResponse,
    ChatRequest,
    ChatResponse,
    ClearMemoryResponse,
    ConversationItem,
    ConversationListResponse,
    CurrentUser,
    DeleteConversationResponse,
    ExchangeResponse,
    HistoryResponse,
    NewConversationRequest,
    NewConversationResponse,
    Pagination,
    SimpleChatRequest,
    SimpleChatResponse,
    SummarySnapshot,
    SummaryStatistics,
    UserSummaryResponse,
)
from parley.services.conversation_aggregator import ConversationAggregator
from parley.services.direct_chat import DirectChat
from parley.services.exchange_store import ExchangeStore
from parley.services.intent_router import Intent, IntentRouter
from parley.services.prompts import (
    DEFAULT_TITLES,
    EMPTY_MESSAGE_ERRORS,
    SUPPORTED_LOCALES,
    resolve_locale,
)
from parley.services.session_cache import SessionManager


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


def _exchange_response(exchange: Exchange) -> ExchangeResponse:
    return ExchangeResponse(
        id=exchange.id,
        conversationId=normalize_conversation_id(exchange.conversation_id),
        message=exchange.request_text,
        response=exchange.response_text,
        model_name=exchange.model_name,
        language=exchange.locale,
        createdAt=exchange.created_at,
    )


@router.post("/message", response_model=ChatResponse)
async def send_message(
    request: ChatRequest,
    current_user: CurrentUser = Depends(get_current_user),
    intent_router: IntentRouter = Depends(get_intent_router)
):
    """
    Route a chat message and return the stored exchange.

    Args:
        request: Message, optional language and conversation id
        current_user: Authenticated user
        intent_router: Router bound to this request's store

    Returns:
        ChatResponse with the reply and routing diagnostics
    """
    locale = resolve_locale(request.language or current_user.language_preference)

    if not request.message or not request.message.strip():
        raise ValidationError(EMPTY_MESSAGE_ERRORS[locale])

    result = await intent_router.dispatch(
        current_user.id,
        request.message,
        locale,
        request.conversationId,
    )

    exchange = result.exchange
    return ChatResponse(
        id=exchange.id,
        conversationId=result.conversation_id,
        message=exchange.request_text,
        response=result.text,
        model_name=result.model_name,
        language=result.locale,
        createdAt=exchange.created_at,
        intent=result.intent.value,
        classified=result.classified,
        degraded=result.degraded,
    )


@router.post("/simple", response_model=SimpleChatResponse)
async def send_simple_message(
    request: SimpleChatRequest,
    current_user: CurrentUser = Depends(get_current_user),
    direct_chat: DirectChat = Depends(get_direct_chat)
):
    """
    Send a message straight to a chosen model, skipping intent routing.
    """
    locale = resolve_locale(request.language or current_user.language_preference)

    if not request.message or not request.message.strip():
        raise ValidationError(EMPTY_MESSAGE_ERRORS[locale])

    reply = await direct_chat.respond(
        current_user.id,
        request.message,
        model_name=request.model_name,
        locale=locale,
        conversation_id=request.conversationId,
    )

    return SimpleChatResponse(
        id=reply.exchange.id,
        conversationId=reply.conversation_id,
        message=reply.exchange.request_text,
        response=reply.text,
        model_name=reply.model_name,
        language=reply.locale,
        createdAt=reply.exchange.created_at,
        degraded=reply.degraded,
    )


@router.post("/new-conversation", response_model=NewConversationResponse)
async def create_new_conversation(
    request: NewConversationRequest,
    current_user: CurrentUser = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager)
):
    """
    Allocate a fresh conversation id. Nothing is stored until the first message.
    """
    locale = resolve_locale(request.language or current_user.language_preference)
    conversation_id = uuid.uuid4().hex

    sessions.evict(current_user.id, conversation_id)

    return NewConversationResponse(
        conversationId=conversation_id,
        title=request.title or DEFAULT_TITLES[locale],
        language=locale,
        createdAt=datetime.now(timezone.utc),
    )


@router.get("/conversations", response_model=ConversationListResponse)
async def get_conversations(
    limit: int = Query(settings.CONVERSATIONS_PAGE_LIMIT, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    aggregator: ConversationAggregator = Depends(get_conversation_aggregator)
):
    """
    List the user's conversations with synthesized titles.
    """
    page = await aggregator.list_conversations(current_user.id, limit=limit, offset=offset)

    return ConversationListResponse(
        data=[
            ConversationItem(
                conversationId=item.conversation_id,
                title=item.title,
                language=item.locale,
                messageCount=item.message_count,
                createdAt=item.created_at,
                lastActivity=item.last_activity,
            )
            for item in page.items
        ],
        total=page.total,
        pagination=Pagination(limit=page.limit, offset=page.offset),
    )


@router.get("/history/{conversation_id}", response_model=HistoryResponse)
async def get_conversation_history(
    conversation_id: str,
    limit: int = Query(settings.HISTORY_PAGE_LIMIT, ge=1, le=500),
    offset: int = Query(0, ge=0),
    order: str = Query("asc"),
    current_user: CurrentUser = Depends(get_current_user),
    aggregator: ConversationAggregator = Depends(get_conversation_aggregator)
):
    """
    Get the exchanges of one conversation.
    """
    page = await aggregator.conversation_history(
        current_user.id, conversation_id, limit=limit, offset=offset, order=order
    )
    return HistoryResponse(
        conversationId=page.conversation_id,
        messages=[_exchange_response(e) for e in page.exchanges],
        total=page.total,
        pagination=Pagination(limit=page.limit, offset=page.offset, order=page.order.upper()),
    )


@router.get("/history", response_model=HistoryResponse)
async def get_all_history(
    limit: int = Query(settings.CONVERSATIONS_PAGE_LIMIT, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    aggregator: ConversationAggregator = Depends(get_conversation_aggregator)
):
    """
    Get all of the user's exchanges, newest first.
    """
    page = await aggregator.all_history(current_user.id, limit=limit, offset=offset)
    return HistoryResponse(
        messages=[_exchange_response(e) for e in page.exchanges],
        total=page.total,
        pagination=Pagination(limit=page.limit, offset=page.offset, order="DESC"),
    )


@router.get("/summary", response_model=UserSummaryResponse)
async def get_user_summary(
    current_user: CurrentUser = Depends(get_current_user),
    store: ExchangeStore = Depends(get_exchange_store)
):
    """
    Get the stored summary snapshot and conversation statistics.
    """
    snapshot = await store.get_user_summary(current_user.id)
    stats = await store.statistics(current_user.id)

    return UserSummaryResponse(
        summary=SummarySnapshot(
            text=snapshot.summary_text,
            language=snapshot.locale,
            updatedAt=snapshot.updated_at,
        ) if snapshot else None,
        statistics=SummaryStatistics(
            totalMessages=stats.total_messages,
            totalConversations=stats.total_conversations,
            arabicMessages=stats.arabic_messages,
            englishMessages=stats.english_messages,
            lastActivity=stats.last_activity,
        ),
        hasSummary=snapshot is not None,
    )


@router.delete("/conversations/{conversation_id}", response_model=DeleteConversationResponse)
async def delete_conversation(
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: ExchangeStore = Depends(get_exchange_store),
    sessions: SessionManager = Depends(get_session_manager)
):
    """
    Delete a conversation's exchanges and drop its session memory.
    """
    conversation_id = normalize_conversation_id(conversation_id)
    deleted = await store.delete_exchanges(current_user.id, conversation_id)
    sessions.evict(current_user.id, conversation_id)

    if current_user.language_preference == "ar":
        message = f"تم حذف المحادثة بنجاح ({deleted} رسالة)"
    else:
        message = f"Conversation deleted successfully ({deleted} messages)"

    return DeleteConversationResponse(
        message=message,
        conversationId=conversation_id,
        deletedMessageCount=deleted,
    )


@router.delete("/memory/{conversation_id}", response_model=ClearMemoryResponse)
async def clear_memory(
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager)
):
    """
    Forget the short-term context of a conversation; stored history is kept.
    """
    conversation_id = normalize_conversation_id(conversation_id)
    cleared = sessions.evict(current_user.id, conversation_id)
    return ClearMemoryResponse(conversationId=conversation_id, cleared=cleared)


@router.get("/agent", response_model=AgentInfoResponse)
async def get_agent_info(
    current_user: CurrentUser = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager)
):
    """
    Describe the router and the session cache.
    """
    stats = sessions.stats()
    return AgentInfoResponse(
        supportedIntents=[intent.value for intent in Intent],
        supportedLanguages=list(SUPPORTED_LOCALES),
        contextBudgets=settings.context_budgets,
        memory={
            "totalSessions": stats["total_sessions"],
            "totalBindings": stats["total_bindings"],
        },
    )
