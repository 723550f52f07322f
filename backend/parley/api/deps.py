"""
API dependencies for authentication, storage and routing services.
These functions are used with FastAPI's Depends() for dependency injection.
"""
import logging
from functools import lru_cache
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from parley.core.config import settings
from parley.core.security import decode_access_token
from parley.db.database import get_db
from parley.schemas.chat import CurrentUser
from parley.services.conversation_aggregator import ConversationAggregator
from parley.services.direct_chat import DirectChat, ProviderRegistry
from parley.services.exchange_store import ExchangeStore
from parley.services.generation import GenerationProvider
from parley.services.intent_router import IntentRouter
from parley.services.llm_models import LLMModelFactory
from parley.services.prompts import resolve_locale
from parley.services.session_cache import SessionManager


logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for Swagger docs
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """
    Dependency to get the current user from a JWT issued by the identity service.

    Args:
        credentials: HTTP Bearer credentials from Authorization header

    Returns:
        CurrentUser: user id and language preference from the token claims

    Raises:
        HTTPException: If token is invalid
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    if payload.get("active") is False:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )

    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise credentials_exception

    language = resolve_locale(payload.get("lang") or settings.DEFAULT_LOCALE)
    return CurrentUser(id=user_id, language_preference=language)


@lru_cache
def get_session_manager() -> SessionManager:
    """Process-wide session context cache"""
    return SessionManager(
        max_sessions=settings.SESSION_MAX_ENTRIES,
        ttl_seconds=settings.SESSION_TTL_SECONDS,
        max_turns=settings.SESSION_MAX_TURNS,
    )


@lru_cache
def get_generation_provider() -> GenerationProvider:
    """Process-wide generation provider built from settings"""
    llm = LLMModelFactory().create_llm()
    return GenerationProvider(
        llm,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_attempts=settings.LLM_MAX_ATTEMPTS,
    )


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    """Process-wide providers for direct chat, one per requested model"""
    return ProviderRegistry(
        LLMModelFactory(),
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_attempts=settings.LLM_MAX_ATTEMPTS,
    )


def get_exchange_store(db: AsyncSession = Depends(get_db)) -> ExchangeStore:
    return ExchangeStore(db)


def get_intent_router(
    store: ExchangeStore = Depends(get_exchange_store),
    sessions: SessionManager = Depends(get_session_manager),
    provider: GenerationProvider = Depends(get_generation_provider)
) -> IntentRouter:
    return IntentRouter(
        provider=provider,
        sessions=sessions,
        store=store,
        budgets=settings.context_budgets,
        summary_window=settings.SUMMARY_WINDOW,
    )


def get_conversation_aggregator(
    store: ExchangeStore = Depends(get_exchange_store)
) -> ConversationAggregator:
    return ConversationAggregator(store)


def get_direct_chat(
    store: ExchangeStore = Depends(get_exchange_store),
    sessions: SessionManager = Depends(get_session_manager),
    registry: ProviderRegistry = Depends(get_provider_registry)
) -> DirectChat:
    return DirectChat(
        registry=registry,
        sessions=sessions,
        store=store,
        default_model=settings.LLM_MODEL,
        budget=settings.CONTEXT_BUDGET_DIRECT,
    )
