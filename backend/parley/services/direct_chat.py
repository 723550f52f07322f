"""
Direct Chat - talk to a caller-chosen model without intent routing.

Shares the session context cache and the exchange store with the intent
router, so direct and routed messages in one conversation see the same
short-term memory and history. Exchanges are tagged with the model name the
caller asked for.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from parley.core.errors import ProviderError
from parley.models.exchange import Exchange, normalize_conversation_id
from parley.services.exchange_store import ExchangeStore
from parley.services.generation import GenerationProvider
from parley.services.llm_models import LLMModelFactory
from parley.services.prompts import direct_fallback_response, direct_prompt, resolve_locale
from parley.services.session_cache import SessionManager, Turn


logger = logging.getLogger(__name__)

DIRECT_STRATEGY = "direct"


class ProviderRegistry:
    """
    Lazily builds and keeps one GenerationProvider per model name.

    Args:
        factory: Chat model factory (provider chosen by model name)
        timeout: Seconds allowed per model call
        max_attempts: Total attempts per model call
    """

    def __init__(
        self,
        factory: Optional[LLMModelFactory] = None,
        timeout: Optional[float] = 30.0,
        max_attempts: int = 1
    ):
        self.factory = factory or LLMModelFactory()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._providers: Dict[str, GenerationProvider] = {}

    def get(self, model_name: str) -> GenerationProvider:
        """
        Raises:
            ProviderError: If no chat model can be built for the name
        """
        provider = self._providers.get(model_name)
        if provider is None:
            try:
                llm = self.factory.create_llm(model_name)
            except Exception as e:
                raise ProviderError(f"Cannot initialize model {model_name}: {e}") from e
            provider = GenerationProvider(llm, timeout=self.timeout, max_attempts=self.max_attempts)
            self._providers[model_name] = provider
        return provider

    def __contains__(self, model_name: str) -> bool:
        return model_name in self._providers


@dataclass
class DirectReply:
    text: str
    model_name: str
    locale: str
    conversation_id: str
    degraded: bool
    exchange: Exchange


class DirectChat:
    """
    Args:
        registry: Providers keyed by model name
        sessions: Shared session context cache
        store: Request-scoped exchange store
        default_model: Model used when the caller names none
        budget: Context budget in characters
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        sessions: SessionManager,
        store: ExchangeStore,
        default_model: str,
        budget: int = 1000
    ):
        self.registry = registry
        self.sessions = sessions
        self.store = store
        self.default_model = default_model
        self.budget = budget

    async def respond(
        self,
        user_id: Any,
        message: str,
        model_name: Optional[str] = None,
        locale: str = "en",
        conversation_id: Optional[str] = None
    ) -> DirectReply:
        """
        Send a message straight to one model and store the exchange.

        A model that cannot be built, fails or times out yields the locale
        apology (degraded=True), which is stored but not remembered.

        Raises:
            PersistenceError: If the exchange store is unavailable
        """
        locale = resolve_locale(locale)
        conversation_id = normalize_conversation_id(conversation_id)
        model_name = (model_name or "").strip() or self.default_model
        message = message.strip()

        async with self.sessions.session(user_id, conversation_id) as session:
            template = self.sessions.binding(
                user_id,
                conversation_id,
                f"{DIRECT_STRATEGY}:{model_name}",
                locale,
                lambda: direct_prompt(locale),
            )
            prompt = template.format(context=session.context(self.budget), message=message)

            try:
                text = await self.registry.get(model_name).generate(prompt, locale)
                degraded = False
            except ProviderError as e:
                logger.warning("Direct chat with %s failed, returning fallback: %s", model_name, e)
                text = direct_fallback_response(locale)
                degraded = True

            exchange = await self.store.append_exchange(
                user_id=user_id,
                conversation_id=conversation_id,
                model_name=model_name,
                request_text=message,
                response_text=text,
                locale=locale,
            )

            if not degraded:
                session.append(Turn(request=message, response=text))

        logger.info("Direct chat for user %s answered by %s", user_id, model_name)
        return DirectReply(
            text=text,
            model_name=model_name,
            locale=locale,
            conversation_id=conversation_id,
            degraded=degraded,
            exchange=exchange,
        )
