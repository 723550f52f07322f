"""
Intent Router - classify a message, dispatch it to a response strategy,
persist the exchange.

Flow per message (never reordered, never parallelized):
    Classifying -> {casual, technical, summary, help} -> Done

    1. classify: render the locale classifier prompt and ask the provider for a
       label. Unknown labels and provider failures fall back to `casual`.
    2. context: pull bounded history for the chosen strategy (session cache, or
       the exchange store for `summary`).
    3. generate: render the strategy template and call the provider. A failure
       or timeout yields the strategy's locale apology instead.
    4. append: store the exchange, then remember the turn in the session.

The whole flow runs under the session's lock, so two messages for the same
(user, conversation) never interleave; other sessions are unaffected.
"""
import enum
import logging
import string
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from parley.core.errors import ProviderError
from parley.models.exchange import Exchange, normalize_conversation_id
from parley.services.exchange_store import ExchangeStore
from parley.services.generation import GenerationProvider
from parley.services.prompts import (
    classifier_prompt,
    fallback_response,
    resolve_locale,
    response_prompt,
)
from parley.services.session_cache import SessionContext, SessionManager, Turn, fit_to_budget


logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_BUDGETS = {
    "casual": 500,
    "technical": 800,
    "summary": 2000,
    "help": 0,
}

DEFAULT_SUMMARY_WINDOW = 20

_LABEL_STRIP = string.punctuation + string.whitespace + "“”‘’"


class Intent(str, enum.Enum):
    """Response strategies the router can dispatch to"""
    CASUAL = "casual"
    TECHNICAL = "technical"
    SUMMARY = "summary"
    HELP = "help"

    @property
    def model_name(self) -> str:
        """Canonical model identifier stored on exchanges"""
        return f"intent-router/{self.value}"

    @classmethod
    def parse(cls, label: Optional[str]) -> Optional["Intent"]:
        """
        Map a raw classifier label to an Intent.

        Case, surrounding whitespace, quotes and punctuation are ignored;
        anything else that is not an exact intent name gives None.
        """
        if not label:
            return None
        words = label.strip().lower().split()
        if not words:
            return None
        candidate = words[0].strip(_LABEL_STRIP)
        try:
            return cls(candidate)
        except ValueError:
            return None


@dataclass
class RouteResult:
    """
    Outcome of one routed message.

    Attributes:
        text: Text returned to the caller, never empty
        intent: Strategy that produced the text
        classified: False when the intent was defaulted to casual
        degraded: True when the text is the strategy's fallback apology
        exchange: Stored exchange row
    """
    text: str
    intent: Intent
    locale: str
    conversation_id: str
    classified: bool
    degraded: bool
    exchange: Exchange

    @property
    def model_name(self) -> str:
        return self.intent.model_name


StrategyHandler = Callable[[SessionContext, Any, str, str], Awaitable[Tuple[str, bool]]]


class IntentRouter:
    """
    Routes user messages to response strategies.

    Args:
        provider: Generation provider used for classification and replies
        sessions: Shared session context cache
        store: Request-scoped exchange store
        budgets: Per-intent context budgets in characters (merged over defaults)
        summary_window: Number of recent exchanges the summary strategy reads
    """

    def __init__(
        self,
        provider: GenerationProvider,
        sessions: SessionManager,
        store: ExchangeStore,
        budgets: Optional[Dict[str, int]] = None,
        summary_window: int = DEFAULT_SUMMARY_WINDOW
    ):
        self.provider = provider
        self.sessions = sessions
        self.store = store
        self.budgets = {**DEFAULT_CONTEXT_BUDGETS, **(budgets or {})}
        self.summary_window = summary_window

        self._handlers: Dict[Intent, StrategyHandler] = {
            Intent.CASUAL: self._respond_casual,
            Intent.TECHNICAL: self._respond_technical,
            Intent.SUMMARY: self._generate_summary,
            Intent.HELP: self._respond_help,
        }

    async def route(
        self,
        user_id: Any,
        message: str,
        locale: str = "en",
        conversation_id: Optional[str] = None
    ) -> str:
        """
        Route a message and return the reply text.

        Raises:
            PersistenceError: If the exchange store is unavailable
        """
        result = await self.dispatch(user_id, message, locale, conversation_id)
        return result.text

    async def dispatch(
        self,
        user_id: Any,
        message: str,
        locale: str = "en",
        conversation_id: Optional[str] = None
    ) -> RouteResult:
        """
        Route a message and return the reply together with routing diagnostics.

        Raises:
            PersistenceError: If the exchange store is unavailable
        """
        locale = resolve_locale(locale)
        conversation_id = normalize_conversation_id(conversation_id)
        message = message.strip()

        async with self.sessions.session(user_id, conversation_id) as session:
            intent, classified = await self.classify(message, locale)
            logger.info("Routing message for user %s to %s", user_id, intent.value)

            handler = self._handlers[intent]
            text, degraded = await handler(session, user_id, message, locale)

            exchange = await self.store.append_exchange(
                user_id=user_id,
                conversation_id=conversation_id,
                model_name=intent.model_name,
                request_text=message,
                response_text=text,
                locale=locale,
            )

            if not degraded:
                session.append(Turn(request=message, response=text))

        return RouteResult(
            text=text,
            intent=intent,
            locale=locale,
            conversation_id=conversation_id,
            classified=classified,
            degraded=degraded,
            exchange=exchange,
        )

    async def classify(self, message: str, locale: str) -> Tuple[Intent, bool]:
        """
        Classify a message.

        Returns:
            (intent, classified) where classified is False if the label was
            missing, unrecognized, or the provider failed
        """
        prompt = classifier_prompt(locale).format(message=message)
        try:
            label = await self.provider.classify(prompt, locale)
        except ProviderError as e:
            logger.warning("Classification failed, defaulting to casual: %s", e)
            return Intent.CASUAL, False

        intent = Intent.parse(label)
        if intent is None:
            logger.warning("Unrecognized intent label %r, defaulting to casual", label)
            return Intent.CASUAL, False
        return intent, True

    def _template(self, session: SessionContext, intent: Intent, locale: str):
        return self.sessions.binding(
            session.user_id,
            session.conversation_id,
            intent.value,
            locale,
            lambda: response_prompt(intent.value, locale),
        )

    async def _generate(self, intent: Intent, prompt: str, locale: str) -> Tuple[str, bool]:
        try:
            return await self.provider.generate(prompt, locale), False
        except ProviderError as e:
            logger.warning("Generation for %s failed, returning fallback: %s", intent.value, e)
            return fallback_response(intent.value, locale), True

    async def _respond_with_context(
        self,
        intent: Intent,
        session: SessionContext,
        message: str,
        locale: str
    ) -> Tuple[str, bool]:
        context = session.context(self.budgets[intent.value])
        prompt = self._template(session, intent, locale).format(context=context, message=message)
        return await self._generate(intent, prompt, locale)

    async def _respond_casual(self, session, user_id, message, locale):
        return await self._respond_with_context(Intent.CASUAL, session, message, locale)

    async def _respond_technical(self, session, user_id, message, locale):
        return await self._respond_with_context(Intent.TECHNICAL, session, message, locale)

    async def _respond_help(self, session, user_id, message, locale):
        prompt = self._template(session, Intent.HELP, locale).format(message=message)
        return await self._generate(Intent.HELP, prompt, locale)

    async def _generate_summary(self, session, user_id, message, locale):
        """
        Summarize the user's recent exchanges across all conversations and
        store the result as the user's summary snapshot.
        """
        recent = await self.store.query_exchanges(
            user_id,
            limit=self.summary_window,
            order="desc",
        )
        recent.reverse()
        history = fit_to_budget(
            [
                f"[{exchange.created_at.isoformat()}] User: {exchange.request_text}\n"
                f"AI ({exchange.model_name}): {exchange.response_text}"
                for exchange in recent
            ],
            self.budgets[Intent.SUMMARY.value],
        )

        prompt = self._template(session, Intent.SUMMARY, locale).format(history=history, message=message)
        text, degraded = await self._generate(Intent.SUMMARY, prompt, locale)

        if not degraded:
            await self.store.upsert_user_summary(user_id, text, locale)
            logger.info("Summary saved for user %s", user_id)
        return text, degraded
