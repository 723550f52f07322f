"""
Generation Provider - classify/generate over a LangChain chat model.

Every failure mode of a model call (transport error, provider error, timeout,
empty output) is reported as ProviderError so callers have exactly one thing
to absorb.
"""
import asyncio
import logging
from typing import Any, List, Optional
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage, BaseMessage
from parley.core.errors import ProviderError
from parley.services.prompts import SYSTEM_MESSAGES, resolve_locale


logger = logging.getLogger(__name__)


class GenerationProvider:
    """
    Thin async adapter around a chat model.

    Args:
        llm: LangChain chat model
        timeout: Seconds allowed per call (None disables the bound)
        max_attempts: Total attempts per call; values above 1 wrap the model
            with Runnable.with_retry
    """

    def __init__(self, llm: BaseChatModel, timeout: Optional[float] = 30.0, max_attempts: int = 1):
        self.llm = llm
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self._runnable = llm
        if self.max_attempts > 1:
            self._runnable = llm.with_retry(
                stop_after_attempt=self.max_attempts,
                wait_exponential_jitter=True
            )

    @staticmethod
    def _extract_text_content(content: Any) -> str:
        """
        Extract text from response.content which might be a string or a list
        of content blocks.
        """
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts = []
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text":
                    parts.append(block.get("text", ""))
                elif isinstance(block, str):
                    parts.append(block)
            return "".join(parts)
        return str(content)

    async def _invoke(self, messages: List[BaseMessage], purpose: str) -> str:
        try:
            call = self._runnable.ainvoke(messages)
            if self.timeout is not None:
                response = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                response = await call
        except asyncio.TimeoutError as e:
            raise ProviderError(f"{purpose} timed out after {self.timeout}s") from e
        except Exception as e:
            raise ProviderError(f"{purpose} failed: {e}") from e

        text = self._extract_text_content(getattr(response, "content", response)).strip()
        if not text:
            raise ProviderError(f"{purpose} returned empty output")
        return text

    async def classify(self, prompt: str, locale: str) -> str:
        """
        Ask the model for an intent label.

        Returns:
            Raw label text as returned by the model

        Raises:
            ProviderError: On any model failure
        """
        logger.debug("Classifying message (locale=%s)", locale)
        return await self._invoke([HumanMessage(content=prompt)], "classification")

    async def generate(self, prompt: str, locale: str) -> str:
        """
        Generate a reply for a fully rendered prompt.

        Raises:
            ProviderError: On any model failure
        """
        messages = [
            SystemMessage(content=SYSTEM_MESSAGES[resolve_locale(locale)]),
            HumanMessage(content=prompt),
        ]
        return await self._invoke(messages, "generation")
