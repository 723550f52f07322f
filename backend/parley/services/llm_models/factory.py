import logging
from typing import List, Optional
from langchain_core.language_models.chat_models import BaseChatModel
from .base import ChatModelStrategy
from .openai import OpenAIStrategy
from .anthropic import AnthropicStrategy
from parley.core.config import settings


logger = logging.getLogger(__name__)


class LLMModelFactory:
    """
    Picks the first registered strategy that handles a model name.
    Unknown names are treated as OpenAI-compatible.
    """

    def __init__(self, strategies: Optional[List[ChatModelStrategy]] = None):
        self.strategies: List[ChatModelStrategy] = strategies or [
            OpenAIStrategy(),
            AnthropicStrategy()
        ]

    def strategy_for(self, model_name: str) -> ChatModelStrategy:
        for strategy in self.strategies:
            if strategy.handles(model_name):
                return strategy
        logger.warning("No provider registered for model %r, using OpenAI-compatible client", model_name)
        return OpenAIStrategy()

    def create_llm(
        self,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        api_key: Optional[str] = None
    ) -> BaseChatModel:
        """
        Build a chat model, filling unset options from settings.
        """
        model_name = model_name or settings.LLM_MODEL
        strategy = self.strategy_for(model_name)
        logger.info("Initializing %s chat model %s", strategy.provider_name, model_name)
        return strategy.create_model(
            model_name=model_name,
            temperature=settings.LLM_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or settings.LLM_MAX_TOKENS,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            api_key=api_key
        )
