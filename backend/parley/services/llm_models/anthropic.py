from typing import Optional
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from .base import ChatModelStrategy
from parley.core.config import settings


class AnthropicStrategy(ChatModelStrategy):
    """
    Builds Anthropic Claude chat models.
    """

    provider_name = "anthropic"

    def handles(self, model_name: str) -> bool:
        model_lower = model_name.lower()
        return any(x in model_lower for x in ["claude", "anthropic"])

    def create_model(
        self,
        model_name: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None
    ) -> BaseChatModel:
        return ChatAnthropic(
            model=model_name,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            max_retries=0,
            api_key=api_key or settings.ANTHROPIC_API_KEY
        )
