from typing import Optional
from langchain_openai import ChatOpenAI
from langchain_core.language_models.chat_models import BaseChatModel
from .base import ChatModelStrategy
from parley.core.config import settings


class OpenAIStrategy(ChatModelStrategy):
    """
    Builds OpenAI chat models (gpt-*, o1/o3 families).
    """

    provider_name = "openai"

    def handles(self, model_name: str) -> bool:
        model_lower = model_name.lower()
        return model_lower.startswith(("gpt", "o1", "o3", "openai"))

    def create_model(
        self,
        model_name: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None
    ) -> BaseChatModel:
        return ChatOpenAI(
            model=model_name,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            max_retries=0,
            api_key=api_key or settings.OPENAI_API_KEY
        )
