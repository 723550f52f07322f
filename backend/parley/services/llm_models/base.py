from abc import ABC, abstractmethod
from typing import Optional
from langchain_core.language_models.chat_models import BaseChatModel


class ChatModelStrategy(ABC):
    """
    Abstract base class for chat model provider strategies.
    Each provider (OpenAI, Anthropic, ...) decides which model names it serves
    and how to build a LangChain chat model for them.
    """

    provider_name: str = ""

    @abstractmethod
    def handles(self, model_name: str) -> bool:
        """
        Determines if this strategy serves the given model name.
        """

    @abstractmethod
    def create_model(
        self,
        model_name: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None
    ) -> BaseChatModel:
        """
        Creates a LangChain chat model. Client-side retries are disabled;
        retry policy belongs to GenerationProvider.
        """
