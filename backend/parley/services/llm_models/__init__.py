from .factory import LLMModelFactory
from .base import ChatModelStrategy

__all__ = ["LLMModelFactory", "ChatModelStrategy"]
