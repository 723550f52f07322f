import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

# Must be set before parley.core.config is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("ALGORITHM", "HS256")

import pytest
import pytest_asyncio
from langchain_core.language_models import FakeListChatModel
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.errors import ProviderError
from parley.db.database import create_engine_for, create_session_factory, create_tables
from parley.models.exchange import Exchange
from parley.services.exchange_store import ExchangeStore
from parley.services.session_cache import SessionManager


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db():
    engine = create_engine_for("sqlite+aiosqlite://")
    await create_tables(engine)
    async with create_session_factory(engine)() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def store(db):
    return ExchangeStore(db)


@pytest.fixture
def sessions():
    return SessionManager(max_sessions=100, ttl_seconds=None, max_turns=50)


async def add_exchange(
    db: AsyncSession,
    user_id: int,
    conversation_id: Optional[str],
    request_text: str,
    minutes: int = 0,
    locale: str = "en",
    response_text: str = "ok",
    model_name: str = "intent-router/casual",
) -> Exchange:
    """Insert a row with a controlled timestamp (BASE_TIME + minutes)"""
    exchange = Exchange(
        user_id=user_id,
        conversation_id=conversation_id,
        model_name=model_name,
        request_text=request_text,
        response_text=response_text,
        locale=locale,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )
    db.add(exchange)
    await db.commit()
    await db.refresh(exchange)
    return exchange


class ScriptedProvider:
    """
    Stand-in for GenerationProvider. Returns queued labels/replies and records
    every prompt it was given.
    """

    def __init__(
        self,
        labels: Optional[List[str]] = None,
        replies: Optional[List[str]] = None,
        fail_classify: bool = False,
        fail_generate: bool = False,
    ):
        self.labels = list(labels or ["casual"])
        self.replies = list(replies or ["Hello!"])
        self.fail_classify = fail_classify
        self.fail_generate = fail_generate
        self.classify_prompts: List[str] = []
        self.generate_prompts: List[str] = []

    async def classify(self, prompt: str, locale: str) -> str:
        self.classify_prompts.append(prompt)
        if self.fail_classify:
            raise ProviderError("classifier down")
        return self.labels.pop(0) if len(self.labels) > 1 else self.labels[0]

    async def generate(self, prompt: str, locale: str) -> str:
        self.generate_prompts.append(prompt)
        if self.fail_generate:
            raise ProviderError("generator down")
        return self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]


class FakeModelFactory:
    """
    Stand-in for LLMModelFactory. Each model answers "<model> says: hi";
    names in `broken` cannot be built.
    """

    def __init__(self, broken: Optional[List[str]] = None):
        self.broken = set(broken or [])
        self.built: List[str] = []

    def create_llm(self, model_name: Optional[str] = None, **kwargs: Any) -> BaseChatModel:
        if model_name in self.broken:
            raise RuntimeError(f"no credentials for {model_name}")
        self.built.append(model_name)
        return FakeListChatModel(responses=[f"{model_name} says: hi"])


class FailingChatModel(BaseChatModel):
    """Chat model whose every call raises"""

    calls: int = 0

    @property
    def _llm_type(self) -> str:
        return "failing"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs: Any) -> ChatResult:
        self.calls += 1
        raise RuntimeError("upstream unavailable")


class SlowChatModel(BaseChatModel):
    """Chat model that never answers within a short timeout"""

    delay: float = 5.0

    @property
    def _llm_type(self) -> str:
        return "slow"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs: Any) -> ChatResult:
        raise NotImplementedError

    async def _agenerate(self, messages, stop=None, run_manager=None, **kwargs: Any) -> ChatResult:
        await asyncio.sleep(self.delay)
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content="late"))])
