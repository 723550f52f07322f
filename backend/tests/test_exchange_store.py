"""
Tests for the exchange store.
"""
import pytest
from sqlalchemy.exc import OperationalError

from conftest import add_exchange
from parley.core.errors import PersistenceError
from parley.models.user_summary import MAX_SUMMARY_LENGTH


@pytest.mark.asyncio
async def test_append_exchange_assigns_id_and_timestamp(store):
    exchange = await store.append_exchange(
        user_id=1,
        conversation_id="c1",
        model_name="intent-router/casual",
        request_text="Hi",
        response_text="Hello!",
        locale="en",
    )

    assert exchange.id is not None
    assert exchange.created_at is not None
    assert exchange.conversation_id == "c1"


@pytest.mark.asyncio
async def test_append_exchange_defaults_conversation(store):
    exchange = await store.append_exchange(1, None, "intent-router/casual", "Hi", "Hello", "en")
    assert exchange.conversation_id == "default"


@pytest.mark.asyncio
@pytest.mark.parametrize("request_text,response_text", [("", "ok"), ("   ", "ok"), ("hi", "")])
async def test_append_exchange_rejects_empty_text(store, request_text, response_text):
    with pytest.raises(ValueError):
        await store.append_exchange(1, "c1", "intent-router/casual", request_text, response_text, "en")


@pytest.mark.asyncio
async def test_query_exchanges_orders_by_creation(db, store):
    await add_exchange(db, 1, "c1", "second", minutes=2)
    await add_exchange(db, 1, "c1", "first", minutes=1)
    await add_exchange(db, 1, "c1", "third", minutes=3)
    await add_exchange(db, 1, "c2", "elsewhere", minutes=4)
    await add_exchange(db, 2, "c1", "someone else", minutes=5)

    asc = await store.query_exchanges(1, "c1")
    desc = await store.query_exchanges(1, "c1", order="desc")

    assert [e.request_text for e in asc] == ["first", "second", "third"]
    assert [e.request_text for e in desc] == ["third", "second", "first"]


@pytest.mark.asyncio
async def test_query_exchanges_paging(db, store):
    for i in range(5):
        await add_exchange(db, 1, "c1", f"m{i}", minutes=i)

    page = await store.query_exchanges(1, "c1", limit=2, offset=2)

    assert [e.request_text for e in page] == ["m2", "m3"]
    assert await store.count_exchanges(1, "c1") == 5


@pytest.mark.asyncio
async def test_default_conversation_includes_null_rows(db, store):
    await add_exchange(db, 1, None, "legacy", minutes=0)
    await add_exchange(db, 1, "default", "current", minutes=1)
    await add_exchange(db, 1, "c1", "other", minutes=2)

    rows = await store.query_exchanges(1, "default")

    assert [e.request_text for e in rows] == ["legacy", "current"]
    assert await store.count_exchanges(1, None) == 3
    assert await store.count_exchanges(1, "default") == 2


@pytest.mark.asyncio
async def test_delete_default_conversation_removes_null_rows(db, store):
    await add_exchange(db, 1, None, "legacy")
    await add_exchange(db, 1, "default", "current")
    await add_exchange(db, 1, "c1", "kept")
    await add_exchange(db, 2, "default", "other user")

    deleted = await store.delete_exchanges(1, "default")

    assert deleted == 2
    remaining = await store.query_exchanges(1)
    assert [e.request_text for e in remaining] == ["kept"]
    assert await store.count_exchanges(2) == 1


@pytest.mark.asyncio
async def test_delete_unknown_conversation_returns_zero(store):
    assert await store.delete_exchanges(1, "nope") == 0


@pytest.mark.asyncio
async def test_group_exchanges_by_conversation_and_locale(db, store):
    await add_exchange(db, 1, "c1", "hello", minutes=0)
    await add_exchange(db, 1, "c1", "again", minutes=1)
    await add_exchange(db, 1, "c2", "مرحبا", minutes=5, locale="ar")
    await add_exchange(db, 1, None, "legacy", minutes=2)

    groups = await store.group_exchanges(1)

    assert [(g.conversation_id, g.locale, g.message_count) for g in groups] == [
        ("c2", "ar", 1),
        ("default", "en", 1),
        ("c1", "en", 2),
    ]
    assert await store.count_conversations(1) == 3


@pytest.mark.asyncio
async def test_count_conversations_ignores_locale_split(db, store):
    await add_exchange(db, 1, "c1", "hello", locale="en")
    await add_exchange(db, 1, "c1", "مرحبا", minutes=1, locale="ar")

    assert len(await store.group_exchanges(1)) == 2
    assert await store.count_conversations(1) == 1


@pytest.mark.asyncio
async def test_first_exchange_respects_locale(db, store):
    await add_exchange(db, 1, "c1", "english first", minutes=0)
    await add_exchange(db, 1, "c1", "عربي", minutes=1, locale="ar")

    first = await store.first_exchange(1, "c1")
    first_ar = await store.first_exchange(1, "c1", "ar")

    assert first.request_text == "english first"
    assert first_ar.request_text == "عربي"
    assert await store.first_exchange(1, "missing") is None


@pytest.mark.asyncio
async def test_upsert_user_summary_overwrites_and_truncates(store):
    created = await store.upsert_user_summary(1, "first summary", "en")
    updated = await store.upsert_user_summary(1, "x" * (MAX_SUMMARY_LENGTH + 10), "ar")

    assert created.id == updated.id
    snapshot = await store.get_user_summary(1)
    assert len(snapshot.summary_text) == MAX_SUMMARY_LENGTH
    assert snapshot.locale == "ar"
    assert await store.get_user_summary(2) is None


@pytest.mark.asyncio
async def test_statistics(db, store):
    await add_exchange(db, 1, "c1", "a", minutes=0)
    await add_exchange(db, 1, "c1", "b", minutes=1)
    await add_exchange(db, 1, "c2", "ج", minutes=2, locale="ar")

    stats = await store.statistics(1)

    assert stats.total_messages == 3
    assert stats.total_conversations == 2
    assert stats.english_messages == 2
    assert stats.arabic_messages == 1
    assert stats.last_activity is not None


@pytest.mark.asyncio
async def test_statistics_for_unknown_user(store):
    stats = await store.statistics(42)

    assert stats.total_messages == 0
    assert stats.total_conversations == 0
    assert stats.last_activity is None


@pytest.mark.asyncio
async def test_database_failure_surfaces_as_persistence_error(db, store, monkeypatch):
    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is gone"))

    monkeypatch.setattr(db, "execute", broken_execute)

    with pytest.raises(PersistenceError):
        await store.query_exchanges(1)
