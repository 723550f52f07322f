"""
Tests for the session context cache.
"""
import asyncio

import pytest

from parley.services.session_cache import SessionManager, Turn, fit_to_budget


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_budget_keeps_only_whole_recent_turns():
    chunks = ["a" * 600, "b" * 100, "c" * 50]

    context = fit_to_budget(chunks, 500)

    assert context == "b" * 100 + "\n\n" + "c" * 50
    assert "a" not in context


def test_budget_zero_and_oversized_latest_turn_give_empty_context():
    assert fit_to_budget(["hello"], 0) == ""
    assert fit_to_budget(["x" * 501], 500) == ""


def test_budget_charges_turn_text_not_separators():
    chunks = ["a" * 100, "b" * 50]

    context = fit_to_budget(chunks, 150)

    assert context == "a" * 100 + "\n\n" + "b" * 50
    assert fit_to_budget(chunks, 149) == "b" * 50


def test_get_creates_entry_and_append_preserves_order(sessions):
    assert sessions.get(1, "c1") == []

    sessions.append(1, "c1", Turn("hi", "hello"))
    sessions.append(1, "c1", Turn("how are you", "fine"))

    turns = sessions.get(1, "c1")
    assert [t.request for t in turns] == ["hi", "how are you"]
    assert sessions.get(1, "c2") == []


def test_context_renders_turns_most_recent_last(sessions):
    sessions.append(1, "c1", Turn("first", "one"))
    sessions.append(1, "c1", Turn("second", "two"))

    context = sessions.context(1, "c1", 1000)

    assert context == "User: first\nAI: one\n\nUser: second\nAI: two"


def test_evict_removes_session_and_prefixed_bindings(sessions):
    sessions.append(7, "abc", Turn("q", "a"))
    sessions.binding(7, "abc", "casual", "en", lambda: object())
    sessions.binding(7, "abc", "technical", "ar", lambda: object())
    sessions.binding(7, "other", "casual", "en", lambda: object())

    assert sessions.evict(7, "abc") is True

    assert sessions.get(7, "abc") == []
    assert not sessions.has_binding(7, "abc", "casual", "en")
    assert not sessions.has_binding(7, "abc", "technical", "ar")
    assert sessions.has_binding(7, "other", "casual", "en")


def test_evict_unknown_session_is_harmless(sessions):
    assert sessions.evict(99, "missing") is False


def test_binding_is_built_once_per_key(sessions):
    built = []

    def factory():
        built.append(1)
        return "template"

    assert sessions.binding(1, "c", "casual", "en", factory) == "template"
    assert sessions.binding(1, "c", "casual", "en", factory) == "template"
    assert len(built) == 1


def test_lru_cap_drops_least_recently_used():
    manager = SessionManager(max_sessions=2, ttl_seconds=None)
    manager.append(1, "a", Turn("a", "a"))
    manager.append(1, "b", Turn("b", "b"))
    manager.get(1, "a")  # touch a, b is now oldest
    manager.append(1, "c", Turn("c", "c"))

    keys = manager.stats()["session_keys"]
    assert "1-b" not in keys
    assert set(keys) == {"1-a", "1-c"}


def test_ttl_expires_idle_sessions_and_their_bindings():
    clock = FakeClock()
    manager = SessionManager(ttl_seconds=60, clock=clock)
    manager.append(1, "a", Turn("q", "a"))
    manager.binding(1, "a", "casual", "en", lambda: "t")

    clock.now = 61
    assert manager.get(1, "a") == []
    assert not manager.has_binding(1, "a", "casual", "en")


def test_max_turns_trims_oldest():
    manager = SessionManager(max_turns=2)
    for i in range(4):
        manager.append(1, "a", Turn(f"q{i}", f"a{i}"))

    assert [t.request for t in manager.get(1, "a")] == ["q2", "q3"]


@pytest.mark.asyncio
async def test_session_lock_serializes_same_key_only(sessions):
    events = []

    async def worker(conversation_id, name, delay):
        async with sessions.session(1, conversation_id) as ctx:
            events.append(f"{name}-start")
            await asyncio.sleep(delay)
            ctx.append(Turn(name, name))
            events.append(f"{name}-end")

    await asyncio.gather(
        worker("same", "first", 0.05),
        worker("same", "second", 0),
        worker("other", "third", 0),
    )

    # Same session never interleaves.
    assert events.index("first-end") < events.index("second-start")
    # Different session ran while "first" held its lock.
    assert events.index("third-end") < events.index("first-end")
    assert [t.request for t in sessions.get(1, "same")] == ["first", "second"]


@pytest.mark.asyncio
async def test_held_session_survives_capacity_pressure():
    manager = SessionManager(max_sessions=1, ttl_seconds=None)

    async with manager.session(1, "busy") as ctx:
        manager.append(1, "idle", Turn("x", "y"))
        ctx.append(Turn("q", "a"))
        assert "1-busy" in manager.stats()["session_keys"]

    assert [t.request for t in manager.get(1, "busy")] == ["q"]


@pytest.mark.asyncio
async def test_evict_while_session_held_keeps_single_writer(sessions):
    sessions.append(1, "c", Turn("before", "before"))
    sessions.binding(1, "c", "casual", "en", lambda: "t")
    a_inside = asyncio.Event()
    release_a = asyncio.Event()
    active = []
    overlaps = []

    async def writer(name, wait_for=None):
        async with sessions.session(1, "c") as ctx:
            overlaps.append(list(active))
            active.append(name)
            if wait_for is not None:
                a_inside.set()
                await wait_for.wait()
            ctx.append(Turn(name, name))
            active.remove(name)

    task_a = asyncio.create_task(writer("a", release_a))
    await a_inside.wait()

    assert sessions.evict(1, "c") is True
    assert not sessions.has_binding(1, "c", "casual", "en")

    task_b = asyncio.create_task(writer("b"))
    await asyncio.sleep(0)
    release_a.set()
    await asyncio.gather(task_a, task_b)

    assert overlaps == [[], []]
    assert [t.request for t in sessions.get(1, "c")] == ["a", "b"]


@pytest.mark.asyncio
async def test_queued_session_survives_lru_pressure():
    manager = SessionManager(max_sessions=1, ttl_seconds=None)
    a_inside = asyncio.Event()
    release_a = asyncio.Event()

    async def writer_a():
        async with manager.session(1, "x") as ctx:
            a_inside.set()
            await release_a.wait()
            ctx.append(Turn("a", "a"))
        # B is woken but has not run yet.
        manager.append(1, "y", Turn("y", "y"))

    async def writer_b():
        async with manager.session(1, "x") as ctx:
            ctx.append(Turn("b", "b"))

    task_a = asyncio.create_task(writer_a())
    await a_inside.wait()
    task_b = asyncio.create_task(writer_b())
    await asyncio.sleep(0)
    release_a.set()
    await asyncio.gather(task_a, task_b)

    assert [t.request for t in manager.get(1, "x")] == ["a", "b"]


@pytest.mark.asyncio
async def test_queued_session_survives_ttl_expiry():
    clock = FakeClock()
    manager = SessionManager(ttl_seconds=60, clock=clock)
    a_inside = asyncio.Event()
    release_a = asyncio.Event()

    async def writer_a():
        async with manager.session(1, "x") as ctx:
            a_inside.set()
            await release_a.wait()
            ctx.append(Turn("a", "a"))
        clock.now = 1000
        manager.get(1, "other")

    async def writer_b():
        async with manager.session(1, "x") as ctx:
            ctx.append(Turn("b", "b"))

    task_a = asyncio.create_task(writer_a())
    await a_inside.wait()
    task_b = asyncio.create_task(writer_b())
    await asyncio.sleep(0)
    release_a.set()
    await asyncio.gather(task_a, task_b)

    assert [t.request for t in manager.get(1, "x")] == ["a", "b"]
