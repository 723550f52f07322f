"""
Session Context Cache - short-term conversational memory per (user, conversation).

Entries live in process memory only. Each entry carries its own asyncio.Lock so
that one request at a time can read-modify-write a session while unrelated
sessions proceed in parallel. The cache is bounded by an LRU entry cap, an idle
TTL and a per-entry turn cap; entries that a request holds or waits on are
never dropped by the policy, and evicting one clears it in place.

Derived per-strategy state (prompt bindings) is stored under string keys of the
form "{user}-{conversation}-{strategy}-{locale}" and evicted by key prefix
together with its session.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"

SessionKey = Tuple[Any, str]


@dataclass(frozen=True)
class Turn:
    """One prior request/response pair"""
    request: str
    response: str

    def render(self) -> str:
        return f"User: {self.request}\nAI: {self.response}"


def fit_to_budget(chunks: List[str], budget: int, separator: str = CONTEXT_SEPARATOR) -> str:
    """
    Join the most recent chunks (most-recent-last) within a character budget.

    Whole chunks are dropped from the front until the chunks' combined length
    fits; separators are not charged against the budget. A chunk is never cut,
    so a single chunk larger than the budget yields an empty string.
    """
    if budget <= 0:
        return ""

    selected: List[str] = []
    used = 0
    for chunk in reversed(chunks):
        if used + len(chunk) > budget:
            break
        selected.append(chunk)
        used += len(chunk)

    selected.reverse()
    return separator.join(selected)


@dataclass
class SessionContext:
    """
    Mutable state of one session. Owned by SessionManager.

    `users` counts requests that hold or wait for `lock`; while it is above
    zero the entry object is never replaced, so every writer for the key
    queues on the same lock.
    """
    user_id: Any
    conversation_id: str
    max_turns: int
    turns: List[Turn] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_access: float = 0.0
    users: int = 0

    @property
    def in_use(self) -> bool:
        return self.users > 0 or self.lock.locked()

    def append(self, turn: Turn) -> None:
        self.turns.append(turn)
        if len(self.turns) > self.max_turns:
            del self.turns[: len(self.turns) - self.max_turns]

    def context(self, budget: int) -> str:
        return fit_to_budget([turn.render() for turn in self.turns], budget)


class SessionManager:
    """
    Process-wide cache of SessionContext entries.

    Args:
        max_sessions: LRU cap on live entries
        ttl_seconds: Idle time after which an entry expires (None disables)
        max_turns: Turns retained per entry
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_sessions: int = 1000,
        ttl_seconds: Optional[float] = 7200.0,
        max_turns: int = 50,
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_sessions = max_sessions
        self.ttl_seconds = ttl_seconds
        self.max_turns = max_turns
        self._clock = clock
        self._entries: "OrderedDict[SessionKey, SessionContext]" = OrderedDict()
        self._bindings: Dict[str, Any] = {}

    @staticmethod
    def key_prefix(user_id: Any, conversation_id: str) -> str:
        return f"{user_id}-{conversation_id}"

    @classmethod
    def binding_key(cls, user_id: Any, conversation_id: str, strategy: str, locale: str) -> str:
        return f"{cls.key_prefix(user_id, conversation_id)}-{strategy}-{locale}"

    def _entry(self, user_id: Any, conversation_id: str) -> SessionContext:
        """Fetch or create an entry and mark it most recently used"""
        self._expire()
        key = (user_id, conversation_id)
        entry = self._entries.get(key)

        if entry is None:
            entry = SessionContext(user_id=user_id, conversation_id=conversation_id, max_turns=self.max_turns)
            self._entries[key] = entry
            logger.debug("Created session context for user %s, conversation %s", user_id, conversation_id)
        else:
            self._entries.move_to_end(key)

        entry.last_access = self._clock()
        self._enforce_capacity(keep=key)
        return entry

    def _drop_bindings(self, key: SessionKey) -> None:
        prefix = self.key_prefix(*key) + "-"
        for binding_key in [k for k in self._bindings if k.startswith(prefix)]:
            del self._bindings[binding_key]

    def _drop(self, key: SessionKey) -> None:
        self._entries.pop(key, None)
        self._drop_bindings(key)

    def _expire(self) -> None:
        if self.ttl_seconds is None:
            return
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.last_access > self.ttl_seconds and not entry.in_use
        ]
        for key in expired:
            logger.debug("Session %s expired", key)
            self._drop(key)

    def _enforce_capacity(self, keep: Optional[SessionKey] = None) -> None:
        overflow = len(self._entries) - self.max_sessions
        if overflow <= 0:
            return
        # Oldest first. Entries in use and the one being fetched stay, even
        # if that leaves the cache over its cap for a while.
        for key in list(self._entries.keys()):
            if overflow <= 0:
                break
            if key == keep or self._entries[key].in_use:
                continue
            self._drop(key)
            overflow -= 1

    def get(self, user_id: Any, conversation_id: str) -> List[Turn]:
        """Ordered copy of the session's turns, oldest first"""
        return list(self._entry(user_id, conversation_id).turns)

    def append(self, user_id: Any, conversation_id: str, turn: Turn) -> None:
        self._entry(user_id, conversation_id).append(turn)

    def context(self, user_id: Any, conversation_id: str, budget: int) -> str:
        return self._entry(user_id, conversation_id).context(budget)

    def evict(self, user_id: Any, conversation_id: str) -> bool:
        """
        Forget a session's turns and every derived binding that shares its key
        prefix.

        An entry that a request is holding or waiting on is cleared in place
        rather than removed, so its lock keeps serializing writers.

        Returns:
            True if a session entry existed
        """
        key = (user_id, conversation_id)
        entry = self._entries.get(key)

        if entry is not None and entry.in_use:
            entry.turns.clear()
            self._drop_bindings(key)
        else:
            self._drop(key)

        logger.info("Cleared memory for user %s, conversation %s", user_id, conversation_id)
        return entry is not None

    def binding(
        self,
        user_id: Any,
        conversation_id: str,
        strategy: str,
        locale: str,
        factory: Callable[[], Any]
    ) -> Any:
        """Get or build derived per-strategy state for a session"""
        self._entry(user_id, conversation_id)
        key = self.binding_key(user_id, conversation_id, strategy, locale)
        if key not in self._bindings:
            self._bindings[key] = factory()
        return self._bindings[key]

    def has_binding(self, user_id: Any, conversation_id: str, strategy: str, locale: str) -> bool:
        return self.binding_key(user_id, conversation_id, strategy, locale) in self._bindings

    @asynccontextmanager
    async def session(self, user_id: Any, conversation_id: str):
        """
        Hold the session's lock for the duration of the block.

        Usage:
            async with sessions.session(user_id, conversation_id) as ctx:
                context = ctx.context(500)
                ...
                ctx.append(Turn(message, reply))
        """
        entry = self._entry(user_id, conversation_id)
        entry.users += 1
        try:
            async with entry.lock:
                entry.last_access = self._clock()
                yield entry
                entry.last_access = self._clock()
        finally:
            entry.users -= 1

    def stats(self) -> Dict[str, Any]:
        return {
            "total_sessions": len(self._entries),
            "total_bindings": len(self._bindings),
            "session_keys": [self.key_prefix(*key) for key in self._entries],
            "binding_keys": list(self._bindings.keys()),
        }
