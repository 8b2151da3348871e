"""
Subscription gate.

Decides whether a dashboard route may render for the current session:

    loading ──(status read)──> unlocked      status is active/trialing, or route allow-listed
            └────────────────> redirecting   otherwise; navigate(UPSELL_ROUTE) fires once

The status is read once per session and kept in `SubscriptionStatusCache`.
In-app navigation re-classifies the route against the cached status without
reading again. Writes the application makes to an organization's
subscription or to the user's memberships (webhooks, the post-checkout landing,
joining or creating an organization) invalidate the cache so the next mount
reads fresh state. Entries also expire, so a change made elsewhere shows up
after at most one TTL.

A failed read leaves the gate in `loading`: without a session we never guess
access.
"""

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, FrozenSet, Hashable, Optional, Tuple

from posted.core.exceptions import AuthenticationRequired
from posted.models.organization import has_active_subscription

logger = logging.getLogger(__name__)

# Routes that don't require an active subscription
ALLOWED_ROUTE_PREFIXES = ("/subscribe", "/billing", "/success")
UPSELL_ROUTE = "/subscribe"


class GateState(str, enum.Enum):
    LOADING = "loading"
    UNLOCKED = "unlocked"
    REDIRECTING = "redirecting"


def is_allowed_route(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in ALLOWED_ROUTE_PREFIXES)


@dataclass(frozen=True)
class CachedStatus:
    """
    One session's status read. `organization_id` is the organization the
    status came from; `organization_ids` lists every organization the user
    belonged to at read time, so a write to any of them drops the entry.
    """
    organization_id: Optional[uuid.UUID]
    status: str
    organization_ids: FrozenSet[uuid.UUID] = frozenset()

    def involves(self, organization_id: uuid.UUID) -> bool:
        return organization_id == self.organization_id or organization_id in self.organization_ids


class SubscriptionStatusCache:
    """
    Session-scoped status reads, keyed by session (the authenticated user id).

    Entries expire after `ttl` seconds, and once more than `max_entries`
    sessions are cached the oldest reads are dropped first.
    """

    def __init__(self, ttl: float = 300.0, max_entries: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        # Insertion order is read order: the first entry is always the oldest.
        self._entries: Dict[Hashable, Tuple[float, CachedStatus]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, session_key: Hashable) -> Optional[CachedStatus]:
        with self._lock:
            item = self._entries.get(session_key)
            if item is None:
                return None
            stored_at, entry = item
            if self._clock() - stored_at >= self.ttl:
                del self._entries[session_key]
                return None
            return entry

    def set(self, session_key: Hashable, entry: CachedStatus) -> None:
        with self._lock:
            now = self._clock()
            self._entries.pop(session_key, None)
            self._entries[session_key] = (now, entry)
            self._evict(now)

    def _evict(self, now: float) -> None:
        while self._entries:
            oldest_key = next(iter(self._entries))
            stored_at, _ = self._entries[oldest_key]
            if now - stored_at < self.ttl and len(self._entries) <= self.max_entries:
                break
            del self._entries[oldest_key]

    def invalidate_session(self, session_key: Hashable) -> None:
        with self._lock:
            self._entries.pop(session_key, None)

    def invalidate_organization(self, organization_id: uuid.UUID) -> int:
        """Drops every session whose cached status involves the organization."""
        with self._lock:
            stale = [key for key, (_, entry) in self._entries.items() if entry.involves(organization_id)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached gate session(s) for org %s", len(stale), organization_id)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


StatusLoader = Callable[[], Awaitable[CachedStatus]]


class SubscriptionGate:
    """
    One mounted guard. `load_status` returns the session's CachedStatus and may
    raise AuthenticationRequired when there is no session.
    """

    def __init__(
        self,
        load_status: StatusLoader,
        navigate: Callable[[str], None],
        cache: SubscriptionStatusCache,
        session_key: Optional[Hashable],
    ):
        self._load_status = load_status
        self._navigate = navigate
        self._cache = cache
        self._session_key = session_key
        self.state = GateState.LOADING
        self.status: Optional[str] = None
        self.path: Optional[str] = None

    @property
    def renders_content(self) -> bool:
        return self.state is GateState.UNLOCKED

    async def mount(self, path: str) -> GateState:
        self.path = path
        if self._session_key is None:
            return self.state

        cached = self._cache.get(self._session_key)
        if cached is None:
            try:
                cached = await self._load_status()
            except AuthenticationRequired:
                logger.info("Subscription gate has no session; staying in loading state")
                return self.state
            self._cache.set(self._session_key, cached)

        self.status = cached.status
        self._classify(path)
        return self.state

    def visit(self, path: str) -> GateState:
        """In-app navigation. Never re-reads the status."""
        self.path = path
        if self.status is None:
            return self.state
        self._classify(path)
        return self.state

    def _classify(self, path: str) -> None:
        if has_active_subscription(self.status) or is_allowed_route(path):
            self.state = GateState.UNLOCKED
            return
        if self.state is not GateState.REDIRECTING:
            self.state = GateState.REDIRECTING
            self._navigate(UPSELL_ROUTE)
