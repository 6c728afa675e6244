"""Query cache and post-write synchronization."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Sequence
from enum import Enum
from typing import Any

from admissions.core.config import settings
from admissions.core.exceptions import AdmissionsError, BackendError, ResponseShapeError

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class QueryGroup(str, Enum):
    """Logical groups invalidated together after a lifecycle write."""

    RESERVATIONS = "reservations"
    STUDENTS = "students"
    ADMISSIONS = "admissions"


class _Entry:
    __slots__ = ("value", "fetcher", "stale", "fetched_at")

    def __init__(self, value: Any, fetcher: Fetcher, fetched_at: float) -> None:
        self.value = value
        self.fetcher = fetcher
        self.stale = False
        self.fetched_at = fetched_at


class QueryCache:
    """Results of read queries, keyed by ``(group, key)``.

    An entry remembers the fetcher that produced it so a stale entry can be
    refetched without the original caller. Entries older than ``max_age``
    seconds count as stale even when nothing invalidated them.
    """

    def __init__(
        self,
        max_age: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_age = settings.RESERVATION_CACHE_TTL_SECONDS if max_age is None else max_age
        self.clock = clock
        self._entries: dict[tuple[QueryGroup, Hashable], _Entry] = {}

    async def fetch(self, group: QueryGroup, key: Hashable, fetcher: Fetcher) -> Any:
        entry = self._entries.get((group, key))
        if entry is not None and not self._is_stale(entry):
            return entry.value
        value = await fetcher()
        self._entries[(group, key)] = _Entry(value, fetcher, self.clock())
        return value

    def peek(self, group: QueryGroup, key: Hashable) -> Any:
        entry = self._entries.get((group, key))
        return None if entry is None else entry.value

    def is_stale(self, group: QueryGroup, key: Hashable) -> bool:
        entry = self._entries.get((group, key))
        return entry is None or self._is_stale(entry)

    def invalidate(self, group: QueryGroup) -> int:
        """Mark every entry of a group stale. Returns how many were marked."""
        count = 0
        for (entry_group, _), entry in self._entries.items():
            if entry_group == group:
                entry.stale = True
                count += 1
        return count

    async def refetch(self, group: QueryGroup) -> int:
        """Refetch stale entries of a group; failures leave the entry stale."""
        refreshed = 0
        for (entry_group, key), entry in list(self._entries.items()):
            if entry_group != group or not self._is_stale(entry):
                continue
            try:
                entry.value = await entry.fetcher()
            except AdmissionsError as exc:
                logger.warning("Refetch of %s %r failed: %s", group.value, key, exc.message)
                entry.stale = True
                continue
            entry.stale = False
            entry.fetched_at = self.clock()
            refreshed += 1
        return refreshed

    def clear(self) -> None:
        self._entries.clear()

    def _is_stale(self, entry: _Entry) -> bool:
        if entry.stale:
            return True
        return self.max_age is not None and self.clock() - entry.fetched_at >= self.max_age


class CacheSynchronizer:
    """Bring cached reads in line with a write the ERP just accepted.

    Invalidates all query groups, then re-reads the written record on a
    fixed schedule (offsets in seconds from the write) until ``confirm``
    reports the write as visible, and finally refetches the stale groups.
    """

    def __init__(
        self,
        cache: QueryCache,
        delays: Sequence[float] | None = None,
        groups: Sequence[QueryGroup] = tuple(QueryGroup),
    ) -> None:
        self.cache = cache
        self.delays = list(settings.REFETCH_DELAYS if delays is None else delays)
        self.groups = list(groups)

    async def after_write(self, confirm: Callable[[], Awaitable[bool]]) -> bool:
        for group in self.groups:
            self.cache.invalidate(group)

        confirmed = False
        elapsed = 0.0
        for offset in self.delays:
            await asyncio.sleep(max(offset - elapsed, 0))
            elapsed = max(offset, elapsed)
            try:
                confirmed = await confirm()
            except (BackendError, ResponseShapeError) as exc:
                logger.warning("Confirmation re-fetch failed: %s", exc.message)
                continue
            if confirmed:
                break

        if not confirmed:
            logger.warning("Write not visible after %d re-fetches", len(self.delays))

        for group in self.groups:
            await self.cache.refetch(group)
        return confirmed

    async def refresh(self) -> None:
        """Invalidate and refetch every group, for writes that need no confirmation."""
        for group in self.groups:
            self.cache.invalidate(group)
        for group in self.groups:
            await self.cache.refetch(group)
