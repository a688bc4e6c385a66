"""In-memory query cache with single-flight fetches and explicit invalidation."""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from .errors import BookApiError, TransientFetchError

log = structlog.get_logger()

DEFAULT_STALE_SECONDS = 300
DEFAULT_RETRY = 2

Loader = Callable[[], Awaitable[Any]]
Listener = Callable[["CacheEntry"], None]
FailureHook = Callable[[str, str], None]


class CacheStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry:
    """Read-only snapshot of one cache key."""

    key: str
    data: Any = None
    status: CacheStatus = CacheStatus.IDLE
    last_fetched_at: float | None = None
    error: str | None = None
    in_flight: asyncio.Task | None = None
    is_fetching: bool = False
    is_stale: bool = True


@dataclass
class _Slot:
    key: str
    loader: Loader | None = None
    data: Any = None
    status: CacheStatus = CacheStatus.IDLE
    last_fetched_at: float | None = None
    error: str | None = None
    task: asyncio.Task | None = None
    invalidated: bool = False
    listeners: list[Listener] = field(default_factory=list)
    failure_hooks: list[FailureHook] = field(default_factory=list)


class QueryCache:
    """Cache remote collections by key.

    read() never blocks: it returns the current snapshot and, when the key
    is stale, schedules a fetch on the running loop. Only one fetch per key
    runs at a time; later readers join it. Data is swapped in whole on
    success and kept as-is on failure.
    """

    def __init__(
        self,
        stale_seconds: float | None = None,
        retry: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if stale_seconds is None:
            stale_seconds = float(
                os.environ.get("QUERY_STALE_SECONDS", DEFAULT_STALE_SECONDS)
            )
        if retry is None:
            retry = int(os.environ.get("QUERY_RETRY", DEFAULT_RETRY))
        self.stale_seconds = stale_seconds
        self.retry = max(retry, 0)
        self._clock = clock
        self._slots: dict[str, _Slot] = {}

    def _slot(self, key: str) -> _Slot:
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _Slot(key=key)
        return slot

    def define(self, key: str, loader: Loader) -> None:
        """Register the coroutine function that fetches `key`."""
        self._slot(key).loader = loader

    def _is_stale(self, slot: _Slot) -> bool:
        if slot.invalidated or slot.last_fetched_at is None:
            return True
        return self._clock() - slot.last_fetched_at >= self.stale_seconds

    def _needs_fetch(self, slot: _Slot) -> bool:
        if slot.task is not None:
            return False
        # Failed keys wait for refetch() unless a write invalidated them.
        if slot.status is CacheStatus.ERROR:
            return slot.invalidated
        return self._is_stale(slot)

    def _snapshot(self, slot: _Slot) -> CacheEntry:
        return CacheEntry(
            key=slot.key,
            data=slot.data,
            status=slot.status,
            last_fetched_at=slot.last_fetched_at,
            error=slot.error,
            in_flight=slot.task,
            is_fetching=slot.task is not None and not slot.task.done(),
            is_stale=self._is_stale(slot),
        )

    def _notify(self, slot: _Slot) -> None:
        snapshot = self._snapshot(slot)
        for listener in list(slot.listeners):
            try:
                listener(snapshot)
            except Exception:
                log.exception("cache_listener_failed", key=slot.key)

    def _start(self, slot: _Slot) -> asyncio.Task:
        if slot.loader is None:
            raise LookupError(f"No loader defined for cache key {slot.key!r}")
        slot.invalidated = False
        if slot.data is None:
            slot.status = CacheStatus.LOADING
            slot.error = None
        slot.task = asyncio.get_running_loop().create_task(self._fetch(slot))
        log.debug("cache_fetch_started", key=slot.key, status=slot.status.value)
        self._notify(slot)
        return slot.task

    async def _fetch(self, slot: _Slot) -> None:
        attempts = self.retry + 1
        last_error: BookApiError | None = None
        failed = False
        try:
            for attempt in range(1, attempts + 1):
                try:
                    data = await slot.loader()
                except BookApiError as e:
                    last_error = e
                    log.debug(
                        "cache_fetch_attempt_failed",
                        key=slot.key,
                        attempt=attempt,
                        error=e.message,
                    )
                    continue
                slot.data = data
                slot.status = CacheStatus.SUCCESS
                slot.error = None
                slot.last_fetched_at = self._clock()
                log.info("cache_fetch_succeeded", key=slot.key, attempts=attempt)
                break
            else:
                err = TransientFetchError(last_error.message, attempts)
                failed = True
                slot.status = CacheStatus.ERROR
                slot.error = err.message
                log.warning(
                    "cache_fetch_failed", key=slot.key, attempts=attempts, error=err.message
                )
        finally:
            slot.task = None

        self._notify(slot)
        if failed:
            for hook in list(slot.failure_hooks):
                hook(slot.key, slot.error)
        # Invalidated while in flight: the response may predate the write.
        if slot.invalidated and slot.listeners:
            self._start(slot)

    def read(self, key: str) -> CacheEntry:
        """Return the current entry, scheduling a fetch if it is due."""
        slot = self._slot(key)
        if self._needs_fetch(slot):
            self._start(slot)
        return self._snapshot(slot)

    def peek(self, key: str) -> CacheEntry:
        """Return the current entry without scheduling anything."""
        return self._snapshot(self._slot(key))

    def refetch(self, key: str) -> asyncio.Task:
        """Force a fetch, joining the one in flight if there is one."""
        slot = self._slot(key)
        if slot.task is not None:
            return slot.task
        return self._start(slot)

    def invalidate(self, key: str) -> None:
        """Mark `key` stale; refetch now if anyone is watching it."""
        slot = self._slot(key)
        slot.invalidated = True
        log.info("cache_invalidated", key=key, watchers=len(slot.listeners))
        if slot.task is None and slot.listeners:
            self._start(slot)

    async def ensure(self, key: str) -> CacheEntry:
        """Read `key` and wait until no fetch is running for it."""
        slot = self._slot(key)
        self.read(key)
        while slot.task is not None:
            await asyncio.shield(slot.task)
        return self._snapshot(slot)

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Call `listener` with a fresh snapshot on every transition of `key`."""
        slot = self._slot(key)
        slot.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in slot.listeners:
                slot.listeners.remove(listener)

        return unsubscribe

    def on_failure(self, key: str, hook: FailureHook) -> None:
        """Call `hook(key, message)` each time a fetch of `key` ends in error.

        Unlike subscribe(), a failure hook does not count as a watcher, so it
        never turns invalidation into an eager refetch.
        """
        self._slot(key).failure_hooks.append(hook)
