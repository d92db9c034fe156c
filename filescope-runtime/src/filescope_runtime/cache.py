"""
This module implements the `CacheStore`, the process-wide TTL cache of file
selections shared by every conversation.

Entries are kept in insertion order so that the most recent selections can be
offered to the similarity arbiter. An entry is served only while it is younger
than the TTL; stale entries are evicted lazily when they are looked up and in
bulk by a background sweep that runs on a fixed interval. A soft size cap
evicts the oldest entries first so memory stays bounded between sweeps.

The clock is injected so that expiry can be driven deterministically in tests.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from contextlib import suppress
from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Callable, List, Optional

from .files import FileMap
from .metrics import SelectionMetrics


LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class EntryMetrics:
    selection_latency_ms: float = 0.0
    tokens_used: int = 0


@dataclass(slots=True)
class CacheEntry:
    """A cached selection: the file subset chosen for one request."""

    key: str
    essence: str
    files: FileMap
    inserted_at: float
    metrics: EntryMetrics = field(default_factory=EntryMetrics)


@dataclass(frozen=True, slots=True)
class SimilarityCandidate:
    """Read-only projection of a recent entry offered to the similarity arbiter."""

    cache_key: str
    essence: str
    inserted_at: float


@dataclass(frozen=True, slots=True)
class SweepReport:
    removed: int
    tokens_used: int
    selection_latency_ms: float
    remaining: int


class CacheStore:
    """
    Bounded, TTL-expiring map from cache key to `CacheEntry`.

    Every map operation runs under one lock and is a single pass at most, so
    concurrent conversations can read and write different keys safely and the
    sweep never blocks lookups for longer than one pass.

    Attributes:
        ttl_seconds: Maximum age of a servable entry.
        max_entries: Soft cap on the number of entries.
        sweep_interval: Seconds between background sweeps.
        metrics: Process-wide hit/miss counters; the store itself never updates them.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 30 * 60,
        max_entries: Optional[int] = 100,
        sweep_interval: Optional[float] = None,
        clock: Clock = time.monotonic,
        metrics: SelectionMetrics | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries if max_entries and max_entries > 0 else None
        self.sweep_interval = float(sweep_interval or ttl_seconds)
        self.metrics = metrics or SelectionMetrics()
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    def is_expired(self, entry: CacheEntry, now: float | None = None) -> bool:
        current = self._clock() if now is None else now
        return current - entry.inserted_at > self.ttl_seconds

    def get(self, key: str) -> CacheEntry | None:
        """Returns the live entry for ``key``; an expired entry is evicted and reported as a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self.is_expired(entry):
                del self._entries[key]
                LOGGER.debug("Cache entry expired, removing: %s", key)
                return None
            return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        """Stores ``entry`` under ``key``, superseding any previous entry for the key."""
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = entry
            if self.max_entries is None:
                return
            while len(self._entries) > self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                LOGGER.debug("Cache at capacity (%d); evicted oldest entry %s", self.max_entries, evicted_key)

    def recent_candidates(
        self, limit: int = 5, *, where: Callable[[CacheEntry], bool] | None = None
    ) -> List[SimilarityCandidate]:
        """The ``limit`` most recently inserted entries accepted by ``where``, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            now = self._clock()
            entries = [
                entry
                for entry in self._entries.values()
                if not self.is_expired(entry, now) and (where is None or where(entry))
            ]
        entries.sort(key=lambda entry: entry.inserted_at, reverse=True)
        return [
            SimilarityCandidate(cache_key=entry.key, essence=entry.essence, inserted_at=entry.inserted_at)
            for entry in entries[:limit]
        ]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> SweepReport:
        """Removes every expired entry in one pass and reports what was dropped."""
        removed = 0
        tokens = 0
        latency = 0.0
        with self._lock:
            now = self._clock()
            for key in [k for k, entry in self._entries.items() if self.is_expired(entry, now)]:
                entry = self._entries.pop(key)
                tokens += entry.metrics.tokens_used
                latency += entry.metrics.selection_latency_ms
                removed += 1
            remaining = len(self._entries)

        if removed:
            LOGGER.debug("Cache sweep: %d entries removed. New size: %d", removed, remaining)
            LOGGER.debug(
                "Metrics of removed entries - total tokens: %d, total selection time: %.2fms",
                tokens,
                latency,
            )
        return SweepReport(
            removed=removed, tokens_used=tokens, selection_latency_ms=latency, remaining=remaining
        )

    async def run_sweeper(self, on_sweep: Callable[[SweepReport], object] | None = None) -> None:
        """Sweeps forever on the configured interval. Errors are logged, never raised."""
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                report = self.sweep()
                if on_sweep is not None:
                    result = on_sweep(report)
                    if asyncio.iscoroutine(result):
                        await result
            except Exception:  # pragma: no cover - bookkeeping must not kill the loop
                LOGGER.exception("Cache sweep failed")

    def start_sweeper(self, on_sweep: Callable[[SweepReport], object] | None = None) -> asyncio.Task[None]:
        """Starts the background sweep on the running event loop (idempotent)."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper
        self._sweeper = asyncio.get_running_loop().create_task(self.run_sweeper(on_sweep))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
