"""
This module provides the `SelectionMetricsEmitter`, which broadcasts the
selector's observability events: ``cache_hit``, ``cache_miss``,
``arbiter_match``, ``selection`` and ``sweep``.

Events go either to the log (``metrics_emit_mode="log"``) or to a capped Redis
stream (``"stream"``). Stream publishing is best-effort: an unreachable
endpoint is logged and the event is dropped, never raised into a selection.
"""

from __future__ import annotations

import asyncio
from collections import Counter, deque
import json
import logging
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional

from redis.asyncio import Redis

from ..config import ContextSelectorConfig

LOGGER = logging.getLogger(__name__)

STREAM_MAXLEN = 10_000


class SelectionMetricsEmitter:
    """
    Emits selection events and keeps the latest ones in memory.

    Attributes:
        config: Supplies ``metrics_enabled``, ``metrics_emit_mode``,
                ``metrics_redis_url`` and ``metrics_stream_key``.
        recent: Ring of the last ``history`` event records, kept even when
                emission is disabled.
        counts: Number of events emitted per event name.
    """

    def __init__(self, config: ContextSelectorConfig, *, history: int = 200) -> None:
        self.config = config
        self.recent: Deque[Dict[str, Any]] = deque(maxlen=history)
        self.counts: Counter[str] = Counter()
        self._client: Optional[Redis] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    async def emit(self, event: str, payload: Dict[str, Any]) -> None:
        record = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }
        self.recent.append(record)
        self.counts[event] += 1

        if not self.config.metrics_enabled:
            return
        if self.config.metrics_emit_mode == "log":
            LOGGER.info("[selection-metrics] %s", json.dumps(record, default=str))
            return
        await self._publish(record)

    async def close(self) -> None:
        client, self._client = self._client, None
        self._client_loop = None
        if client is None:
            return
        try:
            await client.aclose()
        except Exception as exc:  # pragma: no cover - best effort cleanup
            LOGGER.debug("Error closing metrics Redis client: %s", exc)

    async def _publish(self, record: Dict[str, Any]) -> None:
        try:
            client = await self._stream_client()
        except Exception as exc:
            LOGGER.warning("Failed to initialize Redis client for metrics: %s", exc)
            return
        if client is None:
            return
        fields = {
            "event": record["event"],
            "timestamp": record["timestamp"],
            "payload": json.dumps(record["payload"], default=str),
        }
        try:
            await client.xadd(
                self.config.metrics_stream_key, fields, maxlen=STREAM_MAXLEN, approximate=True
            )
        except Exception as exc:  # pragma: no cover - network dependent
            LOGGER.warning("Dropping %s event, Redis stream write failed: %s", record["event"], exc)

    async def _stream_client(self) -> Optional[Redis]:
        """
        Returns a Redis client bound to the running loop, connecting on first
        use and again whenever the loop changes. None means unreachable.
        """
        loop = asyncio.get_running_loop()
        if self._client is not None and self._client_loop is loop:
            return self._client

        if self._connect_lock is None or self._lock_loop is not loop:
            self._connect_lock, self._lock_loop = asyncio.Lock(), loop
        async with self._connect_lock:
            if self._client is not None and self._client_loop is loop:
                return self._client
            await self.close()
            client: Optional[Redis] = None
            try:
                client = Redis.from_url(self.config.metrics_redis_url, decode_responses=True)
                await client.ping()
            except Exception as exc:
                LOGGER.warning(
                    "Metrics stream %s unreachable (%s); event dropped",
                    self.config.metrics_redis_url,
                    exc,
                )
                if client is not None:
                    await client.aclose()
                return None
            self._client, self._client_loop = client, loop
            return client
