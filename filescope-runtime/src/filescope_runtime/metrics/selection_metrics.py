"""
Process-wide counters for the context selector.

`SelectionMetrics` keeps monotonic hit/miss counters and the cumulative token
usage of every model call the selector made. Counters only ever increase and
are exposed read-only through properties and `snapshot`; the cache sweep never
touches them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
import threading
from typing import Any, Dict, Optional


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_metadata(cls, metadata: Optional[Dict[str, Any]]) -> "TokenUsage":
        """Builds usage from LangChain ``usage_metadata`` (``input_tokens`` / ``output_tokens``)."""
        if not metadata:
            return cls()
        prompt = int(metadata.get("input_tokens", metadata.get("prompt_tokens", 0)) or 0)
        completion = int(metadata.get("output_tokens", metadata.get("completion_tokens", 0)) or 0)
        total = int(metadata.get("total_tokens", 0) or 0) or prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    hits: int
    misses: int
    arbiter_matches: int
    selections: int
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["hit_rate"] = self.hit_rate
        return payload


class SelectionMetrics:
    """Thread-safe monotonic counters shared by every conversation of the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._arbiter_matches = 0
        self._selections = 0
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._total_tokens = 0

    def record_hit(self, *, via_arbiter: bool = False) -> None:
        with self._lock:
            self._hits += 1
            if via_arbiter:
                self._arbiter_matches += 1

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1

    def record_selection(self) -> None:
        with self._lock:
            self._selections += 1

    def record_usage(self, usage: TokenUsage) -> None:
        with self._lock:
            self._prompt_tokens += usage.prompt_tokens
            self._completion_tokens += usage.completion_tokens
            self._total_tokens += usage.total_tokens

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def hit_rate(self) -> float:
        return self.snapshot().hit_rate

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                hits=self._hits,
                misses=self._misses,
                arbiter_matches=self._arbiter_matches,
                selections=self._selections,
                prompt_tokens=self._prompt_tokens,
                completion_tokens=self._completion_tokens,
                total_tokens=self._total_tokens,
            )
