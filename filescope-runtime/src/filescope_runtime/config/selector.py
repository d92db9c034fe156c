"""
This module defines the configuration schema for the ContextSelector, the
component that decides which project files accompany the next model call.

The `ContextSelectorConfig` class provides a centralized, strongly-typed
dataclass for all the tunable parameters that govern the selector: the cache
TTL and size cap, the similarity candidate window, the context buffer bound,
the models used for each auxiliary call, and the metrics backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import List, Optional

from .prompt_templates import PromptTemplates


DEFAULT_PROJECT_ROOT = "/home/project/"


@dataclass(slots=True)
class ContextSelectorConfig:
    """
    Provides a structured configuration for the ContextSelector component.

    The defaults mirror the behaviour the selector has always shipped with
    (30 minute TTL, 5 similarity candidates, 5 buffered files). They can be
    selectively overridden by environment variables through
    `from_environment`.

    Attributes:
        cache_ttl_seconds: Maximum age of a cache entry before it is stale.
        sweep_interval_seconds: Interval of the background sweep; defaults to the TTL.
        max_cache_entries: Soft cap on the number of cached selections.
        similarity_candidates: Number of recent entries offered to the arbiter.
        buffer_limit: Maximum number of files in the context buffer.
        ... and others, see the class definition for a full list.
    """

    # Cache
    cache_ttl_seconds: float = 30 * 60
    sweep_interval_seconds: Optional[float] = None
    max_cache_entries: int = 100

    # Arbiter / negotiator bounds
    similarity_candidates: int = 5
    buffer_limit: int = 5

    # Project layout
    project_root: str = DEFAULT_PROJECT_ROOT
    extra_ignore_patterns: List[str] = field(default_factory=list)

    # Models (LangChain ``provider:model`` identifiers)
    selector_model: str = "anthropic:claude-3-5-sonnet-latest"
    arbiter_model: Optional[str] = None
    summarizer_model: Optional[str] = None

    # Timeouts applied around the auxiliary calls
    arbiter_timeout_seconds: Optional[float] = 20.0
    selector_timeout_seconds: Optional[float] = None
    summarizer_timeout_seconds: Optional[float] = None

    # Metrics & observability
    metrics_enabled: bool = True
    metrics_emit_mode: str = "log"  # log | stream
    metrics_redis_url: str = "redis://redis:6379/0"
    metrics_stream_key: str = "filescope:selection:metrics"

    prompt_templates: PromptTemplates = field(default_factory=PromptTemplates)

    @property
    def effective_sweep_interval(self) -> float:
        if self.sweep_interval_seconds and self.sweep_interval_seconds > 0:
            return float(self.sweep_interval_seconds)
        return float(self.cache_ttl_seconds)

    def model_for(self, role: str) -> str:
        """Resolves the model identifier for ``selector``, ``arbiter`` or ``summarizer``."""
        if role == "arbiter":
            return self.arbiter_model or self.selector_model
        if role == "summarizer":
            return self.summarizer_model or self.selector_model
        return self.selector_model

    @classmethod
    def from_environment(cls) -> "ContextSelectorConfig":
        """
        Creates a `ContextSelectorConfig` instance, with values overridden by
        environment variables where available.

        Unparseable values fall back to the defaults instead of raising, so a
        typo in the deployment environment never prevents the selector from
        starting.

        Returns:
            A `ContextSelectorConfig` instance with environment-specific overrides.
        """

        def _int(name: str, default: int) -> int:
            """Safely parses an integer from an environment variable."""
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except (TypeError, ValueError):
                return default

        def _float(name: str, default: Optional[float]) -> Optional[float]:
            """Safely parses a float from an environment variable."""
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return float(raw)
            except (TypeError, ValueError):
                return default

        def _bool(name: str, default: bool) -> bool:
            """Safely parses a boolean from an environment variable."""
            raw = os.environ.get(name)
            if raw is None:
                return default
            return str(raw).strip().lower() in {"1", "true", "yes", "on"}

        def _list(name: str, default: List[str]) -> List[str]:
            raw = os.environ.get(name)
            if raw is None:
                return list(default)
            return [item.strip() for item in raw.split(",") if item.strip()]

        base = cls()

        # Numeric overrides
        base.cache_ttl_seconds = _float("FILESCOPE_CACHE_TTL_SECONDS", base.cache_ttl_seconds)
        base.sweep_interval_seconds = _float(
            "FILESCOPE_SWEEP_INTERVAL_SECONDS", base.sweep_interval_seconds
        )
        base.max_cache_entries = _int("FILESCOPE_MAX_CACHE_ENTRIES", base.max_cache_entries)
        base.similarity_candidates = _int(
            "FILESCOPE_SIMILARITY_CANDIDATES", base.similarity_candidates
        )
        base.buffer_limit = _int("FILESCOPE_BUFFER_LIMIT", base.buffer_limit)
        base.arbiter_timeout_seconds = _float(
            "FILESCOPE_ARBITER_TIMEOUT_SECONDS", base.arbiter_timeout_seconds
        )
        base.selector_timeout_seconds = _float(
            "FILESCOPE_SELECTOR_TIMEOUT_SECONDS", base.selector_timeout_seconds
        )
        base.summarizer_timeout_seconds = _float(
            "FILESCOPE_SUMMARIZER_TIMEOUT_SECONDS", base.summarizer_timeout_seconds
        )

        # String overrides
        base.project_root = os.environ.get("FILESCOPE_PROJECT_ROOT", base.project_root)
        base.selector_model = os.environ.get("FILESCOPE_SELECTOR_MODEL", base.selector_model)
        base.arbiter_model = os.environ.get("FILESCOPE_ARBITER_MODEL", base.arbiter_model)
        base.summarizer_model = os.environ.get("FILESCOPE_SUMMARIZER_MODEL", base.summarizer_model)
        base.metrics_emit_mode = os.environ.get("FILESCOPE_METRICS_EMIT_MODE", base.metrics_emit_mode)
        base.metrics_redis_url = os.environ.get("FILESCOPE_METRICS_REDIS_URL", base.metrics_redis_url)
        base.metrics_stream_key = os.environ.get(
            "FILESCOPE_METRICS_STREAM_KEY", base.metrics_stream_key
        )
        base.extra_ignore_patterns = _list(
            "FILESCOPE_EXTRA_IGNORE_PATTERNS", base.extra_ignore_patterns
        )

        # Booleans
        base.metrics_enabled = _bool("FILESCOPE_METRICS_ENABLED", base.metrics_enabled)

        return base
