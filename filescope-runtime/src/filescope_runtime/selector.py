"""
This module implements the `ContextSelector`, the entry point of the context
selection cache.

On every assistant turn the host hands the selector the conversation and the
current project snapshot, and gets back the subset of files to place in the
next model call's context. The selector avoids re-deriving that subset when an
equivalent decision was made recently:

1. A cache key is derived from the latest message and the snapshot's paths.
2. An exact, TTL-checked lookup is tried in the shared `CacheStore`.
3. On a miss with a non-empty store, the `SimilarityArbiter` is asked whether
   the request matches one of the most recent cached requests made against
   the same file set, so a reused selection only names files that still exist.
4. Otherwise the `ContextNegotiator` runs a full selection against the
   conversation summary (generated on demand), and the result is cached.

Cache bookkeeping never fails a request and the arbiter never raises; only
negotiator errors reach the caller. The cache is written only after a
selection completes, so cancelled or failed requests leave no entry behind.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .arbiter import SimilarityArbiter
from .cache import CacheEntry, CacheStore, EntryMetrics, SweepReport
from .completion import CompletionClient, CompletionResult, LangChainCompletionClient
from .config import ContextSelectorConfig
from .errors import NoUserMessage
from .files import FileMap, coerce_file_map
from .ignore import IGNORE_PATTERNS, IgnoreFilter
from .keys import derive_key, files_from_key, message_essence
from .messages import (
    ChatMessage,
    coerce_messages,
    extract_current_context,
    last_user_message,
    preprocess_messages,
)
from .metrics import SelectionMetrics, SelectionMetricsEmitter
from .negotiator import ContextNegotiator
from .summarizer import FALLBACK_SUMMARY, ConversationSummarizer


LOGGER = logging.getLogger(__name__)

OnFinish = Callable[[CompletionResult], Any]


class ContextSelector:
    """
    Selects the files relevant to the next assistant turn, with caching.

    One selector (and its `CacheStore`) is meant to be created by the
    process's request-handling root and shared by every conversation.

    Attributes:
        config: The selector configuration.
        store: The shared TTL cache of previous selections.
        metrics: Process-wide hit/miss and token counters.
    """

    def __init__(
        self,
        config: ContextSelectorConfig | None = None,
        *,
        client: CompletionClient | None = None,
        store: CacheStore | None = None,
        summarizer: ConversationSummarizer | None = None,
        emitter: SelectionMetricsEmitter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ContextSelectorConfig.from_environment()
        self.client = client or LangChainCompletionClient(self.config)
        prompts = self.config.prompt_templates
        self.store = store or CacheStore(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.max_cache_entries,
            sweep_interval=self.config.effective_sweep_interval,
            clock=clock,
        )
        self.metrics: SelectionMetrics = self.store.metrics
        self.ignore_filter = IgnoreFilter(
            (*IGNORE_PATTERNS, *self.config.extra_ignore_patterns),
            project_root=self.config.project_root,
        )
        self.summarizer = summarizer or ConversationSummarizer(self.client, prompts)
        self.arbiter = SimilarityArbiter(
            self.client,
            prompts=prompts,
            max_candidates=self.config.similarity_candidates,
            metrics=self.metrics,
            timeout=self.config.arbiter_timeout_seconds,
        )
        self.negotiator = ContextNegotiator(
            self.client,
            prompts=prompts,
            buffer_limit=self.config.buffer_limit,
            ignore_filter=self.ignore_filter,
            timeout=self.config.selector_timeout_seconds,
        )
        self.emitter = emitter or SelectionMetricsEmitter(self.config)

    async def select_context(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        files: Mapping[str, Any],
        summary: Optional[str] = None,
        *,
        on_finish: OnFinish | None = None,
    ) -> FileMap:
        """
        Returns the file map subset to include in the next model call.

        Args:
            messages: The ordered conversation.
            files: The current project snapshot.
            summary: A precomputed conversation summary, if the host has one.
            on_finish: Called with the negotiator's completion after a full selection.

        Raises:
            NoUserMessage: The conversation has no user message.
            ProviderUnavailable: The selection call failed.
            MalformedSelectionResponse: The selection response broke the protocol.
            UnknownFileReference: The selection named a file outside the snapshot.
        """
        started = time.perf_counter()
        conversation = coerce_messages(messages)
        file_map = coerce_file_map(files)
        if not conversation:
            raise NoUserMessage()

        snapshot = self.metrics.snapshot()
        LOGGER.debug(
            "Cache metrics - hits: %d, misses: %d, hit rate: %.2f%%, size: %d",
            snapshot.hits,
            snapshot.misses,
            snapshot.hit_rate * 100,
            self.store.size,
        )

        last_message = conversation[-1]
        key, essence = self._derive_key(last_message, file_map)

        cached = await self._lookup(key, essence)
        if cached is not None:
            LOGGER.debug("Valid cache entry, returning cached files: %s", ", ".join(cached.files))
            LOGGER.debug(
                "Cached entry metrics - tokens used: %d, time saved: %.2fms",
                cached.metrics.tokens_used,
                cached.metrics.selection_latency_ms,
            )
            return dict(cached.files)

        self.metrics.record_miss()
        LOGGER.debug("Cache miss - running context selection")
        await self._emit("cache_miss", {"key": key})

        processed = preprocess_messages(conversation)
        question_message = last_user_message(processed)
        if question_message is None:
            raise NoUserMessage()

        current = extract_current_context(processed)
        running_summary = await self._resolve_summary(processed, summary or current.summary)

        outcome = await self.negotiator.negotiate(
            running_summary,
            question_message.text,
            file_map,
            current.buffered_files or (),
        )

        if on_finish is not None:
            on_finish(outcome.completion)

        usage = outcome.completion.usage
        self.metrics.record_usage(usage)
        self.metrics.record_selection()
        latency_ms = (time.perf_counter() - started) * 1000

        if key is not None:
            entry = CacheEntry(
                key=key,
                essence=essence,
                files=dict(outcome.files),
                inserted_at=self.store.now(),
                metrics=EntryMetrics(selection_latency_ms=latency_ms, tokens_used=usage.total_tokens),
            )
            self._store(key, entry)

        LOGGER.debug(
            "Selection finished - files: %d, tokens: %d, time: %.2fms",
            len(outcome.files),
            usage.total_tokens,
            latency_ms,
        )
        await self._emit(
            "selection",
            {
                "files": list(outcome.buffer),
                "evicted": list(outcome.evicted),
                "tokens_used": usage.total_tokens,
                "selection_latency_ms": round(latency_ms, 2),
            },
        )
        return dict(outcome.files)

    def sweep(self) -> SweepReport:
        return self.store.sweep()

    def start(self) -> None:
        """Starts the periodic cache sweep on the running event loop."""
        self.store.start_sweeper(self._on_sweep)

    async def aclose(self) -> None:
        await self.store.stop_sweeper()
        await self.emitter.close()

    async def _on_sweep(self, report: SweepReport) -> None:
        if report.removed:
            await self._emit(
                "sweep",
                {
                    "removed": report.removed,
                    "remaining": report.remaining,
                    "tokens_used": report.tokens_used,
                    "selection_latency_ms": round(report.selection_latency_ms, 2),
                },
            )

    def _derive_key(self, message: ChatMessage, file_map: FileMap) -> tuple[Optional[str], str]:
        try:
            return derive_key(message, file_map), message_essence(message)
        except Exception:
            LOGGER.exception("Cache key derivation failed; treating request as a miss")
            return None, ""

    async def _lookup(self, key: Optional[str], essence: str) -> Optional[CacheEntry]:
        if key is None:
            return None
        try:
            entry = self.store.get(key)
            if entry is not None:
                self.metrics.record_hit()
                await self._emit("cache_hit", {"key": key, "via": "exact"})
                return entry

            if not self.store.size:
                return None

            LOGGER.debug("Exact cache entry not found, checking semantic similarity")
            files = files_from_key(key)
            candidates = self.store.recent_candidates(
                self.config.similarity_candidates,
                where=lambda entry: files_from_key(entry.key) == files,
            )
            if not candidates:
                LOGGER.debug("No recent cache entries for the current file set")
                return None
            similar_key = await self.arbiter.find_similar(essence, candidates)
            if similar_key is None:
                return None
            entry = self.store.get(similar_key)
            if entry is None:
                LOGGER.debug("Similar cache entry expired before it could be used")
                return None
            LOGGER.debug("Found a semantically similar message in the cache")
            self.metrics.record_hit(via_arbiter=True)
            await self._emit("arbiter_match", {"key": similar_key, "essence": essence})
            return entry
        except Exception:
            LOGGER.exception("Cache lookup failed; treating request as a miss")
            return None

    async def _resolve_summary(self, messages: list[ChatMessage], summary: Optional[str]) -> str:
        if summary:
            LOGGER.debug("Using existing summary")
            return summary
        LOGGER.debug("Generating a new chat summary")
        try:
            result = await self.summarizer.summarize(messages)
        except Exception as exc:
            LOGGER.error("Error generating summary: %s", exc)
            return FALLBACK_SUMMARY
        self.metrics.record_usage(result.usage)
        return result.text

    async def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            await self.emitter.emit(event, payload)
        except Exception:
            LOGGER.exception("Failed to emit %s metrics event", event)

    def _store(self, key: str, entry: CacheEntry) -> None:
        try:
            self.store.put(key, entry)
        except Exception:  # pragma: no cover - bookkeeping must not fail the request
            LOGGER.exception("Failed to write selection to the cache")
