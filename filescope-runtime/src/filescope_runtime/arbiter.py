"""
This module implements the `SimilarityArbiter`, the fallback used when a
request misses the cache exactly.

The arbiter shows a model the current message essence next to the essences of
the most recently cached requests and asks which one, if any, expresses the
same intent. The answer is a single 1-based index or a fixed "no match"
sentinel. Anything else, and any failure of the call itself, is treated as no
match: the arbiter never guesses and never raises.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional, Sequence

from .cache import SimilarityCandidate
from .completion import CompletionClient
from .config import PromptTemplates
from .metrics import SelectionMetrics


LOGGER = logging.getLogger(__name__)

_INTEGER = re.compile(r"^[+-]?\d+$")


def parse_similarity_answer(text: str, count: int, *, no_match: str = "none") -> Optional[int]:
    """
    Parses the arbiter's answer into a 0-based candidate index.

    The answer is trimmed and lowercased (surrounding quotes and a trailing
    period are tolerated). The sentinel, anything that is not an integer, and
    integers outside ``1..count`` all mean no match.
    """
    answer = (text or "").strip().lower().strip("\"'`").rstrip(".").strip()
    if not answer or answer == no_match.lower():
        return None
    if not _INTEGER.match(answer):
        return None
    index = int(answer) - 1
    if 0 <= index < count:
        return index
    return None


class SimilarityArbiter:
    """
    Asks a model whether a new request is equivalent to a recently cached one.

    Attributes:
        client: The completion capability used for the judgement call.
        max_candidates: Upper bound on the candidates offered per call.
        timeout: Optional deadline for the judgement call, in seconds.
    """

    def __init__(
        self,
        client: CompletionClient,
        *,
        prompts: PromptTemplates | None = None,
        max_candidates: int = 5,
        metrics: SelectionMetrics | None = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.prompts = prompts or PromptTemplates()
        self.max_candidates = max(1, max_candidates)
        self.metrics = metrics

    def recent(self, candidates: Sequence[SimilarityCandidate]) -> list[SimilarityCandidate]:
        """Newest first, truncated to `max_candidates`."""
        ordered = sorted(candidates, key=lambda candidate: candidate.inserted_at, reverse=True)
        return ordered[: self.max_candidates]

    def build_prompt(self, essence: str, candidates: Sequence[SimilarityCandidate]) -> str:
        numbered = "\n".join(
            f'{index}. "{candidate.essence}"' for index, candidate in enumerate(candidates, start=1)
        )
        return self.prompts.get_prompt(
            "arbiter_prompt",
            message=essence,
            candidates=numbered,
            count=len(candidates),
            no_match=self.prompts.arbiter_no_match,
        )

    async def find_similar(
        self, essence: str, candidates: Sequence[SimilarityCandidate]
    ) -> Optional[str]:
        """
        Returns the cache key of the equivalent candidate, or None.

        Failures of the underlying call, timeouts included, are logged and
        reported as no match.
        """
        recent = self.recent(candidates)
        if not recent:
            return None

        prompt = self.build_prompt(essence, recent)
        try:
            call = self.client.judge_similarity(self.prompts.arbiter_system_prompt, prompt)
            if self.timeout and self.timeout > 0:
                result = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                result = await call
        except Exception as exc:
            LOGGER.error("Error while checking semantic similarity: %s", exc)
            return None

        if self.metrics is not None:
            self.metrics.record_usage(result.usage)

        index = parse_similarity_answer(
            result.text, len(recent), no_match=self.prompts.arbiter_no_match
        )
        if index is None:
            LOGGER.debug("Arbiter found no similar cached request (answer=%r)", result.text)
            return None
        match = recent[index]
        LOGGER.debug("Arbiter matched cached request %d: %r", index + 1, match.essence)
        return match.cache_key
