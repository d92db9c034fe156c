"""
This module implements the `ContextNegotiator`, which asks a model to adjust
the context buffer for the next turn.

The negotiation is a single, linear exchange:

1. The system prompt lists every selectable project path (ignore patterns
   already applied) and the line-numbered content of the files currently in
   the buffer; the user prompt restates the conversation summary and the
   latest user question.
2. The model answers with one ``<updateContextBuffer>`` block of include and
   exclude directives, parsed by `filescope_runtime.protocol`.
3. Every include must name a known path, otherwise `UnknownFileReference` is
   raised. The model is never allowed to introduce files.
4. The directives are applied to a `ContextBuffer`, which never holds more
   than its limit: including into a full buffer drops the least recently
   included path.
5. File contents are taken from the caller's snapshot, never from the model.

There are no retries here; provider failures surface as `ProviderUnavailable`
and retry policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
import logging
from typing import Iterable, Iterator, List, Optional, Tuple

from .completion import CompletionClient, CompletionResult
from .config import DEFAULT_PROJECT_ROOT, PromptTemplates
from .errors import FilescopeError, ProviderUnavailable, UnknownFileReference
from .files import FileMap, index_by_relative_path, known_file_paths, render_files_context
from .ignore import IgnoreFilter, relative_path
from .protocol import SelectionInstruction, parse_selection_response


LOGGER = logging.getLogger(__name__)


class ContextBuffer:
    """
    Bounded set of buffered paths, ordered from least to most recently included.

    Re-including a buffered path is a no-op and does not refresh its recency.
    Including into a full buffer evicts the least recently included path, so
    the size never exceeds `limit`.
    """

    def __init__(self, paths: Iterable[str] = (), *, limit: int = 5) -> None:
        if limit <= 0:
            raise ValueError("buffer limit must be positive")
        self.limit = limit
        self._paths: "OrderedDict[str, None]" = OrderedDict()
        self.evicted: List[str] = []
        for path in paths:
            self.include(path)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    @property
    def paths(self) -> Tuple[str, ...]:
        return tuple(self._paths)

    def include(self, path: str) -> bool:
        """Adds ``path``; returns False when it was already buffered."""
        if path in self._paths:
            return False
        self._paths[path] = None
        while len(self._paths) > self.limit:
            dropped, _ = self._paths.popitem(last=False)
            self.evicted.append(dropped)
        return True

    def exclude(self, path: str) -> bool:
        """Removes ``path``; returns False when it was not buffered."""
        if path not in self._paths:
            return False
        del self._paths[path]
        return True


@dataclass(frozen=True, slots=True)
class NegotiationOutcome:
    files: FileMap
    buffer: Tuple[str, ...]
    instruction: SelectionInstruction
    evicted: Tuple[str, ...]
    completion: CompletionResult


class ContextNegotiator:
    """
    Runs one include/exclude negotiation against the selector model.

    Attributes:
        client: The completion capability used for the selection call.
        buffer_limit: Maximum number of files in the resulting buffer.
        ignore_filter: Filter applied to the snapshot before any path is shown.
        timeout: Optional deadline for the selection call, in seconds.
    """

    def __init__(
        self,
        client: CompletionClient,
        *,
        prompts: PromptTemplates | None = None,
        buffer_limit: int = 5,
        ignore_filter: IgnoreFilter | None = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.prompts = prompts or PromptTemplates()
        self.buffer_limit = buffer_limit
        self.ignore_filter = ignore_filter or IgnoreFilter()
        self.timeout = timeout

    @property
    def project_root(self) -> str:
        return self.ignore_filter.project_root or DEFAULT_PROJECT_ROOT

    def build_prompts(
        self,
        summary: str,
        question: str,
        known_paths: List[str],
        buffer: ContextBuffer,
        files_by_path: FileMap,
    ) -> Tuple[str, str]:
        file_list = "\n".join(f"- {path}" for path in known_paths)
        buffered = render_files_context(files_by_path, buffer.paths) if len(buffer) else ""
        system = self.prompts.get_prompt(
            "negotiator_system_prompt", file_list=file_list, buffer=buffered
        )
        prompt = self.prompts.get_prompt(
            "negotiator_prompt",
            summary=summary,
            question=question,
            buffer_limit=self.buffer_limit,
        )
        return system, prompt

    async def negotiate(
        self,
        summary: str,
        last_user_message: str,
        file_map: FileMap,
        current_buffer: Iterable[str] = (),
    ) -> NegotiationOutcome:
        """
        Negotiates the new buffer and returns it with the call's details.

        Raises:
            ProviderUnavailable: The selection call failed or timed out.
            MalformedSelectionResponse: The response had no update block.
            UnknownFileReference: The response included an unknown path.
        """
        files_by_path = index_by_relative_path(file_map, self.project_root)
        known_paths = known_file_paths(file_map, self.ignore_filter)
        known = set(known_paths)

        buffer = ContextBuffer(limit=self.buffer_limit)
        for path in current_buffer:
            rel = relative_path(path, self.project_root)
            if rel in known:
                buffer.include(rel)
            else:
                LOGGER.debug("Dropping buffered path missing from the snapshot: %s", path)

        system, prompt = self.build_prompts(
            summary, last_user_message, known_paths, buffer, files_by_path
        )
        completion = await self._complete(system, prompt)
        instruction = parse_selection_response(completion.text)

        includes = [relative_path(path, self.project_root) for path in instruction.includes]
        excludes = {relative_path(path, self.project_root) for path in instruction.excludes}
        for original, rel in zip(instruction.includes, includes):
            if rel not in known:
                LOGGER.warning("File not found in the list: %s", original)
                raise UnknownFileReference(original)

        LOGGER.debug(
            "Processing %d files to exclude and %d to include", len(excludes), len(includes)
        )
        for path in excludes:
            if buffer.exclude(path):
                LOGGER.debug("Excluding file: %s", path)
        buffer.evicted.clear()
        for path in includes:
            if path in excludes:
                continue
            if buffer.include(path):
                LOGGER.debug("Including file: %s", path)
            else:
                LOGGER.debug("File already included, skipping: %s", path)

        if buffer.evicted:
            LOGGER.warning(
                "Selection exceeded the %d-file buffer; dropped least recently included: %s",
                self.buffer_limit,
                ", ".join(buffer.evicted),
            )

        files = {path: files_by_path[path] for path in buffer.paths}
        return NegotiationOutcome(
            files=files,
            buffer=buffer.paths,
            instruction=instruction,
            evicted=tuple(buffer.evicted),
            completion=completion,
        )

    async def select_files(
        self,
        summary: str,
        last_user_message: str,
        file_map: FileMap,
        current_buffer: Iterable[str] = (),
    ) -> FileMap:
        """Returns ``current_buffer ∪ includes − excludes`` as a file map subset."""
        outcome = await self.negotiate(summary, last_user_message, file_map, current_buffer)
        return outcome.files

    async def _complete(self, system: str, prompt: str) -> CompletionResult:
        try:
            call = self.client.select_files(system, prompt)
            if self.timeout and self.timeout > 0:
                return await asyncio.wait_for(call, timeout=self.timeout)
            return await call
        except FilescopeError:
            raise
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailable("selector", f"timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise ProviderUnavailable("selector", str(exc) or exc.__class__.__name__) from exc
