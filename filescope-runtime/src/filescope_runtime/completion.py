"""
The text-completion capability used by the selector's three model calls.

Components never look up a provider themselves: they receive a
`CompletionClient` and call `summarize`, `select_files` or `judge_similarity`.
`LangChainCompletionClient` is the production implementation; tests inject a
scripted fake with the same shape.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, Optional, Protocol

from langchain.chat_models import init_chat_model
from langchain_core.messages import HumanMessage, SystemMessage

from .config import ContextSelectorConfig
from .errors import ProviderUnavailable
from .metrics import TokenUsage


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionResult:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class CompletionClient(Protocol):
    """
    Async text-completion capability. Each method performs exactly one model
    call and raises `ProviderUnavailable` when the call fails or times out.
    """

    async def summarize(self, system: str, prompt: str) -> CompletionResult: ...

    async def select_files(self, system: str, prompt: str) -> CompletionResult: ...

    async def judge_similarity(self, system: str, prompt: str) -> CompletionResult: ...


def response_text(response: Any) -> str:
    """Flattens a chat model response (plain or content-block list) to text."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


class LangChainCompletionClient:
    """
    `CompletionClient` backed by LangChain chat models.

    One chat model is created lazily per role (``selector``, ``arbiter``,
    ``summarizer``) from the identifiers in `ContextSelectorConfig`; roles that
    resolve to the same identifier share a model. Blocking ``invoke`` calls run
    in a worker thread.
    """

    def __init__(
        self,
        config: ContextSelectorConfig,
        *,
        model_factory: Callable[[str], Any] | None = None,
    ) -> None:
        self.config = config
        self._model_factory = model_factory
        self._models: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def summarize(self, system: str, prompt: str) -> CompletionResult:
        return await self._invoke("summarizer", system, prompt, self.config.summarizer_timeout_seconds)

    async def select_files(self, system: str, prompt: str) -> CompletionResult:
        return await self._invoke("selector", system, prompt, self.config.selector_timeout_seconds)

    async def judge_similarity(self, system: str, prompt: str) -> CompletionResult:
        return await self._invoke("arbiter", system, prompt, self.config.arbiter_timeout_seconds)

    async def _ensure_llm(self, role: str):
        """Lazy-load the chat model configured for ``role``."""
        model_name = self.config.model_for(role)
        if model_name in self._models:
            return self._models[model_name]
        async with self._lock:
            if model_name not in self._models:
                factory = self._model_factory or init_chat_model
                self._models[model_name] = factory(model_name)
        return self._models[model_name]

    async def _invoke(
        self, role: str, system: str, prompt: str, timeout: Optional[float]
    ) -> CompletionResult:
        try:
            llm = await self._ensure_llm(role)
            call = asyncio.to_thread(
                llm.invoke, [SystemMessage(content=system), HumanMessage(content=prompt)]
            )
            if timeout and timeout > 0:
                response = await asyncio.wait_for(call, timeout=timeout)
            else:
                response = await call
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailable(role, f"timed out after {timeout:.1f}s") from exc
        except Exception as exc:
            LOGGER.warning("%s model call failed: %s", role, exc)
            raise ProviderUnavailable(role, str(exc) or exc.__class__.__name__) from exc

        usage = TokenUsage.from_metadata(getattr(response, "usage_metadata", None))
        if usage.total_tokens:
            LOGGER.debug("%s token usage: %s", role, usage)
        return CompletionResult(text=response_text(response), usage=usage)
