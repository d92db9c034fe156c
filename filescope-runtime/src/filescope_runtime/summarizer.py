"""
Default conversation summarizer.

The host application usually supplies a running summary of the conversation.
When it does not, the selector asks this summarizer for one before negotiating
the context buffer.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable

from .completion import CompletionClient, CompletionResult
from .config import PromptTemplates
from .errors import FilescopeError, SummaryGenerationFailed
from .messages import ChatMessage


LOGGER = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Failed to generate summary"


def render_transcript(messages: Iterable[ChatMessage]) -> str:
    return "\n\n".join(f"[{message.role}]: {message.text}" for message in messages)


class ConversationSummarizer:
    def __init__(self, client: CompletionClient, prompts: PromptTemplates | None = None) -> None:
        self.client = client
        self.prompts = prompts or PromptTemplates()

    async def summarize(self, messages: Iterable[ChatMessage]) -> CompletionResult:
        """
        Summarizes the conversation. The returned result carries the stripped
        summary text and the token usage of the call.

        Raises:
            SummaryGenerationFailed: The model call failed or returned nothing.
        """
        started = time.perf_counter()
        prompt = self.prompts.get_prompt("summarizer_prompt", transcript=render_transcript(messages))
        try:
            result = await self.client.summarize(self.prompts.summarizer_system_prompt, prompt)
        except FilescopeError as exc:
            raise SummaryGenerationFailed(str(exc)) from exc

        summary = result.text.strip()
        if not summary:
            raise SummaryGenerationFailed("summarizer returned an empty summary")

        LOGGER.debug("Summary generated in %.2fms", (time.perf_counter() - started) * 1000)
        return CompletionResult(text=summary, usage=result.usage)
