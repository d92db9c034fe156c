"""
Error taxonomy for the context selector.

Only negotiator-path errors are expected to reach callers of
``ContextSelector.select_context``. Arbiter failures degrade to "no match" and
summarizer failures degrade to a fallback summary string, so those exceptions
are raised internally and handled before they cross the engine boundary.
"""

from __future__ import annotations


class FilescopeError(RuntimeError):
    """Base class for all errors raised by the context selector."""


class MalformedSelectionResponse(FilescopeError):
    """The negotiator response did not contain an ``<updateContextBuffer>`` block."""

    def __init__(self, response_text: str) -> None:
        preview = (response_text or "").strip()
        if len(preview) > 200:
            preview = f"{preview[:200]}…"
        super().__init__(
            "Invalid response. Please follow the response format "
            f"(no <updateContextBuffer> block found): {preview!r}"
        )
        self.response_text = response_text


class UnknownFileReference(FilescopeError):
    """The negotiator asked to include a path that is not in the known path list."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File {path} is not in the list of files above.")
        self.path = path


class ProviderUnavailable(FilescopeError):
    """A model call failed or timed out."""

    def __init__(self, role: str, reason: str) -> None:
        super().__init__(f"{role} model call failed: {reason}")
        self.role = role
        self.reason = reason


class SummaryGenerationFailed(FilescopeError):
    """The conversation summarizer could not produce a summary."""


class NoUserMessage(FilescopeError, ValueError):
    """The conversation does not contain any user message to select context for."""

    def __init__(self) -> None:
        super().__init__("No user message found")
