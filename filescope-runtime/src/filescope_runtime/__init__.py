"""
`filescope_runtime` is the context-selection cache of an AI pair-programming
assistant: it decides which project files accompany the next model call and
reuses recent decisions for equivalent requests.

The public API is exposed through `__all__` and loaded lazily via
`__getattr__`, so that importing the package does not pull in LangChain or the
Redis client until a component that needs them is first accessed.
"""

from importlib import import_module
from typing import Any, Dict, Tuple

__all__ = [
    "ContextSelector",
    "ContextSelectorConfig",
    "PromptTemplates",
    "CacheStore",
    "CacheEntry",
    "ContextNegotiator",
    "ContextBuffer",
    "SimilarityArbiter",
    "ConversationSummarizer",
    "LangChainCompletionClient",
    "CompletionResult",
    "ChatMessage",
    "FileEntry",
    "SelectionInstruction",
    "derive_key",
    "is_ignored",
    "configure_logging",
    "FilescopeError",
    "MalformedSelectionResponse",
    "UnknownFileReference",
    "ProviderUnavailable",
    "SummaryGenerationFailed",
    "NoUserMessage",
]


_ATTR_MODULE_MAP: Dict[str, Tuple[str, str]] = {
    "ContextSelector": ("selector", "ContextSelector"),
    "ContextSelectorConfig": ("config", "ContextSelectorConfig"),
    "PromptTemplates": ("config", "PromptTemplates"),
    "CacheStore": ("cache", "CacheStore"),
    "CacheEntry": ("cache", "CacheEntry"),
    "ContextNegotiator": ("negotiator", "ContextNegotiator"),
    "ContextBuffer": ("negotiator", "ContextBuffer"),
    "SimilarityArbiter": ("arbiter", "SimilarityArbiter"),
    "ConversationSummarizer": ("summarizer", "ConversationSummarizer"),
    "LangChainCompletionClient": ("completion", "LangChainCompletionClient"),
    "CompletionResult": ("completion", "CompletionResult"),
    "ChatMessage": ("messages", "ChatMessage"),
    "FileEntry": ("files", "FileEntry"),
    "SelectionInstruction": ("protocol", "SelectionInstruction"),
    "derive_key": ("keys", "derive_key"),
    "is_ignored": ("ignore", "is_ignored"),
    "configure_logging": ("logging_utils", "configure_logging"),
    "FilescopeError": ("errors", "FilescopeError"),
    "MalformedSelectionResponse": ("errors", "MalformedSelectionResponse"),
    "UnknownFileReference": ("errors", "UnknownFileReference"),
    "ProviderUnavailable": ("errors", "ProviderUnavailable"),
    "SummaryGenerationFailed": ("errors", "SummaryGenerationFailed"),
    "NoUserMessage": ("errors", "NoUserMessage"),
}


def __getattr__(name: str) -> Any:
    """
    Lazily loads attributes from submodules of the `filescope_runtime` package.

    Args:
        name: The name of the attribute to load.

    Returns:
        The requested attribute.

    Raises:
        AttributeError: If the requested attribute is not part of the public API.
    """
    try:
        module_name, attribute = _ATTR_MODULE_MAP[name]
    except KeyError as exc:  # pragma: no cover - guard against typos
        raise AttributeError(f"module 'filescope_runtime' has no attribute {name!r}") from exc

    module = import_module(f".{module_name}", __name__)
    value = getattr(module, attribute)
    globals()[name] = value  # Cache for future lookups
    return value
