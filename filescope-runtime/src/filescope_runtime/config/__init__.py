"""
This package defines the configuration models for the context selector.

`ContextSelectorConfig` holds every tunable parameter of the selector and
`PromptTemplates` holds the text of every model call it makes.
"""
from .prompt_templates import PromptTemplates
from .selector import DEFAULT_PROJECT_ROOT, ContextSelectorConfig

__all__ = ["ContextSelectorConfig", "PromptTemplates", "DEFAULT_PROJECT_ROOT"]
