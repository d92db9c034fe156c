"""
Configurable prompt templates for every model call made by the context selector.

Three model calls exist: the conversation summarizer, the similarity arbiter and
the context negotiator. Their prompts live here so that they can be tuned
without touching the protocol code. Templates support variable substitution
using Python string formatting with {variable_name} syntax.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(slots=True)
class PromptTemplates:
    """
    Centralized storage for the selector's prompt templates.

    The negotiator templates describe the ``<updateContextBuffer>`` contract
    that ``filescope_runtime.protocol`` parses; changing the markers here
    without changing the parser breaks the protocol.
    """

    # ========== Summarizer Prompts ==========

    summarizer_system_prompt: str = field(default=(
        "You are a software engineer summarizing a pair-programming conversation.\n\n"
        "The summary is used to decide which project files are relevant for the next turn.\n"
        "Keep it compact and preserve:\n"
        "- What the user is currently trying to accomplish\n"
        "- Files, components and features that were discussed or changed\n"
        "- Decisions, constraints and unresolved problems"
    ))

    summarizer_prompt: str = field(default=(
        "Summarize the following conversation.\n\n"
        "CONVERSATION\n"
        "---\n"
        "{transcript}\n"
        "---\n\n"
        "Summary:"
    ))

    # ========== Similarity Arbiter Prompts ==========

    arbiter_system_prompt: str = field(default=(
        "You are an assistant specialized in semantic analysis of developer requests."
    ))

    arbiter_prompt: str = field(default=(
        "CURRENT MESSAGE:\n"
        "\"{message}\"\n\n"
        "CACHED MESSAGES:\n"
        "{candidates}\n\n"
        "TASK:\n"
        "Decide whether the current message is semantically equivalent to one of the cached messages.\n"
        "Consider them equivalent when:\n"
        "1. The goal or intent is the same\n"
        "2. The requested actions are equivalent\n"
        "3. The context is similar\n\n"
        "Reply ONLY with the number of the equivalent message (1-{count}) "
        "or \"{no_match}\" if none is similar enough."
    ))

    arbiter_no_match: str = "none"

    # ========== Context Negotiator Prompts ==========

    negotiator_system_prompt: str = field(default=(
        "You are a software engineer. You are working on a project. "
        "You have access to the following files:\n\n"
        "AVAILABLE FILES PATHS\n"
        "---\n"
        "{file_list}\n"
        "---\n\n"
        "You have following code loaded in the context buffer that you can refer to:\n\n"
        "CURRENT CONTEXT BUFFER\n"
        "---\n"
        "{buffer}\n"
        "---\n\n"
        "Now, you are given a task. You need to select the files that are relevant "
        "to the task from the list of files above.\n\n"
        "RESPONSE FORMAT:\n"
        "your response should be in following format:\n"
        "---\n"
        "<updateContextBuffer>\n"
        "    <includeFile path=\"path/to/file\"/>\n"
        "    <excludeFile path=\"path/to/file\"/>\n"
        "</updateContextBuffer>\n"
        "---\n"
        "* You should start with <updateContextBuffer> and end with </updateContextBuffer>.\n"
        "* You can include multiple <includeFile> and <excludeFile> tags in the response.\n"
        "* You should not include any other text in the response.\n"
        "* You should not include any file that is not in the list of files above.\n"
        "* You should not include any file that is already in the context buffer.\n"
        "* If no changes are needed, you can leave the response empty updateContextBuffer tag."
    ))

    negotiator_prompt: str = field(default=(
        "Here is the summary of the chat till now: {summary}\n\n"
        "Users Question: {question}\n\n"
        "update the context buffer with the files that are relevant to the task "
        "from the list of files above.\n\n"
        "CRITICAL RULES:\n"
        "* Only include relevant files in the context buffer.\n"
        "* context buffer should not include any file that is not in the list of files above.\n"
        "* context buffer is extremely expensive, so only include files that are absolutely necessary.\n"
        "* If no changes are needed, you can leave the response empty updateContextBuffer tag.\n"
        "* Only {buffer_limit} files can be placed in the context buffer at a time.\n"
        "* if the buffer is full, you need to exclude files that is not needed "
        "and include files that is relevant."
    ))

    def get_prompt(self, template_name: str, **kwargs: Any) -> str:
        """
        Get a formatted prompt template with variable substitution.

        Args:
            template_name: The name of the template attribute.
            **kwargs: Variables to substitute in the template.

        Returns:
            The formatted prompt string.
        """
        template = getattr(self, template_name, None)
        if template is None:
            raise ValueError(f"Unknown prompt template: {template_name}")
        return template.format(**kwargs)

    def to_dict(self) -> Dict[str, str]:
        """Convert all prompts to a dictionary for serialization."""
        return {
            "summarizer_system_prompt": self.summarizer_system_prompt,
            "summarizer_prompt": self.summarizer_prompt,
            "arbiter_system_prompt": self.arbiter_system_prompt,
            "arbiter_prompt": self.arbiter_prompt,
            "arbiter_no_match": self.arbiter_no_match,
            "negotiator_system_prompt": self.negotiator_system_prompt,
            "negotiator_prompt": self.negotiator_prompt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "PromptTemplates":
        """Create PromptTemplates instance from dictionary."""
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
