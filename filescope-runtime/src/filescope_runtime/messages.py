"""
This module defines the conversation message model consumed by the selector
and the text preprocessing applied before messages are used as cache keys or
prompt material.

Message content arrives either as a plain string or as a list of typed
segments (text, images, ...). Instead of checking the runtime type at every use
site, content is normalized into a tagged union, `TextContent` or
`SegmentContent`, and text is read through `extract_text`.

User messages may carry provider/model routing tags such as
``[Model: gpt-4o]`` or ``[Provider: OpenAI]``. Those tags are stripped before
the text is used; resolving them to an actual provider is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Annotated, Any, Iterable, List, Literal, Optional, Union

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


MODEL_TAG_PATTERN = re.compile(r"\[Model:\s*([^\]]*?)\s*\]")
PROVIDER_TAG_PATTERN = re.compile(r"\[Provider:\s*([^\]]*?)\s*\]")
_FILE_ACTION_PATTERN = re.compile(
    r'(<boltAction[^>]*type="file"[^>]*>)([\s\S]*?)(</boltAction>)'
)
_THOUGHT_PATTERN = re.compile(r'<div class=\\?"__boltThought__\\?">.*?</div>', re.DOTALL)
_THINK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL)

_LANGCHAIN_ROLES = {"human": "user", "ai": "assistant", "system": "system"}


class ContentSegment(BaseModel):
    """One element of a segmented message (``{"type": "text", "text": ...}``, images, ...)."""

    type: str
    text: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class TextContent(BaseModel):
    kind: Literal["text"] = "text"
    text: str = ""


class SegmentContent(BaseModel):
    kind: Literal["segments"] = "segments"
    segments: List[ContentSegment] = Field(default_factory=list)


MessageContent = Annotated[Union[TextContent, SegmentContent], Field(discriminator="kind")]
_CONTENT_ADAPTER: TypeAdapter = TypeAdapter(MessageContent)


def normalize_content(value: Any) -> Any:
    if isinstance(value, (TextContent, SegmentContent)):
        return value
    if value is None:
        return {"kind": "text", "text": ""}
    if isinstance(value, str):
        return {"kind": "text", "text": value}
    if isinstance(value, list):
        segments = [
            {"type": "text", "text": item} if isinstance(item, str) else item for item in value
        ]
        return {"kind": "segments", "segments": segments}
    return value


def parse_content(value: Any) -> TextContent | SegmentContent:
    """Validates raw message content (string, segment list or tagged content)."""
    return _CONTENT_ADAPTER.validate_python(normalize_content(value))


class ChatMessage(BaseModel):
    """
    A single conversation turn.

    ``annotations`` carries the structured side-channel records the assistant
    attaches to its replies, such as ``{"type": "codeContext", "files": [...]}``
    naming the files that were buffered for that turn.
    """

    role: Literal["user", "assistant", "system"]
    content: MessageContent
    annotations: List[Any] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def _normalize_content(cls, value: Any) -> Any:
        """Accepts plain strings and segment lists as well as tagged content."""
        return normalize_content(value)

    @property
    def text(self) -> str:
        return extract_text(self.content)


def extract_text(content: TextContent | SegmentContent) -> str:
    """Returns the text of a message; text segments are joined in order."""
    if isinstance(content, TextContent):
        return content.text
    return " ".join(
        segment.text for segment in content.segments if segment.type == "text" and segment.text
    )


def coerce_message(message: Any) -> ChatMessage:
    """Validates a dict, LangChain message or `ChatMessage` into a `ChatMessage`."""
    if isinstance(message, ChatMessage):
        return message
    if isinstance(message, BaseMessage):
        role = _LANGCHAIN_ROLES.get(message.type, "user")
        annotations = list(message.additional_kwargs.get("annotations", []) or [])
        return ChatMessage(role=role, content=message.content, annotations=annotations)
    return ChatMessage.model_validate(message)


def coerce_messages(messages: Iterable[Any]) -> List[ChatMessage]:
    return [coerce_message(message) for message in messages]


@dataclass(frozen=True, slots=True)
class RoutingTags:
    model: Optional[str]
    provider: Optional[str]


def extract_routing(text: str) -> RoutingTags:
    """Reads the model and provider named by routing tags, if any."""
    model_match = MODEL_TAG_PATTERN.search(text or "")
    provider_match = PROVIDER_TAG_PATTERN.search(text or "")
    return RoutingTags(
        model=model_match.group(1) if model_match else None,
        provider=provider_match.group(1) if provider_match else None,
    )


def strip_routing_tags(text: str) -> str:
    return PROVIDER_TAG_PATTERN.sub("", MODEL_TAG_PATTERN.sub("", text or ""))


def simplify_file_actions(text: str) -> str:
    """Collapses the bodies of file-writing actions so old file contents never reach a prompt."""
    return _FILE_ACTION_PATTERN.sub(
        lambda match: f"{match.group(1)}\n          ...\n        {match.group(3)}", text or ""
    )


def strip_thoughts(text: str) -> str:
    return _THINK_PATTERN.sub("", _THOUGHT_PATTERN.sub("", text or "", count=1), count=1)


def _map_text(content: TextContent | SegmentContent, transform) -> TextContent | SegmentContent:
    if isinstance(content, TextContent):
        return TextContent(text=transform(content.text))
    segments = [
        segment.model_copy(update={"text": transform(segment.text)})
        if segment.type == "text" and segment.text is not None
        else segment
        for segment in content.segments
    ]
    return SegmentContent(segments=segments)


def preprocess_message(message: ChatMessage) -> ChatMessage:
    """
    Cleans one message for prompt use: routing tags are removed from user
    messages; file-action bodies and thinking blocks are removed from
    assistant messages.
    """
    if message.role == "user":
        return message.model_copy(update={"content": _map_text(message.content, strip_routing_tags)})
    if message.role == "assistant":
        cleaned = _map_text(
            message.content, lambda text: strip_thoughts(simplify_file_actions(text))
        )
        return message.model_copy(update={"content": cleaned})
    return message


def preprocess_messages(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    return [preprocess_message(message) for message in messages]


def last_user_message(messages: Iterable[ChatMessage]) -> ChatMessage | None:
    last: ChatMessage | None = None
    for message in messages:
        if message.role == "user":
            last = message
    return last


@dataclass(frozen=True, slots=True)
class CurrentContext:
    """Context the previous assistant turn recorded in its annotations."""

    buffered_files: Optional[List[str]] = None
    summary: Optional[str] = None


def extract_current_context(messages: Iterable[ChatMessage]) -> CurrentContext:
    """
    Reads the ``codeContext`` and ``chatSummary`` annotations of the last
    assistant message. Malformed annotations are skipped.
    """
    assistant = None
    for message in messages:
        if message.role == "assistant":
            assistant = message
    if assistant is None or not assistant.annotations:
        return CurrentContext()

    files: Optional[List[str]] = None
    summary: Optional[str] = None
    for annotation in assistant.annotations:
        if not isinstance(annotation, dict) or not annotation.get("type"):
            continue
        if annotation["type"] == "codeContext" and files is None:
            raw_files = annotation.get("files") or []
            files = [str(path) for path in raw_files if isinstance(path, str)]
        elif annotation["type"] == "chatSummary" and summary is None:
            raw_summary = annotation.get("summary")
            summary = str(raw_summary) if raw_summary else None
    return CurrentContext(buffered_files=files, summary=summary)
