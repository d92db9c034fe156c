"""
Cache key derivation.

A cache key fingerprints one selection request: the "essence" of the latest
message (routing tags removed, whitespace collapsed) plus a cheap
order-independent hash of the project's path list. Two requests that say the
same thing against the same file set produce the same key. Everything here is
pure and synchronous so that it can run on every turn.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, Mapping

from .messages import (
    MODEL_TAG_PATTERN,
    PROVIDER_TAG_PATTERN,
    ChatMessage,
    SegmentContent,
    TextContent,
    extract_text,
    parse_content,
)


_WHITESPACE = re.compile(r"\s+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _content_of(message: Any) -> TextContent | SegmentContent:
    if isinstance(message, ChatMessage):
        return message.content
    if isinstance(message, (TextContent, SegmentContent)):
        return message
    return parse_content(message)


def message_essence(message: Any) -> str:
    """
    Reduces a message (a `ChatMessage`, tagged content, plain string or
    segment list) to the normalized text used for keying and similarity.
    """
    text = extract_text(_content_of(message))
    text = MODEL_TAG_PATTERN.sub("", text)
    text = PROVIDER_TAG_PATTERN.sub("", text)
    text = text.replace("\\n", " ")
    return _WHITESPACE.sub(" ", text).strip()


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return sign + "".join(reversed(digits))


def rolling_hash(text: str) -> str:
    """32-bit signed ``h * 31 + c`` rolling hash rendered in base 36."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(value)


def files_hash(paths: Iterable[str]) -> str:
    """Order-independent hash of a path collection."""
    return rolling_hash(",".join(sorted(paths)))


def derive_key(last_message: Any, file_map: Mapping[str, Any]) -> str:
    """
    Derives the cache key for a request.

    Args:
        last_message: The latest conversation message or its content.
        file_map: The project snapshot; only its keys are used.

    Returns:
        A compact JSON string ``{"message": <essence>, "files": <hash>}``.
    """
    return json.dumps(
        {"message": message_essence(last_message), "files": files_hash(file_map.keys())},
        ensure_ascii=False,
        separators=(",", ":"),
    )


def essence_from_key(key: str) -> str:
    """Recovers the message essence embedded in a key produced by `derive_key`."""
    return str(json.loads(key).get("message", ""))


def files_from_key(key: str) -> str:
    """Recovers the file-set hash embedded in a key produced by `derive_key`."""
    return str(json.loads(key).get("files", ""))
