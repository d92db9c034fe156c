"""
Parser for the negotiator's ``<updateContextBuffer>`` response contract.

Grammar (whitespace between elements is free, any other text outside the
block is ignored)::

    response   := ... block ...
    block      := "<updateContextBuffer>" directive* "</updateContextBuffer>"
                | "<updateContextBuffer/>"
    directive  := "<includeFile" path-attr "/>" | "<excludeFile" path-attr "/>"
    path-attr  := 'path="' <path> '"'

A response without exactly one block is rejected with
`MalformedSelectionResponse`. The rest of the selector only ever sees the
typed `SelectionInstruction` produced here.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable, Tuple

from .errors import MalformedSelectionResponse


OPEN_MARKER = "<updateContextBuffer>"
CLOSE_MARKER = "</updateContextBuffer>"

_BLOCK = re.compile(r"<updateContextBuffer\s*>([\s\S]*?)</updateContextBuffer\s*>")
_EMPTY_BLOCK = re.compile(r"<updateContextBuffer\s*/>")
_DIRECTIVE = re.compile(r'<(includeFile|excludeFile)\s+path\s*=\s*"([^"]*)"\s*/?>')


@dataclass(frozen=True, slots=True)
class SelectionInstruction:
    """Ordered, de-duplicated include and exclude paths exactly as the model wrote them."""

    includes: Tuple[str, ...] = ()
    excludes: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.includes and not self.excludes


def _unique(paths: Iterable[str]) -> Tuple[str, ...]:
    seen: dict[str, None] = {}
    for path in paths:
        seen.setdefault(path, None)
    return tuple(seen)


def parse_selection_response(text: str) -> SelectionInstruction:
    """
    Parses a negotiator response into a `SelectionInstruction`.

    Raises:
        MalformedSelectionResponse: No block, or more than one block, was found.
    """
    text = text or ""
    blocks = _BLOCK.findall(text)
    empty_blocks = len(_EMPTY_BLOCK.findall(text))
    if len(blocks) + empty_blocks != 1:
        raise MalformedSelectionResponse(text)
    if not blocks:
        return SelectionInstruction()

    includes: list[str] = []
    excludes: list[str] = []
    for kind, path in _DIRECTIVE.findall(blocks[0]):
        path = path.strip()
        if kind == "includeFile":
            includes.append(path)
        else:
            excludes.append(path)
    return SelectionInstruction(includes=_unique(includes), excludes=_unique(excludes))
