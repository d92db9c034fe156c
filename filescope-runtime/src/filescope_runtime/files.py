"""
File map models and helpers for presenting buffered files to the negotiator.

A file map is owned by the project-state component of the host application and
is treated as read-only here. Entries are accepted either as `FileEntry`
instances or as plain ``{"content": ..., "type": "file"}`` dictionaries, the
shape the editor's file store has always produced.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_PROJECT_ROOT
from .ignore import IgnoreFilter, relative_path


LOGGER = logging.getLogger(__name__)


class FileEntry(BaseModel):
    """A single file or folder of the project snapshot."""

    content: str = ""
    kind: Literal["file", "folder"] = Field(default="file", alias="type")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


FileMap = Dict[str, FileEntry]


def coerce_file_map(files: Mapping[str, Any] | None) -> FileMap:
    """Validates a raw mapping into a `FileMap`, keeping the caller's keys."""
    result: FileMap = {}
    for path, entry in (files or {}).items():
        if isinstance(entry, FileEntry):
            result[path] = entry
        elif entry is None:
            continue
        else:
            result[path] = FileEntry.model_validate(entry)
    return result


def index_by_relative_path(
    files: FileMap, project_root: str = DEFAULT_PROJECT_ROOT
) -> FileMap:
    """Re-keys a file map by project-relative path. Later duplicates win."""
    return {relative_path(path, project_root): entry for path, entry in files.items()}


def known_file_paths(files: FileMap, ignore_filter: IgnoreFilter) -> list[str]:
    """
    Lists the project-relative paths a model may select: file entries only,
    ignore patterns applied, in sorted order.
    """
    paths = {
        relative_path(path, ignore_filter.project_root)
        for path, entry in files.items()
        if entry.kind == "file"
    }
    return sorted(ignore_filter.filter(paths))


def number_lines(content: str) -> tuple[str, str]:
    """
    Prefixes every line with ``L<n>-`` and makes whitespace visible, so the
    model can reference exact lines and indentation.

    Returns:
        The rendered content and the ``1-<last>`` line reference range.
    """
    lines = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    rendered = [
        f"L{index}- {line.replace(' ', '·').replace(chr(9), '→')}"
        for index, line in enumerate(lines, start=1)
    ]
    return "\n".join(rendered), f"1-{len(lines)}"


def render_files_context(files: Mapping[str, FileEntry], paths: Iterable[str]) -> str:
    """Renders the given buffered files as a code-content artifact for the prompt."""
    blocks: list[str] = []
    for path in paths:
        entry = files.get(path)
        if entry is None or entry.kind != "file":
            continue
        content, line_refs = number_lines(entry.content)
        blocks.append(
            f'<boltAction type="file" filePath="{path}" lineRefs="{line_refs}">\n'
            f"{content}\n"
            "</boltAction>"
        )
    LOGGER.debug("Rendering %d buffered files into the negotiator prompt", len(blocks))
    body = "\n\n".join(blocks)
    return f'<boltArtifact id="code-content" title="Code Content">\n{body}\n</boltArtifact>'
