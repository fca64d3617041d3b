"""Headings: ``# ``, ``## `` or ``### `` at the start of a line.

A heading is a ``heading`` block wrapper around exactly one paragraph. The
marker is source only, so the heading text starts at the line's first
cursor unit.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from caretdown.core.commands import (
    DeleteBackward,
    EditCommand,
    ExitBlockWrapper,
    Insert,
    InsertLineBreak,
)
from caretdown.core.extension import EditResult, Extension, ParseBlockResult
from caretdown.core.mapping import CursorSourceBuilder
from caretdown.core.types import BlockWrapper, Paragraph, Selection
from caretdown.extensions._shared import caret_source, line_bounds

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.runtime import RuntimeState
    from caretdown.core.types import Block

logger = logging.getLogger(__name__)

HEADING_KIND = "heading"
HEADING_PATTERN = re.compile(r"(#{1,3}) ")
MAX_LEVEL = 3


@dataclass(frozen=True)
class ToggleHeading(EditCommand):
    level: int = 1

    type = "toggle-heading"


def heading_level(block: Block) -> int:
    """Level of a heading wrapper, clamped to ``1..3``."""
    level = (block.data or {}).get("level", 1) if isinstance(block, BlockWrapper) else 1
    if not isinstance(level, int):
        return 1
    return max(1, min(MAX_LEVEL, level))


def _is_heading(block: Block) -> bool:
    return isinstance(block, BlockWrapper) and block.kind == HEADING_KIND


def _marker_at(source: str, line_start: int, line_end: int) -> str | None:
    match = HEADING_PATTERN.match(source, line_start, line_end)
    return match.group(0) if match else None


# ---------------------------------------------------------------------------
# Syntax
# ---------------------------------------------------------------------------
def parse_block(
    source: str, start: int, context: ExtensionContext
) -> ParseBlockResult | None:
    line_end = source.find("\n", start)
    if line_end == -1:
        line_end = len(source)
    match = HEADING_PATTERN.match(source, start, line_end)
    if match is None:
        return None
    content = tuple(context.parse_inline(source, match.end(), line_end))
    level = len(match.group(1))
    heading = BlockWrapper(HEADING_KIND, (Paragraph(content),), {"level": level})
    return ParseBlockResult(heading, line_end)


def serialize_block(block: Block, context: ExtensionContext) -> SerializeResult | None:
    if not _is_heading(block):
        return None
    builder = CursorSourceBuilder()
    builder.append_source_only("#" * heading_level(block) + " ")
    if block.blocks:
        builder.append_serialized(context.serialize_block(block.blocks[0]))
    return builder.build()


def normalize_block(block: Block) -> Block | None:
    if _is_heading(block) and not block.blocks:
        return BlockWrapper(HEADING_KIND, (Paragraph(),), block.data)
    return block


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------
def _toggle_heading(state: RuntimeState, level: int) -> EditResult:
    source = state.source
    source_pos = caret_source(state)
    line_start, line_end = line_bounds(source, source_pos)
    existing = _marker_at(source, line_start, line_end)
    new_marker = "#" * level + " "
    offset_in_line = source_pos - line_start

    if existing is None:
        next_source = source[:line_start] + new_marker + source[line_start:]
        caret = source_pos + len(new_marker)
    elif len(existing) - 1 == level:
        next_source = source[:line_start] + source[line_start + len(existing) :]
        if offset_in_line >= len(existing):
            caret = source_pos - len(existing)
        else:
            caret = line_start
    else:
        rest = source[line_start + len(existing) :]
        next_source = source[:line_start] + new_marker + rest
        if offset_in_line >= len(existing):
            caret = source_pos + len(new_marker) - len(existing)
        else:
            caret = line_start + len(new_marker)

    return state.runtime.result_at_source(next_source, caret, "forward")


def _delete_marker(state: RuntimeState) -> EditResult | None:
    """Backspace at the start of heading text turns the line back into a paragraph."""
    selection = state.selection
    if not selection.is_collapsed:
        return None
    # Forward mapping resolves past the source-only marker.
    source_pos = state.map.cursor_to_source(selection.start, "forward")
    line_start, line_end = line_bounds(state.source, source_pos)
    marker = _marker_at(state.source, line_start, line_end)
    if marker is None or source_pos != line_start + len(marker):
        return None
    next_source = state.source[:line_start] + state.source[line_start + len(marker) :]
    caret = selection.start
    return EditResult(next_source, Selection(caret, caret, "forward"))


def _caret_in_heading_text(state: RuntimeState) -> bool:
    selection = state.selection
    if not selection.is_collapsed:
        return False
    source_pos = state.map.cursor_to_source(selection.start, "forward")
    line_start, line_end = line_bounds(state.source, source_pos)
    marker = _marker_at(state.source, line_start, line_end)
    return marker is not None and line_start + len(marker) <= source_pos <= line_end


def _multiline_insert(state: RuntimeState, text: str) -> EditResult | None:
    """Paste several lines into a heading as source so each line parses on its own."""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    if "\n" not in normalized:
        return None

    selection = state.selection.ordered()
    if selection.is_collapsed:
        affinity = selection.affinity or "forward"
        source_from = source_to = state.map.cursor_to_source(selection.start, affinity)
    else:
        source_from = state.map.cursor_to_source(selection.start, "forward")
        source_to = state.map.cursor_to_source(selection.end, "backward")

    line_start, line_end = line_bounds(state.source, source_from)
    if source_to > line_end:
        return None
    marker = _marker_at(state.source, line_start, line_end)
    if marker is None or source_from < line_start + len(marker):
        return None

    next_source = state.source[:source_from] + normalized + state.source[source_to:]
    caret = source_from + len(normalized)
    return state.runtime.result_at_source(next_source, caret, "forward")


def _autoformat(state: RuntimeState) -> EditResult | None:
    """Typing a space after one to three leading ``#`` makes a heading."""
    selection = state.selection
    if not selection.is_collapsed:
        return None
    affinity = selection.affinity or "forward"
    source_pos = state.map.cursor_to_source(selection.start, affinity)
    line_start, _ = line_bounds(state.source, source_pos)
    prefix = state.source[line_start:source_pos]
    if not prefix or len(prefix) > MAX_LEVEL or prefix.strip("#"):
        return None
    next_source = state.source[:source_pos] + " " + state.source[source_pos:]
    caret = selection.start - len(prefix)
    return EditResult(next_source, Selection(caret, caret, "forward"))


def on_edit(
    command: EditCommand, state: RuntimeState
) -> EditResult | EditCommand | None:
    if isinstance(command, ToggleHeading):
        level = max(1, min(MAX_LEVEL, command.level))
        return _toggle_heading(state, level)
    if isinstance(command, DeleteBackward):
        return _delete_marker(state)
    if isinstance(command, InsertLineBreak):
        if _caret_in_heading_text(state):
            logger.debug("Line break in heading text exits the heading")
            return ExitBlockWrapper()
        return None
    if isinstance(command, Insert):
        result = _multiline_insert(state, command.text)
        if result is None and command.text == " ":
            result = _autoformat(state)
        return result
    return None


heading_extension = Extension(
    name="heading",
    parse_block=parse_block,
    serialize_block=serialize_block,
    normalize_block=normalize_block,
    on_edit=on_edit,
)
