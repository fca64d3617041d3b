"""Blockquotes: consecutive lines starting with ``> ``.

Each quoted line becomes a paragraph inside one ``blockquote`` wrapper. The
``> `` prefixes are source only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from caretdown.core.commands import EditCommand, InsertHardLineBreak
from caretdown.core.extension import EditResult, Extension, ParseBlockResult
from caretdown.core.mapping import CursorSourceBuilder
from caretdown.core.types import BlockWrapper, Paragraph
from caretdown.extensions._shared import caret_source, line_bounds

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.runtime import RuntimeState
    from caretdown.core.types import Block

BLOCKQUOTE_KIND = "blockquote"
PREFIX = "> "


@dataclass(frozen=True)
class ToggleBlockquote(EditCommand):
    type = "toggle-blockquote"


def _is_blockquote(block: Block) -> bool:
    return isinstance(block, BlockWrapper) and block.kind == BLOCKQUOTE_KIND


def parse_block(
    source: str, start: int, context: ExtensionContext
) -> ParseBlockResult | None:
    if not source.startswith(PREFIX, start):
        return None

    paragraphs: list[Block] = []
    pos = start
    while True:
        line_end = source.find("\n", pos)
        if line_end == -1:
            line_end = len(source)
        content = context.parse_inline(source, pos + len(PREFIX), line_end)
        paragraphs.append(Paragraph(tuple(content)))
        pos = line_end
        if line_end < len(source) and source.startswith(PREFIX, line_end + 1):
            pos = line_end + 1
            continue
        break
    return ParseBlockResult(BlockWrapper(BLOCKQUOTE_KIND, tuple(paragraphs)), pos)


def serialize_block(block: Block, context: ExtensionContext) -> SerializeResult | None:
    if not _is_blockquote(block):
        return None
    builder = CursorSourceBuilder()
    for index, child in enumerate(block.blocks):
        if index:
            builder.append_text("\n")
        builder.append_source_only(PREFIX)
        builder.append_serialized(context.serialize_block(child))
    return builder.build()


def normalize_block(block: Block) -> Block | None:
    if _is_blockquote(block) and not block.blocks:
        return None
    return block


def _toggle_blockquote(state: RuntimeState) -> EditResult:
    source = state.source
    source_pos = caret_source(state)
    line_start, line_end = line_bounds(source, source_pos)
    if source.startswith(PREFIX, line_start):
        next_source = source[:line_start] + source[line_start + len(PREFIX) :]
        if source_pos - line_start >= len(PREFIX):
            caret = source_pos - len(PREFIX)
        else:
            caret = line_start
    else:
        next_source = source[:line_start] + PREFIX + source[line_start:]
        caret = source_pos + len(PREFIX)
    return state.runtime.result_at_source(next_source, caret, "forward")


def _exit_blockquote(state: RuntimeState) -> EditResult | None:
    """Hard line break inside a quote opens a plain line after it."""
    source = state.source
    source_pos = caret_source(state)
    line_start, line_end = line_bounds(source, source_pos)
    if not source.startswith(PREFIX, line_start):
        return None
    next_source = source[:line_end] + "\n" + source[line_end:]
    return state.runtime.result_at_source(next_source, line_end + 1, "forward")


def on_edit(command: EditCommand, state: RuntimeState) -> EditResult | None:
    if isinstance(command, ToggleBlockquote):
        return _toggle_blockquote(state)
    if isinstance(command, InsertHardLineBreak):
        return _exit_blockquote(state)
    return None


blockquote_extension = Extension(
    name="blockquote",
    parse_block=parse_block,
    serialize_block=serialize_block,
    normalize_block=normalize_block,
    on_edit=on_edit,
)
