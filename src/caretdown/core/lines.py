"""Line view of a document: one entry per leaf block, in cursor order.

Block wrappers are transparent here; their leaves become lines addressed by
an index path from the doc root. Consecutive lines are separated by exactly
one cursor unit, matching the newline the serializer emits between blocks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

import grapheme

from caretdown.core.runs import paragraph_to_runs
from caretdown.core.types import BlockAtom, BlockWrapper, Paragraph, visible_text

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from caretdown.core.types import Block, Doc

Path = tuple[int, ...]


@dataclass(frozen=True)
class FlatLine:
    path: Path
    block: Block
    text: str
    cursor_length: int
    has_newline: bool

    @property
    def parent_path(self) -> Path:
        return self.path[:-1]

    @property
    def index_in_parent(self) -> int:
        return self.path[-1]


class LineLocation(NamedTuple):
    line_index: int
    offset_in_line: int


def flatten_doc_to_lines(
    doc: Doc,
    atom_width: Callable[[BlockAtom], int] | None = None,
) -> list[FlatLine]:
    """List the leaf blocks of *doc* as lines.

    Args:
        doc: Document to flatten.
        atom_width: Cursor units a block atom occupies. Defaults to zero,
            which is what source-only atom serializers produce.

    Returns:
        At least one line; an empty doc yields a single empty paragraph line.
    """
    entries: list[tuple[Path, Block]] = []

    def visit(blocks: Sequence[Block], prefix: Path) -> None:
        for index, block in enumerate(blocks):
            path = (*prefix, index)
            if isinstance(block, BlockWrapper):
                visit(block.blocks, path)
            else:
                entries.append((path, block))

    visit(doc.blocks, ())
    if not entries:
        return [FlatLine((0,), Paragraph(), "", 0, has_newline=False)]

    lines: list[FlatLine] = []
    last = len(entries) - 1
    for i, (path, block) in enumerate(entries):
        text = visible_text(block)
        if isinstance(block, BlockAtom):
            length = atom_width(block) if atom_width is not None else 0
        else:
            length = sum(run.length for run in paragraph_to_runs(block))
        lines.append(FlatLine(path, block, text, length, has_newline=i < last))
    return lines


def cursor_length_for_lines(lines: Sequence[FlatLine]) -> int:
    return sum(line.cursor_length + (1 if line.has_newline else 0) for line in lines)


def line_start_offsets(lines: Sequence[FlatLine]) -> list[int]:
    offsets: list[int] = []
    current = 0
    for line in lines:
        offsets.append(current)
        current += line.cursor_length + (1 if line.has_newline else 0)
    return offsets


def resolve_cursor_to_line(
    lines: Sequence[FlatLine], cursor_offset: int
) -> LineLocation:
    """Find the line containing *cursor_offset*, clamped to the document.

    An offset equal to a line's end stays on that line; the offset right
    after the separating newline belongs to the next line.
    """
    total = cursor_length_for_lines(lines)
    clamped = max(0, min(cursor_offset, total))
    start = 0
    for i, line in enumerate(lines):
        end = start + line.cursor_length
        if clamped <= end or i == len(lines) - 1:
            return LineLocation(i, max(0, min(clamped - start, line.cursor_length)))
        start = end + (1 if line.has_newline else 0)
        if line.has_newline and clamped == start:
            return LineLocation(min(len(lines) - 1, i + 1), 0)
    return LineLocation(len(lines) - 1, lines[-1].cursor_length)


def grapheme_at_cursor(lines: Sequence[FlatLine], cursor_offset: int) -> str | None:
    """The grapheme right after *cursor_offset*, or None at a line end."""
    location = resolve_cursor_to_line(lines, cursor_offset)
    line = lines[location.line_index]
    if location.offset_in_line >= line.cursor_length:
        return None
    offset = location.offset_in_line
    cluster = grapheme.slice(line.text, offset, offset + 1)
    return cluster or None


def line_index_for_path(lines: Sequence[FlatLine], path: Path) -> int:
    for index, line in enumerate(lines):
        if line.path == path:
            return index
    return -1


# ---------------------------------------------------------------------------
# Path addressing
# ---------------------------------------------------------------------------
def block_at_path(blocks: Sequence[Block], path: Path) -> Block | None:
    """Resolve *path* to a block, or None when it leaves the tree."""
    current: Block | None = None
    children = blocks
    for depth, index in enumerate(path):
        if not 0 <= index < len(children):
            return None
        current = children[index]
        if isinstance(current, BlockWrapper):
            children = current.blocks
        elif depth < len(path) - 1:
            return None
    return current


def blocks_at_path(blocks: Sequence[Block], path: Path) -> Sequence[Block]:
    """Children of the wrapper at *path* (the doc's blocks for an empty path)."""
    current = blocks
    for index in path:
        if not 0 <= index < len(current):
            return current
        block = current[index]
        if not isinstance(block, BlockWrapper):
            return current
        current = block.blocks
    return current


def update_blocks_at_path(
    blocks: Sequence[Block],
    path: Path,
    updater: Callable[[Sequence[Block]], Sequence[Block]],
) -> tuple[Block, ...]:
    """Return a copy of *blocks* with the children at *path* replaced."""
    if not path:
        return tuple(updater(blocks))
    head, rest = path[0], path[1:]
    if not 0 <= head < len(blocks):
        return tuple(blocks)
    target = blocks[head]
    if not isinstance(target, BlockWrapper):
        return tuple(blocks)
    children = update_blocks_at_path(target.blocks, rest, updater)
    rebuilt = BlockWrapper(target.kind, children, target.data)
    return (*blocks[:head], rebuilt, *blocks[head + 1 :])


def nearest_wrapper_at_path(
    blocks: Sequence[Block], leaf_path: Path
) -> tuple[BlockWrapper, Path] | None:
    """Innermost block wrapper enclosing the leaf at *leaf_path*."""
    for depth in range(len(leaf_path) - 1, 0, -1):
        prefix = leaf_path[:depth]
        block = block_at_path(blocks, prefix)
        if isinstance(block, BlockWrapper):
            return block, prefix
    return None
