"""Plain-text list model.

List lines stay ordinary paragraphs in the doc; their markers are visible
text. This module parses a contiguous run of source lines into items,
applies structural operations, and serializes back with numbering rebuilt
per indent level.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Literal, NamedTuple

LIST_LINE_PATTERN = re.compile(r"(\s*)([-*+]|\d+\.)( )(.*)")
INDENT_SIZE = 2

MarkerType = Literal["bullet", "numbered"]


@dataclass(frozen=True)
class ListItem:
    indent: int
    marker_type: MarkerType
    content: str


@dataclass(frozen=True)
class PlainLine:
    content: str


ListLine = ListItem | PlainLine


@dataclass(frozen=True)
class ListRange:
    lines: tuple[ListLine, ...]
    start_offset: int
    end_offset: int


class LineInfo(NamedTuple):
    line_index: int
    line_start: int
    line_end: int
    line: str
    offset_in_line: int


class ListBlock(NamedTuple):
    start_offset: int
    end_offset: int
    line_index_in_block: int


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------
def parse_line(line: str) -> ListLine:
    match = LIST_LINE_PATTERN.fullmatch(line)
    if match is None:
        return PlainLine(line)
    marker_type: MarkerType = "numbered" if match.group(2)[0].isdigit() else "bullet"
    return ListItem(len(match.group(1)) // INDENT_SIZE, marker_type, match.group(4))


def parse_list_item(line: str) -> ListItem | None:
    parsed = parse_line(line)
    return parsed if isinstance(parsed, ListItem) else None


def is_list_line(line: str) -> bool:
    return LIST_LINE_PATTERN.fullmatch(line) is not None


def get_list_prefix_length(line: str) -> int | None:
    """Length of indent, marker and space, or None for a non-list line."""
    match = LIST_LINE_PATTERN.fullmatch(line)
    if match is None:
        return None
    return match.start(4)


def get_line_info(source: str, offset: int) -> LineInfo:
    """Locate the source line containing *offset*."""
    pos = 0
    lines = source.split("\n")
    for index, line in enumerate(lines):
        line_end = pos + len(line)
        if pos <= offset <= line_end:
            return LineInfo(index, pos, line_end, line, offset - pos)
        pos = line_end + 1
    last = lines[-1]
    last_start = len(source) - len(last)
    return LineInfo(len(lines) - 1, last_start, len(source), last, offset - last_start)


def line_offset(lines: list[str], index: int) -> int:
    """Source offset where line *index* of *lines* starts."""
    return sum(len(line) + 1 for line in lines[:index])


def count_numbered_items_before(source: str, before_line_index: int) -> int:
    """Top-level numbered items on lines before *before_line_index*."""
    count = 0
    for line in source.split("\n")[:before_line_index]:
        item = parse_list_item(line)
        if item is not None and item.marker_type == "numbered" and item.indent == 0:
            count += 1
    return count


def find_list_block(source: str, line_index: int) -> ListBlock | None:
    """The run of consecutive list lines around *line_index*."""
    lines = source.split("\n")
    if not 0 <= line_index < len(lines) or not is_list_line(lines[line_index]):
        return None

    first = line_index
    while first > 0 and is_list_line(lines[first - 1]):
        first -= 1
    last = line_index
    while last < len(lines) - 1 and is_list_line(lines[last + 1]):
        last += 1

    start = line_offset(lines, first)
    end = start + len("\n".join(lines[first : last + 1]))
    return ListBlock(start, end, line_index - first)


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------
def parse_list_range(source: str, start_offset: int, end_offset: int) -> ListRange:
    text = source[start_offset:end_offset]
    lines = tuple(parse_line(line) for line in text.split("\n"))
    return ListRange(lines, start_offset, end_offset)


def serialize_list_range(list_range: ListRange, start_number: int = 1) -> str:
    """Render *list_range*, numbering each indent level from 1.

    Bullets leave numbering alone; a blank plain line restarts it, and a
    numbered item restarts every deeper level.
    """
    numbers: dict[int, int] = {0: start_number}
    rendered: list[str] = []
    for line in list_range.lines:
        if isinstance(line, PlainLine):
            if not line.content.strip():
                numbers.clear()
            rendered.append(line.content)
            continue

        indent = " " * (line.indent * INDENT_SIZE)
        if line.marker_type == "bullet":
            rendered.append(f"{indent}- {line.content}")
            continue

        current = numbers.get(line.indent, 1)
        numbers[line.indent] = current + 1
        for level in [level for level in numbers if level > line.indent]:
            del numbers[level]
        rendered.append(f"{indent}{current}. {line.content}")
    return "\n".join(rendered)


def renumber_block(source: str, line_index: int, start_number: int = 1) -> str:
    """Rewrite the list block around *line_index* with fresh numbering."""
    block = find_list_block(source, line_index)
    if block is None:
        return source
    list_range = parse_list_range(source, block.start_offset, block.end_offset)
    serialized = serialize_list_range(list_range, start_number)
    return source[: block.start_offset] + serialized + source[block.end_offset :]


def _replace_line(list_range: ListRange, index: int, line: ListLine) -> ListRange:
    lines = list(list_range.lines)
    lines[index] = line
    return replace(list_range, lines=tuple(lines))


def insert_item_after(
    list_range: ListRange, line_index: int, item: ListItem
) -> ListRange:
    lines = list(list_range.lines)
    lines.insert(line_index + 1, item)
    return replace(list_range, lines=tuple(lines))


def remove_item(list_range: ListRange, line_index: int) -> ListRange:
    lines = list(list_range.lines)
    del lines[line_index]
    return replace(list_range, lines=tuple(lines))


def convert_to_plain_text(list_range: ListRange, line_index: int) -> ListRange:
    line = list_range.lines[line_index]
    if not isinstance(line, ListItem):
        return list_range
    return _replace_line(list_range, line_index, PlainLine(line.content))


def indent_item(list_range: ListRange, line_index: int) -> ListRange:
    line = list_range.lines[line_index]
    if not isinstance(line, ListItem):
        return list_range
    return _replace_line(list_range, line_index, replace(line, indent=line.indent + 1))


def outdent_item(list_range: ListRange, line_index: int) -> ListRange:
    """Move an item one level out; a top-level item becomes plain text."""
    line = list_range.lines[line_index]
    if not isinstance(line, ListItem):
        return list_range
    if line.indent == 0:
        return convert_to_plain_text(list_range, line_index)
    return _replace_line(list_range, line_index, replace(line, indent=line.indent - 1))


def update_item_content(
    list_range: ListRange, line_index: int, content: str
) -> ListRange:
    line = list_range.lines[line_index]
    if not isinstance(line, ListItem):
        return list_range
    return _replace_line(list_range, line_index, replace(line, content=content))


def merge_items(
    list_range: ListRange, target_index: int, source_index: int
) -> ListRange:
    """Append item *source_index* to *target_index*, joined by one space."""
    target = list_range.lines[target_index]
    merged = list_range.lines[source_index]
    if not isinstance(target, ListItem) or not isinstance(merged, ListItem):
        return list_range
    content = target.content + (f" {merged.content}" if merged.content else "")
    updated = update_item_content(list_range, target_index, content)
    return remove_item(updated, source_index)
