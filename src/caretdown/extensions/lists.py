"""Plain-text lists: ``- item``, ``* item``, ``+ item`` and ``1. item``.

List lines are ordinary paragraphs whose markers are visible text. The
extension only steps in while editing: it continues items on Enter, folds
items together on Backspace and Delete, indents, and keeps numbered lists
numbered.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from caretdown.core.commands import (
    DeleteBackward,
    DeleteForward,
    EditCommand,
    Indent,
    Insert,
    InsertLineBreak,
    Outdent,
)
from caretdown.core.extension import EditResult, Extension
from caretdown.core.types import Selection
from caretdown.extensions.list_ast import (
    INDENT_SIZE,
    ListItem,
    convert_to_plain_text,
    count_numbered_items_before,
    find_list_block,
    get_line_info,
    get_list_prefix_length,
    insert_item_after,
    is_list_line,
    line_offset,
    parse_list_item,
    parse_list_range,
    renumber_block,
    serialize_list_range,
    update_item_content,
)

if TYPE_CHECKING:
    from caretdown.core.runtime import Runtime, RuntimeState
    from caretdown.extensions.list_ast import ListBlock, ListRange

BULLET_MARKERS = ("-", "*", "+")
BULLET_PREFIX = re.compile(r"(\s*)([-*+])( )")
NUMBERED_PREFIX = re.compile(r"(\s*)(\d+)\.( )")


@dataclass(frozen=True)
class ToggleBulletList(EditCommand):
    type = "toggle-bullet-list"


@dataclass(frozen=True)
class ToggleNumberedList(EditCommand):
    type = "toggle-numbered-list"


def _selection_at_sources(
    runtime: Runtime, source: str, start: int, end: int
) -> EditResult:
    cursor_map = runtime.create_state(source).map
    length = cursor_map.source_length
    start = max(0, min(start, length))
    end = max(0, min(end, length))
    start_cursor = cursor_map.source_to_cursor(start, "forward").cursor_offset
    end_cursor = cursor_map.source_to_cursor(end, "backward").cursor_offset
    selection = Selection(start_cursor, max(start_cursor, end_cursor), "forward")
    return EditResult(source, selection)


def _splice_range(source: str, block: ListBlock, list_range: ListRange) -> str:
    """*source* with *block* replaced by the serialized *list_range*."""
    serialized = serialize_list_range(list_range)
    return source[: block.start_offset] + serialized + source[block.end_offset :]


def _selected_lines(state: RuntimeState) -> tuple[int, int]:
    """First and last source line touched by the selection."""
    selection = state.selection.ordered()
    start_source = state.map.cursor_to_source(selection.start, "backward")
    last = max(selection.start, selection.end - 1)
    end_source = state.map.cursor_to_source(last, "forward")
    return (
        get_line_info(state.source, start_source).line_index,
        get_line_info(state.source, end_source).line_index,
    )


def _content_of(line: str) -> tuple[int, str]:
    """Indent level and text of *line* with any list marker removed."""
    base_indent = len(line) - len(line.lstrip())
    item = parse_list_item(line)
    return base_indent // INDENT_SIZE, item.content if item else line[base_indent:]


# ---------------------------------------------------------------------------
# Line breaks
# ---------------------------------------------------------------------------
def _insert_line_break(state: RuntimeState) -> EditResult | None:
    runtime = state.runtime
    selection = state.selection.ordered()
    working = state.source
    caret = state.map.cursor_to_source(selection.start, "forward")
    if not selection.is_collapsed:
        source_from = state.map.cursor_to_source(selection.start, "backward")
        source_to = state.map.cursor_to_source(selection.end, "forward")
        working = working[:source_from] + working[source_to:]
        caret = source_from

    info = get_line_info(working, caret)
    item = parse_list_item(info.line)
    prefix_length = get_list_prefix_length(info.line)
    if item is None or prefix_length is None:
        return None

    if info.offset_in_line == 0:
        next_source = working[:caret] + "\n" + working[caret:]
        return runtime.result_at_source(next_source, caret + 1)

    block = find_list_block(working, info.line_index)
    if block is None:
        return None
    list_range = parse_list_range(working, block.start_offset, block.end_offset)
    index = block.line_index_in_block

    if not item.content.strip():
        # Enter on an empty item ends the list.
        list_range = convert_to_plain_text(list_range, index)
        next_source = _splice_range(working, block, list_range)
        return runtime.result_at_source(next_source, info.line_start)

    split_at = max(info.line_start + prefix_length, caret)
    before = working[info.line_start + prefix_length : split_at]
    after = working[split_at : info.line_end]
    list_range = update_item_content(list_range, index, before)
    new_item = ListItem(item.indent, item.marker_type, after)
    list_range = insert_item_after(list_range, index, new_item)
    next_source = _splice_range(working, block, list_range)

    next_lines = next_source.split("\n")
    new_line = info.line_index + 1
    new_prefix = get_list_prefix_length(next_lines[new_line]) or 0
    caret = line_offset(next_lines, new_line) + new_prefix
    return runtime.result_at_source(next_source, caret)


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------
def _delete_last_line(state: RuntimeState) -> EditResult | None:
    """Deleting a whole trailing list line takes its newline with it."""
    source = state.source
    selection = state.selection.ordered()
    start_source = state.map.cursor_to_source(selection.start, "backward")
    end_source = state.map.cursor_to_source(selection.end, "forward")

    start_info = get_line_info(source, start_source)
    if not is_list_line(start_info.line):
        return None
    end_info = get_line_info(source, max(0, end_source - 1))
    is_whole_line = start_info.offset_in_line == 0 and end_source == start_info.line_end
    is_last_line = start_info.line_index == source.count("\n")
    if start_info.line_index != end_info.line_index:
        return None
    if not is_whole_line or not is_last_line:
        return None

    delete_start = start_info.line_start
    if delete_start > 0 and source[delete_start - 1] == "\n":
        delete_start -= 1
    next_source = source[:delete_start] + source[end_source:]
    return state.runtime.result_at_source(next_source, delete_start)


def _delete_backward(state: RuntimeState) -> EditResult | None:
    if not state.selection.is_collapsed:
        return _delete_last_line(state)

    runtime = state.runtime
    source = state.source
    cursor = state.selection.start
    if cursor == 0:
        return None

    backward = get_line_info(source, state.map.cursor_to_source(cursor, "backward"))
    forward = get_line_info(source, state.map.cursor_to_source(cursor, "forward"))
    forward_prefix = get_list_prefix_length(forward.line)
    if forward_prefix is not None and forward.offset_in_line == forward_prefix:
        info, prefix_length = forward, forward_prefix
    else:
        info, prefix_length = backward, get_list_prefix_length(backward.line)

    lines = source.split("\n")
    previous = lines[info.line_index - 1] if info.line_index > 0 else None

    if prefix_length is None:
        # Plain line right after a list: join it onto the last item.
        if info.offset_in_line == 0 and previous is not None and is_list_line(previous):
            joined = source[: info.line_start - 1] + source[info.line_start :]
            renumbered = renumber_block(joined, info.line_index - 1)
            return runtime.result_at_source(renumbered, info.line_start - 1)
        return None

    if info.offset_in_line == prefix_length:
        block = find_list_block(source, info.line_index)
        if block is None:
            return None
        list_range = parse_list_range(source, block.start_offset, block.end_offset)
        list_range = convert_to_plain_text(list_range, block.line_index_in_block)
        next_source = _splice_range(source, block, list_range)
        return runtime.result_at_source(next_source, info.line_start)

    if info.offset_in_line != 0 or previous is None:
        return None

    current_item = parse_list_item(info.line)
    previous_item = parse_list_item(previous)
    if current_item is not None and previous_item is None:
        joined = source[: info.line_start - 1] + source[info.line_start :]
        joined_lines = joined.split("\n")
        list_line = get_line_info(joined, info.line_start - 1).line_index
        while list_line < len(joined_lines):
            if is_list_line(joined_lines[list_line]):
                break
            list_line += 1
        renumbered = renumber_block(joined, list_line)
        return runtime.result_at_source(renumbered, info.line_start - 1)

    if current_item is not None and previous_item is not None:
        previous_prefix = get_list_prefix_length(previous) or 0
        caret = line_offset(lines, info.line_index - 1) + previous_prefix
        caret += len(previous_item.content)
        merged = previous_item.content
        if current_item.content:
            merged += f" {current_item.content}"
        lines[info.line_index - 1] = previous[:previous_prefix] + merged
        del lines[info.line_index]
        renumbered = renumber_block("\n".join(lines), info.line_index - 1)
        return runtime.result_at_source(renumbered, caret)
    return None


def _delete_forward(state: RuntimeState) -> EditResult | None:
    """Delete at the end of a line next to a list joins the lines."""
    selection = state.selection
    if not selection.is_collapsed or selection.start >= state.map.cursor_length:
        return None
    source = state.source
    caret = state.map.cursor_to_source(selection.start, "forward")
    info = get_line_info(source, caret)
    if caret != info.line_end or caret >= len(source):
        return None

    lines = source.split("\n")
    if info.line_index + 1 >= len(lines):
        return None
    if not is_list_line(info.line) and not is_list_line(lines[info.line_index + 1]):
        return None
    joined = source[:caret] + source[caret + 1 :]
    if find_list_block(joined, info.line_index) is None:
        return None
    renumbered = renumber_block(joined, info.line_index)
    return state.runtime.result_at_source(renumbered, caret)


# ---------------------------------------------------------------------------
# Indentation
# ---------------------------------------------------------------------------
def _indent(state: RuntimeState) -> EditResult | None:
    start_line, end_line = _selected_lines(state)
    lines = state.source.split("\n")
    selected = range(start_line, end_line + 1)
    if not any(is_list_line(lines[i]) for i in selected):
        return None

    indented = 0
    for i in selected:
        if is_list_line(lines[i]):
            lines[i] = " " * INDENT_SIZE + lines[i]
            indented += 1
    next_source = renumber_block("\n".join(lines), start_line)

    selection = state.selection.ordered()
    shift = INDENT_SIZE if is_list_line(lines[start_line]) else 0
    end = selection.end + indented * INDENT_SIZE
    return EditResult(next_source, Selection(selection.start + shift, end, "forward"))


def _outdent(state: RuntimeState) -> EditResult | None:
    start_line, end_line = _selected_lines(state)
    original = state.source.split("\n")
    selected = range(start_line, end_line + 1)
    if not any(is_list_line(original[i]) for i in selected):
        return None

    lines = list(original)
    removed = 0
    for i in selected:
        item = parse_list_item(original[i])
        if item is None:
            continue
        if item.indent > 0:
            lines[i] = original[i][INDENT_SIZE:]
            removed += INDENT_SIZE
        else:
            removed += get_list_prefix_length(original[i]) or 0
            lines[i] = item.content
    next_source = "\n".join(lines)

    # Renumber the list the selection left, then whatever continues after it.
    outside = next(
        (
            i
            for i, line in enumerate(lines)
            if i not in selected and is_list_line(line)
        ),
        None,
    )
    first_block_end = -1
    if outside is not None:
        block = find_list_block(next_source, outside)
        if block is not None:
            first_block_end = block.end_offset
            next_source = renumber_block(next_source, outside)
    following = next(
        (i for i in range(end_line + 1, len(lines)) if is_list_line(lines[i])),
        None,
    )
    if following is not None:
        block = find_list_block(next_source, following)
        if block is not None and block.start_offset >= first_block_end:
            start_number = count_numbered_items_before(next_source, following) + 1
            next_source = renumber_block(next_source, following, start_number)

    selection = state.selection.ordered()
    start_source = state.map.cursor_to_source(selection.start, "forward")
    end_source = state.map.cursor_to_source(selection.end, "backward")
    line_start = line_offset(original, start_line)
    first_item = parse_list_item(original[start_line])
    if first_item is not None and first_item.indent == 0:
        return _selection_at_sources(state.runtime, next_source, line_start, line_start)
    new_start = max(line_start, start_source - INDENT_SIZE)
    new_end = max(new_start, end_source - removed)
    return _selection_at_sources(state.runtime, next_source, new_start, new_end)


# ---------------------------------------------------------------------------
# Toggles
# ---------------------------------------------------------------------------
def _toggle_list(state: RuntimeState, bullet: bool) -> EditResult | None:
    start_line, end_line = _selected_lines(state)
    lines = state.source.split("\n")
    selected = [i for i in range(start_line, end_line + 1) if lines[i].strip()]
    if not selected:
        return None

    pattern = BULLET_PREFIX if bullet else NUMBERED_PREFIX
    all_in_target = all(pattern.match(lines[i]) for i in selected)
    number = 1
    for i in selected:
        if all_in_target:
            item = parse_list_item(lines[i])
            if item is not None:
                lines[i] = item.content
            continue
        level, content = _content_of(lines[i])
        if bullet:
            marker = "-"
        else:
            marker = f"{number}."
            number += 1
        lines[i] = " " * (level * INDENT_SIZE) + f"{marker} {content}"

    next_source = "\n".join(lines)
    if not all_in_target and not bullet:
        next_source = renumber_block(next_source, start_line)

    start = line_offset(lines, start_line)
    end = start + len("\n".join(lines[start_line : end_line + 1]))
    return _selection_at_sources(state.runtime, next_source, start, end)


def _insert_marker_over_lines(state: RuntimeState, marker: str) -> EditResult | None:
    """Typing a bullet over whole selected lines turns them into items."""
    if marker not in BULLET_MARKERS:
        return None
    start_line, end_line = _selected_lines(state)
    lines = state.source.split("\n")
    start_offset = line_offset(lines, start_line)
    end_offset = start_offset + len("\n".join(lines[start_line : end_line + 1]))

    selection = state.selection.ordered()
    if state.map.cursor_to_source(selection.start, "backward") != start_offset:
        return None
    if state.map.cursor_to_source(selection.end, "forward") != end_offset:
        return None

    for i in range(start_line, end_line + 1):
        if not lines[i].strip():
            continue
        level, content = _content_of(lines[i])
        lines[i] = " " * (level * INDENT_SIZE) + f"{marker} {content}"
    caret = start_offset + (get_list_prefix_length(lines[start_line]) or 0)
    return state.runtime.result_at_source("\n".join(lines), caret)


def _switch_marker(state: RuntimeState, char: str) -> EditResult | EditCommand | None:
    """Typing another bullet character over a bullet swaps the marker."""
    selection = state.selection
    if not selection.is_collapsed:
        start_line, end_line = _selected_lines(state)
        if start_line != end_line and char in BULLET_MARKERS:
            return ToggleBulletList()
        return _insert_marker_over_lines(state, char)

    if char not in BULLET_MARKERS:
        return None
    caret = state.map.cursor_to_source(selection.start, selection.affinity or "forward")
    info = get_line_info(state.source, caret)
    match = BULLET_PREFIX.match(info.line)
    if match is None or not is_list_line(info.line):
        return None
    if info.offset_in_line > len(match.group(1)) or match.group(2) == char:
        return None

    marker_at = info.line_start + len(match.group(1))
    next_source = state.source[:marker_at] + char + state.source[marker_at + 1 :]
    after = selection.start + 1
    return EditResult(next_source, Selection(after, after, "forward"))


def on_edit(
    command: EditCommand, state: RuntimeState
) -> EditResult | EditCommand | None:
    if isinstance(command, InsertLineBreak):
        return _insert_line_break(state)
    if isinstance(command, DeleteBackward):
        return _delete_backward(state)
    if isinstance(command, DeleteForward):
        return _delete_forward(state)
    if isinstance(command, Indent):
        return _indent(state)
    if isinstance(command, Outdent):
        return _outdent(state)
    if isinstance(command, ToggleBulletList):
        return _toggle_list(state, bullet=True)
    if isinstance(command, ToggleNumberedList):
        return _toggle_list(state, bullet=False)
    if isinstance(command, Insert) and len(command.text) == 1:
        return _switch_marker(state, command.text)
    return None


list_extension = Extension(name="list", on_edit=on_edit)
