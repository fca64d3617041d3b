"""Core edit algorithms run after every extension declined a command.

Structural edits work on the line/run view of the doc so they can cross
formatting boundaries without touching syntax markers. When the tree shape
rules them out (the selection spans different containers, or ends inside a
non-paragraph block) the edit falls back to a plain source splice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from caretdown.core.commands import (
    DeleteBackward,
    DeleteForward,
    ExitBlockWrapper,
    Insert,
    InsertHardLineBreak,
    InsertLineBreak,
)
from caretdown.core.lines import (
    block_at_path,
    grapheme_at_cursor,
    line_index_for_path,
    line_start_offsets,
    nearest_wrapper_at_path,
    resolve_cursor_to_line,
    update_blocks_at_path,
)
from caretdown.core.runs import (
    Mark,
    Run,
    common_marks_prefix,
    exiting_marks,
    marks_at_cursor,
    marks_at_index,
    normalize_runs,
    paragraph_to_runs,
    preferred_affinity_at_gap,
    preferred_typing_affinity_at_gap,
    runs_to_inlines,
    slice_runs,
    split_runs_at,
    split_runs_on_newlines,
)
from caretdown.core.types import BlockAtom, BlockWrapper, Doc, Paragraph, Selection

if TYPE_CHECKING:
    from collections.abc import Sequence

    from caretdown.core.commands import EditCommand
    from caretdown.core.lines import FlatLine
    from caretdown.core.runs import Marks
    from caretdown.core.runtime import Runtime, RuntimeState
    from caretdown.core.types import Affinity, Block

logger = logging.getLogger(__name__)

# Zero-width space: keeps an otherwise empty wrapper alive in source.
PLACEHOLDER = "\u200b"


@dataclass(frozen=True)
class StructuralEdit:
    doc: Doc
    next_cursor: int
    next_affinity: Affinity = "forward"


def _clamp(value: int, upper: int) -> int:
    return max(0, min(value, upper))


def _runs_of(block: Block) -> list[Run]:
    return paragraph_to_runs(block) if isinstance(block, Paragraph) else []


def _paragraph(runs: Sequence[Run]) -> Paragraph:
    return Paragraph(runs_to_inlines(normalize_runs(runs)))


def _with_marks(runs: Sequence[Run], base: Marks) -> list[Run]:
    if not base:
        return list(runs)
    return [Run(run.text, (*base, *run.marks), run.atom) for run in runs]


def _replacement_text(command: EditCommand) -> str:
    if isinstance(command, Insert):
        return command.text
    if isinstance(command, (InsertLineBreak, InsertHardLineBreak, ExitBlockWrapper)):
        return "\n"
    return ""


def _is_noop_delete(
    command: EditCommand, selection: Selection, cursor_length: int
) -> bool:
    if not selection.is_collapsed:
        return False
    if isinstance(command, DeleteBackward):
        return selection.start <= 0
    if isinstance(command, DeleteForward):
        return selection.start >= cursor_length
    return False


def _effective_range(
    command: EditCommand, selection: Selection, cursor_length: int
) -> tuple[int, int]:
    start = _clamp(selection.start, cursor_length)
    end = _clamp(selection.end, cursor_length)
    if start == end:
        if isinstance(command, DeleteBackward):
            return max(0, start - 1), start
        if isinstance(command, DeleteForward):
            return start, min(cursor_length, start + 1)
    return start, end


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def apply_core_edit(
    runtime: Runtime, command: EditCommand, state: RuntimeState
) -> RuntimeState:
    """Apply a core command that no extension handled."""
    selection = state.selection.ordered()
    if _is_noop_delete(command, selection, state.map.cursor_length):
        return state

    structural = apply_structural_edit(runtime, command, state.doc, selection)
    if structural is None:
        logger.debug("Structural edit declined %s; splicing source", command.type)
        return splice_edit(runtime, command, state, selection)

    interim = runtime.serialize(runtime.normalize_tree(structural.doc))
    cursor = _clamp(structural.next_cursor, interim.map.cursor_length)
    caret_source = interim.map.cursor_to_source(cursor, structural.next_affinity)
    next_state = runtime.create_state(interim.source)
    caret = next_state.map.source_to_cursor(
        min(caret_source, next_state.map.source_length), structural.next_affinity
    )
    return next_state.with_selection(
        Selection(caret.cursor_offset, caret.cursor_offset, caret.affinity)
    )


def splice_edit(
    runtime: Runtime,
    command: EditCommand,
    state: RuntimeState,
    selection: Selection,
) -> RuntimeState:
    """Replace the selected source span with the command's text."""
    cursor_map = state.map
    length = cursor_map.cursor_length
    start, end = _effective_range(command, selection, length)
    text = _replacement_text(command)

    if start == 0 and end == length:
        source_from, source_to = 0, len(state.source)
    elif start == end:
        affinity = selection.affinity or "forward"
        source_from = source_to = cursor_map.cursor_to_source(start, affinity)
    else:
        source_from = cursor_map.cursor_to_source(start, "forward")
        source_to = max(source_from, cursor_map.cursor_to_source(end, "backward"))

    next_source = state.source[:source_from] + text + state.source[source_to:]
    next_state = runtime.create_state(next_source)
    caret = next_state.map.source_to_cursor(
        min(source_from + len(text), next_state.map.source_length), "forward"
    )
    return next_state.with_selection(
        Selection(caret.cursor_offset, caret.cursor_offset, caret.affinity)
    )


# ---------------------------------------------------------------------------
# Structural engine
# ---------------------------------------------------------------------------
def marks_around_cursor(
    runtime: Runtime, doc: Doc, cursor_offset: int
) -> tuple[Marks, Marks]:
    """Marks of the graphemes left and right of *cursor_offset*."""
    lines = runtime.lines(doc)
    location = resolve_cursor_to_line(lines, cursor_offset)
    runs = _runs_of(lines[location.line_index].block)
    offset = location.offset_in_line
    left = marks_at_index(runs, offset - 1) if offset > 0 else None
    right = marks_at_index(runs, offset)
    return left or (), right or ()


def _common_marks_across(
    lines: Sequence[FlatLine], start: int, end: int
) -> Marks | None:
    """Marks shared by every selected grapheme, or None when nothing is selected."""
    starts = line_start_offsets(lines)
    selected: list[Run] = []
    for line, line_start in zip(lines, starts, strict=True):
        line_end = line_start + line.cursor_length
        lo, hi = max(start, line_start), min(end, line_end)
        if lo >= hi:
            continue
        parts = slice_runs(_runs_of(line.block), lo - line_start, hi - line_start)
        selected.extend(parts.selected)
    if not selected:
        return None
    return common_marks_prefix(selected)


def _build_replacement_blocks(
    before: list[Run],
    after: list[Run],
    insert_blocks: Sequence[Block],
    base: Marks,
) -> list[Block]:
    paragraph_indices = [
        i for i, block in enumerate(insert_blocks) if isinstance(block, Paragraph)
    ]
    if not paragraph_indices:
        return [_paragraph([*before, *after]), *insert_blocks]

    first, last = paragraph_indices[0], paragraph_indices[-1]
    replacement: list[Block] = []
    for i, block in enumerate(insert_blocks):
        if not isinstance(block, Paragraph):
            replacement.append(block)
            continue
        runs = _with_marks(paragraph_to_runs(block), base)
        if i == first:
            runs = [*before, *runs]
        if i == last:
            runs = [*runs, *after]
        replacement.append(_paragraph(runs))
    return replacement


def _insert_cursor_length(runtime: Runtime, insert_doc: Doc) -> int:
    lines = runtime.lines(insert_doc)
    return sum(line.cursor_length + (1 if line.has_newline else 0) for line in lines)


def _line_start(runtime: Runtime, doc: Doc, line_index: int) -> int:
    starts = line_start_offsets(runtime.lines(doc))
    return starts[_clamp(line_index, len(starts) - 1)]


def _merge_across_parents(
    runtime: Runtime, doc: Doc, lines: Sequence[FlatLine], line_index: int
) -> StructuralEdit | None:
    previous, current = lines[line_index - 1], lines[line_index]
    if not isinstance(previous.block, Paragraph):
        return None
    if not isinstance(current.block, Paragraph):
        return None

    merged = _paragraph(
        [*paragraph_to_runs(previous.block), *paragraph_to_runs(current.block)]
    )
    blocks = update_blocks_at_path(
        doc.blocks,
        previous.parent_path,
        lambda siblings: (
            *siblings[: previous.index_in_parent],
            merged,
            *siblings[previous.index_in_parent + 1 :],
        ),
    )
    blocks = update_blocks_at_path(
        blocks,
        current.parent_path,
        lambda siblings: (
            *siblings[: current.index_in_parent],
            *siblings[current.index_in_parent + 1 :],
        ),
    )
    next_doc = Doc(blocks)
    next_lines = runtime.lines(next_doc)
    merged_index = line_index_for_path(next_lines, previous.path)
    join = line_start_offsets(next_lines)[max(0, merged_index)] + previous.cursor_length
    return StructuralEdit(next_doc, join, "backward")


def _edit_block_atom(
    runtime: Runtime,
    command: EditCommand,
    doc: Doc,
    lines: Sequence[FlatLine],
    caret: int,
) -> StructuralEdit | None:
    """Line break and backspace around atomic blocks."""
    location = resolve_cursor_to_line(lines, caret)
    line = lines[location.line_index]

    if isinstance(line.block, BlockAtom):
        index = line.index_in_parent
        if isinstance(command, InsertLineBreak):
            blocks = update_blocks_at_path(
                doc.blocks,
                line.parent_path,
                lambda siblings: (
                    *siblings[: index + 1],
                    Paragraph(),
                    *siblings[index + 1 :],
                ),
            )
            next_doc = Doc(blocks)
            next_line = location.line_index + 1
            return StructuralEdit(next_doc, _line_start(runtime, next_doc, next_line))
        if isinstance(command, DeleteBackward):
            blocks = update_blocks_at_path(
                doc.blocks,
                line.parent_path,
                lambda siblings: (
                    (*siblings[:index], *siblings[index + 1 :]) or (Paragraph(),)
                ),
            )
            next_doc = Doc(blocks or (Paragraph(),))
            next_line = location.line_index
            return StructuralEdit(next_doc, _line_start(runtime, next_doc, next_line))
        return None

    if (
        isinstance(command, DeleteBackward)
        and isinstance(line.block, Paragraph)
        and location.offset_in_line == 0
        and location.line_index > 0
    ):
        previous = lines[location.line_index - 1]
        if (
            isinstance(previous.block, BlockAtom)
            and previous.parent_path == line.parent_path
            and previous.index_in_parent == line.index_in_parent - 1
        ):
            index = line.index_in_parent
            blocks = update_blocks_at_path(
                doc.blocks,
                line.parent_path,
                lambda siblings: (
                    *siblings[: index - 1],
                    siblings[index],
                    siblings[index - 1],
                    *siblings[index + 1 :],
                ),
            )
            next_doc = Doc(blocks)
            next_line = location.line_index - 1
            return StructuralEdit(next_doc, _line_start(runtime, next_doc, next_line))
    return None


def _exit_block_wrapper(
    runtime: Runtime,
    doc: Doc,
    line: FlatLine,
    line_index: int,
    offset: int,
) -> StructuralEdit | None:
    found = nearest_wrapper_at_path(doc.blocks, line.path)
    if found is None:
        return None
    wrapper, wrapper_path = found
    paragraphs = [block for block in wrapper.blocks if isinstance(block, Paragraph)]
    if len(wrapper.blocks) != 1 or len(paragraphs) != 1:
        return None

    before, after = split_runs_at(paragraph_to_runs(paragraphs[0]), offset)
    kept = BlockWrapper(wrapper.kind, (_paragraph(before),), wrapper.data)
    parent_path, index = wrapper_path[:-1], wrapper_path[-1]
    blocks = update_blocks_at_path(
        doc.blocks,
        parent_path,
        lambda siblings: (
            *siblings[:index],
            kept,
            _paragraph(after),
            *siblings[index + 1 :],
        ),
    )
    next_doc = Doc(blocks)
    return StructuralEdit(next_doc, _line_start(runtime, next_doc, line_index + 1))


def apply_structural_edit(
    runtime: Runtime,
    command: EditCommand,
    doc: Doc,
    selection: Selection,
) -> StructuralEdit | None:
    """Apply *command* to the doc tree, or return None to fall back to a splice."""
    lines = runtime.lines(doc)
    cursor_length = sum(
        line.cursor_length + (1 if line.has_newline else 0) for line in lines
    )
    affinity = selection.affinity or "forward"
    start, end = _effective_range(command, selection, cursor_length)
    collapsed = selection.is_collapsed

    if collapsed:
        atom_edit = _edit_block_atom(runtime, command, doc, lines, selection.start)
        if atom_edit is not None:
            return atom_edit

    # Typing over the placeholder replaces it.
    if (
        isinstance(command, Insert)
        and start == end
        and grapheme_at_cursor(lines, start) == PLACEHOLDER
    ):
        end = start + 1

    if isinstance(command, DeleteBackward) and collapsed:
        caret_location = resolve_cursor_to_line(lines, selection.start)
        caret_line = caret_location.line_index
        if caret_location.offset_in_line == 0 and caret_line > 0:
            previous = lines[caret_line - 1]
            if previous.parent_path != lines[caret_line].parent_path:
                return _merge_across_parents(runtime, doc, lines, caret_line)

    start_location = resolve_cursor_to_line(lines, start)
    end_location = resolve_cursor_to_line(lines, end)
    start_line = lines[start_location.line_index]
    end_line = lines[end_location.line_index]

    if isinstance(command, ExitBlockWrapper) and start == end:
        exited = _exit_block_wrapper(
            runtime,
            doc,
            start_line,
            start_location.line_index,
            start_location.offset_in_line,
        )
        if exited is not None:
            return exited

    if start_line.parent_path != end_line.parent_path:
        return None
    if start_line.index_in_parent > end_line.index_in_parent:
        return None
    if not isinstance(start_line.block, Paragraph):
        return None
    if not isinstance(end_line.block, Paragraph):
        return None

    start_runs = paragraph_to_runs(start_line.block)
    before, _ = split_runs_at(start_runs, start_location.offset_in_line)
    end_runs = paragraph_to_runs(end_line.block)
    _, after = split_runs_at(end_runs, end_location.offset_in_line)

    base = _common_marks_across(lines, start, end)
    if base is None:
        base = marks_at_cursor(start_runs, start_location.offset_in_line, affinity)

    replace_text = _replacement_text(command)
    insert_doc = runtime.parse(replace_text)
    replacement = _build_replacement_blocks(before, after, insert_doc.blocks, base)

    first_index = start_line.index_in_parent
    last_index = end_line.index_in_parent
    blocks = update_blocks_at_path(
        doc.blocks,
        start_line.parent_path,
        lambda siblings: (
            *siblings[:first_index],
            *replacement,
            *siblings[last_index + 1 :],
        ),
    )
    next_doc = Doc(blocks)
    next_cursor = start
    if replace_text:
        next_cursor += _insert_cursor_length(runtime, insert_doc)

    if isinstance(command, Insert):
        fallback: Affinity = affinity if start == end or collapsed else "forward"
    elif isinstance(command, DeleteBackward):
        fallback = "backward"
    else:
        fallback = "forward"

    left, right = marks_around_cursor(runtime, next_doc, next_cursor)
    if isinstance(command, Insert):
        next_affinity = preferred_typing_affinity_at_gap(
            left, right, fallback, runtime.is_inclusive_at_end
        )
    else:
        next_affinity = preferred_affinity_at_gap(left, right, fallback)

    next_lines = runtime.lines(next_doc)
    next_location = resolve_cursor_to_line(next_lines, next_cursor)
    if next_location.line_index > 0 and next_location.offset_in_line == 0:
        next_affinity = "forward"
    return StructuralEdit(next_doc, next_cursor, next_affinity)


# ---------------------------------------------------------------------------
# Inline toggles
# ---------------------------------------------------------------------------
def toggle_inline(runtime: Runtime, state: RuntimeState, marker: str) -> RuntimeState:
    """Wrap, unwrap or exit the inline wrapper registered for *marker*."""
    spec = runtime.toggle_spec(marker)
    if spec is None:
        logger.debug("No inline wrapper registered for marker %r", marker)
        return state

    selection = state.selection.ordered()
    if selection.is_collapsed:
        return _toggle_collapsed(
            runtime, state, selection, spec.kind, spec.open, spec.close
        )

    lines = runtime.lines(state.doc)
    common = _common_marks_across(lines, selection.start, selection.end)
    if common is None:
        return state

    unwrap = any(mark.kind == spec.kind for mark in common)
    starts = line_start_offsets(lines)
    changed = False
    next_blocks = state.doc.blocks
    for line, line_start in zip(lines, starts, strict=True):
        lo = max(selection.start, line_start)
        hi = min(selection.end, line_start + line.cursor_length)
        if lo >= hi or not isinstance(line.block, Paragraph):
            continue
        runs = paragraph_to_runs(line.block)
        parts = slice_runs(runs, lo - line_start, hi - line_start)
        if unwrap:
            selected = [_without_innermost(run, spec.kind) for run in parts.selected]
        else:
            mark = Mark.of(spec.kind)
            selected = [
                run if run.text == "\n" else Run(run.text, (*run.marks, mark), run.atom)
                for run in split_runs_on_newlines(parts.selected)
            ]
        rebuilt = _paragraph([*parts.before, *selected, *parts.after])
        if rebuilt == line.block:
            continue
        changed = True
        index = line.index_in_parent
        next_blocks = update_blocks_at_path(
            next_blocks,
            line.parent_path,
            lambda siblings, block=rebuilt, i=index: (
                *siblings[:i],
                block,
                *siblings[i + 1 :],
            ),
        )

    if not changed:
        return state
    return runtime.create_state_from_doc(
        Doc(next_blocks),
        Selection(selection.start, selection.end, selection.affinity or "forward"),
    )


def _without_innermost(run: Run, kind: str) -> Run:
    for i in range(len(run.marks) - 1, -1, -1):
        if run.marks[i].kind == kind:
            return Run(run.text, (*run.marks[:i], *run.marks[i + 1 :]), run.atom)
    return run


def _toggle_collapsed(
    runtime: Runtime,
    state: RuntimeState,
    selection: Selection,
    kind: str,
    open_marker: str,
    close_marker: str,
) -> RuntimeState:
    caret = selection.start
    source = state.source
    cursor_map = state.map
    forward = cursor_map.cursor_to_source(caret, "forward")
    backward = cursor_map.cursor_to_source(caret, "backward")

    left, right = marks_around_cursor(runtime, state.doc, caret)
    exiting = exiting_marks(left, right)
    if any(mark.kind == kind for mark in exiting):
        if len(exiting) > 1:
            expected = _without_innermost(Run("", left), kind).marks
            start = source.find(close_marker, backward, forward)
            while start != -1:
                insert_at = start + len(close_marker)
                next_source = source[:insert_at] + PLACEHOLDER + source[insert_at:]
                next_state = _caret_before_placeholder(runtime, next_source, insert_at)
                if next_state and _placeholder_marks(runtime, next_state) == expected:
                    return next_state
                start = source.find(close_marker, start + 1, forward)
        return state.with_selection(Selection(caret, caret, "forward"))

    placeholder_at = None
    for candidate in (forward, backward):
        if source[candidate : candidate + 1] == PLACEHOLDER:
            placeholder_at = candidate
            break
        if candidate > 0 and source[candidate - 1] == PLACEHOLDER:
            placeholder_at = candidate - 1
            break

    if placeholder_at is not None:
        insert_at = placeholder_at
        tail = source[placeholder_at + 1 :]
    else:
        insert_at = cursor_map.cursor_to_source(caret, selection.affinity or "forward")
        tail = source[insert_at:]

    next_source = source[:insert_at] + open_marker + PLACEHOLDER + close_marker + tail
    next_state = _caret_before_placeholder(
        runtime, next_source, insert_at + len(open_marker)
    )
    if next_state is None or not any(
        mark.kind == kind for mark in _placeholder_marks(runtime, next_state)
    ):
        # Neighbouring marker characters absorbed the new pair.
        logger.debug(
            "Toggle %r at cursor %d did not produce a %s wrapper",
            open_marker,
            caret,
            kind,
        )
        return state
    return next_state


def _caret_before_placeholder(
    runtime: Runtime, source: str, source_offset: int
) -> RuntimeState | None:
    """State for *source* with the caret at *source_offset*.

    None when the grapheme after the caret is not a placeholder.
    """
    next_state = runtime.create_state(source)
    source_offset = min(source_offset, next_state.map.source_length)
    caret = next_state.map.source_to_cursor(source_offset, "forward").cursor_offset
    next_state = next_state.with_selection(Selection(caret, caret, "forward"))
    if grapheme_at_cursor(runtime.lines(next_state.doc), caret) != PLACEHOLDER:
        return None
    return next_state


def _placeholder_marks(runtime: Runtime, state: RuntimeState) -> Marks:
    return marks_around_cursor(runtime, state.doc, state.selection.start)[1]


# ---------------------------------------------------------------------------
# Selection helpers
# ---------------------------------------------------------------------------
def serialize_selection(
    runtime: Runtime, state: RuntimeState, selection: Selection
) -> str:
    """Source text for the selected range, keeping wrapper kinds and marks."""
    ordered = selection.ordered()
    length = state.map.cursor_length
    start, end = _clamp(ordered.start, length), _clamp(ordered.end, length)
    if start == end:
        return ""

    lines = runtime.lines(state.doc)
    starts = line_start_offsets(lines)
    blocks: list[Block] = []
    for line, line_start in zip(lines, starts, strict=True):
        line_end = line_start + line.cursor_length
        if line_end < start or line_start > end:
            continue
        if isinstance(line.block, Paragraph):
            lo = max(start, line_start) - line_start
            hi = min(end, line_end) - line_start
            runs = paragraph_to_runs(line.block)
            block: Block = _paragraph(slice_runs(runs, lo, hi).selected)
        else:
            block = line.block
        wrapper = None
        if line.parent_path:
            wrapper = block_at_path(state.doc.blocks, line.parent_path)
        if isinstance(wrapper, BlockWrapper):
            block = BlockWrapper(wrapper.kind, (block,), wrapper.data)
        blocks.append(block)

    if not blocks:
        return ""
    return runtime.serialize(runtime.normalize(Doc(tuple(blocks)))).source

