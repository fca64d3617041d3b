"""Flat run/mark view of paragraph content.

Nested inline wrappers are awkward to split at arbitrary cursor offsets, so
structural edits flatten a paragraph into runs: stretches of text that share
the same stack of marks (outermost first). Edits slice and recombine runs,
then ``runs_to_inlines`` rebuilds the nesting from shared mark prefixes.

Inline atoms become their own one-unit run carrying the original node, so
they survive a round trip through the run model untouched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, NamedTuple

import grapheme

from caretdown.core.types import InlineAtom, InlineWrapper, Text

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from caretdown.core.types import Affinity, Data, Inline, Paragraph

ATOM_TEXT = " "


def _stable_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def mark_key(kind: str, data: Data = None) -> str:
    """Identity of a mark: its kind plus its data in canonical JSON."""
    suffix = _stable_json(data) if data else ""
    return f"{kind}:{suffix}"


@dataclass(frozen=True)
class Mark:
    """One inline wrapper in a run's mark stack. Compared by ``key`` only."""

    kind: str = field(compare=False)
    data: Data = field(default=None, compare=False)
    key: str = ""

    @classmethod
    def of(cls, kind: str, data: Data = None) -> Mark:
        return cls(kind, data, mark_key(kind, data))


Marks = tuple[Mark, ...]


@dataclass(frozen=True)
class Run:
    text: str
    marks: Marks = ()
    atom: InlineAtom | None = None

    @property
    def length(self) -> int:
        if self.atom is not None:
            return 1
        return grapheme.length(self.text)


class RunSlice(NamedTuple):
    before: list[Run]
    selected: list[Run]
    after: list[Run]


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------
def paragraph_to_runs(paragraph: Paragraph) -> list[Run]:
    """Flatten a paragraph's inlines into runs."""
    runs: list[Run] = []
    stack: list[Mark] = []

    def push_text(text: str) -> None:
        if not text:
            return
        marks = tuple(stack)
        if runs and runs[-1].atom is None and runs[-1].marks == marks:
            runs[-1] = replace(runs[-1], text=runs[-1].text + text)
            return
        runs.append(Run(text, marks))

    def walk(inline: Inline) -> None:
        if isinstance(inline, Text):
            push_text(inline.text)
        elif isinstance(inline, InlineAtom):
            runs.append(Run(ATOM_TEXT, tuple(stack), atom=inline))
        elif isinstance(inline, InlineWrapper):
            stack.append(Mark.of(inline.kind, inline.data))
            for child in inline.children:
                walk(child)
            stack.pop()

    for inline in paragraph.content:
        walk(inline)
    return runs


def runs_to_inlines(runs: Iterable[Run]) -> tuple[Inline, ...]:
    """Rebuild nested inlines, opening and closing wrappers at mark changes."""
    root: list[Inline] = []
    stack: list[tuple[Mark, list[Inline]]] = []

    def children() -> list[Inline]:
        return stack[-1][1] if stack else root

    def close_to(depth: int) -> None:
        while len(stack) > depth:
            mark, kids = stack.pop()
            children().append(InlineWrapper(mark.kind, tuple(kids), mark.data))

    open_marks: Marks = ()
    for run in runs:
        common = _common_prefix_length(open_marks, run.marks)
        close_to(common)
        for mark in run.marks[common:]:
            stack.append((mark, []))
        open_marks = run.marks
        if run.atom is not None:
            children().append(run.atom)
        elif run.text:
            children().append(Text(run.text))

    close_to(0)
    return tuple(root)


def normalize_runs(runs: Iterable[Run]) -> list[Run]:
    """Drop empty runs and merge neighbours with equal marks."""
    merged: list[Run] = []
    for run in runs:
        if run.atom is None and not run.text:
            continue
        if merged:
            prev = merged[-1]
            if prev.atom is None and run.atom is None and prev.marks == run.marks:
                merged[-1] = replace(prev, text=prev.text + run.text)
                continue
        merged.append(run)
    return merged


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------
def split_runs_at(
    runs: Sequence[Run], cursor_offset: int
) -> tuple[list[Run], list[Run]]:
    """Split *runs* at a grapheme offset into (left, right)."""
    left: list[Run] = []
    remaining = max(0, cursor_offset)
    for i, run in enumerate(runs):
        if remaining == 0:
            return left, list(runs[i:])
        length = run.length
        if remaining >= length:
            left.append(run)
            remaining -= length
            continue
        right: list[Run] = []
        left_text = grapheme.slice(run.text, 0, remaining)
        right_text = grapheme.slice(run.text, remaining)
        if left_text:
            left.append(replace(run, text=left_text))
        if right_text:
            right.append(replace(run, text=right_text))
        right.extend(runs[i + 1 :])
        return left, right
    return left, []


def slice_runs(runs: Sequence[Run], start: int, end: int) -> RunSlice:
    left, rest = split_runs_at(runs, start)
    selected, right = split_runs_at(rest, max(0, end - start))
    return RunSlice(left, selected, right)


def split_runs_on_newlines(runs: Iterable[Run]) -> list[Run]:
    """Give every ``\\n`` inside a run its own run."""
    split: list[Run] = []
    for run in runs:
        if run.atom is not None or "\n" not in run.text:
            split.append(run)
            continue
        parts = run.text.split("\n")
        for i, part in enumerate(parts):
            if part:
                split.append(replace(run, text=part))
            if i < len(parts) - 1:
                split.append(replace(run, text="\n"))
    return split


# ---------------------------------------------------------------------------
# Mark queries
# ---------------------------------------------------------------------------
def _common_prefix_length(a: Marks, b: Marks) -> int:
    count = 0
    for left, right in zip(a, b, strict=False):
        if left != right:
            break
        count += 1
    return count


def is_marks_prefix(prefix: Marks, full: Marks) -> bool:
    return len(prefix) <= len(full) and full[: len(prefix)] == prefix


def common_marks_prefix(runs: Sequence[Run]) -> Marks:
    if not runs:
        return ()
    prefix = runs[0].marks
    for run in runs[1:]:
        prefix = prefix[: _common_prefix_length(prefix, run.marks)]
        if not prefix:
            return ()
    return prefix


def marks_at_index(runs: Iterable[Run], index: int) -> Marks | None:
    """Marks of the grapheme at *index*, or None past the end."""
    if index < 0:
        return None
    remaining = index
    for run in runs:
        length = run.length
        if remaining < length:
            return run.marks
        remaining -= length
    return None


def marks_at_cursor(
    runs: Sequence[Run], cursor_offset: int, affinity: Affinity
) -> Marks:
    """Marks a character typed at *cursor_offset* would inherit."""
    if affinity == "backward":
        left = marks_at_index(runs, cursor_offset - 1) if cursor_offset > 0 else None
        return left or ()
    return marks_at_index(runs, cursor_offset) or ()


def preferred_affinity_at_gap(
    left: Marks, right: Marks, fallback: Affinity
) -> Affinity:
    """Lean towards the side carrying strictly more formatting."""
    if is_marks_prefix(left, right) and len(right) > len(left):
        return "forward"
    if is_marks_prefix(right, left) and len(left) > len(right):
        return "backward"
    return fallback


def exiting_marks(left: Marks, right: Marks) -> Marks:
    """Marks that close at the gap between *left* and *right*."""
    if is_marks_prefix(right, left) and len(left) > len(right):
        return left[len(right) :]
    return ()


def preferred_typing_affinity_at_gap(
    left: Marks,
    right: Marks,
    fallback: Affinity,
    is_inclusive: Callable[[str], bool],
) -> Affinity:
    """Like ``preferred_affinity_at_gap`` but steps out of non-inclusive wrappers.

    Typing at the end of a link must not extend the link.
    """
    if any(not is_inclusive(mark.kind) for mark in exiting_marks(left, right)):
        return "forward"
    return preferred_affinity_at_gap(left, right, fallback)
