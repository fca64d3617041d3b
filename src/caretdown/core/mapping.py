"""Bidirectional map between source offsets and cursor offsets.

Source space counts code points of the persisted syntax string. Cursor space
counts what the user can put a caret between: one unit per grapheme of
visible text, one per atom, one per block separator.

Boundary ``i`` sits before cursor unit ``i``. Where a source-only run (a
marker such as ``**``) touches the boundary, two source offsets are valid:

- ``source_backward``: before the marker run, reached leaving the content
  on the left;
- ``source_forward``: after the marker run, reached entering the content
  on the right.

Everywhere else the two are equal.

Example for ``**ab**``::

    boundary   0        1      2
    backward   0        3      4
    forward    2        3      6
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

import grapheme

from caretdown.core.errors import CursorOffsetError, SourceOffsetError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from caretdown.core.types import Affinity


@dataclass(frozen=True, slots=True)
class CursorBoundary:
    """Source offsets reachable at one cursor boundary."""

    source_backward: int
    source_forward: int

    @property
    def is_divergent(self) -> bool:
        return self.source_backward != self.source_forward


class CursorPosition(NamedTuple):
    """Result of a source -> cursor lookup."""

    cursor_offset: int
    affinity: Affinity


class CursorSourceMap:
    """Read-only map produced by one serialization pass.

    Built only by ``CursorSourceBuilder.build()``. Offsets outside the map
    are caller bugs and raise rather than clamp.
    """

    __slots__ = ("_boundaries", "_forward_offsets")

    def __init__(self, boundaries: Sequence[CursorBoundary]) -> None:
        if not boundaries:
            msg = "a cursor map needs at least the boundary at offset 0"
            raise ValueError(msg)
        self._boundaries = tuple(boundaries)
        # source_forward is non-decreasing: bisect over it for reverse lookups.
        self._forward_offsets = [b.source_forward for b in self._boundaries]

    @property
    def cursor_length(self) -> int:
        return len(self._boundaries) - 1

    @property
    def source_length(self) -> int:
        return self._boundaries[-1].source_forward

    @property
    def boundaries(self) -> tuple[CursorBoundary, ...]:
        return self._boundaries

    def __repr__(self) -> str:
        return (
            f"CursorSourceMap(cursor_length={self.cursor_length}, "
            f"source_length={self.source_length})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CursorSourceMap):
            return NotImplemented
        return self._boundaries == other._boundaries

    __hash__ = None  # type: ignore[assignment]

    def cursor_to_source(self, cursor_offset: int, affinity: Affinity) -> int:
        """Return the source offset for *cursor_offset* approached from *affinity*.

        Raises:
            CursorOffsetError: If the offset is outside ``0..cursor_length``.
        """
        if not 0 <= cursor_offset <= self.cursor_length:
            raise CursorOffsetError(cursor_offset, self.cursor_length)
        boundary = self._boundaries[cursor_offset]
        if affinity == "backward":
            return boundary.source_backward
        return boundary.source_forward

    def source_to_cursor(self, source_offset: int, bias: Affinity) -> CursorPosition:
        """Map *source_offset* to the cursor boundary that owns it.

        An offset that lands exactly on one side of a divergent boundary
        snaps to that side regardless of *bias*. Offsets strictly inside a
        marker run, or inside a multi-code-point unit (a grapheme cluster
        or an atom's source), are resolved by *bias*.

        Raises:
            SourceOffsetError: If the offset is outside ``0..len(source)``.
        """
        if not 0 <= source_offset <= self.source_length:
            raise SourceOffsetError(source_offset, self.source_length)

        last_index = self.cursor_length
        if source_offset <= 0:
            return CursorPosition(0, bias)
        if source_offset >= self._forward_offsets[last_index]:
            return CursorPosition(last_index, bias)

        index = bisect.bisect_left(self._forward_offsets, source_offset)
        boundary = self._boundaries[index]

        if source_offset < boundary.source_backward:
            if bias == "forward":
                return CursorPosition(index, "forward")
            return CursorPosition(max(0, index - 1), "backward")

        if boundary.is_divergent:
            if source_offset == boundary.source_backward:
                return CursorPosition(index, "backward")
            if source_offset == boundary.source_forward:
                return CursorPosition(index, "forward")

        return CursorPosition(index, bias)


@dataclass(frozen=True)
class SerializeResult:
    """Source text plus the map built alongside it."""

    source: str
    map: CursorSourceMap


class CursorSourceBuilder:
    """Accumulates source text and cursor boundaries in a single pass.

    Serializers append markers with ``append_source_only``, visible content
    with ``append_text`` and nested fragments with ``append_serialized``.
    Boundaries are held as ``[backward, forward]`` pairs while building so
    trailing source-only text can extend the last one.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._boundaries: list[list[int]] = [[0, 0]]
        self._source_length = 0

    @property
    def source_length(self) -> int:
        return self._source_length

    @property
    def cursor_length(self) -> int:
        return len(self._boundaries) - 1

    def _push_source(self, text: str) -> None:
        self._parts.append(text)
        self._source_length += len(text)

    def append_source_only(self, text: str) -> None:
        """Append source that carries no cursor unit (a syntax marker)."""
        if not text:
            return
        self._push_source(text)
        self._boundaries[-1][1] += len(text)

    def append_text(self, text: str) -> None:
        """Append visible text: one cursor unit per grapheme cluster."""
        if not text:
            return
        for cluster in grapheme.graphemes(text):
            self._push_source(cluster)
            self._boundaries.append([self._source_length, self._source_length])

    def append_cursor_atom(self, source_text: str, cursor_width: int = 1) -> None:
        """Append *source_text* as an indivisible span of *cursor_width* units."""
        if cursor_width < 1:
            return
        self._push_source(source_text)
        for _ in range(cursor_width):
            self._boundaries.append([self._source_length, self._source_length])

    def append_serialized(self, fragment: SerializeResult) -> None:
        """Splice a fragment built by a nested serialize call, re-based here."""
        if not fragment.source and fragment.map.cursor_length == 0:
            return

        base = self._source_length
        boundaries = fragment.map.boundaries
        # The fragment's leading boundary merges with our trailing one.
        first = boundaries[0]
        last = self._boundaries[-1]
        last[0] += first.source_backward
        last[1] += first.source_forward

        if fragment.source:
            self._push_source(fragment.source)

        for boundary in boundaries[1:]:
            self._boundaries.append(
                [base + boundary.source_backward, base + boundary.source_forward]
            )

    def build(self) -> SerializeResult:
        """Freeze the accumulated source and boundaries."""
        source = "".join(self._parts)
        cursor_map = CursorSourceMap(
            [CursorBoundary(*boundary) for boundary in self._boundaries]
        )
        return SerializeResult(source, cursor_map)


def empty_result() -> SerializeResult:
    """Serialization of a node that contributes nothing."""
    return CursorSourceBuilder().build()
