"""Tests for the cursor/source map and its builder."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from caretdown.core.errors import CursorOffsetError, SourceOffsetError
from caretdown.core.mapping import (
    CursorBoundary,
    CursorPosition,
    CursorSourceBuilder,
    CursorSourceMap,
)

if TYPE_CHECKING:
    from caretdown.core.runtime import Runtime


def _bold_ab() -> CursorSourceMap:
    builder = CursorSourceBuilder()
    builder.append_source_only("**")
    builder.append_text("ab")
    builder.append_source_only("**")
    return builder.build().map


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------
class TestBuilder:
    def test_markers_widen_boundaries(self) -> None:
        """Source-only markers split a boundary into two sides."""
        cursor_map = _bold_ab()
        assert cursor_map.boundaries == (
            CursorBoundary(0, 2),
            CursorBoundary(3, 3),
            CursorBoundary(4, 6),
        )
        assert cursor_map.cursor_length == 2
        assert cursor_map.source_length == 6

    def test_text_counts_graphemes_not_code_points(self) -> None:
        """A combining accent adds no cursor unit."""
        builder = CursorSourceBuilder()
        builder.append_text("cafe\u0301")
        builder.append_text("\U0001f1e6\U0001f1fa")
        result = builder.build()
        assert result.source == "cafe\u0301\U0001f1e6\U0001f1fa"
        assert result.map.cursor_length == 5
        assert result.map.cursor_to_source(4, "forward") == 5
        assert result.map.source_length == 7

    def test_cursor_atom_is_one_unit(self) -> None:
        """An atom spans one cursor unit whatever its source."""
        builder = CursorSourceBuilder()
        builder.append_text("a")
        builder.append_cursor_atom("@[x](y)", 1)
        result = builder.build()
        assert result.source == "a@[x](y)"
        assert result.map.cursor_length == 2
        assert result.map.cursor_to_source(2, "backward") == 8

    def test_zero_width_atom_adds_nothing(self) -> None:
        """A zero-width atom is skipped."""
        builder = CursorSourceBuilder()
        builder.append_cursor_atom("ignored", 0)
        result = builder.build()
        assert result.source == ""
        assert result.map.cursor_length == 0

    def test_append_serialized_rebases_fragment(self) -> None:
        """Nested fragments are shifted onto the outer offsets."""
        inner = CursorSourceBuilder()
        inner.append_source_only("**")
        inner.append_text("b")
        inner.append_source_only("**")

        outer = CursorSourceBuilder()
        outer.append_text("a")
        outer.append_serialized(inner.build())
        result = outer.build()

        assert result.source == "a**b**"
        assert result.map.boundaries == (
            CursorBoundary(0, 0),
            CursorBoundary(1, 3),
            CursorBoundary(4, 6),
        )

    def test_map_needs_a_boundary(self) -> None:
        """An empty boundary list is rejected."""
        with pytest.raises(ValueError, match="at least"):
            CursorSourceMap([])


# ---------------------------------------------------------------------------
# Cursor -> source
# ---------------------------------------------------------------------------
class TestCursorToSource:
    def test_affinity_picks_side_of_marker(self) -> None:
        """Affinity chooses the side of a divergent boundary."""
        cursor_map = _bold_ab()
        assert cursor_map.cursor_to_source(0, "backward") == 0
        assert cursor_map.cursor_to_source(0, "forward") == 2
        assert cursor_map.cursor_to_source(2, "backward") == 4
        assert cursor_map.cursor_to_source(2, "forward") == 6

    def test_plain_boundary_ignores_affinity(self) -> None:
        """Both affinities agree away from markers."""
        cursor_map = _bold_ab()
        assert cursor_map.cursor_to_source(1, "backward") == 3
        assert cursor_map.cursor_to_source(1, "forward") == 3

    def test_end_of_bold_word(self, runtime: Runtime) -> None:
        """Backward at a bold end stays inside the markers."""
        cursor_map = runtime.create_state("**bold**").map
        assert cursor_map.cursor_to_source(4, "backward") == 6
        assert cursor_map.cursor_to_source(4, "forward") == 8

    @pytest.mark.parametrize("offset", [-1, 3, 100])
    def test_out_of_range_raises(self, offset: int) -> None:
        """Cursor offsets outside the map raise."""
        with pytest.raises(CursorOffsetError) as exc_info:
            _bold_ab().cursor_to_source(offset, "forward")
        assert exc_info.value.offset == offset
        assert exc_info.value.cursor_length == 2


# ---------------------------------------------------------------------------
# Source -> cursor
# ---------------------------------------------------------------------------
class TestSourceToCursor:
    def test_exact_sides_snap_regardless_of_bias(self) -> None:
        """An exact marker side wins over the bias."""
        lookup = _bold_ab().source_to_cursor
        assert lookup(2, "backward") == CursorPosition(0, "forward")
        assert lookup(4, "forward") == CursorPosition(2, "backward")

    def test_inside_marker_run_uses_bias(self) -> None:
        """Offsets inside a marker run follow the bias."""
        lookup = _bold_ab().source_to_cursor
        assert lookup(1, "forward") == CursorPosition(0, "forward")
        assert lookup(5, "backward") == CursorPosition(2, "backward")

    def test_document_edges(self) -> None:
        """The first and last offsets map to the ends."""
        lookup = _bold_ab().source_to_cursor
        assert lookup(0, "forward") == CursorPosition(0, "forward")
        assert lookup(6, "backward") == CursorPosition(2, "backward")

    def test_plain_text_offset(self) -> None:
        """Text offsets map one to one."""
        assert _bold_ab().source_to_cursor(3, "forward") == CursorPosition(1, "forward")

    def test_inside_grapheme_cluster_resolved_by_bias(self) -> None:
        """Offsets inside a cluster snap by bias."""
        builder = CursorSourceBuilder()
        builder.append_text("e\u0301x")
        lookup = builder.build().map.source_to_cursor
        # Offset 1 splits "e" from its combining accent.
        assert lookup(1, "forward") == CursorPosition(1, "forward")
        assert lookup(1, "backward") == CursorPosition(0, "backward")

    @pytest.mark.parametrize("offset", [-1, 7])
    def test_out_of_range_raises(self, offset: int) -> None:
        """Source offsets outside the map raise."""
        with pytest.raises(SourceOffsetError):
            _bold_ab().source_to_cursor(offset, "forward")

    def test_every_boundary_round_trips(self, runtime: Runtime) -> None:
        """Every boundary maps to source and back."""
        cursor_map = runtime.create_state("a **b** [c](u) @[id](Ann)").map
        for offset in range(cursor_map.cursor_length + 1):
            for affinity in ("forward", "backward"):
                source = cursor_map.cursor_to_source(offset, affinity)
                position = cursor_map.source_to_cursor(source, affinity)
                assert position.cursor_offset == offset
