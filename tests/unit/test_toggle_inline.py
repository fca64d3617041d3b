"""Tests for inline toggles (bold, italic, underline, ...)."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from caretdown.core.commands import Insert, ToggleInline
from caretdown.core.editing import PLACEHOLDER
from caretdown.core.types import Selection
from caretdown.extensions import (
    ToggleBold,
    ToggleItalic,
    ToggleStrikethrough,
    ToggleUnderline,
)
from tests.helpers.editing import edit, state_at

if TYPE_CHECKING:
    from caretdown.core.runtime import Runtime


class TestCollapsedToggle:
    def test_inserts_placeholder_wrapper(self, runtime: Runtime) -> None:
        """Toggling at a caret inserts an empty wrapper to type into."""
        state = edit(runtime, ToggleBold(), "hello", 2)
        assert state.source == f"he**{PLACEHOLDER}**llo"
        assert state.selection == Selection(2, 2, "forward")

    def test_typing_replaces_placeholder(self, runtime: Runtime) -> None:
        """The first typed character replaces the placeholder."""
        state = edit(runtime, ToggleBold(), "hello", 2)
        state = runtime.apply_edit(Insert("x"), state)
        assert state.source == "he**x**llo"
        assert state.selection == Selection(3, 3, "backward")

    def test_toggle_at_end_of_bold_steps_out(self, runtime: Runtime) -> None:
        """At a bold end the toggle only flips affinity."""
        state = edit(runtime, ToggleBold(), "**ab**", 2, affinity="backward")
        assert state.source == "**ab**"
        assert state.selection == Selection(2, 2, "forward")

    def test_italic_uses_star(self, runtime: Runtime) -> None:
        """The italic command writes stars."""
        state = edit(runtime, ToggleItalic(), "ab", 1)
        assert state.source == f"a*{PLACEHOLDER}*b"


class TestRangeToggle:
    def test_wraps_selection(self, runtime: Runtime) -> None:
        """A selection is wrapped."""
        state = edit(runtime, ToggleBold(), "hello world", 0, 5)
        assert state.source == "**hello** world"
        assert state.selection == Selection(0, 5, "forward")

    def test_unwraps_part_of_bold(self, runtime: Runtime) -> None:
        """Part of a bold span can be unwrapped."""
        state = edit(runtime, ToggleBold(), "**hello** world", 3, 5)
        assert state.source == "**hel**lo world"

    def test_wrap_then_unwrap_restores_source(self, runtime: Runtime) -> None:
        """Toggling twice restores the source."""
        state = edit(runtime, ToggleStrikethrough(), "one two", 4, 7)
        assert state.source == "one ~~two~~"
        state = runtime.apply_edit(ToggleStrikethrough(), state)
        assert state.source == "one two"

    def test_underline_inside_heading(self, runtime: Runtime) -> None:
        """Wrapping inside a heading keeps the heading."""
        state = edit(runtime, ToggleUnderline(), "# title\n", 0, 6)
        assert state.source == "# <u>title</u>\n"

    def test_each_line_wrapped_separately(self, runtime: Runtime) -> None:
        """Each selected line gets its own wrapper."""
        state = edit(runtime, ToggleUnderline(), "one\n\ntwo", 0, 8)
        assert state.source == "<u>one</u>\n\n<u>two</u>"

    def test_selection_of_only_a_newline_is_noop(self, runtime: Runtime) -> None:
        """Selecting only a newline changes nothing."""
        state = state_at(runtime, "a\nb", 1, 2)
        assert runtime.apply_edit(ToggleUnderline(), state) is state

    def test_unknown_marker_is_noop(self, runtime: Runtime) -> None:
        """Unregistered markers are ignored."""
        state = state_at(runtime, "abc", 0, 2)
        assert runtime.apply_edit(ToggleInline("%%"), state) is state

    def test_reversed_selection(self, runtime: Runtime) -> None:
        """Reversed selections toggle the same range."""
        state = edit(runtime, ToggleBold(), "hello world", 5, 0)
        assert state.source == "**hello** world"


class TestCollapsedToggleNearMarkers:
    def test_after_literal_bold_marker_is_noop(self, runtime: Runtime) -> None:
        """A pair swallowed by a trailing literal ``**`` leaves the state alone."""
        state = state_at(runtime, "a**", 3)
        assert runtime.apply_edit(ToggleBold(), state) is state

    def test_inside_bare_marker_run_is_noop(self, runtime: Runtime) -> None:
        """Toggling bold after a lone ``**`` neither crashes nor edits."""
        state = state_at(runtime, "**", 2)
        assert runtime.apply_edit(ToggleBold(), state) is state

    def test_exits_bold_but_stays_in_italic(self, runtime: Runtime) -> None:
        """With two wrappers closing at the caret only the toggled one is left."""
        state = edit(runtime, ToggleBold(), "*a **b***", 3, affinity="backward")
        assert state.source == f"*a **b**{PLACEHOLDER}*"
        assert state.selection == Selection(3, 3, "forward")

    def test_typing_after_exit_stays_italic(self, runtime: Runtime) -> None:
        """Text typed after leaving bold keeps the outer italic."""
        state = edit(runtime, ToggleBold(), "*a **b***", 3, affinity="backward")
        state = runtime.apply_edit(Insert("c"), state)
        assert state.source == "*a **b**c*"

    def test_inner_exit_without_valid_split_moves_affinity(
        self, runtime: Runtime
    ) -> None:
        """Italic cannot close inside bold here, so only the affinity flips."""
        state = edit(runtime, ToggleItalic(), "*a **b***", 3, affinity="backward")
        assert state.source == "*a **b***"
        assert state.selection == Selection(3, 3, "forward")

    def test_underscore_toggle_keeps_its_marker(self, runtime: Runtime) -> None:
        """The ``_`` toggle writes ``_`` delimiters."""
        state = runtime.apply_edit(ToggleInline("_"), state_at(runtime, "ab", 1))
        assert state.source == f"a_{PLACEHOLDER}_b"


class TestCollapsedToggleEverywhere:
    TOKENS = ("*", "**", "_", "~~", "<u>", "</u>", "a", "b", " ", "\n")
    COMMANDS = (ToggleBold(), ToggleItalic(), ToggleUnderline(), ToggleStrikethrough())

    @pytest.mark.parametrize("seed", range(12))
    def test_every_caret_yields_a_valid_state(
        self, runtime: Runtime, seed: int
    ) -> None:
        """Collapsed toggles at every caret of generated sources stay in bounds."""
        rng = random.Random(seed)
        source = "".join(rng.choice(self.TOKENS) for _ in range(rng.randint(1, 8)))
        base = runtime.create_state(source)
        for caret in range(base.map.cursor_length + 1):
            for affinity in ("forward", "backward"):
                for command in self.COMMANDS:
                    before = state_at(runtime, source, caret, affinity=affinity)
                    state = runtime.apply_edit(command, before)
                    assert 0 <= state.selection.start <= state.map.cursor_length
                    assert state.source == runtime.serialize(state.doc).source
