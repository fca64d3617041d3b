"""Tests for list editing on plain-text list lines."""

from __future__ import annotations

from typing import TYPE_CHECKING

from caretdown.core.commands import (
    DeleteBackward,
    DeleteForward,
    Indent,
    Insert,
    InsertLineBreak,
    Outdent,
)
from caretdown.extensions import ToggleBulletList, ToggleNumberedList
from tests.helpers.editing import edit

if TYPE_CHECKING:
    from caretdown.core.runtime import Runtime


class TestEnter:
    def test_continues_bullet(self, runtime: Runtime) -> None:
        """Enter on a bullet item opens a new bullet."""
        state = edit(runtime, InsertLineBreak(), "- a", 3)
        assert state.source == "- a\n- "
        assert state.selection.start == 6

    def test_continues_numbering(self, runtime: Runtime) -> None:
        """Enter on a numbered item opens the next number."""
        state = edit(runtime, InsertLineBreak(), "1. a", 4)
        assert state.source == "1. a\n2. "
        assert state.selection.start == 8

    def test_splits_item_content(self, runtime: Runtime) -> None:
        """Enter mid-item moves the rest to a new item."""
        state = edit(runtime, InsertLineBreak(), "- abcd", 4)
        assert state.source == "- ab\n- cd"
        assert state.selection.start == 7

    def test_renumbers_following_items(self, runtime: Runtime) -> None:
        """Items after an inserted one are renumbered."""
        state = edit(runtime, InsertLineBreak(), "1. a\n2. b", 4)
        assert state.source == "1. a\n2. \n3. b"

    def test_empty_item_ends_list(self, runtime: Runtime) -> None:
        """Enter on an empty item ends the list."""
        state = edit(runtime, InsertLineBreak(), "- a\n- ", 6)
        assert state.source == "- a\n"
        assert state.selection.start == 4

    def test_at_line_start_inserts_plain_break(self, runtime: Runtime) -> None:
        """Enter before the marker inserts a plain newline."""
        state = edit(runtime, InsertLineBreak(), "- a", 0)
        assert state.source == "\n- a"
        assert state.selection.start == 1

    def test_plain_line_untouched(self, runtime: Runtime) -> None:
        """Enter outside lists is an ordinary break."""
        assert edit(runtime, InsertLineBreak(), "ab", 1).source == "a\nb"


class TestDelete:
    def test_backspace_after_marker_removes_it(self, runtime: Runtime) -> None:
        """Backspace right after a marker removes the marker."""
        state = edit(runtime, DeleteBackward(), "- a", 2)
        assert state.source == "a"
        assert state.selection.start == 0

    def test_backspace_at_line_start_merges_items(self, runtime: Runtime) -> None:
        """Backspace at an item start merges it upwards."""
        state = edit(runtime, DeleteBackward(), "- a\n- b", 4)
        assert state.source == "- a b"
        assert state.selection.start == 3

    def test_backspace_merge_renumbers(self, runtime: Runtime) -> None:
        """Merging renumbers the items below."""
        state = edit(runtime, DeleteBackward(), "1. a\n2. b\n3. c", 5)
        assert state.source == "1. a b\n2. c"

    def test_backspace_joins_plain_line_onto_item(self, runtime: Runtime) -> None:
        """A plain line joins onto the item above."""
        state = edit(runtime, DeleteBackward(), "- a\nb", 4)
        assert state.source == "- ab"
        assert state.selection.start == 3

    def test_delete_forward_joins_next_item(self, runtime: Runtime) -> None:
        """Delete at an item end pulls the next line up."""
        state = edit(runtime, DeleteForward(), "- a\n- b", 3)
        assert state.source == "- a- b"
        assert state.selection.start == 3

    def test_deleting_whole_last_line_takes_newline(self, runtime: Runtime) -> None:
        """Deleting a whole last item takes its newline."""
        state = edit(runtime, DeleteBackward(), "- a\n- b", 4, 7)
        assert state.source == "- a"
        assert state.selection.start == 3


class TestIndent:
    def test_indent_item(self, runtime: Runtime) -> None:
        """Tab nests the item under the one above."""
        state = edit(runtime, Indent(), "- a\n- b", 5)
        assert state.source == "- a\n  - b"
        assert state.selection.start == 7

    def test_indent_renumbers_levels(self, runtime: Runtime) -> None:
        """Indenting renumbers both levels."""
        state = edit(runtime, Indent(), "1. a\n2. b\n3. c", 6)
        assert state.source == "1. a\n  1. b\n2. c"

    def test_outdent_nested_item(self, runtime: Runtime) -> None:
        """Shift-tab lifts a nested item."""
        state = edit(runtime, Outdent(), "- a\n  - b", 8)
        assert state.source == "- a\n- b"

    def test_outdent_top_level_item_becomes_text(self, runtime: Runtime) -> None:
        """Outdenting a top item makes plain text."""
        state = edit(runtime, Outdent(), "- a", 3)
        assert state.source == "a"
        assert state.selection.start == 0

    def test_plain_text_not_indented(self, runtime: Runtime) -> None:
        """Indent does nothing outside lists."""
        state = edit(runtime, Indent(), "abc", 1)
        assert state.source == "abc"


class TestToggle:
    def test_bullet_list_on(self, runtime: Runtime) -> None:
        """Selected lines become bullets."""
        state = edit(runtime, ToggleBulletList(), "a\nb", 0, 3)
        assert state.source == "- a\n- b"
        assert (state.selection.start, state.selection.end) == (0, 7)

    def test_numbered_list_on(self, runtime: Runtime) -> None:
        """Selected lines become numbered items."""
        state = edit(runtime, ToggleNumberedList(), "a\nb", 0, 3)
        assert state.source == "1. a\n2. b"

    def test_bullet_list_off(self, runtime: Runtime) -> None:
        """A bullet list toggles back to text."""
        state = edit(runtime, ToggleBulletList(), "- a\n- b", 0, 7)
        assert state.source == "a\nb"

    def test_numbered_to_bullet(self, runtime: Runtime) -> None:
        """A numbered item switches to a bullet."""
        state = edit(runtime, ToggleBulletList(), "1. a", 2)
        assert state.source == "- a"

    def test_blank_lines_skipped(self, runtime: Runtime) -> None:
        """Blank lines get no marker."""
        state = edit(runtime, ToggleBulletList(), "a\n\nb", 0, 4)
        assert state.source == "- a\n\n- b"


class TestMarkerTyping:
    def test_typing_bullet_swaps_marker(self, runtime: Runtime) -> None:
        """Typing a bullet character over a marker swaps it."""
        state = edit(runtime, Insert("*"), "- a", 0)
        assert state.source == "* a"
        assert state.selection.start == 1

    def test_typing_bullet_over_lines_makes_items(self, runtime: Runtime) -> None:
        """Typing a dash over selected lines lists them."""
        state = edit(runtime, Insert("-"), "one", 0, 3)
        assert state.source == "- one"
        assert state.selection.start == 2

    def test_typing_bullet_in_text_is_plain(self, runtime: Runtime) -> None:
        """A dash inside text is just a dash."""
        assert edit(runtime, Insert("-"), "ab", 1).source == "a-b"
