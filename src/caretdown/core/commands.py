"""Edit commands: an open tagged union of frozen dataclasses.

The core understands the commands defined here. Extensions define their own
by subclassing ``EditCommand`` with a new ``type`` tag; only an extension's
``on_edit`` hook gives such a command meaning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class EditCommand:
    """Base class of every command. ``type`` is the tag hooks dispatch on."""

    type: ClassVar[str] = "command"


@dataclass(frozen=True)
class Insert(EditCommand):
    text: str

    type = "insert"


@dataclass(frozen=True)
class DeleteBackward(EditCommand):
    type = "delete-backward"


@dataclass(frozen=True)
class DeleteForward(EditCommand):
    type = "delete-forward"


@dataclass(frozen=True)
class InsertLineBreak(EditCommand):
    type = "insert-line-break"


@dataclass(frozen=True)
class InsertHardLineBreak(EditCommand):
    type = "insert-hard-line-break"


@dataclass(frozen=True)
class ExitBlockWrapper(EditCommand):
    """Split the enclosing single-paragraph wrapper at the caret."""

    type = "exit-block-wrapper"


@dataclass(frozen=True)
class ToggleInline(EditCommand):
    """Toggle the inline wrapper registered for *marker* over the selection."""

    marker: str

    type = "toggle-inline"


@dataclass(frozen=True)
class Indent(EditCommand):
    type = "indent"


@dataclass(frozen=True)
class Outdent(EditCommand):
    type = "outdent"


# Commands the structural engine applies to the doc tree.
STRUCTURAL_COMMANDS: tuple[type[EditCommand], ...] = (
    Insert,
    DeleteBackward,
    DeleteForward,
    InsertLineBreak,
    InsertHardLineBreak,
    ExitBlockWrapper,
)


def is_structural(command: EditCommand) -> bool:
    return isinstance(command, STRUCTURAL_COMMANDS)
