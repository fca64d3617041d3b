"""Exceptions raised by the editing core.

Every error here is a caller contract violation. Unparseable source is
never an error: the parser falls back to plain text.
"""

from __future__ import annotations


class CaretdownError(Exception):
    """Base class for all caretdown errors."""


class CursorOffsetError(CaretdownError, IndexError):
    """A cursor offset outside ``0..cursor_length`` was passed to a map."""

    def __init__(self, offset: int, cursor_length: int) -> None:
        self.offset = offset
        self.cursor_length = cursor_length
        super().__init__(
            f"Cursor offset out of bounds: {offset} (cursor length {cursor_length})"
        )


class SourceOffsetError(CaretdownError, IndexError):
    """A source offset outside ``0..len(source)`` was passed to a map."""

    def __init__(self, offset: int, source_length: int) -> None:
        self.offset = offset
        self.source_length = source_length
        super().__init__(
            f"Source offset out of bounds: {offset} (source length {source_length})"
        )


class InvalidCommandError(CaretdownError, TypeError):
    """An edit command is malformed."""


class EditDelegationError(CaretdownError, RuntimeError):
    """Extensions kept delegating an edit to another command."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(
            f"Edit delegation exceeded {len(chain) - 1} hops: {' -> '.join(chain)}"
        )


class ExtensionConfigError(CaretdownError, ValueError):
    """The extension list handed to a Runtime is invalid."""


class ExtensionContractError(CaretdownError, RuntimeError):
    """An extension hook returned a result that breaks the hook contract."""
