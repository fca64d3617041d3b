"""The extension surface: hook signatures, result types and the hook set.

An ``Extension`` is a named bundle of optional hooks. A ``Runtime`` receives
an ordered list of them; for every hook kind the runtime tries extensions in
that order and the first non-``None`` answer wins. Order is therefore part
of the grammar: an earlier extension gets first refusal at every position.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from caretdown.core.commands import EditCommand
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.runtime import RuntimeState
    from caretdown.core.types import Block, Inline, Selection


@dataclass(frozen=True)
class ParseBlockResult:
    block: Block
    next_pos: int


@dataclass(frozen=True)
class ParseInlineResult:
    inline: Inline
    next_pos: int


@dataclass(frozen=True)
class EditResult:
    """A fully handled edit: new source plus a selection in its cursor space."""

    source: str
    selection: Selection


@dataclass(frozen=True)
class ToggleInlineSpec:
    """Marker pair that ``ToggleInline(open)`` inserts for wrapper *kind*."""

    kind: str
    open: str
    close: str


@dataclass(frozen=True)
class WrapperAffinity:
    """Whether a caret at the end of a *kind* wrapper still types inside it."""

    kind: str
    inclusive: bool


class ExtensionContext(Protocol):
    """Re-entry points handed to hooks for nested content."""

    def parse_inline(self, source: str, start: int, end: int) -> list[Inline]: ...

    def parse_block_at(self, source: str, start: int) -> ParseBlockResult: ...

    def serialize_inline(self, inline: Inline) -> SerializeResult: ...

    def serialize_block(self, block: Block) -> SerializeResult: ...


ParseBlockHook = Callable[[str, int, ExtensionContext], ParseBlockResult | None]
ParseInlineHook = Callable[
    [str, int, int, ExtensionContext], ParseInlineResult | None
]
SerializeBlockHook = Callable[["Block", ExtensionContext], "SerializeResult | None"]
SerializeInlineHook = Callable[["Inline", ExtensionContext], "SerializeResult | None"]
# Return the node itself to pass, a new node to replace, None to delete.
NormalizeBlockHook = Callable[["Block"], "Block | None"]
NormalizeInlineHook = Callable[["Inline"], "Inline | None"]
OnEditHook = Callable[
    ["EditCommand", "RuntimeState"], "EditResult | EditCommand | None"
]


@dataclass(frozen=True)
class Extension:
    """A named, ordered set of hooks contributed to a ``Runtime``."""

    name: str
    parse_block: ParseBlockHook | None = None
    parse_inline: ParseInlineHook | None = None
    serialize_block: SerializeBlockHook | None = None
    serialize_inline: SerializeInlineHook | None = None
    normalize_block: NormalizeBlockHook | None = None
    normalize_inline: NormalizeInlineHook | None = None
    on_edit: OnEditHook | None = None
    toggle_inline: tuple[ToggleInlineSpec, ...] = ()
    wrapper_affinity: tuple[WrapperAffinity, ...] = ()
