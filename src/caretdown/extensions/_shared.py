"""Helpers shared by the bundled extensions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from caretdown.core.mapping import CursorSourceBuilder
from caretdown.core.types import InlineWrapper

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext, NormalizeInlineHook
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.runtime import RuntimeState
    from caretdown.core.types import Inline


def serialize_wrapper(
    inline: InlineWrapper,
    context: ExtensionContext,
    open_marker: str,
    close_marker: str,
) -> SerializeResult:
    """Children between source-only markers."""
    builder = CursorSourceBuilder()
    builder.append_source_only(open_marker)
    for child in inline.children:
        builder.append_serialized(context.serialize_inline(child))
    builder.append_source_only(close_marker)
    return builder.build()


def drop_empty(kind: str) -> NormalizeInlineHook:
    """Normalizer deleting *kind* wrappers that have no children."""

    def normalize(inline: Inline) -> Inline | None:
        if is_wrapper(inline, kind) and not inline.children:
            return None
        return inline

    return normalize


def is_wrapper(node: object, kind: str) -> bool:
    return isinstance(node, InlineWrapper) and node.kind == kind


def line_bounds(source: str, pos: int) -> tuple[int, int]:
    """Start and end offsets of the source line holding *pos*."""
    start = source.rfind("\n", 0, pos) + 1
    end = source.find("\n", pos)
    if end == -1:
        end = len(source)
    return start, end


def caret_source(state: RuntimeState) -> int:
    """Source offset of the selection's left edge, honouring its affinity."""
    selection = state.selection.ordered()
    return state.map.cursor_to_source(selection.start, selection.affinity or "forward")
