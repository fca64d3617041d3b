"""Italic: ``*text*`` or ``_text_``, serialized with the marker it was parsed from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from caretdown.core.commands import EditCommand, ToggleInline
from caretdown.core.extension import (
    Extension,
    ParseInlineResult,
    ToggleInlineSpec,
    WrapperAffinity,
)
from caretdown.core.types import InlineWrapper
from caretdown.extensions._shared import drop_empty, is_wrapper, serialize_wrapper

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.runtime import RuntimeState
    from caretdown.core.types import Inline

ITALIC_KIND = "italic"
UNDERSCORE = {"marker": "_"}


@dataclass(frozen=True)
class ToggleItalic(EditCommand):
    type = "toggle-italic"


def marker_of(inline: InlineWrapper) -> str:
    """The delimiter an emphasis wrapper was written with: ``_`` or ``*``."""
    if inline.data == UNDERSCORE:
        return "_"
    return "*"


def find_italic_close(source: str, start: int, end: int, marker: str) -> int:
    """Offset of the closing marker, preferring a lone ``*`` over a run."""
    if marker == "_":
        return source.find("_", start + 1)

    fallback = -1
    for i in range(start + 1, end):
        if source[i] != "*":
            continue
        prev_is_star = source[i - 1] == "*"
        next_is_star = i + 1 < len(source) and source[i + 1] == "*"
        if not prev_is_star and not next_is_star:
            return i
        if fallback == -1:
            fallback = i
    return fallback


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    char = source[start]
    if char not in "*_":
        return None
    if char == "*":
        # "**" belongs to bold; "**hello*" stays literal.
        if source.startswith("*", start + 1):
            return None
        if start > 0 and source[start - 1] == "*":
            return None

    close = find_italic_close(source, start, end, char)
    if close == -1 or close >= end:
        return None
    # An empty pair is only italic at the very end, where it is being typed.
    if close == start + 1 and close + 1 < end:
        return None

    children = tuple(context.parse_inline(source, start + 1, close))
    data = dict(UNDERSCORE) if char == "_" else None
    return ParseInlineResult(InlineWrapper(ITALIC_KIND, children, data), close + 1)


def serialize_inline(
    inline: Inline, context: ExtensionContext
) -> SerializeResult | None:
    if not is_wrapper(inline, ITALIC_KIND):
        return None
    marker = marker_of(inline)
    return serialize_wrapper(inline, context, marker, marker)


def on_edit(command: EditCommand, state: RuntimeState) -> EditCommand | None:
    if isinstance(command, ToggleItalic):
        return ToggleInline("*")
    return None


italic_extension = Extension(
    name="italic",
    parse_inline=parse_inline,
    serialize_inline=serialize_inline,
    normalize_inline=drop_empty(ITALIC_KIND),
    on_edit=on_edit,
    toggle_inline=(
        ToggleInlineSpec(ITALIC_KIND, "*", "*"),
        ToggleInlineSpec(ITALIC_KIND, "_", "_"),
    ),
    wrapper_affinity=(WrapperAffinity(ITALIC_KIND, inclusive=True),),
)
