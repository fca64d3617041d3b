"""Strikethrough: ``~~text~~``."""

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

STRIKE_KIND = "strikethrough"
MARKER = "~~"


@dataclass(frozen=True)
class ToggleStrikethrough(EditCommand):
    type = "toggle-strikethrough"


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    if not source.startswith(MARKER, start):
        return None
    close = source.find(MARKER, start + 2)
    if close == -1 or close >= end:
        return None
    if close == start + 2 and close + 2 < end:
        return None
    children = tuple(context.parse_inline(source, start + 2, close))
    return ParseInlineResult(InlineWrapper(STRIKE_KIND, children), close + 2)


def serialize_inline(
    inline: Inline, context: ExtensionContext
) -> SerializeResult | None:
    if not is_wrapper(inline, STRIKE_KIND):
        return None
    return serialize_wrapper(inline, context, MARKER, MARKER)


def on_edit(command: EditCommand, state: RuntimeState) -> EditCommand | None:
    if isinstance(command, ToggleStrikethrough):
        return ToggleInline(MARKER)
    return None


strikethrough_extension = Extension(
    name="strikethrough",
    parse_inline=parse_inline,
    serialize_inline=serialize_inline,
    normalize_inline=drop_empty(STRIKE_KIND),
    on_edit=on_edit,
    toggle_inline=(ToggleInlineSpec(STRIKE_KIND, MARKER, MARKER),),
    wrapper_affinity=(WrapperAffinity(STRIKE_KIND, inclusive=True),),
)
