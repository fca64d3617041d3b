"""Underline: ``<u>text</u>``."""

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

UNDERLINE_KIND = "underline"
OPEN = "<u>"
CLOSE = "</u>"


@dataclass(frozen=True)
class ToggleUnderline(EditCommand):
    type = "toggle-underline"


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    if not source.startswith(OPEN, start):
        return None
    close = source.find(CLOSE, start + len(OPEN))
    if close == -1 or close >= end:
        return None
    children = tuple(context.parse_inline(source, start + len(OPEN), close))
    underline = InlineWrapper(UNDERLINE_KIND, children)
    return ParseInlineResult(underline, close + len(CLOSE))


def serialize_inline(
    inline: Inline, context: ExtensionContext
) -> SerializeResult | None:
    if not is_wrapper(inline, UNDERLINE_KIND):
        return None
    return serialize_wrapper(inline, context, OPEN, CLOSE)


def on_edit(command: EditCommand, state: RuntimeState) -> EditCommand | None:
    if isinstance(command, ToggleUnderline):
        return ToggleInline(OPEN)
    return None


underline_extension = Extension(
    name="underline",
    parse_inline=parse_inline,
    serialize_inline=serialize_inline,
    normalize_inline=drop_empty(UNDERLINE_KIND),
    on_edit=on_edit,
    toggle_inline=(ToggleInlineSpec(UNDERLINE_KIND, OPEN, CLOSE),),
    wrapper_affinity=(WrapperAffinity(UNDERLINE_KIND, inclusive=True),),
)
