"""Bold: ``**text**``, plus ``***text***`` as bold around italic.

Bold parsed from ``___text___`` keeps ``__`` while it still wraps exactly
the matching ``_`` italic; anything else is written back with ``**``.
"""

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
from caretdown.extensions.italic import UNDERSCORE, marker_of

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.runtime import RuntimeState
    from caretdown.core.types import Inline

BOLD_KIND = "bold"
MARKER = "**"


@dataclass(frozen=True)
class ToggleBold(EditCommand):
    type = "toggle-bold"


def _count_single_asterisks(source: str, start: int, end: int) -> int:
    count = 0
    for i in range(start, end):
        if source[i] != "*":
            continue
        prev = source[i - 1] if i > start else ""
        nxt = source[i + 1] if i + 1 < end else ""
        if prev == "*" or nxt == "*":
            continue
        count += 1
    return count


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    if source.startswith("***", start):
        close = source.find("***", start + 3)
        if close != -1 and close < end:
            children = tuple(context.parse_inline(source, start + 3, close))
            italic = InlineWrapper("italic", children)
            return ParseInlineResult(InlineWrapper(BOLD_KIND, (italic,)), close + 3)

    if not source.startswith(MARKER, start):
        return None
    close = source.find(MARKER, start + 2)
    if close == -1 or close >= end:
        return None
    # "**a *b***": the odd single star closes first, bold takes the last two.
    if (
        source.startswith("***", close)
        and close + 1 < end
        and _count_single_asterisks(source, start + 2, close) % 2 == 1
    ):
        close += 1

    children = tuple(context.parse_inline(source, start + 2, close))
    return ParseInlineResult(InlineWrapper(BOLD_KIND, children), close + 2)


def serialize_inline(
    inline: Inline, context: ExtensionContext
) -> SerializeResult | None:
    if not is_wrapper(inline, BOLD_KIND):
        return None
    marker = MARKER
    # "__" is only bold syntax when it closes around a "_" italic, as in "___x___".
    if inline.data == UNDERSCORE and len(inline.children) == 1:
        (child,) = inline.children
        if is_wrapper(child, "italic") and marker_of(child) == "_":
            marker = "__"
    return serialize_wrapper(inline, context, marker, marker)


def on_edit(command: EditCommand, state: RuntimeState) -> EditCommand | None:
    if isinstance(command, ToggleBold):
        return ToggleInline(MARKER)
    return None


bold_extension = Extension(
    name="bold",
    parse_inline=parse_inline,
    serialize_inline=serialize_inline,
    normalize_inline=drop_empty(BOLD_KIND),
    on_edit=on_edit,
    toggle_inline=(ToggleInlineSpec(BOLD_KIND, MARKER, MARKER),),
    wrapper_affinity=(WrapperAffinity(BOLD_KIND, inclusive=True),),
)
