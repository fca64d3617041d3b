"""Markdown links: ``[label](url)``.

Links are non-inclusive: a caret at the end of a link types outside it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from caretdown.core.commands import EditCommand
from caretdown.core.extension import (
    EditResult,
    Extension,
    ParseInlineResult,
    WrapperAffinity,
)
from caretdown.core.mapping import CursorSourceBuilder
from caretdown.core.types import InlineWrapper, Selection
from caretdown.extensions._shared import drop_empty, is_wrapper

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.runtime import RuntimeState
    from caretdown.core.types import Inline

LINK_KIND = "link"


@dataclass(frozen=True)
class WrapLink(EditCommand):
    """Wrap the selected source in ``[...](url)``."""

    url: str = ""

    type = "wrap-link"


@dataclass(frozen=True)
class Unlink(EditCommand):
    """Replace the link around cursor offset *start* with its label."""

    start: int

    type = "unlink"


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    if source[start] != "[":
        return None
    # "![...](...)" is an image.
    if start > 0 and source[start - 1] == "!":
        return None
    label_close = source.find("](", start + 1)
    if label_close == -1 or label_close >= end:
        return None
    url_close = source.find(")", label_close + 2)
    if url_close == -1 or url_close >= end:
        return None

    children = tuple(context.parse_inline(source, start + 1, label_close))
    url = source[label_close + 2 : url_close]
    link = InlineWrapper(LINK_KIND, children, {"url": url})
    return ParseInlineResult(link, url_close + 1)


def serialize_inline(
    inline: Inline, context: ExtensionContext
) -> SerializeResult | None:
    if not is_wrapper(inline, LINK_KIND):
        return None
    url = (inline.data or {}).get("url", "")
    builder = CursorSourceBuilder()
    builder.append_source_only("[")
    for child in inline.children:
        builder.append_serialized(context.serialize_inline(child))
    builder.append_source_only(f"]({url if isinstance(url, str) else ''})")
    return builder.build()


def _unlink(command: Unlink, state: RuntimeState) -> EditResult | None:
    source = state.source
    position = max(0, min(command.start, state.map.cursor_length))
    link_start = state.map.cursor_to_source(position, "forward")
    while link_start > 0 and source[link_start : link_start + 1] != "[":
        link_start -= 1
    if source[link_start : link_start + 1] != "[":
        return None
    label_close = source.find("](", link_start + 1)
    if label_close == -1:
        return None
    url_close = source.find(")", label_close + 2)
    if url_close == -1:
        return None

    label = source[link_start + 1 : label_close]
    next_source = source[:link_start] + label + source[url_close + 1 :]
    caret = link_start + len(label)
    return state.runtime.result_at_source(next_source, caret, "forward")


def _wrap_link(command: WrapLink, state: RuntimeState) -> EditResult | None:
    selection = state.selection.ordered()
    if selection.is_collapsed:
        return None
    source_from = state.map.cursor_to_source(selection.start, "forward")
    source_to = state.map.cursor_to_source(selection.end, "backward")
    if source_from >= source_to:
        return None
    label = state.source[source_from:source_to]
    before, after = state.source[:source_from], state.source[source_to:]
    next_source = f"{before}[{label}]({command.url}){after}"
    return EditResult(next_source, Selection(selection.end, selection.end, "backward"))


def on_edit(command: EditCommand, state: RuntimeState) -> EditResult | None:
    if isinstance(command, Unlink):
        return _unlink(command, state)
    if isinstance(command, WrapLink):
        return _wrap_link(command, state)
    return None


link_extension = Extension(
    name="link",
    parse_inline=parse_inline,
    serialize_inline=serialize_inline,
    normalize_inline=drop_empty(LINK_KIND),
    on_edit=on_edit,
    wrapper_affinity=(WrapperAffinity(LINK_KIND, inclusive=False),),
)
