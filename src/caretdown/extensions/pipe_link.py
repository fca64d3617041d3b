"""Pipe links: ``|label|url|``. The label is plain text."""

from __future__ import annotations

from typing import TYPE_CHECKING

from caretdown.core.extension import Extension, ParseInlineResult
from caretdown.core.types import InlineWrapper, Text
from caretdown.extensions._shared import drop_empty, is_wrapper, serialize_wrapper

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.types import Inline

PIPE_LINK_KIND = "pipe-link"


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    if source[start] != "|":
        return None
    label_close = source.find("|", start + 1)
    if label_close == -1 or label_close >= end:
        return None
    url_close = source.find("|", label_close + 1)
    if url_close == -1 or url_close >= end:
        return None
    label = source[start + 1 : label_close]
    url = source[label_close + 1 : url_close]
    if not label or not url:
        return None
    link = InlineWrapper(PIPE_LINK_KIND, (Text(label),), {"url": url})
    return ParseInlineResult(link, url_close + 1)


def serialize_inline(
    inline: Inline, context: ExtensionContext
) -> SerializeResult | None:
    if not is_wrapper(inline, PIPE_LINK_KIND):
        return None
    url = (inline.data or {}).get("url", "")
    if not isinstance(url, str):
        url = ""
    return serialize_wrapper(inline, context, "|", f"|{url}|")


pipe_link_extension = Extension(
    name="pipe-link",
    parse_inline=parse_inline,
    serialize_inline=serialize_inline,
    normalize_inline=drop_empty(PIPE_LINK_KIND),
)
