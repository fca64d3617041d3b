"""Mentions: ``@[id](label)`` parsed as a one-unit inline atom."""

from __future__ import annotations

from typing import TYPE_CHECKING

from caretdown.core.extension import Extension, ParseInlineResult
from caretdown.core.mapping import CursorSourceBuilder
from caretdown.core.types import InlineAtom

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.types import Inline

MENTION_KIND = "mention"


def _is_mention(inline: Inline) -> bool:
    return isinstance(inline, InlineAtom) and inline.kind == MENTION_KIND


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    if not source.startswith("@[", start):
        return None
    id_start = start + 2
    id_close = source.find("]", id_start)
    if id_close == -1 or id_close >= end:
        return None
    if source[id_close + 1 : id_close + 2] != "(":
        return None
    label_start = id_close + 2
    label_close = source.find(")", label_start)
    if label_close == -1 or label_close >= end:
        return None
    data = {"id": source[id_start:id_close], "label": source[label_start:label_close]}
    return ParseInlineResult(InlineAtom(MENTION_KIND, data), label_close + 1)


def serialize_inline(
    inline: Inline, context: ExtensionContext
) -> SerializeResult | None:
    if not _is_mention(inline):
        return None
    data = inline.data or {}
    mention_id = data.get("id") if isinstance(data.get("id"), str) else ""
    label = data.get("label") if isinstance(data.get("label"), str) else ""
    builder = CursorSourceBuilder()
    builder.append_cursor_atom(f"@[{mention_id}]({label})", 1)
    return builder.build()


def normalize_inline(inline: Inline) -> Inline | None:
    if _is_mention(inline) and not isinstance((inline.data or {}).get("id"), str):
        return None
    return inline


mention_extension = Extension(
    name="mention",
    parse_inline=parse_inline,
    serialize_inline=serialize_inline,
    normalize_inline=normalize_inline,
)
