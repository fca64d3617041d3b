"""``***text***`` and ``___text___``: bold wrapping italic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from caretdown.core.extension import Extension, ParseInlineResult
from caretdown.core.types import InlineWrapper
from caretdown.extensions.italic import UNDERSCORE

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext

MARKERS = ("***", "___")


def parse_inline(
    source: str, start: int, end: int, context: ExtensionContext
) -> ParseInlineResult | None:
    marker = next((m for m in MARKERS if source.startswith(m, start)), None)
    if marker is None:
        return None
    # Longer delimiter runs like "****" are not ours.
    if source.startswith(marker[0], start + 3):
        return None
    close = source.find(marker, start + 3)
    if close == -1 or close >= end:
        return None
    if close == start + 3 and close + 3 < end:
        return None

    children = tuple(context.parse_inline(source, start + 3, close))
    # "___" keeps its delimiter on both wrappers so it serializes back as written.
    if marker == "___":
        italic = InlineWrapper("italic", children, dict(UNDERSCORE))
        bold = InlineWrapper("bold", (italic,), dict(UNDERSCORE))
    else:
        bold = InlineWrapper("bold", (InlineWrapper("italic", children),))
    return ParseInlineResult(bold, close + 3)


combined_emphasis_extension = Extension(
    name="combined-emphasis", parse_inline=parse_inline
)
