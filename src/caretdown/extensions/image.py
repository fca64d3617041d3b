"""Images: a line holding only ``![alt](url)`` or ``![uploading:id]()``.

An image is a block atom with no cursor units: it serializes as source only.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from caretdown.core.extension import Extension, ParseBlockResult
from caretdown.core.mapping import CursorSourceBuilder
from caretdown.core.types import BlockAtom

if TYPE_CHECKING:
    from caretdown.core.extension import ExtensionContext
    from caretdown.core.mapping import SerializeResult
    from caretdown.core.types import Block

IMAGE_KIND = "image"
IMAGE_PATTERN = re.compile(r"^!\[([^\]]*)\]\(([^)]*)\)$")
UPLOADING_PATTERN = re.compile(r"^!\[uploading:([^\]]+)\]\(\)$")


def image_source(data: Any) -> str:
    """Source text for image *data*; empty when the data is malformed."""
    if not isinstance(data, dict):
        return ""
    if data.get("status") == "uploading" and isinstance(data.get("id"), str):
        return f"![uploading:{data['id']}]()"
    if (
        data.get("status") == "ready"
        and isinstance(data.get("alt"), str)
        and isinstance(data.get("url"), str)
    ):
        return f"![{data['alt']}]({data['url']})"
    return ""


def parse_block(
    source: str, start: int, context: ExtensionContext
) -> ParseBlockResult | None:
    line_end = source.find("\n", start)
    if line_end == -1:
        line_end = len(source)
    line = source[start:line_end].strip()

    if match := UPLOADING_PATTERN.match(line):
        data = {"status": "uploading", "id": match.group(1)}
    elif match := IMAGE_PATTERN.match(line):
        data = {"status": "ready", "alt": match.group(1), "url": match.group(2)}
    else:
        return None
    return ParseBlockResult(BlockAtom(IMAGE_KIND, data), line_end)


def serialize_block(block: Block, context: ExtensionContext) -> SerializeResult | None:
    if not isinstance(block, BlockAtom) or block.kind != IMAGE_KIND:
        return None
    builder = CursorSourceBuilder()
    builder.append_source_only(image_source(block.data))
    return builder.build()


image_extension = Extension(
    name="image", parse_block=parse_block, serialize_block=serialize_block
)
