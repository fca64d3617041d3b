"""Document model: the typed tree parsed from source and walked by serializers.

Nodes are frozen dataclasses. A new tree is produced on every parse or edit;
nothing mutates a node in place. ``kind`` and ``data`` on wrappers and atoms
belong to the extension that produced them - the core only passes them
through.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Affinity = Literal["forward", "backward"]

# Opaque extension payload. ``None`` means "no data".
Data = dict[str, Any] | None


# ---------------------------------------------------------------------------
# Inlines
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Text:
    """Literal visible text: one cursor unit per grapheme."""

    text: str

    type = "text"


@dataclass(frozen=True)
class InlineWrapper:
    """Formatting span (bold, link, ...) around other inlines."""

    kind: str
    children: tuple[Inline, ...] = ()
    data: Data = None

    type = "inline-wrapper"


@dataclass(frozen=True)
class InlineAtom:
    """Non-text inline worth exactly one cursor unit (e.g. a mention)."""

    kind: str
    data: Data = None

    type = "inline-atom"


Inline = Text | InlineWrapper | InlineAtom


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Paragraph:
    """A line of inline content."""

    content: tuple[Inline, ...] = ()

    type = "paragraph"


@dataclass(frozen=True)
class BlockWrapper:
    """Container of other blocks (blockquote, heading, ...)."""

    kind: str
    blocks: tuple[Block, ...] = ()
    data: Data = None

    type = "block-wrapper"


@dataclass(frozen=True)
class BlockAtom:
    """Non-text block with an opaque payload (e.g. an image)."""

    kind: str
    data: Data = None

    type = "block-atom"


Block = Paragraph | BlockWrapper | BlockAtom


@dataclass(frozen=True)
class Doc:
    """Root of the document tree."""

    blocks: tuple[Block, ...] = field(default_factory=lambda: (Paragraph(),))

    type = "doc"


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Selection:
    """Cursor-space selection.

    ``start`` may be greater than ``end``: the pair encodes anchor and focus.
    ``affinity`` disambiguates a collapsed selection sitting on a boundary
    whose source offsets diverge.
    """

    start: int
    end: int
    affinity: Affinity | None = None

    @property
    def is_collapsed(self) -> bool:
        return self.start == self.end

    def ordered(self) -> Selection:
        """Return the selection with ``start <= end``.

        A reversed range becomes ``backward`` so the focus stays at the left.
        """
        if self.start <= self.end:
            return self
        return Selection(self.end, self.start, "backward")


def visible_text(node: Block | Inline) -> str:
    """Return the text a user sees for *node*; an atom shows as one space."""
    if isinstance(node, Text):
        return node.text
    if isinstance(node, InlineAtom):
        return " "
    if isinstance(node, InlineWrapper):
        return "".join(visible_text(child) for child in node.children)
    if isinstance(node, Paragraph):
        return "".join(visible_text(inline) for inline in node.content)
    if isinstance(node, BlockWrapper):
        return "\n".join(visible_text(block) for block in node.blocks)
    return ""
