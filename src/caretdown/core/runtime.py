"""The runtime: hook dispatch, parse/serialize/normalize and edit application.

A ``Runtime`` is built once from an ordered extension list and is immutable
afterwards. Every operation is a pure function of its inputs and returns a
new ``RuntimeState``; the caller owns the states.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Literal, TypeVar

import grapheme

from caretdown.core import editing
from caretdown.core.commands import EditCommand, ToggleInline, is_structural
from caretdown.core.errors import (
    EditDelegationError,
    ExtensionConfigError,
    ExtensionContractError,
    InvalidCommandError,
)
from caretdown.core.extension import EditResult, ParseBlockResult
from caretdown.core.lines import flatten_doc_to_lines
from caretdown.core.mapping import CursorSourceBuilder, SerializeResult, empty_result
from caretdown.core.runs import exiting_marks, preferred_typing_affinity_at_gap
from caretdown.core.types import (
    BlockAtom,
    BlockWrapper,
    Doc,
    InlineWrapper,
    Paragraph,
    Selection,
    Text,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from caretdown.config import Settings
    from caretdown.core.extension import Extension, ToggleInlineSpec
    from caretdown.core.lines import FlatLine
    from caretdown.core.mapping import CursorSourceMap
    from caretdown.core.types import Affinity, Block, Inline

logger = logging.getLogger(__name__)

SelectionKind = Literal["programmatic", "keyboard", "dom"]
SELECTION_KINDS: tuple[SelectionKind, ...] = ("programmatic", "keyboard", "dom")

DEFAULT_SELECTION = Selection(0, 0, "forward")

_T = TypeVar("_T")

# Literal text is consumed one grapheme at a time; clusters longer than this
# window grow it until the cluster is complete.
_GRAPHEME_WINDOW = 32


@dataclass(frozen=True)
class RuntimeState:
    """Source, doc, map and selection that stay mutually consistent."""

    source: str
    doc: Doc
    map: CursorSourceMap
    selection: Selection
    runtime: Runtime = field(repr=False, compare=False)

    def with_selection(self, selection: Selection) -> RuntimeState:
        return replace(self, selection=selection)


def _next_grapheme(source: str, pos: int, end: int) -> str:
    window = _GRAPHEME_WINDOW
    while True:
        limit = min(end, pos + window)
        cluster = grapheme.slice(source[pos:limit], 0, 1)
        if len(cluster) < limit - pos or limit == end:
            return cluster
        window *= 2


class Runtime:
    """Editing runtime over an ordered list of extensions.

    Args:
        extensions: Extensions in priority order. Names must be unique.
        settings: Settings supplying engine limits. Defaults to
            ``get_settings()``.

    Raises:
        ExtensionConfigError: If two extensions share a name.
    """

    def __init__(
        self,
        extensions: Iterable[Extension] = (),
        settings: Settings | None = None,
    ) -> None:
        if settings is None:
            from caretdown.config import get_settings

            settings = get_settings()

        self.extensions: tuple[Extension, ...] = tuple(extensions)
        self.max_edit_delegations = settings.engine.max_edit_delegations

        seen: set[str] = set()
        for extension in self.extensions:
            if extension.name in seen:
                msg = f"Duplicate extension name: {extension.name!r}"
                raise ExtensionConfigError(msg)
            seen.add(extension.name)

        # First registration wins for both registries.
        self._toggle_specs: dict[str, ToggleInlineSpec] = {}
        self._inclusive: dict[str, bool] = {}
        for extension in self.extensions:
            for spec in extension.toggle_inline:
                self._toggle_specs.setdefault(spec.open, spec)
            for affinity in extension.wrapper_affinity:
                self._inclusive.setdefault(affinity.kind, affinity.inclusive)

        self._parse_block_hooks = self._chain("parse_block")
        self._parse_inline_hooks = self._chain("parse_inline")
        self._serialize_block_hooks = self._chain("serialize_block")
        self._serialize_inline_hooks = self._chain("serialize_inline")
        self._normalize_block_hooks = self._chain("normalize_block")
        self._normalize_inline_hooks = self._chain("normalize_inline")
        self._on_edit_hooks = self._chain("on_edit")

        logger.debug(
            "Runtime ready with extensions: %s",
            ", ".join(extension.name for extension in self.extensions) or "(none)",
        )

    def __repr__(self) -> str:
        names = [extension.name for extension in self.extensions]
        return f"Runtime(extensions={names!r})"

    def _chain(self, hook_name: str) -> list[tuple[str, Callable]]:
        return [
            (extension.name, hook)
            for extension in self.extensions
            if (hook := getattr(extension, hook_name)) is not None
        ]

    @staticmethod
    def _call(name: str, hook_name: str, hook: Callable[..., _T], *args: object) -> _T:
        try:
            return hook(*args)
        except Exception:
            logger.debug("Extension %r raised in %s", name, hook_name)
            raise

    # -----------------------------------------------------------------------
    # Registries
    # -----------------------------------------------------------------------
    def toggle_spec(self, marker: str) -> ToggleInlineSpec | None:
        return self._toggle_specs.get(marker)

    def is_inclusive_at_end(self, kind: str) -> bool:
        """Whether typing at the end of a *kind* wrapper extends it."""
        return self._inclusive.get(kind, True)

    def lines(self, doc: Doc) -> list[FlatLine]:
        """Line view of *doc* with block atoms measured by their serializer."""
        return flatten_doc_to_lines(doc, atom_width=self._atom_width)

    def _atom_width(self, block: BlockAtom) -> int:
        return self.serialize_block(block).map.cursor_length

    # -----------------------------------------------------------------------
    # Parsing
    # -----------------------------------------------------------------------
    def parse(self, source: str) -> Doc:
        """Parse *source* into a doc. Never fails; unknown syntax is text."""
        blocks: list[Block] = []
        pos = 0
        while pos < len(source):
            result = self.parse_block_at(source, pos)
            blocks.append(result.block)
            pos = result.next_pos
            if source.startswith("\n", pos):
                pos += 1
        if not source or source.endswith("\n"):
            blocks.append(Paragraph())
        return Doc(tuple(blocks))

    def parse_block_at(self, source: str, start: int) -> ParseBlockResult:
        """Parse one block at *start*; the literal fallback is a paragraph line."""
        for name, hook in self._parse_block_hooks:
            result = self._call(name, "parse_block", hook, source, start, self)
            if result is None:
                continue
            if result.next_pos <= start and not source.startswith("\n", start):
                msg = (
                    f"Extension {name!r} parsed a block without consuming input "
                    f"at {start}"
                )
                raise ExtensionContractError(msg)
            return result

        end = source.find("\n", start)
        if end == -1:
            end = len(source)
        content = tuple(self.parse_inline(source, start, end))
        return ParseBlockResult(Paragraph(content), end)

    def parse_inline(self, source: str, start: int, end: int) -> list[Inline]:
        """Parse ``source[start:end]`` into inlines, coalescing literal text."""
        inlines: list[Inline] = []
        pending: list[str] = []

        def flush() -> None:
            if pending:
                inlines.append(Text("".join(pending)))
                pending.clear()

        pos = start
        while pos < end:
            result = None
            for name, hook in self._parse_inline_hooks:
                result = self._call(name, "parse_inline", hook, source, pos, end, self)
                if result is not None:
                    break
            if result is None:
                cluster = _next_grapheme(source, pos, end)
                pending.append(cluster)
                pos += len(cluster)
                continue
            if result.next_pos <= pos:
                msg = (
                    f"Extension {name!r} parsed an inline without consuming input "
                    f"at {pos}"
                )
                raise ExtensionContractError(msg)
            flush()
            inlines.append(result.inline)
            pos = result.next_pos
        flush()
        return inlines

    # -----------------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------------
    def serialize(self, doc: Doc) -> SerializeResult:
        """Serialize *doc* to source plus its cursor map."""
        builder = CursorSourceBuilder()
        for index, block in enumerate(doc.blocks):
            if index:
                builder.append_text("\n")
            builder.append_serialized(self.serialize_block(block))
        return builder.build()

    def serialize_block(self, block: Block) -> SerializeResult:
        for name, hook in self._serialize_block_hooks:
            result = self._call(name, "serialize_block", hook, block, self)
            if result is not None:
                return result

        builder = CursorSourceBuilder()
        if isinstance(block, Paragraph):
            for inline in block.content:
                builder.append_serialized(self.serialize_inline(inline))
        elif isinstance(block, BlockWrapper):
            for index, child in enumerate(block.blocks):
                if index:
                    builder.append_text("\n")
                builder.append_serialized(self.serialize_block(child))
        else:
            return empty_result()
        return builder.build()

    def serialize_inline(self, inline: Inline) -> SerializeResult:
        for name, hook in self._serialize_inline_hooks:
            result = self._call(name, "serialize_inline", hook, inline, self)
            if result is not None:
                return result

        builder = CursorSourceBuilder()
        if isinstance(inline, Text):
            builder.append_text(inline.text)
        elif isinstance(inline, InlineWrapper):
            for child in inline.children:
                builder.append_serialized(self.serialize_inline(child))
        else:
            return empty_result()
        return builder.build()

    # -----------------------------------------------------------------------
    # Normalization
    # -----------------------------------------------------------------------
    def normalize(self, doc: Doc) -> Doc:
        """Canonicalize *doc* so it survives a serialize/parse round trip.

        Extension hooks run before and after each node's children; the core
        then merges neighbouring text and equal wrappers. Dropping a node can
        join its neighbours' markers into new syntax, so the result is
        re-parsed from its own serialization until it stops changing. Each
        pass that changes the doc shortens its source, which bounds the loop.
        """
        normalized = self.normalize_tree(doc)
        source = self.serialize(normalized).source
        for _ in range(len(source) + 2):
            reparsed = self.normalize_tree(self.parse(source))
            if reparsed == normalized:
                return normalized
            normalized = reparsed
            source = self.serialize(normalized).source
        logger.debug("Normalization did not settle for source %r", source)
        return normalized

    def normalize_tree(self, doc: Doc) -> Doc:
        """One pass of hooks and merging, without the round-trip check."""
        return Doc(tuple(self._normalize_all(doc.blocks, self.normalize_block)))

    @staticmethod
    def _normalize_all(
        nodes: Sequence[_T], normalize: Callable[[_T], _T | None]
    ) -> list[_T]:
        return [node for node in map(normalize, nodes) if node is not None]

    @classmethod
    def _merge_inlines(cls, inlines: Iterable[Inline]) -> tuple[Inline, ...]:
        """Join adjacent text, and adjacent wrappers of equal kind and data."""
        merged: list[Inline] = []
        for inline in inlines:
            previous = merged[-1] if merged else None
            if isinstance(inline, Text):
                if not inline.text:
                    continue
                if isinstance(previous, Text):
                    merged[-1] = Text(previous.text + inline.text)
                    continue
            elif (
                isinstance(inline, InlineWrapper)
                and isinstance(previous, InlineWrapper)
                and (previous.kind, previous.data) == (inline.kind, inline.data)
            ):
                children = cls._merge_inlines((*previous.children, *inline.children))
                merged[-1] = replace(previous, children=children)
                continue
            merged.append(inline)
        return tuple(merged)

    def _run_normalizers(
        self, hooks: list[tuple[str, Callable]], hook_name: str, node: _T
    ) -> _T | None:
        for name, hook in hooks:
            node = self._call(name, hook_name, hook, node)
            if node is None:
                return None
        return node

    def normalize_block(self, block: Block) -> Block | None:
        hooks = self._normalize_block_hooks
        node = self._run_normalizers(hooks, "normalize_block", block)
        if node is None or isinstance(node, BlockAtom):
            return node
        if isinstance(node, Paragraph):
            content = self._normalize_all(node.content, self.normalize_inline)
            node = replace(node, content=self._merge_inlines(content))
        else:
            blocks = self._normalize_all(node.blocks, self.normalize_block)
            node = replace(node, blocks=tuple(blocks))
        return self._run_normalizers(hooks, "normalize_block", node)

    def normalize_inline(self, inline: Inline) -> Inline | None:
        hooks = self._normalize_inline_hooks
        node = self._run_normalizers(hooks, "normalize_inline", inline)
        if not isinstance(node, InlineWrapper):
            return node
        children = self._normalize_all(node.children, self.normalize_inline)
        node = replace(node, children=self._merge_inlines(children))
        return self._run_normalizers(hooks, "normalize_inline", node)

    # -----------------------------------------------------------------------
    # States
    # -----------------------------------------------------------------------
    def create_state(
        self, source: str, selection: Selection | None = None
    ) -> RuntimeState:
        """Parse, normalize and serialize *source* into a consistent state."""
        return self._state_for(self.normalize(self.parse(source)), selection)

    def create_state_from_doc(
        self, doc: Doc, selection: Selection | None = None
    ) -> RuntimeState:
        """Build a state from a doc; its source is whatever the doc serializes to."""
        return self._state_for(self.normalize(doc), selection)

    def _state_for(self, doc: Doc, selection: Selection | None) -> RuntimeState:
        result = self.serialize(doc)
        selection = selection or DEFAULT_SELECTION
        length = result.map.cursor_length
        clamped = Selection(
            max(0, min(selection.start, length)),
            max(0, min(selection.end, length)),
            selection.affinity,
        )
        return RuntimeState(result.source, doc, result.map, clamped, self)

    def result_at_source(
        self, source: str, source_offset: int, bias: Affinity = "forward"
    ) -> EditResult:
        """An edit result with a collapsed caret at *source_offset* of *source*.

        For hooks that compute new source text and know where the caret
        belongs in it.
        """
        next_map = self.serialize(self.normalize(self.parse(source))).map
        offset = max(0, min(source_offset, next_map.source_length))
        position = next_map.source_to_cursor(offset, bias)
        caret = position.cursor_offset
        return EditResult(source, Selection(caret, caret, position.affinity))

    # -----------------------------------------------------------------------
    # Editing
    # -----------------------------------------------------------------------
    def apply_edit(self, command: EditCommand, state: RuntimeState) -> RuntimeState:
        """Apply *command* to *state* and return the resulting state.

        Extensions see the command first, in order. One may answer with a
        full result, or delegate by returning another command, which
        restarts the chain.

        Raises:
            InvalidCommandError: If *command* is not an edit command.
            EditDelegationError: If delegation exceeds the configured limit.
        """
        self._check_command(command)
        chain = [command.type]
        while True:
            outcome = self._dispatch_edit(command, state)
            if outcome is None:
                break
            if isinstance(outcome, EditResult):
                return self.create_state(outcome.source, outcome.selection)
            self._check_command(outcome)
            chain.append(outcome.type)
            if len(chain) - 1 > self.max_edit_delegations:
                raise EditDelegationError(chain)
            logger.debug("Edit %s delegated to %s", command.type, outcome.type)
            command = outcome

        if isinstance(command, ToggleInline):
            return editing.toggle_inline(self, state, command.marker)
        if is_structural(command):
            return editing.apply_core_edit(self, command, state)
        logger.debug("No handler for edit %s; state unchanged", command.type)
        return state

    def _dispatch_edit(
        self, command: EditCommand, state: RuntimeState
    ) -> EditResult | EditCommand | None:
        for name, hook in self._on_edit_hooks:
            outcome = self._call(name, "on_edit", hook, command, state)
            if outcome is not None:
                logger.debug("Extension %r handled %s", name, command.type)
                return outcome
        return None

    @staticmethod
    def _check_command(command: object) -> None:
        if not isinstance(command, EditCommand):
            msg = f"Expected an EditCommand, got {type(command).__name__}"
            raise InvalidCommandError(msg)
        if isinstance(command, ToggleInline) and not isinstance(command.marker, str):
            msg = "ToggleInline.marker must be a string"
            raise InvalidCommandError(msg)
        text = getattr(command, "text", "")
        if not isinstance(text, str):
            msg = f"{type(command).__name__}.text must be a string"
            raise InvalidCommandError(msg)

    # -----------------------------------------------------------------------
    # Selection
    # -----------------------------------------------------------------------
    def update_selection(
        self,
        state: RuntimeState,
        selection: Selection,
        kind: SelectionKind = "programmatic",
    ) -> RuntimeState:
        """Clamp and normalize *selection*, then settle a collapsed caret's affinity.

        ``keyboard`` carets take the typing preference at their gap; ``dom``
        carets step forward out of non-inclusive wrappers.
        """
        if kind not in SELECTION_KINDS:
            msg = f"Unknown selection kind: {kind!r}"
            raise ValueError(msg)

        ordered = selection.ordered()
        length = state.map.cursor_length
        start = max(0, min(ordered.start, length))
        end = max(0, min(ordered.end, length))
        affinity: Affinity = ordered.affinity or "forward"

        if start == end and kind != "programmatic":
            left, right = editing.marks_around_cursor(self, state.doc, start)
            if kind == "keyboard":
                affinity = preferred_typing_affinity_at_gap(
                    left, right, affinity, self.is_inclusive_at_end
                )
            elif affinity == "backward" and any(
                not self.is_inclusive_at_end(mark.kind)
                for mark in exiting_marks(left, right)
            ):
                affinity = "forward"
        return state.with_selection(Selection(start, end, affinity))

    def serialize_selection(
        self, state: RuntimeState, selection: Selection | None = None
    ) -> str:
        """Source text of *selection* (the state's own by default)."""
        return editing.serialize_selection(self, state, selection or state.selection)

