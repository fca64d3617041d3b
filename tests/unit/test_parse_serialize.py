"""Tests for parsing, serialization and normalization through the runtime."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from caretdown.core.errors import ExtensionConfigError, ExtensionContractError
from caretdown.core.extension import Extension, ParseBlockResult, ParseInlineResult
from caretdown.core.mapping import CursorSourceBuilder
from caretdown.core.runtime import Runtime
from caretdown.core.types import (
    BlockAtom,
    BlockWrapper,
    Doc,
    InlineAtom,
    InlineWrapper,
    Paragraph,
    Text,
)

if TYPE_CHECKING:
    from caretdown.config import Settings

CANONICAL_SOURCES = [
    "",
    "\n",
    "hello\n",
    "a\nb",
    "**bold** and *it*",
    "***both***",
    "**a *b***",
    "~~gone~~",
    "<u>under</u>",
    "# Title",
    "### Deep",
    "> quote\n> more",
    "- item\n- two",
    "1. one\n2. two",
    "[label](http://x)",
    "|label|http://x|",
    "@[u1](Ann) hi",
    "![alt](img.png)",
    "![uploading:abc]()",
    "# <u>title</u>\n",
    "<u>one</u>\n\n<u>two</u>",
    "é \U0001f1e6\U0001f1fa",
]


def _percent_atom(name: str) -> Extension:
    """Extension parsing ``%`` as an inline atom of kind *name*."""

    def parse_inline(source, start, end, context):
        if source[start] != "%":
            return None
        return ParseInlineResult(InlineAtom(name), start + 1)

    return Extension(name=name, parse_inline=parse_inline)


# ---------------------------------------------------------------------------
# Round trips
# ---------------------------------------------------------------------------
class TestRoundTrip:
    @pytest.mark.parametrize("source", CANONICAL_SOURCES)
    def test_canonical_source_is_stable(self, runtime: Runtime, source: str) -> None:
        """Canonical sources serialize back byte for byte."""
        state = runtime.create_state(source)
        assert state.source == source
        assert runtime.parse(state.source) == runtime.parse(source)

    def test_empty_source_is_one_empty_paragraph(self, runtime: Runtime) -> None:
        """Empty source is a single empty paragraph."""
        state = runtime.create_state("")
        assert state.doc == Doc((Paragraph(),))
        assert state.map.cursor_length == 0

    def test_trailing_newline_adds_empty_paragraph(self, runtime: Runtime) -> None:
        """A trailing newline leaves an empty last line."""
        doc = runtime.parse("hello\n")
        assert doc.blocks == (Paragraph((Text("hello"),)), Paragraph())
        assert runtime.serialize(doc).map.cursor_length == 6

    def test_underscore_italic_keeps_its_marker(self, runtime: Runtime) -> None:
        """Italic written with ``_`` is written back with ``_``."""
        assert runtime.create_state("_it_").source == "_it_"

    @pytest.mark.parametrize("source", ["_a*b_", "_*1_", "___x___", "**_a_**"])
    def test_underscore_emphasis_is_stable(self, runtime: Runtime, source: str) -> None:
        """Underscore emphasis holding stray stars serializes back unchanged."""
        state = runtime.create_state(source)
        assert state.source == source
        assert runtime.create_state(state.source).doc == state.doc

    def test_dropped_wrapper_joins_neighbouring_text(self, runtime: Runtime) -> None:
        """Removing an empty wrapper leaves one text node, not two."""
        state = runtime.create_state("a<u></u>b")
        assert state.doc == Doc((Paragraph((Text("ab"),)),))
        assert state.source == "ab"

    def test_adjacent_equal_wrappers_merge(self, runtime: Runtime) -> None:
        """Two touching bold spans become one."""
        state = runtime.create_state("**a****b**")
        assert state.doc == Doc((Paragraph((InlineWrapper("bold", (Text("ab"),)),)),))
        assert state.source == "**ab**"

    def test_wrappers_with_different_data_stay_apart(self, runtime: Runtime) -> None:
        """Links to different targets are not merged."""
        source = "[a](http://x)[b](http://y)"
        assert runtime.create_state(source).source == source

    def test_block_wrapper_counts_separators(self, runtime: Runtime) -> None:
        """A wrapper of two paragraphs spans both plus one separator."""
        lines = (Paragraph((Text("ab"),)), Paragraph((Text("cde"),)))
        quote = BlockWrapper("blockquote", lines)
        result = runtime.serialize(Doc((quote,)))
        assert result.source == "> ab\n> cde"
        assert result.map.cursor_length == 2 + 3 + 1


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
class TestParse:
    def test_literal_text_is_coalesced(self, runtime: Runtime) -> None:
        """Plain text parses to one text node."""
        doc = runtime.parse("plain words")
        assert doc.blocks == (Paragraph((Text("plain words"),)),)

    def test_unclosed_marker_stays_text(self, runtime: Runtime) -> None:
        """An unclosed marker is literal text."""
        doc = runtime.parse("**open")
        assert doc.blocks == (Paragraph((Text("**open"),)),)

    def test_bold_around_trailing_italic(self, runtime: Runtime) -> None:
        """An italic closing with bold nests inside it."""
        doc = runtime.parse("**a *b***")
        italic = InlineWrapper("italic", (Text("b"),))
        bold = InlineWrapper("bold", (Text("a "), italic))
        assert doc.blocks == (Paragraph((bold,)),)

    def test_combined_emphasis_is_bold_around_italic(self, runtime: Runtime) -> None:
        """Triple stars give bold around italic."""
        doc = runtime.parse("***x***")
        italic = InlineWrapper("italic", (Text("x"),))
        assert doc.blocks == (Paragraph((InlineWrapper("bold", (italic,)),)),)

    def test_link_keeps_url(self, runtime: Runtime) -> None:
        """Links carry their URL as data."""
        (paragraph,) = runtime.parse("[word](http://x)").blocks
        link = InlineWrapper("link", (Text("word"),), {"url": "http://x"})
        assert paragraph == Paragraph((link,))

    def test_inline_image_syntax_is_not_a_link(self, runtime: Runtime) -> None:
        """Image syntax inside a line is not a link."""
        doc = runtime.parse("a ![x](y)")
        assert doc.blocks == (Paragraph((Text("a ![x](y)"),)),)

    def test_mention_is_one_cursor_unit(self, runtime: Runtime) -> None:
        """A mention is a single atom."""
        state = runtime.create_state("@[u1](Ann) hi")
        mention = InlineAtom("mention", {"id": "u1", "label": "Ann"})
        assert state.doc.blocks[0].content[0] == mention
        assert state.map.cursor_length == 4

    def test_image_block_has_no_cursor_units(self, runtime: Runtime) -> None:
        """An image line is a block atom without cursor units."""
        state = runtime.create_state("![alt](img.png)")
        data = {"status": "ready", "alt": "alt", "url": "img.png"}
        assert state.doc.blocks == (BlockAtom("image", data),)
        assert state.map.cursor_length == 0

    def test_uploading_image(self, runtime: Runtime) -> None:
        """Upload placeholders keep their id."""
        (block,) = runtime.parse("![uploading:abc]()").blocks
        assert block == BlockAtom("image", {"status": "uploading", "id": "abc"})

    def test_heading_level_and_content(self, runtime: Runtime) -> None:
        """Heading level comes from the hash count."""
        (block,) = runtime.parse("## Two").blocks
        content = (Paragraph((Text("Two"),)),)
        assert block == BlockWrapper("heading", content, {"level": 2})

    def test_heading_needs_space(self, runtime: Runtime) -> None:
        """Hashes without a space are text."""
        assert runtime.parse("#tag").blocks == (Paragraph((Text("#tag"),)),)

    def test_heading_after_first_line(self, runtime: Runtime) -> None:
        """Headings parse on any line."""
        doc = runtime.parse("intro\n# Title")
        content = (Paragraph((Text("Title"),)),)
        assert doc.blocks[1] == BlockWrapper("heading", content, {"level": 1})

    def test_blockquote_groups_consecutive_lines(self, runtime: Runtime) -> None:
        """Adjacent quoted lines share one quote."""
        (block,) = runtime.parse("> a\n> b").blocks
        assert block == BlockWrapper(
            "blockquote",
            (Paragraph((Text("a"),)), Paragraph((Text("b"),))),
        )

    def test_list_lines_stay_paragraphs(self, runtime: Runtime) -> None:
        """List lines parse as plain paragraphs."""
        doc = runtime.parse("- a\n- b")
        assert doc.blocks == (Paragraph((Text("- a"),)), Paragraph((Text("- b"),)))


# ---------------------------------------------------------------------------
# Extension precedence and contracts
# ---------------------------------------------------------------------------
class TestExtensionChain:
    def test_first_extension_wins(self, settings: Settings) -> None:
        """Earlier extensions take precedence."""
        runtime = Runtime([_percent_atom("first"), _percent_atom("second")], settings)
        assert runtime.parse("%").blocks == (Paragraph((InlineAtom("first"),)),)

    def test_duplicate_names_rejected(self, settings: Settings) -> None:
        """Two extensions may not share a name."""
        with pytest.raises(ExtensionConfigError, match="Duplicate"):
            Runtime([_percent_atom("x"), _percent_atom("x")], settings)

    def test_inline_hook_must_consume_input(self, settings: Settings) -> None:
        """An inline hook that consumes nothing is a contract error."""
        def stuck(source, start, end, context):
            return ParseInlineResult(Text("?"), start)

        runtime = Runtime([Extension(name="stuck", parse_inline=stuck)], settings)
        with pytest.raises(ExtensionContractError, match="stuck"):
            runtime.parse("abc")

    def test_block_hook_must_consume_input(self, settings: Settings) -> None:
        """A block hook that consumes nothing is a contract error."""
        def stuck(source, start, context):
            return ParseBlockResult(Paragraph(), start)

        runtime = Runtime([Extension(name="stuck", parse_block=stuck)], settings)
        with pytest.raises(ExtensionContractError):
            runtime.parse("abc")

    def test_hook_exceptions_propagate(self, settings: Settings) -> None:
        """Hook exceptions reach the caller unchanged."""
        def broken(inline, context):
            raise KeyError("boom")

        runtime = Runtime([Extension(name="broken", serialize_inline=broken)], settings)
        with pytest.raises(KeyError):
            runtime.create_state("text")

    def test_bare_runtime_treats_everything_as_text(self, settings: Settings) -> None:
        """With no extensions all source is text."""
        state = Runtime(settings=settings).create_state("**x** # y")
        assert state.doc.blocks == (Paragraph((Text("**x** # y"),)),)
        assert state.map.cursor_length == 9

    def test_atom_serializer_sets_width(self, settings: Settings) -> None:
        """A custom atom serializer controls cursor width."""
        def serialize_inline(inline, context):
            if not isinstance(inline, InlineAtom):
                return None
            builder = CursorSourceBuilder()
            builder.append_cursor_atom("%", 1)
            return builder.build()

        extension = Extension(
            name="percent",
            parse_inline=_percent_atom("percent").parse_inline,
            serialize_inline=serialize_inline,
        )
        state = Runtime([extension], settings).create_state("a%b")
        assert state.source == "a%b"
        assert state.map.cursor_length == 3


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
class TestNormalize:
    @pytest.mark.parametrize("source", CANONICAL_SOURCES)
    def test_idempotent(self, runtime: Runtime, source: str) -> None:
        """Normalizing a normalized doc is a no-op."""
        once = runtime.normalize(runtime.parse(source))
        assert runtime.normalize(once) == once

    def test_empty_inline_wrapper_removed(self, runtime: Runtime) -> None:
        """Empty inline wrappers are dropped."""
        doc = Doc((Paragraph((InlineWrapper("bold"), Text("x"))),))
        assert runtime.create_state_from_doc(doc).source == "x"

    def test_wrapper_emptied_by_children_removed(self, runtime: Runtime) -> None:
        """A wrapper left empty by its children is dropped."""
        inner = InlineWrapper("italic")
        doc = Doc((Paragraph((InlineWrapper("bold", (inner,)), Text("x"))),))
        assert runtime.normalize(doc) == Doc((Paragraph((Text("x"),)),))

    def test_mention_without_string_id_removed(self, runtime: Runtime) -> None:
        """Mentions need a string id."""
        doc = Doc((Paragraph((InlineAtom("mention", {"id": 5}), Text("x"))),))
        assert runtime.normalize(doc) == Doc((Paragraph((Text("x"),)),))

    def test_empty_heading_gets_paragraph(self, runtime: Runtime) -> None:
        """An empty heading gains an empty paragraph."""
        doc = Doc((BlockWrapper("heading", (), {"level": 2}),))
        state = runtime.create_state_from_doc(doc)
        assert state.doc.blocks[0].blocks == (Paragraph(),)
        assert state.source == "## "

    def test_empty_blockquote_removed(self, runtime: Runtime) -> None:
        """Empty quotes are dropped."""
        doc = Doc((BlockWrapper("blockquote"), Paragraph((Text("x"),))))
        assert runtime.normalize(doc) == Doc((Paragraph((Text("x"),)),))

    def test_heading_level_clamped_on_serialize(self, runtime: Runtime) -> None:
        """Out of range levels serialize clamped."""
        doc = Doc((BlockWrapper("heading", (Paragraph((Text("t"),)),), {"level": 9}),))
        assert runtime.serialize(doc).source == "### t"


# ---------------------------------------------------------------------------
# Generated sources
# ---------------------------------------------------------------------------
class TestGeneratedRoundTrip:
    TOKENS = (
        "*", "**", "_", "<u>", "</u>", "~~", "[", "](", ")", "|",
        "> ", "# ", "- ", "\n", "a", "b", " ", "@[", "!",
    )

    @staticmethod
    def _source(seed: int, tokens: tuple[str, ...]) -> str:
        rng = random.Random(seed)
        return "".join(rng.choice(tokens) for _ in range(rng.randint(0, 14)))

    @pytest.mark.parametrize("seed", range(60))
    def test_normalized_doc_survives_reparse(self, runtime: Runtime, seed: int) -> None:
        """Serializing a normalized doc and parsing it back gives the same doc."""
        source = self._source(seed, self.TOKENS)
        doc = runtime.normalize(runtime.parse(source))
        reparsed = runtime.parse(runtime.serialize(doc).source)
        assert runtime.normalize(reparsed) == doc, source

    @pytest.mark.parametrize("seed", range(60))
    def test_normalize_is_idempotent(self, runtime: Runtime, seed: int) -> None:
        """Normalizing twice changes nothing further."""
        once = runtime.normalize(runtime.parse(self._source(seed, self.TOKENS)))
        assert runtime.normalize(once) == once

    @pytest.mark.parametrize("seed", range(60))
    def test_state_source_matches_doc(self, runtime: Runtime, seed: int) -> None:
        """A created state's source is exactly its doc's serialization."""
        state = runtime.create_state(self._source(seed, self.TOKENS))
        result = runtime.serialize(state.doc)
        assert state.source == result.source
        assert state.map == result.map
        assert state.map.source_length == len(state.source)
