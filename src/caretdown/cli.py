"""Command-line tools for inspecting documents.

Usage:
    caretdown inspect notes.md                  # doc tree and cursor map
    caretdown roundtrip a.md b.md               # check serialization is stable
    caretdown locate notes.md --cursor 4        # cursor offset -> source
    caretdown locate notes.md --source 6        # source offset -> cursor

Pass ``-`` as a path to read standard input.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from caretdown import _setup_logging, get_version_string
from caretdown.core.errors import CaretdownError
from caretdown.core.types import (
    BlockAtom,
    BlockWrapper,
    InlineAtom,
    InlineWrapper,
    Paragraph,
    Text,
)
from caretdown.extensions import create_runtime

if TYPE_CHECKING:
    from caretdown.core.runtime import Runtime, RuntimeState
    from caretdown.core.types import Block, Inline

console = Console()


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _label(node: Block | Inline) -> str:
    if isinstance(node, Text):
        return f"[green]text[/] {node.text!r}"
    if isinstance(node, Paragraph):
        return "[bold]paragraph[/]"
    kind_type = {
        InlineWrapper: "inline-wrapper",
        InlineAtom: "inline-atom",
        BlockWrapper: "block-wrapper",
        BlockAtom: "block-atom",
    }[type(node)]
    data = f" [dim]{node.data}[/]" if node.data else ""
    return f"[cyan]{kind_type}[/] {node.kind}{data}"


def _add_children(tree: Tree, node: Block | Inline) -> None:
    if isinstance(node, Paragraph):
        children = node.content
    elif isinstance(node, InlineWrapper):
        children = node.children
    elif isinstance(node, BlockWrapper):
        children = node.blocks
    else:
        return
    for child in children:
        _add_children(tree.add(_label(child)), child)


def build_tree(state: RuntimeState) -> Tree:
    """Render the doc of *state* as a rich tree."""
    tree = Tree("[bold]doc[/]")
    for block in state.doc.blocks:
        _add_children(tree.add(_label(block)), block)
    return tree


def build_map_table(state: RuntimeState) -> Table:
    """One row per cursor boundary, flagging divergent ones."""
    cursor_map = state.map
    table = Table(
        title=(
            f"cursor map ({cursor_map.cursor_length} units, "
            f"{cursor_map.source_length} chars)"
        )
    )
    table.add_column("cursor", justify="right")
    table.add_column("backward", justify="right")
    table.add_column("forward", justify="right")
    table.add_column("")
    for offset, boundary in enumerate(cursor_map.boundaries):
        marker = "[yellow]divergent[/]" if boundary.is_divergent else ""
        table.add_row(
            str(offset),
            str(boundary.source_backward),
            str(boundary.source_forward),
            marker,
        )
    return table


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def _inspect(runtime: Runtime, args: argparse.Namespace) -> int:
    state = runtime.create_state(_read(args.path))
    console.print(build_tree(state))
    console.print(build_map_table(state))
    return 0


def _roundtrip(runtime: Runtime, args: argparse.Namespace) -> int:
    drifted = 0
    for path in args.paths:
        source = _read(path)
        first = runtime.create_state(source)
        second = runtime.create_state(first.source)
        if second.source != first.source or second.doc != first.doc:
            drifted += 1
            console.print(f"[red]DRIFT[/] {path}")
            console.print(f"  first:  {first.source!r}")
            console.print(f"  second: {second.source!r}")
        elif first.source != source:
            console.print(f"[yellow]CANONICALIZED[/] {path}")
        else:
            console.print(f"[green]OK[/] {path}")

    console.print()
    console.print(f"Checked {len(args.paths)} file(s), {drifted} drifted.")
    return 1 if drifted else 0


def _locate(runtime: Runtime, args: argparse.Namespace) -> int:
    state = runtime.create_state(_read(args.path))
    if args.cursor is not None:
        offset = state.map.cursor_to_source(args.cursor, args.affinity)
        console.print(f"cursor {args.cursor} ({args.affinity}) -> source {offset}")
    else:
        position = state.map.source_to_cursor(args.source, args.affinity)
        console.print(
            f"source {args.source} ({args.affinity}) -> "
            f"cursor {position.cursor_offset} ({position.affinity})"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="caretdown",
        description="Inspect caretdown documents and their cursor maps.",
    )
    parser.add_argument(
        "--version", action="version", version=f"caretdown {get_version_string()}"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser(
        "inspect", help="Show the doc tree and cursor map."
    )
    inspect_parser.add_argument("path", help="Source file, or - for stdin.")
    inspect_parser.set_defaults(handler=_inspect)

    roundtrip_parser = subparsers.add_parser(
        "roundtrip", help="Check that serialization is stable."
    )
    roundtrip_parser.add_argument(
        "paths", nargs="+", help="Source files, or - for stdin."
    )
    roundtrip_parser.set_defaults(handler=_roundtrip)

    locate_parser = subparsers.add_parser(
        "locate", help="Map an offset between cursor and source space."
    )
    locate_parser.add_argument("path", help="Source file, or - for stdin.")
    target = locate_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--cursor", type=int, help="Cursor offset to map to source.")
    target.add_argument(
        "--source", type=int, help="Source offset to map to cursor space."
    )
    locate_parser.add_argument(
        "--affinity",
        choices=("forward", "backward"),
        default="forward",
        help="Affinity for --cursor, bias for --source.",
    )
    locate_parser.set_defaults(handler=_locate)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    _setup_logging()

    try:
        runtime = create_runtime()
        code = args.handler(runtime, args)
    except (CaretdownError, OSError) as exc:
        console.print(f"[red]Error:[/] {exc}")
        sys.exit(2)
    sys.exit(code)
