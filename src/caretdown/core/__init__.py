"""Editing core: document model, cursor/source mapping and the runtime."""

from caretdown.core.commands import (
    DeleteBackward,
    DeleteForward,
    EditCommand,
    ExitBlockWrapper,
    Indent,
    Insert,
    InsertHardLineBreak,
    InsertLineBreak,
    Outdent,
    ToggleInline,
)
from caretdown.core.errors import (
    CaretdownError,
    CursorOffsetError,
    EditDelegationError,
    ExtensionConfigError,
    ExtensionContractError,
    InvalidCommandError,
    SourceOffsetError,
)
from caretdown.core.extension import (
    EditResult,
    Extension,
    ExtensionContext,
    ParseBlockResult,
    ParseInlineResult,
    ToggleInlineSpec,
    WrapperAffinity,
)
from caretdown.core.mapping import (
    CursorBoundary,
    CursorPosition,
    CursorSourceBuilder,
    CursorSourceMap,
    SerializeResult,
)
from caretdown.core.runtime import Runtime, RuntimeState
from caretdown.core.types import (
    Block,
    BlockAtom,
    BlockWrapper,
    Doc,
    Inline,
    InlineAtom,
    InlineWrapper,
    Paragraph,
    Selection,
    Text,
)

__all__ = [
    "Block",
    "BlockAtom",
    "BlockWrapper",
    "CaretdownError",
    "CursorBoundary",
    "CursorOffsetError",
    "CursorPosition",
    "CursorSourceBuilder",
    "CursorSourceMap",
    "DeleteBackward",
    "DeleteForward",
    "Doc",
    "EditCommand",
    "EditDelegationError",
    "EditResult",
    "ExitBlockWrapper",
    "Extension",
    "ExtensionConfigError",
    "ExtensionContext",
    "ExtensionContractError",
    "Indent",
    "Inline",
    "InlineAtom",
    "InlineWrapper",
    "Insert",
    "InsertHardLineBreak",
    "InsertLineBreak",
    "InvalidCommandError",
    "Outdent",
    "Paragraph",
    "ParseBlockResult",
    "ParseInlineResult",
    "Runtime",
    "RuntimeState",
    "Selection",
    "SerializeResult",
    "SourceOffsetError",
    "Text",
    "ToggleInline",
    "ToggleInlineSpec",
    "WrapperAffinity",
]
