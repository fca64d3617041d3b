"""Bundled extensions and the runtime factory.

``EXTENSIONS`` maps each bundled extension's name to its definition;
``create_runtime`` builds a runtime from the names configured in
``ENGINE__EXTENSIONS``, in that order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from caretdown.core.errors import ExtensionConfigError
from caretdown.core.runtime import Runtime
from caretdown.extensions.blockquote import ToggleBlockquote, blockquote_extension
from caretdown.extensions.bold import ToggleBold, bold_extension
from caretdown.extensions.combined_emphasis import combined_emphasis_extension
from caretdown.extensions.heading import ToggleHeading, heading_extension
from caretdown.extensions.image import image_extension
from caretdown.extensions.italic import ToggleItalic, italic_extension
from caretdown.extensions.link import Unlink, WrapLink, link_extension
from caretdown.extensions.lists import (
    ToggleBulletList,
    ToggleNumberedList,
    list_extension,
)
from caretdown.extensions.mention import mention_extension
from caretdown.extensions.pipe_link import pipe_link_extension
from caretdown.extensions.strikethrough import (
    ToggleStrikethrough,
    strikethrough_extension,
)
from caretdown.extensions.underline import ToggleUnderline, underline_extension

if TYPE_CHECKING:
    from collections.abc import Iterable

    from caretdown.config import Settings
    from caretdown.core.extension import Extension

logger = logging.getLogger(__name__)

EXTENSIONS: dict[str, Extension] = {
    extension.name: extension
    for extension in (
        blockquote_extension,
        heading_extension,
        list_extension,
        combined_emphasis_extension,
        bold_extension,
        italic_extension,
        strikethrough_extension,
        underline_extension,
        link_extension,
        pipe_link_extension,
        mention_extension,
        image_extension,
    )
}


def resolve_extensions(names: Iterable[str]) -> list[Extension]:
    """Look up bundled extensions by name, keeping the given order.

    Raises:
        ExtensionConfigError: If a name is not a bundled extension.
    """
    resolved: list[Extension] = []
    for name in names:
        extension = EXTENSIONS.get(name)
        if extension is None:
            known = ", ".join(sorted(EXTENSIONS))
            msg = f"Unknown extension {name!r} (known: {known})"
            raise ExtensionConfigError(msg)
        resolved.append(extension)
    return resolved


def bundled_extensions() -> list[Extension]:
    """Every bundled extension in the default precedence order."""
    return list(EXTENSIONS.values())


def create_runtime(settings: Settings | None = None) -> Runtime:
    """Runtime over the extensions named in *settings* (default: ``get_settings()``)."""
    if settings is None:
        from caretdown.config import get_settings

        settings = get_settings()
    extensions = resolve_extensions(settings.engine.extensions)
    logger.debug("Creating runtime with %d extensions", len(extensions))
    return Runtime(extensions, settings)


__all__ = [
    "EXTENSIONS",
    "ToggleBlockquote",
    "ToggleBold",
    "ToggleBulletList",
    "ToggleHeading",
    "ToggleItalic",
    "ToggleNumberedList",
    "ToggleStrikethrough",
    "ToggleUnderline",
    "Unlink",
    "WrapLink",
    "bundled_extensions",
    "create_runtime",
    "resolve_extensions",
]
