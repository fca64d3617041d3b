"""Shared pytest fixtures for caretdown tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from caretdown.config import Settings, get_settings
from caretdown.core.runtime import Runtime
from caretdown.extensions import bundled_extensions

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Never leak a cached Settings instance between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def runtime(settings: Settings) -> Runtime:
    """Runtime over every bundled extension in default order."""
    return Runtime(bundled_extensions(), settings)
