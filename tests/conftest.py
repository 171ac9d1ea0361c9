from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from tests._fixtures.lens_builder import LensBuilder


@pytest.fixture
def lens_builder(tmp_path: Path) -> LensBuilder:
    """Provide a lens workspace rooted at the pytest tmp_path."""
    return LensBuilder(tmp_path)


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo configure_logging so caplog keeps seeing lensbundler records."""
    yield
    logger = logging.getLogger("lensbundler")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
