from __future__ import annotations

import io
import logging

import pytest
from PIL import Image

from qrbatch.config import Settings


def png_bytes(width: int, height: int, color=(255, 0, 0, 255), mode: str = "RGBA") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture(autouse=True)
def reset_qrbatch_logger():
    """Drop handlers installed by setup_logging (e.g. via the CLI) after each test."""
    root = logging.getLogger("qrbatch")
    level = root.level
    yield
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def make_png():
    """Factory for solid-colour PNG bytes."""
    return png_bytes


@pytest.fixture
def red_logo() -> bytes:
    return png_bytes(400, 100)


@pytest.fixture
def settings() -> Settings:
    return Settings()
