"""Shared test fixtures for the imgsearch-console test suite."""

from __future__ import annotations

import pytest

from imgsearch_console.types import SelectedFile

# Minimal valid-looking payloads; the console never decodes image bytes.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32


def make_file(name: str, content: bytes | None = None, content_type: str | None = None) -> SelectedFile:
    if content is None:
        content = JPEG_BYTES if name.lower().endswith((".jpg", ".jpeg")) else PNG_BYTES
    if content_type is None:
        content_type = "image/jpeg" if name.lower().endswith((".jpg", ".jpeg")) else "image/png"
    return SelectedFile(name=name, content=content, content_type=content_type)


@pytest.fixture
def base_url() -> str:
    return "http://remote.test"


@pytest.fixture
def png_file() -> SelectedFile:
    return make_file("query.png")


@pytest.fixture
def file_factory():
    return make_file
