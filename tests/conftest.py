"""
Root pytest configuration and shared fixtures.

Resets process-wide state (global config, token cache, package logger) around
every test and provides small source factories used across the suite.
"""

import logging

import pytest

from context_envelope.config import set_config
from context_envelope.core.envelope.models import (
    BinaryBlob,
    ImageSource,
    NoteSource,
    PdfPage,
    PdfSource,
    WebpageSource,
)
from context_envelope.core.envelope.token_management import clear_token_cache
from context_envelope.core.logging_config import ROOT_LOGGER_NAME

# 1x1 transparent PNG
PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


@pytest.fixture(autouse=True)
def reset_global_state():
    """Isolate tests from configuration, cache and logger changes."""
    set_config(None)
    clear_token_cache()
    yield
    set_config(None)
    clear_token_cache()
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def png_blob() -> BinaryBlob:
    return BinaryBlob(data=PNG_BASE64, mime_type="image/png", byte_size=68)


@pytest.fixture
def note_source() -> NoteSource:
    return NoteSource(title="Meeting notes", text="Ship the budget engine. Review on Friday.")


@pytest.fixture
def webpage_source(png_blob) -> WebpageSource:
    return WebpageSource(
        title="Token budgets explained",
        url="https://example.com/budgets",
        markdown="# Budgets\n\nBudgets cap prompt size. They degrade gracefully.",
        screenshot=png_blob,
    )


@pytest.fixture
def pdf_source(png_blob) -> PdfSource:
    return PdfSource(
        title="Attention paper",
        url="https://example.com/paper.pdf",
        pdf_bytes=BinaryBlob(data="JVBERi0xLjQK", mime_type="application/pdf", byte_size=9),
        pages=[
            PdfPage(page_number=1, text="Abstract. Attention is all you need."),
            PdfPage(page_number=2, text="Results. The model wins.", image=png_blob),
            PdfPage(page_number=3, image=png_blob),
        ],
    )


@pytest.fixture
def image_source(png_blob) -> ImageSource:
    return ImageSource(title="Diagram", image=png_blob, alt_text="Architecture diagram")
