"""Turn raw extracted content into typed sources.

Capture code hands over loosely-shaped ``ExtractedContent`` (html, pdf,
image or text plus metadata); this module decides the source kind, assigns the
content-addressed id, splits PDFs on ``--- Page N ---`` markers, decodes data
URLs into blobs and recognizes captured chat transcripts.
"""

import re
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from context_envelope.core.envelope.anchors import compute_source_id
from context_envelope.core.envelope.models import (
    BinaryBlob,
    ChatlogMessage,
    ChatlogSource,
    ImageSource,
    NoteSource,
    PdfPage,
    PdfSource,
    QualityHint,
    Source,
    WebpageSource,
)
from context_envelope.core.envelope.quality import QUALITY_ORDER, assess_quality

_DATA_URL = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)
_PAGE_MARKER = re.compile(r"---\s*Page\s+(\d+)\s*---")
_USER_QUERY = re.compile(
    r"User Query(?:\s*\(with context\))?:\s*(.*?)(?=Assistant Response:|$)",
    re.IGNORECASE | re.DOTALL,
)
_ASSISTANT_RESPONSE = re.compile(
    r"Assistant Response:\s*(.*?)(?=Model:|Tokens|$)", re.IGNORECASE | re.DOTALL
)
_CHATLOG_METADATA_KEYS = ("persistentId", "shortId", "slug")


class ImageData(BaseModel):
    """Image payload attached to extracted content."""

    data: str = Field(..., description="Data URL or bare base64")
    mime_type: str = Field(default="image/png")


class ExtractedContent(BaseModel):
    """Raw content handed over by a capture step."""

    type: Literal["html", "pdf", "image", "text"]
    title: str = "Untitled"
    url: Optional[str] = None
    content: Union[str, dict[str, Any]] = ""
    screenshot: Optional[str] = Field(default=None, description="Data URL")
    image_data: Optional[ImageData] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Blob Helpers
# =============================================================================


def estimate_base64_size(data: str) -> int:
    """Decoded byte size of a base64 string."""
    clean = "".join(data.split())
    padding = clean.count("=")
    return max((len(clean) * 3) // 4 - padding, 0)


def data_url_to_blob(value: str, default_mime_type: str = "application/octet-stream") -> BinaryBlob:
    """Decode a data URL (or bare base64) into a BinaryBlob."""
    match = _DATA_URL.match(value)
    if match:
        return BinaryBlob(
            data=match.group(2),
            mime_type=match.group(1),
            byte_size=estimate_base64_size(match.group(2)),
        )
    return BinaryBlob(data=value, mime_type=default_mime_type, byte_size=estimate_base64_size(value))


def parse_page_markers(content: str) -> list[tuple[int, str]]:
    """Split text on ``--- Page N ---`` markers into (page_number, text) pairs.

    Text before the first marker is discarded.
    """
    parts = _PAGE_MARKER.split(content)
    pages = []
    for i in range(1, len(parts), 2):
        text = parts[i + 1].strip() if i + 1 < len(parts) else ""
        pages.append((int(parts[i]), text))
    return pages


# =============================================================================
# Source Builders
# =============================================================================


def _content_text(extracted: ExtractedContent) -> str:
    content = extracted.content
    if isinstance(content, str):
        return content
    if "mainContent" in content:
        return str(content.get("mainContent") or "")
    if "text" in content:
        return str(content.get("text") or "")
    return ""


def _is_chat_transcript(extracted: ExtractedContent) -> bool:
    if any(extracted.metadata.get(key) for key in _CHATLOG_METADATA_KEYS):
        return True
    text = extracted.content if isinstance(extracted.content, str) else ""
    return "User Query" in text or "Assistant Response" in text


def _parse_chat_messages(text: str) -> list[ChatlogMessage]:
    messages = []
    user = _USER_QUERY.search(text)
    if user and user.group(1).strip():
        messages.append(ChatlogMessage(index=0, role="user", content=user.group(1).strip()))
    assistant = _ASSISTANT_RESPONSE.search(text)
    if assistant and assistant.group(1).strip():
        messages.append(
            ChatlogMessage(index=len(messages), role="assistant", content=assistant.group(1).strip())
        )
    if not messages and text.strip():
        messages.append(ChatlogMessage(index=0, role="assistant", content=text.strip()))
    return messages


def _build_pdf_pages(extracted: ExtractedContent) -> list[PdfPage]:
    text = _content_text(extracted)
    pages: dict[int, PdfPage] = {}

    marked = parse_page_markers(text) if "--- Page " in text else []
    if len(marked) > 1:
        for number, page_text in marked:
            pages[number] = PdfPage(
                page_number=number, text=page_text, quality=assess_quality(page_text)
            )
    elif text:
        pages[1] = PdfPage(page_number=1, text=text, quality=assess_quality(text))

    for page_image in extracted.metadata.get("pdfPageImages") or []:
        number = int(page_image.get("pageNumber", 1))
        blob = data_url_to_blob(page_image.get("data", ""), page_image.get("mimeType", "image/png"))
        if number in pages:
            pages[number] = pages[number].model_copy(update={"image": blob})
        else:
            pages[number] = PdfPage(page_number=number, image=blob)

    return [pages[n] for n in sorted(pages)]


def build_source(extracted: ExtractedContent) -> Source:
    """Build a typed source from extracted content.

    Args:
        extracted: Raw extraction result

    Returns:
        WebpageSource, PdfSource, ImageSource, ChatlogSource or NoteSource
    """
    source_id = compute_source_id(url=extracted.url, content=extracted.content)
    base: dict[str, Any] = {
        "source_id": source_id,
        "title": extracted.title,
        "url": extracted.url or None,
    }

    if extracted.type == "html":
        markdown = _content_text(extracted)
        extraction_type = extracted.metadata.get("extractionType")
        return WebpageSource(
            **base,
            markdown=markdown,
            screenshot=data_url_to_blob(extracted.screenshot, "image/png")
            if extracted.screenshot
            else None,
            extraction_type=extraction_type if extraction_type in ("article", "app") else "article",
            quality=assess_quality(markdown),
        )

    if extracted.type == "pdf":
        pdf_bytes = extracted.metadata.get("pdfData")
        return PdfSource(
            **base,
            pdf_bytes=data_url_to_blob(pdf_bytes, "application/pdf") if pdf_bytes else None,
            pages=_build_pdf_pages(extracted),
        )

    if extracted.type == "image":
        image = (
            data_url_to_blob(extracted.image_data.data, extracted.image_data.mime_type)
            if extracted.image_data
            else BinaryBlob(mime_type="image/png")
        )
        alt_text = extracted.content if isinstance(extracted.content, str) else None
        return ImageSource(**base, image=image, alt_text=alt_text or None)

    text = _content_text(extracted)
    if _is_chat_transcript(extracted):
        return ChatlogSource(
            **base,
            model=extracted.metadata.get("model"),
            messages=_parse_chat_messages(text),
        )
    return NoteSource(**base, text=text)


def build_sources(items: list[ExtractedContent]) -> list[Source]:
    return [build_source(item) for item in items]


# =============================================================================
# Source Utilities
# =============================================================================


def get_source_text(source: Source) -> str:
    """Plain text view of any source."""
    if isinstance(source, WebpageSource):
        return source.markdown
    if isinstance(source, PdfSource):
        return "\n\n".join(p.text or "" for p in source.pages)
    if isinstance(source, ImageSource):
        return source.alt_text or ""
    if isinstance(source, NoteSource):
        return source.text
    return "\n\n".join(f"{m.role}: {m.content}" for m in source.messages)


def get_source_quality(source: Source) -> QualityHint:
    """Quality of a source; PDFs report their worst page, others default to good."""
    if isinstance(source, WebpageSource):
        return source.quality
    if isinstance(source, PdfSource):
        qualities = [p.quality for p in source.pages if p.quality is not None]
        for hint in QUALITY_ORDER:
            if hint in qualities:
                return hint
    return QualityHint.GOOD
