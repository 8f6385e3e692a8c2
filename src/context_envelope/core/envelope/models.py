"""Pydantic models for context envelopes.

An envelope is the provider-agnostic package handed to a model request:
the captured sources, one index entry per source, budget-bearing text chunks,
a manifest of binary attachments, and the state of the token budget.
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

SourceId = str
"""``src:`` followed by 8 lowercase hex characters."""

Anchor = str
"""A ``SourceId`` optionally suffixed with ``#<kind>=<value>``."""

NEUTRAL_RELEVANCE = 0.5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceKind(str, Enum):
    """Kinds of captured sources."""

    WEBPAGE = "webpage"
    PDF = "pdf"
    IMAGE = "image"
    NOTE = "note"
    CHATLOG = "chatlog"


class QualityHint(str, Enum):
    """Heuristic quality of extracted text."""

    GOOD = "good"
    MIXED = "mixed"
    LOW = "low"
    OCR_LIKE = "ocr_like"


class ArtifactType(str, Enum):
    """Kinds of binary artifacts carried as attachments."""

    PAGE_IMAGE = "page_image"
    SCREENSHOT = "screenshot"
    RAW_IMAGE = "raw_image"
    RAW_PDF = "raw_pdf"


class CutType(str, Enum):
    """How a piece of content was reduced by the budget ladder."""

    REMOVED = "removed"
    SUMMARIZED = "summarized"
    TRUNCATED = "truncated"


class DegradeStage(IntEnum):
    """Rungs of the degradation ladder, from untouched to index-only."""

    FULL = 0
    REMOVE_LOW_RANKED = 1
    EXTRACTIVE_SUMMARY = 2
    TOP_K = 3
    TRUNCATE = 4
    INDEX_ONLY = 5


# =============================================================================
# Anchors
# =============================================================================


class AnchorLocation(BaseModel):
    """Location inside a source.

    ``type`` is ``page``, ``section``, ``message`` or ``region`` for the known
    kinds, otherwise the raw kind string from the anchor.
    """

    type: str
    value: str


class ParsedAnchor(BaseModel):
    """Result of parsing an anchor string."""

    source_id: SourceId
    location: Optional[AnchorLocation] = None
    raw_location: Optional[str] = None


# =============================================================================
# Sources
# =============================================================================


class BinaryBlob(BaseModel):
    """Binary payload (image, PDF) stored as base64 without a data-URL prefix."""

    data: str = Field(default="", description="Base64-encoded bytes")
    mime_type: str = Field(default="application/octet-stream")
    byte_size: int = Field(default=0, ge=0)

    def to_data_url(self) -> str:
        """Render as a ``data:`` URL."""
        return f"data:{self.mime_type};base64,{self.data}"


class BaseSource(BaseModel):
    """Fields shared by every source kind."""

    source_id: Optional[SourceId] = Field(
        default=None, description="Content-addressed id; computed when absent"
    )
    title: str = Field(default="Untitled")
    url: Optional[str] = Field(default=None)
    captured_at: datetime = Field(default_factory=_utcnow)


class WebpageSource(BaseSource):
    kind: Literal["webpage"] = "webpage"
    markdown: str = ""
    screenshot: Optional[BinaryBlob] = None
    extraction_type: Literal["article", "app"] = "article"
    quality: QualityHint = QualityHint.GOOD


class PdfPage(BaseModel):
    """A single 1-indexed PDF page."""

    page_number: int = Field(..., ge=1)
    text: Optional[str] = None
    image: Optional[BinaryBlob] = None
    quality: Optional[QualityHint] = None


class PdfSource(BaseSource):
    kind: Literal["pdf"] = "pdf"
    pdf_bytes: Optional[BinaryBlob] = None
    pages: list[PdfPage] = Field(default_factory=list)


class ImageSource(BaseSource):
    kind: Literal["image"] = "image"
    image: BinaryBlob = Field(default_factory=lambda: BinaryBlob(mime_type="image/png"))
    alt_text: Optional[str] = None


class NoteSource(BaseSource):
    kind: Literal["note"] = "note"
    text: str = ""


class ChatlogMessage(BaseModel):
    """One message of a captured conversation."""

    index: int = Field(..., ge=0)
    role: Literal["user", "assistant"]
    content: str


class ChatlogSource(BaseSource):
    kind: Literal["chatlog"] = "chatlog"
    model: Optional[str] = None
    messages: list[ChatlogMessage] = Field(default_factory=list)


Source = Annotated[
    Union[WebpageSource, PdfSource, ImageSource, NoteSource, ChatlogSource],
    Field(discriminator="kind"),
]


# =============================================================================
# Envelope
# =============================================================================


class Chunk(BaseModel):
    """A budget-bearing unit of text derived from one source or page."""

    anchor: Anchor
    source_id: SourceId
    source_type: SourceKind
    title: str = ""
    url: Optional[str] = None
    extraction_method: str = ""
    quality: Optional[QualityHint] = None
    content: str = ""
    token_count: int = Field(default=0, ge=0)
    relevance_score: float = Field(
        default=NEUTRAL_RELEVANCE, ge=0.0, le=1.0, description="Higher is kept longer"
    )
    truncated: bool = False
    ordinal: int = Field(default=0, ge=0, description="Originating order, used as tie-breaker")


class Attachment(BaseModel):
    """Manifest entry for a binary artifact."""

    anchor: Anchor
    source_id: SourceId
    artifact_type: ArtifactType
    mime_type: str
    byte_size: int = Field(default=0, ge=0)
    included: bool = True


class IndexEntry(BaseModel):
    """Budget-immune ledger entry; one per source."""

    anchor: Anchor
    title: str = ""
    url: Optional[str] = None
    source_type: SourceKind
    content_included: bool = True
    pages_attached: Optional[list[int]] = None
    summary: Optional[str] = None

    @property
    def source_id(self) -> SourceId:
        return self.anchor.split("#", 1)[0]


class BudgetCut(BaseModel):
    """Record of one lossy step taken by the budget ladder."""

    anchor: Anchor
    type: CutType
    reason: str
    original_tokens: int = Field(default=0, ge=0)


class BudgetState(BaseModel):
    """Token budget of an envelope."""

    max_tokens: int = Field(default=0, ge=0, description="0 means no limit")
    used_tokens: int = Field(default=0, ge=0)
    degrade_stage: DegradeStage = DegradeStage.FULL
    cuts: list[BudgetCut] = Field(default_factory=list)


class ContextEnvelope(BaseModel):
    """The complete, provider-agnostic context package for one request."""

    version: Literal["1.0"] = "1.0"
    created_at: datetime = Field(default_factory=_utcnow)
    task: str = ""
    sources: list[Source] = Field(default_factory=list)
    index: list[IndexEntry] = Field(default_factory=list)
    chunks: list[Chunk] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    budget: BudgetState = Field(default_factory=BudgetState)
