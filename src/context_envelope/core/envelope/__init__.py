"""Context envelopes: anchors, building and token budgeting.

Public API re-exported for convenience:

    from context_envelope.core.envelope import (
        build_context_envelope,
        apply_token_budget,
        create_anchor,
        parse_anchor,
    )
"""

from context_envelope.core.envelope.anchors import (
    MalformedAnchorError,
    MessageLocation,
    PageLocation,
    RegionLocation,
    SectionLocation,
    canonicalize_identity,
    compute_source_id,
    create_anchor,
    get_source_id_from_anchor,
    is_valid_anchor,
    is_valid_source_id,
    parse_anchor,
)
from context_envelope.core.envelope.boundaries import (
    extractive_summary,
    find_semantic_boundaries,
    truncate_at_boundary,
)
from context_envelope.core.envelope.builder import (
    EnvelopeStats,
    apply_relevance_scores,
    build_context_envelope,
    get_attachment_data,
    get_envelope_stats,
    render_context_index,
    render_envelope_as_text,
)
from context_envelope.core.envelope.context_budget import (
    BudgetConfigurationError,
    BudgetOptions,
    apply_token_budget,
)
from context_envelope.core.envelope.models import (
    Anchor,
    ArtifactType,
    Attachment,
    BinaryBlob,
    BudgetCut,
    BudgetState,
    ChatlogMessage,
    ChatlogSource,
    Chunk,
    ContextEnvelope,
    CutType,
    DegradeStage,
    ImageSource,
    IndexEntry,
    NoteSource,
    ParsedAnchor,
    PdfPage,
    PdfSource,
    QualityHint,
    Source,
    SourceId,
    SourceKind,
    WebpageSource,
)
from context_envelope.core.envelope.sources import ExtractedContent, build_source, build_sources

__all__ = [
    # Anchors
    "MalformedAnchorError",
    "MessageLocation",
    "PageLocation",
    "RegionLocation",
    "SectionLocation",
    "canonicalize_identity",
    "compute_source_id",
    "create_anchor",
    "get_source_id_from_anchor",
    "is_valid_anchor",
    "is_valid_source_id",
    "parse_anchor",
    # Building
    "EnvelopeStats",
    "ExtractedContent",
    "apply_relevance_scores",
    "build_context_envelope",
    "build_source",
    "build_sources",
    "get_attachment_data",
    "get_envelope_stats",
    "render_context_index",
    "render_envelope_as_text",
    # Budgeting
    "BudgetConfigurationError",
    "BudgetOptions",
    "apply_token_budget",
    "extractive_summary",
    "find_semantic_boundaries",
    "truncate_at_boundary",
    # Models
    "Anchor",
    "ArtifactType",
    "Attachment",
    "BinaryBlob",
    "BudgetCut",
    "BudgetState",
    "ChatlogMessage",
    "ChatlogSource",
    "Chunk",
    "ContextEnvelope",
    "CutType",
    "DegradeStage",
    "ImageSource",
    "IndexEntry",
    "NoteSource",
    "ParsedAnchor",
    "PdfPage",
    "PdfSource",
    "QualityHint",
    "Source",
    "SourceId",
    "SourceKind",
    "WebpageSource",
]
