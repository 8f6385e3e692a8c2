"""Envelope construction and text rendering.

Converts heterogeneous sources into an initial ``ContextEnvelope``: one index
entry per source, text chunks (one per PDF page with text), and a manifest of
binary attachments. Relevance starts neutral; a ranking step assigns scores
before the envelope is budgeted.

Key Components:
    - build_context_envelope(): Sources + task -> envelope
    - apply_relevance_scores(): Attach externally computed scores
    - render_envelope_as_text(): Index, content, attachments and task as text
    - get_attachment_data(): Resolve an attachment anchor to its bytes
    - get_envelope_stats(): Counts for logging and UI

Usage:
    from context_envelope.core.envelope.builder import (
        build_context_envelope,
        render_envelope_as_text,
    )

    envelope = build_context_envelope(sources, task="Compare the two papers")
    prompt = render_envelope_as_text(envelope)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from context_envelope.core.envelope.anchors import (
    PageLocation,
    compute_source_id,
    create_anchor,
    is_valid_source_id,
)
from context_envelope.core.envelope.models import (
    Anchor,
    ArtifactType,
    Attachment,
    BinaryBlob,
    BudgetState,
    ChatlogSource,
    Chunk,
    ContextEnvelope,
    ImageSource,
    IndexEntry,
    NoteSource,
    PdfSource,
    Source,
    SourceKind,
    WebpageSource,
)
from context_envelope.core.envelope.token_management import TokenEstimator, estimate_tokens

logger = logging.getLogger(__name__)

_IDENTITY_EXCLUDE = {"source_id", "captured_at", "title", "url"}


# =============================================================================
# Building
# =============================================================================


def resolve_source_id(source: Source) -> str:
    """Return the source's id, computing it from url and content when absent."""
    if source.source_id and is_valid_source_id(source.source_id):
        return source.source_id
    identity = source.model_dump(mode="json", exclude=_IDENTITY_EXCLUDE)
    return compute_source_id(url=source.url, content=identity)


def _build_index_entry(source: Source, include_attachments: bool) -> IndexEntry:
    pages_attached = None
    if isinstance(source, PdfSource) and include_attachments:
        pages_attached = [p.page_number for p in source.pages if p.image] or None
    return IndexEntry(
        anchor=source.source_id,
        title=source.title,
        url=source.url,
        source_type=SourceKind(source.kind),
        content_included=True,
        pages_attached=pages_attached,
    )


def _build_chunks(source: Source, estimator: TokenEstimator) -> list[dict[str, Any]]:
    """Chunk field dicts for a source, without ordinal."""
    base = {
        "source_id": source.source_id,
        "source_type": SourceKind(source.kind),
        "title": source.title,
        "url": source.url,
    }

    def chunk(anchor: Anchor, content: str, method: str, quality=None) -> dict[str, Any]:
        return {
            **base,
            "anchor": anchor,
            "content": content,
            "extraction_method": method,
            "quality": quality,
            "token_count": estimator(content),
        }

    if isinstance(source, WebpageSource):
        if not source.markdown.strip():
            return []
        method = "app_v1" if source.extraction_type == "app" else "readability_v1"
        return [chunk(source.source_id, source.markdown, method, source.quality)]

    if isinstance(source, PdfSource):
        return [
            chunk(
                create_anchor(source.source_id, PageLocation(page.page_number)),
                page.text,
                "pdf_text_v1",
                page.quality,
            )
            for page in source.pages
            if page.text and page.text.strip()
        ]

    if isinstance(source, ImageSource):
        if not source.alt_text or not source.alt_text.strip():
            return []
        return [chunk(source.source_id, source.alt_text, "alt_text_v1")]

    if isinstance(source, NoteSource):
        if not source.text.strip():
            return []
        return [chunk(source.source_id, source.text, "note_v1")]

    if isinstance(source, ChatlogSource):
        if not source.messages:
            return []
        content = "\n\n".join(f"**{m.role}**: {m.content}" for m in source.messages)
        return [chunk(source.source_id, content, "chatlog_v1")]

    return []


def _build_attachments(source: Source) -> list[Attachment]:
    def attachment(anchor: Anchor, artifact_type: ArtifactType, blob: BinaryBlob) -> Attachment:
        return Attachment(
            anchor=anchor,
            source_id=source.source_id,
            artifact_type=artifact_type,
            mime_type=blob.mime_type,
            byte_size=blob.byte_size,
        )

    if isinstance(source, WebpageSource) and source.screenshot:
        return [attachment(source.source_id, ArtifactType.SCREENSHOT, source.screenshot)]

    if isinstance(source, PdfSource):
        attachments = []
        if source.pdf_bytes:
            attachments.append(attachment(source.source_id, ArtifactType.RAW_PDF, source.pdf_bytes))
        for page in source.pages:
            if page.image:
                attachments.append(
                    attachment(
                        create_anchor(source.source_id, PageLocation(page.page_number)),
                        ArtifactType.PAGE_IMAGE,
                        page.image,
                    )
                )
        return attachments

    if isinstance(source, ImageSource):
        return [attachment(source.source_id, ArtifactType.RAW_IMAGE, source.image)]

    return []


def build_context_envelope(
    sources: Sequence[Source],
    task: str = "",
    *,
    include_attachments: bool = True,
    token_estimator: Optional[TokenEstimator] = None,
) -> ContextEnvelope:
    """Build the initial, unbudgeted envelope for a request.

    Every source yields exactly one index entry, whatever number of chunks
    and attachments it produces. Building the same sources twice yields the
    same anchors.

    Args:
        sources: Sources in the order the user offered them
        task: The user's task or query
        include_attachments: Whether binary artifacts go into the manifest
        token_estimator: Token counter (default: estimate_tokens heuristic)

    Returns:
        ContextEnvelope with ``max_tokens = 0`` and ``degrade_stage = 0``
    """
    estimator = token_estimator or estimate_tokens

    resolved = [s.model_copy(update={"source_id": resolve_source_id(s)}) for s in sources]

    index = [_build_index_entry(s, include_attachments) for s in resolved]
    chunk_fields = [fields for s in resolved for fields in _build_chunks(s, estimator)]
    chunks = [Chunk(**fields, ordinal=i) for i, fields in enumerate(chunk_fields)]
    attachments = (
        [a for s in resolved for a in _build_attachments(s)] if include_attachments else []
    )

    used_tokens = (
        estimator(task)
        + estimator(render_context_index(index))
        + sum(c.token_count for c in chunks)
    )

    logger.debug(
        f"Built envelope: {len(resolved)} sources, {len(chunks)} chunks, "
        f"{len(attachments)} attachments, ~{used_tokens} tokens"
    )

    return ContextEnvelope(
        task=task,
        sources=resolved,
        index=index,
        chunks=chunks,
        attachments=attachments,
        budget=BudgetState(max_tokens=0, used_tokens=used_tokens),
    )


def apply_relevance_scores(
    envelope: ContextEnvelope,
    scores: Mapping[str, float],
) -> ContextEnvelope:
    """Return a copy of the envelope with relevance scores attached.

    Keys are chunk anchors or source ids; an exact anchor match wins over a
    source id match. Scores are clamped to [0, 1]; unscored chunks keep
    their current score.
    """
    chunks = []
    for chunk in envelope.chunks:
        score = scores.get(chunk.anchor, scores.get(chunk.source_id))
        if score is None:
            chunks.append(chunk)
            continue
        clamped = min(max(float(score), 0.0), 1.0)
        chunks.append(chunk.model_copy(update={"relevance_score": clamped}))
    return envelope.model_copy(update={"chunks": chunks})


# =============================================================================
# Rendering
# =============================================================================


def render_context_index(index: Sequence[IndexEntry]) -> str:
    if not index:
        return "=== CONTEXT INDEX ===\n(no sources)"

    lines = []
    for i, entry in enumerate(index, start=1):
        parts = [f"[{i}]", entry.anchor, entry.source_type.value, f'"{entry.title}"']
        if entry.url:
            parts.append(entry.url)
        if entry.pages_attached:
            parts.append(f"pages attached: [{','.join(str(p) for p in entry.pages_attached)}]")
        if entry.content_included:
            parts.append("full content")
        elif entry.summary:
            parts.append(f'summary: "{entry.summary}"')
        lines.append(" | ".join(parts))
    return "=== CONTEXT INDEX ===\n" + "\n".join(lines)


def render_chunk(chunk: Chunk) -> str:
    header = [
        f"anchor: {chunk.anchor}",
        f"source_type: {chunk.source_type.value}",
        f"title: {chunk.title}",
    ]
    if chunk.url:
        header.append(f"url: {chunk.url}")
    header.append(f"extraction: {chunk.extraction_method}")
    if chunk.quality:
        header.append(f"quality: {chunk.quality.value}")
    if chunk.truncated:
        header.append("status: [truncated]")
    return "[CHUNK]\n" + "\n".join(header) + f"\n---\n{chunk.content}\n[/CHUNK]"


def render_chunks(chunks: Sequence[Chunk]) -> str:
    if not chunks:
        return "=== CONTENT ===\n(no content)"
    return "=== CONTENT ===\n\n" + "\n\n".join(render_chunk(c) for c in chunks)


def _format_size(byte_size: int) -> str:
    if byte_size < 1024:
        return f"{byte_size}B"
    if byte_size < 1024 * 1024:
        return f"{byte_size / 1024:.1f}KB"
    return f"{byte_size / (1024 * 1024):.1f}MB"


def render_attachments(attachments: Sequence[Attachment]) -> str:
    included = [a for a in attachments if a.included]
    if not included:
        return "=== ATTACHMENTS ===\n(no attachments)"
    lines = []
    for a in included:
        parts = [f"anchor: {a.anchor}", f"kind: {a.artifact_type.value}", f"mime: {a.mime_type}"]
        if a.byte_size:
            parts.append(_format_size(a.byte_size))
        lines.append("- " + " | ".join(parts))
    return "=== ATTACHMENTS ===\n" + "\n".join(lines)


def render_envelope_as_text(envelope: ContextEnvelope) -> str:
    """Render the envelope as a single prompt text block."""
    sections = [render_context_index(envelope.index), render_chunks(envelope.chunks)]
    if envelope.attachments:
        sections.append(render_attachments(envelope.attachments))
    sections.append(f"=== TASK ===\n{envelope.task}")
    if envelope.chunks:
        sections.append(
            "\nWhen referencing content from the attached sources, cite using the anchor "
            f'format:\n"According to {envelope.chunks[0].anchor}, ..."'
        )
    return "\n\n".join(sections)


# =============================================================================
# Lookup and Stats
# =============================================================================


def get_attachment_data(envelope: ContextEnvelope, anchor: Anchor) -> Optional[BinaryBlob]:
    """Resolve an attachment anchor to the binary data held by its source."""
    source_id, _, location = anchor.partition("#")
    source = next((s for s in envelope.sources if s.source_id == source_id), None)
    if source is None:
        return None

    if isinstance(source, WebpageSource) and not location:
        return source.screenshot
    if isinstance(source, ImageSource) and not location:
        return source.image
    if isinstance(source, PdfSource):
        if not location:
            return source.pdf_bytes
        if location.startswith("p="):
            page_number = location[2:]
            for page in source.pages:
                if str(page.page_number) == page_number:
                    return page.image
    return None


@dataclass
class EnvelopeStats:
    """Summary counts for an envelope."""

    source_count: int
    chunk_count: int
    attachment_count: int
    total_tokens: int
    degrade_stage: int
    cut_count: int
    sources_by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_count": self.source_count,
            "chunk_count": self.chunk_count,
            "attachment_count": self.attachment_count,
            "total_tokens": self.total_tokens,
            "degrade_stage": self.degrade_stage,
            "cut_count": self.cut_count,
            "sources_by_type": dict(self.sources_by_type),
        }


def get_envelope_stats(envelope: ContextEnvelope) -> EnvelopeStats:
    sources_by_type = {kind.value: 0 for kind in SourceKind}
    for entry in envelope.index:
        sources_by_type[entry.source_type.value] += 1
    return EnvelopeStats(
        source_count=len(envelope.index),
        chunk_count=len(envelope.chunks),
        attachment_count=sum(1 for a in envelope.attachments if a.included),
        total_tokens=envelope.budget.used_tokens,
        degrade_stage=int(envelope.budget.degrade_stage),
        cut_count=len(envelope.budget.cuts),
        sources_by_type=sources_by_type,
    )
