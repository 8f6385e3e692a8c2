"""Extractive summaries and boundary-aware truncation.

Both helpers are verbatim-text reductions used by the budget ladder: no model
calls, deterministic output, and a visible marker whenever content was cut so
readers (human or model) know where to look for the full text.

Key Components:
    - extractive_summary(): first sentences of a chunk plus an anchor marker
    - find_semantic_boundaries(): headings, paragraphs, page markers, rules
    - truncate_at_boundary(): cut at the best boundary that fits

Usage:
    from context_envelope.core.envelope.boundaries import (
        extractive_summary,
        truncate_at_boundary,
    )

    summary = extractive_summary(chunk.content, chunk.anchor)
    shorter = truncate_at_boundary(chunk.content, max_chars=2000)
"""

import re

from context_envelope.core.envelope.models import Anchor

SUMMARY_MAX_CHARS = 300
SUMMARY_MAX_SENTENCES = 3
SUMMARY_MARKER = " [extractive summary, see {anchor} for full content]"
EMPTY_SUMMARY = "[see {anchor} for content]"
TRUNCATION_MARKER = " [truncated]"

# Semantic boundaries earlier than this fraction of the limit lose to a word cut
BOUNDARY_MIN_FRACTION = 0.5

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE = re.compile(r"\s")

_BOUNDARY_PATTERNS = (
    re.compile(r"^#{1,6}\s", re.MULTILINE),
    re.compile(r"\n[ \t]*\n"),
    re.compile(r"^\[Page \d+\]", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^-{3}\s*Page\s+\d+\s*-{3}", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^(?:-{3,}|\*{3,}|_{3,})[ \t]*$", re.MULTILINE),
)


def split_sentences(content: str) -> list[str]:
    """Split on ``.``/``!``/``?`` followed by whitespace, collapsing inner whitespace."""
    sentences = []
    for raw in _SENTENCE_SPLIT.split(content):
        sentence = " ".join(raw.split())
        if sentence:
            sentences.append(sentence)
    return sentences


def _cap_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    cut = text.rfind(" ", 0, max_chars + 1)
    if cut < max_chars * BOUNDARY_MIN_FRACTION:
        cut = max_chars
    return text[:cut].rstrip() + "..."


def extractive_summary(content: str, anchor: Anchor) -> str:
    """Summarize content by its first two or three sentences.

    The excerpt is capped at ``SUMMARY_MAX_CHARS`` characters (a third
    sentence is only added while it fits, and an overlong first sentence is
    hard-capped) and suffixed with a marker pointing at the anchor.

    Args:
        content: Text to summarize
        anchor: Anchor of the full content

    Returns:
        Summary text, or ``"[see <anchor> for content]"`` for empty content
    """
    sentences = split_sentences(content or "")
    if not sentences:
        return EMPTY_SUMMARY.format(anchor=anchor)

    selected: list[str] = []
    length = 0
    for sentence in sentences[:SUMMARY_MAX_SENTENCES]:
        added = len(sentence) + (1 if selected else 0)
        if selected and length + added > SUMMARY_MAX_CHARS:
            break
        selected.append(sentence)
        length += added

    text = _cap_text(" ".join(selected), SUMMARY_MAX_CHARS)
    return text + SUMMARY_MARKER.format(anchor=anchor)


def find_semantic_boundaries(text: str) -> list[int]:
    """Offsets where text can be cut without breaking structure.

    Returns a sorted, deduplicated list that always contains ``0`` and
    ``len(text)``, plus the offsets just before Markdown headings, blank-line
    paragraph breaks, ``[Page N]`` / ``--- Page N ---`` markers and
    horizontal rules.
    """
    boundaries = {0, len(text)}
    for pattern in _BOUNDARY_PATTERNS:
        for match in pattern.finditer(text):
            boundaries.add(match.start())
    return sorted(boundaries)


def _word_boundary(text: str, max_chars: int) -> int:
    """Offset of the last whitespace at or before max_chars, 0 if none."""
    last = 0
    for match in _WHITESPACE.finditer(text, 0, max_chars + 1):
        last = match.start()
    return last


def truncate_at_boundary(text: str, max_chars: int) -> str:
    """Cut text to at most ``max_chars`` characters at a natural boundary.

    Preference order: the largest semantic boundary within the limit (when it
    keeps at least half the allowance), else the last word boundary, else a
    hard cut at exactly ``max_chars``. ``TRUNCATION_MARKER`` is appended to
    any cut text; its length is not counted against ``max_chars``.

    Args:
        text: Text to truncate
        max_chars: Character allowance for the kept text

    Returns:
        The text unchanged if it fits, otherwise the cut text plus marker

    Raises:
        ValueError: If max_chars is negative
    """
    if max_chars < 0:
        raise ValueError(f"max_chars must be non-negative, got {max_chars}")
    if len(text) <= max_chars:
        return text

    candidates = [b for b in find_semantic_boundaries(text) if 0 < b <= max_chars]
    cut = candidates[-1] if candidates else 0

    if cut < max_chars * BOUNDARY_MIN_FRACTION:
        cut = max(cut, _word_boundary(text, max_chars))

    head = text[:cut].rstrip() if cut else ""
    if not head:
        head = text[:max_chars]

    return head + TRUNCATION_MARKER
