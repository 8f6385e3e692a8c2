"""Heuristic quality hints for extracted text.

Classifies text as ``good``, ``mixed``, ``low`` or ``ocr_like`` from cheap
character and word statistics. The hint travels with chunks so renderers and
models can discount garbled extractions.
"""

import re
from dataclasses import dataclass

from context_envelope.core.envelope.models import QualityHint

_COMMON_SINGLE_CHAR_WORDS = frozenset({"a", "i", "o"})
_REPEATED_RUN = re.compile(r"(.)\1{3,}")
_OCR_ERROR_PATTERNS = (
    re.compile(r"\bl1\b", re.IGNORECASE),
    re.compile(r"\b0O\b", re.IGNORECASE),
    re.compile(r"\bO0\b", re.IGNORECASE),
    re.compile(r"\b1l\b", re.IGNORECASE),
    re.compile(r"[|](?=[a-z])", re.IGNORECASE),
    re.compile(r"[^\w\s.,!?:;'\"()-]{4,}"),
)


@dataclass
class TextMetrics:
    """Statistics used to classify extraction quality."""

    char_count: int
    word_count: int
    line_count: int
    avg_chars_per_line: float
    avg_word_length: float
    non_ascii_ratio: float
    control_char_ratio: float
    whitespace_ratio: float
    single_char_word_ratio: float
    repeated_sequences: int
    ocr_error_patterns: int


def compute_metrics(text: str) -> TextMetrics:
    char_count = len(text)
    lines = [line for line in text.split("\n") if line.strip()]
    line_count = max(len(lines), 1)

    words = text.split()
    word_count = len(words)
    avg_word_length = sum(len(w) for w in words) / word_count if word_count else 0.0
    single_char_words = sum(
        1 for w in words if len(w) == 1 and w.lower() not in _COMMON_SINGLE_CHAR_WORDS
    )

    non_ascii = control = whitespace = 0
    for ch in text:
        code = ord(ch)
        if code > 127:
            non_ascii += 1
        if (code < 32 and code not in (9, 10, 13)) or code == 127:
            control += 1
        if ch.isspace():
            whitespace += 1

    def ratio(count: int) -> float:
        return count / char_count if char_count else 0.0

    return TextMetrics(
        char_count=char_count,
        word_count=word_count,
        line_count=line_count,
        avg_chars_per_line=char_count / line_count,
        avg_word_length=avg_word_length,
        non_ascii_ratio=ratio(non_ascii),
        control_char_ratio=ratio(control),
        whitespace_ratio=ratio(whitespace),
        single_char_word_ratio=single_char_words / word_count if word_count else 0.0,
        repeated_sequences=len(_REPEATED_RUN.findall(text)),
        ocr_error_patterns=sum(len(p.findall(text)) for p in _OCR_ERROR_PATTERNS),
    )


def _is_low_quality(m: TextMetrics) -> bool:
    return (
        m.whitespace_ratio > 0.7
        or m.control_char_ratio > 0.05
        or m.non_ascii_ratio > 0.2
        or (m.avg_word_length < 2.5 and m.word_count > 10)
        or (m.char_count > 100 and m.word_count < 5)
    )


def _is_likely_ocr(m: TextMetrics) -> bool:
    if m.single_char_word_ratio > 0.25 and m.word_count > 20:
        return True
    if m.ocr_error_patterns > 10 and m.word_count > 10:
        return True
    return (
        m.avg_word_length < 2
        and m.single_char_word_ratio > 0.2
        and m.ocr_error_patterns > 5
        and m.word_count > 20
    )


def _is_mixed_quality(m: TextMetrics) -> bool:
    return (
        0.05 < m.non_ascii_ratio <= 0.2
        or 0.01 < m.control_char_ratio <= 0.05
        or (m.avg_chars_per_line < 25 and m.line_count > 20)
        or m.repeated_sequences > 5
        or 5 < m.ocr_error_patterns <= 10
    )


def assess_quality(text: str) -> QualityHint:
    """Classify the extraction quality of text.

    Low quality is checked first, then OCR signatures, then mixed.
    Empty or whitespace-only text is ``low``.
    """
    if not text or not text.strip():
        return QualityHint.LOW

    metrics = compute_metrics(text)
    if _is_low_quality(metrics):
        return QualityHint.LOW
    if _is_likely_ocr(metrics):
        return QualityHint.OCR_LIKE
    if _is_mixed_quality(metrics):
        return QualityHint.MIXED
    return QualityHint.GOOD


_DESCRIPTIONS = {
    QualityHint.GOOD: "Good quality - clean, well-structured text",
    QualityHint.MIXED: "Mixed quality - some formatting issues or minor artifacts",
    QualityHint.LOW: "Low quality - sparse or garbled content",
    QualityHint.OCR_LIKE: "OCR-like quality - appears to be optical character recognition output",
}

# Worst first
QUALITY_ORDER = (QualityHint.LOW, QualityHint.OCR_LIKE, QualityHint.MIXED, QualityHint.GOOD)


def describe_quality(quality: QualityHint) -> str:
    return _DESCRIPTIONS[QualityHint(quality)]


def is_quality_sufficient_for_text(quality: QualityHint) -> bool:
    """True when text alone is trustworthy enough to send without the image."""
    return QualityHint(quality) in (QualityHint.GOOD, QualityHint.MIXED)
