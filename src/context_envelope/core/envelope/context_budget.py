"""Token budget enforcement for context envelopes.

Walks a strictly ordered degradation ladder until an envelope fits a token
ceiling. Each rung is lossier than the last, and every lossy step is recorded
as a ``BudgetCut`` so callers can explain what was left out.

Ladder:
    0. Fits as-is
    1. Remove low-ranked chunks (down to ``min_chunks``)
    2. Replace low-ranked survivors by extractive summaries
    3. Keep only the top-K chunks that fit
    4. Truncate the top chunk at a semantic boundary
    5. Index only (no chunk content, no attachments)

Key Components:
    - apply_token_budget(): Run the ladder against an envelope
    - BudgetOptions: Budget parameters as a single value
    - BudgetConfigurationError: Raised for invalid budget parameters

Usage:
    from context_envelope.core.envelope.context_budget import apply_token_budget

    budgeted = apply_token_budget(envelope, max_tokens=8000, min_chunks=2)
    print(budgeted.budget.degrade_stage, len(budgeted.budget.cuts))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from context_envelope.core.envelope.boundaries import (
    TRUNCATION_MARKER,
    extractive_summary,
    truncate_at_boundary,
)
from context_envelope.core.envelope.builder import render_context_index
from context_envelope.core.envelope.models import (
    BudgetCut,
    BudgetState,
    Chunk,
    ContextEnvelope,
    CutType,
    DegradeStage,
    IndexEntry,
)
from context_envelope.core.envelope.token_management import (
    CHARS_PER_TOKEN,
    TokenEstimator,
    estimate_tokens,
)

if TYPE_CHECKING:
    from context_envelope.config import BudgetSettings

logger = logging.getLogger(__name__)


class BudgetConfigurationError(ValueError):
    """Invalid budget parameters (negative ceiling, reserve or minimum)."""


@dataclass
class BudgetOptions:
    """Parameters for a budgeting run.

    Attributes:
        max_tokens: Token ceiling; 0 means no limit
        min_chunks: Chunks stages 1-2 try to keep; ignored from stage 3 on
        task_reserve: Tokens held back on top of the task text
    """

    max_tokens: int = 0
    min_chunks: int = 0
    task_reserve: int = 0

    def validate(self) -> None:
        for name in ("max_tokens", "min_chunks", "task_reserve"):
            value = getattr(self, name)
            if value < 0:
                raise BudgetConfigurationError(f"{name} must be non-negative, got {value}")

    @classmethod
    def from_settings(cls, settings: "BudgetSettings") -> "BudgetOptions":
        return cls(
            max_tokens=settings.max_tokens,
            min_chunks=settings.min_chunks,
            task_reserve=settings.task_reserve,
        )


def _rank_key(chunk: Chunk) -> tuple[float, int]:
    """Highest relevance first; originating order breaks ties."""
    return (-chunk.relevance_score, chunk.ordinal)


def _removal_reason(score: float, cutoff: Optional[float]) -> str:
    if cutoff is None:
        return f"relevance {score:.2f}, no chunks retained"
    if score < cutoff:
        return f"relevance {score:.2f} below cutoff {cutoff:.2f}"
    return f"relevance {score:.2f} tied with cutoff {cutoff:.2f}, later in original order"


class _DegradationLadder:
    """Mutable working state for one ``apply_token_budget`` call.

    Chunks are tracked by their position in the input envelope so the
    original order can be restored and duplicate anchors stay distinct.
    """

    def __init__(
        self,
        envelope: ContextEnvelope,
        options: BudgetOptions,
        estimator: TokenEstimator,
    ):
        self.envelope = envelope
        self.options = options
        self.estimator = estimator

        self.current: dict[int, Chunk] = dict(enumerate(envelope.chunks))
        self.kept: list[int] = sorted(self.current, key=lambda i: _rank_key(self.current[i]))
        self.cuts: list[BudgetCut] = []
        self.stage = DegradeStage.FULL

        self.fixed_tokens = estimator(envelope.task) + options.task_reserve
        self.summaries = self._source_summaries()
        self.summarized_index = [self._summarized_entry(e) for e in envelope.index]
        # Stages 1-4 reserve room for the larger rendering of every index entry
        reserved_index = [self._reserved_entry(e) for e in envelope.index]
        self.content_budget = (
            options.max_tokens - self.fixed_tokens - estimator(render_context_index(reserved_index))
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _source_summaries(self) -> dict[str, str]:
        first_content: dict[str, str] = {}
        for chunk in self.envelope.chunks:
            first_content.setdefault(chunk.source_id, chunk.content)
        return {
            entry.source_id: extractive_summary(first_content.get(entry.source_id, ""), entry.anchor)
            for entry in self.envelope.index
        }

    def _summarized_entry(self, entry: IndexEntry) -> IndexEntry:
        return entry.model_copy(
            update={
                "content_included": False,
                "summary": self.summaries[entry.source_id],
                "pages_attached": None,
            }
        )

    def _reserved_entry(self, entry: IndexEntry) -> IndexEntry:
        """The larger of an entry as-is and the entry as ``result`` may summarize it."""
        summarized = entry.model_copy(
            update={"content_included": False, "summary": self.summaries[entry.source_id]}
        )
        return max((entry, summarized), key=self._rendered_size)

    def _rendered_size(self, entry: IndexEntry) -> tuple[int, int]:
        rendered = render_context_index([entry])
        return self.estimator(rendered), len(rendered)

    def content_tokens(self) -> int:
        return sum(self.current[i].token_count for i in self.kept)

    def fits(self) -> bool:
        return self.content_tokens() <= self.content_budget

    def enter(self, stage: DegradeStage) -> None:
        self.stage = max(self.stage, stage)

    def remove(self, position: int, reason: str) -> None:
        chunk = self.current[position]
        self.cuts.append(
            BudgetCut(
                anchor=chunk.anchor,
                type=CutType.REMOVED,
                reason=reason,
                original_tokens=self.envelope.chunks[position].token_count,
            )
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def remove_low_ranked(self) -> bool:
        self.enter(DegradeStage.REMOVE_LOW_RANKED)
        dropped: list[int] = []
        while not self.fits() and len(self.kept) > self.options.min_chunks:
            dropped.append(self.kept.pop())

        cutoff = self.current[self.kept[-1]].relevance_score if self.kept else None
        for position in dropped:
            self.remove(position, _removal_reason(self.current[position].relevance_score, cutoff))

        logger.debug(f"Stage 1 removed {len(dropped)} chunks, {len(self.kept)} remain")
        return self.fits()

    def summarize_survivors(self) -> bool:
        self.enter(DegradeStage.EXTRACTIVE_SUMMARY)
        summarized = 0
        for position in reversed(self.kept):
            if self.fits():
                break
            chunk = self.current[position]
            summary = extractive_summary(chunk.content, chunk.anchor)
            tokens = self.estimator(summary)
            if tokens >= chunk.token_count:
                continue
            self.current[position] = chunk.model_copy(
                update={"content": summary, "token_count": tokens, "truncated": True}
            )
            self.cuts.append(
                BudgetCut(
                    anchor=chunk.anchor,
                    type=CutType.SUMMARIZED,
                    reason=f"extractive summary ({chunk.token_count} -> {tokens} tokens)",
                    original_tokens=chunk.token_count,
                )
            )
            summarized += 1

        logger.debug(f"Stage 2 summarized {summarized} chunks")
        return self.fits()

    def keep_top_k(self) -> bool:
        self.enter(DegradeStage.TOP_K)
        running = 0
        k = 0
        for position in self.kept:
            tokens = self.current[position].token_count
            if running + tokens > self.content_budget:
                break
            running += tokens
            k += 1

        # The top chunk always survives into truncation when nothing fits whole
        retained = max(k, 1)
        for position in self.kept[retained:]:
            self.remove(position, f"top_k: outside the top {retained} chunks that fit")
        self.kept = self.kept[:retained]

        logger.debug(f"Stage 3 kept top {retained} chunks (k={k})")
        return self.fits()

    def _fit_truncation(self, text: str) -> tuple[int, str]:
        """Longest boundary truncation of ``text`` the estimator fits into the budget.

        The character heuristic is tried first; denser tokenizers fall back to
        a binary search over the character allowance.
        """
        max_chars = max(self.content_budget * CHARS_PER_TOKEN - len(TRUNCATION_MARKER), 0)
        content = truncate_at_boundary(text, max_chars)
        if self.estimator(content) <= self.content_budget:
            return max_chars, content

        best = (0, truncate_at_boundary(text, 0))
        low, high = 1, min(max_chars, len(text) - 1)
        while low <= high:
            middle = (low + high) // 2
            candidate = truncate_at_boundary(text, middle)
            if self.estimator(candidate) <= self.content_budget:
                best = (middle, candidate)
                low = middle + 1
            else:
                high = middle - 1
        return best

    def truncate_top(self) -> bool:
        self.enter(DegradeStage.TRUNCATE)
        position = self.kept[0]
        chunk = self.current[position]
        max_chars, content = self._fit_truncation(chunk.content)
        tokens = self.estimator(content)

        self.current[position] = chunk.model_copy(
            update={"content": content, "token_count": tokens, "truncated": True}
        )
        self.cuts.append(
            BudgetCut(
                anchor=chunk.anchor,
                type=CutType.TRUNCATED,
                reason=f"truncated to {max_chars} characters at a semantic boundary",
                original_tokens=self.envelope.chunks[position].token_count,
            )
        )

        logger.debug(f"Stage 4 truncated {chunk.anchor} to {tokens} tokens")
        return self.fits()

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def result(self) -> ContextEnvelope:
        survivors = [self.current[i] for i in sorted(self.kept)]
        surviving_sources = {c.source_id for c in survivors}
        chunked_sources = {c.source_id for c in self.envelope.chunks}

        index = [
            entry
            if entry.source_id in surviving_sources or entry.source_id not in chunked_sources
            else entry.model_copy(
                update={"content_included": False, "summary": self.summaries[entry.source_id]}
            )
            for entry in self.envelope.index
        ]
        used = (
            self.fixed_tokens
            + self.estimator(render_context_index(index))
            + sum(c.token_count for c in survivors)
        )
        return self._finish(index, survivors, list(self.envelope.attachments), used)

    def index_only(self) -> ContextEnvelope:
        self.enter(DegradeStage.INDEX_ONLY)
        for position in sorted(self.kept, key=lambda i: _rank_key(self.current[i])):
            self.remove(position, "index_only: no chunk content fits the budget")
        self.kept = []

        attachments = [a.model_copy(update={"included": False}) for a in self.envelope.attachments]
        used = self.fixed_tokens + self.estimator(render_context_index(self.summarized_index))
        return self._finish(list(self.summarized_index), [], attachments, used)

    def _finish(self, index, chunks, attachments, used: int) -> ContextEnvelope:
        logger.debug(
            f"Budget applied: stage={int(self.stage)}, cuts={len(self.cuts)}, "
            f"used={used}/{self.options.max_tokens}"
        )
        return self.envelope.model_copy(
            update={
                "index": index,
                "chunks": chunks,
                "attachments": attachments,
                "budget": BudgetState(
                    max_tokens=self.options.max_tokens,
                    used_tokens=used,
                    degrade_stage=self.stage,
                    cuts=list(self.cuts),
                ),
            }
        )


def apply_token_budget(
    envelope: ContextEnvelope,
    max_tokens: int,
    *,
    min_chunks: int = 0,
    task_reserve: int = 0,
    token_estimator: Optional[TokenEstimator] = None,
) -> ContextEnvelope:
    """Fit an envelope into a token ceiling.

    Stages are tried in order and only while the envelope still exceeds the
    ceiling; the recorded stage never decreases within a call. Ranking is by
    ``relevance_score`` descending with originating order as tie-breaker.
    The input envelope is never modified.

    Args:
        envelope: Envelope from ``build_context_envelope``
        max_tokens: Token ceiling; 0 returns ``envelope`` itself
        min_chunks: Chunks stages 1-2 keep when they can
        task_reserve: Extra tokens counted as fixed overhead
        token_estimator: Token counter (default: estimate_tokens heuristic)

    Returns:
        A new envelope with updated chunks, index, attachments and budget

    Raises:
        BudgetConfigurationError: If any numeric parameter is negative
    """
    options = BudgetOptions(max_tokens=max_tokens, min_chunks=min_chunks, task_reserve=task_reserve)
    options.validate()

    if max_tokens == 0:
        return envelope

    estimator = token_estimator or estimate_tokens

    fixed = estimator(envelope.task) + task_reserve
    index_tokens = estimator(render_context_index(envelope.index))
    chunk_tokens = sum(c.token_count for c in envelope.chunks)
    if fixed + index_tokens + chunk_tokens <= max_tokens:
        logger.debug(f"Envelope fits as-is: {fixed + index_tokens + chunk_tokens}/{max_tokens}")
        return envelope.model_copy(
            update={
                "budget": BudgetState(
                    max_tokens=max_tokens,
                    used_tokens=fixed + index_tokens + chunk_tokens,
                    degrade_stage=DegradeStage.FULL,
                    cuts=[],
                )
            }
        )

    ladder = _DegradationLadder(envelope, options, estimator)
    if ladder.content_budget < 0:
        logger.debug(f"Fixed overhead exceeds {max_tokens} tokens, falling back to index only")
        return ladder.index_only()

    for stage in (
        ladder.remove_low_ranked,
        ladder.summarize_survivors,
        ladder.keep_top_k,
        ladder.truncate_top,
    ):
        if stage():
            return ladder.result()

    return ladder.index_only()
