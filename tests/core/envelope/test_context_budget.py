"""Tests for the token budget degradation ladder.

Tests cover:
1. Fast path (max_tokens == 0) and option validation
2. Stage 0 through stage 5 outcomes and recorded cuts
3. Tie-breaking by originating order
4. Index summaries for sources that lost their chunks
5. Used tokens never exceeding the ceiling below stage 5
6. Input immutability and debug logging
7. Truncation sized by the injected estimator
8. Stage never decreasing as the ceiling shrinks
"""

import logging
import math

import pytest

from context_envelope.config import BudgetSettings
from context_envelope.core.envelope.boundaries import TRUNCATION_MARKER
from context_envelope.core.envelope.builder import apply_relevance_scores, build_context_envelope
from context_envelope.core.envelope.context_budget import (
    BudgetConfigurationError,
    BudgetOptions,
    apply_token_budget,
)
from context_envelope.core.envelope.models import (
    CutType,
    DegradeStage,
    NoteSource,
    PdfPage,
    PdfSource,
)

ALPHA = "Alpha sentence here. " * 80
BETA = "Beta sentence here. " * 80


def content_only(text: str) -> int:
    """Estimator that ignores the rendered index, so budgets are pure chunk arithmetic."""
    if text.startswith("=== CONTEXT INDEX ==="):
        return 0
    return math.ceil(len(text) / 4)


def one_token_per_char(text: str) -> int:
    """A much denser tokenizer than the four-characters-per-token heuristic."""
    if text.startswith("=== CONTEXT INDEX ==="):
        return 0
    return len(text)


def scored_envelope(items, task="", token_estimator=None):
    """Build an envelope of notes from (text, relevance) pairs."""
    sources = [NoteSource(title=f"Note {i}", text=text) for i, (text, _) in enumerate(items)]
    envelope = build_context_envelope(sources, task, token_estimator=token_estimator)
    scores = {chunk.anchor: score for chunk, (_, score) in zip(envelope.chunks, items)}
    return apply_relevance_scores(envelope, scores)


# =============================================================================
# Test: Options and Fast Path
# =============================================================================


class TestBudgetOptions:
    """Tests for option validation and the no-limit fast path."""

    def test_zero_returns_same_object(self):
        envelope = scored_envelope([(ALPHA, 0.5)])
        assert apply_token_budget(envelope, 0) is envelope

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"max_tokens": -1}, "max_tokens"),
            ({"max_tokens": 100, "min_chunks": -2}, "min_chunks"),
            ({"max_tokens": 100, "task_reserve": -5}, "task_reserve"),
        ],
    )
    def test_negative_values_raise(self, kwargs, match):
        envelope = scored_envelope([(ALPHA, 0.5)])
        max_tokens = kwargs.pop("max_tokens")
        with pytest.raises(BudgetConfigurationError, match=match):
            apply_token_budget(envelope, max_tokens, **kwargs)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            BudgetOptions(max_tokens=-1).validate()

    def test_from_settings(self):
        options = BudgetOptions.from_settings(
            BudgetSettings(max_tokens=1000, min_chunks=2, task_reserve=50)
        )
        assert (options.max_tokens, options.min_chunks, options.task_reserve) == (1000, 2, 50)


# =============================================================================
# Test: Ladder Stages
# =============================================================================


class TestStages:
    """Tests for each rung of the ladder."""

    def test_stage0_fits(self):
        envelope = scored_envelope([(ALPHA, 0.9), (BETA, 0.1)], task="Compare")
        result = apply_token_budget(envelope, 100_000)
        assert result.budget.degrade_stage == DegradeStage.FULL
        assert result.budget.cuts == []
        assert result.budget.max_tokens == 100_000
        assert result.chunks == envelope.chunks
        assert result.budget.used_tokens <= 100_000

    def test_stage1_removes_lowest_ranked(self):
        envelope = scored_envelope([(ALPHA, 0.9), (BETA, 0.1)], task="Compare")
        result = apply_token_budget(envelope, 600)

        assert result.budget.degrade_stage == DegradeStage.REMOVE_LOW_RANKED
        assert [c.anchor for c in result.chunks] == [envelope.chunks[0].anchor]
        assert result.chunks[0].content == ALPHA

        [cut] = result.budget.cuts
        assert cut.type == CutType.REMOVED
        assert cut.anchor == envelope.chunks[1].anchor
        assert cut.original_tokens == envelope.chunks[1].token_count
        assert cut.reason == "relevance 0.10 below cutoff 0.90"

    def test_removed_source_keeps_index_entry_with_summary(self):
        envelope = scored_envelope([(ALPHA, 0.9), (BETA, 0.1)], task="Compare")
        result = apply_token_budget(envelope, 600)

        assert len(result.index) == 2
        kept, dropped = result.index
        assert kept.content_included is True
        assert dropped.content_included is False
        assert dropped.summary.startswith("Beta sentence here.")
        assert dropped.summary.endswith(f"see {dropped.anchor} for full content]")

    def test_stage2_summarizes_when_min_chunks_blocks_removal(self):
        envelope = scored_envelope([(ALPHA, 0.9), (BETA, 0.1)], task="Compare")
        result = apply_token_budget(envelope, 400, min_chunks=1)

        assert result.budget.degrade_stage == DegradeStage.EXTRACTIVE_SUMMARY
        assert len(result.chunks) == 1
        top = result.chunks[0]
        assert top.anchor == envelope.chunks[0].anchor
        assert top.truncated is True
        assert "[extractive summary, see" in top.content

        types = [(c.type, c.anchor) for c in result.budget.cuts]
        assert types == [
            (CutType.REMOVED, envelope.chunks[1].anchor),
            (CutType.SUMMARIZED, envelope.chunks[0].anchor),
        ]
        assert result.index[0].content_included is True
        assert result.budget.used_tokens <= 400

    def test_stage3_keeps_top_k(self):
        items = [("a" * 250, 0.2), ("b" * 250, 0.9), ("c" * 250, 0.5)]
        envelope = scored_envelope(items, token_estimator=content_only)
        result = apply_token_budget(envelope, 130, min_chunks=3, token_estimator=content_only)

        assert result.budget.degrade_stage == DegradeStage.TOP_K
        assert [c.content[0] for c in result.chunks] == ["b", "c"]
        [cut] = result.budget.cuts
        assert cut.type == CutType.REMOVED
        assert cut.anchor == envelope.chunks[0].anchor
        assert cut.reason.startswith("top_k")

    def test_stage4_truncates_top_chunk(self):
        envelope = scored_envelope([("word " * 400, 0.5)], token_estimator=content_only)
        result = apply_token_budget(envelope, 20, min_chunks=1, token_estimator=content_only)

        assert result.budget.degrade_stage == DegradeStage.TRUNCATE
        [chunk] = result.chunks
        assert chunk.truncated is True
        assert chunk.content.endswith(TRUNCATION_MARKER)
        assert chunk.token_count <= 20
        assert [c.type for c in result.budget.cuts] == [CutType.SUMMARIZED, CutType.TRUNCATED]
        assert result.budget.cuts[-1].original_tokens == envelope.chunks[0].token_count

    def test_stage4_with_dense_tokenizer(self):
        envelope = scored_envelope([("word " * 400, 0.5)], token_estimator=one_token_per_char)
        result = apply_token_budget(
            envelope, 200, min_chunks=1, token_estimator=one_token_per_char
        )

        assert result.budget.degrade_stage == DegradeStage.TRUNCATE
        [chunk] = result.chunks
        assert chunk.truncated is True
        assert chunk.content.endswith(TRUNCATION_MARKER)
        assert 50 < chunk.token_count <= 200
        assert result.budget.used_tokens <= 200
        assert [c.type for c in result.budget.cuts] == [CutType.SUMMARIZED, CutType.TRUNCATED]

    def test_stage5_when_overhead_exceeds_budget(self, pdf_source):
        envelope = build_context_envelope([pdf_source], "A task that is long enough")
        result = apply_token_budget(envelope, 5)

        assert result.budget.degrade_stage == DegradeStage.INDEX_ONLY
        assert result.chunks == []
        assert len(result.index) == 1
        entry = result.index[0]
        assert entry.content_included is False
        assert entry.summary.startswith("Abstract.")
        assert entry.pages_attached is None
        assert result.attachments and all(not a.included for a in result.attachments)
        assert all(c.type == CutType.REMOVED for c in result.budget.cuts)
        assert all(c.reason.startswith("index_only") for c in result.budget.cuts)

    def test_stage5_keeps_one_entry_per_source(self, pdf_source, image_source, note_source):
        envelope = build_context_envelope(
            [pdf_source, image_source, note_source], "A task that is long enough"
        )
        result = apply_token_budget(envelope, 5)

        assert result.budget.degrade_stage == DegradeStage.INDEX_ONLY
        assert result.chunks == []
        assert [e.anchor for e in result.index] == [e.anchor for e in envelope.index]
        assert len(result.index) == 3
        for entry in result.index:
            assert entry.content_included is False
            assert entry.summary
            assert entry.pages_attached is None
        assert len(result.attachments) == len(envelope.attachments)
        assert all(not a.included for a in result.attachments)
        assert len(result.budget.cuts) == len(envelope.chunks)

    def test_stage5_when_truncation_cannot_fit(self):
        envelope = scored_envelope([("word " * 400, 0.5)], token_estimator=content_only)
        result = apply_token_budget(envelope, 2, min_chunks=1, token_estimator=content_only)

        assert result.budget.degrade_stage == DegradeStage.INDEX_ONLY
        assert result.chunks == []
        assert [c.type for c in result.budget.cuts] == [
            CutType.SUMMARIZED,
            CutType.TRUNCATED,
            CutType.REMOVED,
        ]

    def test_empty_envelope_never_raises(self):
        envelope = build_context_envelope([], "task")
        result = apply_token_budget(envelope, 1)
        assert result.index == []
        assert result.chunks == []


# =============================================================================
# Test: Ordering and Invariants
# =============================================================================


class TestInvariants:
    """Tests for tie-breaking, ordering, limits and immutability."""

    def test_ties_drop_later_source_first(self):
        items = [("a" * 400, 0.5), ("b" * 400, 0.5)]
        envelope = scored_envelope(items, token_estimator=content_only)
        result = apply_token_budget(envelope, 100, token_estimator=content_only)

        assert [c.content[0] for c in result.chunks] == ["a"]
        assert result.budget.cuts[0].anchor == envelope.chunks[1].anchor
        assert "tied with cutoff" in result.budget.cuts[0].reason

    def test_survivors_keep_original_order(self):
        items = [("a" * 40, 0.1), ("b" * 40, 0.9), ("c" * 40, 0.5), ("d" * 400, 0.05)]
        envelope = scored_envelope(items, token_estimator=content_only)
        result = apply_token_budget(envelope, 40, token_estimator=content_only)

        assert [c.content[0] for c in result.chunks] == ["a", "b", "c"]

    @pytest.mark.parametrize("max_tokens", [150, 250, 400, 550, 700, 900])
    def test_used_tokens_within_budget_below_stage5(self, max_tokens):
        envelope = scored_envelope(
            [(ALPHA, 0.9), (BETA, 0.4), ("Gamma is short. It ends here.", 0.6)],
            task="Compare the notes",
        )
        result = apply_token_budget(envelope, max_tokens, min_chunks=2)
        if result.budget.degrade_stage < DegradeStage.INDEX_ONLY:
            assert result.budget.used_tokens <= max_tokens
        assert len(result.index) == 3

    def test_task_reserve_counts_as_overhead(self):
        envelope = scored_envelope([(ALPHA, 0.9)], token_estimator=content_only)
        fits = apply_token_budget(envelope, 500, token_estimator=content_only)
        squeezed = apply_token_budget(envelope, 500, task_reserve=200, token_estimator=content_only)
        assert fits.budget.degrade_stage == DegradeStage.FULL
        assert squeezed.budget.degrade_stage > DegradeStage.FULL

    def test_input_not_mutated(self, pdf_source, note_source):
        envelope = build_context_envelope([pdf_source, note_source], "task")
        before = envelope.model_dump()
        apply_token_budget(envelope, 5)
        apply_token_budget(envelope, 60)
        assert envelope.model_dump() == before

    def test_logs_debug_summary(self, caplog):
        caplog.set_level(logging.DEBUG, logger="context_envelope.core.envelope.context_budget")
        envelope = scored_envelope([(ALPHA, 0.9), (BETA, 0.1)], task="Compare")
        apply_token_budget(envelope, 400, min_chunks=1)
        assert "Budget applied: stage=2" in caplog.text


# =============================================================================
# Test: Ceiling Across Budgets
# =============================================================================


class TestBudgetSweeps:
    """Tests that sweep the ceiling over a range of values."""

    @pytest.mark.parametrize("min_chunks", [0, 2])
    def test_stage_never_decreases_as_budget_shrinks(self, min_chunks):
        envelope = scored_envelope(
            [(ALPHA, 0.9), (BETA, 0.4), ("Gamma is short. It ends here.", 0.6)],
            task="Compare the notes",
        )
        stages = [
            apply_token_budget(envelope, max_tokens, min_chunks=min_chunks).budget.degrade_stage
            for max_tokens in range(1500, 0, -10)
        ]
        assert stages == sorted(stages)
        assert stages[0] == DegradeStage.FULL
        assert stages[-1] == DegradeStage.INDEX_ONLY

    def test_image_only_pdf_stays_within_budget(self, png_blob):
        scanned = PdfSource(
            title="Scanned archive",
            pages=[PdfPage(page_number=n, image=png_blob) for n in range(1, 301)],
        )
        notes = [NoteSource(title="Alpha", text=ALPHA), NoteSource(title="Beta", text=BETA)]
        envelope = build_context_envelope([scanned, *notes], "Compare")

        stages = set()
        for max_tokens in range(50, 3000, 25):
            result = apply_token_budget(envelope, max_tokens)
            stage = result.budget.degrade_stage
            stages.add(stage)
            if stage < DegradeStage.INDEX_ONLY:
                assert result.budget.used_tokens <= max_tokens, (max_tokens, stage)
            assert result.index[0].pages_attached == (
                None if stage == DegradeStage.INDEX_ONLY else list(range(1, 301))
            )

        assert DegradeStage.REMOVE_LOW_RANKED in stages
