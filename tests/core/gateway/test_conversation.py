"""Tests for turning envelopes into canonical conversations.

Tests cover:
1. System prompt handling
2. Rendered envelope text as the first user part
3. Image and PDF attachments as media parts
4. Excluded attachments after index-only budgeting
5. Inline PDF payloads never reaching text-only models as notice text
"""

from context_envelope.core.envelope.builder import build_context_envelope
from context_envelope.core.envelope.context_budget import apply_token_budget
from context_envelope.core.envelope.models import ArtifactType, BinaryBlob, PdfPage, PdfSource
from context_envelope.core.gateway.conversation import build_canonical_conversation
from context_envelope.core.gateway.models import ImagePart, ModelCapabilities, PdfPart, TextPart
from context_envelope.core.gateway.pdf_strategies import PDF_OMITTED_MARKER
from context_envelope.core.gateway.transform import transform_messages_for_capabilities


class TestBuildCanonicalConversation:
    """Tests for build_canonical_conversation."""

    def test_system_prompt(self, note_source):
        envelope = build_context_envelope([note_source], "Summarize")
        messages = build_canonical_conversation(envelope, system_prompt="Cite anchors.")
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[0].parts == [TextPart(text="Cite anchors.")]

    def test_without_system_prompt(self, note_source):
        envelope = build_context_envelope([note_source], "Summarize")
        [message] = build_canonical_conversation(envelope)
        assert message.role == "user"
        assert isinstance(message.parts[0], TextPart)
        assert "=== TASK ===\nSummarize" in message.parts[0].text

    def test_attachments_become_media_parts(self, pdf_source, webpage_source, png_blob):
        envelope = build_context_envelope([pdf_source, webpage_source], "Compare")
        [message] = build_canonical_conversation(envelope)

        media = message.parts[1:]
        assert [type(p) for p in media] == [PdfPart, ImagePart, ImagePart, ImagePart]
        assert media[0].uri == "data:application/pdf;base64,JVBERi0xLjQK"
        assert media[1].uri == png_blob.to_data_url()
        assert media[1].alt == "Attention paper"
        assert media[3].alt == "Token budgets explained"

    def test_excluded_attachments_are_skipped(self, pdf_source):
        envelope = apply_token_budget(build_context_envelope([pdf_source], "Compare"), 5)
        [message] = build_canonical_conversation(envelope)
        assert len(message.parts) == 1
        assert "[CHUNK]" not in message.parts[0].text

    def test_text_only_model_gets_short_pdf_notice(self):
        payload = "JVBERi0xLjQK" * 20_000
        pdf = PdfSource(
            title="Scanned report",
            pdf_bytes=BinaryBlob(data=payload, mime_type="application/pdf", byte_size=180_000),
            pages=[PdfPage(page_number=1, text="Findings. Budgets hold.")],
        )
        envelope = build_context_envelope([pdf], "Summarize")
        raw_pdf = next(a for a in envelope.attachments if a.artifact_type == ArtifactType.RAW_PDF)

        [message] = transform_messages_for_capabilities(
            build_canonical_conversation(envelope), ModelCapabilities()
        )
        notice = message.parts[-1].text
        assert notice == f"{PDF_OMITTED_MARKER}: {raw_pdf.anchor}]"
        assert payload not in notice
        assert all(payload not in getattr(p, "text", "") for p in message.parts)
