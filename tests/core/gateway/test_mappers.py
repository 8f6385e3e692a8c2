"""Tests for provider message mappers.

Tests cover:
1. Data URL parsing and local file reading
2. OpenAI mapping (image_url blocks, text collapse, fallbacks)
3. Anthropic mapping (base64 image and document blocks)
"""

import base64

from context_envelope.core.gateway.mappers import (
    parse_data_url,
    read_file_as_base64,
    to_anthropic_messages,
    to_openai_messages,
)
from context_envelope.core.gateway.models import (
    AudioPart,
    CanonicalMessage,
    ImagePart,
    PdfPart,
    TextPart,
)

PNG_URL = "data:image/png;base64,iVBORw0KGgo="


def user(*parts) -> CanonicalMessage:
    return CanonicalMessage(role="user", parts=list(parts))


class TestHelpers:
    """Tests for parse_data_url and read_file_as_base64."""

    def test_parse_data_url(self):
        assert parse_data_url(PNG_URL) == ("image/png", "iVBORw0KGgo=")
        assert parse_data_url("https://example.com/cat.png") is None

    def test_read_file_as_base64(self, tmp_path):
        path = tmp_path / "pixel.png"
        path.write_bytes(b"\x89PNG")
        mime_type, data = read_file_as_base64(f"file://{path}")
        assert mime_type == "image/png"
        assert base64.b64decode(data) == b"\x89PNG"

    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "blob.unknownext"
        path.write_bytes(b"x")
        assert read_file_as_base64(str(path))[0] == "application/octet-stream"


class TestToOpenAIMessages:
    """Tests for to_openai_messages."""

    def test_single_text_collapses_to_string(self):
        assert to_openai_messages([user(TextPart(text="hi"))]) == [
            {"role": "user", "content": "hi"}
        ]

    def test_image_data_url(self):
        [message] = to_openai_messages([user(ImagePart(uri=PNG_URL), TextPart(text="what?"))])
        assert message["content"] == [
            {"type": "image_url", "image_url": {"url": PNG_URL}},
            {"type": "text", "text": "what?"},
        ]

    def test_file_image_is_inlined(self, tmp_path):
        path = tmp_path / "photo.jpg"
        path.write_bytes(b"jpeg")
        [message] = to_openai_messages([user(ImagePart(source="file", uri=str(path)))])
        url = message["content"][0]["image_url"]["url"]
        assert url.startswith("data:image/jpeg;base64,")

    def test_fallback_text_for_unmappable_parts(self):
        [message] = to_openai_messages(
            [
                user(
                    ImagePart(uri="https://example.com/cat.png", alt="a cat"),
                    PdfPart(uri="https://example.com/a.pdf"),
                    AudioPart(uri="https://example.com/a.mp3"),
                )
            ]
        )
        assert [b["text"] for b in message["content"]] == [
            "[image: a cat]",
            "[pdf attached: https://example.com/a.pdf]",
            "[audio not supported]",
        ]


class TestToAnthropicMessages:
    """Tests for to_anthropic_messages."""

    def test_image_block(self):
        [message] = to_anthropic_messages([user(ImagePart(uri=PNG_URL), TextPart(text="?"))])
        assert message["content"][0] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo="},
        }

    def test_pdf_document_block(self):
        [message] = to_anthropic_messages(
            [user(PdfPart(uri="data:application/pdf;base64,JVBERi0="))]
        )
        assert message["content"] == [
            {
                "type": "document",
                "source": {"type": "base64", "media_type": "application/pdf", "data": "JVBERi0="},
            }
        ]

    def test_roles_preserved(self):
        messages = [
            CanonicalMessage(role="system", parts=[TextPart(text="sys")]),
            CanonicalMessage(role="assistant", parts=[TextPart(text="ok")]),
        ]
        assert [m["role"] for m in to_anthropic_messages(messages)] == ["system", "assistant"]

    def test_remote_image_falls_back_to_text(self):
        [message] = to_anthropic_messages([user(ImagePart(uri="https://example.com/x.png"))])
        assert message["content"] == "[image]"
