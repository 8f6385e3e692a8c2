"""Canonical messages to provider content arrays.

Mappers run after the capability transform, so every part they see is one
the model accepts. Image parts are inlined as base64; ``file`` sources are
read from disk.
"""

import base64
import mimetypes
import re
from pathlib import Path
from typing import Any, Optional, Sequence

from context_envelope.core.gateway.models import (
    CanonicalMessage,
    CanonicalPart,
    ImagePart,
    PdfPart,
    TextPart,
    media_label,
)

_DATA_URL = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


def parse_data_url(uri: str) -> Optional[tuple[str, str]]:
    """Split a base64 data URL into (mime_type, data)."""
    match = _DATA_URL.match(uri)
    if not match:
        return None
    return match.group(1), match.group(2)


def read_file_as_base64(uri: str) -> tuple[str, str]:
    """Read a local file (``file://`` prefix optional) into (mime_type, data)."""
    path = Path(uri.removeprefix("file://"))
    mime_type, _ = mimetypes.guess_type(path.name)
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return mime_type or "application/octet-stream", data


def _image_payload(part: ImagePart) -> Optional[tuple[str, str]]:
    if part.source == "url":
        return parse_data_url(part.uri)
    return read_file_as_base64(part.uri)


def _fallback_text(part: CanonicalPart) -> str:
    if isinstance(part, ImagePart):
        return f"[image: {part.alt}]" if part.alt else "[image]"
    if isinstance(part, PdfPart):
        return f"[pdf attached: {media_label(part)}]"
    return f"[{part.type} not supported]"


def _collapse(blocks: list[dict[str, Any]]) -> Any:
    """A lone text block becomes a plain string."""
    if len(blocks) == 1 and blocks[0]["type"] == "text":
        return blocks[0]["text"]
    return blocks


# =============================================================================
# OpenAI
# =============================================================================


def _openai_blocks(part: CanonicalPart) -> list[dict[str, Any]]:
    if isinstance(part, TextPart):
        return [{"type": "text", "text": part.text}]
    if isinstance(part, ImagePart):
        payload = _image_payload(part)
        if payload:
            mime_type, data = payload
            return [{"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{data}"}}]
    return [{"type": "text", "text": _fallback_text(part)}]


def to_openai_messages(messages: Sequence[CanonicalMessage]) -> list[dict[str, Any]]:
    """Map to OpenAI-style chat messages (``image_url`` data URLs)."""
    converted = []
    for message in messages:
        blocks = [block for part in message.parts for block in _openai_blocks(part)]
        converted.append({"role": message.role, "content": _collapse(blocks)})
    return converted


# =============================================================================
# Anthropic
# =============================================================================


def _anthropic_blocks(part: CanonicalPart) -> list[dict[str, Any]]:
    if isinstance(part, TextPart):
        return [{"type": "text", "text": part.text}]
    if isinstance(part, ImagePart):
        payload = _image_payload(part)
        if payload:
            mime_type, data = payload
            return [
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": mime_type, "data": data},
                }
            ]
    if isinstance(part, PdfPart):
        payload = parse_data_url(part.uri) if part.source == "url" else read_file_as_base64(part.uri)
        if payload:
            mime_type, data = payload
            return [
                {
                    "type": "document",
                    "source": {"type": "base64", "media_type": mime_type, "data": data},
                }
            ]
    return [{"type": "text", "text": _fallback_text(part)}]


def to_anthropic_messages(messages: Sequence[CanonicalMessage]) -> list[dict[str, Any]]:
    """Map to Anthropic-style messages (base64 ``image``/``document`` blocks)."""
    converted = []
    for message in messages:
        blocks = [block for part in message.parts for block in _anthropic_blocks(part)]
        converted.append({"role": message.role, "content": _collapse(blocks)})
    return converted
