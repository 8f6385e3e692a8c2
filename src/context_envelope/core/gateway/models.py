"""Models for the capability-aware message gateway.

Canonical messages are the model-agnostic representation of a request: a
role plus typed parts. Capabilities describe what a resolved model accepts;
the transformer rewrites canonical messages to fit them.
"""

import re
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """How a model is reached."""

    PORTKEY = "portkey"
    DIRECT_OPENAI = "direct-openai"
    DIRECT_ANTHROPIC = "direct-anthropic"
    DIRECT_VLLM = "direct-vllm"
    DIRECT_FIREWORKS = "direct-fireworks"
    DIRECT_LOCAL = "direct-local"


class PdfStrategy(str, Enum):
    """How PDF parts are delivered to a model."""

    NATIVE = "pdf-native"
    AS_IMAGES = "pdf-as-images"
    HYBRID = "pdf-hybrid"


class PartOrdering(str, Enum):
    """Placement of media parts relative to text parts."""

    IMAGES_FIRST = "images_first"
    TEXT_FIRST = "text_first"


class ModelSelector(BaseModel):
    """Identifies a model and the route used to reach it.

    Attributes:
        provider_kind: Route (gateway or direct provider)
        model: Exact model name, the key for capability lookups
        display_name: Optional human-facing name
        provider: Provider family (e.g. "openai", "ollama") used for defaults
    """

    provider_kind: ProviderKind = ProviderKind.DIRECT_OPENAI
    model: str
    display_name: Optional[str] = None
    provider: Optional[str] = None


class ModelCapabilities(BaseModel):
    """What a resolved model accepts and produces."""

    model_config = ConfigDict(frozen=True)

    supports_text: bool = True
    supports_vision: bool = False
    supports_audio_input: bool = False
    supports_audio_output: bool = False
    supports_pdf_native: bool = False
    supports_image_generation: bool = False
    max_input_tokens: Optional[int] = Field(default=None, ge=0)
    max_output_tokens: Optional[int] = Field(default=None, ge=0)
    requires_images_first: Optional[bool] = None
    requires_base64_images: Optional[bool] = None


class ModelMetadata(BaseModel):
    """Model metadata as reported by the gateway's model catalog."""

    id: str
    modalities: Optional[list[str]] = None
    max_input_tokens: Optional[int] = None
    max_output_tokens: Optional[int] = None
    requires_images_first: Optional[bool] = None
    requires_base64_images: Optional[bool] = None


# =============================================================================
# Canonical Messages
# =============================================================================


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    type: Literal["image"] = "image"
    source: Literal["file", "url"] = "url"
    uri: str
    alt: Optional[str] = None


class PdfPart(BaseModel):
    type: Literal["pdf"] = "pdf"
    source: Literal["file", "url"] = "url"
    uri: str
    name: Optional[str] = Field(default=None, description="Label used in notices, e.g. an anchor")
    pages: Optional[list[int]] = None


class AudioPart(BaseModel):
    type: Literal["audio"] = "audio"
    source: Literal["file", "url"] = "url"
    uri: str
    name: Optional[str] = None


_DATA_URL_HEADER = re.compile(r"^data:([^;,]*)((?:;[^;,]*)*),")


def describe_uri(uri: str) -> str:
    """Short label for a media URI. Inline ``data:`` payloads are never echoed."""
    match = _DATA_URL_HEADER.match(uri)
    if not match:
        return uri
    payload = len(uri) - match.end()
    size = payload * 3 // 4 if ";base64" in match.group(2) else payload
    return f"inline {match.group(1) or 'data'}, {size} bytes"


def media_label(part: Union[PdfPart, AudioPart]) -> str:
    return part.name or describe_uri(part.uri)


CanonicalPart = Annotated[
    Union[TextPart, ImagePart, PdfPart, AudioPart],
    Field(discriminator="type"),
]


class CanonicalMessage(BaseModel):
    """A provider-agnostic message."""

    role: Literal["system", "user", "assistant", "tool"]
    parts: list[CanonicalPart] = Field(default_factory=list)


class TransformOptions(BaseModel):
    """Caller preferences for message transformation.

    Attributes:
        ordering: ``images_first`` (default) moves media ahead of text;
            ``text_first`` keeps the original order
        pdf_strategy: Overrides the strategy derived from capabilities
    """

    ordering: PartOrdering = PartOrdering.IMAGES_FIRST
    pdf_strategy: Optional[PdfStrategy] = None
