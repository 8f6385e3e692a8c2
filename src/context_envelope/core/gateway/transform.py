"""Capability-aware rewriting of canonical messages.

Parts a model cannot accept are replaced by text notices instead of failing
the request. Every notice starts with a fixed marker so logging and warning
code can detect degraded requests by substring.

Key Components:
    - transform_messages_for_capabilities(): Rewrite messages for a model
    - has_omission_markers(): Detect degraded content after the fact
    - *_MARKER: Marker prefixes of the replacement notices

Usage:
    from context_envelope.core.gateway.transform import (
        transform_messages_for_capabilities,
    )

    messages = transform_messages_for_capabilities(messages, caps)
"""

from typing import Optional, Sequence

from context_envelope.core.gateway.models import (
    AudioPart,
    CanonicalMessage,
    CanonicalPart,
    ImagePart,
    ModelCapabilities,
    PartOrdering,
    PdfPart,
    TextPart,
    TransformOptions,
    media_label,
)
from context_envelope.core.gateway.pdf_strategies import (
    PDF_CONVERTED_MARKER,
    PDF_OMITTED_MARKER,
    default_pdf_strategy_for,
    resolve_pdf_part,
)

IMAGE_OMITTED_MARKER = "[image omitted"
AUDIO_OMITTED_MARKER = "[audio omitted"

OMISSION_MARKERS = (
    IMAGE_OMITTED_MARKER,
    PDF_CONVERTED_MARKER,
    PDF_OMITTED_MARKER,
    AUDIO_OMITTED_MARKER,
)


def _image_notice(part: ImagePart) -> TextPart:
    if part.alt:
        return TextPart(text=f"{IMAGE_OMITTED_MARKER}: {part.alt}]")
    return TextPart(text=f"{IMAGE_OMITTED_MARKER}]")


def _audio_notice(part: AudioPart) -> TextPart:
    return TextPart(text=f"{AUDIO_OMITTED_MARKER}: {media_label(part)}]")


def _is_media(part: CanonicalPart) -> bool:
    return not isinstance(part, TextPart)


def _order_parts(parts: list[CanonicalPart], ordering: PartOrdering) -> list[CanonicalPart]:
    if ordering == PartOrdering.TEXT_FIRST:
        return parts
    return [p for p in parts if _is_media(p)] + [p for p in parts if not _is_media(p)]


def transform_messages_for_capabilities(
    messages: Sequence[CanonicalMessage],
    capabilities: ModelCapabilities,
    options: Optional[TransformOptions] = None,
) -> list[CanonicalMessage]:
    """Rewrite messages so every part is acceptable to the model.

    - image without vision -> ``[image omitted: <alt>]`` (or ``[image omitted]``)
    - pdf -> kept, ``[PDF converted to images: <uri>]`` or
      ``[PDF omitted: <uri>]`` depending on strategy and capabilities
    - audio without audio input -> ``[audio omitted: <uri>]``

    PDF and audio notices name the part by its ``name`` when set; inline
    ``data:`` URIs are reduced to their mime type and size.

    Media parts that survive are moved ahead of text parts unless
    ``options.ordering`` is ``text_first``; relative order within each group
    is preserved. Input messages are not modified.

    Args:
        messages: Canonical messages
        capabilities: Resolved capabilities of the target model
        options: Ordering and PDF strategy preferences

    Returns:
        New list of transformed messages
    """
    options = options or TransformOptions()
    pdf_strategy = options.pdf_strategy or default_pdf_strategy_for(capabilities)

    transformed = []
    for message in messages:
        parts: list[CanonicalPart] = []
        for part in message.parts:
            if isinstance(part, ImagePart) and not capabilities.supports_vision:
                parts.append(_image_notice(part))
            elif isinstance(part, PdfPart):
                parts.append(resolve_pdf_part(part, capabilities, pdf_strategy))
            elif isinstance(part, AudioPart) and not capabilities.supports_audio_input:
                parts.append(_audio_notice(part))
            else:
                parts.append(part)
        transformed.append(
            message.model_copy(update={"parts": _order_parts(parts, options.ordering)})
        )
    return transformed


def has_omission_markers(messages: Sequence[CanonicalMessage]) -> bool:
    """True if any text part carries a replacement notice."""
    return any(
        isinstance(part, TextPart) and any(marker in part.text for marker in OMISSION_MARKERS)
        for message in messages
        for part in message.parts
    )
