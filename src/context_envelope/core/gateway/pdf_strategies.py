"""PDF delivery strategies.

A PDF part reaches a model natively, as page images, or (for text-only
models) not at all. The strategy expresses the caller's preference; the
model's capabilities decide what is actually possible.
"""

from context_envelope.core.gateway.models import (
    CanonicalPart,
    ModelCapabilities,
    PdfPart,
    PdfStrategy,
    TextPart,
    media_label,
)

PDF_CONVERTED_MARKER = "[PDF converted to images"
PDF_OMITTED_MARKER = "[PDF omitted"


def default_pdf_strategy_for(capabilities: ModelCapabilities) -> PdfStrategy:
    if capabilities.supports_pdf_native:
        return PdfStrategy.NATIVE
    if capabilities.supports_vision:
        return PdfStrategy.AS_IMAGES
    return PdfStrategy.HYBRID


def converted_notice(part: PdfPart) -> TextPart:
    return TextPart(text=f"{PDF_CONVERTED_MARKER}: {media_label(part)}]")


def omitted_notice(part: PdfPart) -> TextPart:
    return TextPart(text=f"{PDF_OMITTED_MARKER}: {media_label(part)}]")


def resolve_pdf_part(
    part: PdfPart,
    capabilities: ModelCapabilities,
    strategy: PdfStrategy,
) -> CanonicalPart:
    """Decide how one PDF part is delivered.

    The part is kept only under the native strategy on a model with native
    PDF input. Otherwise a vision model gets a conversion notice (the hybrid
    strategy also needs text input) and anything else an omission notice.
    """
    if strategy == PdfStrategy.NATIVE and capabilities.supports_pdf_native:
        return part
    if capabilities.supports_vision and (
        strategy != PdfStrategy.HYBRID or capabilities.supports_text
    ):
        return converted_notice(part)
    return omitted_notice(part)
