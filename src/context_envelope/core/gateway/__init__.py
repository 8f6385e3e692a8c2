"""Capability-aware message gateway.

Resolves what a model can accept and rewrites canonical messages to fit:

    from context_envelope.core.gateway import (
        get_model_capabilities,
        transform_messages_for_capabilities,
    )
"""

from context_envelope.core.gateway.capabilities import (
    STATIC_CAPABILITIES,
    CapabilityResolver,
    capabilities_from_metadata,
    get_model_capabilities,
    provider_defaults,
)
from context_envelope.core.gateway.conversation import build_canonical_conversation
from context_envelope.core.gateway.errors import (
    AuthenticationError,
    GatewayProviderError,
    RateLimitError,
)
from context_envelope.core.gateway.mappers import to_anthropic_messages, to_openai_messages
from context_envelope.core.gateway.metadata import PortkeyMetadataClient
from context_envelope.core.gateway.models import (
    AudioPart,
    CanonicalMessage,
    CanonicalPart,
    ImagePart,
    ModelCapabilities,
    ModelMetadata,
    ModelSelector,
    PartOrdering,
    PdfPart,
    PdfStrategy,
    ProviderKind,
    TextPart,
    TransformOptions,
)
from context_envelope.core.gateway.pdf_strategies import default_pdf_strategy_for
from context_envelope.core.gateway.transform import (
    AUDIO_OMITTED_MARKER,
    IMAGE_OMITTED_MARKER,
    OMISSION_MARKERS,
    has_omission_markers,
    transform_messages_for_capabilities,
)

__all__ = [
    "AUDIO_OMITTED_MARKER",
    "IMAGE_OMITTED_MARKER",
    "OMISSION_MARKERS",
    "STATIC_CAPABILITIES",
    "AudioPart",
    "AuthenticationError",
    "CanonicalMessage",
    "CanonicalPart",
    "CapabilityResolver",
    "GatewayProviderError",
    "ImagePart",
    "ModelCapabilities",
    "ModelMetadata",
    "ModelSelector",
    "PartOrdering",
    "PdfPart",
    "PdfStrategy",
    "PortkeyMetadataClient",
    "ProviderKind",
    "RateLimitError",
    "TextPart",
    "TransformOptions",
    "build_canonical_conversation",
    "capabilities_from_metadata",
    "default_pdf_strategy_for",
    "get_model_capabilities",
    "has_omission_markers",
    "provider_defaults",
    "to_anthropic_messages",
    "to_openai_messages",
    "transform_messages_for_capabilities",
]
