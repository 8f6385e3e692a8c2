"""Envelope to canonical conversation.

The envelope's rendered text becomes the user message; included image and
PDF attachments follow as media parts so the transformer can keep, convert
or omit them for the target model.
"""

import logging
from typing import Optional

from context_envelope.core.envelope.builder import get_attachment_data, render_envelope_as_text
from context_envelope.core.envelope.models import ArtifactType, ContextEnvelope
from context_envelope.core.gateway.models import (
    CanonicalMessage,
    CanonicalPart,
    ImagePart,
    PdfPart,
    TextPart,
)

logger = logging.getLogger(__name__)

_IMAGE_ARTIFACTS = frozenset(
    {ArtifactType.PAGE_IMAGE, ArtifactType.SCREENSHOT, ArtifactType.RAW_IMAGE}
)


def build_canonical_conversation(
    envelope: ContextEnvelope,
    *,
    system_prompt: Optional[str] = None,
) -> list[CanonicalMessage]:
    """Build the canonical messages for a budgeted envelope.

    Args:
        envelope: Envelope, usually after ``apply_token_budget``
        system_prompt: Optional system message text

    Returns:
        Optional system message followed by one user message
    """
    messages = []
    if system_prompt:
        messages.append(CanonicalMessage(role="system", parts=[TextPart(text=system_prompt)]))

    titles = {entry.source_id: entry.title for entry in envelope.index}
    parts: list[CanonicalPart] = [TextPart(text=render_envelope_as_text(envelope))]

    for attachment in envelope.attachments:
        if not attachment.included:
            continue
        blob = get_attachment_data(envelope, attachment.anchor)
        if blob is None or not blob.data:
            logger.debug(f"No data for attachment {attachment.anchor}, skipping")
            continue
        if attachment.artifact_type in _IMAGE_ARTIFACTS:
            parts.append(
                ImagePart(
                    source="url",
                    uri=blob.to_data_url(),
                    alt=titles.get(attachment.source_id),
                )
            )
        elif attachment.artifact_type == ArtifactType.RAW_PDF:
            parts.append(PdfPart(source="url", uri=blob.to_data_url(), name=attachment.anchor))

    messages.append(CanonicalMessage(role="user", parts=parts))
    return messages
