"""Message commands: adapt canonical messages to a model."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
from pydantic import TypeAdapter, ValidationError

from context_envelope.cli.commands.capabilities import PROVIDER_KIND_CHOICES, selector_from_options
from context_envelope.cli.output import emit_error, emit_success
from context_envelope.core.context import target_model
from context_envelope.core.gateway.capabilities import get_model_capabilities
from context_envelope.core.gateway.mappers import to_anthropic_messages, to_openai_messages
from context_envelope.core.gateway.models import (
    CanonicalMessage,
    PartOrdering,
    PdfStrategy,
    ProviderKind,
    TransformOptions,
)
from context_envelope.core.gateway.transform import (
    has_omission_markers,
    transform_messages_for_capabilities,
)

_MESSAGES = TypeAdapter(list[CanonicalMessage])


@click.group("messages")
def messages() -> None:
    """Capability-aware message transformation."""
    pass


@messages.command("transform")
@click.argument("messages_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--model", required=True, help="Target model name")
@click.option(
    "--provider-kind",
    type=click.Choice(PROVIDER_KIND_CHOICES),
    default=ProviderKind.DIRECT_OPENAI.value,
    show_default=True,
)
@click.option("--provider", help="Provider family, e.g. openai, ollama")
@click.option(
    "--ordering",
    type=click.Choice([o.value for o in PartOrdering]),
    default=PartOrdering.IMAGES_FIRST.value,
    show_default=True,
)
@click.option("--pdf-strategy", type=click.Choice([s.value for s in PdfStrategy]))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["canonical", "openai", "anthropic"]),
    default="canonical",
    show_default=True,
)
@click.option("--api-key", envvar="PORTKEY_API_KEY", help="Gateway API key for remote lookups")
def messages_transform_cmd(
    messages_file: Path,
    model: str,
    provider_kind: str,
    provider: Optional[str],
    ordering: str,
    pdf_strategy: Optional[str],
    output_format: str,
    api_key: Optional[str],
) -> None:
    """Transform canonical messages in MESSAGES_FILE for MODEL."""
    try:
        canonical = _MESSAGES.validate_json(messages_file.read_bytes())
    except ValidationError as e:
        emit_error(
            f"Invalid messages in {messages_file}",
            "VALIDATION_ERROR",
            error_type="validation",
            details={"errors": json.loads(e.json())},
        )

    selector = selector_from_options(model, provider_kind, provider)
    options = TransformOptions(
        ordering=PartOrdering(ordering),
        pdf_strategy=PdfStrategy(pdf_strategy) if pdf_strategy else None,
    )
    with target_model(model):
        capabilities = asyncio.run(get_model_capabilities(selector, api_key))
        transformed = transform_messages_for_capabilities(canonical, capabilities, options)

    try:
        if output_format == "openai":
            rendered = to_openai_messages(transformed)
        elif output_format == "anthropic":
            rendered = to_anthropic_messages(transformed)
        else:
            rendered = [m.model_dump(exclude_none=True) for m in transformed]
    except OSError as e:
        emit_error(f"Could not read message media: {e}", "INVALID_INPUT", error_type="validation")

    degraded = has_omission_markers(transformed)
    warnings = ["Unsupported parts were replaced with text notices"] if degraded else None
    emit_success(
        {
            "model": model,
            "capabilities": capabilities.model_dump(),
            "messages": rendered,
            "degraded": degraded,
        },
        warnings=warnings,
    )
