"""Capability commands: resolve what a model accepts."""

import asyncio
from typing import Optional

import click

from context_envelope.cli.output import emit_success
from context_envelope.core.context import target_model
from context_envelope.core.gateway.capabilities import get_model_capabilities
from context_envelope.core.gateway.models import ModelSelector, ProviderKind

PROVIDER_KIND_CHOICES = [kind.value for kind in ProviderKind]


def selector_from_options(
    model: str, provider_kind: str, provider: Optional[str]
) -> ModelSelector:
    return ModelSelector(
        provider_kind=ProviderKind(provider_kind),
        model=model,
        provider=provider,
    )


@click.group("capabilities")
def capabilities() -> None:
    """Model capability resolution."""
    pass


@capabilities.command("resolve")
@click.argument("model")
@click.option(
    "--provider-kind",
    type=click.Choice(PROVIDER_KIND_CHOICES),
    default=ProviderKind.DIRECT_OPENAI.value,
    show_default=True,
    help="Route used to reach the model",
)
@click.option("--provider", help="Provider family, e.g. openai, ollama")
@click.option("--api-key", envvar="PORTKEY_API_KEY", help="Gateway API key for remote lookups")
def capabilities_resolve_cmd(
    model: str, provider_kind: str, provider: Optional[str], api_key: Optional[str]
) -> None:
    """Resolve capabilities for MODEL."""
    selector = selector_from_options(model, provider_kind, provider)
    with target_model(model):
        resolved = asyncio.run(get_model_capabilities(selector, api_key))
    emit_success(
        {
            "model": model,
            "provider_kind": selector.provider_kind.value,
            "capabilities": resolved.model_dump(),
        }
    )
