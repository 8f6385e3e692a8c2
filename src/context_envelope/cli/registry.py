"""Command registry for the context-envelope CLI.

Command groups are organized by domain (anchors, envelopes, capabilities,
messages) and registered here in one place.
"""

import click

from context_envelope.config import EnvelopeConfig, get_config


def get_cli_config(ctx: click.Context) -> EnvelopeConfig:
    """Config stored by the root group, or the global config when absent."""
    if ctx.obj and "config" in ctx.obj:
        return ctx.obj["config"]
    return get_config()


def register_all_commands(cli: click.Group) -> None:
    """Register all command groups with the CLI.

    Command groups are imported lazily to avoid circular imports.

    Args:
        cli: The main Click group to register commands with.
    """
    from context_envelope.cli.commands import anchor, capabilities, envelope, messages

    cli.add_command(anchor.anchor)
    cli.add_command(envelope.envelope)
    cli.add_command(capabilities.capabilities)
    cli.add_command(messages.messages)
