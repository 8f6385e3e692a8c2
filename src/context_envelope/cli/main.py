"""context-envelope CLI entry point.

JSON-only output for scripts and pipelines.
"""

from typing import Optional

import click

from context_envelope.cli.registry import register_all_commands
from context_envelope.config import EnvelopeConfig, set_config
from context_envelope.core.context import generate_correlation_id, sync_request_context


@click.group()
@click.option(
    "--config",
    "config_file",
    envvar="CONTEXT_ENVELOPE_CONFIG_FILE",
    type=click.Path(exists=False, dir_okay=False),
    help="Path to a context-envelope TOML config file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str], log_level: Optional[str]) -> None:
    """context-envelope - token-budgeted, multi-modal context for LLM requests.

    All commands output JSON; logs go to stderr.
    """
    config = EnvelopeConfig.from_env(config_file)
    if log_level:
        config.log_level = log_level.upper()
    config.setup_logging()
    set_config(config)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.with_resource(sync_request_context(correlation_id=generate_correlation_id("cli")))


# Register all command groups
register_all_commands(cli)


if __name__ == "__main__":
    cli()
