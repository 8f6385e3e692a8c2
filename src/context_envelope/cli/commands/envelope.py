"""Envelope commands: build (and budget) an envelope from a JSON file."""

import json
from pathlib import Path
from typing import Any, Optional

import click
from pydantic import TypeAdapter, ValidationError

from context_envelope.cli.output import emit_error, emit_success
from context_envelope.cli.registry import get_cli_config
from context_envelope.core.envelope.builder import (
    build_context_envelope,
    get_envelope_stats,
    render_envelope_as_text,
)
from context_envelope.core.envelope.context_budget import (
    BudgetConfigurationError,
    BudgetOptions,
    apply_token_budget,
)
from context_envelope.core.envelope.models import Source
from context_envelope.core.envelope.sources import ExtractedContent, build_sources

_SOURCES = TypeAdapter(list[Source])
_EXTRACTED = TypeAdapter(list[ExtractedContent])


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        emit_error(
            f"Could not read {path}: {e}",
            "INVALID_INPUT",
            error_type="validation",
        )


@click.group("envelope")
def envelope() -> None:
    """Build and budget context envelopes."""
    pass


@envelope.command("build")
@click.argument("sources_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--task", default="", help="The user's task or query")
@click.option(
    "--extracted",
    is_flag=True,
    help="Input is raw extracted content (type html|pdf|image|text) instead of sources",
)
@click.option("--max-tokens", type=int, help="Token ceiling (0 = no limit; default from config)")
@click.option("--min-chunks", type=int, help="Chunks to keep in stages 1-2 (default from config)")
@click.option("--task-reserve", type=int, help="Extra fixed-overhead tokens (default from config)")
@click.option("--no-attachments", is_flag=True, help="Leave binary attachments out")
@click.option("--text", "as_text", is_flag=True, help="Emit the rendered prompt text")
@click.pass_context
def envelope_build_cmd(
    ctx: click.Context,
    sources_file: Path,
    task: str,
    extracted: bool,
    max_tokens: Optional[int],
    min_chunks: Optional[int],
    task_reserve: Optional[int],
    no_attachments: bool,
    as_text: bool,
) -> None:
    """Build an envelope from SOURCES_FILE (a JSON list) and apply the budget."""
    raw = _load_json(sources_file)
    try:
        if extracted:
            sources = build_sources(_EXTRACTED.validate_python(raw))
        else:
            sources = _SOURCES.validate_python(raw)
    except ValidationError as e:
        emit_error(
            f"Invalid sources in {sources_file}",
            "VALIDATION_ERROR",
            error_type="validation",
            details={"errors": json.loads(e.json())},
        )

    defaults = BudgetOptions.from_settings(get_cli_config(ctx).budget)
    options = BudgetOptions(
        max_tokens=defaults.max_tokens if max_tokens is None else max_tokens,
        min_chunks=defaults.min_chunks if min_chunks is None else min_chunks,
        task_reserve=defaults.task_reserve if task_reserve is None else task_reserve,
    )

    built = build_context_envelope(sources, task, include_attachments=not no_attachments)
    try:
        budgeted = apply_token_budget(
            built,
            options.max_tokens,
            min_chunks=options.min_chunks,
            task_reserve=options.task_reserve,
        )
    except BudgetConfigurationError as e:
        emit_error(str(e), "INVALID_BUDGET", error_type="validation")

    stats = get_envelope_stats(budgeted).to_dict()
    if as_text:
        emit_success({"text": render_envelope_as_text(budgeted), "stats": stats})
    else:
        emit_success({"envelope": budgeted.model_dump(mode="json"), "stats": stats})
