"""Anchor commands: parse, create and compute source ids."""

from pathlib import Path
from typing import Optional

import click

from context_envelope.cli.output import emit_error, emit_success
from context_envelope.core.envelope.anchors import (
    MalformedAnchorError,
    MessageLocation,
    PageLocation,
    RegionLocation,
    SectionLocation,
    compute_source_id,
    create_anchor,
    is_valid_source_id,
    parse_anchor,
)


@click.group("anchor")
def anchor() -> None:
    """Citation anchors and source ids."""
    pass


@anchor.command("parse")
@click.argument("value")
def anchor_parse_cmd(value: str) -> None:
    """Parse an anchor into its source id and location."""
    try:
        parsed = parse_anchor(value)
    except MalformedAnchorError as e:
        emit_error(
            str(e),
            "MALFORMED_ANCHOR",
            error_type="validation",
            remediation="Anchors look like src:1a2b3c4d or src:1a2b3c4d#p=3",
            details={"anchor": value, "reason": e.reason},
        )
    emit_success(parsed.model_dump(exclude_none=True))


@anchor.command("create")
@click.argument("source_id")
@click.option("--page", type=click.IntRange(min=1), help="1-indexed page number")
@click.option("--section", help="Section path, e.g. intro/background")
@click.option("--message", type=click.IntRange(min=0), help="Message index")
@click.option("--region", help="Region as x,y,w,h")
def anchor_create_cmd(
    source_id: str,
    page: Optional[int],
    section: Optional[str],
    message: Optional[int],
    region: Optional[str],
) -> None:
    """Create an anchor for a source id and optional location."""
    if not is_valid_source_id(source_id):
        emit_error(
            f"Invalid source id: {source_id}",
            "INVALID_SOURCE_ID",
            error_type="validation",
            remediation="Source ids are src: followed by 8 lowercase hex characters",
        )

    given = [opt for opt in (page, section, message, region) if opt is not None]
    if len(given) > 1:
        emit_error(
            "Only one of --page, --section, --message or --region may be given",
            "VALIDATION_ERROR",
            error_type="validation",
        )

    location = None
    if page is not None:
        location = PageLocation(page)
    elif section is not None:
        location = SectionLocation(section)
    elif message is not None:
        location = MessageLocation(message)
    elif region is not None:
        try:
            x, y, w, h = (int(v) for v in region.split(","))
        except ValueError:
            emit_error(
                f"Invalid region: {region}",
                "VALIDATION_ERROR",
                error_type="validation",
                remediation="Use four comma-separated integers: x,y,w,h",
            )
        location = RegionLocation(x, y, w, h)

    emit_success({"anchor": create_anchor(source_id, location)})


@anchor.command("source-id")
@click.option("--url", help="Source URL (part of the identity)")
@click.option("--content", "content", help="Content text")
@click.option(
    "--file",
    "content_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read content from a file",
)
def anchor_source_id_cmd(
    url: Optional[str], content: Optional[str], content_file: Optional[Path]
) -> None:
    """Compute the content-addressed source id for a url and content."""
    if content_file is not None:
        content = content_file.read_text(encoding="utf-8")
    emit_success({"source_id": compute_source_id(url=url, content=content or "")})
