"""Content-addressed source ids and location-qualified anchors.

A source id is ``src:`` plus the first 8 hex characters of a SHA-256 digest
over a canonical serialization of the source's url and content. An anchor is a
source id optionally followed by one location::

    src:9f3a7b2c            whole source
    src:9f3a7b2c#p=12       PDF page 12
    src:1ab2cd3e#sec=H2.3   section path
    src:5cd6ef01#msg=5      message 5 of a chat log
    src:5cd6ef01#r=0,0,640,480  rectangular region x,y,w,h

Location kinds this module does not know still parse, with the kind kept as an
opaque string, so anchors written by newer code never break older readers.

Usage:
    from context_envelope.core.envelope.anchors import (
        compute_source_id,
        create_anchor,
        parse_anchor,
        PageLocation,
    )

    source_id = compute_source_id(url="https://example.com", content="Hello")
    anchor = create_anchor(source_id, PageLocation(3))
    assert parse_anchor(anchor).source_id == source_id
"""

import hashlib
import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from context_envelope.core.envelope.models import (
    Anchor,
    AnchorLocation,
    ParsedAnchor,
    SourceId,
)

SOURCE_ID_PREFIX = "src:"
SOURCE_ID_HASH_LENGTH = 8

_SOURCE_ID_PATTERN = re.compile(r"^src:([0-9a-f]+)$")
_LOCATION_PATTERN = re.compile(r"^([^=]+)=(.+)$", re.DOTALL)

# anchor kind -> location type name
_KNOWN_KINDS = {
    "p": "page",
    "sec": "section",
    "msg": "message",
    "r": "region",
}


class MalformedAnchorError(ValueError):
    """Raised when a stored anchor or source id cannot be parsed."""

    def __init__(self, anchor: Any, reason: str):
        self.anchor = anchor
        self.reason = reason
        super().__init__(f"Malformed anchor {anchor!r}: {reason}")


# =============================================================================
# Source ID Generation
# =============================================================================


def _normalize_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if hasattr(content, "model_dump"):
        content = content.model_dump(mode="json")
    return json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)


def canonicalize_identity(url: Optional[str], content: Any) -> str:
    """Serialize a source identity into the exact string that gets hashed.

    Structured content is serialized with sorted keys, so dict ordering never
    changes the result.

    Args:
        url: Origin URL, or None
        content: Text or JSON-serializable structure

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        {"url": url or "", "content": _normalize_content(content)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_source_id(url: Optional[str] = None, content: Any = "") -> SourceId:
    """Compute the stable source id for a url/content pair.

    Args:
        url: Origin URL (missing is fine)
        content: Text or structured content (empty is fine)

    Returns:
        Source id such as ``src:9f3a7b2c``
    """
    canonical = canonicalize_identity(url, content)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{SOURCE_ID_PREFIX}{digest[:SOURCE_ID_HASH_LENGTH]}"


# =============================================================================
# Anchor Creation
# =============================================================================


@dataclass(frozen=True)
class PageLocation:
    page: int

    def format(self) -> str:
        return f"p={self.page}"


@dataclass(frozen=True)
class SectionLocation:
    path: str

    def format(self) -> str:
        return f"sec={self.path}"


@dataclass(frozen=True)
class MessageLocation:
    index: int

    def format(self) -> str:
        return f"msg={self.index}"


@dataclass(frozen=True)
class RegionLocation:
    x: int
    y: int
    w: int
    h: int

    def format(self) -> str:
        return f"r={self.x},{self.y},{self.w},{self.h}"


Location = Union[PageLocation, SectionLocation, MessageLocation, RegionLocation]


def create_anchor(source_id: SourceId, location: Optional[Location] = None) -> Anchor:
    """Build an anchor for a source, optionally pointing inside it.

    Args:
        source_id: Source id to anchor
        location: Optional location; omitted yields the bare source id

    Returns:
        Anchor string
    """
    if location is None:
        return source_id
    return f"{source_id}#{location.format()}"


# =============================================================================
# Anchor Parsing
# =============================================================================


def _validate_source_id(source_id: str, anchor: str) -> None:
    match = _SOURCE_ID_PATTERN.match(source_id)
    if not match:
        raise MalformedAnchorError(anchor, 'expected "src:<lowercase hex>" source id')
    if len(match.group(1)) != SOURCE_ID_HASH_LENGTH:
        raise MalformedAnchorError(
            anchor,
            f"hash must be {SOURCE_ID_HASH_LENGTH} hex characters, got {len(match.group(1))}",
        )


def _parse_location(location: str, anchor: str) -> AnchorLocation:
    match = _LOCATION_PATTERN.match(location)
    if not match:
        raise MalformedAnchorError(anchor, f'location "{location}" is not kind=value')
    kind, value = match.group(1), match.group(2)
    return AnchorLocation(type=_KNOWN_KINDS.get(kind, kind), value=value)


def parse_anchor(anchor: str) -> ParsedAnchor:
    """Parse an anchor into its source id and optional location.

    Args:
        anchor: Anchor string

    Returns:
        ParsedAnchor

    Raises:
        MalformedAnchorError: If the prefix is not ``src:``, the hash is not
            exactly 8 hex characters, or the location after ``#`` is empty
            or lacks a ``kind=value`` form
    """
    if not isinstance(anchor, str) or not anchor.startswith(SOURCE_ID_PREFIX):
        raise MalformedAnchorError(anchor, f'must start with "{SOURCE_ID_PREFIX}"')

    source_part, sep, location_part = anchor.partition("#")
    _validate_source_id(source_part, anchor)

    if not sep:
        return ParsedAnchor(source_id=source_part)

    if not location_part:
        raise MalformedAnchorError(anchor, 'empty location after "#"')

    return ParsedAnchor(
        source_id=source_part,
        location=_parse_location(location_part, anchor),
        raw_location=location_part,
    )


def is_valid_source_id(value: Any) -> bool:
    """Return True if value is a well-formed source id. Never raises."""
    if not isinstance(value, str):
        return False
    try:
        _validate_source_id(value, value)
    except MalformedAnchorError:
        return False
    return True


def is_valid_anchor(value: Any) -> bool:
    """Return True if value parses as an anchor. Never raises."""
    try:
        parse_anchor(value)
    except MalformedAnchorError:
        return False
    return True


def get_source_id_from_anchor(anchor: Anchor) -> SourceId:
    """Drop the location of an anchor.

    Raises:
        MalformedAnchorError: If the anchor does not parse
    """
    return parse_anchor(anchor).source_id
