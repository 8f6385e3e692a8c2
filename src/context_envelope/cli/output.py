"""JSON output helpers for the context-envelope CLI.

Every command writes exactly one JSON document: success envelopes go to
stdout, error envelopes to stderr with exit code 1. Both share the
``{success, data, error, meta}`` shape so scripts can parse either.
"""

import json
import sys
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Mapping, NoReturn, Optional, Sequence

from context_envelope.core.context import get_correlation_id

RESPONSE_VERSION = "response-v1"


@dataclass
class CLIResponse:
    """Response envelope emitted by every command.

    Attributes:
        success: Whether the command completed
        data: Command-specific payload
        error: Error message when success is False
        meta: Version, request id and warnings
    """

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=lambda: {"version": RESPONSE_VERSION})


def _build_meta(warnings: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"version": RESPONSE_VERSION}
    request_id = get_correlation_id()
    if request_id:
        meta["request_id"] = request_id
    if warnings:
        meta["warnings"] = list(warnings)
    return meta


def emit(data: Any) -> None:
    """Emit minified JSON to stdout."""
    print(json.dumps(data, separators=(",", ":"), default=str))


def emit_success(data: Any, *, warnings: Optional[Sequence[str]] = None) -> None:
    """Emit a success envelope; non-dict data is wrapped under ``result``."""
    payload = dict(data) if isinstance(data, Mapping) else {"result": data}
    emit(asdict(CLIResponse(success=True, data=payload, meta=_build_meta(warnings))))


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> NoReturn:
    """Emit an error envelope to stderr and exit with code 1.

    Args:
        message: Human-readable error description
        code: Error code in SCREAMING_SNAKE_CASE (e.g., MALFORMED_ANCHOR)
        error_type: Error category (validation, not_found, provider, internal)
        remediation: Actionable guidance for resolving the error
        details: Optional additional error context

    Raises:
        SystemExit: Always exits with code 1
    """
    payload: Dict[str, Any] = {"error_code": code, "error_type": error_type}
    if remediation is not None:
        payload["remediation"] = remediation
    if details:
        payload["details"] = dict(details)

    response = CLIResponse(success=False, data=payload, error=message, meta=_build_meta())
    print(json.dumps(asdict(response), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)
