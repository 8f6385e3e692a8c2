"""Request-scoped values for correlating envelope assembly logs.

A CLI invocation (or a library caller) opens one request context; commands
that shape output for a particular model tag it with ``target_model``. The
values live in contextvars so concurrent requests never see each other's ids.

Usage:
    from context_envelope.core.context import sync_request_context, target_model

    with sync_request_context() as correlation_id:
        with target_model("gpt-4o"):
            ...
"""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
model_var: ContextVar[str] = ContextVar("model", default="")
start_time_var: ContextVar[float] = ContextVar("start_time", default=0.0)


def generate_correlation_id(prefix: str = "env") -> str:
    """Return ``{prefix}_`` followed by 12 random hex characters."""
    return f"{prefix}_{secrets.token_hex(6)}"


@contextmanager
def sync_request_context(
    *,
    correlation_id: Optional[str] = None,
    model: Optional[str] = None,
) -> Generator[str, None, None]:
    """Open a request context for the duration of a with block.

    Args:
        correlation_id: Request ID (auto-generated if None)
        model: Target model name, when already known

    Yields:
        The active correlation id
    """
    corr_id = correlation_id or generate_correlation_id()

    token_corr = correlation_id_var.set(corr_id)
    token_model = model_var.set(model or "")
    token_start = start_time_var.set(time.time())
    try:
        yield corr_id
    finally:
        correlation_id_var.reset(token_corr)
        model_var.reset(token_model)
        start_time_var.reset(token_start)


@contextmanager
def target_model(model: str) -> Generator[None, None, None]:
    """Tag the active request with the model it is being shaped for."""
    token = model_var.set(model)
    try:
        yield
    finally:
        model_var.reset(token)


def get_correlation_id() -> str:
    return correlation_id_var.get()


def get_model() -> str:
    return model_var.get()


def get_start_time() -> float:
    """Request start as a Unix timestamp, 0.0 outside a request."""
    return start_time_var.get()
