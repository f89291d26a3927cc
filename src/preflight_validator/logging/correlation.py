"""Run and probe correlation context for log records."""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="")

domain_context_var: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "domain_context", default={}
)


def get_run_id() -> str:
    """Get the current run ID from the context."""
    return run_id_var.get("")


def generate_run_id() -> str:
    """Generate a new run ID."""
    return uuid.uuid4().hex[:12]


def get_domain_context() -> dict[str, Any]:
    return domain_context_var.get({})


@contextmanager
def run_context(run_id: str | None = None, **domain_fields: Any) -> Iterator[str]:
    """Set the run ID (and optional domain fields) for the duration of a run.

    Yields:
        The active run ID.
    """
    active_run_id = run_id or generate_run_id()
    token_run = run_id_var.set(active_run_id)
    token_domain = domain_context_var.set({**get_domain_context(), **domain_fields})
    try:
        yield active_run_id
    finally:
        run_id_var.reset(token_run)
        domain_context_var.reset(token_domain)


@contextmanager
def probe_context(probe_id: str, **additional_fields: Any) -> Iterator[None]:
    """Tag log records emitted while a probe executes."""
    token = domain_context_var.set(
        {**get_domain_context(), "probe_id": probe_id, **additional_fields}
    )
    try:
        yield
    finally:
        domain_context_var.reset(token)


def get_log_context() -> dict[str, Any]:
    """Get the complete log context including run ID and domain fields."""
    context: dict[str, Any] = {}

    run_id = get_run_id()
    if run_id:
        context["run_id"] = run_id

    domain_context = get_domain_context()
    if domain_context:
        context.update(domain_context)

    return context
