"""Trace context for correlating the log lines of one quote resolution."""

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

_trace_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "quote_trace_id", default=None
)


def get_current_trace() -> Optional[str]:
    """Return the current trace ID, or None outside a traced resolution."""
    return _trace_id_context.get()


@contextmanager
def resolution_trace(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Run a block under a trace ID, restoring the previous one afterwards.

    An already active trace is reused so nested resolutions (an expression
    resolving several symbols) share a single ID. Otherwise a UUID4 is
    generated unless `trace_id` is given.

    Args:
        trace_id: Explicit trace ID to use instead of generating one
    """
    current = _trace_id_context.get()
    if trace_id is None and current is not None:
        yield current
        return

    token = _trace_id_context.set(trace_id or str(uuid.uuid4()))
    try:
        yield _trace_id_context.get()
    finally:
        _trace_id_context.reset(token)
