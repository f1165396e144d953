"""Correlation and job context for log tracing.

Context variables survive across the threadpool hop FastAPI makes for sync
handlers, so a job's log lines carry its ids without passing them around.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
job_id_var: ContextVar[str] = ContextVar("job_id", default="")
event_id_var: ContextVar[str] = ContextVar("event_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"
TASK_ID_HEADER = "X-Task-Id"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)


def get_job_id() -> str:
    return job_id_var.get()


def get_event_id() -> str:
    return event_id_var.get()


def bind_event_id(event_id: str) -> Token[str]:
    """Attach the resolved event_id to the current job context."""
    return event_id_var.set(event_id)


@contextmanager
def job_context(job_id: str, correlation_id: str | None = None) -> Iterator[None]:
    """Scope job_id (and optionally correlation_id) for one job execution.

    event_id is reset on exit as well, since the pipeline binds it midway.
    """
    job_token = job_id_var.set(job_id)
    event_token = event_id_var.set("")
    cid_token = correlation_id_var.set(correlation_id) if correlation_id else None
    try:
        yield
    finally:
        if cid_token is not None:
            correlation_id_var.reset(cid_token)
        event_id_var.reset(event_token)
        job_id_var.reset(job_token)
