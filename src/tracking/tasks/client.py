"""Tasks client for handing jobs from ingress to the worker.

Backends, selected via TASKS_BACKEND env var:
- inline (default): runs a local handler in-process (APP_ROLE=all, dev);
  tests can ask it to record jobs instead
- http: POSTs jobs straight to the worker
- cloud_tasks: creates Google Cloud Tasks; the queue owns retries
  (exponential backoff, bounded attempts) and dispatch concurrency
"""

from __future__ import annotations

import os
from collections import OrderedDict
from typing import Callable

from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context
from tracking.tasks.contracts import TRACK_EVENT_PATH, JobEnvelope

logger = get_logger(__name__)

JobHandler = Callable[[JobEnvelope], object]

BACKENDS = ("inline", "http", "cloud_tasks")

# Inline dedupe remembers this many recent task_ids
SEEN_IDS_LIMIT = 10_000


class TasksClient:
    """Enqueue jobs on the configured backend.

    The inline backend is idempotent by recent task_id (same task_id = no-op);
    http and cloud_tasks leave dedupe to the transport.
    """

    def __init__(
        self,
        backend: str | None = None,
        handler: JobHandler | None = None,
        record_jobs: bool = False,
    ) -> None:
        self._backend = backend or os.environ.get("TASKS_BACKEND", "inline")
        if self._backend not in BACKENDS:
            raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")
        self._handler = handler
        self._record_jobs = record_jobs
        self._seen_ids: OrderedDict[str, None] = OrderedDict()
        self._jobs: list[JobEnvelope] = []

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def runs_jobs(self) -> bool:
        """False for an inline client that neither handles nor records jobs."""
        return self._backend != "inline" or self._handler is not None or self._record_jobs

    def enqueue(
        self,
        envelope: JobEnvelope,
        url_path: str = TRACK_EVENT_PATH,
        correlation_id: str | None = None,
    ) -> bool:
        """Enqueue a job.

        Args:
            envelope: Job to deliver.
            url_path: Worker endpoint path.
            correlation_id: Optional correlation ID for tracing.

        Returns:
            True if the job was accepted (or deduped by the transport),
            False if the inline backend recently saw task_id or the http
            backend failed to deliver.

        Raises:
            RuntimeError: cloud_tasks backend is missing configuration.
        """
        if self._backend == "inline":
            return self._enqueue_inline(envelope)

        if self._backend == "http":
            from tracking.tasks.http_backend import enqueue_http

            return enqueue_http(envelope, url_path, correlation_id)

        from tracking.tasks.cloud_tasks_backend import enqueue_cloud_task

        return enqueue_cloud_task(envelope, url_path, correlation_id)

    def _enqueue_inline(self, envelope: JobEnvelope) -> bool:
        if envelope.task_id in self._seen_ids:
            return False
        self._seen_ids[envelope.task_id] = None
        while len(self._seen_ids) > SEEN_IDS_LIMIT:
            self._seen_ids.popitem(last=False)

        if self._record_jobs:
            self._jobs.append(envelope)

        if self._handler is not None:
            try:
                self._handler(envelope)
            except Exception as e:
                # Accepted jobs fail asynchronously; ingress never sees it
                logger.exception(
                    "inline job failed",
                    extra={
                        "extra_fields": safe_log_context(
                            task_id=envelope.task_id, error_type=type(e).__name__
                        )
                    },
                )
        return True

    def get_jobs(self) -> list[JobEnvelope]:
        """Jobs recorded by the inline backend (record_jobs=True, tests)."""
        return list(self._jobs)

    def clear(self) -> None:
        """Forget recorded jobs and task_ids (useful for testing)."""
        self._seen_ids.clear()
        self._jobs.clear()
