"""Worker route: consume one track_event job.

Response codes drive the queue's retry policy:
- 200: stored and sent, or stored and forwarding skipped
- 500: persistence or forwarding failed; the queue retries the whole job
- 4xx: job can never succeed as delivered (bad envelope, strict id policy).
  Cloud Tasks retries every non-2xx, so these spend the queue's max_attempts
  (scripts/ensure_queue.py) before the task is dropped
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request
from fastapi.responses import JSONResponse

from tracking.api.task_auth import verify_task_auth
from tracking.errors import ForwardingError, MissingEventIdError, PersistenceError
from tracking.observability.correlation import (
    CORRELATION_ID_HEADER,
    TASK_ID_HEADER,
    get_correlation_id,
    job_context,
)
from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context
from tracking.pipeline.track_event import TrackEventPipeline
from tracking.tasks.contracts import JobEnvelope

router = APIRouter(prefix="/tasks/events", tags=["tasks"])

logger = get_logger(__name__)


def get_pipeline(request: Request) -> TrackEventPipeline:
    resources = getattr(request.app.state, "resources", None)
    if resources is None:
        raise RuntimeError("pipeline resources not initialized")
    return resources.pipeline


def run_job(pipeline: TrackEventPipeline, envelope: JobEnvelope) -> JSONResponse:
    """Run one job and map its outcome to a queue-facing response."""
    try:
        result = pipeline.run(envelope.payload)
    except MissingEventIdError:
        logger.warning("track_event rejected: event_id required")
        return JSONResponse(status_code=422, content={"ok": False, "error": "event_id_required"})
    except PersistenceError:
        return JSONResponse(status_code=500, content={"ok": False, "error": "persistence_failed"})
    except ForwardingError as e:
        logger.error(
            "track_event failed: forwarding error",
            extra={"extra_fields": safe_log_context(status_code=e.status_code)},
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "forwarding_failed"})

    return JSONResponse(content={"ok": True, **result.to_dict()})


@router.post("/track")
def track(request: Request, body: dict[str, Any] = Body(...)) -> JSONResponse:
    """Process a queued event.

    Runs in FastAPI's threadpool: the DB write and both HTTP calls block a
    worker thread, never the event loop.
    """
    if not verify_task_auth(request):
        logger.warning("task auth failed")
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        envelope = JobEnvelope.from_dict(body)
    except ValueError as e:
        logger.warning(
            "invalid job envelope",
            extra={"extra_fields": safe_log_context(error=str(e))},
        )
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid_envelope"})

    job_id = envelope.task_id or request.headers.get(TASK_ID_HEADER, "")
    retry_count = request.headers.get("X-CloudTasks-TaskRetryCount")
    correlation_id = request.headers.get(CORRELATION_ID_HEADER) or get_correlation_id()

    with job_context(job_id, correlation_id):
        logger.info(
            "track_event job received",
            extra={"extra_fields": safe_log_context(retry_count=retry_count)},
        )
        return run_job(get_pipeline(request), envelope)
