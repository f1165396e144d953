"""Ingress route: accept an event and enqueue a track_event job.

The caller only learns whether the event was accepted; enrichment,
persistence and forwarding happen in the worker.
"""

from __future__ import annotations

import hmac
import json
import uuid
from typing import Any

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tracking.api.schemas import EventIn, transform_fillout_payload
from tracking.infra.time import unix_now
from tracking.observability.correlation import get_correlation_id
from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context
from tracking.settings import Settings
from tracking.tasks.client import TasksClient
from tracking.tasks.contracts import TRACK_EVENT_PATH, JobEnvelope

router = APIRouter(prefix="/api", tags=["ingress"])

logger = get_logger(__name__)


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error, **extra})


def _is_authorized(request: Request, settings: Settings) -> bool:
    if not settings.api_key:
        logger.warning("API_KEY not configured - authentication disabled")
        return True
    provided = request.headers.get("x-api-key", "")
    return bool(provided) and hmac.compare_digest(provided, settings.api_key)


def client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else None


def task_id_for(event: dict[str, Any]) -> str:
    """Explicit event ids dedupe at the transport; others get a fresh id."""
    if event.get("event_id"):
        return f"evt-{event['event_id']}"
    return f"job-{uuid.uuid4()}"


@router.get("/health")
def api_health() -> dict:
    return {"ok": True}


@router.post("/event")
async def track_event(request: Request) -> JSONResponse:
    """Validate, attach transport metadata and enqueue."""
    settings: Settings = request.app.state.settings
    tasks_client: TasksClient = request.app.state.tasks_client
    correlation_id = get_correlation_id()

    if not _is_authorized(request, settings):
        return _error(401, "Unauthorized - Invalid API Key")

    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > settings.max_body_bytes:
        return _error(413, "Payload too large")
    raw_body = await request.body()
    if len(raw_body) > settings.max_body_bytes:
        return _error(413, "Payload too large")

    try:
        body = json.loads(raw_body)
    except ValueError:
        return _error(400, "Validation failed", details=["body must be valid JSON"])
    if not isinstance(body, dict):
        return _error(400, "Validation failed", details=["body must be an object"])

    body = transform_fillout_payload(body)

    try:
        event = EventIn.model_validate(body)
    except ValidationError as e:
        details = [
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
            for err in e.errors()
        ]
        logger.warning(
            "event validation failed",
            extra={"extra_fields": safe_log_context(error_count=len(details))},
        )
        return _error(400, "Validation failed", details=details)

    if settings.event_id_policy == "require" and not event.event_id:
        return _error(400, "Validation failed", details=["event_id: required"])

    payload = event.model_dump(exclude_none=True)
    payload["userAgent"] = request.headers.get("user-agent") or event.userAgent
    payload["clientIpAddress"] = client_ip(request) or event.clientIpAddress
    payload = {k: v for k, v in payload.items() if v is not None}

    envelope = JobEnvelope(task_id=task_id_for(payload), payload=payload, enqueued_at=unix_now())

    try:
        accepted = await run_in_threadpool(
            tasks_client.enqueue, envelope, TRACK_EVENT_PATH, correlation_id
        )
    except Exception:
        logger.exception(
            "enqueue error",
            extra={"extra_fields": safe_log_context(task_id=envelope.task_id)},
        )
        return _error(500, "Internal server error")

    if not accepted and tasks_client.backend == "http":
        return _error(500, "Internal server error")

    logger.info(
        "event enqueued",
        extra={
            "extra_fields": safe_log_context(
                task_id=envelope.task_id,
                event_name=event.name or event.event_name,
                deduped=not accepted,
            )
        },
    )
    return JSONResponse(content={"ok": True})
