"""HTTP backend for tasks - sends jobs to the worker via HTTP POST.

Used in local/staging environments where ingress and worker run as separate
containers on the same network. There is no retry here: a failed POST is
reported to ingress, which answers 500 to its caller.
"""

import os

import requests
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context
from tracking.tasks.contracts import JobEnvelope

logger = get_logger(__name__)

# Must match task_auth.LOCAL_DEV_AUDIENCE
LOCAL_DEV_AUDIENCE = "tracking-tasks-local"


def _fetch_oidc_token(audience: str) -> str | None:
    """Fetch a GCP ID token for the given audience.

    Relies on the GCP metadata server (Cloud Run, GCE) or application
    default credentials.

    Returns:
        Signed ID token string, or None if fetching fails.
    """
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except Exception as e:
        logger.error(
            "failed to fetch OIDC ID token",
            extra={"extra_fields": safe_log_context(audience=audience, error_type=type(e).__name__)},
        )
        return None


def enqueue_http(
    envelope: JobEnvelope,
    url_path: str,
    correlation_id: str | None = None,
) -> bool:
    """POST a job to the worker.

    Args:
        envelope: Job to deliver.
        url_path: Worker endpoint path (e.g., "/tasks/events/track").
        correlation_id: Optional correlation ID for tracing.

    Returns:
        True if the worker answered 2xx, False otherwise.
    """
    worker_base_url = os.environ.get("WORKER_BASE_URL", "http://worker:8000")
    timeout = int(os.environ.get("TASKS_HTTP_TIMEOUT", "30"))

    url = f"{worker_base_url.rstrip('/')}{url_path}"
    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": envelope.task_id,
    }

    # Shared secret for local dev, real OIDC token elsewhere
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == LOCAL_DEV_AUDIENCE:
        secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        if secret:
            headers["X-Internal-Task-Secret"] = secret
    else:
        token = _fetch_oidc_token(os.environ.get("TASKS_OIDC_AUDIENCE") or worker_base_url)
        if not token:
            logger.error(
                "HTTP job enqueue aborted: OIDC token unavailable",
                extra={"extra_fields": safe_log_context(task_id=envelope.task_id)},
            )
            return False
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = requests.post(
            url,
            json=envelope.to_dict(),
            headers=headers,
            timeout=timeout,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(
            "HTTP job enqueue failed",
            extra={
                "extra_fields": safe_log_context(
                    task_id=envelope.task_id,
                    url_path=url_path,
                    error_type=type(e).__name__,
                )
            },
        )
        return False

    logger.info(
        "HTTP job enqueued",
        extra={"extra_fields": safe_log_context(task_id=envelope.task_id, url_path=url_path)},
    )
    return True
