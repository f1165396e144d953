"""Cloud Tasks backend for GCP deployment.

The queue (GCP_TASKS_QUEUE) carries the job-level policy: retry with
exponential backoff up to max_attempts, then drop; max_concurrent_dispatches
bounds how many jobs the worker processes at once. See scripts/ensure_queue.py.
"""

import json
import os

from google.api_core.exceptions import AlreadyExists
from google.cloud import tasks_v2

from tracking.infra.hashing import hash_value
from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context
from tracking.tasks.contracts import JobEnvelope

logger = get_logger(__name__)

DEFAULT_QUEUE = "tracking-events"


def task_name_for(parent: str, task_id: str) -> str:
    """Cloud Tasks name for task_id; same name = deduplicated task.

    Task names allow only [A-Za-z0-9_-], so the id is hashed rather than
    escaped: distinct task_ids always get distinct names.
    """
    return f"{parent}/tasks/task-{hash_value(task_id)}"


def enqueue_cloud_task(
    envelope: JobEnvelope,
    url_path: str,
    correlation_id: str | None = None,
) -> bool:
    """Create a Cloud Task that POSTs the job to the worker.

    Returns:
        True if the task was created or already existed (dedupe).

    Raises:
        RuntimeError: If required env vars are not set.
        google.api_core.exceptions.GoogleAPICallError: On other API errors.
    """
    project = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT_ID")
    location = os.environ.get("GCP_LOCATION", "us-central1")
    queue = os.environ.get("GCP_TASKS_QUEUE", DEFAULT_QUEUE)
    worker_url = os.environ.get("WORKER_BASE_URL")
    oidc_service_account = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    oidc_audience = os.environ.get("TASKS_OIDC_AUDIENCE")

    if not project:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT or GCP_PROJECT_ID required")
    if not worker_url:
        raise RuntimeError("WORKER_BASE_URL required for Cloud Tasks")
    if not oidc_service_account:
        raise RuntimeError("TASKS_OIDC_SERVICE_ACCOUNT required for Cloud Tasks")
    if not oidc_audience:
        raise RuntimeError("TASKS_OIDC_AUDIENCE required for Cloud Tasks")

    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(project, location, queue)

    headers = {"Content-Type": "application/json", "X-Task-Id": envelope.task_id}
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id

    task = {
        "name": task_name_for(parent, envelope.task_id),
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": f"{worker_url.rstrip('/')}{url_path}",
            "headers": headers,
            "body": json.dumps(envelope.to_dict(), default=str).encode(),
            "oidc_token": {
                "service_account_email": oidc_service_account,
                "audience": oidc_audience,
            },
        },
    }

    try:
        response = client.create_task(parent=parent, task=task)
    except AlreadyExists:
        logger.info(
            "cloud task already exists (dedupe)",
            extra={"extra_fields": safe_log_context(task_id=envelope.task_id)},
        )
        return True

    logger.info(
        "cloud task enqueued",
        extra={"extra_fields": {"task_name": response.name, "url_path": url_path}},
    )
    return True
