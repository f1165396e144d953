#!/usr/bin/env python3
"""Create or update the Cloud Tasks queue that carries track_event jobs.

The queue holds the job-level policy the worker relies on:
- up to --max-attempts deliveries, exponential backoff starting at
  --min-backoff seconds, then the task is dropped
- at most --concurrency jobs dispatched to the worker at once

Usage:
    python scripts/ensure_queue.py --project my-project
"""

from __future__ import annotations

import argparse
import os
import sys

from google.api_core.exceptions import NotFound
from google.cloud import tasks_v2
from google.protobuf import duration_pb2, field_mask_pb2

DEFAULT_QUEUE = "tracking-events"


def build_queue(
    name: str,
    *,
    max_attempts: int = 3,
    min_backoff_seconds: int = 2,
    max_backoff_seconds: int = 300,
    concurrency: int = 5,
) -> tasks_v2.Queue:
    """Queue definition with retry and dispatch limits."""
    return tasks_v2.Queue(
        name=name,
        retry_config=tasks_v2.RetryConfig(
            max_attempts=max_attempts,
            min_backoff=duration_pb2.Duration(seconds=min_backoff_seconds),
            max_backoff=duration_pb2.Duration(seconds=max_backoff_seconds),
            max_doublings=16,
        ),
        rate_limits=tasks_v2.RateLimits(max_concurrent_dispatches=concurrency),
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--project",
        default=os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT_ID"),
    )
    parser.add_argument("--location", default=os.environ.get("GCP_LOCATION", "us-central1"))
    parser.add_argument("--queue", default=os.environ.get("GCP_TASKS_QUEUE", DEFAULT_QUEUE))
    parser.add_argument("--max-attempts", type=int, default=3)
    parser.add_argument("--min-backoff", type=int, default=2)
    parser.add_argument("--concurrency", type=int, default=5)
    args = parser.parse_args(argv)

    if not args.project:
        sys.stderr.write("Error: --project or GOOGLE_CLOUD_PROJECT required\n")
        return 1

    client = tasks_v2.CloudTasksClient()
    name = client.queue_path(args.project, args.location, args.queue)
    queue = build_queue(
        name,
        max_attempts=args.max_attempts,
        min_backoff_seconds=args.min_backoff,
        concurrency=args.concurrency,
    )

    try:
        client.update_queue(
            queue=queue,
            update_mask=field_mask_pb2.FieldMask(paths=["retry_config", "rate_limits"]),
        )
        sys.stdout.write(f"updated {name}\n")
    except NotFound:
        client.create_queue(parent=client.common_location_path(args.project, args.location), queue=queue)
        sys.stdout.write(f"created {name}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
