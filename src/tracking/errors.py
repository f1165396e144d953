"""Failure types surfaced by the tracking pipeline.

Enrichment failures never appear here: the geo client degrades them into a
``failed`` outcome. Persistence conflicts and forwarding skips are normal
outcomes, not exceptions.
"""


class TrackingError(Exception):
    """Base class for pipeline failures that end a job."""


class PersistenceError(TrackingError):
    """Storage failed for a reason other than an event_id conflict."""


class ForwardingError(TrackingError):
    """The Conversions API call failed (network error or non-2xx)."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MissingEventIdError(TrackingError, ValueError):
    """Raised under the strict id policy when a payload has no event_id."""
