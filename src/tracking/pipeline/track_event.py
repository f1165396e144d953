"""track_event job: resolve identity, enrich, persist, forward.

States:
    START -> IDENTITY_RESOLVED -> ENRICHED -> PERSISTED
          -> FORWARD_SKIPPED | FORWARD_SENT | FORWARD_FAILED

Geo failures degrade to empty geo data. A persistence error or a forwarding
error ends the job with an exception so the queue can retry it; a retry
re-runs every stage and the conflict no-op keeps storage at one row. There
are no retry loops in here.
"""

from __future__ import annotations

from typing import Any, Protocol

from tracking.conversions.meta_capi import MetaConversionsClient
from tracking.domain.identity import first_of, resolve_event_id, resolve_event_time
from tracking.domain.models import (
    EnrichedEvent,
    ForwardResult,
    GeoLookupResult,
    PipelineResult,
    PipelineState,
    RawEvent,
    StepOutcome,
)
from tracking.errors import ForwardingError, PersistenceError
from tracking.geo.apiip import ApiipClient
from tracking.infra.db import Database
from tracking.infra.repositories.events_repository import EventStore
from tracking.infra.time import unix_now
from tracking.observability.correlation import bind_event_id
from tracking.observability.logging import get_logger
from tracking.observability.redaction import present_fields, safe_log_context
from tracking.settings import Settings

logger = get_logger(__name__)

TASK_NAME = "track_event"

_IDENTITY_FIELDS = ("fbp", "fbc", "external_id", "email", "phone", "lead_data", "props")


class GeoEnricher(Protocol):
    def enrich(self, ip: str | None) -> StepOutcome[GeoLookupResult]: ...


class EventPersister(Protocol):
    def persist(self, event: EnrichedEvent) -> dict[str, Any] | None: ...


class ConversionForwarder(Protocol):
    def forward(
        self,
        raw: RawEvent,
        enriched: EnrichedEvent,
        event_id: str,
        event_time: int,
        now: int | None = None,
    ) -> ForwardResult: ...


def _transition(state: PipelineState, **fields: Any) -> None:
    logger.info(
        "track_event state",
        extra={"extra_fields": {"state": state, **safe_log_context(**fields)}},
    )


class TrackEventPipeline:
    """Per-job control flow over injected collaborators.

    Collaborators are shared between concurrent jobs; the pipeline itself
    keeps no per-job state on the instance.
    """

    def __init__(
        self,
        geo: GeoEnricher,
        store: EventPersister,
        forwarder: ConversionForwarder,
        *,
        event_id_policy: str = "synthesize",
    ) -> None:
        self._geo = geo
        self._store = store
        self._forwarder = forwarder
        self._event_id_policy = event_id_policy

    def run(self, payload: RawEvent, now: int | None = None) -> PipelineResult:
        """Process one job payload.

        Args:
            payload: Event record from ingress. Read only.
            now: Current unix time (tests); defaults to the wall clock.

        Returns:
            PipelineResult for FORWARD_SENT / FORWARD_SKIPPED.

        Raises:
            MissingEventIdError: Strict id policy and no event_id.
            PersistenceError: Storage failed; nothing was forwarded.
            ForwardingError: The event is stored but the send failed.
        """
        now = unix_now() if now is None else now
        _transition(
            "START",
            event_name=first_of(payload, "name", "event_name"),
            present=",".join(present_fields(payload, _IDENTITY_FIELDS)),
        )

        event_time = resolve_event_time(payload, now=now)
        event_id = resolve_event_id(payload, event_time, policy=self._event_id_policy)
        bind_event_id(event_id)
        _transition("IDENTITY_RESOLVED", event_time=event_time)

        client_ip = first_of(payload, "clientIpAddress", "client_ip_address")
        geo_outcome = self._geo.enrich(client_ip)
        if geo_outcome.status == "ok" and geo_outcome.value is not None:
            geo = geo_outcome.value
        else:
            geo = GeoLookupResult()
        enriched = EnrichedEvent(raw=payload, event_id=event_id, event_time=event_time, geo=geo)
        _transition("ENRICHED", geo=geo_outcome.status, geo_reason=geo_outcome.reason)

        try:
            row = self._store.persist(enriched)
        except PersistenceError:
            logger.exception("track_event halted: persistence failed")
            raise
        _transition("PERSISTED", inserted=row is not None)

        try:
            forward = self._forwarder.forward(payload, enriched, event_id, event_time, now=now)
        except ForwardingError as e:
            _transition("FORWARD_FAILED", status_code=e.status_code)
            raise

        state: PipelineState = "FORWARD_SENT" if forward.status == "sent" else "FORWARD_SKIPPED"
        _transition(state, reason=forward.reason)

        return PipelineResult(
            event_id=event_id,
            event_time=event_time,
            state=state,
            inserted=row is not None,
            geo_status=geo_outcome.status,
            forward=forward,
        )


class PipelineResources:
    """Process-wide handles behind a TrackEventPipeline.

    Created at startup, closed at shutdown (see tracking.api.factory).
    """

    def __init__(
        self,
        db: Database,
        geo: ApiipClient,
        forwarder: MetaConversionsClient,
        pipeline: TrackEventPipeline,
    ) -> None:
        self.db = db
        self.geo = geo
        self.forwarder = forwarder
        self.pipeline = pipeline

    def open(self) -> None:
        self.db.open()
        logger.info(
            "pipeline resources opened",
            extra={
                "extra_fields": {
                    "geo_enabled": self.geo.configured,
                    "forwarding_enabled": self.forwarder.configured,
                }
            },
        )

    def close(self) -> None:
        self.geo.close()
        self.forwarder.close()
        self.db.close()


def build_pipeline(settings: Settings) -> PipelineResources:
    """Construct (but do not open) the pipeline and its handles."""
    db = Database(
        settings.database_url,
        password=settings.db_password,
        minconn=settings.db_pool_min,
        maxconn=settings.db_pool_max,
        connect_timeout=settings.db_connect_timeout,
        statement_timeout_ms=settings.db_statement_timeout_ms,
    )
    geo = ApiipClient(settings.apiip_access_key, timeout=settings.geo_http_timeout)
    forwarder = MetaConversionsClient(
        settings.meta_pixel_id,
        settings.meta_access_token,
        test_event_code=settings.meta_test_event_code,
        api_version=settings.meta_graph_api_version,
        timeout=settings.meta_http_timeout,
    )
    pipeline = TrackEventPipeline(
        geo,
        EventStore(db),
        forwarder,
        event_id_policy=settings.event_id_policy,
    )
    return PipelineResources(db, geo, forwarder, pipeline)
