"""Events repository - duplicate-safe persistence of enriched events.

Uses raw SQL with psycopg2 (no ORM). The events.event_id primary key is the
only idempotency guard: concurrent deliveries of the same event race on the
insert and exactly one of them gets a row back.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

import psycopg2
from psycopg2.extensions import cursor as PgCursor
from psycopg2.extras import Json, RealDictCursor

from tracking.domain.identity import first_of
from tracking.domain.models import EnrichedEvent
from tracking.errors import PersistenceError
from tracking.infra.db import Database
from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_CURRENCY = "BRL"
UNKNOWN_EVENT_NAME = "unknown"


def _value_or_none(*keys: str) -> Callable[[Mapping[str, Any]], Any]:
    return lambda e: first_of(e, *keys)


def _nullable(key: str) -> Callable[[Mapping[str, Any]], Any]:
    """Keep 0/0.0 (coordinates, asn); only None becomes NULL."""
    return lambda e: e.get(key)


def _flag(key: str) -> Callable[[Mapping[str, Any]], Any]:
    return lambda e: bool(e.get(key))


def _jsonb(key: str) -> Callable[[Mapping[str, Any]], Any]:
    return lambda e: Json(e[key]) if e.get(key) else None


def _default(value: Any, *keys: str) -> Callable[[Mapping[str, Any]], Any]:
    return lambda e: first_of(e, *keys) or value


# Column -> how its value is read from the enriched record, in table order.
EVENT_COLUMNS: dict[str, Callable[[Mapping[str, Any]], Any]] = {
    "event_id": _value_or_none("event_id", "eventId"),
    "event_name": _default(UNKNOWN_EVENT_NAME, "event_name", "eventName", "name"),
    "event_time": _nullable("event_time"),
    "fbp": _value_or_none("fbp"),
    "fbc": _value_or_none("fbc"),
    "external_id": _value_or_none("external_id", "externalId"),
    "value": lambda e: e.get("value") if e.get("value") is not None else 0,
    "currency": _default(DEFAULT_CURRENCY, "currency"),
    "content_name": _value_or_none("content_name", "contentName"),
    "content_category": _value_or_none("content_category", "contentCategory"),
    "product_name": _value_or_none("product_name", "productName"),
    "user_agent": _value_or_none("user_agent", "userAgent"),
    "client_ip_address": _value_or_none("client_ip_address", "clientIpAddress"),
    "email": _value_or_none("email"),
    "phone": _value_or_none("phone"),
    "city": _value_or_none("city"),
    "state": _value_or_none("state"),
    "zip": _value_or_none("zip"),
    "country": _value_or_none("country"),
    "latitude": _nullable("latitude"),
    "longitude": _nullable("longitude"),
    "continent_code": _value_or_none("continent_code"),
    "continent_name": _value_or_none("continent_name"),
    "country_name": _value_or_none("country_name"),
    "region_name": _value_or_none("region_name"),
    "timezone": _value_or_none("timezone"),
    "timezone_offset": _value_or_none("timezone_offset"),
    "currency_code": _value_or_none("currency_code"),
    "currency_symbol": _value_or_none("currency_symbol"),
    "language": _value_or_none("language"),
    "isp": _value_or_none("isp"),
    "asn": _nullable("asn"),
    "connection_type": _value_or_none("connection_type"),
    "is_proxy": _flag("is_proxy"),
    "is_vpn": _flag("is_vpn"),
    "is_tor_exit_node": _flag("is_tor_exit_node"),
    "security_threat": _value_or_none("security_threat"),
    "is_mobile": _flag("is_mobile"),
    "is_tablet": _flag("is_tablet"),
    "browser": _value_or_none("browser"),
    "browser_version": _value_or_none("browser_version"),
    "os": _value_or_none("os"),
    "platform": _value_or_none("platform"),
    "first_name": _value_or_none("first_name"),
    "last_name": _value_or_none("last_name"),
    "lead_data": _jsonb("lead_data"),
    "scheduling": _jsonb("scheduling"),
    "instagram": _value_or_none("instagram"),
}

_INSERT_EVENT_SQL = """
INSERT INTO events ({columns})
VALUES ({placeholders})
ON CONFLICT (event_id) DO NOTHING
RETURNING *
""".format(
    columns=", ".join(EVENT_COLUMNS),
    placeholders=", ".join(["%s"] * len(EVENT_COLUMNS)),
)


def event_row_values(record: Mapping[str, Any]) -> tuple[Any, ...]:
    """Column values for record, in EVENT_COLUMNS order."""
    return tuple(read(record) for read in EVENT_COLUMNS.values())


def insert_event(cur: PgCursor, record: Mapping[str, Any]) -> dict[str, Any] | None:
    """Insert one event row.

    Args:
        cur: Database cursor (within transaction).
        record: Flat enriched event (EnrichedEvent.record).

    Returns:
        The stored row as a dict, or None if event_id already existed
        (the existing row is left untouched).
    """
    if not record.get("event_id"):
        raise ValueError("event_id is required")

    cur.execute(_INSERT_EVENT_SQL, event_row_values(record))
    row = cur.fetchone()
    if row is None:
        return None
    if isinstance(row, Mapping):
        return dict(row)
    columns = [desc[0] for desc in cur.description]
    return dict(zip(columns, row))


class EventStore:
    """Persistence adapter over a pooled Database handle."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def persist(self, event: EnrichedEvent) -> dict[str, Any] | None:
        """Persist event once.

        Returns:
            The new row, or None when event_id was already stored.

        Raises:
            PersistenceError: Any storage failure other than the id conflict.
        """
        try:
            with self._db.txn(cursor_factory=RealDictCursor) as cur:
                row = insert_event(cur, event.record)
        except (psycopg2.Error, RuntimeError) as e:
            # RuntimeError: the pool is closed (shutdown in progress)
            logger.error(
                "event persistence failed",
                extra={
                    "extra_fields": safe_log_context(
                        error_type=type(e).__name__, pgcode=getattr(e, "pgcode", None)
                    )
                },
            )
            raise PersistenceError(f"Database save failed: {type(e).__name__}") from e

        if row is None:
            logger.info("event already stored; insert skipped")
        else:
            logger.info(
                "event stored",
                extra={
                    "extra_fields": safe_log_context(
                        event_name=row.get("event_name"),
                        country=row.get("country"),
                        has_city=row.get("city") is not None,
                    )
                },
            )
        return row
