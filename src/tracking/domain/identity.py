"""Identity resolution: event id, event time and location for a raw event.

Lead-form payloads nest location under lead_data, pixel payloads carry it
flat, and geo enrichment is the last resort. Where each field is looked up,
and under which spellings, is declared in LOCATION_SOURCES and
LOCATION_FIELDS below.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Mapping

from tracking.domain.models import Location, RawEvent
from tracking.errors import MissingEventIdError
from tracking.infra.hashing import pick_first_present
from tracking.infra.time import unix_now

ANONYMOUS_EXTERNAL_ID = "anon"
DEFAULT_EVENT_LABEL = "event"


def _nested(payload: Mapping[str, Any], *path: str) -> Mapping[str, Any] | None:
    node: Any = payload
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node if isinstance(node, Mapping) else None


# Ordered lookup sources. Each takes (payload, enriched) and returns a mapping
# or None; earlier sources win.
LOCATION_SOURCES: tuple[tuple[str, Callable[[RawEvent, Mapping[str, Any] | None], Any]], ...] = (
    ("lead_data", lambda payload, enriched: _nested(payload, "lead_data")),
    ("lead_data.address", lambda payload, enriched: _nested(payload, "lead_data", "address")),
    ("lead_data.location", lambda payload, enriched: _nested(payload, "lead_data", "location")),
    ("payload", lambda payload, enriched: payload),
    ("enriched", lambda payload, enriched: enriched),
)

# Key synonyms per location field, in priority order.
LOCATION_FIELDS: dict[str, tuple[str, ...]] = {
    "city": ("city", "cidade"),
    "state": ("state", "estado", "region", "region_name", "regionName"),
    "country": ("country", "pais", "country_code", "countryCode"),
    "zip": ("zip", "zip_code", "postal_code", "postalCode", "cep"),
}


def first_of(payload: Mapping[str, Any], *keys: str) -> Any:
    """First truthy value among keys (snake_case/camelCase aliases)."""
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return None


def resolve_event_time(payload: RawEvent, now: int | None = None) -> int:
    """Event time as unix seconds.

    Uses payload["event_time"] when it parses as a finite number, otherwise
    ``now`` (current time when not given).
    """
    raw = payload.get("event_time")
    if raw is None:
        raw = payload.get("eventTime")

    if raw is not None and not isinstance(raw, bool):
        try:
            parsed = float(raw)
        except (TypeError, ValueError):
            parsed = math.nan
        if math.isfinite(parsed):
            return int(parsed)

    return unix_now() if now is None else now


def resolve_event_id(
    payload: RawEvent,
    event_time: int | None = None,
    policy: str = "synthesize",
) -> str:
    """Stable event id.

    An explicit event_id/eventId wins. Otherwise the id is synthesized as
    ``{external_id|anon}_{event_time}_{name|event_name|event}``, which only
    repeats across retries when all three parts do; two distinct events with
    the same external_id, second and name collide. Deployments that need
    strict uniqueness set policy="require" and make callers send ids.

    Raises:
        MissingEventIdError: policy is "require" and no id was supplied.
    """
    explicit = first_of(payload, "event_id", "eventId")
    if explicit:
        return str(explicit)

    if policy == "require":
        raise MissingEventIdError("event_id is required by EVENT_ID_POLICY=require")

    if event_time is None:
        event_time = resolve_event_time(payload)

    external_id = first_of(payload, "external_id") or ANONYMOUS_EXTERNAL_ID
    label = first_of(payload, "name", "event_name") or DEFAULT_EVENT_LABEL
    return f"{external_id}_{event_time}_{label}"


def location_sources(
    payload: RawEvent,
    enriched: Mapping[str, Any] | None = None,
) -> list[Mapping[str, Any] | None]:
    """The ordered source list for location lookups."""
    return [source(payload, enriched) for _, source in LOCATION_SOURCES]


def extract_location(
    payload: RawEvent,
    enriched: Mapping[str, Any] | None = None,
) -> Location:
    """Resolve city/state/country/zip from payload, lead_data and geo data."""
    sources = location_sources(payload, enriched)
    return Location(
        **{name: pick_first_present(sources, keys) for name, keys in LOCATION_FIELDS.items()}
    )
