"""Value types flowing through the tracking pipeline.

A RawEvent is the job payload as a plain dict and is never mutated; every
type here is a new, frozen value derived from it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, Generic, Literal, Mapping, TypeVar

RawEvent = Mapping[str, Any]

T = TypeVar("T")

OutcomeStatus = Literal["ok", "skipped", "failed"]

GEO_FIELDS: tuple[str, ...] = (
    "city",
    "state",
    "zip",
    "country",
    "country_name",
    "region_name",
    "latitude",
    "longitude",
    "continent_code",
    "continent_name",
    "timezone",
    "currency_code",
    "currency_symbol",
    "isp",
    "asn",
)


@dataclass(frozen=True)
class StepOutcome(Generic[T]):
    """Tagged result of a capability-gated step.

    Attributes:
        status: "ok", "skipped" (deliberately not run) or "failed".
        value: Step result when status is "ok".
        reason: Short machine-readable reason for skips and failures.
        error: The exception behind a "failed" outcome.
    """

    status: OutcomeStatus
    value: T | None = None
    reason: str = ""
    error: Exception | None = None

    @classmethod
    def ok(cls, value: T) -> StepOutcome[T]:
        return cls(status="ok", value=value)

    @classmethod
    def skipped(cls, reason: str) -> StepOutcome[T]:
        return cls(status="skipped", reason=reason)

    @classmethod
    def failed(cls, reason: str, error: Exception | None = None) -> StepOutcome[T]:
        return cls(status="failed", reason=reason, error=error)


@dataclass(frozen=True)
class GeoLookupResult:
    """Geo/ISP fields from the IP provider. Missing fields stay None."""

    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    country_name: str | None = None
    region_name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    continent_code: str | None = None
    continent_name: str | None = None
    timezone: str | None = None
    currency_code: str | None = None
    currency_symbol: str | None = None
    isp: str | None = None
    asn: int | str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def present(self) -> dict[str, Any]:
        """Only the fields the provider actually returned."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class Location:
    """Raw (unhashed) location resolved from a payload."""

    city: Any = None
    state: Any = None
    country: Any = None
    zip: Any = None


@dataclass(frozen=True)
class EnrichedEvent:
    """RawEvent plus resolved identity and geo data.

    ``record`` is the flat, read-only view that gets persisted: raw fields,
    then event_id/event_time, then every geo field the provider returned.
    Geo keys that the provider left empty keep the payload's own value, or
    None when the payload had none.
    """

    raw: RawEvent
    event_id: str
    event_time: int
    geo: GeoLookupResult = field(default_factory=GeoLookupResult)
    record: Mapping[str, Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.event_time, int) or isinstance(self.event_time, bool):
            raise TypeError("event_time must be an int")
        flat: dict[str, Any] = {k: self.raw.get(k) for k in GEO_FIELDS}
        flat.update(self.raw)
        flat["event_id"] = self.event_id
        flat["event_time"] = self.event_time
        flat.update(self.geo.present())
        object.__setattr__(self, "record", MappingProxyType(flat))

    def get(self, key: str, default: Any = None) -> Any:
        return self.record.get(key, default)

    def as_dict(self) -> dict[str, Any]:
        return dict(self.record)


ForwardStatus = Literal["sent", "skipped"]


@dataclass(frozen=True)
class ForwardResult:
    """Outcome of a forwarding attempt that did not fail.

    Attributes:
        status: "sent" after a 2xx response, "skipped" by admission control.
        reason: Why it was skipped ("not_configured", "stale_event").
        response: Parsed response body for sent events.
    """

    status: ForwardStatus
    reason: str = ""
    response: dict[str, Any] | None = None

    @classmethod
    def sent(cls, response: dict[str, Any] | None = None) -> ForwardResult:
        return cls(status="sent", response=response)

    @classmethod
    def skipped(cls, reason: str) -> ForwardResult:
        return cls(status="skipped", reason=reason)


PipelineState = Literal[
    "START",
    "IDENTITY_RESOLVED",
    "ENRICHED",
    "PERSISTED",
    "FORWARD_SKIPPED",
    "FORWARD_SENT",
    "FORWARD_FAILED",
]


@dataclass(frozen=True)
class PipelineResult:
    """Terminal-success outcome of one track_event job."""

    event_id: str
    event_time: int
    state: PipelineState
    inserted: bool
    geo_status: OutcomeStatus
    forward: ForwardResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_time": self.event_time,
            "state": self.state,
            "inserted": self.inserted,
            "geo": self.geo_status,
            "forward": self.forward.status,
            "forward_reason": self.forward.reason or None,
        }
