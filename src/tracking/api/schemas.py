"""Ingress payload validation.

Field limits mirror what the web forms and pixels send. Unknown fields are
dropped; at least one of name/event_name is required.
"""

from __future__ import annotations

import ipaddress
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


def _str(max_length: int) -> Any:
    return Field(default=None, max_length=max_length)


class EventIn(BaseModel):
    """Event accepted by POST /api/event."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = _str(100)
    event_name: str | None = _str(100)
    event_id: str | None = _str(255)
    event_time: int | None = Field(default=None, gt=0)

    fbp: str | None = _str(255)
    fbc: str | None = _str(255)
    external_id: str | None = _str(255)

    value: float | None = Field(default=None, gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    content_name: str | None = _str(255)
    content_category: str | None = _str(255)
    product_name: str | None = _str(255)

    userAgent: str | None = _str(500)
    clientIpAddress: str | None = None

    email: EmailStr | None = None
    phone: str | None = _str(50)
    first_name: str | None = _str(100)
    last_name: str | None = _str(100)
    instagram: str | None = _str(100)

    city: str | None = _str(100)
    state: str | None = _str(50)
    zip: str | None = _str(20)
    country: str | None = _str(10)
    latitude: float | None = None
    longitude: float | None = None
    continent_code: str | None = _str(2)
    continent_name: str | None = _str(50)
    country_name: str | None = _str(100)
    region_name: str | None = _str(100)
    timezone: str | None = _str(50)
    timezone_offset: str | None = _str(10)

    currency_code: str | None = Field(default=None, min_length=3, max_length=3)
    currency_symbol: str | None = _str(10)

    language: str | None = _str(10)
    isp: str | None = _str(255)
    asn: int | None = None
    connection_type: str | None = _str(50)
    is_proxy: bool | None = None
    is_vpn: bool | None = None
    is_tor_exit_node: bool | None = None
    security_threat: str | None = _str(20)
    is_mobile: bool | None = None
    is_tablet: bool | None = None

    browser: str | None = _str(50)
    browser_version: str | None = _str(50)
    os: str | None = _str(50)
    platform: str | None = _str(50)

    lead_data: dict[str, Any] | None = None
    scheduling: dict[str, Any] | None = None
    props: dict[str, Any] | None = None

    @field_validator("currency", "currency_code", mode="before")
    @classmethod
    def _uppercase_currency(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("clientIpAddress")
    @classmethod
    def _valid_ip(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            ipaddress.ip_address(v)
        except ValueError:
            raise ValueError("must be a valid ip address") from None
        return v

    @model_validator(mode="after")
    def _name_or_event_name(self) -> EventIn:
        if not self.name and not self.event_name:
            raise ValueError("name or event_name is required")
        return self


def transform_fillout_payload(body: dict[str, Any]) -> dict[str, Any]:
    """Turn a Fillout form submission into a Lead event; other bodies pass through."""
    if not (body.get("submissionId") and isinstance(body.get("data"), dict)):
        return body

    data = body["data"]
    full_name = data.get("name") or ""
    parts = full_name.split(" ") if isinstance(full_name, str) and full_name else []
    nome = data.get("nome")

    first_name = parts[0] if parts else None
    if not first_name and isinstance(nome, str) and nome:
        first_name = nome.split(" ")[0]

    transformed = {
        "event_name": "Lead",
        "email": data.get("email"),
        "phone": data.get("phone") or data.get("telefone"),
        "first_name": first_name,
        "last_name": " ".join(parts[1:]) if parts else None,
        "external_id": body["submissionId"],
        "lead_data": data,
    }
    return {k: v for k, v in transformed.items() if v not in (None, "")}
