"""Tests for ingress payload schema and form-submission transform."""

import pytest
from pydantic import ValidationError


class TestEventIn:
    """Tests for EventIn validation."""

    def test_minimal_event(self):
        from tracking.api.schemas import EventIn

        event = EventIn.model_validate({"event_name": "PageView"})
        assert event.model_dump(exclude_none=True) == {"event_name": "PageView"}

    def test_name_too_long(self):
        from tracking.api.schemas import EventIn

        with pytest.raises(ValidationError):
            EventIn.model_validate({"name": "x" * 101})

    def test_currency_must_be_three_letters(self):
        from tracking.api.schemas import EventIn

        assert EventIn.model_validate({"name": "Purchase", "currency": "USD"}).currency == "USD"
        with pytest.raises(ValidationError):
            EventIn.model_validate({"name": "Purchase", "currency": "US"})

    def test_currency_uppercased(self):
        from tracking.api.schemas import EventIn

        event = EventIn.model_validate({"name": "Lead", "currency": "brl", "currency_code": "usd"})
        assert event.currency == "BRL"
        assert event.currency_code == "USD"

    def test_email_validated(self):
        from tracking.api.schemas import EventIn

        event = EventIn.model_validate({"name": "Lead", "email": "lead@example.com"})
        assert event.email == "lead@example.com"
        with pytest.raises(ValidationError):
            EventIn.model_validate({"name": "Lead", "email": "not-an-email"})

    def test_email_stored_without_surrounding_whitespace(self):
        from tracking.api.schemas import EventIn

        event = EventIn.model_validate({"name": "Lead", "email": "a@b.com\n"})
        assert event.email == "a@b.com"

    def test_user_data_not_carried(self):
        from tracking.api.schemas import EventIn

        event = EventIn.model_validate({"name": "Lead", "userData": {"em": "x"}})
        assert "userData" not in event.model_dump()

    def test_ipv6_accepted(self):
        from tracking.api.schemas import EventIn

        event = EventIn.model_validate({"name": "Lead", "clientIpAddress": "2001:db8::1"})
        assert event.clientIpAddress == "2001:db8::1"

    def test_event_time_must_be_positive(self):
        from tracking.api.schemas import EventIn

        with pytest.raises(ValidationError):
            EventIn.model_validate({"name": "Lead", "event_time": -1})

    def test_nested_objects_kept(self):
        from tracking.api.schemas import EventIn

        event = EventIn.model_validate(
            {"name": "Lead", "lead_data": {"cidade": "Recife"}, "props": {"plan": "pro"}}
        )
        assert event.lead_data == {"cidade": "Recife"}
        assert event.props == {"plan": "pro"}


class TestTransformFilloutPayload:
    """Tests for transform_fillout_payload()."""

    def test_non_fillout_passthrough(self):
        from tracking.api.schemas import transform_fillout_payload

        body = {"name": "Lead", "data": {"x": 1}}
        assert transform_fillout_payload(body) is body

    def test_portuguese_field_names(self):
        from tracking.api.schemas import transform_fillout_payload

        result = transform_fillout_payload(
            {"submissionId": "sub-1", "data": {"nome": "João Souza", "telefone": "+5581999990000"}}
        )

        assert result["first_name"] == "João"
        assert result["phone"] == "+5581999990000"
        assert "last_name" not in result
        assert "email" not in result

    def test_single_word_name(self):
        from tracking.api.schemas import transform_fillout_payload

        result = transform_fillout_payload({"submissionId": "sub-1", "data": {"name": "Ana"}})

        assert result["first_name"] == "Ana"
        assert "last_name" not in result
        assert result["lead_data"] == {"name": "Ana"}
