"""Tests for observability utilities."""

import json
import logging

from tracking.observability.redaction import (
    present_fields,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    """Tests for redaction helpers."""

    def test_redact_phone_number(self):
        result = redact_string("Call me at +55 21 99999-8888")
        assert "99999" not in result
        assert "[REDACTED]" in result

    def test_redact_email(self):
        result = redact_string("Email: lead@example.com")
        assert "lead@example.com" not in result
        assert "[REDACTED]" in result

    def test_redact_ip(self):
        result = redact_string("from 200.147.67.142")
        assert "200.147.67.142" not in result

    def test_redact_ipv6(self):
        result = redact_string("from 2001:db8:85a3:0:0:8a2e:370:7334")
        assert "8a2e" not in result

    def test_time_of_day_kept(self):
        assert redact_string("at 12:30:45") == "at 12:30:45"

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"email": "lead@example.com", "city": "Rio"})
        assert "lead@example.com" not in result
        assert "Rio" not in result
        assert "email" in result
        assert "city" in result

    def test_redact_value_list_only_len(self):
        result = redact_value(["a", "b", "c"])
        assert "len=3" in result

    def test_redact_value_scalars(self):
        assert redact_value(None) == "null"
        assert redact_value(True) == "true"
        assert redact_value(3) == "3"

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+5521999998888", count=42)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"

    def test_present_fields(self):
        payload = {"fbp": "fb.1", "email": "", "external_id": None, "phone": "x"}
        assert present_fields(payload, ("fbp", "email", "external_id", "phone")) == ["fbp", "phone"]


class TestCorrelation:
    """Tests for correlation/job context variables."""

    def test_job_context_scopes_ids(self):
        from tracking.observability.correlation import (
            bind_event_id,
            get_correlation_id,
            get_event_id,
            get_job_id,
            job_context,
        )

        with job_context("job-1", "cid-1"):
            bind_event_id("e1")
            assert get_job_id() == "job-1"
            assert get_correlation_id() == "cid-1"
            assert get_event_id() == "e1"

        assert get_job_id() == ""
        assert get_event_id() == ""
        assert get_correlation_id() == ""

    def test_job_context_keeps_outer_correlation(self):
        from tracking.observability.correlation import (
            get_correlation_id,
            job_context,
            reset_correlation_id,
            set_correlation_id,
        )

        token = set_correlation_id("outer")
        try:
            with job_context("job-1"):
                assert get_correlation_id() == "outer"
        finally:
            reset_correlation_id(token)


class TestJsonFormatter:
    """Tests for the JSON log formatter."""

    def _record(self, message="hello", **extra_fields):
        record = logging.LogRecord("tracking.test", logging.INFO, __file__, 1, message, None, None)
        if extra_fields:
            record.extra_fields = extra_fields
        return record

    def test_basic_fields(self):
        from tracking.observability.logging import JsonFormatter

        out = json.loads(JsonFormatter().format(self._record()))
        assert out["level"] == "INFO"
        assert out["logger"] == "tracking.test"
        assert out["message"] == "hello"
        assert "timestamp" in out
        assert "jobId" not in out

    def test_includes_context_ids(self):
        from tracking.observability.correlation import bind_event_id, job_context
        from tracking.observability.logging import JsonFormatter

        with job_context("job-1", "cid-1"):
            bind_event_id("e1")
            out = json.loads(JsonFormatter().format(self._record()))

        assert out["jobId"] == "job-1"
        assert out["correlationId"] == "cid-1"
        assert out["eventId"] == "e1"

    def test_extra_fields_merged(self):
        from tracking.observability.logging import JsonFormatter

        out = json.loads(JsonFormatter().format(self._record(state="PERSISTED")))
        assert out["state"] == "PERSISTED"

    def test_get_logger_single_handler(self):
        from tracking.observability.logging import get_logger

        logger = get_logger("tracking.test.single")
        get_logger("tracking.test.single")
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_log_level_from_env(self, monkeypatch):
        from tracking.observability.logging import log_level

        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert log_level() == logging.DEBUG
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        assert log_level() == logging.INFO
