"""Tests for structured logging and redaction."""

from __future__ import annotations

import json
import logging

import pytest

from spaceledger.core.logging import (
    REDACTED,
    JSONFormatter,
    RedactingFilter,
    StandardFormatter,
    configure_logging,
    correlation_context,
    get_correlation_id,
    mask_identifier,
    redact,
)


def _record(msg: str = "hello", **extra_data) -> logging.LogRecord:
    record = logging.LogRecord("spaceledger.test", logging.INFO, __file__, 1, msg, None, None)
    if extra_data:
        record.extra_data = extra_data
    return record


class TestRedact:
    """Tests for field redaction."""

    @pytest.mark.parametrize("field", ["signature", "principal_key", "key_material", "challenge_text", "payload"])
    def test_secret_fields(self, field):
        assert redact({field: "secret-value"}) == {field: REDACTED}

    def test_session_id_masked(self):
        assert redact({"session_id": "0123456789abcdef"}) == {"session_id": "01234567…"}
        assert mask_identifier("short") == "short"

    def test_nested_and_bytes(self):
        data = {"outer": {"private_key": "x", "ok": b"\x00" * 4}, "items": [{"token": "t"}]}
        assert redact(data) == {"outer": {"private_key": REDACTED, "ok": "<4 bytes>"}, "items": [{"token": REDACTED}]}

    def test_plain_values_untouched(self):
        assert redact({"did": "did:key:z6Mk", "count": 3}) == {"did": "did:key:z6Mk", "count": 3}

    def test_long_strings_truncated(self):
        assert redact("x" * 600).endswith("...")


class TestFormatters:
    """Tests for filter and formatters."""

    def test_filter_redacts_extra(self):
        record = _record(signature="abc", session_id="0123456789abcdef")
        assert RedactingFilter().filter(record) is True
        assert record.extra_data == {"signature": REDACTED, "session_id": "01234567…"}

    def test_json_formatter(self):
        record = _record(did="did:key:z6Mk")
        with correlation_context("cid-1"):
            data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "hello"
        assert data["extra"] == {"did": "did:key:z6Mk"}
        assert data["correlation_id"] == "cid-1"

    def test_standard_formatter_appends_fields(self):
        output = StandardFormatter(use_colors=False).format(_record(count=2))
        assert "hello [count=2]" in output

    def test_correlation_context_resets(self):
        with correlation_context() as cid:
            assert get_correlation_id() == cid
        assert get_correlation_id() is None


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_handlers_carry_redacting_filter(self, tmp_path):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            configure_logging(level="DEBUG", json_format=True, log_file=str(tmp_path / "out.log"))
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
            for handler in root.handlers:
                assert any(isinstance(f, RedactingFilter) for f in handler.filters)

            logging.getLogger("spaceledger.test").info("x", extra={"extra_data": {"signature": "s"}})
            for handler in root.handlers:
                handler.flush()
            line = json.loads((tmp_path / "out.log").read_text().splitlines()[-1])
            assert line["extra"] == {"signature": REDACTED}
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
                handler.close()
            for handler in saved[0]:
                root.addHandler(handler)
            root.setLevel(saved[1])
