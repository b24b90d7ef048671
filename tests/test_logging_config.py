"""Tests for logging setup, structured formatting and audit helpers."""

import logging
from unittest.mock import MagicMock

import pytest

import logging_config
from logging_config import (
    JSONFormatter,
    SupabaseHandler,
    log_auth_attempt,
    log_auth_failure,
    setup_logging,
)


def make_record(message, level=logging.INFO, **extra):
    record = logging.LogRecord("test", level, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def supabase_client():
    return MagicMock()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging_config._supabase_handler = None


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_extracts_tag(self):
        entry = JSONFormatter("svc").format(make_record("[TOKEN] Issued access token"))

        assert entry["service"] == "svc"
        assert entry["tag"] == "TOKEN"
        assert entry["message"] == "Issued access token"
        assert entry["level"] == "INFO"

    def test_untagged_message(self):
        entry = JSONFormatter().format(make_record("plain message"))

        assert entry["tag"] is None
        assert entry["message"] == "plain message"
        assert entry["service"] == "unknown"

    def test_includes_audit_fields(self):
        audit = {"event": "auth_failure", "reason": "client_id_mismatch", "client_ip": "10.0.0.1"}

        entry = JSONFormatter("svc").format(make_record("[AUTH_FAILURE] client_id_mismatch", audit=audit))

        assert entry["tag"] == "AUTH_FAILURE"
        assert entry["extra"]["audit"] == audit


class TestSupabaseHandler:
    """Tests for SupabaseHandler batching."""

    def test_flushes_when_batch_is_full(self, supabase_client):
        handler = SupabaseHandler(supabase_client, "svc", batch_size=2, flush_interval=60)
        handler.setFormatter(JSONFormatter("svc"))
        try:
            handler.emit(make_record("[SWEEP] one"))
            supabase_client.table.assert_not_called()

            handler.emit(make_record("[SWEEP] two"))

            supabase_client.table.assert_called_with("logs")
            inserted = supabase_client.table.return_value.insert.call_args[0][0]
            assert [entry["message"] for entry in inserted] == ["one", "two"]
        finally:
            handler.close()

    def test_close_flushes_remaining(self, supabase_client):
        handler = SupabaseHandler(supabase_client, "svc", batch_size=10, flush_interval=60)
        handler.emit(make_record("pending"))

        handler.close()

        inserted = supabase_client.table.return_value.insert.call_args[0][0]
        assert inserted[0]["message"] == "pending"
        assert inserted[0]["service"] == "svc"

    def test_insert_failure_is_not_raised(self, supabase_client, capsys):
        supabase_client.table.return_value.insert.return_value.execute.side_effect = RuntimeError("down")
        handler = SupabaseHandler(supabase_client, "svc", batch_size=1, flush_interval=60)
        try:
            handler.emit(make_record("lost"))
        finally:
            handler.close()

        assert "Failed to send logs to Supabase" in capsys.readouterr().err


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_stderr_only_without_client(self, restore_root_logger):
        root = setup_logging("svc", level="DEBUG")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0], SupabaseHandler)

    def test_adds_supabase_handler(self, restore_root_logger, supabase_client):
        root = setup_logging("svc", supabase_client=supabase_client)

        supabase_handlers = [h for h in root.handlers if isinstance(h, SupabaseHandler)]
        assert len(supabase_handlers) == 1
        assert isinstance(supabase_handlers[0].formatter, JSONFormatter)

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        assert setup_logging("svc", level="chatty").level == logging.INFO


class TestAuditHelpers:
    """Tests for the audit logging helpers."""

    def test_auth_attempt(self, caplog):
        with caplog.at_level(logging.INFO, logger="audit"):
            log_auth_attempt(True, "10.0.0.1", "abc")

        record = caplog.records[-1]
        assert record.name == "audit"
        assert record.levelno == logging.INFO
        assert record.audit == {"event": "auth_attempt", "success": True, "client_ip": "10.0.0.1", "client_id": "abc"}

    def test_auth_failure_is_a_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="audit"):
            log_auth_failure("expired_access_token", "10.0.0.2")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.audit == {"event": "auth_failure", "reason": "expired_access_token", "client_ip": "10.0.0.2"}
        assert "expired_access_token" in record.getMessage()
