# tests/test_x402_audit.py
"""
Unit tests for x402 audit logging.
"""
import json
from unittest.mock import patch

from app.core.config import settings
from app.x402.audit import (
    AuditEventType,
    create_audit_event,
    get_audit_log_path,
    get_audit_stats,
    log_audit_event,
    log_challenge_issued,
    log_error,
    log_ledger_unavailable,
    log_payment_insufficient,
    log_payment_not_found,
    log_payment_verified,
    log_request_unknown,
    log_resource_issued,
    read_audit_log,
)

REQUEST_ID = "0x" + "ab" * 32


class TestCreateAuditEvent:
    """Test event construction."""

    def test_event_structure(self):
        event = create_audit_event(
            AuditEventType.CHALLENGE_ISSUED, {"amount": "0.01"}, request_id=REQUEST_ID, client_ip="10.0.0.1"
        )
        assert event["event_type"] == "challenge_issued"
        assert event["request_id"] == REQUEST_ID
        assert event["client_ip"] == "10.0.0.1"
        assert event["data"] == {"amount": "0.01"}
        assert event["timestamp"].endswith("+00:00")


class TestLogAuditEvent:
    """Test writing events."""

    def test_writes_json_line(self, audit_log_path):
        assert log_audit_event(AuditEventType.PAYMENT_NOT_FOUND, {}, request_id=REQUEST_ID) is True

        lines = audit_log_path.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["event_type"] == "payment_not_found"

    def test_creates_directory(self, tmp_path, monkeypatch):
        path = tmp_path / "nested" / "dir" / "audit.jsonl"
        monkeypatch.setattr(settings, "AUDIT_LOG_PATH", str(path))

        log_audit_event(AuditEventType.ERROR, {})

        assert path.exists()
        assert get_audit_log_path() == path

    def test_disabled(self, audit_log_path, monkeypatch):
        monkeypatch.setattr(settings, "AUDIT_LOG_ENABLED", False)
        assert log_audit_event(AuditEventType.ERROR, {}) is False
        assert not audit_log_path.exists()

    def test_write_failure_not_raised(self):
        """An unwritable log is reported, never raised."""
        with patch("app.x402.audit.open", side_effect=PermissionError("read-only"), create=True):
            assert log_audit_event(AuditEventType.ERROR, {}) is False


class TestConvenienceLoggers:
    """Test the per-event helpers."""

    def test_lifecycle_events(self):
        log_challenge_issued(REQUEST_ID, "0.01", "XPL", "10.0.0.1")
        log_payment_not_found(REQUEST_ID)
        log_payment_insufficient(REQUEST_ID, required=10 ** 16, paid=5 * 10 ** 15, payer="0xpayer")
        log_payment_verified(REQUEST_ID, "0xpayer", 10 ** 16, settlement_ref="0xtx")
        log_resource_issued(REQUEST_ID, redelivery=False)
        log_request_unknown(REQUEST_ID, "RequestExpired")
        log_ledger_unavailable("timed out", REQUEST_ID)
        log_error("InvalidState", "bad transition", context={"state": "pending"}, request_id=REQUEST_ID)

        events = read_audit_log(request_id=REQUEST_ID)
        assert [e["event_type"] for e in reversed(events)] == [
            "challenge_issued",
            "payment_not_found",
            "payment_insufficient",
            "payment_verified",
            "resource_issued",
            "request_unknown",
            "ledger_unavailable",
            "error",
        ]

    def test_insufficient_amounts(self):
        log_payment_insufficient(REQUEST_ID, required=10 ** 16, paid=5 * 10 ** 15)
        data = read_audit_log()[0]["data"]
        assert data["required_wei"] == str(10 ** 16)
        assert data["paid_wei"] == str(5 * 10 ** 15)
        assert data["shortfall_wei"] == str(5 * 10 ** 15)


class TestReadAuditLog:
    """Test reading the log back."""

    def test_missing_log(self):
        assert read_audit_log() == []

    def test_most_recent_first_and_limit(self):
        for i in range(5):
            log_audit_event(AuditEventType.ERROR, {"i": i})
        events = read_audit_log(max_entries=2)
        assert [e["data"]["i"] for e in events] == [4, 3]

    def test_filter_by_type(self):
        log_payment_not_found(REQUEST_ID)
        log_resource_issued(REQUEST_ID, redelivery=True)
        events = read_audit_log(event_type=AuditEventType.RESOURCE_ISSUED)
        assert len(events) == 1
        assert events[0]["data"]["redelivery"] is True

    def test_skips_corrupt_lines(self, audit_log_path):
        log_payment_not_found(REQUEST_ID)
        with open(audit_log_path, "a") as f:
            f.write("{truncated\n\n")
        assert len(read_audit_log()) == 1


class TestAuditStats:
    """Test summary statistics."""

    def test_no_log(self):
        stats = get_audit_stats()
        assert stats["total_events"] == 0
        assert stats["log_exists"] is False

    def test_counts(self):
        log_challenge_issued(REQUEST_ID, "0.01", "XPL")
        log_challenge_issued("0x" + "cd" * 32, "0.01", "XPL")
        log_payment_not_found(REQUEST_ID)

        stats = get_audit_stats()

        assert stats["total_events"] == 3
        assert stats["events_by_type"] == {"challenge_issued": 2, "payment_not_found": 1}
        assert stats["first_event"] <= stats["last_event"]
        assert stats["log_exists"] is True
