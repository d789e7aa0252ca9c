# app/x402/audit.py
"""
Audit logging for x402 payment events.

Every step of a request's lifecycle is appended to a JSON lines file so that
payments can be reconciled against the contract and disputes investigated.

Log location: AUDIT_LOG_PATH (disabled with AUDIT_LOG_ENABLED=false)

Events logged:
- Challenge issued (request ID, quoted price)
- Invalid payment header (reason)
- Payment not found on the ledger
- Insufficient payment (required, paid, shortfall)
- Payment verified (payer, amount, settlement reference)
- Resource issued (first delivery or redelivery)
- Request expired or unknown
- Ledger unavailable
- Error (type, context)

Writing the audit log never fails a request: errors are logged and dropped.
"""
import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

_write_lock = threading.Lock()


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    CHALLENGE_ISSUED = "challenge_issued"
    INVALID_PAYMENT_HEADER = "invalid_payment_header"
    PAYMENT_NOT_FOUND = "payment_not_found"
    PAYMENT_INSUFFICIENT = "payment_insufficient"
    PAYMENT_VERIFIED = "payment_verified"
    RESOURCE_ISSUED = "resource_issued"
    REQUEST_UNKNOWN = "request_unknown"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    ERROR = "error"


def get_audit_log_path() -> Path:
    """Get the path to the audit log file."""
    return Path(settings.AUDIT_LOG_PATH)


def create_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> Dict[str, Any]:
    """Create an audit event dictionary."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id,
        "client_ip": client_ip,
        "data": data,
    }


def log_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> bool:
    """
    Append an audit event to the audit log.

    Args:
        event_type: Type of event to log
        data: Event-specific data
        request_id: x402 request ID the event belongs to (if any)
        client_ip: Client IP address (if available)

    Returns:
        True if the event was written, False if disabled or on error
    """
    if not settings.AUDIT_LOG_ENABLED:
        return False

    event = create_audit_event(event_type, data, request_id=request_id, client_ip=client_ip)

    try:
        log_path = get_audit_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(event, default=str)
        with _write_lock:
            with open(log_path, "a") as f:
                f.write(line + "\n")

        logger.debug(f"Audit event logged: {event_type.value} [{request_id}]")
        return True

    except OSError as e:
        logger.error(f"Failed to write audit event: {e}")
        return False


def log_challenge_issued(request_id: str, amount: str, currency: str, client_ip: Optional[str] = None) -> bool:
    return log_audit_event(
        AuditEventType.CHALLENGE_ISSUED,
        {"amount": amount, "currency": currency},
        request_id=request_id,
        client_ip=client_ip,
    )


def log_invalid_payment_header(reason: str, client_ip: Optional[str] = None) -> bool:
    return log_audit_event(
        AuditEventType.INVALID_PAYMENT_HEADER,
        {"reason": reason},
        client_ip=client_ip,
    )


def log_payment_not_found(request_id: str, client_ip: Optional[str] = None) -> bool:
    return log_audit_event(AuditEventType.PAYMENT_NOT_FOUND, {}, request_id=request_id, client_ip=client_ip)


def log_payment_insufficient(
    request_id: str,
    required: int,
    paid: int,
    payer: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> bool:
    """Log a payment below the quoted price (amounts in wei)."""
    return log_audit_event(
        AuditEventType.PAYMENT_INSUFFICIENT,
        {
            "required_wei": str(required),
            "paid_wei": str(paid),
            "shortfall_wei": str(required - paid),
            "payer": payer,
        },
        request_id=request_id,
        client_ip=client_ip,
    )


def log_payment_verified(
    request_id: str,
    payer: str,
    amount: int,
    settlement_ref: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> bool:
    return log_audit_event(
        AuditEventType.PAYMENT_VERIFIED,
        {"payer": payer, "amount_wei": str(amount), "settlement_ref": settlement_ref},
        request_id=request_id,
        client_ip=client_ip,
    )


def log_resource_issued(request_id: str, redelivery: bool, client_ip: Optional[str] = None) -> bool:
    return log_audit_event(
        AuditEventType.RESOURCE_ISSUED,
        {"redelivery": redelivery},
        request_id=request_id,
        client_ip=client_ip,
    )


def log_request_unknown(request_id: str, reason: str, client_ip: Optional[str] = None) -> bool:
    return log_audit_event(
        AuditEventType.REQUEST_UNKNOWN,
        {"reason": reason},
        request_id=request_id,
        client_ip=client_ip,
    )


def log_ledger_unavailable(error_message: str, request_id: Optional[str] = None, client_ip: Optional[str] = None) -> bool:
    return log_audit_event(
        AuditEventType.LEDGER_UNAVAILABLE,
        {"error_message": error_message},
        request_id=request_id,
        client_ip=client_ip,
    )


def log_error(
    error_type: str,
    error_message: str,
    context: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> bool:
    """Log an unexpected error."""
    return log_audit_event(
        AuditEventType.ERROR,
        {
            "error_type": error_type,
            "error_message": error_message,
            "context": context or {},
        },
        request_id=request_id,
        client_ip=client_ip,
    )


def read_audit_log(
    max_entries: int = 100,
    event_type: Optional[AuditEventType] = None,
    request_id: Optional[str] = None,
) -> list:
    """
    Read entries from the audit log.

    Args:
        max_entries: Maximum number of entries to return
        event_type: Filter by event type (optional)
        request_id: Filter by x402 request ID (optional)

    Returns:
        List of audit events (most recent first)
    """
    log_path = get_audit_log_path()
    if not log_path.exists():
        return []

    events = []
    try:
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type and event.get("event_type") != event_type.value:
                    continue
                if request_id and event.get("request_id") != request_id:
                    continue
                events.append(event)
    except OSError as e:
        logger.error(f"Failed to read audit log: {e}")
        return []

    # Most recent first
    return list(reversed(events))[:max_entries]


def get_audit_stats() -> Dict[str, Any]:
    """
    Get statistics from the audit log.

    Returns:
        Dict with total count, counts per event type and first/last timestamps
    """
    log_path = get_audit_log_path()
    stats: Dict[str, Any] = {
        "total_events": 0,
        "events_by_type": {},
        "first_event": None,
        "last_event": None,
        "log_path": str(log_path),
        "log_exists": log_path.exists(),
    }
    if not stats["log_exists"]:
        return stats

    for event in reversed(read_audit_log(max_entries=10 ** 9)):
        stats["total_events"] += 1
        event_type = event.get("event_type", "unknown")
        stats["events_by_type"][event_type] = stats["events_by_type"].get(event_type, 0) + 1
        timestamp = event.get("timestamp")
        if timestamp:
            if stats["first_event"] is None:
                stats["first_event"] = timestamp
            stats["last_event"] = timestamp

    return stats
