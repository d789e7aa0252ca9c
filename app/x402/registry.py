# app/x402/registry.py
"""
In-memory registry of issued x402 request identifiers.

Each identifier handed out in a 402 challenge is tracked through the state
machine::

    PENDING -> VERIFIED -> FULFILLED   (retained for idempotent redelivery)
    PENDING -> EXPIRED                 (evicted after a grace period)

Records are immutable snapshots; every transition swaps in a new record under
a single lock, so transitions are linearizable per identifier and readers
never observe a half-updated record.

Configuration (app/core/config.py):
- REQUEST_TTL_SECONDS: how long a challenge stays payable
- EXPIRED_GRACE_SECONDS: how long expired records are kept before eviction
- FULFILLED_RETENTION_SECONDS: optional retention for fulfilled records
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.x402.errors import InvalidState, RequestExpired

logger = logging.getLogger(__name__)

REQUEST_ID_BYTES = 32


class RequestState(Enum):
    """Lifecycle states of a request identifier."""
    PENDING = "pending"
    VERIFIED = "verified"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class RequestRecord:
    """Snapshot of a request identifier and what is known about its payment."""
    request_id: str
    created_at: float
    state: RequestState = RequestState.PENDING
    payer: Optional[str] = None
    amount: Optional[int] = None  # wei
    paid_at: Optional[int] = None  # ledger timestamp, unix seconds
    settlement_ref: Optional[str] = None
    resource: Optional[Any] = None
    updated_at: Optional[float] = None


def generate_request_id() -> str:
    """Generate an unpredictable 256-bit request ID as 0x-prefixed hex."""
    return "0x" + secrets.token_hex(REQUEST_ID_BYTES)


class RequestRegistry:
    """
    Authoritative local state of every issued request identifier.

    Thread-safe: all mutations happen under one lock.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        expired_grace_seconds: Optional[int] = None,
        fulfilled_retention_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = generate_request_id,
    ):
        """
        Initialize the registry.

        Args:
            ttl_seconds: Lifetime of an unpaid request. If None, uses config.
            expired_grace_seconds: How long expired records linger. If None, uses config.
            fulfilled_retention_seconds: Retention for fulfilled records. If None,
                uses config (which itself defaults to keeping them forever).
            clock: Time source, seconds since the epoch.
            id_factory: Identifier generator.
        """
        self._ttl_seconds = ttl_seconds
        self._expired_grace_seconds = expired_grace_seconds
        self._fulfilled_retention_seconds = fulfilled_retention_seconds
        self._clock = clock
        self._id_factory = id_factory
        self._records: Dict[str, RequestRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> int:
        if self._ttl_seconds is not None:
            return self._ttl_seconds
        return settings.REQUEST_TTL_SECONDS

    @property
    def expired_grace_seconds(self) -> int:
        if self._expired_grace_seconds is not None:
            return self._expired_grace_seconds
        return settings.EXPIRED_GRACE_SECONDS

    @property
    def fulfilled_retention_seconds(self) -> Optional[int]:
        if self._fulfilled_retention_seconds is not None:
            return self._fulfilled_retention_seconds
        return settings.FULFILLED_RETENTION_SECONDS

    def is_stale(self, record: RequestRecord, now: Optional[float] = None) -> bool:
        """True if the record is still pending but older than the TTL."""
        if record.state is not RequestState.PENDING:
            return False
        now = self._clock() if now is None else now
        return now - record.created_at > self.ttl_seconds

    def expires_at(self, record: RequestRecord) -> float:
        return record.created_at + self.ttl_seconds

    def create(self) -> RequestRecord:
        """Mint a new pending request identifier."""
        with self._lock:
            request_id = self._id_factory()
            while request_id in self._records:
                logger.warning("Request ID collision, regenerating")
                request_id = self._id_factory()

            record = RequestRecord(request_id=request_id, created_at=self._clock())
            self._records[request_id] = record

        logger.debug(f"Created request {request_id}")
        return record

    def get(self, request_id: str) -> Optional[RequestRecord]:
        """Look up a request record, or None if unknown or evicted."""
        with self._lock:
            return self._records.get(request_id)

    def transition_to_verified(
        self,
        request_id: str,
        payer: str,
        amount: int,
        settlement_ref: Optional[str] = None,
        paid_at: Optional[int] = None,
    ) -> RequestRecord:
        """
        Record a confirmed payment: PENDING -> VERIFIED.

        Raises:
            RequestExpired: If the record is pending but past its TTL (it is
                moved to EXPIRED in the same step), or was already swept.
            InvalidState: If the record is missing or not pending.
        """
        with self._lock:
            record = self._records.get(request_id)
            if record is None:
                raise InvalidState(f"Unknown request {request_id}", request_id)

            now = self._clock()
            if self.is_stale(record, now):
                self._records[request_id] = replace(
                    record, state=RequestState.EXPIRED, updated_at=now
                )
                raise RequestExpired(f"Request {request_id} has expired", request_id)
            if record.state is RequestState.EXPIRED:
                raise RequestExpired(f"Request {request_id} has expired", request_id)

            if record.state is not RequestState.PENDING:
                raise InvalidState(
                    f"Cannot verify request {request_id} in state {record.state.value}",
                    request_id,
                )

            record = replace(
                record,
                state=RequestState.VERIFIED,
                payer=payer,
                amount=amount,
                settlement_ref=settlement_ref,
                paid_at=paid_at,
                updated_at=now,
            )
            self._records[request_id] = record

        logger.info(f"Request {request_id} verified (payer {payer})")
        return record

    def transition_to_fulfilled(self, request_id: str, resource: Any) -> RequestRecord:
        """
        Record delivery of the resource: VERIFIED -> FULFILLED.

        Raises:
            InvalidState: If the record is missing or not verified.
        """
        with self._lock:
            record = self._records.get(request_id)
            if record is None or record.state is not RequestState.VERIFIED:
                state = record.state.value if record else "missing"
                raise InvalidState(
                    f"Cannot fulfill request {request_id} in state {state}",
                    request_id,
                )

            record = replace(
                record,
                state=RequestState.FULFILLED,
                resource=resource,
                updated_at=self._clock(),
            )
            self._records[request_id] = record

        logger.info(f"Request {request_id} fulfilled")
        return record

    def sweep_expired(self, now: Optional[float] = None) -> Dict[str, int]:
        """
        Expire stale pending records and evict records past their retention.

        Returns:
            Dict with counts of records expired and evicted in this pass
        """
        now = self._clock() if now is None else now
        expired = 0
        evicted = 0
        retention = self.fulfilled_retention_seconds

        with self._lock:
            for request_id, record in list(self._records.items()):
                if self.is_stale(record, now):
                    self._records[request_id] = replace(
                        record, state=RequestState.EXPIRED, updated_at=now
                    )
                    expired += 1
                elif record.state is RequestState.EXPIRED:
                    if now - (record.updated_at or record.created_at) > self.expired_grace_seconds:
                        del self._records[request_id]
                        evicted += 1
                elif record.state is RequestState.FULFILLED and retention is not None:
                    if now - (record.updated_at or record.created_at) > retention:
                        del self._records[request_id]
                        evicted += 1

        if expired or evicted:
            logger.debug(f"Sweep expired {expired} and evicted {evicted} request records")
        return {"expired": expired, "evicted": evicted}

    def stats(self) -> Dict[str, int]:
        """Count records per state."""
        counts = {state.value: 0 for state in RequestState}
        with self._lock:
            for record in self._records.values():
                counts[record.state.value] += 1
        return counts

    def clear(self) -> None:
        """Drop all records (shutdown and tests)."""
        with self._lock:
            self._records.clear()
