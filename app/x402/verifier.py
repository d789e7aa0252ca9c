# app/x402/verifier.py
"""
Payment verification against the on-chain ledger.

The verifier never trusts local state for payment truth: a pending request is
only moved to VERIFIED after the contract reports a payment at or above the
current price. Concurrent verifications of the same request ID share one
ledger round trip.
"""
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional

from app.services.ledger import Ledger
from app.x402.errors import InvalidState, LedgerUnavailable, RequestExpired, UnknownRequest
from app.x402.registry import RequestRecord, RequestRegistry, RequestState

logger = logging.getLogger(__name__)


class VerificationStatus(Enum):
    CONFIRMED = "confirmed"
    NOT_PAID = "not_paid"
    INSUFFICIENT_PAYMENT = "insufficient_payment"
    LEDGER_UNAVAILABLE = "ledger_unavailable"


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of verifying a request ID against the ledger."""
    status: VerificationStatus
    request_id: str
    record: Optional[RequestRecord] = None
    required: Optional[int] = None  # wei
    paid: Optional[int] = None  # wei
    payer: Optional[str] = None
    message: Optional[str] = None
    transitioned: bool = False  # this call moved the record PENDING -> VERIFIED

    @property
    def confirmed(self) -> bool:
        return self.status is VerificationStatus.CONFIRMED

    @property
    def shortfall(self) -> Optional[int]:
        if self.required is None or self.paid is None:
            return None
        return max(0, self.required - self.paid)


class PaymentVerifier:
    """Checks the ledger for a request's payment and records confirmed payments."""

    def __init__(self, registry: RequestRegistry, ledger: Ledger):
        self._registry = registry
        self._ledger = ledger
        self._inflight: Dict[str, Future] = {}
        self._inflight_lock = threading.Lock()

    def verify(self, request_id: str, settlement_ref: Optional[str] = None) -> VerificationOutcome:
        """
        Verify payment for a request ID.

        A caller that joins an in-flight verification of the same request ID
        shares the leading call's outcome. Its own settlement_ref is dropped,
        as payment fields are recorded only once.

        Args:
            request_id: Identifier issued in a 402 challenge
            settlement_ref: Client-supplied proof (transaction hash), recorded on success

        Returns:
            VerificationOutcome; CONFIRMED is returned again for requests that
            were already verified or fulfilled. Only the call that performed
            the PENDING -> VERIFIED transition gets transitioned=True.

        Raises:
            UnknownRequest: If the ID was never issued (or has been evicted)
            RequestExpired: If the ID outlived its TTL unpaid
        """
        record = self._registry.get(request_id)
        if record is None:
            raise UnknownRequest(f"Unknown request {request_id}", request_id)
        if record.state is RequestState.EXPIRED or self._registry.is_stale(record):
            raise RequestExpired(f"Request {request_id} has expired", request_id)
        if record.state in (RequestState.VERIFIED, RequestState.FULFILLED):
            return VerificationOutcome(VerificationStatus.CONFIRMED, request_id, record=record)

        return self._single_flight(
            request_id, lambda: self._verify_pending(request_id, settlement_ref)
        )

    def _single_flight(self, request_id: str, fn: Callable[[], VerificationOutcome]) -> VerificationOutcome:
        """Run fn once per request ID; concurrent callers wait for and share its result."""
        with self._inflight_lock:
            future = self._inflight.get(request_id)
            is_leader = future is None
            if is_leader:
                future = Future()
                self._inflight[request_id] = future

        if not is_leader:
            logger.debug(f"Joining in-flight verification of {request_id}")
            return replace(future.result(), transitioned=False)

        try:
            outcome = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(outcome)
            return outcome
        finally:
            with self._inflight_lock:
                self._inflight.pop(request_id, None)

    def _verify_pending(self, request_id: str, settlement_ref: Optional[str]) -> VerificationOutcome:
        try:
            if not self._ledger.exists(request_id):
                logger.info(f"No payment on ledger for {request_id}")
                return VerificationOutcome(VerificationStatus.NOT_PAID, request_id)

            payment = self._ledger.payment_detail(request_id)
            if payment is None:
                return VerificationOutcome(VerificationStatus.NOT_PAID, request_id)

            # Price can change on-chain; never cache it
            price = self._ledger.current_price()
        except LedgerUnavailable as e:
            return VerificationOutcome(
                VerificationStatus.LEDGER_UNAVAILABLE, request_id, message=e.message
            )

        if payment.amount < price:
            logger.warning(
                f"Insufficient payment for {request_id}: paid {payment.amount} wei, "
                f"price {price} wei"
            )
            return VerificationOutcome(
                VerificationStatus.INSUFFICIENT_PAYMENT,
                request_id,
                record=self._registry.get(request_id),
                required=price,
                paid=payment.amount,
                payer=payment.payer,
            )

        try:
            record = self._registry.transition_to_verified(
                request_id,
                payer=payment.payer,
                amount=payment.amount,
                settlement_ref=settlement_ref,
                paid_at=payment.timestamp,
            )
        except InvalidState:
            current = self._registry.get(request_id)
            if current is not None and current.state in (RequestState.VERIFIED, RequestState.FULFILLED):
                # Lost the race to another verifier; its result stands
                return VerificationOutcome(VerificationStatus.CONFIRMED, request_id, record=current)
            raise

        return VerificationOutcome(
            VerificationStatus.CONFIRMED,
            request_id,
            record=record,
            required=price,
            paid=payment.amount,
            payer=payment.payer,
            transitioned=True,
        )
