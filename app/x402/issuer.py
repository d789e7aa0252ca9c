# app/x402/issuer.py
"""
Issues the protected resource for verified requests.

The first successful issue stores the resource on the request record; every
later call for the same request ID returns that stored resource, so a client
retrying after a dropped response gets exactly the same payload.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from app.core.config import settings
from app.services.ledger import format_amount
from app.services.premium_data import generate_premium_data
from app.x402.errors import InvalidState, PaymentNotVerified
from app.x402.registry import RequestRegistry, RequestState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resource:
    """The protected payload together with the payment that unlocked it."""
    request_id: str
    data: Dict[str, Any] = field(hash=False)
    payer: str
    amount: int  # wei
    currency: str
    paid_at: Optional[int] = None
    settlement_ref: Optional[str] = None

    def payment_dict(self) -> Dict[str, Any]:
        timestamp = None
        if self.paid_at is not None:
            timestamp = datetime.fromtimestamp(self.paid_at, tz=timezone.utc).isoformat()
        return {
            "requestId": self.request_id,
            "paidBy": self.payer,
            "amount": f"{format_amount(self.amount)} {self.currency}",
            "timestamp": timestamp,
            "txHash": self.settlement_ref,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Render the resource as the 200 response body."""
        return {
            "success": True,
            "message": "Payment verified successfully",
            "data": self.data,
            "payment": self.payment_dict(),
        }


class ResourceIssuer:
    """Hands out the payload for verified requests and marks them fulfilled."""

    def __init__(
        self,
        registry: RequestRegistry,
        payload_factory: Callable[[], Dict[str, Any]] = generate_premium_data,
    ):
        self._registry = registry
        self._payload_factory = payload_factory

    def issue(self, request_id: str) -> Resource:
        """Issue the resource for a request ID. See deliver()."""
        resource, _ = self.deliver(request_id)
        return resource

    def deliver(self, request_id: str) -> Tuple[Resource, bool]:
        """
        Issue the resource for a request ID.

        Returns:
            (resource, redelivery); redelivery is True when the stored resource
            of an already fulfilled request is returned instead of a new one

        Raises:
            PaymentNotVerified: If the request is unknown, pending or expired
        """
        record = self._registry.get(request_id)
        if record is not None and record.state is RequestState.FULFILLED:
            logger.info(f"Redelivering resource for {request_id}")
            return record.resource, True

        if record is None or record.state is not RequestState.VERIFIED:
            state = record.state.value if record else "unknown"
            raise PaymentNotVerified(
                f"Payment for request {request_id} is not verified (state: {state})",
                request_id,
            )

        resource = Resource(
            request_id=request_id,
            data=self._payload_factory(),
            payer=record.payer,
            amount=record.amount,
            currency=settings.PAYMENT_CURRENCY,
            paid_at=record.paid_at,
            settlement_ref=record.settlement_ref,
        )

        try:
            record = self._registry.transition_to_fulfilled(request_id, resource)
        except InvalidState:
            current = self._registry.get(request_id)
            if current is not None and current.state is RequestState.FULFILLED:
                # A concurrent issue won; serve its resource so both callers match
                return current.resource, True
            raise

        return record.resource, False
