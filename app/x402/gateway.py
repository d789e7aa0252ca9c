# app/x402/gateway.py
"""
Wiring of the x402 payment components.

PaymentGateway owns one RequestRegistry for the lifetime of the app and the
components that share it. It is built in app.main.create_app and torn down in
the app lifespan.
"""
import json
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from app.api.models.payment import PaymentHeader
from app.services.ledger import ContractLedger, Ledger
from app.services.premium_data import generate_premium_data
from app.x402.challenge import ChallengeResponder
from app.x402.errors import PaymentHeaderError
from app.x402.issuer import ResourceIssuer
from app.x402.registry import RequestRegistry
from app.x402.sweeper import ExpirySweeper
from app.x402.verifier import PaymentVerifier

logger = logging.getLogger(__name__)

X_PAYMENT_HEADER = "X-PAYMENT"


def decode_payment_header(header_value: str) -> PaymentHeader:
    """
    Decode the X-PAYMENT header.

    Args:
        header_value: JSON object with requestId and optional txHash

    Returns:
        Validated PaymentHeader

    Raises:
        PaymentHeaderError: With the client-facing reason
    """
    try:
        payload = json.loads(header_value)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse X-PAYMENT header JSON: {e}")
        raise PaymentHeaderError("Invalid payment header format")

    if not isinstance(payload, dict):
        raise PaymentHeaderError("Invalid payment header format")

    if not payload.get("requestId"):
        raise PaymentHeaderError("Missing requestId")

    try:
        return PaymentHeader.model_validate(payload)
    except ValidationError as e:
        field = e.errors()[0]["loc"][0] if e.errors() else "requestId"
        logger.warning(f"Invalid X-PAYMENT header field {field}: {e}")
        raise PaymentHeaderError(f"Invalid {field} format")


class PaymentGateway:
    """Registry, verifier, challenge responder and issuer sharing one registry."""

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        registry: Optional[RequestRegistry] = None,
        payload_factory: Callable[[], Dict[str, Any]] = generate_premium_data,
    ):
        self.ledger = ledger if ledger is not None else ContractLedger()
        self.registry = registry if registry is not None else RequestRegistry()
        self.verifier = PaymentVerifier(self.registry, self.ledger)
        self.responder = ChallengeResponder(self.registry, self.ledger)
        self.issuer = ResourceIssuer(self.registry, payload_factory)
        self.sweeper = ExpirySweeper(self.registry)

    async def startup(self) -> None:
        self.sweeper.start()

    async def shutdown(self) -> None:
        await self.sweeper.stop()
        self.registry.clear()
