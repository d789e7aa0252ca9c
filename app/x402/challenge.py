# app/x402/challenge.py
"""
Builds the 402 Payment Required challenge for unpaid requests.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from app.core.config import settings
from app.services.ledger import Ledger, format_amount, parse_amount
from app.x402.errors import LedgerUnavailable
from app.x402.registry import RequestRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Challenge:
    """A fresh request ID packaged with everything the client needs to pay for it."""
    request_id: str
    price_wei: int
    currency: str
    network: str
    chain_id: int
    contract_address: str
    rpc_url: str
    explorer_url: str
    expires_at: float
    price_is_live: bool = True

    @property
    def amount(self) -> str:
        return format_amount(self.price_wei)

    def instructions(self) -> Dict[str, str]:
        return {
            "step1": f"Call contract.pay(requestId) with value >= {self.amount} {self.currency}",
            "step2": "Include transaction hash in X-PAYMENT header",
            "step3": "Retry this request with X-PAYMENT header",
        }

    def to_dict(self) -> Dict[str, Any]:
        """Render the challenge as the 402 response body."""
        return {
            "error": "Payment Required",
            "requestId": self.request_id,
            "payment": {
                "amount": self.amount,
                "currency": self.currency,
                "network": self.network,
                "chainId": self.chain_id,
                "contractAddress": self.contract_address,
                "rpcUrl": self.rpc_url,
                "explorerUrl": self.explorer_url,
            },
            "instructions": self.instructions(),
            "message": f"Pay {self.amount} {self.currency} to access premium crypto market data",
            "expiresAt": datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat(),
        }


class ChallengeResponder:
    """Mints request IDs and quotes the live contract price."""

    def __init__(self, registry: RequestRegistry, ledger: Ledger):
        self._registry = registry
        self._ledger = ledger

    def quote_price(self) -> Tuple[int, bool]:
        """
        Read the current price from the contract.

        Returns:
            Tuple of (price_wei, is_live). Falls back to PAYMENT_FALLBACK_PRICE
            with is_live=False when the contract cannot be reached.
        """
        try:
            return self._ledger.current_price(), True
        except LedgerUnavailable as e:
            fallback = settings.PAYMENT_FALLBACK_PRICE
            logger.warning(f"Quoting fallback price {fallback} {settings.PAYMENT_CURRENCY}: {e.message}")
            return parse_amount(fallback), False

    def challenge(self) -> Challenge:
        """Create a new pending request and the challenge that advertises it."""
        price_wei, is_live = self.quote_price()
        record = self._registry.create()

        return Challenge(
            request_id=record.request_id,
            price_wei=price_wei,
            currency=settings.PAYMENT_CURRENCY,
            network=settings.PLASMA_NETWORK,
            chain_id=settings.PLASMA_CHAIN_ID,
            contract_address=settings.CONTRACT_ADDRESS,
            rpc_url=str(settings.PLASMA_RPC_URL),
            explorer_url=settings.PLASMA_EXPLORER_URL,
            expires_at=self._registry.expires_at(record),
            price_is_live=is_live,
        )
