# app/services/ledger.py
"""
Read-only client for the x402 payment contract on Plasma.

The contract is the source of truth for payments. It is keyed by the same
bytes32 request ID the gateway hands out and exposes:

- hasPaid(bytes32) -> bool
- getPayment(bytes32) -> (payer, amount, timestamp, exists)
- price() -> uint256 (wei)

Every call goes over JSON-RPC with an HTTP timeout; any transport, RPC or
decoding failure is raised as LedgerUnavailable so callers can retry.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from app.core.config import settings
from app.x402.errors import LedgerUnavailable

logger = logging.getLogger(__name__)


PAYMENT_CONTRACT_ABI: List[Dict] = [
    {
        "inputs": [{"name": "requestId", "type": "bytes32"}],
        "name": "hasPaid",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "requestId", "type": "bytes32"}],
        "name": "getPayment",
        "outputs": [
            {
                "components": [
                    {"name": "payer", "type": "address"},
                    {"name": "amount", "type": "uint256"},
                    {"name": "timestamp", "type": "uint256"},
                    {"name": "exists", "type": "bool"},
                ],
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "price",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

LEDGER_ERRORS = (RequestException, Web3Exception, TimeoutError, ConnectionError, ValueError)


@dataclass(frozen=True)
class LedgerPayment:
    """A payment as recorded by the contract."""
    payer: str
    amount: int  # wei
    timestamp: int  # unix seconds


class Ledger(Protocol):
    """Read interface of the payment ledger."""

    def exists(self, request_id: str) -> bool:
        ...

    def payment_detail(self, request_id: str) -> Optional[LedgerPayment]:
        ...

    def current_price(self) -> int:
        ...

    def block_number(self) -> int:
        ...


def format_amount(wei: int) -> str:
    """Format a wei amount in whole-token units without trailing zeros (10**16 -> '0.01')."""
    value = Web3.from_wei(wei, "ether")
    if value == 0:
        return "0"
    return format(Decimal(value).normalize(), "f")


def parse_amount(amount: str) -> int:
    """Parse a whole-token amount ('0.01') into wei."""
    return Web3.to_wei(Decimal(amount), "ether")


def request_id_to_bytes(request_id: str) -> bytes:
    """Convert a 0x-prefixed hex request ID into the contract's bytes32 key."""
    raw = Web3.to_bytes(hexstr=request_id)
    if len(raw) != 32:
        raise ValueError(f"Request ID must be 32 bytes, got {len(raw)}")
    return raw


class ContractLedger:
    """
    Web3 binding of the payment contract.

    The Web3 instance is created lazily so the app can start (and serve 402
    challenges at the fallback price) while the RPC endpoint is down.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        contract_address: Optional[str] = None,
        timeout: Optional[float] = None,
        web3: Optional[Web3] = None,
    ):
        self.rpc_url = rpc_url or str(settings.PLASMA_RPC_URL)
        self.contract_address = contract_address or settings.CONTRACT_ADDRESS
        self.timeout = timeout if timeout is not None else settings.LEDGER_TIMEOUT_SECONDS
        self._web3 = web3
        self._contract = None

    @property
    def web3(self) -> Web3:
        if self._web3 is None:
            self._web3 = Web3(
                Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout})
            )
        return self._web3

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.web3.eth.contract(
                address=Web3.to_checksum_address(self.contract_address),
                abi=PAYMENT_CONTRACT_ABI,
            )
        return self._contract

    def _call(self, description: str, fn):
        try:
            return fn()
        except LEDGER_ERRORS as e:
            logger.error(f"Ledger call {description} failed: {e}")
            raise LedgerUnavailable(f"Ledger call {description} failed: {e}") from e

    def exists(self, request_id: str) -> bool:
        key = request_id_to_bytes(request_id)
        return bool(self._call("hasPaid", lambda: self.contract.functions.hasPaid(key).call()))

    def payment_detail(self, request_id: str) -> Optional[LedgerPayment]:
        """
        Fetch the recorded payment for a request ID.

        Returns:
            LedgerPayment, or None if the contract has no payment for it
        """
        key = request_id_to_bytes(request_id)
        payer, amount, timestamp, exists = self._call(
            "getPayment", lambda: self.contract.functions.getPayment(key).call()
        )
        if not exists:
            return None
        return LedgerPayment(payer=payer, amount=int(amount), timestamp=int(timestamp))

    def current_price(self) -> int:
        return int(self._call("price", lambda: self.contract.functions.price().call()))

    def block_number(self) -> int:
        return int(self._call("blockNumber", lambda: self.web3.eth.block_number))
