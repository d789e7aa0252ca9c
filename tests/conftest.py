# tests/conftest.py
"""
Shared fixtures: an in-memory ledger, a controllable clock and a gateway
wired to both. No test talks to a real RPC endpoint.
"""
import random

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.main import create_app
from app.services.ledger import LedgerPayment
from app.services.premium_data import generate_premium_data
from app.x402.errors import LedgerUnavailable
from app.x402.gateway import PaymentGateway
from app.x402.registry import RequestRegistry

PRICE_WEI = 10 ** 16  # 0.01 XPL
PAYER = "0x1234567890AbcdEF1234567890aBcdef12345678"
PAID_AT = 1_700_000_000


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLedger:
    """In-memory stand-in for the payment contract."""

    def __init__(self, price: int = PRICE_WEI):
        self.price = price
        self.payments = {}
        self.unavailable = False
        self.block = 4_242_424
        self.calls = []

    def pay(self, request_id: str, amount: int = PRICE_WEI, payer: str = PAYER, timestamp: int = PAID_AT) -> None:
        self.payments[request_id] = LedgerPayment(payer=payer, amount=amount, timestamp=timestamp)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.unavailable:
            raise LedgerUnavailable(f"Ledger call {name} failed: connection refused")

    def exists(self, request_id: str) -> bool:
        self._record("exists")
        return request_id in self.payments

    def payment_detail(self, request_id: str):
        self._record("payment_detail")
        return self.payments.get(request_id)

    def current_price(self) -> int:
        self._record("current_price")
        return self.price

    def block_number(self) -> int:
        self._record("block_number")
        return self.block


class SweepingLedger(FakeLedger):
    """Ledger whose first price read lets the TTL pass and runs the expiry sweep."""

    def __init__(self, registry, clock):
        super().__init__()
        self.registry = registry
        self.clock = clock
        self.swept = False

    def current_price(self) -> int:
        if not self.swept:
            self.swept = True
            self.clock.advance(901)
            self.registry.sweep_expired()
        return super().current_price()


@pytest.fixture(autouse=True)
def audit_log_path(tmp_path, monkeypatch):
    """Send audit events to a per-test file."""
    path = tmp_path / "audit.jsonl"
    monkeypatch.setattr(settings, "AUDIT_LOG_PATH", str(path))
    monkeypatch.setattr(settings, "AUDIT_LOG_ENABLED", True)
    return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def registry(clock):
    return RequestRegistry(ttl_seconds=900, expired_grace_seconds=300, clock=clock)


@pytest.fixture
def gateway(ledger, registry):
    rng = random.Random(402)
    return PaymentGateway(
        ledger=ledger,
        registry=registry,
        payload_factory=lambda: generate_premium_data(rng),
    )


@pytest.fixture
def client(gateway):
    return TestClient(create_app(gateway))
