# app/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl # AnyHttpUrl stays in pydantic core
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "Plasma x402 Premium Data API Gateway"

    # Payment contract on Plasma
    CONTRACT_ADDRESS: str = "0x0000000000000000000000000000000000000000"
    PLASMA_RPC_URL: AnyHttpUrl = "https://testnet-rpc.plasma.to"
    PLASMA_CHAIN_ID: int = 9746
    PLASMA_NETWORK: str = "plasma-testnet"
    PLASMA_NETWORK_NAME: str = "Plasma Testnet"
    PLASMA_EXPLORER_URL: str = "https://testnet.plasmascan.to"
    LEDGER_TIMEOUT_SECONDS: float = 10.0

    # Pricing; the live price is read from the contract, this is quoted only
    # when the contract cannot be reached while issuing a challenge
    PAYMENT_CURRENCY: str = "XPL"
    PAYMENT_FALLBACK_PRICE: str = "0.01"

    PREMIUM_RESOURCE_PATH: str = "/api/premium-data"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Request lifecycle
    REQUEST_TTL_SECONDS: int = 900
    EXPIRED_GRACE_SECONDS: int = 300
    FULFILLED_RETENTION_SECONDS: Optional[int] = None  # None keeps fulfilled requests forever
    SWEEP_INTERVAL_SECONDS: int = 60

    # Audit log (JSON lines)
    AUDIT_LOG_ENABLED: bool = True
    AUDIT_LOG_PATH: str = "logs/payment_audit.jsonl"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
