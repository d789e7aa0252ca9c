# app/api/models/payment.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any


HEX32_PATTERN = r"^0x[0-9a-fA-F]{64}$"


class PaymentHeader(BaseModel):
    """Decoded X-PAYMENT header: the request ID being redeemed and optional proof of payment."""
    requestId: str = Field(
        ...,
        pattern=HEX32_PATTERN,
        description="Request ID from the 402 challenge (0x-prefixed bytes32)",
        examples=["0x" + "ab" * 32]
    )
    txHash: Optional[str] = Field(
        default=None,
        pattern=HEX32_PATTERN,
        description="Hash of the transaction that paid for the request"
    )

    @field_validator("requestId", "txHash")
    @classmethod
    def lowercase_hex(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class PaymentDetails(BaseModel):
    """Payment terms advertised in a 402 challenge."""
    amount: str
    currency: str
    network: str
    chainId: int
    contractAddress: str
    rpcUrl: str
    explorerUrl: str


class ChallengeResponse(BaseModel):
    """Response model for 402 Payment Required."""
    error: str = "Payment Required"
    requestId: str
    payment: PaymentDetails
    instructions: Dict[str, str]
    message: str
    expiresAt: str


class PaymentProvenance(BaseModel):
    """The payment that unlocked a resource."""
    requestId: str
    paidBy: str
    amount: str
    timestamp: Optional[str] = None
    txHash: Optional[str] = None


class PremiumDataResponse(BaseModel):
    """Response model for a successfully redeemed request."""
    success: bool = True
    message: str
    data: Dict[str, Any]
    payment: PaymentProvenance


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""
    status: str
    contract: str
    network: str
    chainId: int
    price: str
    currentBlock: int
    requests: Dict[str, int]
    timestamp: str
