from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
import logging

from app.api.endpoints.premium import get_gateway
from app.api.models.payment import HealthResponse
from app.core.config import settings
from app.services.ledger import format_amount
from app.x402.errors import LedgerUnavailable
from app.x402.gateway import PaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, summary="Health Check")
def health(gateway: PaymentGateway = Depends(get_gateway)):
    """
    Report gateway health.

    Reads the current price and block number from the chain, so a healthy
    response also proves the ledger is reachable.

    Raises:
        500 with status "unhealthy" if the contract cannot be queried
    """
    try:
        price = gateway.ledger.current_price()
        block_number = gateway.ledger.block_number()
    except LedgerUnavailable as e:
        logger.error(f"Health check failed: {e.message}")
        return JSONResponse(status_code=500, content={"status": "unhealthy", "error": e.message})

    return HealthResponse(
        status="healthy",
        contract=settings.CONTRACT_ADDRESS,
        network=settings.PLASMA_NETWORK_NAME,
        chainId=settings.PLASMA_CHAIN_ID,
        price=f"{format_amount(price)} {settings.PAYMENT_CURRENCY}",
        currentBlock=block_number,
        requests=gateway.registry.stats(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
