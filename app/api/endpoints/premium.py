from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import logging

from app.api.models.payment import ChallengeResponse, PremiumDataResponse
from app.core.config import settings
from app.x402 import audit
from app.x402.errors import InvalidState, PaymentHeaderError, PaymentNotVerified, UnknownRequest
from app.x402.gateway import PaymentGateway, X_PAYMENT_HEADER, decode_payment_header
from app.x402.verifier import VerificationStatus
from app.services.ledger import format_amount

logger = logging.getLogger(__name__)

router = APIRouter()


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def server_error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": "Server error", "message": message})


def challenge_response(gateway: PaymentGateway, client_ip: str) -> JSONResponse:
    """Mint a request ID and return it in a 402 Payment Required response."""
    challenge = gateway.responder.challenge()
    logger.info(f"No payment provided, issued request ID {challenge.request_id}")
    audit.log_challenge_issued(challenge.request_id, challenge.amount, challenge.currency, client_ip)
    return JSONResponse(status_code=402, content=challenge.to_dict())


@router.get(
    "",
    summary="Premium Crypto Market Data (x402)",
    responses={
        200: {"model": PremiumDataResponse},
        402: {"model": ChallengeResponse},
    },
)
def get_premium_data(request: Request, gateway: PaymentGateway = Depends(get_gateway)) -> JSONResponse:
    """
    Serve premium data behind an x402 paywall.

    Without an X-PAYMENT header a new request ID and price quote are returned
    with status 402. With `X-PAYMENT: {"requestId": ..., "txHash": ...}` the
    payment is checked against the contract and, once confirmed, the data is
    returned. Redeeming an already fulfilled request returns the same data.
    """
    client_ip = get_client_ip(request)
    payment_header = request.headers.get(X_PAYMENT_HEADER)

    try:
        if not payment_header:
            return challenge_response(gateway, client_ip)

        try:
            payment = decode_payment_header(payment_header)
        except PaymentHeaderError as e:
            logger.warning(f"Rejected X-PAYMENT header from {client_ip}: {e.message}")
            audit.log_invalid_payment_header(e.message, client_ip)
            return JSONResponse(status_code=e.http_status, content={"error": e.message})

        request_id = payment.requestId
        logger.info(f"Verifying payment for request {request_id}")

        try:
            outcome = gateway.verifier.verify(request_id, settlement_ref=payment.txHash)
        except UnknownRequest as e:
            logger.info(f"Request {request_id} is unknown or expired, issuing a new challenge")
            audit.log_request_unknown(request_id, type(e).__name__, client_ip)
            challenge = gateway.responder.challenge()
            audit.log_challenge_issued(challenge.request_id, challenge.amount, challenge.currency, client_ip)
            return JSONResponse(
                status_code=402,
                content={
                    "error": "Payment not verified",
                    "message": f"{e.message}. Pay for the new request ID in 'challenge' instead.",
                    "requestId": request_id,
                    "challenge": challenge.to_dict(),
                },
            )

        if outcome.status is VerificationStatus.LEDGER_UNAVAILABLE:
            audit.log_ledger_unavailable(outcome.message, request_id, client_ip)
            return server_error(outcome.message)

        if outcome.status is VerificationStatus.NOT_PAID:
            audit.log_payment_not_found(request_id, client_ip)
            return JSONResponse(
                status_code=402,
                content={
                    "error": "Payment not verified",
                    "message": "No payment found for this request ID. Please ensure transaction is confirmed.",
                    "requestId": request_id,
                },
            )

        currency = settings.PAYMENT_CURRENCY
        if outcome.status is VerificationStatus.INSUFFICIENT_PAYMENT:
            audit.log_payment_insufficient(request_id, outcome.required, outcome.paid, outcome.payer, client_ip)
            return JSONResponse(
                status_code=402,
                content={
                    "error": "Insufficient payment",
                    "message": (
                        f"Paid {format_amount(outcome.paid)} {currency}, "
                        f"price is {format_amount(outcome.required)} {currency}"
                    ),
                    "requestId": request_id,
                    "payment": {
                        "required": format_amount(outcome.required),
                        "paid": format_amount(outcome.paid),
                        "shortfall": format_amount(outcome.shortfall),
                        "currency": currency,
                    },
                },
            )

        record = outcome.record
        if outcome.transitioned:
            audit.log_payment_verified(request_id, record.payer, record.amount, record.settlement_ref, client_ip)

        try:
            resource, redelivery = gateway.issuer.deliver(request_id)
        except PaymentNotVerified as e:
            # Record moved on (evicted) between verify and issue; client retries
            return JSONResponse(
                status_code=402,
                content={"error": "Payment not verified", "message": e.message, "requestId": request_id},
            )

        logger.info(f"Payment verified for {request_id}, paid by {resource.payer}")
        audit.log_resource_issued(request_id, redelivery, client_ip)
        return JSONResponse(status_code=200, content=resource.to_dict())

    except InvalidState as e:
        logger.error(f"Request state invariant violated: {e.message}", exc_info=True)
        audit.log_error("InvalidState", e.message, request_id=e.request_id, client_ip=client_ip)
        return server_error(e.message)
    except Exception as e:
        logger.error(f"Unexpected error serving premium data: {e}", exc_info=True)
        audit.log_error(type(e).__name__, str(e), client_ip=client_ip)
        return server_error(str(e))
