# app/x402/errors.py
"""
Error taxonomy for the x402 payment gateway.

Every exception carries the HTTP status the route layer maps it to and a
``retryable`` flag telling the client whether retrying the same request can
succeed:

- PaymentHeaderError: malformed X-PAYMENT header (400, not retryable)
- UnknownRequest / RequestExpired: identifier never issued or past its TTL
  (402 with a fresh challenge)
- PaymentNotVerified: resource requested before payment was confirmed (402)
- LedgerUnavailable: the payment contract could not be queried (500, retryable)
- InvalidState: a registry transition was attempted from the wrong state (500).
  Seeing this outside of a lost race indicates a bug.
"""
from typing import Optional


class PaymentGatewayError(Exception):
    """Base class for all gateway errors."""

    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.request_id = request_id


class PaymentHeaderError(PaymentGatewayError):
    """The X-PAYMENT header could not be parsed or is missing required fields."""

    http_status = 400


class UnknownRequest(PaymentGatewayError):
    """The request identifier was never issued by this gateway."""

    http_status = 402
    retryable = True


class RequestExpired(UnknownRequest):
    """The request identifier outlived its TTL without being paid for."""


class PaymentNotVerified(PaymentGatewayError):
    """The resource was requested before the payment was confirmed."""

    http_status = 402
    retryable = True


class LedgerUnavailable(PaymentGatewayError):
    """The payment contract could not be reached or returned garbage."""

    http_status = 500
    retryable = True


class InvalidState(PaymentGatewayError):
    """A request record was asked to make a transition its state forbids."""

    http_status = 500
