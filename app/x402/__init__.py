# app/x402/__init__.py
"""
x402 Payment Protocol Integration Module.

Gates the premium data endpoint behind pay-per-request payments recorded by
a contract on Plasma: a request without payment gets a 402 challenge with a
fresh request ID, the client pays for that ID on-chain, then redeems it with
an X-PAYMENT header.

Key components:
- registry: lifecycle state of every issued request ID
- verifier: payment checks against the contract
- challenge: 402 Payment Required responses
- issuer: delivery (and idempotent redelivery) of the protected resource
- sweeper: background expiry of unpaid request IDs
- audit: payment event audit logging
- gateway: wiring of the above

Configuration is loaded from environment variables via app.core.config.
"""

__version__ = "0.1.0"
