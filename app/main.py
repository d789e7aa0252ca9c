# app/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from app.core.config import settings
from app.core.version import VERSION
from app.api.endpoints import health, premium
from app.x402.gateway import PaymentGateway
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(gateway: Optional[PaymentGateway] = None) -> FastAPI:
    """
    Build the FastAPI app around a PaymentGateway.

    The gateway (and with it the request registry) lives as long as the app:
    its expiry sweeper starts with the lifespan and the registry is cleared
    on shutdown.
    """
    gateway = gateway if gateway is not None else PaymentGateway()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.PROJECT_NAME} {VERSION}")
        logger.info(f"Contract: {settings.CONTRACT_ADDRESS} on {settings.PLASMA_NETWORK_NAME}")
        await gateway.startup()
        yield
        logger.info("Shutting down gracefully")
        await gateway.shutdown()

    app = FastAPI(title=settings.PROJECT_NAME, version=VERSION, lifespan=lifespan)
    app.state.gateway = gateway

    app.include_router(premium.router, prefix=settings.PREMIUM_RESOURCE_PATH, tags=["x402"])
    app.include_router(health.router, tags=["default"])

    @app.get("/", summary="Service Info", tags=["default"])
    def read_root():
        """ Basic service description. """
        logger.info("Root endpoint '/' accessed.")
        return {
            "status": "ok",
            "message": f"Welcome to {settings.PROJECT_NAME}",
            "version": VERSION,
            "endpoints": {
                "health": "/health",
                "premiumData": settings.PREMIUM_RESOURCE_PATH,
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT)
