"""
API routers for the Podio Push Relay.
"""
from fastapi import APIRouter

from .routes import health, podio, subscriptions

router = APIRouter()
router.include_router(health.router)
router.include_router(podio.router)
router.include_router(subscriptions.router)

__all__ = ["router"]
