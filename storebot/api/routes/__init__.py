from fastapi import APIRouter

from storebot.api.routes.health import router as health_router
from storebot.api.routes.payments import router as payments_router
from storebot.api.routes.whatsapp import router as whatsapp_router

api_router = APIRouter()

# Public / health
api_router.include_router(health_router, tags=["health"])
api_router.include_router(whatsapp_router, tags=["whatsapp"])

# Payment gateway callbacks (protected by callback token)
api_router.include_router(payments_router, prefix="/payments", tags=["payments"])
