# storebot/api/deps.py
"""
Shared FastAPI dependencies.
"""

import hmac
import logging

from fastapi import Header, HTTPException, Request, status

from storebot.container import Container
from storebot.core.config import settings

logger = logging.getLogger("api.deps")


def get_container(request: Request) -> Container:
    return request.app.state.container


async def require_callback_token(
    x_callback_token: str = Header(None, alias="x-callback-token"),
) -> None:
    """Verify the payment gateway callback token (timing-safe)."""
    expected = settings.XENDIT_CALLBACK_TOKEN
    if not expected:
        logger.error("XENDIT_CALLBACK_TOKEN is not configured; rejecting callback")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Callback disabled")
    if not x_callback_token or not hmac.compare_digest(x_callback_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid callback token")
