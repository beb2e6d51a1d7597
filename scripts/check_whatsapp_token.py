# scripts/check_whatsapp_token.py
"""
Checks that the configured WhatsApp access token is valid and can see the
configured phone number before the bot is started.

    python scripts/check_whatsapp_token.py
"""

import asyncio
import os
import sys

# ensure storebot is importable
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import httpx
from loguru import logger

from storebot.core.config import settings
from storebot.core.logging_config import setup_logging
from storebot.infrastructure.external.whatsapp_client import WHATSAPP_API_BASE


async def main() -> int:
    setup_logging()
    if not settings.WHATSAPP_ACCESS_TOKEN:
        logger.error("No WHATSAPP_ACCESS_TOKEN configured")
        return 1
    if not settings.WHATSAPP_PHONE_NUMBER_ID:
        logger.error("No WHATSAPP_PHONE_NUMBER_ID configured")
        return 1

    url = f"{WHATSAPP_API_BASE}/{settings.WHATSAPP_PHONE_NUMBER_ID}"
    params = {"fields": "display_phone_number,verified_name"}
    headers = {"Authorization": f"Bearer {settings.WHATSAPP_ACCESS_TOKEN}"}

    async with httpx.AsyncClient(timeout=20) as client:
        resp = await client.get(url, params=params, headers=headers)

    if resp.status_code == 200:
        data = resp.json()
        logger.success(
            "WhatsApp token OK for {} ({})",
            data.get("display_phone_number", "?"),
            data.get("verified_name", "?"),
        )
        return 0

    try:
        err = resp.json().get("error", {})
    except ValueError:
        err = {}
    if err.get("code") == 190:
        logger.critical("WhatsApp token EXPIRED (code=190). Generate a new token and update .env")
    else:
        logger.error("Token check failed: {} - {}", resp.status_code, err or resp.text)
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
