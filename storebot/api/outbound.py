# storebot/api/outbound.py
"""Turns a router ``Response`` into outbound WhatsApp messages."""

from loguru import logger

from storebot.core.config import settings
from storebot.domain.models.responses import (
    BroadcastResponse,
    DeliveryResponse,
    Response,
    TextResponse,
)
from storebot.infrastructure.external.whatsapp_client import send_whatsapp_text
from storebot.infrastructure.queue.whatsapp_queue import enqueue_whatsapp_message


async def send_text(to_number: str, text: str) -> bool:
    if settings.OUTBOUND_VIA_QUEUE:
        return await enqueue_whatsapp_message(to_number, text)
    try:
        await send_whatsapp_text(to_number, text)
        return True
    except Exception as e:
        logger.exception("WA send to {} failed: {}", to_number, e)
        return False


async def dispatch_response(sender: str, response: Response) -> None:
    await send_text(sender, response.text)

    if isinstance(response, DeliveryResponse):
        if not await send_text(response.customer_id, response.customer_message):
            await send_text(
                sender,
                f"⚠️ Gagal mengirim kredensial {response.order_id} ke {response.customer_id}. "
                "Cek log dan kirim manual.",
            )
    elif isinstance(response, BroadcastResponse):
        sent = 0
        for recipient in response.recipients:
            sent += await send_text(recipient, response.message)
        logger.info("Broadcast delivered to {}/{} recipients", sent, len(response.recipients))
    elif not isinstance(response, TextResponse):
        logger.error("Unknown response type {}", type(response).__name__)
