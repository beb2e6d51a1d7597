# storebot/api/routes/whatsapp.py
"""
WhatsApp Cloud API webhook.

Always answers ``{"status": "ok"}`` so Meta does not retry deliveries;
every failure is handled (and logged) by the router.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from storebot.api.deps import get_container
from storebot.api.outbound import dispatch_response
from storebot.container import Container
from storebot.core.config import settings

logger = logging.getLogger("api.whatsapp")

router = APIRouter()


def extract_messages(body: dict[str, Any]) -> list[tuple[str, str, str | None]]:
    """Flatten a webhook payload into (sender, text, media id) tuples."""
    out: list[tuple[str, str, str | None]] = []
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            for msg in value.get("messages") or []:
                sender = msg.get("from")
                if not sender:
                    continue
                kind = msg.get("type")
                if kind == "text":
                    out.append((sender, (msg.get("text") or {}).get("body", ""), None))
                elif kind == "image":
                    image = msg.get("image") or {}
                    out.append((sender, image.get("caption", ""), image.get("id")))
                elif kind == "interactive":
                    reply = (msg.get("interactive") or {}).get("button_reply") or {}
                    out.append((sender, reply.get("id") or reply.get("title", ""), None))
                else:
                    logger.info("Ignoring unsupported WA message type %s from %s", kind, sender)
    return out


@router.get("/webhook", response_class=PlainTextResponse)
async def verify(request: Request):
    params = request.query_params
    if (
        params.get("hub.mode") == "subscribe"
        and params.get("hub.verify_token") == settings.WHATSAPP_VERIFY_TOKEN
    ):
        return params.get("hub.challenge", "")
    return PlainTextResponse("Verification failed", status_code=403)


@router.post("/webhook")
async def webhook(request: Request, container: Container = Depends(get_container)):
    body = await request.json()
    for sender, text, media in extract_messages(body):
        response = await container.router.route(sender, text, media)
        await dispatch_response(sender, response)
    return {"status": "ok"}
