# storebot/domain/services/message_router.py

from __future__ import annotations

import logging

from storebot.core.errors import StoreError
from storebot.domain.i18n import t
from storebot.domain.models.responses import Response, TextResponse
from storebot.domain.services.admin_commands import AdminCommandHandler, normalize_number
from storebot.domain.services.customer_locks import CustomerLocks
from storebot.domain.services.step_machine import SessionStepMachine

logger = logging.getLogger("router")


def normalize_message(text: str | None) -> str:
    return (text or "").strip().lower()


class MessageRouter:
    """Entry point for every inbound message.

    Admin commands run outside the sender's lock (``/approve`` takes the
    target customer's lock itself); everything else is serialized per
    customer. No ``StoreError`` or unexpected exception escapes ``route``.
    """

    def __init__(
        self,
        step_machine: SessionStepMachine,
        admin: AdminCommandHandler,
        locks: CustomerLocks,
    ):
        self.step_machine = step_machine
        self.admin = admin
        self.locks = locks

    async def route(self, sender: str, message: str | None, media: str | None = None) -> Response:
        customer_id = normalize_number(sender) or sender
        raw = (message or "").strip()
        is_admin = self.admin.is_admin(customer_id)

        try:
            if raw.startswith("/"):
                if not is_admin:
                    logger.warning("Unauthorized admin command from %s: %s", customer_id, raw.split()[0])
                    return TextResponse(t("UNAUTHORIZED"))
                return await self.admin.handle(customer_id, raw)

            async with self.locks.hold(customer_id):
                if is_admin and raw and self.admin.has_pending_bulk(customer_id):
                    return await self.admin.handle_bulk_payload(customer_id, raw)
                return await self.step_machine.handle(customer_id, normalize_message(raw), media)

        except StoreError as exc:
            logger.info("%s for %s: %s", type(exc).__name__, customer_id, exc)
            return TextResponse(f"❌ {exc}" if is_admin else exc.customer_message)
        except Exception:
            logger.exception("Unhandled error routing message from %s", customer_id)
            return TextResponse(t("SYSTEM_ERROR"))
