# storebot/api/routes/payments.py

import logging

from fastapi import APIRouter, Depends, Request

from storebot.api.deps import get_container, require_callback_token
from storebot.api.outbound import send_text
from storebot.container import Container
from storebot.core.errors import StoreError
from storebot.infrastructure.external.payment_gateway import PAID_STATUSES

logger = logging.getLogger("api.payments")

router = APIRouter()


@router.post("/callback", dependencies=[Depends(require_callback_token)])
async def payment_callback(request: Request, container: Container = Depends(get_container)):
    """Xendit invoice callback: deliver the order once the invoice is paid."""
    body = await request.json()
    status = str(body.get("status", "")).upper()
    order_id = body.get("external_id")
    invoice_id = body.get("id")
    logger.info("Payment callback invoice=%s order=%s status=%s", invoice_id, order_id, status)

    if status not in PAID_STATUSES:
        return {"status": "ignored", "reason": f"status {status}"}

    try:
        delivery = await container.fulfillment.confirm_gateway_payment(
            order_id=order_id, invoice_id=invoice_id
        )
    except StoreError as exc:
        logger.warning("Payment callback for %s not fulfilled: %s", order_id or invoice_id, exc)
        for admin in container.admin.admin_numbers:
            await send_text(admin, f"⚠️ Pembayaran {order_id or invoice_id} diterima tapi gagal dikirim: {exc}")
        return {"status": "error", "reason": str(exc)}

    await send_text(delivery.customer_id, delivery.customer_message)
    for admin in container.admin.admin_numbers:
        await send_text(admin, delivery.admin_summary())
    return {"status": "ok", "order_id": delivery.order_id}
