# storebot/domain/services/fulfillment.py
"""
Payment confirmation → credential delivery.

An order is delivered all-or-nothing. One credential is dispensed per cart
line; if any line comes back empty, every credential already popped for the
order is pushed back to the head of its queue and ``OutOfStockError`` is
raised with the session untouched (cart, step and order id unchanged).
Only after every line has a credential are the sales records written. If a
record cannot be written the popped credentials go back to stock as well and
``DeliveryError`` is raised. After that the promo use is recorded and the
session is reset to ``menu``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from storebot.core.errors import (
    ConcurrencyConflict,
    DeliveryError,
    GatewayError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
)
from storebot.domain.i18n import format_idr, t, to_idr
from storebot.domain.models.session import (
    APPROVABLE_STEPS,
    CartLine,
    Session,
    SessionStep,
)
from storebot.domain.services.customer_locks import CustomerLocks
from storebot.domain.services.promo_service import PromoService
from storebot.domain.services.stock_alert import StockAlertService
from storebot.infrastructure.audit import log_order_event
from storebot.infrastructure.cache.session_store import SessionStore
from storebot.infrastructure.external.payment_gateway import XenditClient
from storebot.infrastructure.inventory.base import InventoryStore, transaction

logger = logging.getLogger("fulfillment")


@dataclass(frozen=True)
class Delivery:
    order_id: str
    customer_id: str
    customer_message: str
    items: list[tuple[str, str]] = field(default_factory=list)  # (product name, credential)
    total_idr: int = 0
    stock_warning: str | None = None

    def admin_summary(self) -> str:
        names = ", ".join(name for name, _ in self.items)
        msg = (
            f"✅ Pesanan *{self.order_id}* dikirim ke {self.customer_id}\n"
            f"Item: {names}\n"
            f"Total: {format_idr(self.total_idr)}"
        )
        if self.stock_warning:
            msg += f"\n\n{self.stock_warning}"
        return msg


class FulfillmentService:
    def __init__(
        self,
        sessions: SessionStore,
        inventory: InventoryStore,
        locks: CustomerLocks,
        gateway: XenditClient | None = None,
        stock_alerts: StockAlertService | None = None,
        promos: PromoService | None = None,
        usd_to_idr: int = 15800,
    ):
        self.sessions = sessions
        self.inventory = inventory
        self.locks = locks
        self.gateway = gateway
        self.stock_alerts = stock_alerts
        self.promos = promos
        self.usd_to_idr = usd_to_idr

    # -- entry points ----------------------------------------------------

    async def approve(self, order_id: str, admin_id: str = "") -> Delivery:
        """Admin ``/approve``: manual transfer orders awaiting verification."""
        customer_id = await self._customer_for_order(order_id)
        async with self.locks.hold(customer_id):
            session = await self._pending_session(customer_id, order_id, APPROVABLE_STEPS)
            await self._verify_gateway(session)
            return await self._deliver(session, source=f"admin:{admin_id}")

    async def confirm_gateway_payment(
        self, order_id: str | None = None, invoice_id: str | None = None
    ) -> Delivery:
        """Gateway callback: deliver a QRIS order once the invoice is paid."""
        if order_id:
            customer_id = await self._customer_for_order(order_id)
        elif invoice_id:
            customer_id = await self.sessions.find_customer_by_invoice_id(invoice_id)
            if customer_id is None:
                raise NotFoundError(f"No pending order for invoice {invoice_id}")
        else:
            raise ValidationError("order_id or invoice_id is required")

        async with self.locks.hold(customer_id):
            return await self.confirm_gateway_payment_locked(customer_id)

    async def confirm_gateway_payment_locked(self, customer_id: str) -> Delivery:
        """Same as ``confirm_gateway_payment``; caller already holds the customer's lock."""
        session = await self.sessions.peek(customer_id)
        if session is None or session.order_id is None:
            raise NotFoundError(f"No pending order for {customer_id}")
        session = await self._pending_session(
            customer_id, session.order_id, frozenset({SessionStep.AWAITING_PAYMENT})
        )
        await self._verify_gateway(session)
        return await self._deliver(session, source="gateway")

    # -- internals -------------------------------------------------------

    async def _customer_for_order(self, order_id: str) -> str:
        customer_id = await self.sessions.find_customer_by_order_id(order_id)
        if customer_id is None:
            raise NotFoundError(f"Order {order_id} not found")
        return customer_id

    async def _pending_session(
        self, customer_id: str, order_id: str, steps: frozenset[SessionStep]
    ) -> Session:
        session = await self.sessions.peek(customer_id)
        if session is None or session.order_id != order_id:
            raise NotFoundError(f"Order {order_id} not found")
        if session.step not in steps:
            raise ValidationError(
                f"Order {order_id} is not awaiting payment confirmation (step: {session.step.value})"
            )
        if not session.cart:
            raise ValidationError(f"Order {order_id} has no items")
        return session

    async def _verify_gateway(self, session: Session) -> None:
        if not session.payment_invoice_id:
            return
        if self.gateway is None:
            raise GatewayError("Payment gateway is not configured")
        invoice = await self.gateway.get_invoice(session.payment_invoice_id)
        if not invoice.is_paid:
            raise GatewayError(
                f"Invoice {invoice.invoice_id} status is {invoice.status}, not paid"
            )

    async def _dispense_all(self, session: Session) -> list[tuple[CartLine, str]]:
        dispensed: list[tuple[CartLine, str]] = []
        try:
            for line in session.cart:
                try:
                    credential = await self.inventory.dispense(line.id)
                except ConcurrencyConflict:
                    logger.warning("Dispense conflict for %s, treating as no stock", line.id)
                    credential = None
                if credential is None:
                    raise OutOfStockError(line.id, session.order_id)
                dispensed.append((line, credential))
        except Exception:
            await self._rollback(dispensed)
            raise
        return dispensed

    async def _rollback(self, dispensed: list[tuple[CartLine, str]]) -> None:
        by_product: dict[str, list[str]] = {}
        for line, credential in dispensed:
            by_product.setdefault(line.id, []).append(credential)
        for product_id, credentials in by_product.items():
            await self.inventory.requeue_front(product_id, credentials)
        if by_product:
            logger.warning(
                "Rolled back %d credential(s) across %d product(s)",
                len(dispensed),
                len(by_product),
            )

    async def _archive_all(
        self, dispensed: list[tuple[CartLine, str]], order_id: str, customer_id: str, txn: str
    ) -> None:
        archived = 0
        try:
            for line, credential in dispensed:
                await self.inventory.archive_sold(line.id, credential, order_id, customer_id)
                archived += 1
        except Exception as exc:
            await self._rollback(dispensed)
            log_order_event(
                "delivery_archive_failed",
                order_id=order_id,
                customer_id=customer_id,
                details={"txn": txn, "archived": archived, "requeued": len(dispensed)},
            )
            raise DeliveryError(
                f"Sales ledger write failed for {order_id} ({archived}/{len(dispensed)} recorded, "
                f"txn {txn}): {exc}. Credentials returned to stock; check the ledger before "
                f"approving again."
            ) from exc

    async def _deliver(self, session: Session, source: str) -> Delivery:
        order_id = session.order_id or ""
        customer_id = session.customer_id

        with transaction() as txn:
            try:
                dispensed = await self._dispense_all(session)
            except OutOfStockError as exc:
                log_order_event(
                    "delivery_rolled_back",
                    order_id=order_id,
                    customer_id=customer_id,
                    details={"txn": txn, "missing": exc.product_id, "source": source},
                )
                raise

            await self._archive_all(dispensed, order_id, customer_id, txn)

        total_idr = session.payment_amount or to_idr(session.cart_total(), self.usd_to_idr)
        items = [(line.name, credential) for line, credential in dispensed]
        await self.sessions.reset_after_delivery(customer_id)

        log_order_event(
            "approve_order",
            order_id=order_id,
            customer_id=customer_id,
            details={
                "txn": txn,
                "source": source,
                "items": [line.id for line, _ in dispensed],
                "total_idr": total_idr,
                "promo": session.promo_code,
            },
        )

        if session.promo_code and self.promos is not None:
            # Delivery is committed; a promo that lapsed since checkout is only logged
            try:
                self.promos.apply_promo(session.promo_code, customer_id)
            except (ValidationError, OSError) as exc:
                logger.warning(
                    "Promo %s not recorded for %s: %s", session.promo_code, order_id, exc
                )

        warning = None
        if self.stock_alerts is not None:
            # Delivery is already committed here; a failed stock check must not hide it
            try:
                warning = await self.stock_alerts.low_stock_warning(
                    [line.id for line in session.cart]
                )
            except Exception:
                logger.exception("Stock check after %s failed", order_id)

        return Delivery(
            order_id=order_id,
            customer_id=customer_id,
            customer_message=self.format_delivery(order_id, items),
            items=items,
            total_idr=total_idr,
            stock_warning=warning,
        )

    @staticmethod
    def format_delivery(order_id: str, items: list[tuple[str, str]]) -> str:
        blocks = [
            f"{n}. *{name}*\n`{credential}`" for n, (name, credential) in enumerate(items, start=1)
        ]
        return t("DELIVERY", order_id=order_id, items="\n\n".join(blocks))

