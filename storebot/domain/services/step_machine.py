# storebot/domain/services/step_machine.py
"""
Customer conversation flow.

    menu → browsing → checkout → select_payment ─┬─ QRIS ─────→ awaiting_payment
                                                 ├─ e-wallet ─→ awaiting_admin_approval
                                                 └─ bank ─→ select_bank ─→ awaiting_admin_approval
    awaiting_admin_approval + photo → upload_proof
    menu/cart while payment is pending → reminder; batal → cancel (not after proof)
    delivery (admin /approve or paid invoice) → menu

``handle()`` expects a normalized (trimmed, lowercased) message and must run
under the customer's lock. Storage and gateway failures propagate as
``StoreError``; the router turns them into reply text. A step is only
written after the work it depends on has succeeded.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable

from storebot.core.config import PaymentAccount, Settings, settings as default_settings
from storebot.core.errors import GatewayError
from storebot.domain.i18n import format_idr, t, to_idr
from storebot.domain.models.catalog import Product
from storebot.domain.models.responses import Response, TextResponse
from storebot.domain.models.session import (
    ABANDONABLE_STEPS,
    PAYMENT_PENDING_STEPS,
    CartLine,
    PaymentMethod,
    Session,
    SessionStep,
)
from storebot.domain.services.catalog import ProductCatalog
from storebot.domain.services.fulfillment import FulfillmentService
from storebot.domain.services.fuzzy_search import FuzzyMatcher
from storebot.domain.services.promo_service import PromoService
from storebot.infrastructure.audit import log_order_event
from storebot.infrastructure.cache.session_store import SessionStore
from storebot.infrastructure.external.payment_gateway import XenditClient
from storebot.infrastructure.inventory.base import InventoryStore

logger = logging.getLogger("step_machine")

BANK_TRANSFER = "BANK_TRANSFER"


def make_order_id(clock: Callable[[], float] = time.time) -> str:
    """``ORD-<13-digit epoch ms>-<4 hex>``."""
    return f"ORD-{int(clock() * 1000):013d}-{secrets.token_hex(2).upper()}"


class SessionStepMachine:
    def __init__(
        self,
        sessions: SessionStore,
        catalog: ProductCatalog,
        inventory: InventoryStore,
        matcher: FuzzyMatcher,
        promos: PromoService,
        fulfillment: FulfillmentService,
        gateway: XenditClient | None = None,
        settings: Settings | None = None,
        order_id_factory: Callable[[], str] | None = None,
    ):
        self.sessions = sessions
        self.catalog = catalog
        self.inventory = inventory
        self.matcher = matcher
        self.promos = promos
        self.fulfillment = fulfillment
        self.gateway = gateway
        self.settings = settings or default_settings
        self._new_order_id = order_id_factory or make_order_id

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------

    async def handle(self, customer_id: str, message: str, media: str | None = None) -> Response:
        session = await self.sessions.get(customer_id)

        if media:
            return await self._on_media(session, media)

        if session.step in PAYMENT_PENDING_STEPS:
            if message in ("menu", "cart"):
                return TextResponse(t("ORDER_PENDING", order_id=session.order_id))
            if message == "batal":
                return await self._cancel_order(session)

        if message == "menu":
            return await self._go_menu(session)
        if message == "cart":
            return await self._show_cart(session)
        if message == "help":
            return TextResponse(t("HELP"))
        if message == "history":
            return await self._history(session)

        handlers = {
            SessionStep.MENU: self._on_menu,
            SessionStep.BROWSING: self._on_browsing,
            SessionStep.CHECKOUT: self._on_checkout,
            SessionStep.SELECT_PAYMENT: self._on_select_payment,
            SessionStep.SELECT_BANK: self._on_select_bank,
            SessionStep.AWAITING_PAYMENT: self._on_awaiting_payment,
            SessionStep.AWAITING_ADMIN_APPROVAL: self._on_awaiting_approval,
            SessionStep.UPLOAD_PROOF: self._on_awaiting_approval,
        }
        return await handlers[session.step](session, message)

    # ------------------------------------------------------------------
    # global commands
    # ------------------------------------------------------------------

    async def _leave_order(self, session: Session) -> None:
        """Leaving payment selection abandons the order id (cart is kept)."""
        if session.step in ABANDONABLE_STEPS and session.order_id:
            log_order_event(
                "order_abandoned",
                order_id=session.order_id,
                customer_id=session.customer_id,
                details={"step": session.step.value},
            )
            await self.sessions.clear_order(session.customer_id)

    async def _cancel_order(self, session: Session) -> Response:
        """Explicit ``batal`` while payment is pending."""
        if session.step == SessionStep.UPLOAD_PROOF:
            return TextResponse(t("ORDER_CANCEL_LOCKED", order_id=session.order_id))
        if session.payment_invoice_id:
            if self.gateway is None:
                raise GatewayError("Payment gateway is not configured")
            invoice = await self.gateway.get_invoice(session.payment_invoice_id)
            if invoice.is_paid:
                delivery = await self.fulfillment.confirm_gateway_payment_locked(
                    session.customer_id
                )
                return TextResponse(delivery.customer_message)

        log_order_event(
            "order_cancelled",
            order_id=session.order_id or "",
            customer_id=session.customer_id,
            details={"step": session.step.value, "invoice": session.payment_invoice_id},
        )
        await self.sessions.clear_order(session.customer_id)
        await self.sessions.set_step(session.customer_id, SessionStep.MENU)
        return TextResponse(t("ORDER_CANCELLED", order_id=session.order_id))

    async def _go_menu(self, session: Session) -> Response:
        await self._leave_order(session)
        await self.sessions.set_step(session.customer_id, SessionStep.MENU)
        return TextResponse(t("MAIN_MENU"))

    async def _show_cart(self, session: Session) -> Response:
        if not session.cart:
            return TextResponse(t("CART_EMPTY"))
        await self._leave_order(session)
        await self.sessions.set_step(session.customer_id, SessionStep.CHECKOUT)
        return TextResponse(self.cart_summary(session))

    async def _history(self, session: Session) -> Response:
        sales = await self.inventory.list_sales(days=90, customer_id=session.customer_id)
        if not sales:
            return TextResponse(t("HISTORY_EMPTY"))
        msg = t("HISTORY_HEADER")
        for sale in sales[-10:]:
            product = self.catalog.get(sale.product_id)
            name = product.name if product else sale.product_id
            msg += f"\n• {sale.sold_at[:10]} {sale.order_id}\n  {name}"
        return TextResponse(msg)

    # ------------------------------------------------------------------
    # menu / browsing
    # ------------------------------------------------------------------

    async def _on_menu(self, session: Session, message: str) -> Response:
        if message == "1":
            await self.sessions.set_step(session.customer_id, SessionStep.BROWSING)
            return TextResponse(await self.product_list())
        if message == "2":
            return await self._show_cart(session)
        if message == "3":
            return await self._history(session)
        if message == "4":
            return TextResponse(t("HELP"))
        return TextResponse(t("UNKNOWN_COMMAND"))

    async def product_list(self) -> str:
        counts = await self.inventory.get_all_stock_counts()
        msg = t("PRODUCT_LIST_HEADER")
        for n, product in enumerate(self.catalog.all(), start=1):
            stock = counts.get(product.id, 0)
            msg += (
                f"\n{n}. *{product.name}* (`{product.id}`)\n"
                f"   💰 {format_idr(self._idr(product.price))}\n"
                f"   📝 {product.description}\n"
                f"   📦 Stok: {stock if stock else 'habis'}\n"
            )
        return msg + t("PRODUCT_LIST_FOOTER")

    def resolve_product(self, message: str) -> Product | None:
        """Exact id, then 1-based list number, then fuzzy match."""
        product = self.catalog.get(message)
        if product is None and message.isdigit():
            product = self.catalog.by_index(int(message))
        if product is None:
            product = self.matcher.match(message, self.catalog.all())
        return product

    async def _on_browsing(self, session: Session, message: str) -> Response:
        if message == "clear":
            await self.sessions.clear_cart(session.customer_id)
            return TextResponse(t("CART_CLEARED"))
        if message == "checkout":
            return await self._show_cart(session)

        product = self.resolve_product(message)
        if product is None:
            return TextResponse(t("PRODUCT_NOT_FOUND"))

        line = CartLine(
            id=product.id, name=product.name, price=product.price, category=product.category.value
        )
        updated, added = await self.sessions.add_to_cart(session.customer_id, line)
        if not added:
            return TextResponse(t("CART_FULL", max=self.sessions.max_cart_items))

        msg = t(
            "PRODUCT_ADDED",
            name=product.name,
            price=format_idr(self._idr(product.price)),
            count=len(updated.cart),
        )
        if await self.inventory.get_stock_count(product.id) == 0:
            msg += "\n\n" + t("PRODUCT_ADDED_NO_STOCK", name=product.name)
        return TextResponse(msg)

    # ------------------------------------------------------------------
    # checkout
    # ------------------------------------------------------------------

    def _idr(self, price: int) -> int:
        return to_idr(price, self.settings.USD_TO_IDR_RATE)

    def totals(self, session: Session) -> tuple[int, int, int]:
        """(subtotal, discount, total) in IDR, always recomputed from the cart."""
        subtotal = self._idr(session.cart_total())
        discount = self.promos.calculate_discount(subtotal, session.discount_percent)
        return subtotal, discount.discount_amount, discount.final_amount

    def cart_summary(self, session: Session) -> str:
        msg = t("CART_HEADER")
        for n, line in enumerate(session.cart, start=1):
            msg += f"\n{n}. {line.name} - {format_idr(self._idr(line.price))}"
        subtotal, discount, total = self.totals(session)
        msg += f"\n\nSubtotal: {format_idr(subtotal)}"
        if session.promo_code:
            msg += (
                f"\nDiskon ({session.promo_code} {session.discount_percent}%): "
                f"-{format_idr(discount)}"
            )
        msg += f"\n*Total: {format_idr(total)}*\n"
        return msg + t("CART_FOOTER")

    async def _on_checkout(self, session: Session, message: str) -> Response:
        if message == "clear":
            await self.sessions.clear_cart(session.customer_id)
            await self.sessions.set_step(session.customer_id, SessionStep.BROWSING)
            return TextResponse(t("CART_CLEARED"))
        if message == "promo" or message.startswith("promo "):
            return await self._enter_promo(session, message[len("promo"):].strip())
        if message == "checkout":
            return await self._confirm_checkout(session)
        return TextResponse(t("UNKNOWN_COMMAND"))

    async def _enter_promo(self, session: Session, code: str) -> Response:
        if not code:
            return TextResponse(t("PROMO_USAGE"))
        result = self.promos.validate_promo(code, session.customer_id)
        if not result.valid:
            return TextResponse(t("PROMO_INVALID", reason=result.message))
        updated = await self.sessions.set_promo(
            session.customer_id, code.upper(), result.discount_percent
        )
        return TextResponse(
            t("PROMO_APPLIED", code=code.upper(), percent=result.discount_percent)
            + "\n\n"
            + self.cart_summary(updated)
        )

    async def _confirm_checkout(self, session: Session) -> Response:
        if not session.cart:
            return TextResponse(t("CART_EMPTY"))
        options = self.payment_options()
        if not options:
            return TextResponse(t("PAYMENT_NONE_ENABLED"))

        # The use itself is recorded on delivery
        if session.promo_code:
            result = self.promos.validate_promo(session.promo_code, session.customer_id)
            if not result.valid:
                session = await self.sessions.set_promo(session.customer_id, None)
                return TextResponse(
                    t("PROMO_INVALID", reason=result.message) + "\n\n" + self.cart_summary(session)
                )

        order_id = self._new_order_id()
        await self.sessions.set_order_id(session.customer_id, order_id)
        await self.sessions.set_step(session.customer_id, SessionStep.SELECT_PAYMENT)
        _, _, total = self.totals(session)
        log_order_event(
            "checkout",
            order_id=order_id,
            customer_id=session.customer_id,
            details={"items": [line.id for line in session.cart], "total_idr": total},
        )

        msg = t("PAYMENT_MENU_HEADER", order_id=order_id, total=format_idr(total))
        for n, (_, label) in enumerate(options, start=1):
            msg += f"\n{n}. {label}"
        return TextResponse(msg + t("PAYMENT_MENU_FOOTER"))

    # ------------------------------------------------------------------
    # payment selection
    # ------------------------------------------------------------------

    def _accounts(self, kind: str) -> list[tuple[str, PaymentAccount]]:
        return [
            (key, account)
            for key, account in self.settings.PAYMENT_ACCOUNTS.items()
            if account.enabled and account.kind == kind
        ]

    def payment_options(self) -> list[tuple[str, str]]:
        """Enabled methods as (key, label) in menu order."""
        options: list[tuple[str, str]] = []
        if self.settings.QRIS_ENABLED:
            options.append((PaymentMethod.QRIS.value, "QRIS (semua e-wallet & m-banking)"))
        for key, account in self._accounts("ewallet"):
            options.append((key, account.label))
        if self._accounts("bank"):
            options.append((BANK_TRANSFER, "Transfer Bank"))
        return options

    @staticmethod
    def _pick(message: str, count: int) -> int | None:
        if message.isdigit() and 1 <= int(message) <= count:
            return int(message) - 1
        return None

    async def _on_select_payment(self, session: Session, message: str) -> Response:
        options = self.payment_options()
        index = self._pick(message, len(options))
        if index is None:
            return TextResponse(t("PAYMENT_INVALID_CHOICE"))

        key, _ = options[index]
        if key == PaymentMethod.QRIS.value:
            return await self._start_qris(session)
        if key == BANK_TRANSFER:
            await self.sessions.set_step(session.customer_id, SessionStep.SELECT_BANK)
            msg = t("BANK_MENU_HEADER")
            for n, (_, account) in enumerate(self._accounts("bank"), start=1):
                msg += f"\n{n}. {account.label}"
            return TextResponse(msg + t("PAYMENT_MENU_FOOTER"))
        return await self._manual_transfer(session, key)

    async def _start_qris(self, session: Session) -> Response:
        _, _, total = self.totals(session)
        if self.gateway is None:
            raise GatewayError("Payment gateway is not configured")
        invoice = await self.gateway.create_qris_invoice(
            session.order_id or "", total, description=f"{self.settings.SHOP_NAME} {session.order_id}"
        )
        await self.sessions.set_payment(
            session.customer_id, PaymentMethod.QRIS, invoice.invoice_id, total
        )
        await self.sessions.set_step(session.customer_id, SessionStep.AWAITING_PAYMENT)
        return TextResponse(
            t(
                "QRIS_CREATED",
                order_id=session.order_id,
                total=format_idr(total),
                qr=invoice.payment_url or invoice.invoice_id,
            )
        )

    async def _manual_transfer(self, session: Session, key: str) -> Response:
        account = self.settings.PAYMENT_ACCOUNTS[key]
        _, _, total = self.totals(session)
        await self.sessions.set_payment(session.customer_id, PaymentMethod(key), None, total)
        await self.sessions.set_step(session.customer_id, SessionStep.AWAITING_ADMIN_APPROVAL)
        return TextResponse(
            t(
                "MANUAL_TRANSFER",
                label=account.label,
                order_id=session.order_id,
                total=format_idr(total),
                number=account.number or "-",
                name=account.name or "-",
            )
        )

    async def _on_select_bank(self, session: Session, message: str) -> Response:
        banks = self._accounts("bank")
        index = self._pick(message, len(banks))
        if index is None:
            return TextResponse(t("PAYMENT_INVALID_CHOICE"))
        key, _ = banks[index]
        return await self._manual_transfer(session, key)

    # ------------------------------------------------------------------
    # waiting for payment
    # ------------------------------------------------------------------

    async def _on_awaiting_payment(self, session: Session, message: str) -> Response:
        if message != "status":
            return TextResponse(t("AWAITING_PAYMENT_HINT"))
        if self.gateway is None or not session.payment_invoice_id:
            raise GatewayError("Payment gateway is not configured")
        invoice = await self.gateway.get_invoice(session.payment_invoice_id)
        if not invoice.is_paid:
            return TextResponse(t("PAYMENT_PENDING"))
        delivery = await self.fulfillment.confirm_gateway_payment_locked(session.customer_id)
        return TextResponse(delivery.customer_message)

    async def _on_awaiting_approval(self, session: Session, message: str) -> Response:
        return TextResponse(t("AWAITING_APPROVAL_HINT", order_id=session.order_id))

    async def _on_media(self, session: Session, media: str) -> Response:
        if session.step not in (SessionStep.AWAITING_ADMIN_APPROVAL, SessionStep.UPLOAD_PROOF):
            return TextResponse(t("PROOF_NOT_EXPECTED"))
        await self.sessions.set_payment_proof(session.customer_id, media)
        await self.sessions.set_step(session.customer_id, SessionStep.UPLOAD_PROOF)
        log_order_event(
            "payment_proof",
            order_id=session.order_id or "",
            customer_id=session.customer_id,
            details={"media": media},
        )
        return TextResponse(t("PROOF_RECEIVED", order_id=session.order_id))
