# storebot/domain/models/session.py
"""
Domain dataclasses for the per-customer conversation session.

Session: step, cart and payment state of one customer.
CartLine: product snapshot taken at add-to-cart time.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

SESSION_VERSION = 2


class SessionStep(str, Enum):
    MENU = "menu"
    BROWSING = "browsing"
    CHECKOUT = "checkout"
    SELECT_PAYMENT = "select_payment"
    SELECT_BANK = "select_bank"
    AWAITING_PAYMENT = "awaiting_payment"
    AWAITING_ADMIN_APPROVAL = "awaiting_admin_approval"
    UPLOAD_PROOF = "upload_proof"


# Steps in which an order id has been assigned
ORDER_STEPS = frozenset({
    SessionStep.SELECT_PAYMENT,
    SessionStep.SELECT_BANK,
    SessionStep.AWAITING_PAYMENT,
    SessionStep.AWAITING_ADMIN_APPROVAL,
    SessionStep.UPLOAD_PROOF,
})

# Steps where the order is dropped when the customer walks away
ABANDONABLE_STEPS = frozenset({
    SessionStep.SELECT_PAYMENT,
    SessionStep.SELECT_BANK,
})

# Steps where money may already be on its way; only an explicit cancel leaves them
PAYMENT_PENDING_STEPS = ORDER_STEPS - ABANDONABLE_STEPS

# Steps an admin /approve can act on
APPROVABLE_STEPS = frozenset({
    SessionStep.AWAITING_ADMIN_APPROVAL,
    SessionStep.UPLOAD_PROOF,
})


class PaymentMethod(str, Enum):
    QRIS = "QRIS"
    DANA = "DANA"
    GOPAY = "GOPAY"
    OVO = "OVO"
    SHOPEEPAY = "SHOPEEPAY"
    BCA = "BCA"
    BNI = "BNI"
    BRI = "BRI"
    MANDIRI = "MANDIRI"


@dataclass(frozen=True)
class CartLine:
    """Immutable snapshot of a product; the price never re-fetches."""

    id: str
    name: str
    price: int
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price, "category": self.category}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CartLine:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            price=int(data.get("price", 0)),
            category=str(data.get("category", "")),
        )


@dataclass
class Session:
    customer_id: str
    step: SessionStep = SessionStep.MENU
    cart: list[CartLine] = field(default_factory=list)
    order_id: str | None = None
    payment_method: PaymentMethod | None = None
    payment_invoice_id: str | None = None
    payment_amount: int = 0
    payment_proof: str | None = None
    promo_code: str | None = None
    discount_percent: int = 0
    last_activity: float = field(default_factory=time.time)
    version: int = SESSION_VERSION

    def cart_total(self) -> int:
        """Sum of cart line prices, always recomputed."""
        return sum(line.price for line in self.cart)

    def touch(self, now: float | None = None) -> None:
        self.last_activity = time.time() if now is None else now

    def is_expired(self, timeout_seconds: int, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return (now - self.last_activity) > timeout_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "customer_id": self.customer_id,
            "step": self.step.value,
            "cart": [line.to_dict() for line in self.cart],
            "order_id": self.order_id,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "payment_invoice_id": self.payment_invoice_id,
            "payment_amount": self.payment_amount,
            "payment_proof": self.payment_proof,
            "promo_code": self.promo_code,
            "discount_percent": self.discount_percent,
            "last_activity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        data = migrate_session_dict(dict(data))
        try:
            step = SessionStep(data.get("step") or SessionStep.MENU.value)
        except ValueError:
            step = SessionStep.MENU
        method = data.get("payment_method")
        return cls(
            customer_id=data["customer_id"],
            step=step,
            cart=[CartLine.from_dict(item) for item in data.get("cart") or []],
            order_id=data.get("order_id") or None,
            payment_method=PaymentMethod(method) if method else None,
            payment_invoice_id=data.get("payment_invoice_id") or None,
            payment_amount=int(data.get("payment_amount") or 0),
            payment_proof=data.get("payment_proof") or None,
            promo_code=data.get("promo_code") or None,
            discount_percent=int(data.get("discount_percent") or 0),
            last_activity=float(data.get("last_activity") or time.time()),
            version=int(data.get("version", SESSION_VERSION)),
        )


def migrate_session_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a v1 session record in-place and return it.

    v1 records stored QRIS payment data under ``qrisInvoiceId`` /
    ``qrisAmount`` and had no ``version`` field.
    """
    if int(data.get("version", 1)) >= SESSION_VERSION:
        return data
    data["version"] = SESSION_VERSION
    if data.get("qrisInvoiceId") and not data.get("payment_invoice_id"):
        data["payment_invoice_id"] = data.pop("qrisInvoiceId")
        data.setdefault("payment_method", PaymentMethod.QRIS.value)
    if data.get("qrisAmount") and not data.get("payment_amount"):
        data["payment_amount"] = data.pop("qrisAmount")
    data.setdefault("last_activity", time.time())
    return data
