# storebot/infrastructure/inventory/base.py
"""
Contract shared by the inventory backends.

Each product owns a FIFO queue of credential strings. The stock count of a
product is always the length of its queue; nothing else stores stock.
"""

from __future__ import annotations

import re
import secrets
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timedelta, timezone
from typing import Iterator

from storebot.core.errors import ValidationError
from storebot.domain.models.catalog import (
    AddResult,
    BulkAddResult,
    SaleRecord,
    SalesReport,
)

CREDENTIAL_SEPARATORS = (":", "|", ",")
MIN_CREDENTIAL_LENGTH = 10
MAX_BULK_ERRORS = 3

_PRODUCT_ID_RE = re.compile(r"[^a-z0-9\-_]")

_current_txn: ContextVar[str | None] = ContextVar("inventory_txn", default=None)


def new_transaction_id() -> str:
    return f"TXN-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def current_transaction_id() -> str:
    """Return the transaction id bound to this task, or a fresh one."""
    return _current_txn.get() or new_transaction_id()


@contextmanager
def transaction(txn_id: str | None = None) -> Iterator[str]:
    """Bind one transaction id to every inventory log entry in the block."""
    txn_id = txn_id or new_transaction_id()
    token = _current_txn.set(txn_id)
    try:
        yield txn_id
    finally:
        _current_txn.reset(token)


def sanitize_product_id(product_id: str) -> str:
    """Lowercase and strip to ``[a-z0-9-_]`` so ids are safe as file names/keys."""
    return _PRODUCT_ID_RE.sub("", (product_id or "").strip().lower())


def validate_credential(credential: str) -> str:
    """Return the trimmed credential or raise ValidationError."""
    value = (credential or "").strip()
    if not value:
        raise ValidationError("Credential must not be empty")
    if "\n" in value or "\r" in value:
        raise ValidationError("Credential must be a single line")
    if not any(sep in value for sep in CREDENTIAL_SEPARATORS):
        raise ValidationError("Credential must contain one of ':', '|' or ','")
    if len(value) < MIN_CREDENTIAL_LENGTH:
        raise ValidationError(
            f"Credential must be at least {MIN_CREDENTIAL_LENGTH} characters"
        )
    return value


def mask_credential(credential: str) -> str:
    return credential[:4] + "***" if len(credential) > 4 else "***"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventoryStore(ABC):
    """Async FIFO credential queues plus the append-only sales ledger."""

    backend_name = "base"

    @abstractmethod
    async def add_credentials(self, product_id: str, credential: str, admin_id: str) -> AddResult:
        ...

    @abstractmethod
    async def add_bulk_credentials(
        self, product_id: str, credentials: list[str], admin_id: str
    ) -> BulkAddResult:
        ...

    @abstractmethod
    async def dispense(self, product_id: str) -> str | None:
        """Atomically pop the oldest credential; ``None`` means no stock."""

    @abstractmethod
    async def requeue_front(self, product_id: str, credentials: list[str]) -> None:
        """Put credentials back at the head of the queue, order preserved."""

    @abstractmethod
    async def get_stock_count(self, product_id: str) -> int:
        ...

    @abstractmethod
    async def get_all_stock_counts(self) -> dict[str, int]:
        ...

    @abstractmethod
    async def archive_sold(
        self, product_id: str, credential: str, order_id: str, customer_id: str
    ) -> SaleRecord:
        ...

    @abstractmethod
    async def list_sales(self, days: int = 30, customer_id: str | None = None) -> list[SaleRecord]:
        ...

    async def get_sales_report(self, days: int = 7) -> SalesReport:
        sales = await self.list_sales(days)
        by_product: dict[str, int] = {}
        for sale in sales:
            by_product[sale.product_id] = by_product.get(sale.product_id, 0) + 1
        return SalesReport(
            period=f"Last {days} days",
            total_sales=len(sales),
            sales_by_product=by_product,
        )

    # -- shared helpers -------------------------------------------------

    @staticmethod
    def _product_id(product_id: str) -> str:
        pid = sanitize_product_id(product_id)
        if not pid:
            raise ValidationError(f"Invalid product id: {product_id!r}")
        return pid

    @staticmethod
    def _split_bulk(credentials: list[str]) -> tuple[list[str], int, list[str]]:
        """Return (valid, invalid_count, first errors) for a bulk upload."""
        valid: list[str] = []
        errors: list[str] = []
        invalid = 0
        for lineno, raw in enumerate(credentials, start=1):
            try:
                valid.append(validate_credential(raw))
            except ValidationError as exc:
                invalid += 1
                if len(errors) < MAX_BULK_ERRORS:
                    errors.append(f"Line {lineno}: {exc}")
        return valid, invalid, errors

    @staticmethod
    def _new_sale(
        product_id: str, credential: str, order_id: str, customer_id: str
    ) -> SaleRecord:
        return SaleRecord(
            transaction_id=new_transaction_id(),
            product_id=product_id,
            order_id=order_id,
            customer_id=customer_id,
            credential=credential,
            sold_at=utcnow().isoformat(),
        )

    @staticmethod
    def _in_window(sale: SaleRecord, days: int, customer_id: str | None) -> bool:
        if customer_id is not None and sale.customer_id != customer_id:
            return False
        try:
            sold_at = datetime.fromisoformat(sale.sold_at)
        except ValueError:
            return False
        if sold_at.tzinfo is None:
            sold_at = sold_at.replace(tzinfo=timezone.utc)
        return sold_at >= utcnow() - timedelta(days=days)
