# storebot/core/errors.py
"""
Error taxonomy shared by the domain services and the storage layer.

Every error here is recovered at the message-handling boundary
(``MessageRouter.route`` / the webhook routes) and turned into reply text,
so none of them ever stops the inbound message loop.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for recoverable storefront errors."""

    #: Reply shown to customers; admins see ``str(exc)`` instead.
    customer_message = "❌ Terjadi kesalahan sistem. Silakan hubungi admin."


class ValidationError(StoreError):
    """Malformed input (credential format, promo parameters, ...)."""

    customer_message = "❌ Input tidak valid. Silakan coba lagi."


class NotFoundError(StoreError):
    """Unknown product id, order id or promo code."""

    customer_message = "❌ Data tidak ditemukan."


class OutOfStockError(StoreError):
    """A cart line could not be fulfilled because its queue is empty."""

    customer_message = "❌ Stok produk sedang habis. Admin akan segera menghubungi Anda."

    def __init__(self, product_id: str, order_id: str | None = None):
        self.product_id = product_id
        self.order_id = order_id
        super().__init__(f"Out of stock: {product_id} (order {order_id or '-'})")


class DeliveryError(StoreError):
    """Credentials were dispensed but the sale could not be recorded; they went back to stock."""

    customer_message = "❌ Pesanan belum dapat dikirim. Admin akan segera menghubungi Anda."


class GatewayError(StoreError):
    """Payment gateway call failed or timed out."""

    customer_message = (
        "⚠️ Layanan pembayaran sedang tidak dapat dihubungi. "
        "Silakan coba lagi beberapa saat lagi."
    )


class ConcurrencyConflict(StoreError):
    """A lock-free inventory transaction kept losing races."""
