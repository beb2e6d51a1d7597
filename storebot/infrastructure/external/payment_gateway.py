# storebot/infrastructure/external/payment_gateway.py
"""
Thin Xendit client for QRIS invoices.

Only two calls are needed: create an invoice for an order and read its
status back. Every transport or HTTP failure is surfaced as
``GatewayError`` so the step machine can keep the session where it was.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger

from storebot.core.errors import GatewayError

PAID_STATUSES = frozenset({"PAID", "SETTLED", "SUCCEEDED"})


@dataclass(frozen=True)
class Invoice:
    invoice_id: str
    external_id: str
    amount: int
    status: str
    payment_url: str = ""

    @property
    def is_paid(self) -> bool:
        return self.status.upper() in PAID_STATUSES


class XenditClient:
    def __init__(self, secret_key: str, base_url: str = "https://api.xendit.co", timeout: float = 15.0):
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        if not self._secret_key:
            raise GatewayError("XENDIT_SECRET_KEY is not configured")
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, auth=(self._secret_key, "")) as client:
                resp = await client.request(method, url, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("Xendit timeout on {} {}", method, path)
            raise GatewayError(f"Payment gateway timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.warning("Xendit transport error on {} {}: {}", method, path, exc)
            raise GatewayError(f"Payment gateway unreachable: {exc}") from exc

        if resp.status_code >= 400:
            logger.error("Xendit HTTP error {}: {}", resp.status_code, resp.text)
            raise GatewayError(f"Payment gateway error {resp.status_code}")
        return resp.json()

    @staticmethod
    def _invoice(data: dict) -> Invoice:
        return Invoice(
            invoice_id=str(data.get("id", "")),
            external_id=str(data.get("external_id", "")),
            amount=int(data.get("amount") or 0),
            status=str(data.get("status", "PENDING")),
            payment_url=str(data.get("invoice_url", "")),
        )

    async def create_qris_invoice(self, order_id: str, amount: int, description: str = "") -> Invoice:
        data = await self._request(
            "POST",
            "/v2/invoices",
            json={
                "external_id": order_id,
                "amount": amount,
                "currency": "IDR",
                "payment_methods": ["QRIS"],
                "description": description or f"Order {order_id}",
            },
        )
        invoice = self._invoice(data)
        logger.info("Xendit invoice {} created for {} (Rp {})", invoice.invoice_id, order_id, amount)
        return invoice

    async def get_invoice(self, invoice_id: str) -> Invoice:
        return self._invoice(await self._request("GET", f"/v2/invoices/{invoice_id}"))
