# storebot/domain/services/admin_commands.py
"""
Admin command surface (messages starting with ``/`` from an admin number).

Every command returns a ``Response``; ``/approve`` returns a
``DeliveryResponse`` and ``/broadcast`` a ``BroadcastResponse``, the rest
plain text. Store errors propagate to the router, which shows their message
to the admin.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from storebot.core.errors import OutOfStockError, ValidationError
from storebot.domain.models.responses import (
    BroadcastResponse,
    DeliveryResponse,
    Response,
    TextResponse,
)
from storebot.domain.services.catalog import ProductCatalog
from storebot.domain.services.fulfillment import FulfillmentService
from storebot.domain.services.promo_service import PromoService
from storebot.domain.services.sales_stats import SalesStatsService
from storebot.domain.services.stock_alert import StockAlertService
from storebot.infrastructure.audit import log_admin_action
from storebot.infrastructure.cache.session_store import SessionStore
from storebot.infrastructure.inventory.base import InventoryStore, sanitize_product_id

logger = logging.getLogger("admin")

ADMIN_HELP = (
    "🔧 *Perintah Admin*\n\n"
    "/approve <orderId> - kirim kredensial setelah pembayaran terverifikasi\n"
    "/broadcast <pesan> - kirim pesan ke semua pelanggan\n"
    "/stock [id] - lihat stok\n"
    "/addstock <id> <kredensial> - tambah satu kredensial\n"
    "/addstock-bulk <id> - tambah banyak kredensial (satu per baris)\n"
    "/stockreport - laporan stok\n"
    "/salesreport [hari] - laporan penjualan\n"
    "/createpromo KODE PERSEN HARI [MAKS] - buat kode promo\n"
    "/listpromos - daftar promo aktif\n"
    "/deletepromo KODE - hapus promo\n"
    "/promostats KODE - statistik promo\n"
    "/stats [hari] - statistik penjualan\n"
    "/status - status sistem\n"
    "/refresh - muat ulang katalog"
)


def normalize_number(raw: str) -> str:
    """``+62 812-3456@c.us`` → ``628123456``."""
    value = (raw or "").split("@", 1)[0]
    return "".join(ch for ch in value if ch.isdigit())


def _days(args: list[str], default: int = 7) -> int:
    if not args:
        return default
    if not args[0].isdigit() or int(args[0]) < 1:
        raise ValidationError("Jumlah hari harus angka positif")
    return int(args[0])


class AdminCommandHandler:
    def __init__(
        self,
        admin_numbers: list[str],
        sessions: SessionStore,
        catalog: ProductCatalog,
        inventory: InventoryStore,
        promos: PromoService,
        fulfillment: FulfillmentService,
        stock_alerts: StockAlertService,
        sales_stats: SalesStatsService,
        health_check: Callable[[], Awaitable[dict]] | None = None,
    ):
        self.admin_numbers = {normalize_number(n) for n in admin_numbers if normalize_number(n)}
        self.sessions = sessions
        self.catalog = catalog
        self.inventory = inventory
        self.promos = promos
        self.fulfillment = fulfillment
        self.stock_alerts = stock_alerts
        self.sales_stats = sales_stats
        self.health_check = health_check
        self.started_at = time.time()
        # admin id -> product id waiting for a bulk credential list
        self._pending_bulk: dict[str, str] = {}

        self._commands: dict[str, Callable[[str, list[str], str], Awaitable[Response]]] = {
            "/approve": self._approve,
            "/broadcast": self._broadcast,
            "/stock": self._stock,
            "/addstock": self._addstock,
            "/addstock-bulk": self._addstock_bulk,
            "/stockreport": self._stockreport,
            "/salesreport": self._salesreport,
            "/createpromo": self._createpromo,
            "/listpromos": self._listpromos,
            "/deletepromo": self._deletepromo,
            "/promostats": self._promostats,
            "/stats": self._stats,
            "/status": self._status,
            "/refresh": self._refresh,
        }

    def is_admin(self, customer_id: str) -> bool:
        return normalize_number(customer_id) in self.admin_numbers

    def has_pending_bulk(self, admin_id: str) -> bool:
        return admin_id in self._pending_bulk

    async def handle(self, admin_id: str, raw_message: str) -> Response:
        """``raw_message`` keeps its case: credentials and broadcasts are verbatim."""
        first_line, _, rest = raw_message.strip().partition("\n")
        parts = first_line.split()
        command = parts[0].lower() if parts else ""
        handler = self._commands.get(command)
        if handler is None:
            return TextResponse(ADMIN_HELP)
        logger.info("Admin %s → %s", admin_id, command)
        return await handler(admin_id, parts[1:], rest)

    async def handle_bulk_payload(self, admin_id: str, raw_message: str) -> Response:
        product_id = self._pending_bulk.pop(admin_id)
        return await self._bulk_add(admin_id, product_id, raw_message.splitlines())

    # -- orders ----------------------------------------------------------

    async def _approve(self, admin_id: str, args: list[str], rest: str) -> Response:
        if not args:
            return TextResponse("Format: /approve <orderId>")
        order_id = args[0].upper()
        try:
            delivery = await self.fulfillment.approve(order_id, admin_id=admin_id)
        except OutOfStockError as exc:
            log_admin_action(
                "approve_failed", admin_id=admin_id,
                details={"order_id": order_id, "missing": exc.product_id},
            )
            return TextResponse(
                f"❌ *Pengiriman gagal* untuk {order_id}\n"
                f"Stok *{exc.product_id}* habis. Kredensial yang sudah diambil dikembalikan "
                f"ke antrean dan pesanan tetap menunggu.\n"
                f"Tambah stok dengan /addstock lalu jalankan /approve lagi."
            )
        log_admin_action("approve", admin_id=admin_id, details={"order_id": order_id})
        return DeliveryResponse(
            text=delivery.admin_summary(),
            customer_id=delivery.customer_id,
            customer_message=delivery.customer_message,
            order_id=delivery.order_id,
        )

    async def _broadcast(self, admin_id: str, args: list[str], rest: str) -> Response:
        text = " ".join(args)
        if rest:
            text = f"{text}\n{rest}" if text else rest
        if not text.strip():
            return TextResponse("Format: /broadcast <pesan>")
        recipients = [
            cid for cid in await self.sessions.all_customer_ids() if not self.is_admin(cid)
        ]
        log_admin_action("broadcast", admin_id=admin_id, details={"recipients": len(recipients)})
        return BroadcastResponse(
            text=f"📢 Broadcast dikirim ke {len(recipients)} pelanggan.",
            recipients=recipients,
            message=f"📢 *Pengumuman*\n\n{text.strip()}",
        )

    # -- stock -----------------------------------------------------------

    async def _stock(self, admin_id: str, args: list[str], rest: str) -> Response:
        if len(args) >= 2:
            raise ValidationError(
                "Stok dihitung dari antrean kredensial dan tidak bisa diubah langsung. "
                "Gunakan /addstock <id> <kredensial> atau /addstock-bulk <id>."
            )
        if args:
            pid = sanitize_product_id(args[0])
            count = await self.inventory.get_stock_count(pid)
            return TextResponse(f"📦 Stok *{pid}*: {count}")
        counts = await self.inventory.get_all_stock_counts()
        lines = [f"• {p.id}: {counts.get(p.id, 0)}" for p in self.catalog.all()]
        return TextResponse("📦 *Stok Saat Ini*\n" + "\n".join(lines))

    def _require_product(self, raw_id: str) -> str:
        pid = sanitize_product_id(raw_id)
        if not pid:
            raise ValidationError(f"ID produk tidak valid: {raw_id}")
        return pid

    async def _addstock(self, admin_id: str, args: list[str], rest: str) -> Response:
        if len(args) < 2:
            return TextResponse("Format: /addstock <id> <kredensial>")
        pid = self._require_product(args[0])
        result = await self.inventory.add_credentials(pid, " ".join(args[1:]), admin_id)
        log_admin_action("addstock", admin_id=admin_id, details={"product_id": pid})
        msg = f"✅ Kredensial ditambahkan ke *{pid}*\n📦 Stok sekarang: {result.stock_count}"
        if self.catalog.get(pid) is None:
            msg += "\n⚠️ Produk belum ada di katalog, jalankan /refresh."
        return TextResponse(msg)

    async def _addstock_bulk(self, admin_id: str, args: list[str], rest: str) -> Response:
        if not args:
            return TextResponse("Format: /addstock-bulk <id>\n<kredensial 1>\n<kredensial 2>\n...")
        pid = self._require_product(args[0])
        lines = [line for line in rest.splitlines() if line.strip()]
        if lines:
            return await self._bulk_add(admin_id, pid, lines)
        self._pending_bulk[admin_id] = pid
        return TextResponse(
            f"📝 Kirim kredensial untuk *{pid}* di pesan berikutnya, satu per baris."
        )

    async def _bulk_add(self, admin_id: str, pid: str, lines: list[str]) -> Response:
        lines = [line for line in lines if line.strip()]
        result = await self.inventory.add_bulk_credentials(pid, lines, admin_id)
        log_admin_action(
            "addstock_bulk", admin_id=admin_id,
            details={"product_id": pid, "valid": result.valid_count, "invalid": result.invalid_count},
        )
        msg = (
            f"📦 *Bulk Add {pid}*\n"
            f"✅ Valid: {result.valid_count}\n"
            f"❌ Invalid: {result.invalid_count}\n"
            f"📊 Stok sekarang: {result.stock_count}"
        )
        if result.errors:
            msg += "\n\n" + "\n".join(result.errors)
        return TextResponse(msg)

    async def _stockreport(self, admin_id: str, args: list[str], rest: str) -> Response:
        return TextResponse(await self.stock_alerts.format_stock_report())

    async def _salesreport(self, admin_id: str, args: list[str], rest: str) -> Response:
        return TextResponse(await self.sales_stats.format_sales_report(_days(args)))

    async def _stats(self, admin_id: str, args: list[str], rest: str) -> Response:
        active = len(await self.sessions.all_customer_ids())
        return TextResponse(await self.sales_stats.format_stats(_days(args), active_sessions=active))

    # -- promos ----------------------------------------------------------

    async def _createpromo(self, admin_id: str, args: list[str], rest: str) -> Response:
        usage = "Format: /createpromo KODE PERSEN HARI [MAKS]"
        if len(args) < 3:
            return TextResponse(usage)
        try:
            percent, days = int(args[1]), int(args[2])
            max_uses = int(args[3]) if len(args) > 3 else 0
        except ValueError:
            return TextResponse(usage)
        promo = self.promos.create_promo(args[0], percent, days, max_uses)
        log_admin_action("createpromo", admin_id=admin_id, details={"code": promo.code})
        return TextResponse(
            f"✅ Kode promo {promo.code} berhasil dibuat!\n\n"
            f"💰 Diskon: {promo.discount_percent}%\n"
            f"📅 Berlaku: {days} hari\n"
            f"🔢 Maks penggunaan: {promo.max_uses or 'Unlimited'}"
        )

    async def _listpromos(self, admin_id: str, args: list[str], rest: str) -> Response:
        promos = self.promos.get_all_promos()
        if not promos:
            return TextResponse("📭 Tidak ada promo aktif.")
        lines = []
        for promo in promos:
            limit = promo.max_uses or "∞"
            lines.append(f"• *{promo.code}* {promo.discount_percent}% ({promo.current_uses}/{limit})")
        return TextResponse("🎟️ *Promo Aktif*\n" + "\n".join(lines))

    async def _deletepromo(self, admin_id: str, args: list[str], rest: str) -> Response:
        if not args:
            return TextResponse("Format: /deletepromo KODE")
        self.promos.delete_promo(args[0])
        log_admin_action("deletepromo", admin_id=admin_id, details={"code": args[0].upper()})
        return TextResponse(f"✅ Kode promo {args[0].upper()} berhasil dihapus")

    async def _promostats(self, admin_id: str, args: list[str], rest: str) -> Response:
        if not args:
            return TextResponse("Format: /promostats KODE")
        stats = self.promos.get_promo_stats(args[0])
        remaining = "Unlimited" if stats.remaining_uses < 0 else stats.remaining_uses
        if not stats.is_active:
            state = "Nonaktif"
        elif stats.is_expired:
            state = "Kadaluarsa"
        else:
            state = "Aktif"
        return TextResponse(
            f"📊 *Promo {stats.code}*\n"
            f"Diskon: {stats.discount_percent}%\n"
            f"Dipakai: {stats.total_uses}\n"
            f"Sisa: {remaining}\n"
            f"Berakhir dalam: {stats.expires_in_days} hari\n"
            f"Status: {state}"
        )

    # -- system ----------------------------------------------------------

    async def _status(self, admin_id: str, args: list[str], rest: str) -> Response:
        uptime = int(time.time() - self.started_at)
        hours, minutes = divmod(uptime // 60, 60)
        health = await self.health_check() if self.health_check else {}
        sessions = len(await self.sessions.all_customer_ids())
        msg = (
            "🖥️ *Status Sistem*\n"
            f"⏱️ Uptime: {hours}j {minutes}m\n"
            f"📦 Inventory: {self.inventory.backend_name}\n"
            f"💬 Sesi aktif: {sessions}\n"
            f"🛍️ Produk: {len(self.catalog.all())}"
        )
        for name, value in health.items():
            msg += f"\n• {name}: {value}"
        return TextResponse(msg)

    async def _refresh(self, admin_id: str, args: list[str], rest: str) -> Response:
        count = self.catalog.refresh()
        log_admin_action("refresh", admin_id=admin_id, details={"products": count})
        return TextResponse(f"🔄 Katalog dimuat ulang: {count} produk")
