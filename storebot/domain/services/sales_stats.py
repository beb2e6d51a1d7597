# storebot/domain/services/sales_stats.py

from __future__ import annotations

from collections import Counter

from storebot.domain.i18n import format_idr, to_idr
from storebot.domain.services.catalog import ProductCatalog
from storebot.infrastructure.inventory.base import InventoryStore

RULE = "━━━━━━━━━━━━━━━━━━"


class SalesStatsService:
    """Aggregates for ``/salesreport`` and ``/stats``, read from the sales ledger."""

    def __init__(self, catalog: ProductCatalog, inventory: InventoryStore, usd_to_idr: int):
        self.catalog = catalog
        self.inventory = inventory
        self.usd_to_idr = usd_to_idr

    def _name(self, product_id: str) -> str:
        product = self.catalog.get(product_id)
        return product.name if product else product_id

    async def format_sales_report(self, days: int = 7) -> str:
        report = await self.inventory.get_sales_report(days)
        msg = f"💰 *Sales Report* ({report.period})\n{RULE}\n"
        msg += f"Total terjual: {report.total_sales} item\n\n"
        if not report.sales_by_product:
            return msg + "Belum ada penjualan pada periode ini."
        ranked = sorted(report.sales_by_product.items(), key=lambda kv: (-kv[1], kv[0]))
        for pid, count in ranked:
            msg += f"• {self._name(pid)}: {count}\n"
        return msg.rstrip()

    async def format_stats(self, days: int = 7, active_sessions: int = 0) -> str:
        sales = await self.inventory.list_sales(days)
        orders = {s.order_id for s in sales}
        customers = {s.customer_id for s in sales}
        revenue = 0
        for sale in sales:
            product = self.catalog.get(sale.product_id)
            if product:
                revenue += to_idr(product.price, self.usd_to_idr)
        top = Counter(s.product_id for s in sales).most_common(5)

        msg = f"📊 *Statistik {days} Hari Terakhir*\n{RULE}\n"
        msg += f"🧾 Pesanan: {len(orders)}\n"
        msg += f"📦 Item terjual: {len(sales)}\n"
        msg += f"👥 Pelanggan: {len(customers)}\n"
        msg += f"💵 Estimasi pendapatan: {format_idr(revenue)}\n"
        msg += f"💬 Sesi aktif: {active_sessions}\n"
        if top:
            msg += "\n🏆 *Produk Terlaris*\n"
            for rank, (pid, count) in enumerate(top, start=1):
                msg += f"{rank}. {self._name(pid)} ({count})\n"
        return msg.rstrip()
