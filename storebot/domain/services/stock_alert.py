# storebot/domain/services/stock_alert.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from storebot.domain.services.catalog import ProductCatalog
from storebot.infrastructure.inventory.base import InventoryStore

RULE = "━━━━━━━━━━━━━━━━━━"


@dataclass(frozen=True)
class StockLevel:
    product_id: str
    name: str
    stock: int


class StockAlertService:
    def __init__(self, catalog: ProductCatalog, inventory: InventoryStore, low_stock_threshold: int = 5):
        self.catalog = catalog
        self.inventory = inventory
        self.low_stock_threshold = low_stock_threshold

    async def levels(self) -> list[StockLevel]:
        counts = await self.inventory.get_all_stock_counts()
        return [
            StockLevel(p.id, p.name, counts.get(p.id, 0)) for p in self.catalog.all()
        ]

    def is_low(self, stock: int) -> bool:
        return 0 < stock <= self.low_stock_threshold

    async def low_stock_warning(self, product_ids: list[str]) -> str | None:
        """Admin notice for the given products that just dropped low or empty."""
        lines = []
        for pid in dict.fromkeys(product_ids):
            stock = await self.inventory.get_stock_count(pid)
            if stock == 0:
                lines.append(f"❌ {pid}: stok habis")
            elif self.is_low(stock):
                lines.append(f"⚠️ {pid}: sisa {stock}")
        if not lines:
            return None
        return "📉 *Peringatan Stok*\n" + "\n".join(lines)

    async def format_stock_report(self) -> str:
        levels = await self.levels()
        out = [level for level in levels if level.stock == 0]
        low = [level for level in levels if self.is_low(level.stock)]

        msg = "📊 *Stock Report*\n\n"
        msg += f"⏰ {datetime.now(timezone.utc):%Y-%m-%d %H:%M} UTC\n\n"
        for level in levels:
            if level.stock == 0:
                icon = "❌"
            elif self.is_low(level.stock):
                icon = "⚠️"
            else:
                icon = "✅"
            msg += f"{icon} {level.name} (`{level.product_id}`): {level.stock}\n"

        total = sum(level.stock for level in levels)
        avg = total / len(levels) if levels else 0
        msg += f"\n📈 *Summary*\n{RULE}\n"
        msg += f"Total Products: {len(levels)}\n"
        msg += f"Total Stock: {total} items\n"
        msg += f"Average Stock: {avg:.1f} per product\n"
        msg += f"Low Stock (≤{self.low_stock_threshold}): {len(low)}\n"
        msg += f"Out of Stock: {len(out)}\n"
        if out or low:
            msg += "\n💡 Gunakan /addstock <id> <credential> atau /addstock-bulk <id>"
        return msg
