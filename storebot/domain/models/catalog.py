# storebot/domain/models/catalog.py

from enum import Enum

from pydantic import BaseModel, Field


class ProductCategory(str, Enum):
    PREMIUM = "premium"
    VCC = "vcc"
    GAME = "game"
    VPN = "vpn"


CATEGORY_LABELS = {
    ProductCategory.PREMIUM: "Akun Premium",
    ProductCategory.VCC: "Kartu Kredit Virtual",
    ProductCategory.GAME: "Game",
    ProductCategory.VPN: "VPN",
}


class Product(BaseModel):
    id: str
    name: str
    price: int = Field(..., ge=0, description="Price in the bot's internal unit (USD)")
    description: str = ""
    category: ProductCategory = ProductCategory.PREMIUM
    auto_discovered: bool = False


class SaleRecord(BaseModel):
    """One dispensed credential in the append-only sales ledger."""

    transaction_id: str
    product_id: str
    order_id: str
    customer_id: str
    credential: str
    sold_at: str  # ISO-8601 UTC


class SalesReport(BaseModel):
    period: str
    total_sales: int = 0
    sales_by_product: dict[str, int] = Field(default_factory=dict)


class AddResult(BaseModel):
    success: bool = True
    product_id: str
    stock_count: int


class BulkAddResult(BaseModel):
    success: bool = True
    product_id: str
    valid_count: int = 0
    invalid_count: int = 0
    stock_count: int = 0
    errors: list[str] = Field(default_factory=list)
