"""Shared test fixtures for the storebot test suite."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from storebot.core.config import PaymentAccount, Settings
from storebot.domain.services.admin_commands import AdminCommandHandler
from storebot.domain.services.catalog import ProductCatalog
from storebot.domain.services.customer_locks import CustomerLocks
from storebot.domain.services.fulfillment import FulfillmentService
from storebot.domain.services.fuzzy_search import FuzzyMatcher
from storebot.domain.services.message_router import MessageRouter
from storebot.domain.services.promo_service import PromoService
from storebot.domain.services.sales_stats import SalesStatsService
from storebot.domain.services.stock_alert import StockAlertService
from storebot.domain.services.step_machine import SessionStepMachine
from storebot.infrastructure.cache.session_store import InMemorySessionStore
from storebot.infrastructure.external.payment_gateway import Invoice
from storebot.infrastructure.inventory.file_store import FileInventoryStore

ADMIN = "6280000000001"
CUSTOMER = "6281234567890"


@pytest.fixture(scope="session")
def event_loop():
    """Use a single event loop for the entire test session."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


def make_settings(**overrides) -> Settings:
    accounts = {
        "DANA": PaymentAccount(kind="ewallet", label="DANA", number="081200000001", name="Shop DANA", enabled=True),
        "GOPAY": PaymentAccount(kind="ewallet", label="GoPay", enabled=False),
        "BCA": PaymentAccount(kind="bank", label="BCA", number="1234567890", name="Shop BCA", enabled=True),
        "BRI": PaymentAccount(kind="bank", label="BRI", number="0987654321", name="Shop BRI", enabled=True),
    }
    values = dict(
        QRIS_ENABLED=True,
        PAYMENT_ACCOUNTS=accounts,
        USD_TO_IDR_RATE=15800,
        ADMIN_NUMBERS=[ADMIN],
    )
    values.update(overrides)
    return Settings(**values)


def make_gateway(status: str = "PENDING") -> MagicMock:
    gateway = MagicMock()
    gateway.create_qris_invoice = AsyncMock(
        return_value=Invoice(
            invoice_id="inv-1",
            external_id="ORD-1",
            amount=15800,
            status="PENDING",
            payment_url="https://checkout.example/inv-1",
        )
    )
    gateway.get_invoice = AsyncMock(
        return_value=Invoice(invoice_id="inv-1", external_id="ORD-1", amount=15800, status=status)
    )
    return gateway


def build_stack(tmp_path, settings=None, gateway=None, clock=None) -> SimpleNamespace:
    """Wire the real services over a temp directory, like ``build_container``."""
    settings = settings or make_settings()
    products_dir = tmp_path / "products"
    products_dir.mkdir(exist_ok=True)

    session_kwargs = dict(timeout_seconds=settings.SESSION_TIMEOUT_SECONDS, max_cart_items=settings.MAX_CART_ITEMS)
    if clock is not None:
        session_kwargs["clock"] = clock
    sessions = InMemorySessionStore(**session_kwargs)
    inventory = FileInventoryStore(products_dir, tmp_path / "logs")
    catalog = ProductCatalog(products_dir)
    promos = PromoService(tmp_path / "data")
    locks = CustomerLocks()
    stock_alerts = StockAlertService(catalog, inventory, settings.LOW_STOCK_THRESHOLD)
    sales_stats = SalesStatsService(catalog, inventory, settings.USD_TO_IDR_RATE)
    fulfillment = FulfillmentService(
        sessions, inventory, locks, gateway=gateway, stock_alerts=stock_alerts, promos=promos,
        usd_to_idr=settings.USD_TO_IDR_RATE,
    )
    counter = iter(range(1, 10_000))
    step_machine = SessionStepMachine(
        sessions,
        catalog,
        inventory,
        FuzzyMatcher(settings.FUZZY_MATCH_THRESHOLD),
        promos,
        fulfillment,
        gateway=gateway,
        settings=settings,
        order_id_factory=lambda: f"ORD-{1700000000000 + next(counter)}-ABCD",
    )
    admin = AdminCommandHandler(
        settings.ADMIN_NUMBERS, sessions, catalog, inventory, promos,
        fulfillment, stock_alerts, sales_stats,
    )
    router = MessageRouter(step_machine, admin, locks)
    return SimpleNamespace(
        settings=settings,
        sessions=sessions,
        inventory=inventory,
        catalog=catalog,
        promos=promos,
        locks=locks,
        fulfillment=fulfillment,
        step_machine=step_machine,
        admin=admin,
        router=router,
        gateway=gateway,
    )


@pytest.fixture
def stack(tmp_path):
    return build_stack(tmp_path)


@pytest.fixture
def inventory(tmp_path):
    return FileInventoryStore(tmp_path / "products", tmp_path / "logs")
