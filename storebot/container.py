# storebot/container.py
"""
Builds every service once at startup and hands out the shared instances.
Routes reach it through ``request.app.state.container``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from storebot.core.config import Settings
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
from storebot.infrastructure.cache.redis_client import get_redis_client
from storebot.infrastructure.cache.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from storebot.infrastructure.external.payment_gateway import XenditClient
from storebot.infrastructure.inventory.base import InventoryStore
from storebot.infrastructure.inventory.factory import create_inventory_store


@dataclass
class Container:
    settings: Settings
    redis: redis.Redis | None
    sessions: SessionStore
    catalog: ProductCatalog
    inventory: InventoryStore
    promos: PromoService
    gateway: XenditClient | None
    locks: CustomerLocks
    fulfillment: FulfillmentService
    step_machine: SessionStepMachine
    admin: AdminCommandHandler
    router: MessageRouter

    async def health(self) -> dict:
        return await check_health(self.redis, self.inventory, self.gateway)


async def check_health(
    client: redis.Redis | None, inventory: InventoryStore, gateway: XenditClient | None
) -> dict:
    status = {"inventory": inventory.backend_name, "redis": "disabled"}
    if client is not None:
        try:
            await client.ping()
            status["redis"] = "ok"
        except (RedisError, OSError) as exc:
            status["redis"] = f"error: {exc}"
    status["gateway"] = "configured" if gateway else "not configured"
    return status


async def build_container(settings: Settings) -> Container:
    client: redis.Redis | None = None
    if settings.USE_REDIS:
        client = get_redis_client()
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis unreachable ({}), using in-process storage", exc)
            client = None

    session_kwargs = dict(
        timeout_seconds=settings.SESSION_TIMEOUT_SECONDS,
        max_cart_items=settings.MAX_CART_ITEMS,
    )
    if client is not None:
        sessions: SessionStore = RedisSessionStore(client, **session_kwargs)
    else:
        sessions = InMemorySessionStore(**session_kwargs)

    inventory = await create_inventory_store(settings, client)
    catalog = ProductCatalog(settings.PRODUCTS_DIR)
    promos = PromoService(settings.DATA_DIR)
    gateway = (
        XenditClient(
            settings.XENDIT_SECRET_KEY,
            base_url=settings.XENDIT_BASE_URL,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
        )
        if settings.XENDIT_SECRET_KEY
        else None
    )
    locks = CustomerLocks()
    stock_alerts = StockAlertService(catalog, inventory, settings.LOW_STOCK_THRESHOLD)
    sales_stats = SalesStatsService(catalog, inventory, settings.USD_TO_IDR_RATE)
    fulfillment = FulfillmentService(
        sessions,
        inventory,
        locks,
        gateway=gateway,
        stock_alerts=stock_alerts,
        promos=promos,
        usd_to_idr=settings.USD_TO_IDR_RATE,
    )
    step_machine = SessionStepMachine(
        sessions,
        catalog,
        inventory,
        FuzzyMatcher(settings.FUZZY_MATCH_THRESHOLD),
        promos,
        fulfillment,
        gateway=gateway,
        settings=settings,
    )

    admin = AdminCommandHandler(
        settings.ADMIN_NUMBERS,
        sessions,
        catalog,
        inventory,
        promos,
        fulfillment,
        stock_alerts,
        sales_stats,
        health_check=partial(check_health, client, inventory, gateway),
    )
    container = Container(
        settings=settings,
        redis=client,
        sessions=sessions,
        catalog=catalog,
        inventory=inventory,
        promos=promos,
        gateway=gateway,
        locks=locks,
        fulfillment=fulfillment,
        step_machine=step_machine,
        admin=admin,
        router=MessageRouter(step_machine, admin, locks),
    )
    logger.info(
        "Container ready: sessions={}, inventory={}, products={}, admins={}",
        type(sessions).__name__,
        inventory.backend_name,
        len(catalog.all()),
        len(container.admin.admin_numbers),
    )
    return container
