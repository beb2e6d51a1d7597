# storebot/infrastructure/inventory/factory.py

from __future__ import annotations

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from storebot.core.config import Settings
from storebot.infrastructure.inventory.base import InventoryStore
from storebot.infrastructure.inventory.file_store import FileInventoryStore
from storebot.infrastructure.inventory.redis_store import RedisInventoryStore


async def create_inventory_store(
    settings: Settings, client: redis.Redis | None = None
) -> InventoryStore:
    """Prefer Redis when enabled and reachable, otherwise the file backend."""
    if settings.USE_REDIS and client is not None:
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis unavailable ({}), falling back to file inventory", exc)
        else:
            logger.info("Inventory backend: redis ({})", settings.REDIS_URL)
            return RedisInventoryStore(client)

    logger.info("Inventory backend: file ({})", settings.PRODUCTS_DIR)
    return FileInventoryStore(settings.PRODUCTS_DIR, settings.LOGS_DIR)
