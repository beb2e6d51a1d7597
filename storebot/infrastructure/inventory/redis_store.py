# storebot/infrastructure/inventory/redis_store.py
"""
Redis inventory backend.

Keys:
    inventory:credentials:<id>     LIST, head = oldest credential
    inventory:products             SET of product ids ever stocked
    inventory:sales:<YYYY-MM-DD>   HASH  <order_id>:<sale txn> -> SaleRecord JSON
    inventory:transactions         STREAM of inventory log entries
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from storebot.domain.models.catalog import AddResult, BulkAddResult, SaleRecord
from storebot.infrastructure.inventory.base import (
    InventoryStore,
    current_transaction_id,
    mask_credential,
    utcnow,
    validate_credential,
)

PRODUCTS_KEY = "inventory:products"
TXN_STREAM_KEY = "inventory:transactions"
TXN_STREAM_MAXLEN = 10_000
SALES_TTL_SECONDS = 90 * 24 * 60 * 60


def _queue_key(pid: str) -> str:
    return f"inventory:credentials:{pid}"


def _sales_key(day: str) -> str:
    return f"inventory:sales:{day}"


class RedisInventoryStore(InventoryStore):
    backend_name = "redis"

    def __init__(self, client: redis.Redis):
        self._r = client

    def _txn_fields(self, operation: str, pid: str, **details: Any) -> dict[str, str]:
        return {
            "transaction_id": current_transaction_id(),
            "timestamp": utcnow().isoformat(),
            "operation": operation,
            "product_id": pid,
            "details": json.dumps(details),
        }

    async def add_credentials(self, product_id: str, credential: str, admin_id: str) -> AddResult:
        pid = self._product_id(product_id)
        value = validate_credential(credential)
        async with self._r.pipeline(transaction=True) as pipe:
            pipe.rpush(_queue_key(pid), value)
            pipe.sadd(PRODUCTS_KEY, pid)
            pipe.xadd(
                TXN_STREAM_KEY,
                self._txn_fields("add", pid, admin_id=admin_id, credential=mask_credential(value)),
                maxlen=TXN_STREAM_MAXLEN,
                approximate=True,
            )
            stock, *_ = await pipe.execute()
        logger.info("Added credential to {} (stock={})", pid, stock)
        return AddResult(product_id=pid, stock_count=int(stock))

    async def add_bulk_credentials(
        self, product_id: str, credentials: list[str], admin_id: str
    ) -> BulkAddResult:
        pid = self._product_id(product_id)
        valid, invalid, errors = self._split_bulk(credentials)
        if valid:
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.rpush(_queue_key(pid), *valid)
                pipe.sadd(PRODUCTS_KEY, pid)
                pipe.xadd(
                    TXN_STREAM_KEY,
                    self._txn_fields("add_bulk", pid, admin_id=admin_id, added=len(valid)),
                    maxlen=TXN_STREAM_MAXLEN,
                    approximate=True,
                )
                stock, *_ = await pipe.execute()
        else:
            stock = await self._r.llen(_queue_key(pid))
        logger.info(
            "Bulk add to {}: {} valid, {} invalid (stock={})", pid, len(valid), invalid, stock
        )
        return BulkAddResult(
            success=bool(valid),
            product_id=pid,
            valid_count=len(valid),
            invalid_count=invalid,
            stock_count=int(stock),
            errors=errors,
        )

    async def dispense(self, product_id: str) -> str | None:
        """LPOP the head; the stream entry is written only for a real pop."""
        pid = self._product_id(product_id)
        credential = await self._r.lpop(_queue_key(pid))
        if credential is None:
            logger.warning("Dispense on empty queue {}", pid)
            return None
        try:
            await self._r.xadd(
                TXN_STREAM_KEY,
                self._txn_fields("dispense", pid, credential=mask_credential(credential)),
                maxlen=TXN_STREAM_MAXLEN,
                approximate=True,
            )
        except RedisError:
            # the credential is already popped and must reach the caller
            logger.exception("Transaction log write failed for dispense on {}", pid)
        return credential

    async def requeue_front(self, product_id: str, credentials: list[str]) -> None:
        if not credentials:
            return
        pid = self._product_id(product_id)
        async with self._r.pipeline(transaction=True) as pipe:
            # LPUSH prepends one by one, so push in reverse to keep order
            pipe.lpush(_queue_key(pid), *reversed(credentials))
            pipe.xadd(
                TXN_STREAM_KEY,
                self._txn_fields("requeue", pid, count=len(credentials)),
                maxlen=TXN_STREAM_MAXLEN,
                approximate=True,
            )
            await pipe.execute()
        logger.warning("Requeued {} credential(s) to head of {}", len(credentials), pid)

    async def get_stock_count(self, product_id: str) -> int:
        return int(await self._r.llen(_queue_key(self._product_id(product_id))))

    async def get_all_stock_counts(self) -> dict[str, int]:
        pids = sorted(await self._r.smembers(PRODUCTS_KEY))
        if not pids:
            return {}
        async with self._r.pipeline(transaction=False) as pipe:
            for pid in pids:
                pipe.llen(_queue_key(pid))
            counts = await pipe.execute()
        return {pid: int(n) for pid, n in zip(pids, counts)}

    async def archive_sold(
        self, product_id: str, credential: str, order_id: str, customer_id: str
    ) -> SaleRecord:
        pid = self._product_id(product_id)
        record = self._new_sale(pid, credential, order_id, customer_id)
        key = _sales_key(record.sold_at[:10])
        async with self._r.pipeline(transaction=True) as pipe:
            pipe.hset(key, f"{order_id}:{record.transaction_id}", record.model_dump_json())
            pipe.expire(key, SALES_TTL_SECONDS)
            pipe.xadd(
                TXN_STREAM_KEY,
                self._txn_fields("archive", pid, order_id=order_id, sale_id=record.transaction_id),
                maxlen=TXN_STREAM_MAXLEN,
                approximate=True,
            )
            await pipe.execute()
        return record

    async def list_sales(self, days: int = 30, customer_id: str | None = None) -> list[SaleRecord]:
        today = utcnow().date()
        sales: list[SaleRecord] = []
        for offset in range(days + 1):
            day = (today - timedelta(days=offset)).isoformat()
            raw = await self._r.hgetall(_sales_key(day))
            for value in raw.values():
                try:
                    record = SaleRecord.model_validate_json(value)
                except ValueError:
                    logger.warning("Skipping malformed sale record in {}", day)
                    continue
                if self._in_window(record, days, customer_id):
                    sales.append(record)
        sales.sort(key=lambda s: s.sold_at)
        return sales
