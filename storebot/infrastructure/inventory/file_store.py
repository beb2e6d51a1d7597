# storebot/infrastructure/inventory/file_store.py
"""
Filesystem inventory backend.

Layout under ``products_dir``::

    <product_id>.txt            one credential per line, head = oldest
    sold/sales_ledger.jsonl     one SaleRecord per line, append-only

Transaction log: ``<logs_dir>/inventory_transactions.log`` (JSON lines).

Every read-modify-write of a queue file happens under that product's
``asyncio.Lock`` and the rewrite goes through a temp file + ``os.replace``,
so two concurrent dispenses can never see the same head line.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections import defaultdict
from pathlib import Path
from typing import Any

from loguru import logger

from storebot.domain.models.catalog import AddResult, BulkAddResult, SaleRecord
from storebot.infrastructure.inventory.base import (
    InventoryStore,
    current_transaction_id,
    mask_credential,
    utcnow,
    validate_credential,
)

LEDGER_NAME = "sales_ledger.jsonl"
TXN_LOG_NAME = "inventory_transactions.log"


class FileInventoryStore(InventoryStore):
    backend_name = "file"

    def __init__(self, products_dir: str | Path, logs_dir: str | Path):
        self._dir = Path(products_dir)
        self._ledger = self._dir / "sold" / LEDGER_NAME
        self._txn_log = Path(logs_dir) / TXN_LOG_NAME
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._ledger_lock = asyncio.Lock()

        self._dir.mkdir(parents=True, exist_ok=True)
        self._ledger.parent.mkdir(parents=True, exist_ok=True)
        self._txn_log.parent.mkdir(parents=True, exist_ok=True)

    # -- queue file helpers ----------------------------------------------

    def _path(self, pid: str) -> Path:
        return self._dir / f"{pid}.txt"

    def _read_queue(self, pid: str) -> list[str]:
        path = self._path(pid)
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as fh:
            return [line.strip() for line in fh if line.strip()]

    def _write_queue(self, pid: str, lines: list[str]) -> None:
        path = self._path(pid)
        tmp = path.with_name(path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            fh.write("".join(f"{line}\n" for line in lines))
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)

    def _log_transaction(self, operation: str, pid: str, **details: Any) -> None:
        entry = {
            "transaction_id": current_transaction_id(),
            "timestamp": utcnow().isoformat(),
            "operation": operation,
            "product_id": pid,
            **details,
        }
        with self._txn_log.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry) + "\n")
        logger.debug("Inventory {} {} {}", operation, pid, details)

    # -- contract ---------------------------------------------------------

    async def add_credentials(self, product_id: str, credential: str, admin_id: str) -> AddResult:
        pid = self._product_id(product_id)
        value = validate_credential(credential)
        async with self._locks[pid]:
            lines = self._read_queue(pid)
            lines.append(value)
            self._write_queue(pid, lines)
            self._log_transaction(
                "add", pid, admin_id=admin_id, credential=mask_credential(value), stock=len(lines)
            )
        logger.info("Added credential to {} (stock={})", pid, len(lines))
        return AddResult(product_id=pid, stock_count=len(lines))

    async def add_bulk_credentials(
        self, product_id: str, credentials: list[str], admin_id: str
    ) -> BulkAddResult:
        pid = self._product_id(product_id)
        valid, invalid, errors = self._split_bulk(credentials)
        async with self._locks[pid]:
            lines = self._read_queue(pid)
            if valid:
                lines.extend(valid)
                self._write_queue(pid, lines)
                self._log_transaction(
                    "add_bulk", pid, admin_id=admin_id, added=len(valid), stock=len(lines)
                )
        logger.info(
            "Bulk add to {}: {} valid, {} invalid (stock={})", pid, len(valid), invalid, len(lines)
        )
        return BulkAddResult(
            success=bool(valid),
            product_id=pid,
            valid_count=len(valid),
            invalid_count=invalid,
            stock_count=len(lines),
            errors=errors,
        )

    async def dispense(self, product_id: str) -> str | None:
        pid = self._product_id(product_id)
        async with self._locks[pid]:
            lines = self._read_queue(pid)
            if not lines:
                logger.warning("Dispense on empty queue {}", pid)
                return None
            head, rest = lines[0], lines[1:]
            self._write_queue(pid, rest)
            self._log_transaction(
                "dispense", pid, credential=mask_credential(head), stock=len(rest)
            )
        return head

    async def requeue_front(self, product_id: str, credentials: list[str]) -> None:
        if not credentials:
            return
        pid = self._product_id(product_id)
        async with self._locks[pid]:
            lines = list(credentials) + self._read_queue(pid)
            self._write_queue(pid, lines)
            self._log_transaction("requeue", pid, count=len(credentials), stock=len(lines))
        logger.warning("Requeued {} credential(s) to head of {}", len(credentials), pid)

    async def get_stock_count(self, product_id: str) -> int:
        pid = self._product_id(product_id)
        async with self._locks[pid]:
            return len(self._read_queue(pid))

    async def get_all_stock_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for path in sorted(self._dir.glob("*.txt")):
            counts[path.stem] = await self.get_stock_count(path.stem)
        return counts

    async def archive_sold(
        self, product_id: str, credential: str, order_id: str, customer_id: str
    ) -> SaleRecord:
        pid = self._product_id(product_id)
        record = self._new_sale(pid, credential, order_id, customer_id)
        async with self._ledger_lock:
            with self._ledger.open("a", encoding="utf-8") as fh:
                fh.write(record.model_dump_json() + "\n")
            self._log_transaction(
                "archive", pid, order_id=order_id, sale_id=record.transaction_id
            )
        return record

    async def list_sales(self, days: int = 30, customer_id: str | None = None) -> list[SaleRecord]:
        if not self._ledger.exists():
            return []
        sales: list[SaleRecord] = []
        async with self._ledger_lock:
            with self._ledger.open("r", encoding="utf-8") as fh:
                raw_lines = [line for line in fh if line.strip()]
        for line in raw_lines:
            try:
                record = SaleRecord.model_validate_json(line)
            except ValueError:
                logger.warning("Skipping malformed ledger line: {!r}", line[:80])
                continue
            if self._in_window(record, days, customer_id):
                sales.append(record)
        return sales
