# storebot/domain/services/promo_service.py
"""
Promo codes backed by two JSON files in the data directory:

* ``promos.json``       : list of promo records (camelCase keys)
* ``promo_usage.json``  : customer id -> list of codes already used

All reads/writes of either file go through one ``threading.Lock``.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storebot.core.errors import NotFoundError, ValidationError

logger = logging.getLogger("promo")

DAY_MS = 24 * 60 * 60 * 1000
_CODE_RE = re.compile(r"^[A-Z0-9]{3,}$")


class PromoCode(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: str
    discount_percent: int
    expiry_date: int  # epoch ms
    max_uses: int = 0  # 0 = unlimited
    current_uses: int = 0
    created_at: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class PromoValidation:
    valid: bool
    message: str
    discount_percent: int = 0


@dataclass(frozen=True)
class Discount:
    original_amount: int
    discount_amount: int
    final_amount: int
    discount_percent: int


@dataclass(frozen=True)
class PromoStats:
    code: str
    discount_percent: int
    total_uses: int
    remaining_uses: int  # -1 = unlimited
    expires_in_days: int
    is_active: bool
    is_expired: bool


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class PromoService:
    def __init__(self, data_dir: str | Path, clock: Callable[[], float] = time.time):
        self._dir = Path(data_dir)
        self._promos_file = self._dir / "promos.json"
        self._usage_file = self._dir / "promo_usage.json"
        self._clock = clock
        self._lock = threading.Lock()

        self._dir.mkdir(parents=True, exist_ok=True)
        if not self._promos_file.exists():
            self._write(self._promos_file, [])
        if not self._usage_file.exists():
            self._write(self._usage_file, {})

    # -- file helpers ----------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _read(path: Path, default: Any) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to read %s: %s", path, exc)
            return default

    @staticmethod
    def _write(path: Path, data: Any) -> None:
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def _load_promos(self) -> list[PromoCode]:
        return [PromoCode.model_validate(p) for p in self._read(self._promos_file, [])]

    def _save_promos(self, promos: list[PromoCode]) -> None:
        self._write(self._promos_file, [p.model_dump(by_alias=True) for p in promos])

    def _load_usage(self) -> dict[str, list[str]]:
        return self._read(self._usage_file, {})

    # -- public API ------------------------------------------------------

    def create_promo(
        self, code: str, discount_percent: int, expiry_days: int, max_uses: int = 0
    ) -> PromoCode:
        code = normalize_code(code)
        if len(code) < 3:
            raise ValidationError("Kode promo minimal 3 karakter")
        if not _CODE_RE.match(code):
            raise ValidationError("Kode promo hanya boleh huruf dan angka (tanpa spasi)")
        if not 1 <= discount_percent <= 100:
            raise ValidationError("Diskon harus antara 1-100%")
        if expiry_days < 1:
            raise ValidationError("Masa berlaku minimal 1 hari")
        if max_uses < 0:
            raise ValidationError("Maks penggunaan tidak boleh negatif")

        with self._lock:
            promos = self._load_promos()
            if any(p.code == code for p in promos):
                raise ValidationError(f"Kode promo {code} sudah ada")
            now = self._now_ms()
            promo = PromoCode(
                code=code,
                discount_percent=discount_percent,
                expiry_date=now + expiry_days * DAY_MS,
                max_uses=max_uses,
                created_at=now,
            )
            promos.append(promo)
            self._save_promos(promos)
        logger.info("Promo %s created (%d%%, %d days, max %d)", code, discount_percent, expiry_days, max_uses)
        return promo

    def _validate_locked(self, code: str, customer_id: str) -> PromoValidation:
        if not _CODE_RE.match(code):
            return PromoValidation(False, "Format kode promo tidak valid")
        promo = next((p for p in self._load_promos() if p.code == code), None)
        if promo is None:
            return PromoValidation(False, f"Kode promo {code} tidak ditemukan")
        if not promo.is_active:
            return PromoValidation(False, f"Kode promo {code} sudah tidak aktif")
        if self._now_ms() > promo.expiry_date:
            return PromoValidation(False, f"Kode promo {code} sudah kadaluarsa")
        if promo.max_uses > 0 and promo.current_uses >= promo.max_uses:
            return PromoValidation(
                False, f"Kode promo {code} sudah mencapai batas maksimum penggunaan"
            )
        if code in self._load_usage().get(customer_id, []):
            return PromoValidation(
                False, f"Anda sudah menggunakan kode promo {code} sebelumnya"
            )
        return PromoValidation(
            True,
            f"Kode promo {code} valid! Diskon {promo.discount_percent}%",
            promo.discount_percent,
        )

    def validate_promo(self, code: str, customer_id: str) -> PromoValidation:
        with self._lock:
            return self._validate_locked(normalize_code(code), customer_id)

    def apply_promo(self, code: str, customer_id: str) -> int:
        """Consume one use for this customer; returns the discount percent."""
        code = normalize_code(code)
        with self._lock:
            result = self._validate_locked(code, customer_id)
            if not result.valid:
                raise ValidationError(result.message)
            promos = self._load_promos()
            for promo in promos:
                if promo.code == code:
                    promo.current_uses += 1
            self._save_promos(promos)
            usage = self._load_usage()
            usage.setdefault(customer_id, []).append(code)
            self._write(self._usage_file, usage)
        logger.info("Promo %s applied by %s", code, customer_id)
        return result.discount_percent

    @staticmethod
    def calculate_discount(amount: int, discount_percent: int) -> Discount:
        discount = int(
            (Decimal(amount) * Decimal(discount_percent) / Decimal(100)).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )
        return Discount(amount, discount, amount - discount, discount_percent)

    def get_all_promos(self, include_expired: bool = False) -> list[PromoCode]:
        with self._lock:
            promos = self._load_promos()
        if include_expired:
            return promos
        now = self._now_ms()
        return [p for p in promos if p.is_active and p.expiry_date > now]

    def get_promo(self, code: str) -> PromoCode | None:
        code = normalize_code(code)
        with self._lock:
            return next((p for p in self._load_promos() if p.code == code), None)

    def delete_promo(self, code: str) -> None:
        code = normalize_code(code)
        with self._lock:
            promos = self._load_promos()
            remaining = [p for p in promos if p.code != code]
            if len(remaining) == len(promos):
                raise NotFoundError(f"Kode promo {code} tidak ditemukan")
            self._save_promos(remaining)
        logger.info("Promo %s deleted", code)

    def deactivate_promo(self, code: str) -> None:
        code = normalize_code(code)
        with self._lock:
            promos = self._load_promos()
            promo = next((p for p in promos if p.code == code), None)
            if promo is None:
                raise NotFoundError(f"Kode promo {code} tidak ditemukan")
            promo.is_active = False
            self._save_promos(promos)
        logger.info("Promo %s deactivated", code)

    def get_customer_usage(self, customer_id: str) -> list[str]:
        with self._lock:
            return list(self._load_usage().get(customer_id, []))

    def get_promo_stats(self, code: str) -> PromoStats:
        promo = self.get_promo(code)
        if promo is None:
            raise NotFoundError(f"Kode promo {normalize_code(code)} tidak ditemukan")
        now = self._now_ms()
        remaining_ms = promo.expiry_date - now
        return PromoStats(
            code=promo.code,
            discount_percent=promo.discount_percent,
            total_uses=promo.current_uses,
            remaining_uses=promo.max_uses - promo.current_uses if promo.max_uses > 0 else -1,
            expires_in_days=-((-remaining_ms) // DAY_MS),
            is_active=promo.is_active,
            is_expired=promo.expiry_date < now,
        )
