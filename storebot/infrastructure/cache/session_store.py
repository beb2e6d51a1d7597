# storebot/infrastructure/cache/session_store.py
"""
Per-customer session storage.

Two interchangeable backends behind ``SessionStore``:

* ``InMemorySessionStore`` : process-local dict, used in dev and tests.
* ``RedisSessionStore``    : one hash per customer (``wa:session:<id>``),
  written field by field so a mutator never overwrites fields it did not
  touch. Keys carry a TTL equal to the inactivity window.

Mutators return the updated ``Session``.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable

import redis.asyncio as redis
from loguru import logger

from storebot.domain.models.session import (
    CartLine,
    PaymentMethod,
    Session,
    SessionStep,
)

ALL_FIELDS = frozenset(Session("").to_dict().keys())
PAYMENT_FIELDS = ("payment_method", "payment_invoice_id", "payment_amount", "payment_proof")


class SessionStore(ABC):
    def __init__(
        self,
        timeout_seconds: int = 30 * 60,
        max_cart_items: int = 50,
        clock: Callable[[], float] = time.time,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_cart_items = max_cart_items
        self._clock = clock

    # -- backend primitives ---------------------------------------------

    @abstractmethod
    async def _load(self, customer_id: str) -> Session | None:
        ...

    @abstractmethod
    async def _save(self, session: Session, fields: Iterable[str]) -> None:
        ...

    @abstractmethod
    async def _remove(self, customer_id: str) -> None:
        ...

    @abstractmethod
    async def _index_order(self, order_id: str, customer_id: str) -> None:
        ...

    @abstractmethod
    async def _unindex_order(self, order_id: str) -> None:
        ...

    @abstractmethod
    async def _lookup_order(self, order_id: str) -> str | None:
        ...

    @abstractmethod
    async def all_customer_ids(self) -> list[str]:
        ...

    # -- public API -------------------------------------------------------

    async def get(self, customer_id: str) -> Session:
        """Return the session, creating it on first contact. Refreshes activity."""
        now = self._clock()
        session = await self._load(customer_id)
        if session is not None and session.is_expired(self.timeout_seconds, now):
            logger.info("Session {} expired, starting fresh", customer_id)
            await self.delete(customer_id)
            session = None
        if session is None:
            session = Session(customer_id=customer_id, last_activity=now)
            await self._save(session, ALL_FIELDS)
            return session
        session.touch(now)
        await self._save(session, ("last_activity",))
        return session

    async def peek(self, customer_id: str) -> Session | None:
        """Load without creating or touching (admin lookups)."""
        return await self._load(customer_id)

    async def add_to_cart(self, customer_id: str, line: CartLine) -> tuple[Session, bool]:
        """Append a line; returns (session, added). ``added`` is False when full."""
        session = await self.get(customer_id)
        if len(session.cart) >= self.max_cart_items:
            return session, False
        session.cart.append(line)
        await self._save(session, ("cart",))
        return session, True

    async def clear_cart(self, customer_id: str) -> Session:
        session = await self.get(customer_id)
        session.cart = []
        session.promo_code = None
        session.discount_percent = 0
        await self._save(session, ("cart", "promo_code", "discount_percent"))
        return session

    async def set_step(self, customer_id: str, step: SessionStep) -> Session:
        session = await self.get(customer_id)
        session.step = SessionStep(step)
        await self._save(session, ("step",))
        return session

    async def set_order_id(self, customer_id: str, order_id: str | None) -> Session:
        session = await self.get(customer_id)
        if session.order_id and session.order_id != order_id:
            await self._unindex_order(session.order_id)
        session.order_id = order_id
        await self._save(session, ("order_id",))
        if order_id:
            await self._index_order(order_id, customer_id)
        return session

    async def set_payment(
        self,
        customer_id: str,
        method: PaymentMethod | None,
        invoice_id: str | None = None,
        amount: int = 0,
    ) -> Session:
        session = await self.get(customer_id)
        session.payment_method = PaymentMethod(method) if method else None
        session.payment_invoice_id = invoice_id
        session.payment_amount = int(amount)
        await self._save(session, ("payment_method", "payment_invoice_id", "payment_amount"))
        return session

    async def set_payment_proof(self, customer_id: str, proof: str) -> Session:
        session = await self.get(customer_id)
        session.payment_proof = proof
        await self._save(session, ("payment_proof",))
        return session

    async def set_promo(self, customer_id: str, code: str | None, percent: int = 0) -> Session:
        session = await self.get(customer_id)
        session.promo_code = code
        session.discount_percent = int(percent) if code else 0
        await self._save(session, ("promo_code", "discount_percent"))
        return session

    async def clear_order(self, customer_id: str) -> Session:
        """Drop the order id and payment fields; cart and promo are kept."""
        session = await self.get(customer_id)
        if session.order_id:
            await self._unindex_order(session.order_id)
        session.order_id = None
        session.payment_method = None
        session.payment_invoice_id = None
        session.payment_amount = 0
        session.payment_proof = None
        await self._save(session, ("order_id", *PAYMENT_FIELDS))
        return session

    async def reset_after_delivery(self, customer_id: str) -> Session:
        """Back to ``menu`` with empty cart and no order/payment/promo state."""
        session = await self.get(customer_id)
        if session.order_id:
            await self._unindex_order(session.order_id)
        session.step = SessionStep.MENU
        session.cart = []
        session.order_id = None
        session.payment_method = None
        session.payment_invoice_id = None
        session.payment_amount = 0
        session.payment_proof = None
        session.promo_code = None
        session.discount_percent = 0
        await self._save(session, ALL_FIELDS)
        return session

    async def find_customer_by_order_id(self, order_id: str) -> str | None:
        customer_id = await self._lookup_order(order_id)
        if customer_id is not None:
            session = await self._load(customer_id)
            if session is not None and session.order_id == order_id:
                return customer_id
            await self._unindex_order(order_id)
        # Index miss: scan live sessions
        for candidate in await self.all_customer_ids():
            session = await self._load(candidate)
            if session is not None and session.order_id == order_id:
                await self._index_order(order_id, candidate)
                return candidate
        return None

    async def find_customer_by_invoice_id(self, invoice_id: str) -> str | None:
        for customer_id in await self.all_customer_ids():
            session = await self._load(customer_id)
            if session is not None and session.payment_invoice_id == invoice_id:
                return customer_id
        return None

    async def cleanup_expired(self) -> list[str]:
        """Delete every session idle longer than the timeout; returns their ids."""
        now = self._clock()
        removed: list[str] = []
        for customer_id in await self.all_customer_ids():
            session = await self._load(customer_id)
            if session is None or session.is_expired(self.timeout_seconds, now):
                await self.delete(customer_id)
                removed.append(customer_id)
        if removed:
            logger.info("Session sweep removed {} expired session(s)", len(removed))
        return removed

    async def delete(self, customer_id: str) -> None:
        session = await self._load(customer_id)
        if session is not None and session.order_id:
            await self._unindex_order(session.order_id)
        await self._remove(customer_id)


class InMemorySessionStore(SessionStore):
    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self._sessions: dict[str, dict[str, Any]] = {}
        self._orders: dict[str, str] = {}

    async def _load(self, customer_id: str) -> Session | None:
        raw = self._sessions.get(customer_id)
        return Session.from_dict(raw) if raw is not None else None

    async def _save(self, session: Session, fields: Iterable[str]) -> None:
        data = session.to_dict()
        stored = self._sessions.setdefault(session.customer_id, {})
        for name in fields:
            stored[name] = data[name]
        stored["customer_id"] = session.customer_id
        stored["version"] = session.version

    async def _remove(self, customer_id: str) -> None:
        self._sessions.pop(customer_id, None)

    async def _index_order(self, order_id: str, customer_id: str) -> None:
        self._orders[order_id] = customer_id

    async def _unindex_order(self, order_id: str) -> None:
        self._orders.pop(order_id, None)

    async def _lookup_order(self, order_id: str) -> str | None:
        return self._orders.get(order_id)

    async def all_customer_ids(self) -> list[str]:
        return list(self._sessions)


class RedisSessionStore(SessionStore):
    SESSIONS_SET = "wa:sessions"

    def __init__(self, client: redis.Redis, **kwargs: Any):
        super().__init__(**kwargs)
        self._r = client

    def _key(self, customer_id: str) -> str:
        return f"wa:session:{customer_id}"

    def _order_key(self, order_id: str) -> str:
        return f"wa:order:{order_id}"

    async def _load(self, customer_id: str) -> Session | None:
        raw = await self._r.hgetall(self._key(customer_id))
        if not raw:
            return None
        try:
            data = {name: json.loads(value) for name, value in raw.items()}
            data["customer_id"] = customer_id
            return Session.from_dict(data)
        except (ValueError, KeyError, TypeError):
            logger.warning("Corrupt session hash for {}, discarding", customer_id)
            await self._r.delete(self._key(customer_id))
            return None

    async def _save(self, session: Session, fields: Iterable[str]) -> None:
        data = session.to_dict()
        mapping = {name: json.dumps(data[name]) for name in fields}
        mapping["version"] = json.dumps(session.version)
        key = self._key(session.customer_id)
        async with self._r.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping=mapping)
            pipe.expire(key, self.timeout_seconds)
            pipe.sadd(self.SESSIONS_SET, session.customer_id)
            if session.order_id:
                pipe.expire(self._order_key(session.order_id), self.timeout_seconds)
            await pipe.execute()

    async def _remove(self, customer_id: str) -> None:
        async with self._r.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(customer_id))
            pipe.srem(self.SESSIONS_SET, customer_id)
            await pipe.execute()

    async def _index_order(self, order_id: str, customer_id: str) -> None:
        await self._r.set(self._order_key(order_id), customer_id, ex=self.timeout_seconds)

    async def _unindex_order(self, order_id: str) -> None:
        await self._r.delete(self._order_key(order_id))

    async def _lookup_order(self, order_id: str) -> str | None:
        return await self._r.get(self._order_key(order_id))

    async def all_customer_ids(self) -> list[str]:
        return sorted(await self._r.smembers(self.SESSIONS_SET))
