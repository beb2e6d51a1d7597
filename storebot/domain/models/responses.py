# storebot/domain/models/responses.py
"""
Reply variants produced by the router, step machine and admin handler.

Callers dispatch on the concrete type:

* ``TextResponse``      : reply to the sender only
* ``DeliveryResponse``  : reply to the sender + deliver credentials to a customer
* ``BroadcastResponse`` : reply to the sender + fan out a message to recipients
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class TextResponse:
    text: str


@dataclass(frozen=True)
class DeliveryResponse:
    text: str
    customer_id: str
    customer_message: str
    order_id: str


@dataclass(frozen=True)
class BroadcastResponse:
    text: str
    recipients: list[str] = field(default_factory=list)
    message: str = ""


Response = Union[TextResponse, DeliveryResponse, BroadcastResponse]
