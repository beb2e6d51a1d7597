# storebot/infrastructure/audit.py
"""
Audit logger for admin commands and order fulfillment.

Logs who did what and when as single structured lines that any log
aggregator can ingest. Credentials are never passed in ``details``.
"""

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("audit")


def log_admin_action(
    action: str,
    *,
    admin_id: str = "",
    details: dict[str, Any] | None = None,
) -> None:
    """Log an admin action (approve, addstock, createpromo, ...)."""
    logger.info(
        "ADMIN_ACTION action=%s admin=%s time=%s details=%s",
        action,
        admin_id,
        datetime.now(timezone.utc).isoformat(),
        details or {},
    )


def log_order_event(
    event: str,
    *,
    order_id: str,
    customer_id: str,
    details: dict[str, Any] | None = None,
) -> None:
    """Log an order lifecycle event (checkout, payment, delivery, rollback)."""
    logger.info(
        "ORDER_EVENT event=%s order=%s customer=%s time=%s details=%s",
        event,
        order_id,
        customer_id,
        datetime.now(timezone.utc).isoformat(),
        details or {},
    )
