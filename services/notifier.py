"""
Order notifications.

The pipeline calls notify() once per meaningful status change (submitted,
shipped, delivered, failed). Message content and delivery channel belong
to the notification collaborator; this module only hands the event over.

A notifier may raise. The orchestrator logs the error and never lets a
notification failure change order state.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import requests

from models.order import PrintOrder
from logging_config import get_logger


logger = get_logger(__name__)


class NotificationEvent(Enum):
    SUBMITTED = "submitted"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"


def build_payload(order: PrintOrder, event: NotificationEvent) -> Dict[str, Any]:
    """Event payload: order id, customer contact, and event-specific fields."""
    payload: Dict[str, Any] = {
        "event": event.value,
        "order_id": order.id,
        "book_id": order.book_id,
        "contact_email": order.contact_email,
        "customer_name": order.shipping_address.name,
    }
    if event is NotificationEvent.SHIPPED:
        payload["tracking_number"] = order.tracking_number
        payload["tracking_url"] = order.tracking_url
    elif event is NotificationEvent.FAILED:
        payload["failure_reason"] = order.failure_reason
    return payload


class Notifier:
    """Base notifier."""

    def notify(self, order: PrintOrder, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes notifications to the log; used when no webhook is configured."""

    def notify(self, order: PrintOrder, event: NotificationEvent) -> None:
        payload = build_payload(order, event)
        logger.info(f"Notification {event.value} for order {order.id}: {payload}")


class WebhookNotifier(Notifier):
    """POSTs the event payload as JSON to a notification service."""

    def __init__(self, url: str, timeout_seconds: float = 10.0, session: Optional[requests.Session] = None):
        self._url = url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def notify(self, order: PrintOrder, event: NotificationEvent) -> None:
        payload = build_payload(order, event)
        response = self._session.post(self._url, json=payload, timeout=self._timeout)
        response.raise_for_status()
        logger.info(f"Notification {event.value} for order {order.id} delivered ({response.status_code})")
