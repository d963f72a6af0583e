"""In-process "data changed" broadcast channel.

Publishing is fire-and-forget: a failing subscriber is logged and the
remaining subscribers still run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from waybill_sync import _constants as keys

_logger = logging.getLogger(__name__)


class Topic(StrEnum):
    WAYBILLS = "waybills"
    EMPLOYEES = "employees"
    VEHICLES = "vehicles"
    ORGANIZATIONS = "organizations"
    BLANKS = "blanks"
    STOCK = "stock"
    SETTINGS = "settings"
    AUDIT = "audit"
    POLICIES = "policies"
    INTEGRITY = "integrity"


@dataclass(frozen=True, slots=True)
class BusMessage:
    topic: Topic
    payload: Any = None
    ts: int = field(default_factory=lambda: int(time.time() * 1000))


Handler = Callable[[BusMessage], None]


class DataBus:
    """Synchronous publish/subscribe fan-out."""

    def __init__(self) -> None:
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register *handler*; returns a callable that unsubscribes it."""
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def broadcast(self, topic: Topic | str, payload: Any = None) -> None:
        message = BusMessage(topic=Topic(topic), payload=payload)
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:  # noqa: BLE001
                _logger.warning("Bus subscriber failed for topic %s", message.topic, exc_info=True)


_KEY_TOPICS: dict[str, Topic] = {
    keys.WAYBILLS: Topic.WAYBILLS,
    keys.EMPLOYEES: Topic.EMPLOYEES,
    keys.VEHICLES: Topic.VEHICLES,
    keys.ORGANIZATIONS: Topic.ORGANIZATIONS,
    keys.WAYBILL_BLANKS: Topic.BLANKS,
    keys.WAYBILL_BLANK_BATCHES: Topic.BLANKS,
    keys.GARAGE_STOCK_ITEMS: Topic.STOCK,
    keys.STOCK_TRANSACTIONS: Topic.STOCK,
    keys.ROLE_POLICIES: Topic.POLICIES,
    keys.PERIOD_LOCKS: Topic.INTEGRITY,
    keys.BUSINESS_AUDIT: Topic.AUDIT,
}


def topic_for_key(key: str) -> Topic:
    """Topic whose subscribers care about changes to storage *key*."""
    return _KEY_TOPICS.get(key, Topic.SETTINGS)
