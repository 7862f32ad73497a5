"""In-memory registry of pending order intents.

Entries live for the lifetime of the process: an intent is removed only after
its order has been fulfilled.
"""

import logging
from typing import Protocol

from shared.models.orders import OrderIntent

logger = logging.getLogger(__name__)


class OrderStore(Protocol):
    """Storage for order intents, keyed by order ID."""

    def put(self, order_id: str, intent: OrderIntent) -> None: ...

    def get(self, order_id: str) -> OrderIntent | None: ...

    def remove(self, order_id: str) -> None: ...


class InMemoryOrderRegistry:
    """Dict-backed OrderStore. Not shared across processes."""

    def __init__(self) -> None:
        self._intents: dict[str, OrderIntent] = {}

    def put(self, order_id: str, intent: OrderIntent) -> None:
        """Register an intent; an existing intent for the same ID is replaced."""
        if order_id in self._intents:
            logger.warning("Overwriting pending order intent %s", order_id)
        self._intents[order_id] = intent

    def get(self, order_id: str) -> OrderIntent | None:
        return self._intents.get(order_id)

    def remove(self, order_id: str) -> None:
        self._intents.pop(order_id, None)

    def __len__(self) -> int:
        return len(self._intents)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._intents
