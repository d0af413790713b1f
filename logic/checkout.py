"""Cart management and checkout into orders."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from logic.errors import InvalidRequest, NotFound
from memory.entity_store import EntityStore
from models.entities import CartItem, Fabric, Model, Order, OrderLine
from models.taxonomy import ORDER_COMPLETED
from tryon_app.logging_config import get_logger, log_event

LOGGER = get_logger(__name__)


@dataclass
class CartLine:
    """A cart item together with the catalog records it points at."""

    item: CartItem
    model: Optional[Model]
    fabric: Optional[Fabric]


class CartService:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def add_item(self, user_id: str, trial_id: str, model_id: str, fabric_id: str) -> CartItem:
        """Keep a trial. Repeated calls for one trial add separate line items."""

        trial = self.store.get_trial(trial_id)
        if trial is None or trial.user_id != user_id:
            raise NotFound("Trial not found")
        item = self.store.add_cart_item(user_id, trial_id, model_id, fabric_id, quantity=1)
        log_event(LOGGER, logging.INFO, "cart_item_added", user_id=user_id, item_id=item.id)
        return item

    def list_items(self, user_id: str) -> List[CartLine]:
        return [
            CartLine(
                item=item,
                model=self.store.get_model(item.model_id),
                fabric=self.store.get_fabric(item.fabric_id),
            )
            for item in self.store.list_cart_items(user_id)
        ]

    def remove_item(self, user_id: str, item_id: str) -> None:
        """Remove one of the caller's own items; anything else reads as missing."""

        if not self.store.remove_cart_item(item_id, owner_id=user_id):
            raise NotFound("Cart item not found")
        log_event(LOGGER, logging.INFO, "cart_item_removed", user_id=user_id, item_id=item_id)

    def checkout(self, user_id: str) -> Order:
        """Turn the whole cart into a completed order and empty the cart.

        The cart is taken in one atomic step, so two concurrent checkouts can
        never bill the same items twice. A fabric that no longer exists
        contributes nothing to the total.
        """

        items = self.store.take_cart_items(user_id)
        if not items:
            raise InvalidRequest("Cart is empty")

        lines = [
            OrderLine(
                trial_id=item.trial_id,
                model_id=item.model_id,
                fabric_id=item.fabric_id,
                quantity=item.quantity,
            )
            for item in items
        ]
        total_amount = 0
        for item in items:
            fabric = self.store.get_fabric(item.fabric_id)
            total_amount += (fabric.price if fabric else 0) * item.quantity

        order = self.store.create_order(user_id, lines, total_amount, status=ORDER_COMPLETED)
        log_event(
            LOGGER,
            logging.INFO,
            "order_created",
            user_id=user_id,
            order_id=order.id,
            line_count=len(lines),
            total_amount=total_amount,
        )
        return order

    def list_orders(self, user_id: str) -> List[Order]:
        return self.store.list_orders(user_id)


__all__ = ["CartLine", "CartService"]
