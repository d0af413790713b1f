"""Model package exports."""

from models.taxonomy import *  # noqa: F401,F403
from models.entities import CartItem, Fabric, Model, Order, OrderLine, Trial, User

__all__ = ["CartItem", "Fabric", "Model", "Order", "OrderLine", "Trial", "User"]
