"""Entity records held by the entity store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar
from uuid import uuid4

from models.taxonomy import ORDER_COMPLETED, ROLE_ADMIN, ROLE_USER, TRIAL_PENDING

E = TypeVar("E")


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    """A shopper (or administrator) known through an external identity."""

    id: str
    external_subject: str
    email: str
    name: str
    photo_url: Optional[str] = None
    age: Optional[int] = None
    height: Optional[int] = None
    weight: Optional[int] = None
    body_shape: Optional[str] = None
    skin_tone: Optional[str] = None
    color_palette: Optional[List[str]] = None
    role: str = ROLE_USER
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass
class Model:
    """A catalogued clothing design."""

    id: str
    name: str
    image_url: str
    category: str
    body_shapes: List[str] = field(default_factory=list)
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Fabric:
    """A catalogued fabric; ``price`` is a whole currency amount."""

    id: str
    name: str
    image_url: str
    texture: str
    skin_tones: List[str] = field(default_factory=list)
    price: int = 0
    retailer_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def generation_description(self) -> str:
        return f"{self.texture} {self.name}"


@dataclass
class Trial:
    """One generated (model, fabric) try-on attempt for a user."""

    id: str
    user_id: str
    model_id: str
    fabric_id: str
    image_url: str = ""
    status: str = TRIAL_PENDING
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class CartItem:
    id: str
    user_id: str
    trial_id: str
    model_id: str
    fabric_id: str
    quantity: int = 1
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class OrderLine:
    trial_id: str
    model_id: str
    fabric_id: str
    quantity: int = 1


@dataclass
class Order:
    """A checked-out cart snapshot. Never mutated after creation."""

    id: str
    user_id: str
    items: List[OrderLine] = field(default_factory=list)
    total_amount: int = 0
    status: str = ORDER_COMPLETED
    created_at: datetime = field(default_factory=utcnow)


def entity_to_dict(entity: Any) -> Dict[str, Any]:
    """Serialise an entity into JSON-friendly primitives."""

    payload = asdict(entity)
    created_at = payload.get("created_at")
    if isinstance(created_at, datetime):
        payload["created_at"] = created_at.isoformat()
    return payload


def entity_from_dict(cls: Type[E], payload: Dict[str, Any]) -> E:
    """Rebuild an entity from :func:`entity_to_dict` output, ignoring unknown keys."""

    known = {f.name for f in fields(cls)}
    data = {key: value for key, value in payload.items() if key in known}
    created_at = data.get("created_at")
    if isinstance(created_at, str):
        data["created_at"] = datetime.fromisoformat(created_at)
    if cls is Order:
        data["items"] = [
            line if isinstance(line, OrderLine) else OrderLine(**line)
            for line in data.get("items") or []
        ]
    return cls(**data)


__all__ = [
    "User",
    "Model",
    "Fabric",
    "Trial",
    "CartItem",
    "OrderLine",
    "Order",
    "new_id",
    "utcnow",
    "entity_to_dict",
    "entity_from_dict",
]
