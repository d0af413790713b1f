"""Entity store abstractions with in-memory and SQLite implementations.

Every read hands back a copy of the stored record, so callers mutating a
returned entity never change what the store holds. The atomic primitives
(``get_or_create_user``, ``complete_trial`` and ``take_cart_items``) keep
the invariants that plain read-then-write sequences cannot: one user per
external subject, one terminal transition per trial and a cart that is
billed at most once.
"""
from __future__ import annotations

import contextlib
import copy
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar

from logic.errors import NotFound
from models.entities import (
    CartItem,
    Fabric,
    Model,
    Order,
    OrderLine,
    Trial,
    User,
    entity_from_dict,
    entity_to_dict,
    new_id,
)
from models.taxonomy import (
    ORDER_COMPLETED,
    ROLE_USER,
    TRIAL_PENDING,
    TRIAL_TERMINAL_STATUSES,
)

E = TypeVar("E")

_IMMUTABLE_USER_FIELDS = {"id", "external_subject", "created_at"}
_USER_FIELDS = set(User.__dataclass_fields__)


def _check_user_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - _USER_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {sorted(unknown)}")
    return {key: value for key, value in changes.items() if key not in _IMMUTABLE_USER_FIELDS}


def _check_terminal(status: str) -> None:
    if status not in TRIAL_TERMINAL_STATUSES:
        raise ValueError(f"Trials can only move to a terminal status, got '{status}'")


class EntityStore:
    """Persistence interface for users, catalog items, trials, carts and orders."""

    # users
    def create_user(
        self,
        external_subject: str,
        email: str,
        name: str,
        photo_url: Optional[str] = None,
        role: str = ROLE_USER,
    ) -> User:
        raise NotImplementedError

    def get_user(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def get_user_by_external_id(self, external_subject: str) -> Optional[User]:
        raise NotImplementedError

    def get_or_create_user(
        self, external_subject: str, email: str, name: str, photo_url: Optional[str] = None
    ) -> Tuple[User, bool]:
        """Return the user for a subject, creating it atomically on first sight."""

        raise NotImplementedError

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> User:
        raise NotImplementedError

    def list_users(self) -> List[User]:
        raise NotImplementedError

    # catalog
    def create_model(
        self,
        name: str,
        image_url: str,
        category: str,
        body_shapes: Sequence[str],
        description: Optional[str] = None,
    ) -> Model:
        raise NotImplementedError

    def get_model(self, model_id: str) -> Optional[Model]:
        raise NotImplementedError

    def list_models(self) -> List[Model]:
        raise NotImplementedError

    def create_fabric(
        self,
        name: str,
        image_url: str,
        texture: str,
        skin_tones: Sequence[str],
        price: int,
        retailer_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Fabric:
        raise NotImplementedError

    def get_fabric(self, fabric_id: str) -> Optional[Fabric]:
        raise NotImplementedError

    def list_fabrics(self) -> List[Fabric]:
        raise NotImplementedError

    # trials
    def create_trial(self, user_id: str, model_id: str, fabric_id: str) -> Trial:
        raise NotImplementedError

    def get_trial(self, trial_id: str) -> Optional[Trial]:
        raise NotImplementedError

    def list_trials(self, user_id: Optional[str] = None) -> List[Trial]:
        raise NotImplementedError

    def complete_trial(self, trial_id: str, status: str, image_url: str = "") -> Optional[Trial]:
        """Move a pending trial to a terminal status.

        Returns ``None`` when the trial already reached a terminal status.
        """

        raise NotImplementedError

    # cart
    def add_cart_item(
        self, user_id: str, trial_id: str, model_id: str, fabric_id: str, quantity: int = 1
    ) -> CartItem:
        raise NotImplementedError

    def get_cart_item(self, item_id: str) -> Optional[CartItem]:
        raise NotImplementedError

    def list_cart_items(self, user_id: str) -> List[CartItem]:
        raise NotImplementedError

    def remove_cart_item(self, item_id: str, owner_id: Optional[str] = None) -> bool:
        """Delete a cart item; with ``owner_id`` only that user's item is removed."""

        raise NotImplementedError

    def take_cart_items(self, user_id: str) -> List[CartItem]:
        """Atomically snapshot and clear a user's cart."""

        raise NotImplementedError

    # orders
    def create_order(
        self,
        user_id: str,
        items: Sequence[OrderLine],
        total_amount: int,
        status: str = ORDER_COMPLETED,
    ) -> Order:
        raise NotImplementedError

    def get_order(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError

    def list_orders(self, user_id: Optional[str] = None) -> List[Order]:
        raise NotImplementedError

    # counters
    def stats(self) -> Dict[str, int]:
        raise NotImplementedError

    def user_stats(self, user_id: str) -> Dict[str, int]:
        raise NotImplementedError


class InMemoryEntityStore(EntityStore):
    """Process-local store; not durable, suitable for local runs and tests."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._models: Dict[str, Model] = {}
        self._fabrics: Dict[str, Fabric] = {}
        self._trials: Dict[str, Trial] = {}
        self._cart_items: Dict[str, CartItem] = {}
        self._orders: Dict[str, Order] = {}

    @staticmethod
    def _copy(entity: Optional[E]) -> Optional[E]:
        return copy.deepcopy(entity) if entity is not None else None

    def _insert(self, table: Dict[str, E], entity: E) -> E:
        with self._lock:
            table[entity.id] = copy.deepcopy(entity)  # type: ignore[attr-defined]
        return entity

    def _filter(self, table: Dict[str, E], predicate: Callable[[E], bool] | None = None) -> List[E]:
        with self._lock:
            return [copy.deepcopy(row) for row in table.values() if predicate is None or predicate(row)]

    def create_user(
        self,
        external_subject: str,
        email: str,
        name: str,
        photo_url: Optional[str] = None,
        role: str = ROLE_USER,
    ) -> User:
        user = User(
            id=new_id(),
            external_subject=external_subject,
            email=email,
            name=name,
            photo_url=photo_url,
            role=role,
        )
        with self._lock:
            if self._find_user_by_subject(external_subject):
                raise ValueError(f"A user already exists for subject {external_subject}")
            return self._insert(self._users, user)

    def _find_user_by_subject(self, external_subject: str) -> Optional[User]:
        for user in self._users.values():
            if user.external_subject == external_subject:
                return user
        return None

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._copy(self._users.get(user_id))

    def get_user_by_external_id(self, external_subject: str) -> Optional[User]:
        with self._lock:
            return self._copy(self._find_user_by_subject(external_subject))

    def get_or_create_user(
        self, external_subject: str, email: str, name: str, photo_url: Optional[str] = None
    ) -> Tuple[User, bool]:
        with self._lock:
            existing = self._find_user_by_subject(external_subject)
            if existing:
                return copy.deepcopy(existing), False
            return self.create_user(external_subject, email, name, photo_url=photo_url), True

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> User:
        allowed = _check_user_changes(changes)
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found")
            for key, value in copy.deepcopy(allowed).items():
                setattr(user, key, value)
            return copy.deepcopy(user)

    def list_users(self) -> List[User]:
        return self._filter(self._users)

    def create_model(
        self,
        name: str,
        image_url: str,
        category: str,
        body_shapes: Sequence[str],
        description: Optional[str] = None,
    ) -> Model:
        model = Model(
            id=new_id(),
            name=name,
            image_url=image_url,
            category=category,
            body_shapes=list(body_shapes),
            description=description,
        )
        return self._insert(self._models, model)

    def get_model(self, model_id: str) -> Optional[Model]:
        with self._lock:
            return self._copy(self._models.get(model_id))

    def list_models(self) -> List[Model]:
        return self._filter(self._models)

    def create_fabric(
        self,
        name: str,
        image_url: str,
        texture: str,
        skin_tones: Sequence[str],
        price: int,
        retailer_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Fabric:
        fabric = Fabric(
            id=new_id(),
            name=name,
            image_url=image_url,
            texture=texture,
            skin_tones=list(skin_tones),
            price=price,
            retailer_id=retailer_id,
            description=description,
        )
        return self._insert(self._fabrics, fabric)

    def get_fabric(self, fabric_id: str) -> Optional[Fabric]:
        with self._lock:
            return self._copy(self._fabrics.get(fabric_id))

    def list_fabrics(self) -> List[Fabric]:
        return self._filter(self._fabrics)

    def create_trial(self, user_id: str, model_id: str, fabric_id: str) -> Trial:
        trial = Trial(id=new_id(), user_id=user_id, model_id=model_id, fabric_id=fabric_id)
        return self._insert(self._trials, trial)

    def get_trial(self, trial_id: str) -> Optional[Trial]:
        with self._lock:
            return self._copy(self._trials.get(trial_id))

    def list_trials(self, user_id: Optional[str] = None) -> List[Trial]:
        if user_id is None:
            return self._filter(self._trials)
        return self._filter(self._trials, lambda trial: trial.user_id == user_id)

    def complete_trial(self, trial_id: str, status: str, image_url: str = "") -> Optional[Trial]:
        _check_terminal(status)
        with self._lock:
            trial = self._trials.get(trial_id)
            if trial is None:
                raise NotFound(f"Trial {trial_id} not found")
            if trial.status != TRIAL_PENDING:
                return None
            trial.status = status
            trial.image_url = image_url
            return copy.deepcopy(trial)

    def add_cart_item(
        self, user_id: str, trial_id: str, model_id: str, fabric_id: str, quantity: int = 1
    ) -> CartItem:
        item = CartItem(
            id=new_id(),
            user_id=user_id,
            trial_id=trial_id,
            model_id=model_id,
            fabric_id=fabric_id,
            quantity=quantity,
        )
        return self._insert(self._cart_items, item)

    def get_cart_item(self, item_id: str) -> Optional[CartItem]:
        with self._lock:
            return self._copy(self._cart_items.get(item_id))

    def list_cart_items(self, user_id: str) -> List[CartItem]:
        return self._filter(self._cart_items, lambda item: item.user_id == user_id)

    def remove_cart_item(self, item_id: str, owner_id: Optional[str] = None) -> bool:
        with self._lock:
            item = self._cart_items.get(item_id)
            if item is None or (owner_id is not None and item.user_id != owner_id):
                return False
            del self._cart_items[item_id]
            return True

    def take_cart_items(self, user_id: str) -> List[CartItem]:
        with self._lock:
            taken = [item for item in self._cart_items.values() if item.user_id == user_id]
            for item in taken:
                del self._cart_items[item.id]
            return taken

    def create_order(
        self,
        user_id: str,
        items: Sequence[OrderLine],
        total_amount: int,
        status: str = ORDER_COMPLETED,
    ) -> Order:
        order = Order(
            id=new_id(),
            user_id=user_id,
            items=list(items),
            total_amount=total_amount,
            status=status,
        )
        return self._insert(self._orders, order)

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._copy(self._orders.get(order_id))

    def list_orders(self, user_id: Optional[str] = None) -> List[Order]:
        if user_id is None:
            return self._filter(self._orders)
        return self._filter(self._orders, lambda order: order.user_id == user_id)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "total_users": len(self._users),
                "total_models": len(self._models),
                "total_fabrics": len(self._fabrics),
                "total_orders": len(self._orders),
                "total_trials": len(self._trials),
            }

    def user_stats(self, user_id: str) -> Dict[str, int]:
        with self._lock:
            trials = sum(1 for trial in self._trials.values() if trial.user_id == user_id)
            cart_items = sum(1 for item in self._cart_items.values() if item.user_id == user_id)
        return {"trials": trials, "cart_items": cart_items}


_TABLES = ("users", "models", "fabrics", "trials", "cart_items", "orders")


class SQLiteEntityStore(EntityStore):
    """SQLite-backed store; each record is a JSON document plus indexed columns."""

    def __init__(self, db_path: str = "data/tryon.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextlib.contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection for single-statement reads; takes no write lock."""

        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        statements = []
        for table in _TABLES:
            statements.append(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT,
                    lookup_key TEXT,
                    status TEXT,
                    document TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_{table}_owner ON {table}(owner_id);
                """
            )
        statements.append(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_subject ON users(lookup_key);"
        )
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript("\n".join(statements))
        finally:
            conn.close()

    @staticmethod
    def _write(
        conn: sqlite3.Connection,
        table: str,
        entity: Any,
        owner_id: Optional[str] = None,
        lookup_key: Optional[str] = None,
        status: Optional[str] = None,
    ) -> None:
        conn.execute(
            f"INSERT OR REPLACE INTO {table}(id, owner_id, lookup_key, status, document) VALUES (?, ?, ?, ?, ?)",
            (entity.id, owner_id, lookup_key, status, json.dumps(entity_to_dict(entity))),
        )

    @staticmethod
    def _row_to(cls: Type[E], row: Optional[sqlite3.Row]) -> Optional[E]:
        if row is None:
            return None
        return entity_from_dict(cls, json.loads(row["document"]))

    def _fetch(self, table: str, cls: Type[E], column: str, value: str) -> Optional[E]:
        with self._reader() as conn:
            row = conn.execute(
                f"SELECT document FROM {table} WHERE {column} = ? LIMIT 1", (value,)
            ).fetchone()
        return self._row_to(cls, row)

    def _fetch_all(self, table: str, cls: Type[E], owner_id: Optional[str] = None) -> List[E]:
        with self._reader() as conn:
            if owner_id is None:
                rows = conn.execute(f"SELECT document FROM {table} ORDER BY rowid").fetchall()
            else:
                rows = conn.execute(
                    f"SELECT document FROM {table} WHERE owner_id = ? ORDER BY rowid", (owner_id,)
                ).fetchall()
        return [entity_from_dict(cls, json.loads(row["document"])) for row in rows]

    def _count(self, conn: sqlite3.Connection, table: str, owner_id: Optional[str] = None) -> int:
        if owner_id is None:
            row = conn.execute(f"SELECT COUNT(*) AS ct FROM {table}").fetchone()
        else:
            row = conn.execute(
                f"SELECT COUNT(*) AS ct FROM {table} WHERE owner_id = ?", (owner_id,)
            ).fetchone()
        return int(row["ct"]) if row else 0

    def create_user(
        self,
        external_subject: str,
        email: str,
        name: str,
        photo_url: Optional[str] = None,
        role: str = ROLE_USER,
    ) -> User:
        user = User(
            id=new_id(),
            external_subject=external_subject,
            email=email,
            name=name,
            photo_url=photo_url,
            role=role,
        )
        try:
            with self._transaction() as conn:
                conn.execute(
                    "INSERT INTO users(id, owner_id, lookup_key, status, document) VALUES (?, ?, ?, ?, ?)",
                    (user.id, user.id, external_subject, role, json.dumps(entity_to_dict(user))),
                )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"A user already exists for subject {external_subject}") from exc
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self._fetch("users", User, "id", user_id)

    def get_user_by_external_id(self, external_subject: str) -> Optional[User]:
        return self._fetch("users", User, "lookup_key", external_subject)

    def get_or_create_user(
        self, external_subject: str, email: str, name: str, photo_url: Optional[str] = None
    ) -> Tuple[User, bool]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT document FROM users WHERE lookup_key = ?", (external_subject,)
            ).fetchone()
            if row is not None:
                return self._row_to(User, row), False
            user = User(
                id=new_id(),
                external_subject=external_subject,
                email=email,
                name=name,
                photo_url=photo_url,
            )
            self._write(conn, "users", user, owner_id=user.id, lookup_key=external_subject, status=user.role)
        return user, True

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> User:
        allowed = _check_user_changes(changes)
        with self._transaction() as conn:
            row = conn.execute("SELECT document FROM users WHERE id = ?", (user_id,)).fetchone()
            user = self._row_to(User, row)
            if user is None:
                raise NotFound(f"User {user_id} not found")
            for key, value in allowed.items():
                setattr(user, key, copy.deepcopy(value))
            self._write(conn, "users", user, owner_id=user.id, lookup_key=user.external_subject, status=user.role)
        return user

    def list_users(self) -> List[User]:
        return self._fetch_all("users", User)

    def create_model(
        self,
        name: str,
        image_url: str,
        category: str,
        body_shapes: Sequence[str],
        description: Optional[str] = None,
    ) -> Model:
        model = Model(
            id=new_id(),
            name=name,
            image_url=image_url,
            category=category,
            body_shapes=list(body_shapes),
            description=description,
        )
        with self._transaction() as conn:
            self._write(conn, "models", model)
        return model

    def get_model(self, model_id: str) -> Optional[Model]:
        return self._fetch("models", Model, "id", model_id)

    def list_models(self) -> List[Model]:
        return self._fetch_all("models", Model)

    def create_fabric(
        self,
        name: str,
        image_url: str,
        texture: str,
        skin_tones: Sequence[str],
        price: int,
        retailer_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Fabric:
        fabric = Fabric(
            id=new_id(),
            name=name,
            image_url=image_url,
            texture=texture,
            skin_tones=list(skin_tones),
            price=price,
            retailer_id=retailer_id,
            description=description,
        )
        with self._transaction() as conn:
            self._write(conn, "fabrics", fabric)
        return fabric

    def get_fabric(self, fabric_id: str) -> Optional[Fabric]:
        return self._fetch("fabrics", Fabric, "id", fabric_id)

    def list_fabrics(self) -> List[Fabric]:
        return self._fetch_all("fabrics", Fabric)

    def create_trial(self, user_id: str, model_id: str, fabric_id: str) -> Trial:
        trial = Trial(id=new_id(), user_id=user_id, model_id=model_id, fabric_id=fabric_id)
        with self._transaction() as conn:
            self._write(conn, "trials", trial, owner_id=user_id, status=trial.status)
        return trial

    def get_trial(self, trial_id: str) -> Optional[Trial]:
        return self._fetch("trials", Trial, "id", trial_id)

    def list_trials(self, user_id: Optional[str] = None) -> List[Trial]:
        return self._fetch_all("trials", Trial, owner_id=user_id)

    def complete_trial(self, trial_id: str, status: str, image_url: str = "") -> Optional[Trial]:
        _check_terminal(status)
        with self._transaction() as conn:
            row = conn.execute("SELECT document FROM trials WHERE id = ?", (trial_id,)).fetchone()
            trial = self._row_to(Trial, row)
            if trial is None:
                raise NotFound(f"Trial {trial_id} not found")
            if trial.status != TRIAL_PENDING:
                return None
            trial.status = status
            trial.image_url = image_url
            self._write(conn, "trials", trial, owner_id=trial.user_id, status=status)
        return trial

    def add_cart_item(
        self, user_id: str, trial_id: str, model_id: str, fabric_id: str, quantity: int = 1
    ) -> CartItem:
        item = CartItem(
            id=new_id(),
            user_id=user_id,
            trial_id=trial_id,
            model_id=model_id,
            fabric_id=fabric_id,
            quantity=quantity,
        )
        with self._transaction() as conn:
            self._write(conn, "cart_items", item, owner_id=user_id)
        return item

    def get_cart_item(self, item_id: str) -> Optional[CartItem]:
        return self._fetch("cart_items", CartItem, "id", item_id)

    def list_cart_items(self, user_id: str) -> List[CartItem]:
        return self._fetch_all("cart_items", CartItem, owner_id=user_id)

    def remove_cart_item(self, item_id: str, owner_id: Optional[str] = None) -> bool:
        with self._transaction() as conn:
            if owner_id is None:
                cursor = conn.execute("DELETE FROM cart_items WHERE id = ?", (item_id,))
            else:
                cursor = conn.execute(
                    "DELETE FROM cart_items WHERE id = ? AND owner_id = ?", (item_id, owner_id)
                )
        return cursor.rowcount > 0

    def take_cart_items(self, user_id: str) -> List[CartItem]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT document FROM cart_items WHERE owner_id = ? ORDER BY rowid", (user_id,)
            ).fetchall()
            conn.execute("DELETE FROM cart_items WHERE owner_id = ?", (user_id,))
        return [entity_from_dict(CartItem, json.loads(row["document"])) for row in rows]

    def create_order(
        self,
        user_id: str,
        items: Sequence[OrderLine],
        total_amount: int,
        status: str = ORDER_COMPLETED,
    ) -> Order:
        order = Order(
            id=new_id(),
            user_id=user_id,
            items=list(items),
            total_amount=total_amount,
            status=status,
        )
        with self._transaction() as conn:
            self._write(conn, "orders", order, owner_id=user_id, status=status)
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._fetch("orders", Order, "id", order_id)

    def list_orders(self, user_id: Optional[str] = None) -> List[Order]:
        return self._fetch_all("orders", Order, owner_id=user_id)

    def stats(self) -> Dict[str, int]:
        with self._reader() as conn:
            return {
                "total_users": self._count(conn, "users"),
                "total_models": self._count(conn, "models"),
                "total_fabrics": self._count(conn, "fabrics"),
                "total_orders": self._count(conn, "orders"),
                "total_trials": self._count(conn, "trials"),
            }

    def user_stats(self, user_id: str) -> Dict[str, int]:
        with self._reader() as conn:
            return {
                "trials": self._count(conn, "trials", owner_id=user_id),
                "cart_items": self._count(conn, "cart_items", owner_id=user_id),
            }


__all__ = ["EntityStore", "InMemoryEntityStore", "SQLiteEntityStore"]
