"""Store primitives and checkout under concurrent callers."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from conftest import trusted
from logic.checkout import CartService
from logic.errors import InvalidRequest
from memory.entity_store import EntityStore, InMemoryEntityStore, SQLiteEntityStore

THREADS = 8


@pytest.fixture(params=["memory", "sqlite"])
def shared_store(request: pytest.FixtureRequest, tmp_path: Path) -> EntityStore:
    if request.param == "sqlite":
        return SQLiteEntityStore(db_path=str(tmp_path / "tryon.db"))
    return InMemoryEntityStore()


def _run_together(func, count: int = THREADS) -> list:
    """Start ``count`` calls of ``func`` at the same moment and collect results or errors."""

    barrier = threading.Barrier(count)

    def call(_: int):
        barrier.wait()
        try:
            return func()
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=count) as executor:
        return list(executor.map(call, range(count)))


def test_concurrent_sync_creates_one_user(shared_store: EntityStore) -> None:
    results = _run_together(
        lambda: shared_store.get_or_create_user("same-subject", email="a@example.com", name="Ada")
    )

    users = [user for user, _ in results]
    assert len({user.id for user in users}) == 1
    assert sum(1 for _, created in results if created) == 1
    assert len(shared_store.list_users()) == 1


def test_concurrent_checkout_bills_cart_once(shared_store: EntityStore) -> None:
    user = shared_store.create_user("buyer", email="b@example.com", name="Buyer")
    model = shared_store.create_model(
        name="Shift", image_url=trusted("m.jpg"), category="formal", body_shapes=["apple"]
    )
    cart = CartService(shared_store)
    for price in (100, 150, 250):
        fabric = shared_store.create_fabric(
            name=f"Fabric {price}", image_url=trusted("f.jpg"), texture="linen", skin_tones=["tan"], price=price
        )
        trial = shared_store.create_trial(user.id, model.id, fabric.id)
        cart.add_item(user.id, trial.id, model.id, fabric.id)

    results = _run_together(lambda: cart.checkout(user.id))

    orders = [result for result in results if not isinstance(result, Exception)]
    rejected = [result for result in results if isinstance(result, Exception)]
    assert len(orders) == 1
    assert orders[0].total_amount == 500
    assert len(rejected) == THREADS - 1
    assert all(isinstance(error, InvalidRequest) for error in rejected)
    assert [order.id for order in shared_store.list_orders(user.id)] == [orders[0].id]
    assert shared_store.list_cart_items(user.id) == []


def test_concurrent_take_cart_items_hands_each_item_out_once(shared_store: EntityStore) -> None:
    added = [shared_store.add_cart_item("u1", f"t{index}", "m1", "f1") for index in range(5)]

    results = _run_together(lambda: shared_store.take_cart_items("u1"))

    taken = [item.id for batch in results for item in batch]
    assert sorted(taken) == sorted(item.id for item in added)
