"""Cart maintenance and checkout totals."""

from __future__ import annotations

import pytest

from conftest import trusted
from logic.checkout import CartService
from logic.errors import InvalidRequest, NotFound


@pytest.fixture()
def cart(store) -> CartService:
    return CartService(store)


@pytest.fixture()
def shopper(store):
    return store.create_user("shopper", email="s@example.com", name="Shopper")


def _trial_for(store, user, price: int):
    model = store.create_model(
        name="Wrap dress", image_url=trusted("m.jpg"), category="casual", body_shapes=["pear"]
    )
    fabric = store.create_fabric(
        name=f"Fabric {price}",
        image_url=trusted("f.jpg"),
        texture="silk",
        skin_tones=["fair"],
        price=price,
    )
    return store.create_trial(user.id, model.id, fabric.id)


def test_checkout_of_empty_cart_is_rejected(cart: CartService, store, shopper) -> None:
    with pytest.raises(InvalidRequest):
        cart.checkout(shopper.id)

    assert store.list_orders() == []


def test_checkout_totals_prices_times_quantities(cart: CartService, store, shopper) -> None:
    trials = [_trial_for(store, shopper, price) for price in (20, 30, 50)]
    for trial in trials:
        cart.add_item(shopper.id, trial.id, trial.model_id, trial.fabric_id)
    # a second line for the same trial counts twice
    cart.add_item(shopper.id, trials[1].id, trials[1].model_id, trials[1].fabric_id)

    order = cart.checkout(shopper.id)

    assert order.total_amount == 20 + 30 * 2 + 50
    assert order.status == "completed"
    assert len(order.items) == 4
    assert cart.list_items(shopper.id) == []
    assert [stored.id for stored in cart.list_orders(shopper.id)] == [order.id]


def test_checkout_leaves_other_carts_alone(cart: CartService, store, shopper) -> None:
    other = store.create_user("other", email="o@example.com", name="Other")
    mine = _trial_for(store, shopper, 10)
    theirs = _trial_for(store, other, 99)
    cart.add_item(shopper.id, mine.id, mine.model_id, mine.fabric_id)
    cart.add_item(other.id, theirs.id, theirs.model_id, theirs.fabric_id)

    order = cart.checkout(shopper.id)

    assert order.total_amount == 10
    assert len(cart.list_items(other.id)) == 1


def test_missing_fabric_contributes_nothing(cart: CartService, store, shopper) -> None:
    trial = _trial_for(store, shopper, 40)
    cart.add_item(shopper.id, trial.id, trial.model_id, trial.fabric_id)
    cart.add_item(shopper.id, trial.id, trial.model_id, "retired-fabric")

    order = cart.checkout(shopper.id)

    assert order.total_amount == 40
    assert len(order.items) == 2


def test_adding_same_trial_twice_creates_two_items(cart: CartService, store, shopper) -> None:
    trial = _trial_for(store, shopper, 15)

    first = cart.add_item(shopper.id, trial.id, trial.model_id, trial.fabric_id)
    second = cart.add_item(shopper.id, trial.id, trial.model_id, trial.fabric_id)

    assert first.id != second.id
    assert first.quantity == second.quantity == 1
    assert len(cart.list_items(shopper.id)) == 2


def test_cart_lines_carry_catalog_records(cart: CartService, store, shopper) -> None:
    trial = _trial_for(store, shopper, 25)
    cart.add_item(shopper.id, trial.id, trial.model_id, trial.fabric_id)

    (line,) = cart.list_items(shopper.id)

    assert line.model.id == trial.model_id
    assert line.fabric.price == 25


def test_cannot_add_someone_elses_trial(cart: CartService, store, shopper) -> None:
    other = store.create_user("other", email="o@example.com", name="Other")
    trial = _trial_for(store, other, 25)

    with pytest.raises(NotFound):
        cart.add_item(shopper.id, trial.id, trial.model_id, trial.fabric_id)
    with pytest.raises(NotFound):
        cart.add_item(shopper.id, "no-such-trial", trial.model_id, trial.fabric_id)


def test_remove_item_is_owner_scoped(cart: CartService, store, shopper) -> None:
    other = store.create_user("other", email="o@example.com", name="Other")
    trial = _trial_for(store, shopper, 25)
    item = cart.add_item(shopper.id, trial.id, trial.model_id, trial.fabric_id)

    with pytest.raises(NotFound):
        cart.remove_item(other.id, item.id)
    assert len(cart.list_items(shopper.id)) == 1

    cart.remove_item(shopper.id, item.id)
    assert cart.list_items(shopper.id) == []
    with pytest.raises(NotFound):
        cart.remove_item(shopper.id, item.id)


def test_checkout_with_line_quantities(cart: CartService, store, shopper) -> None:
    quantities = {20: 1, 30: 2, 50: 1}
    for price, quantity in quantities.items():
        trial = _trial_for(store, shopper, price)
        store.add_cart_item(shopper.id, trial.id, trial.model_id, trial.fabric_id, quantity=quantity)

    order = cart.checkout(shopper.id)

    assert order.total_amount == 20 * 1 + 30 * 2 + 50 * 1 == 150
    assert len(order.items) == 3
    assert sorted(line.quantity for line in order.items) == [1, 1, 2]
    assert cart.list_items(shopper.id) == []
