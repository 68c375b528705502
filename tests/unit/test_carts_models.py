import pytest

from cartpay import events
from cartpay.carts.models import Cart, CartItem, ItemKind, PaymentState, Tax
from cartpay.exceptions import LogicError


def test_add_defaults_quantity_and_default_tax(default_tax):
    cart = Cart(id=5)
    item = cart.add(CartItem(name="X", price=100), default_tax=default_tax)

    assert item.quantity == 1
    assert item.taxes == [default_tax]
    assert item.cart_id == 5


def test_add_keeps_explicit_taxes_and_tax_free(default_tax):
    cart = Cart(id=5)
    own = Tax(id=9, percentage=20)
    taxed = cart.add(CartItem(name="X", price=100, taxes=[own]), default_tax=default_tax)
    free = cart.add(CartItem(name="Y", price=100, is_tax_free=True), default_tax=default_tax)

    assert taxed.taxes == [own]
    assert free.taxes == []


def test_items_are_ordered_by_kind():
    cart = Cart(id=1)
    cart.add(CartItem(name="fee", kind=ItemKind.SERVICE, price=1))
    cart.add(CartItem(name="rebate", kind=ItemKind.DISCOUNT, price=-1))
    cart.add(CartItem(name="thing", kind=ItemKind.ITEM, price=1))

    assert [i.kind for i in cart.items] == [ItemKind.ITEM, ItemKind.DISCOUNT, ItemKind.SERVICE]
    assert [i.name for i in cart.list_items] == ["thing"]
    assert [i.name for i in cart.discounts] == ["rebate"]
    assert [i.name for i in cart.service_fees] == ["fee"]


def test_ensure_is_idempotent_and_overrides_quantity():
    cart = Cart(id=1)
    cart.ensure(CartItem(name="Livraison", code="shipping", kind=ItemKind.SERVICE, price=500))
    cart.ensure(CartItem(name="Livraison express", code="shipping", kind=ItemKind.SERVICE, price=900), quantity=3)

    shipping = [i for i in cart.items if i.code == "shipping"]
    assert len(shipping) == 1
    assert shipping[0].quantity == 3
    assert shipping[0].price == 900
    assert shipping[0].name == "Livraison express"


def test_ensure_keeps_quantity_when_not_given():
    cart = Cart(id=1)
    cart.ensure(CartItem(code="gift", price=100), quantity=4)
    cart.ensure(CartItem(code="gift", price=200))

    assert cart.find_by_code("gift").quantity == 4
    assert cart.find_by_code("gift").price == 200


def test_ensure_requires_code():
    with pytest.raises(ValueError):
        Cart(id=1).ensure(CartItem(name="no code"))


def test_remove_by_instance_id_and_code():
    cart = Cart(id=1)
    a = cart.add(CartItem(id=10, code="a", price=1))
    cart.add(CartItem(id=11, code="b", price=1))
    cart.add(CartItem(id=12, code="b", price=1))

    cart.remove(a)
    removed = cart.remove_by_code("b")

    assert len(removed) == 2
    assert cart.items == []


def test_remove_unknown_item_raises_lookup_error():
    cart = Cart(id=1)
    with pytest.raises(LookupError):
        cart.remove(99)
    with pytest.raises(LookupError):
        cart.set_quantity(CartItem(name="foreign"), 2)


def test_set_quantity_fires_events():
    cart = Cart(id=1)
    item = cart.add(CartItem(id=3, code="a", price=1))
    seen = []
    events.listen("cart.before_quantity_change", lambda c, i: seen.append(("before", i.quantity)))
    events.listen("cart.after_quantity_change", lambda c, i: seen.append(("after", i.quantity)))

    cart.set_quantity(3, 7)

    assert seen == [("before", 1), ("after", 7)]
    assert item.quantity == 7


def test_set_quantity_rejects_negative():
    cart = Cart(id=1)
    cart.add(CartItem(id=3, price=1))
    with pytest.raises(ValueError):
        cart.set_quantity(3, -1)


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (None, PaymentState.PENDING, True),
        (None, PaymentState.PAID, True),
        (None, PaymentState.FAILED, True),
        (None, PaymentState.REFUNDED, False),
        (PaymentState.PENDING, PaymentState.PAID, True),
        (PaymentState.PENDING, PaymentState.FAILED, True),
        (PaymentState.PENDING, PaymentState.REFUNDED, True),
        (PaymentState.PAID, PaymentState.REFUNDED, True),
        (PaymentState.PAID, PaymentState.PENDING, False),
        (PaymentState.FAILED, PaymentState.PAID, False),
        (PaymentState.REFUNDED, PaymentState.PAID, False),
    ],
)
def test_payment_state_transitions(current, target, allowed):
    cart = Cart(id=1, payment_state=current)
    if allowed:
        cart.transition_to(target)
        assert cart.payment_state == target
    else:
        with pytest.raises(LogicError):
            cart.transition_to(target)


def test_is_closed_once_payment_state_set():
    cart = Cart(id=1)
    assert cart.is_closed is False
    cart.transition_to(PaymentState.PENDING)
    assert cart.is_closed is True


def test_shipping_address_lines():
    cart = Cart(
        shipping_company="ACME",
        shipping_firstname="Jeanne",
        shipping_lastname="Martin",
        shipping_lines="1 rue de la Paix",
        shipping_zip="75002",
        shipping_city="Paris",
        shipping_country="FR",
    )
    assert cart.shipping_address_lines() == ["ACME", "Jeanne Martin", "1 rue de la Paix", "75002 Paris", "FR"]
    assert cart.shipping_address_lines(reverse_zip=True)[3] == "Paris 75002"


def test_snapshot_contains_items_and_totals(cart):
    data = cart.snapshot()

    assert data["id"] == 1
    assert len(data["items"]) == 6
    assert data["items"][0]["subtotal"] == 1000
    assert data["totals"]["grand_post_taxes"] == 43957
    assert data["payment_method"]["name"] == "Carte"


def test_payment_method_label(payment_method):
    assert payment_method.label() == "Carte (ID 7)"
