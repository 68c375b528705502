import os
import pytest
from typing import Any, Dict, Generator, List
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

# Pas de Redis pendant les tests (le verrou de checkout retombe sur la session)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from cartpay import events
from cartpay.app_setup.factory import create_app
from cartpay.carts.models import Cart, CartItem, ItemKind, PaymentMethod, Tax
from cartpay.payments.session import PaymentSession
from cartpay.payments.settings import StaticSettings

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)
        elif "/tests/functional/" in nodeid or nodeid.startswith("tests/functional/"):
            item.add_marker(pytest.mark.functional)

@pytest.fixture(scope="session")
def app():
    return create_app()

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Aucun accès Supabase réel pendant les tests
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("cartpay.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("cartpay.infra.supabase_client.get_service_supabase", lambda: MagicMock())

@pytest.fixture(autouse=True)
def _reset_events():
    events._listeners.clear()
    yield
    events._listeners.clear()

@pytest.fixture
def persisted(monkeypatch) -> Dict[str, List[Any]]:
    """
    Remplace les écritures (journal de paiement, panier) par des enregistreurs en mémoire.
    Retour: {"logs": [PaymentLog...], "carts": [snapshot payment_state...]}
    """
    store: Dict[str, List[Any]] = {"logs": [], "carts": []}

    def _insert_log(log):
        saved = log.model_copy(update={"id": len(store["logs"]) + 1})
        store["logs"].append(saved)
        return saved

    def _save_cart(cart):
        store["carts"].append(cart.payment_state)
        return cart

    monkeypatch.setattr("cartpay.payments.log.insert_payment_log", _insert_log)
    monkeypatch.setattr("cartpay.carts.repository.save_cart", _save_cart)
    return store

@pytest.fixture
def default_tax() -> Tax:
    return Tax(id=1, name="TVA 10%", percentage=10, is_default=True)

@pytest.fixture
def payment_method() -> PaymentMethod:
    return PaymentMethod(
        id=7,
        name="Carte",
        code="card",
        price=30,
        percentage=2.9,
        payment_provider="stripe",
        taxes=[Tax(id=1, name="TVA 10%", percentage=10)],
    )

def build_cart(default_tax: Tax, method: PaymentMethod = None, before_tax: bool = True) -> Cart:
    """Panier de référence: 3 articles, 1 remise, 2 frais de service (montants en centimes)."""
    cart = Cart(id=1, session_id="sess-1", currency="EUR")
    cart.add(CartItem(name="A", code="a", price=1000, quantity=1, is_before_tax=before_tax), default_tax=default_tax)
    cart.add(CartItem(name="B", code="b", price=1000, quantity=5, is_before_tax=before_tax), default_tax=default_tax)
    cart.add(
        CartItem(name="C", code="c", price=10000, quantity=2, is_before_tax=before_tax,
                 taxes=[Tax(id=2, name="Taxe 100%", percentage=100)]),
        default_tax=default_tax,
    )
    cart.add(CartItem(name="Remise", code="discount", kind=ItemKind.DISCOUNT, price=-10000, is_tax_free=True))
    cart.add(
        CartItem(name="Livraison", code="shipping", kind=ItemKind.SERVICE, price=5000, is_before_tax=before_tax),
        default_tax=default_tax,
    )
    cart.add(
        CartItem(name="Manutention", code="handling", kind=ItemKind.SERVICE, price=1000, is_before_tax=before_tax),
        default_tax=default_tax,
    )
    if method is not None:
        cart.set_payment_method(method)
    return cart

@pytest.fixture
def cart(default_tax, payment_method) -> Cart:
    return build_cart(default_tax, payment_method)

@pytest.fixture
def session() -> PaymentSession:
    return PaymentSession({})

@pytest.fixture
def static_settings() -> StaticSettings:
    return StaticSettings({
        "stripe": {"stripe_api_key": "sk_test_card"},
        "stripe-checkout": {"stripe_checkout_api_key": "sk_test_checkout"},
        "six-saferpay": {
            "six_customer_id": "123456",
            "six_terminal_id": "17777777",
            "six_api_key": "API_123456_00000000",
            "six_api_secret": "secret",
        },
    })

@pytest.fixture
def make_cart(default_tax):
    def _make(method: PaymentMethod = None, before_tax: bool = True) -> Cart:
        return build_cart(default_tax, method, before_tax)
    return _make
