import threading

import pytest
import fakeredis
from urllib.parse import parse_qs, urlsplit
from fastapi.testclient import TestClient

from cartpay.app_setup.factory import create_app
from cartpay.carts.models import PaymentMethod, PaymentState, Tax
from cartpay.exceptions import ConfigurationError
from cartpay.payments.providers import PaymentProvider, default_providers

FORM = {
    "email": "jeanne@example.com",
    "shipping_firstname": "Jeanne",
    "shipping_lastname": "Martin",
    "shipping_lines": "1 rue de la Paix",
    "shipping_zip": "75002",
    "shipping_city": "Paris",
    "shipping_country": "FR",
}

METHODS = {
    1: PaymentMethod(id=1, name="Virement", payment_provider="offline", is_default=True),
    7: PaymentMethod(id=7, name="Carte", price=30, percentage=2.9, payment_provider="stripe",
                     taxes=[Tax(id=1, name="TVA 10%", percentage=10)]),
    8: PaymentMethod(id=8, name="Stripe Checkout", payment_provider="stripe-checkout"),
}


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


@pytest.fixture
def checkout_app(static_settings):
    return create_app(gateway_settings=static_settings)


@pytest.fixture
def web(checkout_app):
    with TestClient(checkout_app) as c:
        yield c


@pytest.fixture
def shop(monkeypatch, make_cart, persisted):
    """Panier de session en mémoire: les lectures/écritures Supabase sont remplacées."""
    state = {"cart": make_cart(METHODS[1]), "sessions": []}

    def _cart_from_session(session):
        state["sessions"].append(session.cart_session_id)
        return state["cart"]

    def _set_payment_method(cart, method_id):
        if method_id not in METHODS:
            raise ConfigurationError(f"Moyen de paiement introuvable (id={method_id})")
        cart.set_payment_method(METHODS[method_id])
        return cart

    monkeypatch.setattr("cartpay.carts.service.cart_from_session", _cart_from_session)
    monkeypatch.setattr("cartpay.carts.service.set_payment_method", _set_payment_method)
    monkeypatch.setattr("cartpay.carts.repository.get_cart", lambda cart_id: state["cart"] if cart_id == 1 else None)
    state["persisted"] = persisted
    return state


def test_health(web):
    assert web.get("/health").json() == {"ok": True}
    info = web.get("/health/rate-limit").json()
    assert info["enabled"] is False
    assert info["checkout_guard"] == "local"


def test_checkout_page_returns_cart_and_totals(web, shop):
    res = web.get("/checkout")

    assert res.status_code == 200
    body = res.json()
    assert body["cart"]["id"] == 1
    assert body["totals"]["cart_post_taxes"] == 43200
    assert len(body["cart"]["items"]) == 6


def test_totals_are_formatted(web, shop):
    res = web.get("/checkout/totals")

    body = res.json()
    assert body["currency"] == "EUR"
    assert body["totals"]["grand_post_taxes"] == 43200
    assert body["formatted"]["cart_post_taxes"] == "432.00 EUR"


def test_payment_methods_lists_provider_names(web, monkeypatch):
    monkeypatch.setattr("cartpay.carts.repository.list_payment_methods", lambda: list(METHODS.values()))

    methods = web.get("/checkout/payment-methods").json()["methods"]

    assert [m["provider_name"] for m in methods] == ["Paiement hors ligne", "Stripe", "Stripe Checkout"]
    assert methods[0]["is_default"] is True


def test_result_page(web):
    assert web.get("/checkout/result", params={"result": "failed", "cart": 4}).json() == {"result": "failed", "cart": 4}


def test_offline_checkout_ends_pending(web, shop):
    res = web.post("/checkout", json=dict(FORM, payment_method_id=1), follow_redirects=False)

    assert res.status_code == 303
    assert res.headers["location"] == "http://testserver/checkout/result?result=pending&cart=1"
    cart = shop["cart"]
    assert cart.payment_state == PaymentState.PENDING
    assert cart.email == "jeanne@example.com"
    assert cart.shipping_city == "Paris"
    assert shop["persisted"]["carts"][-1] == PaymentState.PENDING


def test_offline_checkout_rotates_cart_session(web, shop):
    web.post("/checkout", json=dict(FORM, payment_method_id=1), follow_redirects=False)
    web.get("/checkout")

    first, second = shop["sessions"][0], shop["sessions"][-1]
    assert first != second


def test_empty_cart_is_rejected(web, shop):
    shop["cart"].items = []

    res = web.post("/checkout", json=dict(FORM, payment_method_id=1), follow_redirects=False)

    assert res.status_code == 422
    assert res.json()["errors"] == {"cart": "Le panier est vide."}


def test_invalid_stripe_token_is_a_validation_error(web, shop):
    res = web.post("/checkout", json=dict(FORM, payment_method_id=7, token="tok_bad"), follow_redirects=False)

    assert res.status_code == 422
    body = res.json()
    assert body["code"] == "validation_error"
    assert "token" in body["errors"]
    assert shop["cart"].payment_state is None
    assert shop["persisted"]["logs"] == []


def test_invalid_stripe_token_redirects_html_clients(web, shop):
    res = web.post(
        "/checkout",
        json=dict(FORM, payment_method_id=7, token="tok_bad"),
        headers={"Accept": "text/html"},
        follow_redirects=False,
    )

    assert res.status_code == 303
    assert res.headers["location"].startswith("/checkout?error=")


def test_billing_address_required_when_different(web, shop):
    res = web.post("/checkout", json=dict(FORM, payment_method_id=1, billing_differs=True), follow_redirects=False)
    assert res.status_code == 422


def test_unknown_payment_method_is_a_configuration_error(web, shop):
    res = web.post("/checkout", json=dict(FORM, payment_method_id=99), follow_redirects=False)

    assert res.status_code == 500
    assert res.json()["code"] == "configuration_error"


def test_stripe_card_success_redirects_to_succeeded(web, shop, monkeypatch):
    monkeypatch.setattr("cartpay.payments.stripe_client.create_customer", lambda **kw: {"id": "cus_1"})
    monkeypatch.setattr(
        "cartpay.payments.stripe_client.create_payment_intent",
        lambda **kw: {"id": "pi_1", "status": "succeeded"},
    )

    res = web.post(
        "/checkout",
        json=dict(FORM, payment_method_id=7, token="tok_" + "a" * 24),
        follow_redirects=False,
    )

    assert _query(res.headers["location"]) == {"result": "succeeded", "cart": "1"}
    assert shop["cart"].payment_state == PaymentState.PAID
    log = shop["persisted"]["logs"][0]
    assert log.failed is False
    assert log.payment_provider == "stripe"
    assert log.payment_method == "Carte (ID 7)"


def test_stripe_card_decline_redirects_to_failed(web, shop, monkeypatch):
    def _declined(**kw):
        raise RuntimeError("Your card was declined.")

    monkeypatch.setattr("cartpay.payments.stripe_client.create_customer", _declined)

    res = web.post(
        "/checkout",
        json=dict(FORM, payment_method_id=7, token="tok_" + "a" * 24),
        follow_redirects=False,
    )

    assert _query(res.headers["location"]) == {"result": "failed", "cart": "1"}
    cart = shop["cart"]
    assert cart.payment_state is None
    assert cart.payment_log_id == 1
    assert shop["persisted"]["logs"][0].failed is True


def _start_stripe_checkout(web, monkeypatch, session_status=None):
    sent = {}

    def _create_session(**kw):
        sent.update(kw)
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    monkeypatch.setattr("cartpay.payments.stripe_client.create_session", _create_session)
    if session_status is not None:
        monkeypatch.setattr("cartpay.payments.stripe_client.get_session", lambda sid, api_key: dict(session_status, id=sid))

    res = web.post("/checkout", json=dict(FORM, payment_method_id=8), follow_redirects=False)
    assert res.status_code == 303
    assert res.headers["location"] == "https://checkout.stripe.test/cs_test_1"
    return sent


def test_stripe_checkout_round_trip(web, shop, monkeypatch):
    sent = _start_stripe_checkout(web, monkeypatch, {"status": "complete", "payment_status": "paid"})
    assert shop["cart"].payment_state is None

    res = web.get(sent["success_url"], follow_redirects=False)

    assert _query(res.headers["location"]) == {"result": "succeeded", "cart": "1"}
    assert shop["cart"].payment_state == PaymentState.PAID
    assert shop["persisted"]["logs"][0].data["session_id"] == "cs_test_1"

    # Rejeu du même retour: jeton déjà consommé
    replay = web.get(sent["success_url"], follow_redirects=False)
    assert _query(replay.headers["location"]) == {"result": "failed"}


def test_stripe_checkout_cancel(web, shop, monkeypatch):
    sent = _start_stripe_checkout(web, monkeypatch)

    res = web.get(sent["cancel_url"], follow_redirects=False)

    assert _query(res.headers["location"]) == {"result": "cancelled", "cart": "1"}
    assert shop["cart"].payment_state is None


def test_off_site_return_with_wrong_token_fails(web, shop, monkeypatch):
    sent = _start_stripe_checkout(web, monkeypatch, {"status": "complete", "payment_status": "paid"})
    forged = sent["success_url"].split("cartpay-payment-id=")[0] + "cartpay-payment-id=forged"

    res = web.get(forged, follow_redirects=False)

    assert _query(res.headers["location"]) == {"result": "failed", "cart": "1"}
    assert shop["cart"].payment_state is None


def test_return_without_attempt_fails(web):
    res = web.get("/checkout", params={"return": "return", "cartpay-payment-id": "abc"}, follow_redirects=False)

    assert res.status_code == 303
    assert _query(res.headers["location"]) == {"result": "failed"}


def test_concurrent_submission_is_rejected(checkout_app, shop, monkeypatch):
    redis = fakeredis.FakeRedis()

    def _busy_cart(session):
        # Une autre soumission de la même session tient déjà le verrou
        redis.set(f"cartpay:checkout-lock:{session.cart_session_id}", "1", ex=60)
        return shop["cart"]

    monkeypatch.setattr("cartpay.carts.service.cart_from_session", _busy_cart)
    calls = []
    monkeypatch.setattr("cartpay.payments.stripe_client.create_session", lambda **kw: calls.append(kw))

    with TestClient(checkout_app) as web:
        checkout_app.state.checkout_redis = redis
        res = web.post("/checkout", json=dict(FORM, payment_method_id=8), follow_redirects=False)

    assert res.status_code == 409
    assert res.json()["code"] == "checkout_in_progress"
    assert calls == []
    assert shop["cart"].payment_state is None


def test_rate_limit_on_checkout_submission(web, shop, monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    shop["cart"].items = []

    codes = []
    for _ in range(6):
        # Clé par IP: le cookie de session est re-signé à chaque réponse
        web.cookies.clear()
        codes.append(web.post("/checkout", json=dict(FORM, payment_method_id=1)).status_code)

    assert codes[:5] == [422] * 5
    assert codes[5] == 429


def test_terminal_redirect_lands_on_result_page(web, shop):
    res = web.post("/checkout", json=dict(FORM, payment_method_id=1))

    assert res.status_code == 200
    assert res.json() == {"result": "pending", "cart": 1}
    assert res.url.path == "/checkout/result"


def test_cancelled_return_lands_on_result_page(web, shop, monkeypatch):
    sent = _start_stripe_checkout(web, monkeypatch)

    res = web.get(sent["cancel_url"])

    assert res.json() == {"result": "cancelled", "cart": 1}


class HeldPayment(PaymentProvider):
    """Fournisseur qui reste dans process() tant que le test ne le libère pas."""

    identifier = "held"
    name = "Paiement bloqué"
    entered = threading.Event()
    release = threading.Event()
    calls = []

    def process(self, result):
        HeldPayment.calls.append(self.cart.id)
        HeldPayment.entered.set()
        HeldPayment.release.wait(5)
        return result.pending()


def test_concurrent_submissions_of_one_session_charge_once(static_settings, shop, monkeypatch):
    held = PaymentMethod(id=9, name="Virement lent", payment_provider="held")
    monkeypatch.setattr(
        "cartpay.carts.service.set_payment_method", lambda cart, method_id: cart.set_payment_method(held) or cart
    )
    HeldPayment.entered.clear()
    HeldPayment.release.clear()
    HeldPayment.calls.clear()
    app = create_app(providers=default_providers() + [HeldPayment], gateway_settings=static_settings)
    responses = {}

    with TestClient(app) as web:
        web.get("/checkout")  # cookie de session commun aux deux soumissions

        def _submit(name):
            responses[name] = web.post(
                "/checkout", json=dict(FORM, payment_method_id=9), follow_redirects=False
            )

        first = threading.Thread(target=_submit, args=("first",))
        first.start()
        try:
            assert HeldPayment.entered.wait(5)
            _submit("second")
        finally:
            HeldPayment.release.set()
            first.join(5)

    assert responses["second"].status_code == 409
    assert responses["second"].json()["code"] == "checkout_in_progress"
    assert responses["first"].status_code == 303
    assert HeldPayment.calls == [1]
