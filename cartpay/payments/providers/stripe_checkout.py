"""
Stripe Checkout (page de paiement hébergée).

process(): crée la session Checkout, mémorise le callback et l'id de session, redirige.
complete(): au retour, relit la session (id retiré de la session: usage unique) et conclut:
- payment_status "paid"                       -> success
- session "open" ou paiement différé en cours  -> pending
- sinon                                        -> fail
"""
from typing import Any, Dict, List, Optional
import logging

from cartpay.carts.models import Cart
from cartpay.config import STRIPE_CHECKOUT_SECRET_KEY, STRIPE_PUBLIC_KEY
from cartpay.payments import stripe_client
from cartpay.payments.providers.base import CompletesOffSite, PaymentProvider
from cartpay.payments.session import PAYMENT_CALLBACK, STRIPE_CHECKOUT_SESSION_ID
from cartpay.utils.money import round_half_up

logger = logging.getLogger(__name__)


def _line(name: str, amount: int, currency: str, quantity: int = 1, description: Optional[str] = None) -> Dict[str, Any]:
    product: Dict[str, Any] = {"name": name or "Article"}
    if description:
        product["description"] = description
    return {
        "price_data": {"currency": currency.lower(), "unit_amount": amount, "product_data": product},
        "quantity": quantity,
    }


def to_line_items(cart: Cart) -> List[Dict[str, Any]]:
    """
    Lignes Stripe (montants TTC en centimes).
    Stripe refuse les montants négatifs: en présence de remise, ou si le détail ne tombe
    pas juste à cause des arrondis, on envoie une seule ligne pour le panier.
    """
    currency = cart.currency or ""
    totals = cart.totals
    lines: List[Dict[str, Any]] = []
    detailed_total = 0
    for item in cart.items:
        if not item.quantity:
            continue
        unit = round_half_up(item.total / item.quantity)
        lines.append(_line(item.name, unit, currency, item.quantity, item.description))
        detailed_total += unit * item.quantity

    if any(l["price_data"]["unit_amount"] < 0 for l in lines) or detailed_total != totals.cart_post_taxes:
        lines = [_line(f"Panier {cart.id}", totals.cart_post_taxes, currency)]

    if totals.payment_post_taxes > 0:
        lines.append(_line("Frais de paiement", totals.payment_post_taxes, currency))
    return lines


class StripeCheckout(PaymentProvider, CompletesOffSite):
    identifier = "stripe-checkout"
    name = "Stripe Checkout"

    def settings(self) -> List[Dict[str, Any]]:
        return [
            {"key": "stripe_checkout_api_key", "label": "Clé secrète Stripe", "type": "text"},
            {"key": "stripe_checkout_publishable_key", "label": "Clé publique Stripe", "type": "text"},
        ]

    def encrypted_settings(self) -> List[str]:
        return ["stripe_checkout_api_key"]

    def default_settings(self) -> Dict[str, Any]:
        return {
            "stripe_checkout_api_key": STRIPE_CHECKOUT_SECRET_KEY,
            "stripe_checkout_publishable_key": STRIPE_PUBLIC_KEY,
        }

    def process(self, result):
        cart = self.cart
        try:
            session = stripe_client.create_session(
                api_key=self.get_settings("stripe_checkout_api_key", ""),
                line_items=to_line_items(cart),
                success_url=self.return_url(),
                cancel_url=self.cancel_url(),
                metadata={"cart_id": str(cart.id)},
                customer_email=cart.email or None,
                client_reference_id=str(cart.id),
            )
        except Exception as e:
            logger.exception("payments.providers.stripe_checkout.process failed cart_id=%s", cart.id)
            return result.fail({}, e)

        url = session.get("url")
        if not url:
            return result.fail({}, {"id": session.get("id"), "error": "session sans url"})

        self.session.put(PAYMENT_CALLBACK, self.identifier)
        self.session.put(STRIPE_CHECKOUT_SESSION_ID, session.get("id"))
        return result.redirect(url)

    def complete(self, result):
        session_id = self.session.pull(STRIPE_CHECKOUT_SESSION_ID)
        if not session_id:
            return result.fail({}, "Session Stripe Checkout introuvable")

        try:
            session = stripe_client.get_session(
                session_id, api_key=self.get_settings("stripe_checkout_api_key", "")
            )
        except Exception as e:
            logger.exception("payments.providers.stripe_checkout.complete failed session_id=%s", session_id)
            return result.fail({"session_id": session_id}, e)

        status = session.get("status")
        payment_status = session.get("payment_status")
        data = {
            "session_id": session_id,
            "payment_intent": session.get("payment_intent"),
            "status": status,
            "payment_status": payment_status,
        }
        if payment_status == "paid":
            return result.success(data, data)
        if status == "open" or (status == "complete" and payment_status == "unpaid"):
            return result.pending()
        return result.fail(data, data)
