"""
Paiement par carte via Stripe (jeton "tok_..." créé côté navigateur avec Stripe.js).
Client Stripe (avec l'adresse de livraison) puis PaymentIntent confirmé sur le total TTC.
"""
from typing import Any, Dict, List
import logging
import re

from cartpay.config import STRIPE_PUBLIC_KEY, STRIPE_SECRET_KEY
from cartpay.exceptions import ValidationError
from cartpay.payments import stripe_client
from cartpay.payments.providers.base import PaymentProvider

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"^tok_[0-9a-zA-Z]{24}$")


def build_customer_name(data: Dict[str, Any]) -> str:
    """Nom de facturation si l'adresse diffère, sinon celui de livraison."""
    prefix = "billing" if data.get("billing_differs") else "shipping"
    parts = [data.get(f"{prefix}_firstname"), data.get(f"{prefix}_lastname")]
    return " ".join(p for p in parts if p).strip()


def shipping_information(data: Dict[str, Any]) -> Dict[str, Any]:
    name = build_customer_name(data)
    if data.get("shipping_company"):
        name = f"{name} ({data['shipping_company']})"
    lines = (data.get("shipping_lines") or "").split("\n")
    return {
        "name": name,
        "address": {
            "line1": lines[0] if lines else "",
            "line2": lines[1] if len(lines) > 1 else "",
            "city": data.get("shipping_city") or "",
            "country": data.get("shipping_country") or "",
            "postal_code": data.get("shipping_zip") or "",
        },
    }


class StripeCard(PaymentProvider):
    identifier = "stripe"
    name = "Stripe"

    def settings(self) -> List[Dict[str, Any]]:
        return [
            {"key": "stripe_api_key", "label": "Clé secrète Stripe", "type": "text"},
            {"key": "stripe_publishable_key", "label": "Clé publique Stripe", "type": "text"},
        ]

    def encrypted_settings(self) -> List[str]:
        return ["stripe_api_key"]

    def default_settings(self) -> Dict[str, Any]:
        return {"stripe_api_key": STRIPE_SECRET_KEY, "stripe_publishable_key": STRIPE_PUBLIC_KEY}

    def validate(self) -> bool:
        token = str(self.data.get("token") or "")
        if not token:
            raise ValidationError({"token": "Le jeton de carte est obligatoire."})
        if not TOKEN_PATTERN.match(token):
            raise ValidationError({"token": "Le jeton de carte est invalide."})
        return True

    def process(self, result):
        cart = self.cart
        try:
            customer = stripe_client.create_customer(
                api_key=self.get_settings("stripe_api_key", ""),
                name=build_customer_name(self.data),
                email=self.data.get("email") or "nobody@unknown.org",
                source=self.data.get("token"),
                shipping=shipping_information(self.data),
                description="Client créé par le checkout",
            )
            intent = stripe_client.create_payment_intent(
                api_key=self.get_settings("stripe_api_key", ""),
                amount=cart.totals.grand_post_taxes,
                currency=cart.currency or "",
                customer=customer.get("id"),
                payment_method=customer.get("default_source"),
                description=f"Paiement du panier {cart.id}",
                return_url=self.return_url(),
                metadata={"cart_id": str(cart.id)},
            )
        except Exception as e:
            logger.exception("payments.providers.stripe_card.process failed cart_id=%s", cart.id)
            return result.fail({}, e)

        status = intent.get("status")
        if status == "succeeded":
            return result.success(intent, {"id": intent.get("id"), "status": status})
        if status == "processing":
            return result.pending()
        return result.fail(intent, {"id": intent.get("id"), "status": status})
