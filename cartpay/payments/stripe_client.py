"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
Chaque appel reçoit la clé du fournisseur (réglages en base), jamais une clé globale.
"""
import stripe
from typing import Any, Dict, List, Optional

from cartpay.config import PROVIDER_TIMEOUT_SECONDS

# module cartpay.payments.stripe_client
def require_stripe() -> stripe:
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Borne chaque requête HTTP par PROVIDER_TIMEOUT_SECONDS (un fournisseur lent ne doit
      pas garder le verrou de checkout indéfiniment).
    """
    stripe.default_http_client = stripe.RequestsClient(timeout=PROVIDER_TIMEOUT_SECONDS)
    stripe.max_network_retries = 0
    return stripe

def create_customer(
    *,
    api_key: str,
    name: str,
    email: str,
    source: str,
    shipping: Dict[str, Any],
    description: str = "",
) -> Dict[str, Any]:
    """Crée un client Stripe à partir d'un jeton de carte (tok_...)."""
    require_stripe()
    customer = stripe.Customer.create(
        api_key=api_key,
        name=name,
        email=email,
        source=source,
        shipping=shipping,
        description=description,
        metadata={"name": name},
    )
    return dict(customer)

def create_payment_intent(
    *,
    api_key: str,
    amount: int,
    currency: str,
    customer: str,
    payment_method: Optional[str],
    description: str,
    return_url: str,
    metadata: Dict[str, Any],
) -> Dict[str, Any]:
    """Crée et confirme un PaymentIntent (montant en centimes)."""
    require_stripe()
    intent = stripe.PaymentIntent.create(
        api_key=api_key,
        amount=amount,
        currency=currency.lower(),
        customer=customer,
        payment_method=payment_method,
        description=description,
        confirm=True,
        return_url=return_url,
        metadata=metadata,
    )
    return dict(intent)

def create_session(
    *,
    api_key: str,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, Any],
    customer_email: Optional[str] = None,
    client_reference_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout (mode "payment").
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    session = stripe.checkout.Session.create(
        api_key=api_key,
        line_items=line_items,
        mode="payment",
        success_url=success_url,
        cancel_url=cancel_url,
        metadata=metadata,
        customer_email=customer_email,
        client_reference_id=client_reference_id,
    )
    return dict(session)

def get_session(session_id: str, *, api_key: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict session incluant "id", "status", "payment_status", "metadata", etc.
    """
    require_stripe()
    session = stripe.checkout.Session.retrieve(session_id, api_key=api_key)
    return dict(session)
