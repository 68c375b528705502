from .base import CompletesOffSite, PaymentProvider
from .offline import Offline
from .saferpay import SixSaferPay
from .stripe_card import StripeCard
from .stripe_checkout import StripeCheckout


def default_providers():
    """Liste d'enregistrement explicite, passée à PaymentGateway au démarrage."""
    return [Offline, StripeCard, StripeCheckout, SixSaferPay]


__all__ = [
    "CompletesOffSite",
    "PaymentProvider",
    "Offline",
    "StripeCard",
    "StripeCheckout",
    "SixSaferPay",
    "default_providers",
]
