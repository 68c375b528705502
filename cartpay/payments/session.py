"""
État de checkout persistant entre deux requêtes (cookie de session Starlette).

Les valeurs à usage unique (jeton de tentative, panier en cours, callback fournisseur,
jetons transitoires) sont lues avec pull(): lecture + suppression, pour bloquer le rejeu.
"""
from typing import Any, MutableMapping, Optional
import secrets

PROCESSING_CART_ID = "processing_cart_id"
PAYMENT_ID = "payment_id"
PAYMENT_CALLBACK = "payment_callback"
PAYMENT_DATA = "payment_data"
STRIPE_CHECKOUT_SESSION_ID = "stripe_checkout_session_id"
SAFERPAY_TOKEN = "saferpay_token"
CART_SESSION_ID = "cart_session_id"

# Données propres à une tentative hors site, effacées dès que la tentative se termine
ATTEMPT_KEYS = (PAYMENT_CALLBACK, PAYMENT_DATA, STRIPE_CHECKOUT_SESSION_ID, SAFERPAY_TOKEN)

_PREFIX = "cartpay."


class PaymentSession:
    def __init__(self, store: Optional[MutableMapping[str, Any]] = None):
        self.store: MutableMapping[str, Any] = store if store is not None else {}

    def _key(self, key: str) -> str:
        return _PREFIX + key

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(self._key(key), default)

    def put(self, key: str, value: Any) -> None:
        self.store[self._key(key)] = value

    def pull(self, key: str, default: Any = None) -> Any:
        return self.store.pop(self._key(key), default)

    def forget(self, key: str) -> None:
        self.store.pop(self._key(key), None)

    def has(self, key: str) -> bool:
        return self._key(key) in self.store

    def forget_attempt(self) -> None:
        for key in ATTEMPT_KEYS:
            self.forget(key)

    # Identifiant anonyme du panier

    @property
    def cart_session_id(self) -> str:
        value = self.get(CART_SESSION_ID)
        if not value:
            value = self.rotate_cart_session_id()
        return value

    def rotate_cart_session_id(self) -> str:
        """Nouvel identifiant après un achat (évite la fixation de session)."""
        value = secrets.token_urlsafe(24)
        self.put(CART_SESSION_ID, value)
        return value
