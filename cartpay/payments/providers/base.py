"""
Contrat commun des fournisseurs de paiement.

Cycle d'une tentative (piloté par PaymentGateway):
    provider.set_data(data); provider.validate()   # avant toute opération de paiement
    provider.init()                                # chargement des réglages (clés API...)
    provider.set_cart(cart); provider.process(result)

Les fournisseurs qui redirigent hors du site implémentent aussi CompletesOffSite.complete(),
appelé au retour de l'utilisateur (PaymentRedirector).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from cartpay.carts.models import Cart
from cartpay.payments.session import PAYMENT_ID, PaymentSession
from cartpay.payments.settings import GatewaySettings

PAYMENT_ID_PARAM = "cartpay-payment-id"
RETURN_PARAM = "return"

RETURN_SUCCESS = "return"
RETURN_FAIL = "fail"
RETURN_CANCEL = "cancel"
RETURN_TYPES = (RETURN_SUCCESS, RETURN_FAIL, RETURN_CANCEL)


class PaymentProvider(ABC):
    identifier: str = ""
    name: str = ""

    def __init__(
        self,
        session: Optional[PaymentSession] = None,
        settings: Optional[GatewaySettings] = None,
        current_url: str = "",
        client_ip: Optional[str] = None,
    ):
        self.session = session if session is not None else PaymentSession()
        self.gateway_settings = settings if settings is not None else GatewaySettings()
        self.current_url = current_url
        self.client_ip = client_ip
        self.cart: Optional[Cart] = None
        self.data: Dict[str, Any] = {}
        self.config: Dict[str, Any] = {}

    # Réglages

    def settings(self) -> List[Dict[str, Any]]:
        """Descripteurs de champs pour un écran de configuration externe."""
        return []

    def encrypted_settings(self) -> List[str]:
        return []

    def default_settings(self) -> Dict[str, Any]:
        """Valeurs de repli (variables d'environnement) si la table de réglages est vide."""
        return {}

    def init(self) -> None:
        self.config = self.gateway_settings.load(
            self.identifier, self.encrypted_settings(), self.default_settings()
        )

    def get_settings(self, key: Optional[str] = None, default: Any = None) -> Any:
        if key is None:
            return dict(self.config)
        value = self.config.get(key)
        return default if value in (None, "") else value

    # Tentative

    def set_cart(self, cart: Cart) -> None:
        self.cart = cart

    def set_data(self, data: Optional[Dict[str, Any]]) -> None:
        self.data = dict(data or {})

    def validate(self) -> bool:
        """Lève ValidationError (champ -> message) si les données sont invalides."""
        return True

    @abstractmethod
    def process(self, result):
        raise NotImplementedError

    # URLs de retour

    @property
    def payment_id(self) -> Optional[str]:
        return self.session.get(PAYMENT_ID)

    def _callback_url(self, return_type: str) -> str:
        parts = urlsplit(self.current_url)
        query = urlencode({RETURN_PARAM: return_type, PAYMENT_ID_PARAM: self.payment_id or ""})
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))

    def return_url(self) -> str:
        return self._callback_url(RETURN_SUCCESS)

    def fail_url(self) -> str:
        return self._callback_url(RETURN_FAIL)

    def cancel_url(self) -> str:
        return self._callback_url(RETURN_CANCEL)


class CompletesOffSite(ABC):
    """Capacité des fournisseurs qui finalisent le paiement au retour de l'utilisateur."""

    @abstractmethod
    def complete(self, result):
        raise NotImplementedError
