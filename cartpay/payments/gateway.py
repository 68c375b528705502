"""
Passerelle de paiement: registre des fournisseurs + orchestration d'un seul fournisseur actif.

Le registre est une liste explicite de classes fournie au démarrage (pas de découverte
dynamique). Chaque résolution crée une instance neuve, liée à la session de la requête.
"""
from typing import Any, Dict, List, Optional, Type
import logging
import secrets
import string

from cartpay.carts.models import Cart, PaymentMethod
from cartpay.exceptions import ConfigurationError, LogicError
from cartpay.payments.providers.base import PaymentProvider
from cartpay.payments.result import PaymentResult
from cartpay.payments.session import PAYMENT_ID, PaymentSession
from cartpay.payments.settings import GatewaySettings

logger = logging.getLogger(__name__)

_TOKEN_ALPHABET = string.ascii_letters + string.digits


def new_payment_id(length: int = 8) -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


class PaymentGateway:
    def __init__(
        self,
        session: Optional[PaymentSession] = None,
        settings: Optional[GatewaySettings] = None,
        current_url: str = "",
        client_ip: Optional[str] = None,
    ):
        self.session = session if session is not None else PaymentSession()
        self.settings = settings if settings is not None else GatewaySettings()
        self.current_url = current_url
        self.client_ip = client_ip
        self._providers: Dict[str, Type[PaymentProvider]] = {}
        self._active: Optional[PaymentProvider] = None

    def register_provider(self, provider: Type[PaymentProvider]) -> "PaymentGateway":
        if not provider.identifier:
            raise ConfigurationError(f"Fournisseur sans identifiant: {provider.__name__}")
        if provider.identifier in self._providers:
            raise ConfigurationError(f"Fournisseur déjà enregistré: {provider.identifier}")
        self._providers[provider.identifier] = provider
        return self

    def register_providers(self, providers) -> "PaymentGateway":
        for provider in providers:
            self.register_provider(provider)
        return self

    def get_providers(self) -> List[Type[PaymentProvider]]:
        return list(self._providers.values())

    def provider_options(self) -> Dict[str, str]:
        return {p.identifier: p.name for p in self._providers.values()}

    def get_provider_by_id(self, identifier: str) -> PaymentProvider:
        provider = self._providers.get(identifier or "")
        if provider is None:
            raise ConfigurationError(f"Fournisseur de paiement indisponible: {identifier}")
        return provider(
            session=self.session,
            settings=self.settings,
            current_url=self.current_url,
            client_ip=self.client_ip,
        )

    def get_active_provider(self) -> Optional[PaymentProvider]:
        return self._active

    def init(self, method: PaymentMethod, data: Optional[Dict[str, Any]] = None) -> PaymentProvider:
        """Sélectionne le fournisseur du moyen de paiement et valide les données (ValidationError)."""
        provider = self.get_provider_by_id(method.payment_provider)
        provider.set_data(data)
        self._active = provider
        provider.validate()
        return provider

    def process(self, cart: Cart) -> PaymentResult:
        provider = self._active
        if provider is None:
            raise LogicError("PaymentGateway.process() appelé avant init()")

        provider.init()
        # Nouveau jeton de tentative: les URLs de retour le portent
        self.session.put(PAYMENT_ID, new_payment_id())
        provider.set_cart(cart)

        result = PaymentResult(provider, cart)
        return provider.process(result)
