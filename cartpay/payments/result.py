"""
Issue d'une tentative de paiement.

Un PaymentResult passe une seule fois dans un état terminal:
- success(data, response): journal non échoué (best effort) puis panier -> paid
- pending(): panier -> pending, aucun journal
- fail(data, response): journal échoué (toujours), id du journal rattaché au panier,
  payment_state inchangé pour permettre un nouvel essai
- redirect(url): paiement à poursuivre chez le fournisseur, aucun changement sur le panier

Les erreurs de persistance sont journalisées, jamais propagées: l'argent a déjà bougé
(ou non) chez le fournisseur, c'est la vérité externe qui prime.
"""
from typing import Any, Optional, Tuple
import json
import logging

from cartpay.carts import repository as cart_repository
from cartpay.carts.models import Cart, PaymentState
from cartpay.exceptions import LogicError, PersistenceWarning
from cartpay.payments import log as payment_log
from cartpay.payments.log import PaymentLog

logger = logging.getLogger(__name__)

RESULT_SUCCEEDED = "succeeded"
RESULT_FAILED = "failed"
RESULT_CANCELLED = "cancelled"
RESULT_PENDING = "pending"


def describe_response(response: Any) -> Tuple[Optional[str], Optional[str]]:
    """Extrait (message, code) d'une réponse fournisseur ou d'une exception."""
    if response is None:
        return None, None
    if isinstance(response, BaseException):
        code = getattr(response, "code", None)
        return str(response), str(code) if code is not None else None
    if isinstance(response, str):
        return response, None
    try:
        return json.dumps(response, default=str), None
    except (TypeError, ValueError):
        return str(response), None


class PaymentResult:
    def __init__(self, provider, cart: Cart):
        self.provider = provider
        self.cart = cart
        self.successful = False
        self.failed = False
        self.is_pending = False
        self.is_redirect = False
        self.redirect_url: Optional[str] = None
        self.message: Optional[str] = None
        self.failed_payment_log: Optional[PaymentLog] = None

    @property
    def state(self) -> Optional[str]:
        if self.is_redirect:
            return None
        if self.is_pending:
            return RESULT_PENDING
        if self.successful:
            return RESULT_SUCCEEDED
        if self.failed:
            return RESULT_FAILED
        return None

    def success(self, data: Any = None, response: Any = None) -> "PaymentResult":
        self.successful = True
        self.failed = False

        try:
            entry = self.log_payment(data, response, failed=False)
            self.cart.payment_log_id = entry.id
        except PersistenceWarning as e:
            logger.error(
                "payments.result.success log failed cart_id=%s error=%s", self.cart.id, e.message
            )

        try:
            self.cart.transition_to(PaymentState.PAID)
            cart_repository.save_cart(self.cart)
        except (PersistenceWarning, LogicError) as e:
            logger.critical(
                "payments.result.success cart not marked as paid cart_id=%s error=%s",
                self.cart.id, e.message,
            )
        return self

    def pending(self) -> "PaymentResult":
        self.successful = True
        self.failed = False
        self.is_pending = True

        try:
            self.cart.transition_to(PaymentState.PENDING)
            cart_repository.save_cart(self.cart)
        except (PersistenceWarning, LogicError) as e:
            logger.critical(
                "payments.result.pending cart not marked as pending cart_id=%s error=%s",
                self.cart.id, e.message,
            )
        return self

    def fail(self, data: Any = None, response: Any = None) -> "PaymentResult":
        self.successful = False
        self.failed = True
        self.message, _ = describe_response(response)

        logger.error(
            "payments.result.fail cart_id=%s provider=%s data=%s response=%s",
            self.cart.id, self.provider_id, data, self.message,
        )

        try:
            self.failed_payment_log = self.log_payment(data, response, failed=True)
            self.cart.payment_log_id = self.failed_payment_log.id
            cart_repository.save_cart(self.cart)
        except PersistenceWarning as e:
            logger.error(
                "payments.result.fail log failed cart_id=%s error=%s", self.cart.id, e.message
            )
        return self

    def redirect(self, url: str) -> "PaymentResult":
        self.is_redirect = True
        self.redirect_url = url
        return self

    @property
    def provider_id(self) -> Optional[str]:
        return getattr(self.provider, "identifier", None) if self.provider is not None else None

    def log_payment(self, data: Any, response: Any, failed: bool) -> PaymentLog:
        message, code = describe_response(response)
        method = self.cart.payment_method
        entry = PaymentLog(
            failed=failed,
            data=json.loads(json.dumps(data, default=str)) if data is not None else None,
            ip=getattr(self.provider, "client_ip", None),
            session_id=self.cart.session_id or None,
            payment_provider=self.provider_id,
            payment_method=method.label() if method else None,
            cart_data=self.cart.snapshot(),
            cart_id=self.cart.id,
            message=message,
            code=code,
        )
        return payment_log.insert_payment_log(entry)
