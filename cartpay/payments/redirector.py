"""
Redirections de fin de checkout et reprise après un paiement hors site.

Deux points d'entrée:
- handle_payment_result(result): redirection fournisseur, page de succès ou d'échec
- handle_off_site_return(return_type, payment_id): retour depuis le fournisseur

L'état de session lu ici (jeton de tentative, callback, panier) est une entrée non fiable:
le jeton est comparé en temps constant et chaque valeur est retirée après lecture.
"""
from typing import Callable, Optional
from urllib.parse import urlencode
import logging
import secrets

from fastapi.responses import RedirectResponse

from cartpay import events
from cartpay.carts import repository as cart_repository
from cartpay.carts.models import Cart
from cartpay.exceptions import LogicError
from cartpay.payments.providers.base import RETURN_CANCEL, RETURN_FAIL, RETURN_TYPES, CompletesOffSite
from cartpay.payments.result import (
    RESULT_CANCELLED,
    RESULT_FAILED,
    RESULT_PENDING,
    RESULT_SUCCEEDED,
    PaymentResult,
)
from cartpay.payments.session import PAYMENT_CALLBACK, PAYMENT_ID, PROCESSING_CART_ID, PaymentSession

logger = logging.getLogger(__name__)


def _tokens_match(expected: Optional[str], supplied: Optional[str]) -> bool:
    if not expected or not supplied:
        return False
    return secrets.compare_digest(str(expected).encode("utf-8"), str(supplied).encode("utf-8"))


class PaymentRedirector:
    def __init__(
        self,
        session: PaymentSession,
        gateway,
        result_page_url: str,
        cart_loader: Optional[Callable[[int], Optional[Cart]]] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.result_page_url = result_page_url
        self.cart_loader = cart_loader or cart_repository.get_cart

    def result_url(self, state: str) -> str:
        params = {"result": state}
        cart_id = self.session.pull(PROCESSING_CART_ID)
        if cart_id is not None:
            params["cart"] = cart_id
        return f"{self.result_page_url}?{urlencode(params)}"

    def final_redirect(self, state: str, result: Optional[PaymentResult] = None) -> RedirectResponse:
        events.fire(f"checkout.{state}", result)
        return RedirectResponse(self.result_url(state), status_code=303)

    def handle_payment_result(self, result: PaymentResult) -> RedirectResponse:
        if result.is_redirect:
            return RedirectResponse(result.redirect_url, status_code=303)

        if result.successful:
            # Nouveau panier pour la suite de la navigation
            self.session.rotate_cart_session_id()
            state = RESULT_PENDING if result.is_pending else RESULT_SUCCEEDED
            return self.final_redirect(state, result)

        return self.final_redirect(RESULT_FAILED, result)

    def handle_off_site_return(self, return_type: str, payment_id: Optional[str]) -> RedirectResponse:
        expected = self.session.pull(PAYMENT_ID)
        if not _tokens_match(expected, payment_id):
            logger.warning("payments.redirector payment id mismatch return=%s", return_type)
            self.session.forget_attempt()
            return self.final_redirect(RESULT_FAILED)

        if return_type not in RETURN_TYPES:
            logger.warning("payments.redirector unknown return type return=%s", return_type)
            self.session.forget_attempt()
            return self.final_redirect(RESULT_FAILED)

        if return_type == RETURN_CANCEL:
            self.session.forget_attempt()
            return self.final_redirect(RESULT_CANCELLED)

        callback = self.session.pull(PAYMENT_CALLBACK)
        if not callback:
            self.session.forget_attempt()
            if return_type == RETURN_FAIL:
                return self.final_redirect(RESULT_FAILED)
            return self.final_redirect(RESULT_SUCCEEDED)

        provider = self.gateway.get_provider_by_id(callback)
        if not isinstance(provider, CompletesOffSite):
            self.session.forget_attempt()
            raise LogicError(f"Le fournisseur {callback} ne sait pas finaliser un paiement hors site")

        cart_id = self.session.get(PROCESSING_CART_ID)
        cart = self.cart_loader(cart_id) if cart_id is not None else None
        if cart is None:
            logger.error("payments.redirector cart not found cart_id=%s provider=%s", cart_id, callback)
            self.session.forget_attempt()
            return self.final_redirect(RESULT_FAILED)

        provider.init()
        provider.set_cart(cart)
        result = provider.complete(PaymentResult(provider, cart))
        # Le fournisseur a consommé son jeton; rien ne doit survivre à la tentative
        self.session.forget_attempt()
        return self.handle_payment_result(result)
