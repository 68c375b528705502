import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, model_validator

from cartpay.carts import repository as carts_repo
from cartpay.carts import service as carts_service
from cartpay.config import CHECKOUT_RATE_LIMIT_SECONDS, CHECKOUT_RATE_LIMIT_TIMES
from cartpay.payments.gateway import PaymentGateway
from cartpay.payments.redirector import PaymentRedirector
from cartpay.payments.service import LocalCheckoutGuard, PaymentService, RedisCheckoutGuard
from cartpay.payments.session import PaymentSession
from cartpay.utils.money import format_money
from cartpay.utils.rate_limit import optional_rate_limit
from cartpay.exceptions import ValidationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/checkout", tags=["Checkout"])

_BILLING_REQUIRED = ("billing_firstname", "billing_lastname", "billing_lines", "billing_zip", "billing_city", "billing_country")


class CheckoutForm(BaseModel):
    # Les champs propres au fournisseur (ex: "token" Stripe) sont acceptés tels quels
    model_config = ConfigDict(extra="allow")

    email: EmailStr
    payment_method_id: int

    shipping_company: Optional[str] = None
    shipping_firstname: str
    shipping_lastname: str
    shipping_lines: str
    shipping_zip: str
    shipping_city: str
    shipping_country: str

    billing_differs: bool = False
    billing_company: Optional[str] = None
    billing_firstname: Optional[str] = None
    billing_lastname: Optional[str] = None
    billing_lines: Optional[str] = None
    billing_zip: Optional[str] = None
    billing_city: Optional[str] = None
    billing_country: Optional[str] = None

    @model_validator(mode="after")
    def billing_complete(self):
        if self.billing_differs:
            missing = [f for f in _BILLING_REQUIRED if not getattr(self, f)]
            if missing:
                raise ValueError(f"Champs de facturation manquants: {', '.join(missing)}")
        return self


# module cartpay.payments.views
def _session(request: Request) -> PaymentSession:
    return PaymentSession(request.session)

def _page_url(request: Request) -> str:
    return str(request.url_for("checkout_page"))

def _result_url(request: Request) -> str:
    return str(request.url_for("checkout_result"))

def build_gateway(request: Request, session: PaymentSession) -> PaymentGateway:
    """Passerelle par requête: instances neuves liées à la session et à l'URL courante."""
    gateway = PaymentGateway(
        session=session,
        settings=getattr(request.app.state, "gateway_settings", None),
        current_url=_page_url(request),
        client_ip=request.client.host if request.client else None,
    )
    return gateway.register_providers(getattr(request.app.state, "payment_providers", []))

def build_guard(request: Request, session: PaymentSession):
    redis = getattr(request.app.state, "checkout_redis", None)
    if redis is not None:
        return RedisCheckoutGuard(redis, session.cart_session_id)
    return LocalCheckoutGuard(session.cart_session_id)


@router.post(
    "",
    dependencies=[Depends(optional_rate_limit(times=CHECKOUT_RATE_LIMIT_TIMES, seconds=CHECKOUT_RATE_LIMIT_SECONDS))],
)
def submit_checkout(form: CheckoutForm, request: Request):
    """
    Soumission du checkout.
    - Remplit le panier de la session (email, adresses) et fixe le moyen de paiement
    - Valide les données du fournisseur (422 si invalides)
    - Exécute le paiement sous verrou (409 si une soumission est déjà en cours)
    - Retour: redirection 303 (fournisseur, succès ou échec)
    """
    session = _session(request)
    cart = carts_service.cart_from_session(session)
    if not cart.items:
        raise ValidationError({"cart": "Le panier est vide."})

    data: Dict[str, Any] = form.model_dump(mode="json")
    cart.fill_checkout_data(data)
    cart = carts_service.set_payment_method(cart, form.payment_method_id)

    gateway = build_gateway(request, session)
    gateway.init(cart.payment_method, data)

    redirector = PaymentRedirector(session, gateway, _result_url(request))
    service = PaymentService(gateway, cart, redirector, guard=build_guard(request, session))
    return service.process()


@router.get("", name="checkout_page")
def checkout_page(
    request: Request,
    return_type: Optional[str] = Query(None, alias="return"),
    payment_id: Optional[str] = Query(None, alias="cartpay-payment-id"),
):
    """
    Page de checkout.
    - ?return=<return|fail|cancel>&cartpay-payment-id=<jeton>: retour depuis le fournisseur
    - sinon: état JSON du panier de la session
    """
    session = _session(request)
    if return_type is not None:
        gateway = build_gateway(request, session)
        redirector = PaymentRedirector(session, gateway, _result_url(request))
        return redirector.handle_off_site_return(return_type, payment_id)

    cart = carts_service.cart_from_session(session)
    return JSONResponse({
        "cart": cart.model_dump(mode="json"),
        "totals": cart.totals.as_dict(),
    })


@router.get("/result", name="checkout_result")
def checkout_result(result: str, cart: Optional[int] = None):
    """Page de résultat (succeeded, pending, failed, cancelled): cible de toutes les redirections finales."""
    return {"result": result, "cart": cart}


@router.get("/totals")
def checkout_totals(request: Request):
    cart = carts_service.cart_from_session(_session(request))
    totals = cart.totals
    return {
        "currency": cart.currency,
        "totals": totals.as_dict(),
        "formatted": {
            "cart_post_taxes": format_money(totals.cart_post_taxes, cart.currency),
            "payment_post_taxes": format_money(totals.payment_post_taxes, cart.currency),
            "grand_post_taxes": format_money(totals.grand_post_taxes, cart.currency),
        },
    }


@router.get("/payment-methods")
def payment_methods(request: Request):
    options = build_gateway(request, _session(request)).provider_options()
    methods = []
    for m in carts_repo.list_payment_methods():
        methods.append({
            "id": m.id,
            "name": m.name,
            "code": m.code,
            "price": m.price,
            "percentage": m.percentage,
            "payment_provider": m.payment_provider,
            "provider_name": options.get(m.payment_provider),
            "is_default": m.is_default,
        })
    return {"methods": methods}
