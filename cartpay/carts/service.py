"""
Cas d'usage 'carts': panier de la session et mutations persistées.
Les règles métier restent dans carts.models; ici on résout les valeurs par défaut et on persiste.
"""
from typing import Optional
import logging

from cartpay.carts import repository
from cartpay.carts.models import Cart, CartItem, ItemRef, PaymentMethod
from cartpay.config import DEFAULT_CURRENCY
from cartpay.exceptions import ConfigurationError
from cartpay.payments.session import PaymentSession

logger = logging.getLogger(__name__)


def _default_payment_method() -> PaymentMethod:
    method = repository.get_default_payment_method()
    if method is None:
        raise ConfigurationError("Aucun moyen de paiement par défaut n'est configuré")
    return method


def cart_from_session(session: PaymentSession) -> Cart:
    """
    Retourne le panier ouvert de la session, créé à la demande.
    - devise: DEFAULT_CURRENCY (ConfigurationError si vide)
    - moyen de paiement: celui par défaut (ConfigurationError si absent)
    """
    session_id = session.cart_session_id
    cart = repository.find_open_cart(session_id)
    if cart is not None:
        if cart.payment_method is None:
            cart.set_payment_method(_default_payment_method())
        return cart

    if not DEFAULT_CURRENCY:
        raise ConfigurationError("Aucune devise par défaut n'est configurée")
    method = _default_payment_method()
    cart = repository.create_cart(session_id=session_id, currency=DEFAULT_CURRENCY, payment_method_id=method.id)
    cart.set_payment_method(method)
    logger.info("carts.service.cart_from_session created cart_id=%s", cart.id)
    return cart


def add_item(cart: Cart, item: CartItem, quantity: int = 1) -> CartItem:
    item = cart.add(item, quantity, default_tax=repository.get_default_tax())
    return repository.save_item(cart, item)


def ensure_item(cart: Cart, item: CartItem, quantity: Optional[int] = None) -> CartItem:
    item = cart.ensure(item, quantity, default_tax=repository.get_default_tax())
    return repository.save_item(cart, item)


def remove_item(cart: Cart, item: ItemRef) -> CartItem:
    removed = cart.remove(item)
    if removed.id is not None:
        repository.delete_item(removed.id)
    return removed


def set_quantity(cart: Cart, item: ItemRef, quantity: int) -> CartItem:
    item = cart.set_quantity(item, quantity)
    return repository.save_item(cart, item)


def set_payment_method(cart: Cart, method_id: int) -> Cart:
    method = repository.get_payment_method(method_id)
    if method is None:
        raise ConfigurationError(f"Moyen de paiement introuvable (id={method_id})")
    cart.set_payment_method(method)
    return repository.save_cart(cart)
