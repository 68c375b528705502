"""
Cas d'usage 'payments': une soumission de checkout.

PaymentService.process():
    verrou (ConcurrencyError si déjà pris)
      -> processing_cart_id en session
      -> gateway.process(cart)
      -> toute exception devient un résultat échoué (données = copie du panier)
    verrou toujours relâché
    -> PaymentRedirector.handle_payment_result(result)

Le verrou est indexé par l'identifiant de panier de la session. Il ne vit jamais dans le
cookie: deux requêtes simultanées décodent chacune leur propre copie de la session.
"""
from typing import Dict, Optional
import logging
import threading

from redis.exceptions import RedisError

from cartpay.carts.models import Cart
from cartpay.config import CHECKOUT_LOCK_TTL_SECONDS
from cartpay.exceptions import ConcurrencyError
from cartpay.payments.result import PaymentResult
from cartpay.payments.session import PROCESSING_CART_ID, PaymentSession

logger = logging.getLogger(__name__)

_local_locks: Dict[str, threading.Lock] = {}
_local_registry = threading.Lock()


class LocalCheckoutGuard:
    """Verrou en mémoire du processus (un seul worker, ou repli si Redis est indisponible)."""

    def __init__(self, key: str):
        self.key = key
        self._lock: Optional[threading.Lock] = None

    def __enter__(self):
        with _local_registry:
            lock = _local_locks.setdefault(self.key, threading.Lock())
            if not lock.acquire(blocking=False):
                logger.warning("payments.service guard busy (local) key=%s", self.key)
                raise ConcurrencyError()
            self._lock = lock
        return self

    def __exit__(self, exc_type, exc, tb):
        with _local_registry:
            if self._lock is not None:
                self._lock.release()
                if _local_locks.get(self.key) is self._lock:
                    del _local_locks[self.key]
                self._lock = None
        return False


class RedisCheckoutGuard:
    """
    Verrou partagé entre workers: SET NX EX sur une clé dérivée de la session.
    Le TTL libère le verrou si le processus meurt pendant l'appel fournisseur.
    Redis injoignable: repli sur LocalCheckoutGuard plutôt qu'une erreur 500.
    """

    def __init__(self, redis, key: str, ttl: int = CHECKOUT_LOCK_TTL_SECONDS):
        self.redis = redis
        self.session_key = key
        self.key = f"cartpay:checkout-lock:{key}"
        self.ttl = ttl
        self.fallback: Optional[LocalCheckoutGuard] = None

    def __enter__(self):
        try:
            acquired = self.redis.set(self.key, "1", nx=True, ex=self.ttl)
        except RedisError:
            logger.exception("payments.service guard redis unavailable key=%s, local fallback", self.key)
            fallback = LocalCheckoutGuard(self.session_key)
            fallback.__enter__()
            self.fallback = fallback
            return self
        if not acquired:
            logger.warning("payments.service guard busy key=%s", self.key)
            raise ConcurrencyError()
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.fallback is not None:
            fallback, self.fallback = self.fallback, None
            return fallback.__exit__(exc_type, exc, tb)
        try:
            self.redis.delete(self.key)
        except RedisError:
            logger.exception("payments.service guard release failed key=%s", self.key)
        return False


class PaymentService:
    def __init__(self, gateway, cart: Cart, redirector, guard=None):
        self.gateway = gateway
        self.cart = cart
        self.redirector = redirector
        self.session: PaymentSession = gateway.session
        self.guard = guard if guard is not None else LocalCheckoutGuard(self.session.cart_session_id)

    def process(self):
        with self.guard:
            self.session.put(PROCESSING_CART_ID, self.cart.id)
            try:
                result = self.gateway.process(self.cart)
            except Exception as e:
                logger.exception("payments.service.process failed cart_id=%s", self.cart.id)
                result = self.failed_result(e)

        return self.redirector.handle_payment_result(result)

    def failed_result(self, error: Exception) -> PaymentResult:
        provider = self.gateway.get_active_provider()
        return PaymentResult(provider, self.cart).fail(self.cart.snapshot(), error)
