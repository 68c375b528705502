"""
Notifications du cycle de vie (panier et checkout) pour des abonnés externes.

Noms utilisés:
- checkout.succeeded / checkout.pending / checkout.failed / checkout.cancelled
- cart.before_add / cart.after_add / cart.before_remove / cart.after_remove
- cart.before_quantity_change / cart.after_quantity_change

Un abonné qui lève une exception est journalisé: il ne casse jamais le checkout.
"""
from typing import Any, Callable, Dict, List
import logging

logger = logging.getLogger(__name__)

_listeners: Dict[str, List[Callable[..., Any]]] = {}

def listen(name: str, fn: Callable[..., Any]) -> None:
    _listeners.setdefault(name, []).append(fn)

def forget(name: str) -> None:
    _listeners.pop(name, None)

def fire(name: str, *args: Any) -> None:
    for fn in list(_listeners.get(name, [])):
        try:
            fn(*args)
        except Exception:
            logger.exception("events.fire listener failed event=%s", name)
