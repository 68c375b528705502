"""
Accès aux données pour la feature 'carts' (Supabase / PostgREST).

Tables:
- carts (session_id, currency, payment_method_id, payment_state, payment_log_id, adresses...)
- cart_items (+ jointure cart_item_taxes -> taxes)
- taxes, payment_methods (+ jointure payment_method_taxes -> taxes)

Lectures: en cas d'erreur, on journalise et on retourne None / [].
Écritures: en cas d'erreur, on lève PersistenceWarning (l'appelant décide de la gravité).
"""
from typing import Any, Dict, List, Optional
import logging

import cartpay.infra.supabase_client as supabase_client
from cartpay.carts.models import Cart, CartItem, PaymentMethod, Tax, _ADDRESS_FIELDS
from cartpay.exceptions import PersistenceWarning

logger = logging.getLogger(__name__)

_CART_SELECT = "*, items:cart_items(*, taxes(*)), payment_method:payment_methods(*, taxes(*))"
_METHOD_SELECT = "*, taxes(*)"


def _first(res) -> Optional[dict]:
    rows = res.data or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None


def _row_to_cart(row: Dict[str, Any]) -> Cart:
    data = dict(row)
    data["items"] = [CartItem(**i) for i in (data.get("items") or [])]
    if not data.get("payment_method"):
        data["payment_method"] = None
    cart = Cart(**data)
    cart.items.sort(key=lambda i: (i.kind.value, i.sort_order or 0))
    return cart


def _cart_to_row(cart: Cart) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "session_id": cart.session_id,
        "currency": cart.currency,
        "payment_method_id": cart.payment_method_id,
        "payment_state": cart.payment_state.value if cart.payment_state else None,
        "payment_log_id": cart.payment_log_id,
    }
    for key in _ADDRESS_FIELDS:
        row[key] = getattr(cart, key)
    return row


# --- carts ---

def get_cart(cart_id: int) -> Optional[Cart]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("carts")
            .select(_CART_SELECT)
            .eq("id", cart_id)
            .limit(1)
            .execute()
        )
        row = _first(res)
        return _row_to_cart(row) if row else None
    except Exception:
        logger.exception("carts.repository.get_cart failed cart_id=%s", cart_id)
        return None


def find_open_cart(session_id: str) -> Optional[Cart]:
    """Panier encore ouvert (payment_state NULL) de la session anonyme."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("carts")
            .select(_CART_SELECT)
            .eq("session_id", session_id)
            .is_("payment_state", "null")
            .order("id", desc=True)
            .limit(1)
            .execute()
        )
        row = _first(res)
        return _row_to_cart(row) if row else None
    except Exception:
        logger.exception("carts.repository.find_open_cart failed session_id=%s", session_id)
        return None


def create_cart(*, session_id: str, currency: str, payment_method_id: Optional[int]) -> Cart:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("carts")
            .insert({"session_id": session_id, "currency": currency, "payment_method_id": payment_method_id})
            .execute()
        )
    except Exception as e:
        logger.exception("carts.repository.create_cart failed session_id=%s", session_id)
        raise PersistenceWarning(f"Création du panier impossible: {e}") from e
    row = _first(res)
    if not row:
        raise PersistenceWarning("Création du panier impossible: aucune ligne retournée")
    return Cart(**row)


def save_cart(cart: Cart) -> Cart:
    """Persiste les champs du panier (pas les lignes, voir save_item)."""
    if cart.id is None:
        raise PersistenceWarning("save_cart: panier sans identifiant")
    try:
        (
            supabase_client.get_service_supabase()
            .table("carts")
            .update(_cart_to_row(cart))
            .eq("id", cart.id)
            .execute()
        )
    except Exception as e:
        logger.exception("carts.repository.save_cart failed cart_id=%s", cart.id)
        raise PersistenceWarning(f"Enregistrement du panier {cart.id} impossible: {e}") from e
    return cart


# --- items ---

def save_item(cart: Cart, item: CartItem) -> CartItem:
    row = item.model_dump(
        mode="json",
        exclude={"id", "taxes", "subtotal", "tax_amount", "total"},
    )
    row["cart_id"] = cart.id
    client = supabase_client.get_service_supabase()
    try:
        if item.id is None:
            res = client.table("cart_items").insert(row).execute()
            created = _first(res)
            if created:
                item.id = created.get("id")
        else:
            client.table("cart_items").update(row).eq("id", item.id).execute()

        client.table("cart_item_taxes").delete().eq("cart_item_id", item.id).execute()
        if item.taxes:
            client.table("cart_item_taxes").insert(
                [{"cart_item_id": item.id, "tax_id": t.id} for t in item.taxes if t.id is not None]
            ).execute()
    except Exception as e:
        logger.exception("carts.repository.save_item failed cart_id=%s code=%s", cart.id, item.code)
        raise PersistenceWarning(f"Enregistrement de la ligne impossible: {e}") from e
    item.cart_id = cart.id
    return item


def delete_item(item_id: int) -> None:
    try:
        supabase_client.get_service_supabase().table("cart_items").delete().eq("id", item_id).execute()
    except Exception as e:
        logger.exception("carts.repository.delete_item failed item_id=%s", item_id)
        raise PersistenceWarning(f"Suppression de la ligne {item_id} impossible: {e}") from e


# --- taxes / moyens de paiement ---

def get_default_tax() -> Optional[Tax]:
    try:
        res = (
            supabase_client.get_supabase()
            .table("taxes")
            .select("*")
            .eq("is_default", True)
            .limit(1)
            .execute()
        )
        row = _first(res)
        return Tax(**row) if row else None
    except Exception:
        logger.exception("carts.repository.get_default_tax failed")
        return None


def get_payment_method(method_id: int) -> Optional[PaymentMethod]:
    try:
        res = (
            supabase_client.get_supabase()
            .table("payment_methods")
            .select(_METHOD_SELECT)
            .eq("id", method_id)
            .limit(1)
            .execute()
        )
        row = _first(res)
        return PaymentMethod(**row) if row else None
    except Exception:
        logger.exception("carts.repository.get_payment_method failed method_id=%s", method_id)
        return None


def list_payment_methods() -> List[PaymentMethod]:
    try:
        res = (
            supabase_client.get_supabase()
            .table("payment_methods")
            .select(_METHOD_SELECT)
            .order("sort_order")
            .execute()
        )
        return [PaymentMethod(**r) for r in (res.data or [])]
    except Exception:
        logger.exception("carts.repository.list_payment_methods failed")
        return []


def get_default_payment_method() -> Optional[PaymentMethod]:
    try:
        res = (
            supabase_client.get_supabase()
            .table("payment_methods")
            .select(_METHOD_SELECT)
            .eq("is_default", True)
            .limit(1)
            .execute()
        )
        row = _first(res)
        return PaymentMethod(**row) if row else None
    except Exception:
        logger.exception("carts.repository.get_default_payment_method failed")
        return None


def _rpc_set_default(fn: str, params: Dict[str, Any]) -> None:
    # La fonction SQL efface puis pose le drapeau dans une seule transaction
    try:
        supabase_client.get_service_supabase().rpc(fn, params).execute()
    except Exception as e:
        logger.exception("carts.repository.%s failed params=%s", fn, params)
        raise PersistenceWarning(f"{fn} impossible: {e}") from e


def set_default_tax(tax_id: int) -> None:
    _rpc_set_default("set_default_tax", {"tax_id": tax_id})


def set_default_payment_method(method_id: int) -> None:
    _rpc_set_default("set_default_payment_method", {"method_id": method_id})
