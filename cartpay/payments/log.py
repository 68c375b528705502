"""
Journal des tentatives de paiement (table 'payment_logs').
Une ligne par tentative, jamais mise à jour.
"""
from typing import Any, Dict, Optional
import logging
import secrets
import string

from pydantic import BaseModel, ConfigDict, Field

import cartpay.infra.supabase_client as supabase_client
from cartpay.exceptions import PersistenceWarning

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_letters + string.digits


def new_reference(length: int = 16) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


class PaymentLog(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    failed: bool = False
    data: Any = None
    ip: Optional[str] = None
    session_id: Optional[str] = None
    payment_provider: Optional[str] = None
    payment_method: Optional[str] = None
    cart_data: Dict[str, Any] = Field(default_factory=dict)
    cart_id: Optional[int] = None
    message: Optional[str] = None
    code: Optional[str] = None
    reference: str = Field(default_factory=new_reference)


def insert_payment_log(log: PaymentLog) -> PaymentLog:
    """Insère la ligne et retourne le journal avec son id; PersistenceWarning en cas d'échec."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("payment_logs")
            .insert(log.model_dump(mode="json", exclude={"id"}))
            .execute()
        )
    except Exception as e:
        logger.exception("payments.log.insert_payment_log failed cart_id=%s", log.cart_id)
        raise PersistenceWarning(f"Écriture du journal de paiement impossible: {e}") from e
    rows = res.data or []
    row = rows[0] if isinstance(rows, list) and rows else None
    if not row:
        raise PersistenceWarning("Écriture du journal de paiement impossible: aucune ligne retournée")
    return log.model_copy(update={"id": row.get("id")})
