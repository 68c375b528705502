"""
Réglages des fournisseurs de paiement (clés API, identifiants de terminal...).

Source: table 'payment_gateway_settings' (provider, key, value).
- Les clés listées par provider.encrypted_settings() sont stockées chiffrées (Fernet).
- Une clé absente de la table retombe sur la valeur d'environnement fournie par le fournisseur.
"""
from typing import Any, Dict, Iterable, Optional
import logging

from cryptography.fernet import Fernet, InvalidToken

import cartpay.infra.supabase_client as supabase_client
from cartpay.config import SETTINGS_ENCRYPTION_KEY
from cartpay.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _fernet(key: Optional[str] = None) -> Fernet:
    key = key if key is not None else SETTINGS_ENCRYPTION_KEY
    if not key:
        raise ConfigurationError("SETTINGS_ENCRYPTION_KEY manquant pour les réglages chiffrés")
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_value(value: str, key: Optional[str] = None) -> str:
    """Chiffre une valeur avant écriture en base (pour les écrans d'administration)."""
    return _fernet(key).encrypt(value.encode("utf-8")).decode("ascii")


def decrypt_value(token: str, key: Optional[str] = None) -> str:
    try:
        return _fernet(key).decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        raise ConfigurationError("Réglage chiffré illisible (clé de chiffrement incorrecte ?)") from e


class GatewaySettings:
    def __init__(self, encryption_key: Optional[str] = None):
        self.encryption_key = encryption_key

    def fetch_rows(self, provider_id: str) -> Dict[str, Any]:
        try:
            res = (
                supabase_client.get_service_supabase()
                .table("payment_gateway_settings")
                .select("key, value")
                .eq("provider", provider_id)
                .execute()
            )
            return {r.get("key"): r.get("value") for r in (res.data or []) if r.get("key")}
        except Exception:
            logger.exception("payments.settings.fetch_rows failed provider=%s", provider_id)
            return {}

    def load(
        self,
        provider_id: str,
        encrypted: Iterable[str] = (),
        defaults: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = dict(defaults or {})
        encrypted = set(encrypted)
        for key, value in self.fetch_rows(provider_id).items():
            if value in (None, ""):
                continue
            if key in encrypted:
                value = decrypt_value(value, self.encryption_key)
            values[key] = value
        return values


class StaticSettings(GatewaySettings):
    """Réglages fournis en mémoire (tests, scripts): aucune lecture en base."""

    def __init__(self, values: Optional[Dict[str, Dict[str, Any]]] = None):
        super().__init__()
        self.values = values or {}

    def fetch_rows(self, provider_id: str) -> Dict[str, Any]:
        return dict(self.values.get(provider_id, {}))

    def load(self, provider_id, encrypted=(), defaults=None):
        values = dict(defaults or {})
        values.update(self.fetch_rows(provider_id))
        return values
