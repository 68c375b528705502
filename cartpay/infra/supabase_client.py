"""
Clients Supabase partagés (créés à la première utilisation).
Les requêtes PostgREST sont bornées par DB_TIMEOUT_SECONDS: un appel lent ne doit pas
garder le verrou de checkout pendant l'enregistrement du résultat.
"""
from typing import Optional
from supabase import create_client, Client, ClientOptions
from cartpay.config import DB_TIMEOUT_SECONDS, SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None

def _options() -> ClientOptions:
    return ClientOptions(postgrest_client_timeout=DB_TIMEOUT_SECONDS)

def get_supabase() -> Client:
    """Client 'anon' (RLS actif): lecture des taxes et des moyens de paiement."""
    global _supabase
    if _supabase is None:
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON, options=_options())
    return _supabase

def get_service_supabase() -> Client:
    """
    Client service-role (bypass RLS): écritures des paniers, journaux de paiement
    et lecture des réglages fournisseurs.
    """
    global _service_supabase
    if not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY, options=_options())
    return _service_supabase
