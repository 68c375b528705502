# cartpay.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service de paiement.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, Saferpay)
- Expose les réglages du checkout (devise, page de retour, timeouts, verrou)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name)) or default)
    except ValueError:
        return default

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Session / sécurité
SESSION_SECRET_KEY = _clean_env(os.getenv("SESSION_SECRET_KEY") or "replace_me_with_a_long_random_secret")
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Checkout
DEFAULT_CURRENCY = _clean_env(os.getenv("DEFAULT_CURRENCY") or "EUR").upper()
CHECKOUT_PAGE_PATH = os.getenv("CHECKOUT_PAGE_PATH", "/checkout")
CHECKOUT_LOCK_TTL_SECONDS = _int_env("CHECKOUT_LOCK_TTL_SECONDS", 120)
CHECKOUT_RATE_LIMIT_TIMES = _int_env("CHECKOUT_RATE_LIMIT_TIMES", 5)
CHECKOUT_RATE_LIMIT_SECONDS = _int_env("CHECKOUT_RATE_LIMIT_SECONDS", 60)

# Fournisseurs de paiement: valeurs de repli si la table de réglages est vide
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_PUBLIC_KEY = _clean_env(os.getenv("STRIPE_PUBLIC_KEY") or "")
STRIPE_CHECKOUT_SECRET_KEY = _clean_env(os.getenv("STRIPE_CHECKOUT_SECRET_KEY") or STRIPE_SECRET_KEY)
SAFERPAY_BASE_URL = _clean_env(os.getenv("SAFERPAY_BASE_URL") or "https://test.saferpay.com/api").rstrip("/")
SAFERPAY_SPEC_VERSION = _clean_env(os.getenv("SAFERPAY_SPEC_VERSION") or "1.20")
SAFERPAY_CUSTOMER_ID = _clean_env(os.getenv("SAFERPAY_CUSTOMER_ID") or "")
SAFERPAY_TERMINAL_ID = _clean_env(os.getenv("SAFERPAY_TERMINAL_ID") or "")
SAFERPAY_USERNAME = _clean_env(os.getenv("SAFERPAY_USERNAME") or "")
SAFERPAY_PASSWORD = _clean_env(os.getenv("SAFERPAY_PASSWORD") or "")

# Tout appel externe (Stripe, Saferpay) est borné par ce timeout
PROVIDER_TIMEOUT_SECONDS = _int_env("PROVIDER_TIMEOUT_SECONDS", 30)
DB_TIMEOUT_SECONDS = _int_env("DB_TIMEOUT_SECONDS", 10)

# Clé Fernet pour les réglages chiffrés (clés API des fournisseurs)
SETTINGS_ENCRYPTION_KEY = _clean_env(os.getenv("SETTINGS_ENCRYPTION_KEY") or "")

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")
