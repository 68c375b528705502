"""
Middlewares transverses de l'application.
- SessionMiddleware: cookie signé portant l'état de checkout (jeton de tentative, panier en cours...).
- CORSMiddleware: origines définies (dev/prod).
- TrustedHostMiddleware: limite les hôtes acceptés (les URLs de retour fournisseur sont
  construites à partir de l'hôte de la requête).
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.sessions import SessionMiddleware
from cartpay.config import SESSION_SECRET_KEY, COOKIE_SECURE, CORS_ORIGINS, ALLOWED_HOSTS

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        SessionMiddleware,
        secret_key=SESSION_SECRET_KEY,
        same_site="lax",
        https_only=COOKIE_SECURE,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS)
