"""
Factory d'application recommandée pour les entrypoints (ex: cartpay.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from typing import Optional, Sequence, Type
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares
from .exception_handlers import register_exception_handlers
from .routers import register_routers
from cartpay.payments.providers import PaymentProvider, default_providers
from cartpay.payments.settings import GatewaySettings

def create_app(
    providers: Optional[Sequence[Type[PaymentProvider]]] = None,
    gateway_settings: Optional[GatewaySettings] = None,
) -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares (session, CORS, hôtes)
      - gestionnaires d'exceptions et routers
      - la liste explicite des fournisseurs de paiement (app.state.payment_providers)
      - les réglages des fournisseurs (app.state.gateway_settings, table Supabase par défaut)
    """
    app = FastAPI(title="cartpay", lifespan=lifespan)
    app.state.payment_providers = list(providers if providers is not None else default_providers())
    app.state.gateway_settings = gateway_settings if gateway_settings is not None else GatewaySettings()
    register_basic_middlewares(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
