"""
Registre central des routers.
- Checkout: soumission, retour fournisseur, résultat, totaux, moyens de paiement
- Health: état du service et du rate limiting
"""
from fastapi import FastAPI
from cartpay.payments import views as payments_views
from cartpay.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    app.include_router(payments_views.router)
    app.include_router(health_router)
