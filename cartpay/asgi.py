"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `cartpay.asgi:app`.
- Toute la configuration est centralisée dans cartpay.app_setup.factory.
"""
from cartpay.app_setup.factory import create_app

app = create_app()
