"""
Lance le service de checkout avec uvicorn.

Usage:
    python -m cartpay

Variables d'environnement:
- HOST / PORT: adresse d'écoute (0.0.0.0:8000 par défaut)
- UVICORN_RELOAD: reload auto en dev ("1"/"true"/"yes")
- UVICORN_WORKERS: nombre de workers; au-delà de 1, le verrou de checkout doit passer
  par Redis (RATE_LIMIT_REDIS_URL), le verrou en mémoire ne protège qu'un seul worker
- LOG_LEVEL: niveau de logs uvicorn
"""
import logging
import os
import uvicorn

if __name__ == "__main__":
    reload_flag = os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes")
    workers = int(os.environ.get("UVICORN_WORKERS", 1))
    if workers > 1 and os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        logging.getLogger("uvicorn.error").warning(
            "Plusieurs workers sans Redis: le verrou de checkout reste local à chaque worker"
        )
    uvicorn.run(
        "cartpay.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=reload_flag,
        workers=None if reload_flag else workers,
        log_level=os.environ.get("LOG_LEVEL", "info"),
    )
