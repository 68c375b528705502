"""
Gestionnaires d'exceptions du checkout.
- CheckoutError -> JSON {"detail", "code", "errors"?} avec son status_code.
- ValidationError pour un client HTML -> redirection vers la page de checkout (?error=...)
  afin de ressaisir le formulaire.
"""
import urllib.parse
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.status import HTTP_303_SEE_OTHER

from cartpay.config import CHECKOUT_PAGE_PATH
from cartpay.exceptions import CheckoutError, ValidationError

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if isinstance(exc, ValidationError):
            accept = (request.headers.get("accept") or "").lower()
            if "text/html" in accept:
                first = next(iter(exc.errors.values()), exc.message)
                msg = urllib.parse.quote_plus(first)
                return RedirectResponse(url=f"{CHECKOUT_PAGE_PATH}?error={msg}", status_code=HTTP_303_SEE_OTHER)
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.message, "code": exc.code, "errors": exc.errors},
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})
