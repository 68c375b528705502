"""
SIX Saferpay Payment Page (redirection vers la banque).

- process(): POST Payment/v1/PaymentPage/Initialize -> Token + RedirectUrl
- complete(): POST Payment/v1/PaymentPage/Assert avec le Token mémorisé (retiré de la session)
Une réponse d'erreur Saferpay (ErrorName / ErrorMessage / ErrorDetail) devient result.fail.
"""
from typing import Any, Dict, List, Optional
import logging
import uuid

import httpx

from cartpay.config import (
    PROVIDER_TIMEOUT_SECONDS,
    SAFERPAY_BASE_URL,
    SAFERPAY_CUSTOMER_ID,
    SAFERPAY_PASSWORD,
    SAFERPAY_SPEC_VERSION,
    SAFERPAY_TERMINAL_ID,
    SAFERPAY_USERNAME,
)
from cartpay.exceptions import ProviderError
from cartpay.payments.providers.base import CompletesOffSite, PaymentProvider
from cartpay.payments.session import PAYMENT_CALLBACK, SAFERPAY_TOKEN

logger = logging.getLogger(__name__)

INITIALIZE_PATH = "/Payment/v1/PaymentPage/Initialize"
ASSERT_PATH = "/Payment/v1/PaymentPage/Assert"


def extract_error(body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": body.get("ErrorName"),
        "msg": body.get("ErrorMessage"),
        "detail": body.get("ErrorDetail"),
    }


def _address(data: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    address = {
        "FirstName": data.get(f"{prefix}_firstname"),
        "LastName": data.get(f"{prefix}_lastname"),
        "Street": data.get(f"{prefix}_lines"),
        "Zip": data.get(f"{prefix}_zip"),
        "City": data.get(f"{prefix}_city"),
        "CountryCode": data.get(f"{prefix}_country"),
    }
    return {k: v for k, v in address.items() if v}


class SixSaferPay(PaymentProvider, CompletesOffSite):
    identifier = "six-saferpay"
    name = "SIX SaferPay"

    def settings(self) -> List[Dict[str, Any]]:
        return [
            {"key": "six_customer_id", "label": "Customer ID", "type": "text"},
            {"key": "six_terminal_id", "label": "Terminal ID", "type": "text"},
            {"key": "six_api_key", "label": "Utilisateur API (JSON API)", "type": "text"},
            {"key": "six_api_secret", "label": "Mot de passe API", "type": "text"},
        ]

    def encrypted_settings(self) -> List[str]:
        return ["six_api_secret"]

    def default_settings(self) -> Dict[str, Any]:
        return {
            "six_customer_id": SAFERPAY_CUSTOMER_ID,
            "six_terminal_id": SAFERPAY_TERMINAL_ID,
            "six_api_key": SAFERPAY_USERNAME,
            "six_api_secret": SAFERPAY_PASSWORD,
        }

    def request_header(self) -> Dict[str, Any]:
        return {
            "SpecVersion": SAFERPAY_SPEC_VERSION,
            "CustomerId": self.get_settings("six_customer_id", ""),
            "RequestId": uuid.uuid4().hex,
            "RetryIndicator": 0,
        }

    def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Appel JSON API Saferpay.
        - Erreur HTTP avec corps Saferpay: ProviderError portant le corps (data)
        - Erreur réseau / timeout: propagée (convertie en échec par l'appelant)
        """
        with httpx.Client(
            base_url=SAFERPAY_BASE_URL,
            timeout=PROVIDER_TIMEOUT_SECONDS,
            auth=(self.get_settings("six_api_key", ""), self.get_settings("six_api_secret", "")),
            headers={"Accept": "application/json"},
        ) as client:
            res = client.post(path, json=payload)
        try:
            body = res.json()
        except ValueError:
            body = {}
        if res.is_error:
            raise ProviderError(
                body.get("ErrorMessage") or f"Saferpay HTTP {res.status_code}",
                data=body,
                code=body.get("ErrorName") or "saferpay_error",
            )
        return body

    def initialize_payload(self) -> Dict[str, Any]:
        cart = self.cart
        payer: Dict[str, Any] = {
            "LanguageCode": "fr",
            "DeliveryAddress": _address(self.data, "shipping"),
        }
        if self.data.get("billing_differs"):
            payer["BillingAddress"] = _address(self.data, "billing")
        return {
            "RequestHeader": self.request_header(),
            "TerminalId": self.get_settings("six_terminal_id", ""),
            "Payment": {
                "Amount": {"Value": str(cart.totals.grand_post_taxes), "CurrencyCode": cart.currency},
                "OrderId": str(cart.id),
                "Description": f"Commande {cart.id}",
            },
            "Payer": payer,
            "ReturnUrls": {
                "Success": self.return_url(),
                "Fail": self.fail_url(),
                "Abort": self.cancel_url(),
            },
        }

    def process(self, result):
        try:
            body = self.post(INITIALIZE_PATH, self.initialize_payload())
        except ProviderError as e:
            return result.fail(extract_error(e.data), e)
        except Exception as e:
            logger.exception("payments.providers.saferpay.process failed cart_id=%s", self.cart.id)
            return result.fail({}, e)

        self.session.put(PAYMENT_CALLBACK, self.identifier)
        self.session.put(SAFERPAY_TOKEN, body.get("Token"))
        return result.redirect(body.get("RedirectUrl"))

    def complete(self, result):
        token: Optional[str] = self.session.pull(SAFERPAY_TOKEN)
        if not token:
            return result.fail({}, "Jeton Saferpay introuvable")

        try:
            body = self.post(ASSERT_PATH, {"RequestHeader": self.request_header(), "Token": token})
        except ProviderError as e:
            return result.fail(extract_error(e.data), e)
        except Exception as e:
            logger.exception("payments.providers.saferpay.complete failed token=%s", token)
            return result.fail({}, e)

        transaction = body.get("Transaction") or {}
        return result.success({"id": transaction.get("Id")}, body)
