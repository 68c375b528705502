from .gateway import PaymentGateway
from .redirector import PaymentRedirector
from .result import (
    RESULT_CANCELLED,
    RESULT_FAILED,
    RESULT_PENDING,
    RESULT_SUCCEEDED,
    PaymentResult,
)
from .service import PaymentService, RedisCheckoutGuard, LocalCheckoutGuard
from .session import PaymentSession

__all__ = [
    "PaymentGateway",
    "PaymentRedirector",
    "PaymentResult",
    "PaymentService",
    "PaymentSession",
    "RedisCheckoutGuard",
    "LocalCheckoutGuard",
    "RESULT_CANCELLED",
    "RESULT_FAILED",
    "RESULT_PENDING",
    "RESULT_SUCCEEDED",
]
