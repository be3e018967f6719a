"""ORM models package."""
from .base import Base
from .mpesa_callback import MpesaCallback
from .payment import Payment, PaymentStatus

__all__ = [
    "Base",
    "MpesaCallback",
    "Payment",
    "PaymentStatus",
]
