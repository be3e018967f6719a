"""Schema package exports."""
from .payment import (
    PaymentStatusRead,
    StkPushInitiated,
    StkPushRequest,
    first_validation_message,
)

__all__ = [
    "PaymentStatusRead",
    "StkPushInitiated",
    "StkPushRequest",
    "first_validation_message",
]
