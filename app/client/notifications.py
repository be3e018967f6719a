"""User-facing notifications raised by the payment form and poller."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

DEFAULT = "default"
DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: str = DEFAULT
    duration_ms: int = 5000


Notifier = Callable[[Notification], None]


def stk_push_sent(message: str) -> Notification:
    return Notification("STK Push Sent!", message)


def initiation_failed(message: str) -> Notification:
    return Notification("Payment Failed", message, DESTRUCTIVE)


def invalid_input(title: str, message: str) -> Notification:
    return Notification(title, message, DESTRUCTIVE)


def payment_completed(receipt_number: str | None) -> Notification:
    return Notification(
        "Payment Successful!",
        f"Payment completed. Receipt: {receipt_number or 'n/a'}",
        duration_ms=8000,
    )


def payment_failed() -> Notification:
    return Notification(
        "Payment Failed",
        "The payment was not successful. Please try again.",
        DESTRUCTIVE,
        8000,
    )


def payment_cancelled() -> Notification:
    return Notification("Payment Cancelled", "You cancelled the payment.", DESTRUCTIVE, 8000)


def payment_status_unknown() -> Notification:
    return Notification(
        "Payment Status Unknown",
        "Unable to confirm payment status. Please check your M-Pesa messages.",
        DESTRUCTIVE,
        8000,
    )
