"""Services handling Daraja STK-push result callbacks."""
from __future__ import annotations

import enum
import logging
from typing import Any, Mapping

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models import MpesaCallback, Payment, PaymentStatus

logger = logging.getLogger(__name__)

RESULT_SUCCESS = 0
RESULT_CANCELLED_BY_USER = 1032
RECEIPT_ITEM_NAME = "MpesaReceiptNumber"


class PaymentNotFound(LookupError):
    """No payment carries the callback's ``CheckoutRequestID``."""

    def __init__(self, checkout_request_id: str | None) -> None:
        super().__init__(f"No payment for checkout request {checkout_request_id!r}")
        self.checkout_request_id = checkout_request_id


class CallbackOutcome(str, enum.Enum):
    IGNORED = "ignored"
    UPDATED = "updated"
    ALREADY_FINAL = "already_final"


def _coerce_result_code(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def resolve_status(result_code: int | None) -> PaymentStatus:
    """Map a Daraja ``ResultCode`` onto a terminal payment status."""

    if result_code == RESULT_SUCCESS:
        return PaymentStatus.COMPLETED
    if result_code == RESULT_CANCELLED_BY_USER:
        return PaymentStatus.CANCELLED
    return PaymentStatus.FAILED


def extract_receipt_number(stk_callback: Mapping[str, Any]) -> str | None:
    """Pick ``MpesaReceiptNumber`` out of the ``CallbackMetadata.Item`` list."""

    metadata = stk_callback.get("CallbackMetadata")
    items = metadata.get("Item") if isinstance(metadata, Mapping) else None
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, Mapping) and item.get("Name") == RECEIPT_ITEM_NAME:
            value = item.get("Value")
            return None if value is None else str(value)
    return None


def _stk_callback(payload: Any) -> Mapping[str, Any] | None:
    if not isinstance(payload, Mapping):
        return None
    body = payload.get("Body")
    if not isinstance(body, Mapping):
        return None
    stk_callback = body.get("stkCallback")
    if not isinstance(stk_callback, Mapping) or not stk_callback:
        return None
    return stk_callback


def process_stk_callback(db: Session, payload: Any) -> CallbackOutcome:
    """Log and apply one STK callback.

    The raw payload is committed to ``mpesa_callbacks`` before the result is
    interpreted. Only a ``pending`` payment is moved; a terminal one is left
    untouched so duplicate or late callbacks cannot rewrite history.
    """

    stk_callback = _stk_callback(payload)
    if stk_callback is None:
        logger.warning("Callback without Body.stkCallback envelope; acknowledging")
        return CallbackOutcome.IGNORED

    checkout_request_id = stk_callback.get("CheckoutRequestID")
    payment = None
    if checkout_request_id:
        payment = db.scalar(select(Payment).where(Payment.checkout_request_id == str(checkout_request_id)))
    if payment is None:
        logger.error(
            "Payment not found for callback",
            extra={
                "checkout_request_id": checkout_request_id,
                "merchant_request_id": stk_callback.get("MerchantRequestID"),
            },
        )
        raise PaymentNotFound(checkout_request_id)

    db.add(MpesaCallback(payment_id=payment.id, callback_data=dict(payload)))
    db.commit()

    result_code = _coerce_result_code(stk_callback.get("ResultCode"))
    new_status = resolve_status(result_code)
    receipt = extract_receipt_number(stk_callback) if new_status is PaymentStatus.COMPLETED else None
    result_desc = stk_callback.get("ResultDesc")

    stmt = (
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(
            status=new_status,
            mpesa_receipt_number=receipt,
            result_code=result_code,
            result_desc=None if result_desc is None else str(result_desc)[:255],
        )
    )
    updated = db.execute(stmt).rowcount
    db.commit()

    if not updated:
        db.refresh(payment)
        logger.warning(
            "Callback for a payment that is already final; status left unchanged",
            extra={
                "payment_id": payment.id,
                "current_status": payment.status.value,
                "callback_status": new_status.value,
            },
        )
        return CallbackOutcome.ALREADY_FINAL

    logger.info(
        "Payment updated from callback",
        extra={"payment_id": payment.id, "status": new_status.value, "result_code": result_code},
    )
    return CallbackOutcome.UPDATED


__all__ = [
    "CallbackOutcome",
    "PaymentNotFound",
    "extract_receipt_number",
    "process_stk_callback",
    "resolve_status",
]
