"""STK-push initiation: token, pending payment row, push, correlation ids."""
from __future__ import annotations

import logging
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Payment, PaymentStatus
from app.schemas.payment import StkPushInitiated
from app.services.daraja import (
    DarajaAuthError,
    DarajaClient,
    StkPushAccepted,
    StkPushRejected,
)
from app.services.validation import provider_amount
from app.utils.errors import failure_response
from app.utils.masking import mask_phone

logger = logging.getLogger(__name__)

AUTH_FAILED_MESSAGE = "Failed to authenticate with M-Pesa"
STORAGE_FAILED_MESSAGE = "Failed to initiate payment. Please try again."
TRANSPORT_FAILED_MESSAGE = "Failed to communicate with M-Pesa. Please try again."
ACCEPTED_MESSAGE = "STK Push sent successfully"


def _failure(status_code: int, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=failure_response(message))


def _result_code(raw: str | None) -> int | None:
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def _create_pending_payment(db: Session, *, phone_number: str, amount: Decimal) -> Payment:
    payment = Payment(phone_number=phone_number, amount=amount, status=PaymentStatus.PENDING)
    try:
        db.add(payment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create payment record", extra={"phone": mask_phone(phone_number)})
        raise _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, STORAGE_FAILED_MESSAGE)
    return payment


def _attach_correlation_ids(db: Session, payment: Payment, accepted: StkPushAccepted) -> None:
    payment.merchant_request_id = accepted.merchant_request_id
    payment.checkout_request_id = accepted.checkout_request_id
    try:
        db.add(payment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        # The prompt is already on the payer's phone; the callback will 404.
        logger.exception(
            "Failed to store correlation ids after an accepted STK push",
            extra={
                "payment_id": payment.id,
                "merchant_request_id": accepted.merchant_request_id,
                "checkout_request_id": accepted.checkout_request_id,
            },
        )
        raise _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, STORAGE_FAILED_MESSAGE)


def _mark_rejected(db: Session, payment: Payment, rejected: StkPushRejected) -> None:
    """Fail a payment whose push Daraja refused; no callback will ever come for it."""

    stmt = (
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(
            status=PaymentStatus.FAILED,
            result_code=_result_code(rejected.response_code),
            result_desc=rejected.reason[:255],
        )
    )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to mark rejected payment as failed", extra={"payment_id": payment.id})


async def initiate_stk_push(
    db: Session,
    client: DarajaClient,
    *,
    phone_number: str,
    amount: Decimal,
) -> StkPushInitiated:
    """Run the initiation flow for an already validated phone/amount pair.

    Raises ``HTTPException`` carrying a ``{success: false, error}`` body on
    every failure class; the payment row, once created, is never deleted.
    """

    try:
        access_token = await client.get_access_token()
    except DarajaAuthError as exc:
        logger.error(
            "M-Pesa authentication failed",
            extra={"error": str(exc), "status_code": exc.status_code, "body": (exc.text or "")[:500]},
        )
        raise _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, AUTH_FAILED_MESSAGE)

    payment = _create_pending_payment(db, phone_number=phone_number, amount=amount)
    logger.info(
        "Payment created",
        extra={"payment_id": payment.id, "phone": mask_phone(phone_number), "amount": str(amount)},
    )

    result = await client.stk_push(
        access_token=access_token,
        phone_number=phone_number,
        amount=provider_amount(amount),
        account_reference=payment.account_reference,
    )

    if isinstance(result, StkPushAccepted):
        _attach_correlation_ids(db, payment, result)
        return StkPushInitiated(
            message=ACCEPTED_MESSAGE,
            payment_id=payment.id,
            checkout_request_id=result.checkout_request_id,
        )

    if isinstance(result, StkPushRejected):
        _mark_rejected(db, payment, result)
        raise _failure(status.HTTP_400_BAD_REQUEST, f"STK Push failed: {result.reason}")

    logger.error(
        "STK push not delivered; payment left pending",
        extra={"payment_id": payment.id, "detail": result.detail},
    )
    raise _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, TRANSPORT_FAILED_MESSAGE)


__all__ = ["initiate_stk_push"]
