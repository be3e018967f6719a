"""Payment initiation and status endpoints."""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.db import get_db
from app.models import Payment
from app.schemas.payment import (
    PaymentStatusRead,
    StkPushInitiated,
    StkPushRequest,
    first_validation_message,
)
from app.services import stk_push as stk_push_service
from app.services.daraja import DarajaClient, get_daraja_client
from app.utils.errors import error_response, failure_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.options("/stk-push", include_in_schema=False)
def stk_push_options() -> Response:
    """Answer bare OPTIONS probes; real preflights are handled by the CORS middleware."""

    return Response(status_code=status.HTTP_200_OK, headers={"Allow": "POST, OPTIONS"})


@router.post("/stk-push", response_model=StkPushInitiated, status_code=status.HTTP_200_OK)
async def initiate_stk_push(
    request: Request,
    db: Session = Depends(get_db),
    client: DarajaClient = Depends(get_daraja_client),
) -> StkPushInitiated:
    """Validate ``{phone_number, amount}`` and send an STK push to the payer."""

    try:
        payload = StkPushRequest.model_validate(await request.json())
    except ValidationError as exc:
        message = first_validation_message(exc)
        logger.info("Rejected STK push request", extra={"reason": message})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=failure_response(message))
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=failure_response("Request body must be JSON"),
        )

    return await stk_push_service.initiate_stk_push(
        db,
        client,
        phone_number=payload.phone_number,
        amount=payload.amount,
    )


@router.get("/{payment_id}/status", response_model=PaymentStatusRead)
def read_payment_status(payment_id: int, db: Session = Depends(get_db)) -> PaymentStatusRead:
    """Return the fields the client poller watches."""

    payment = db.get(Payment, payment_id, populate_existing=True)
    if payment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("PAYMENT_NOT_FOUND", "Payment not found."),
        )
    return PaymentStatusRead(
        payment_id=payment.id,
        status=payment.status,
        mpesa_receipt_number=payment.mpesa_receipt_number,
        result_desc=payment.result_desc,
    )


__all__ = ["router"]
