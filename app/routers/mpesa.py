"""Route receiving Daraja STK-push callbacks."""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.db import get_db
from app.services import mpesa_callbacks
from app.utils.masking import mask_callback_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mpesa", tags=["mpesa"])


@router.post("/callback", response_class=PlainTextResponse)
async def mpesa_callback(request: Request, db: Session = Depends(get_db)) -> PlainTextResponse:
    """Acknowledge every well-formed or irrelevant callback with ``200 OK``.

    Only an unknown ``CheckoutRequestID`` (404) or an internal failure (500)
    is answered with an error, so Daraja does not retry handled callbacks.
    """

    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except ValueError:
        logger.warning("M-Pesa callback body is not JSON; acknowledging", extra={"size": len(raw_body)})
        return PlainTextResponse("OK")

    logger.info("M-Pesa callback received", extra={"payload": mask_callback_payload(payload)})

    try:
        outcome = mpesa_callbacks.process_stk_callback(db, payload)
    except mpesa_callbacks.PaymentNotFound:
        return PlainTextResponse("Payment not found", status_code=404)
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Callback processing failed")
        return PlainTextResponse("Internal server error", status_code=500)

    logger.debug("M-Pesa callback handled", extra={"outcome": outcome.value})
    return PlainTextResponse("OK")


__all__ = ["router"]
