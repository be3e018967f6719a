"""Schemas for payment entities."""
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from app.models.payment import PaymentStatus
from app.services.validation import parse_amount, validate_phone


class StkPushRequest(BaseModel):
    """Body of ``POST /payments/stk-push``; the phone comes out normalized."""

    phone_number: str
    amount: Decimal

    @field_validator("phone_number", mode="before")
    @classmethod
    def _validate_phone(cls, value: Any) -> str:
        return validate_phone(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, value: Any) -> Decimal:
        return parse_amount(value)


class StkPushInitiated(BaseModel):
    success: bool = True
    message: str
    payment_id: int
    checkout_request_id: str


class PaymentStatusRead(BaseModel):
    """What the client poller reads on every tick."""

    payment_id: int
    status: PaymentStatus
    mpesa_receipt_number: str | None = None
    result_desc: str | None = None


def first_validation_message(exc: ValidationError) -> str:
    """Return a single human-readable message for the first failing field."""

    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    original = (first.get("ctx") or {}).get("error")
    if isinstance(original, ValueError):
        return str(original)
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
