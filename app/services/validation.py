"""Phone number and amount checks shared by the API and the client form."""
from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from app.utils.errors import PaymentValidationError

COUNTRY_CODE = "254"
MIN_AMOUNT = Decimal("1")
INVALID_PHONE_MESSAGE = "Please enter a valid Kenyan phone number (e.g., 0700000000)"
INVALID_AMOUNT_MESSAGE = "Please enter a valid amount (minimum KES 1)"

# Local (0...) or international (254...) prefix, then a Safaricom/Airtel
# subscriber digit (7 or 1) and eight more digits.
_PHONE_PATTERN = re.compile(r"^(254|0)(7|1)\d{8}$")
_NON_DIGITS = re.compile(r"\D")


def _digits(raw: Any) -> str:
    return _NON_DIGITS.sub("", "" if raw is None else str(raw))


def is_valid_phone(raw: Any) -> bool:
    return bool(_PHONE_PATTERN.match(_digits(raw)))


def normalize_phone(raw: Any) -> str:
    """Return the number as ``2547XXXXXXXX``; applying it twice is a no-op."""

    digits = _digits(raw)
    if digits.startswith("0"):
        return COUNTRY_CODE + digits[1:]
    if digits.startswith(COUNTRY_CODE):
        return digits
    return COUNTRY_CODE + digits


def validate_phone(raw: Any) -> str:
    """Validate ``raw`` and return its normalized form."""

    if not is_valid_phone(raw):
        raise PaymentValidationError(INVALID_PHONE_MESSAGE)
    return normalize_phone(raw)


def parse_amount(raw: Any) -> Decimal:
    """Parse a user supplied amount into a cent-precision ``Decimal`` >= 1."""

    if isinstance(raw, bool) or raw is None:
        raise PaymentValidationError(INVALID_AMOUNT_MESSAGE)
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise PaymentValidationError(INVALID_AMOUNT_MESSAGE) from None
    if not value.is_finite():
        raise PaymentValidationError(INVALID_AMOUNT_MESSAGE)
    if value < MIN_AMOUNT:
        raise PaymentValidationError(INVALID_AMOUNT_MESSAGE)
    try:
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise PaymentValidationError(INVALID_AMOUNT_MESSAGE) from None


def provider_amount(amount: Decimal) -> int:
    """Daraja rejects fractional amounts: round half up to whole shillings."""

    return int(amount.to_integral_value(rounding=ROUND_HALF_UP))


__all__ = [
    "COUNTRY_CODE",
    "MIN_AMOUNT",
    "INVALID_PHONE_MESSAGE",
    "INVALID_AMOUNT_MESSAGE",
    "is_valid_phone",
    "normalize_phone",
    "validate_phone",
    "parse_amount",
    "provider_amount",
]
