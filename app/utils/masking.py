"""Helpers for masking subscriber data before it reaches the logs."""
from __future__ import annotations

from typing import Any, Mapping, Sequence

# Daraja metadata items that carry the payer's MSISDN.
PHONE_ITEM_NAMES = {"PhoneNumber", "PartyA", "PhoneNumberMasked"}


def mask_phone(value: Any) -> str:
    """Keep the country code and the last three digits: ``254******678``."""

    text = "" if value is None else str(value)
    digits = "".join(ch for ch in text if ch.isdigit())
    if not digits:
        return "***"
    if len(digits) <= 6:
        return f"***{digits[-2:]}"
    return digits[:3] + "*" * (len(digits) - 6) + digits[-3:]


def _mask_value(key: str, value: Any) -> Any:
    lower = key.lower()
    if value is None or isinstance(value, bool):
        return value
    if "phone" in lower or lower in {"partya", "msisdn"}:
        return mask_phone(value)
    return value


def mask_callback_payload(data: Any) -> Any:
    """Return a copy of a Daraja payload with phone numbers masked.

    Handles both plain keys (``PhoneNumber``) and the ``{"Name", "Value"}``
    item lists used in ``CallbackMetadata``.
    """

    if isinstance(data, Mapping):
        if data.get("Name") in PHONE_ITEM_NAMES and "Value" in data:
            return {**data, "Value": mask_phone(data["Value"])}
        return {key: mask_callback_payload(_mask_value(key, value)) for key, value in data.items()}
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes, bytearray)):
        return [mask_callback_payload(item) for item in data]
    return data


__all__ = ["mask_phone", "mask_callback_payload"]
