"""HTTP client for the payment endpoints, used by the form and the poller."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx
from pydantic import ValidationError

from app.schemas.payment import PaymentStatusRead, StkPushInitiated

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
GENERIC_FAILURE = "Payment failed"


class PaymentApiError(Exception):
    """The payment service answered with a failure or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or GENERIC_FAILURE
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("detail"):
            return str(body["detail"])
    return GENERIC_FAILURE


class PaymentApiClient:
    """Async client for ``/payments``; owns its ``httpx.AsyncClient`` unless given one."""

    def __init__(
        self,
        base_url: str,
        *,
        http: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "PaymentApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def initiate(self, phone_number: str, amount: Decimal | float | int | str) -> StkPushInitiated:
        """POST the form values; raises ``PaymentApiError`` unless ``success`` is true."""

        try:
            response = await self._http.post(
                "/payments/stk-push",
                json={
                    "phone_number": phone_number,
                    "amount": str(amount) if isinstance(amount, Decimal) else amount,
                },
            )
        except httpx.HTTPError as exc:
            logger.error("Payment service unreachable", extra={"error": repr(exc)})
            raise PaymentApiError("Failed to reach the payment service") from exc

        if response.is_error:
            raise PaymentApiError(_error_message(response), status_code=response.status_code)
        try:
            return StkPushInitiated.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise PaymentApiError(GENERIC_FAILURE, status_code=response.status_code) from exc

    async def read_status(self, payment_id: int) -> PaymentStatusRead:
        """Read the poll fields; raises on transport or HTTP errors."""

        response = await self._http.get(f"/payments/{payment_id}/status")
        response.raise_for_status()
        return PaymentStatusRead.model_validate(response.json())


__all__ = ["PaymentApiClient", "PaymentApiError"]
