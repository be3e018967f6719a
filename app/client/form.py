"""Payment form: input checks, initiation call and poll lifecycle."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.client import notifications
from app.client.api import PaymentApiClient, PaymentApiError
from app.client.notifications import Notifier
from app.client.poller import PaymentStatusPoller, PollHandle
from app.services.validation import (
    INVALID_PHONE_MESSAGE,
    is_valid_phone,
    normalize_phone,
    parse_amount,
)
from app.utils.errors import PaymentValidationError
from app.utils.masking import mask_phone

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    success: bool
    message: str = ""
    payment_id: int | None = None
    checkout_request_id: str | None = None
    errors: dict[str, str] = field(default_factory=dict)


class PaymentForm:
    """Headless counterpart of the payment form view.

    Input problems are reported before any network call. Closing the form
    cancels the poll it started.
    """

    def __init__(
        self,
        api: PaymentApiClient,
        notify: Notifier,
        *,
        poller: PaymentStatusPoller | None = None,
    ) -> None:
        self.api = api
        self.notify = notify
        self.poller = poller or PaymentStatusPoller(api.read_status, notify)
        self.loading = False
        self.active_poll: PollHandle | None = None

    async def __aenter__(self) -> "PaymentForm":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def validate(self, phone_number: str, amount: Any) -> dict[str, str]:
        if not phone_number or amount in (None, ""):
            message = "Please enter both phone number and amount"
            self.notify(notifications.invalid_input("Missing Information", message))
            return {"form": message}
        if not is_valid_phone(phone_number):
            self.notify(notifications.invalid_input("Invalid Phone Number", INVALID_PHONE_MESSAGE))
            return {"phone_number": INVALID_PHONE_MESSAGE}
        try:
            parse_amount(amount)
        except PaymentValidationError as exc:
            self.notify(notifications.invalid_input("Invalid Amount", str(exc)))
            return {"amount": str(exc)}
        return {}

    async def submit(self, phone_number: str, amount: Any) -> SubmitResult:
        errors = self.validate(phone_number, amount)
        if errors:
            return SubmitResult(success=False, errors=errors)

        self.loading = True
        try:
            initiated = await self.api.initiate(normalize_phone(phone_number), amount)
        except PaymentApiError as exc:
            logger.info(
                "Payment initiation failed",
                extra={"phone": mask_phone(phone_number), "status_code": exc.status_code},
            )
            self.notify(notifications.initiation_failed(exc.message))
            return SubmitResult(success=False, message=exc.message)
        finally:
            self.loading = False

        self.notify(notifications.stk_push_sent(initiated.message))
        self._start_polling(initiated.payment_id)
        return SubmitResult(
            success=True,
            message=initiated.message,
            payment_id=initiated.payment_id,
            checkout_request_id=initiated.checkout_request_id,
        )

    def _start_polling(self, payment_id: int) -> None:
        if self.active_poll is not None:
            self.active_poll.cancel()
        self.active_poll = self.poller.start(payment_id)

    def close(self) -> None:
        if self.active_poll is not None:
            self.active_poll.cancel()
            self.active_poll = None


__all__ = ["PaymentForm", "SubmitResult"]
