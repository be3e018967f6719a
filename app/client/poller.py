"""Client-side payment status polling.

A poll is one asyncio task owned by a ``PollHandle``. The first read happens
``initial_delay`` seconds after the push was accepted, then every
``interval`` seconds until a terminal status shows up or ``max_checks`` reads
have been made. Hitting the cap only produces an "unknown" notification; the
stored payment is never touched from here.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable

from app.client import notifications
from app.client.notifications import Notification, Notifier
from app.models.payment import PaymentStatus
from app.schemas.payment import PaymentStatusRead

logger = logging.getLogger(__name__)

INITIAL_DELAY_SECONDS = 5.0
INTERVAL_SECONDS = 10.0
MAX_CHECKS = 30

StatusReader = Callable[[int], Awaitable[PaymentStatusRead]]
Sleeper = Callable[[float], Awaitable[None]]


class PollOutcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"
    ABORTED = "aborted"


_TERMINAL: dict[PaymentStatus, PollOutcome] = {
    PaymentStatus.COMPLETED: PollOutcome.COMPLETED,
    PaymentStatus.FAILED: PollOutcome.FAILED,
    PaymentStatus.CANCELLED: PollOutcome.CANCELLED,
}


def _final_notification(outcome: PollOutcome, current: PaymentStatusRead) -> Notification:
    if outcome is PollOutcome.COMPLETED:
        return notifications.payment_completed(current.mpesa_receipt_number)
    if outcome is PollOutcome.CANCELLED:
        return notifications.payment_cancelled()
    return notifications.payment_failed()


class PollHandle:
    """Owned reference to a running poll; cancel it when the view goes away."""

    def __init__(self, payment_id: int, task: asyncio.Task) -> None:
        self.payment_id = payment_id
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            logger.debug("Cancelling payment poll", extra={"payment_id": self.payment_id})
            self._task.cancel()

    async def wait(self) -> PollOutcome:
        """Wait for the poll to finish without cancelling it when the waiter is."""

        await asyncio.wait({self._task})
        if self._task.cancelled():
            return PollOutcome.ABORTED
        return self._task.result()


class PaymentStatusPoller:
    def __init__(
        self,
        read_status: StatusReader,
        notify: Notifier,
        *,
        initial_delay: float = INITIAL_DELAY_SECONDS,
        interval: float = INTERVAL_SECONDS,
        max_checks: int = MAX_CHECKS,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_checks < 1:
            raise ValueError("max_checks must be at least 1")
        self._read_status = read_status
        self._notify = notify
        self.initial_delay = initial_delay
        self.interval = interval
        self.max_checks = max_checks
        self._sleep = sleep

    def start(self, payment_id: int) -> PollHandle:
        """Schedule the poll on the running loop and return its handle."""

        task = asyncio.get_running_loop().create_task(
            self._run(payment_id), name=f"payment-poll-{payment_id}"
        )
        return PollHandle(payment_id, task)

    async def _run(self, payment_id: int) -> PollOutcome:
        await self._sleep(self.initial_delay)
        for check in range(1, self.max_checks + 1):
            try:
                current = await self._read_status(payment_id)
            except Exception:  # noqa: BLE001
                # A failed read counts as a check; the schedule is unchanged.
                logger.warning(
                    "Error checking payment status",
                    exc_info=True,
                    extra={"payment_id": payment_id, "check": check},
                )
            else:
                if current.status.is_terminal:
                    outcome = _TERMINAL[current.status]
                    logger.info(
                        "Payment reached a final status",
                        extra={"payment_id": payment_id, "status": outcome.value, "check": check},
                    )
                    self._notify(_final_notification(outcome, current))
                    return outcome
            if check < self.max_checks:
                await self._sleep(self.interval)

        logger.warning(
            "Gave up polling payment status",
            extra={"payment_id": payment_id, "checks": self.max_checks},
        )
        self._notify(notifications.payment_status_unknown())
        return PollOutcome.UNKNOWN


__all__ = [
    "INITIAL_DELAY_SECONDS",
    "INTERVAL_SECONDS",
    "MAX_CHECKS",
    "PaymentStatusPoller",
    "PollHandle",
    "PollOutcome",
]
