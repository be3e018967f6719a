"""Background jobs for payment reconciliation."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from app import db as db_module
from app.config import get_settings
from app.core.runtime_state import record_sweep
from app.models import Payment, PaymentStatus
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

STALE_RESULT_DESC = "STK push was never acknowledged by M-Pesa; closed by reconciliation"


def expire_stale_payments(db: Session, *, now: datetime | None = None, stale_after: timedelta | None = None) -> int:
    """Fail pending payments that never got a ``checkout_request_id``.

    Without a correlation id no callback can ever match the row, so it would
    otherwise stay pending forever. Rows that do have one are left for the
    callback.
    """

    if stale_after is None:
        stale_after = timedelta(minutes=get_settings().PAYMENT_STALE_AFTER_MINUTES)
    cutoff = (now or utcnow()) - stale_after
    stmt = (
        update(Payment)
        .where(
            Payment.status == PaymentStatus.PENDING,
            Payment.checkout_request_id.is_(None),
            Payment.created_at <= cutoff,
        )
        .values(status=PaymentStatus.FAILED, result_desc=STALE_RESULT_DESC)
        .execution_options(synchronize_session=False)
    )
    expired = db.execute(stmt).rowcount
    db.commit()
    if expired:
        logger.info("Expired stale pending payments", extra={"count": expired, "cutoff": cutoff.isoformat()})
    return expired


def expire_stale_payments_once(now: datetime | None = None) -> int:
    """Scheduler entry point: run one sweep on a fresh session."""

    now = now or utcnow()
    with db_module.session_scope() as db:
        expired = expire_stale_payments(db, now=now)
    record_sweep(now, expired)
    return expired


__all__ = ["STALE_RESULT_DESC", "expire_stale_payments", "expire_stale_payments_once"]
