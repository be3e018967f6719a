"""Process-wide runtime flags shared across modules."""
from __future__ import annotations

from datetime import datetime

_scheduler_active = False
_last_sweep_at: datetime | None = None
_last_sweep_expired = 0


def set_scheduler_active(active: bool) -> None:
    global _scheduler_active
    _scheduler_active = active


def is_scheduler_active() -> bool:
    return _scheduler_active


def record_sweep(at: datetime, expired: int) -> None:
    global _last_sweep_at, _last_sweep_expired
    _last_sweep_at = at
    _last_sweep_expired = expired


def describe_last_sweep() -> dict[str, object]:
    return {
        "at": _last_sweep_at.isoformat() if _last_sweep_at else None,
        "expired": _last_sweep_expired,
    }
