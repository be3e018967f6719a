"""Liveness and configuration report."""
from __future__ import annotations

import logging

from fastapi import APIRouter

from app import db
from app.config import get_settings
from app.core.runtime_state import describe_last_sweep, is_scheduler_active

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _database_reachable() -> bool:
    try:
        return db.ping()
    except Exception:  # noqa: BLE001
        logger.exception("Database ping failed")
        return False


@router.get("", summary="Health check")
def healthcheck() -> dict[str, object]:
    """Never fails: an unreachable database only degrades the status."""

    settings = get_settings()
    db_ok = _database_reachable()
    return {
        "status": "ok" if db_ok else "degraded",
        "db_status": "ok" if db_ok else "error",
        "mpesa_credentials_configured": settings.mpesa_credentials_configured,
        "mpesa_base_url": settings.MPESA_BASE_URL,
        "scheduler_config_enabled": settings.SCHEDULER_ENABLED,
        "scheduler_running": is_scheduler_active(),
        "last_reconciliation": describe_last_sweep(),
    }
