from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import db
from app.config import AppInfo, Settings, get_settings
from app.core.logging import get_logger, setup_logging
from app.core.runtime_state import set_scheduler_active
import app.models  # registers payments and mpesa_callbacks on the metadata
from app.routers import get_api_router
from app.services.cron import expire_stale_payments_once
from app.services.daraja import get_daraja_config
from app.utils.errors import error_response

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None
ALLOWED_CREATE_ENV = {"dev", "local", "test"}
RECONCILE_JOB_ID = "expire-stale-payments"


def _install_middlewares(fastapi_app: FastAPI, settings: Settings) -> None:
    # Browsers preflight the JSON POST; the callback is server to server.
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "apikey", "x-client-info"],
    )

    if settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware, app_name="stkpay", group_paths=True)
        fastapi_app.add_route("/metrics", handle_metrics)

    if settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.app_env, traces_sample_rate=0.2)


def _announce_provider(settings: Settings) -> None:
    """Missing credentials are only fatal when a push is attempted."""

    config = get_daraja_config()
    if not settings.mpesa_credentials_configured:
        logger.warning(
            "M-Pesa credentials are incomplete; STK push requests will fail until "
            "MPESA_CONSUMER_KEY, MPESA_CONSUMER_SECRET and MPESA_PASSKEY are set.",
            extra={"env": settings.app_env},
        )
    logger.info(
        "M-Pesa configuration loaded",
        extra={"base_url": config.base_url, "shortcode": config.shortcode, "callback_url": config.callback_url},
    )


def _prepare_schema(settings: Settings) -> None:
    if settings.ALLOW_DB_CREATE_ALL and settings.app_env.lower() in ALLOWED_CREATE_ENV:
        logger.warning("Creating tables from metadata", extra={"env": settings.app_env})
        db.create_all()
    else:
        logger.info("Schema managed by Alembic", extra={"env": settings.app_env})


def _start_reconciliation(settings: Settings) -> AsyncIOScheduler:
    reconciler = AsyncIOScheduler()
    reconciler.add_job(
        expire_stale_payments_once,
        "interval",
        minutes=settings.RECONCILE_INTERVAL_MINUTES,
        id=RECONCILE_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    reconciler.start()
    set_scheduler_active(True)
    logger.info(
        "Reconciliation sweep scheduled",
        extra={
            "interval_minutes": settings.RECONCILE_INTERVAL_MINUTES,
            "stale_after_minutes": settings.PAYMENT_STALE_AFTER_MINUTES,
        },
    )
    return reconciler


@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("Application startup", extra={"env": settings.app_env})
    _announce_provider(settings)

    db.init_engine()
    _prepare_schema(settings)

    set_scheduler_active(False)
    # The sweep is one conditional UPDATE, so every replica may run it.
    if settings.SCHEDULER_ENABLED:
        scheduler = _start_reconciliation(settings)
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            scheduler = None
        set_scheduler_active(False)
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_install_middlewares(app, get_settings())
app.include_router(get_api_router())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc, extra={"path": request.url.path})
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Route-level failures already carry their body; routing errors (404/405) get the envelope.
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
