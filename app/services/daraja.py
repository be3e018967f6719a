"""Safaricom Daraja (M-Pesa) client for OAuth and STK push.

Every outbound call uses an explicit timeout. The transport only retries
failed connection attempts: once a request has reached Daraja it is never
resent, because an STK push is not idempotent and a retry would prompt the
payer twice.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Union

import httpx

from app.config import Settings, get_settings
from app.utils.masking import mask_phone
from app.utils.time import daraja_timestamp

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
TRANSACTION_TYPE = "CustomerPayBillOnline"
CONNECT_TIMEOUT_SECONDS = 10.0


class DarajaAuthError(RuntimeError):
    """The OAuth client-credentials exchange did not yield a token."""

    def __init__(self, message: str, *, status_code: int | None = None, text: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.text = text


class DarajaCredentialsMissing(DarajaAuthError):
    """Consumer key, consumer secret or passkey is not configured."""


@dataclass(frozen=True)
class DarajaConfig:
    """Provider settings, built once from the environment and handed to handlers."""

    base_url: str
    shortcode: str
    callback_url: str
    consumer_key: str | None = field(default=None, repr=False)
    consumer_secret: str | None = field(default=None, repr=False)
    passkey: str | None = field(default=None, repr=False)
    timeout_seconds: float = 30.0
    connect_retries: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "DarajaConfig":
        return cls(
            base_url=settings.MPESA_BASE_URL.rstrip("/"),
            shortcode=settings.MPESA_SHORTCODE,
            callback_url=settings.mpesa_callback_url,
            consumer_key=settings.MPESA_CONSUMER_KEY,
            consumer_secret=settings.MPESA_CONSUMER_SECRET,
            passkey=settings.MPESA_PASSKEY,
            timeout_seconds=settings.MPESA_TIMEOUT_SECONDS,
            connect_retries=settings.MPESA_CONNECT_RETRIES,
        )


@dataclass(frozen=True)
class StkPushAccepted:
    merchant_request_id: str
    checkout_request_id: str
    customer_message: str = ""


@dataclass(frozen=True)
class StkPushRejected:
    reason: str
    response_code: str | None = None


@dataclass(frozen=True)
class StkPushTransportError:
    detail: str


StkPushResult = Union[StkPushAccepted, StkPushRejected, StkPushTransportError]


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """Base64 of shortcode + passkey + timestamp, as Lipa na M-Pesa expects."""

    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode("utf-8")


def _rejection_reason(body: dict[str, Any]) -> str:
    return (
        body.get("errorMessage")
        or body.get("ResponseDescription")
        or body.get("CustomerMessage")
        or "STK push request was rejected"
    )


class DarajaClient:
    """Thin async wrapper around the two Daraja endpoints the service uses."""

    def __init__(self, config: DarajaConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(retries=self.config.connect_retries)
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout_seconds, connect=CONNECT_TIMEOUT_SECONDS),
            transport=transport,
        )

    async def get_access_token(self) -> str:
        """Exchange the consumer key/secret for a short-lived bearer token."""

        key, secret = self.config.consumer_key, self.config.consumer_secret
        # The passkey is only needed for the push itself, but a token is useless without it.
        if not key or not secret or not self.config.passkey:
            raise DarajaCredentialsMissing("M-Pesa credentials not configured")

        try:
            async with self._http() as http:
                response = await http.get(
                    TOKEN_PATH,
                    params={"grant_type": "client_credentials"},
                    auth=(key, secret),
                )
        except httpx.HTTPError as exc:
            logger.error("Daraja token request failed", extra={"error": repr(exc)})
            raise DarajaAuthError(f"Token request failed: {exc!r}") from exc

        if response.is_error:
            logger.error(
                "Daraja token endpoint returned an error",
                extra={"status_code": response.status_code, "body": response.text[:500]},
            )
            raise DarajaAuthError(
                f"Token endpoint returned {response.status_code}",
                status_code=response.status_code,
                text=response.text,
            )

        try:
            token = response.json().get("access_token")
        except ValueError:
            token = None
        if not token:
            raise DarajaAuthError(
                "Token endpoint response did not include an access token",
                status_code=response.status_code,
                text=response.text,
            )
        return token

    def build_stk_payload(
        self,
        *,
        phone_number: str,
        amount: int,
        account_reference: str,
        description: str,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        if not self.config.passkey:
            raise DarajaCredentialsMissing("M-Pesa passkey not configured")
        timestamp = daraja_timestamp(now)
        return {
            "BusinessShortCode": self.config.shortcode,
            "Password": stk_password(self.config.shortcode, self.config.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": TRANSACTION_TYPE,
            "Amount": amount,
            "PartyA": phone_number,
            "PartyB": self.config.shortcode,
            "PhoneNumber": phone_number,
            "CallBackURL": self.config.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }

    async def stk_push(
        self,
        *,
        access_token: str,
        phone_number: str,
        amount: int,
        account_reference: str,
        description: str = "Payment for services",
        now: datetime | None = None,
    ) -> StkPushResult:
        """Submit an STK push and classify Daraja's answer."""

        payload = self.build_stk_payload(
            phone_number=phone_number,
            amount=amount,
            account_reference=account_reference,
            description=description,
            now=now,
        )
        log_extra = {"phone": mask_phone(phone_number), "account_reference": account_reference}

        try:
            async with self._http() as http:
                response = await http.post(
                    STK_PUSH_PATH,
                    json=payload,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            logger.error("STK push transport error", extra={**log_extra, "error": repr(exc)})
            return StkPushTransportError(detail=repr(exc))

        try:
            body = response.json()
        except ValueError:
            logger.error(
                "STK push response was not JSON",
                extra={**log_extra, "status_code": response.status_code, "body": response.text[:500]},
            )
            return StkPushTransportError(detail=f"Unparseable response ({response.status_code})")
        if not isinstance(body, dict):
            return StkPushTransportError(detail=f"Unexpected response shape ({response.status_code})")

        response_code = body.get("ResponseCode")
        if not response.is_error and str(response_code) == "0":
            checkout_request_id = body.get("CheckoutRequestID")
            if not checkout_request_id:
                # Without it no callback can ever be matched to the payment.
                logger.error("STK push accepted without a CheckoutRequestID", extra=log_extra)
                return StkPushTransportError(detail="Accepted response without CheckoutRequestID")
            logger.info(
                "STK push accepted",
                extra={**log_extra, "checkout_request_id": checkout_request_id},
            )
            return StkPushAccepted(
                merchant_request_id=body.get("MerchantRequestID", ""),
                checkout_request_id=str(checkout_request_id),
                customer_message=body.get("CustomerMessage", ""),
            )

        reason = _rejection_reason(body)
        logger.warning(
            "STK push rejected",
            extra={
                **log_extra,
                "status_code": response.status_code,
                "response_code": response_code,
                "error_code": body.get("errorCode"),
                "reason": reason,
            },
        )
        code = response_code if response_code is not None else body.get("errorCode")
        return StkPushRejected(reason=reason, response_code=None if code is None else str(code))


@lru_cache
def get_daraja_config() -> DarajaConfig:
    """Return the process-wide provider configuration (built on first use)."""

    return DarajaConfig.from_settings(get_settings())


def get_daraja_client() -> DarajaClient:
    """FastAPI dependency returning a client bound to the startup configuration."""

    return DarajaClient(get_daraja_config())


__all__ = [
    "DarajaAuthError",
    "DarajaCredentialsMissing",
    "DarajaConfig",
    "DarajaClient",
    "StkPushAccepted",
    "StkPushRejected",
    "StkPushTransportError",
    "StkPushResult",
    "stk_password",
    "get_daraja_config",
    "get_daraja_client",
]
