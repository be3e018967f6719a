"""Test configuration."""
import json
import os
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# --- Default env for the test run
os.environ.setdefault("DATABASE_URL", "sqlite:///./stkpay_test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("MPESA_BASE_URL", "https://daraja.test")
os.environ.setdefault("MPESA_CONSUMER_KEY", "test-consumer-key")
os.environ.setdefault("MPESA_CONSUMER_SECRET", "test-consumer-secret")
os.environ.setdefault("MPESA_PASSKEY", "test-passkey")
os.environ.setdefault("MPESA_SHORTCODE", "174379")
os.environ.setdefault("MPESA_CALLBACK_URL", "https://pay.example.test/mpesa/callback")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from app.main import app  # noqa: E402
from app.db import get_db  # noqa: E402
from app.models import Payment, PaymentStatus  # noqa: E402
from app.services.daraja import (  # noqa: E402
    DarajaClient,
    DarajaConfig,
    get_daraja_client,
    get_daraja_config,
)

DB_PATH = Path("./stkpay_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Start every session from an empty database file
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False,
                                   future=True, expire_on_commit=False)

# --- (2) Schema comes from Alembic only
_run_migrations()


@pytest.fixture
def db_session() -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        if transaction.is_active:
            transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session
    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class DarajaStub:
    """Scripted Daraja sandbox behind ``httpx.MockTransport``.

    ``token_response`` and ``stk_response`` are either an ``httpx.Response``
    or an exception instance raised from the transport.
    """

    def __init__(self) -> None:
        self.token_response: httpx.Response | Exception = httpx.Response(
            200, json={"access_token": "test-token", "expires_in": "3599"}
        )
        self.stk_response: httpx.Response | Exception = self.accepted("ws_CO_TEST_0001")
        self.requests: list[httpx.Request] = []

    @staticmethod
    def accepted(checkout_request_id: str, merchant_request_id: str = "29115-34620561-1") -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "MerchantRequestID": merchant_request_id,
                "CheckoutRequestID": checkout_request_id,
                "ResponseCode": "0",
                "ResponseDescription": "Success. Request accepted for processing",
                "CustomerMessage": "Success. Request accepted for processing",
            },
        )

    @property
    def stk_requests(self) -> list[httpx.Request]:
        return [req for req in self.requests if req.url.path.endswith("/processrequest")]

    def stk_payloads(self) -> list[dict]:
        return [json.loads(req.content) for req in self.stk_requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/v1/generate":
            outcome = self.token_response
        elif request.url.path == "/mpesa/stkpush/v1/processrequest":
            outcome = self.stk_response
        else:
            return httpx.Response(404, json={"errorMessage": "unknown path"})
        if isinstance(outcome, Exception):
            raise outcome
        # fresh response per request; the same script may answer several calls
        return httpx.Response(outcome.status_code, headers=outcome.headers, content=outcome.content)

    def client(self, config: DarajaConfig | None = None) -> DarajaClient:
        return DarajaClient(config or get_daraja_config(), transport=httpx.MockTransport(self.handler))


@pytest.fixture
def daraja() -> Iterator[DarajaStub]:
    stub = DarajaStub()
    app.dependency_overrides[get_daraja_client] = stub.client
    yield stub
    app.dependency_overrides.pop(get_daraja_client, None)


@pytest.fixture
def make_payment(db_session: Session) -> Callable[..., Payment]:
    """Factory inserting a payment row directly."""

    def _factory(
        *,
        phone_number: str = "254712345678",
        amount: str = "50.00",
        status: PaymentStatus = PaymentStatus.PENDING,
        checkout_request_id: str | None = None,
        **extra,
    ) -> Payment:
        payment = Payment(
            phone_number=phone_number,
            amount=Decimal(amount),
            status=status,
            checkout_request_id=checkout_request_id,
            merchant_request_id="29115-34620561-1" if checkout_request_id else None,
            **extra,
        )
        db_session.add(payment)
        db_session.commit()
        db_session.refresh(payment)
        return payment

    return _factory


def stk_callback(
    checkout_request_id: str,
    result_code: int | str = 0,
    *,
    result_desc: str = "The service request is processed successfully.",
    receipt: str | None = "NLJ7RT61SV",
) -> dict:
    """Build a Daraja STK callback body."""

    callback: dict = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc,
    }
    if receipt is not None:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": 50.0},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "TransactionDate", "Value": 20191219102115},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": callback}}


@pytest.fixture
def callback_body() -> Callable[..., dict]:
    return stk_callback
