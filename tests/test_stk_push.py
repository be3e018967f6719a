import httpx
import pytest
from sqlalchemy import func, select

from app.models import Payment, PaymentStatus
from app.services.validation import INVALID_AMOUNT_MESSAGE, INVALID_PHONE_MESSAGE


def _payment_count(db_session) -> int:
    return db_session.scalar(select(func.count()).select_from(Payment))


@pytest.mark.anyio("asyncio")
async def test_stk_push_success_creates_pending_payment(client, daraja, db_session):
    daraja.stk_response = daraja.accepted("ws_CO_191220191020363925")

    response = await client.post("/payments/stk-push", json={"phone_number": "0712345678", "amount": 50})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "STK Push sent successfully"
    assert body["checkout_request_id"] == "ws_CO_191220191020363925"

    payment = db_session.get(Payment, body["payment_id"])
    assert payment.status == PaymentStatus.PENDING
    assert payment.phone_number == "254712345678"
    assert payment.checkout_request_id == "ws_CO_191220191020363925"
    assert payment.merchant_request_id == "29115-34620561-1"

    [sent] = daraja.stk_payloads()
    assert sent["PhoneNumber"] == "254712345678"
    assert sent["Amount"] == 50
    assert sent["AccountReference"] == f"Payment-{payment.id}"
    assert sent["CallBackURL"] == "https://pay.example.test/mpesa/callback"


@pytest.mark.anyio("asyncio")
async def test_stk_push_rounds_fractional_amount_for_provider(client, daraja, db_session):
    response = await client.post("/payments/stk-push", json={"phone_number": "254712345678", "amount": "10.50"})

    assert response.status_code == 200
    [sent] = daraja.stk_payloads()
    assert sent["Amount"] == 11
    payment = db_session.get(Payment, response.json()["payment_id"])
    assert str(payment.amount) == "10.50"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "body, message",
    [
        ({"phone_number": "12345", "amount": 50}, INVALID_PHONE_MESSAGE),
        ({"phone_number": "0712345678", "amount": 0.5}, INVALID_AMOUNT_MESSAGE),
        ({"phone_number": "0712345678", "amount": "abc"}, INVALID_AMOUNT_MESSAGE),
    ],
)
async def test_stk_push_validation_errors(client, daraja, db_session, body, message):
    before = _payment_count(db_session)

    response = await client.post("/payments/stk-push", json=body)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": message}
    assert daraja.requests == []
    assert _payment_count(db_session) == before


@pytest.mark.anyio("asyncio")
async def test_stk_push_missing_field_is_400(client, daraja):
    response = await client.post("/payments/stk-push", json={"phone_number": "0712345678"})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert daraja.requests == []


@pytest.mark.anyio("asyncio")
async def test_stk_push_non_json_body_is_400(client, daraja):
    response = await client.post(
        "/payments/stk-push", content=b"phone=0712345678", headers={"Content-Type": "text/plain"}
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Request body must be JSON"}


@pytest.mark.anyio("asyncio")
async def test_stk_push_rejected_marks_payment_failed(client, daraja, db_session):
    daraja.stk_response = httpx.Response(
        400,
        json={"requestId": "r-1", "errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid PhoneNumber"},
    )
    before = _payment_count(db_session)

    response = await client.post("/payments/stk-push", json={"phone_number": "0712345678", "amount": 50})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "STK Push failed: Bad Request - Invalid PhoneNumber"}
    assert _payment_count(db_session) == before + 1
    payment = db_session.scalar(select(Payment).order_by(Payment.id.desc()))
    db_session.refresh(payment)
    assert payment.status == PaymentStatus.FAILED
    assert payment.checkout_request_id is None
    assert payment.result_desc == "Bad Request - Invalid PhoneNumber"


@pytest.mark.anyio("asyncio")
async def test_stk_push_transport_error_leaves_payment_pending(client, daraja, db_session):
    daraja.stk_response = httpx.ReadTimeout("timed out")

    response = await client.post("/payments/stk-push", json={"phone_number": "0712345678", "amount": 50})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Failed to communicate with M-Pesa. Please try again.",
    }
    payment = db_session.scalar(select(Payment).order_by(Payment.id.desc()))
    assert payment.status == PaymentStatus.PENDING
    assert payment.checkout_request_id is None


@pytest.mark.anyio("asyncio")
async def test_stk_push_auth_failure_creates_no_payment(client, daraja, db_session):
    daraja.token_response = httpx.Response(400, json={"errorMessage": "Invalid Authentication passed"})
    before = _payment_count(db_session)

    response = await client.post("/payments/stk-push", json={"phone_number": "0712345678", "amount": 50})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to authenticate with M-Pesa"}
    assert _payment_count(db_session) == before
    assert daraja.stk_requests == []


@pytest.mark.anyio("asyncio")
async def test_concurrent_submissions_create_independent_payments(client, daraja, db_session):
    first = await client.post("/payments/stk-push", json={"phone_number": "0712345678", "amount": 50})
    daraja.stk_response = daraja.accepted("ws_CO_TEST_0002")
    second = await client.post("/payments/stk-push", json={"phone_number": "0712345678", "amount": 50})

    assert first.status_code == second.status_code == 200
    assert first.json()["payment_id"] != second.json()["payment_id"]


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("origin", ["http://localhost:3000", "https://shop.example.com"])
async def test_stk_push_preflight_and_method_not_allowed(client, origin):
    preflight = await client.options(
        "/payments/stk-push",
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert preflight.status_code == 200
    assert preflight.headers["access-control-allow-origin"] in {"*", origin}
    assert "POST" in preflight.headers["access-control-allow-methods"]

    response = await client.get("/payments/stk-push")
    assert response.status_code == 405


@pytest.mark.anyio("asyncio")
async def test_bare_options_request_is_answered(client):
    response = await client.options("/payments/stk-push")

    assert response.status_code == 200
    assert "POST" in response.headers["allow"]


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("checkout_request_id", [None, ""])
async def test_accepted_push_without_checkout_id_leaves_payment_pending(
    client, daraja, db_session, checkout_request_id
):
    daraja.stk_response = httpx.Response(
        200,
        json={
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": checkout_request_id,
            "ResponseCode": "0",
            "CustomerMessage": "Success. Request accepted for processing",
        },
    )

    response = await client.post("/payments/stk-push", json={"phone_number": "0712345678", "amount": 50})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Failed to communicate with M-Pesa. Please try again.",
    }
    payment = db_session.scalar(select(Payment).order_by(Payment.id.desc()))
    assert payment.status == PaymentStatus.PENDING
    assert payment.checkout_request_id is None
