import httpx
import pytest

from api.dependencies import get_payment_service
from application.services.payment_service import PaymentService
from application.services.token_service import TokenService
from core.exceptions import business_code_to_http_status
from core.settings import GatewayErrorPolicy
from domain.order.entity import PaymentStatus
from main import app
from shared.codes.payment_codes import PaymentCode


@pytest.fixture
def payment_service(uow_factory, gateway, esewa, urls):
    service = PaymentService(uow_factory, gateway, esewa=esewa, urls=urls, policy=GatewayErrorPolicy.STRICT)
    app.dependency_overrides[get_payment_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TokenService().create_access_token(1)}"}


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_init_returns_signed_form(payment_service, store, add_order, auth_headers):
    order_id = add_order(total_amount="1200.50")

    async with _client() as client:
        resp = await client.post("/api/v1/payments/esewa/init", json={"orderId": order_id}, headers=auth_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["orderId"] == order_id
    assert body["data"]["gatewayUrl"].endswith("/api/epay/main/v2/form")
    form = body["data"]["paymentData"]
    assert form["total_amount"] == "1200"
    assert form["transaction_uuid"] == store.get(order_id).transaction_id
    assert form["signed_field_names"] == "total_amount,transaction_uuid,product_code"
    assert form["signature"]


@pytest.mark.asyncio
async def test_init_requires_authentication(payment_service, add_order):
    order_id = add_order()

    async with _client() as client:
        resp = await client.post("/api/v1/payments/esewa/init", json={"orderId": order_id})

    assert resp.status_code == 401
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_init_for_someone_elses_order_is_forbidden(payment_service, add_order, auth_headers):
    order_id = add_order(user_id=2)

    async with _client() as client:
        resp = await client.post("/api/v1/payments/esewa/init", json={"orderId": order_id}, headers=auth_headers)

    assert resp.status_code == 403
    assert resp.json()["error"]["type"] == "Unauthorized"


@pytest.mark.asyncio
async def test_init_for_unknown_order(payment_service, auth_headers):
    async with _client() as client:
        resp = await client.post("/api/v1/payments/esewa/init", json={"orderId": 404}, headers=auth_headers)

    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_success_redirect(payment_service, store, add_order):
    order_id = add_order(transaction_id="TX1700000000000")

    async with _client() as client:
        resp = await client.get(
            "/api/v1/payments/esewa/success",
            params={"transaction_uuid": "TX1700000000000", "status": "COMPLETE", "refId": "ABC123"},
        )

    assert resp.status_code == 302
    assert resp.headers["location"] == f"http://shop.test/order-confirmation/{order_id}?payment=success"
    assert store.get(order_id).payment_status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_failure_redirect_without_match(payment_service, store):
    async with _client() as client:
        resp = await client.get("/api/v1/payments/esewa/failure", params={"transaction_uuid": "TX-NOPE"})

    assert resp.status_code == 302
    assert resp.headers["location"] == "http://shop.test/orders?payment=failed"
    assert store.writes == 0


@pytest.mark.asyncio
async def test_verify_completed_payment(payment_service, gateway, add_order, auth_headers):
    order_id = add_order(transaction_id="TX1")
    gateway.ref_ids["TX1"] = "000AWEO"

    async with _client() as client:
        resp = await client.post(
            "/api/v1/payments/esewa/verify", json={"orderId": order_id, "refId": "  "}, headers=auth_headers
        )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["paymentStatus"] == "completed"
    assert data["paymentVerified"] is True
    assert data["referenceId"] == "000AWEO"


@pytest.mark.asyncio
async def test_verify_pending_payment_is_reported_as_failure(payment_service, gateway, add_order, auth_headers):
    order_id = add_order(transaction_id="TX1")
    gateway.statuses["TX1"] = "PENDING"

    async with _client() as client:
        resp = await client.post("/api/v1/payments/esewa/verify", json={"orderId": order_id}, headers=auth_headers)

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == 61003
    assert body["data"]["paymentStatus"] == "pending"
    assert body["data"]["gatewayStatus"] == "PENDING"


@pytest.mark.asyncio
async def test_verify_without_order_id(payment_service, auth_headers):
    async with _client() as client:
        resp = await client.post("/api/v1/payments/esewa/verify", json={}, headers=auth_headers)

    assert resp.status_code == 422
    assert resp.json()["error"]["field"] == "orderId"


@pytest.mark.asyncio
async def test_verify_all_pending(payment_service, store, add_order, auth_headers):
    ids = [add_order(transaction_id=f"TX{i}") for i in range(3)]

    async with _client() as client:
        resp = await client.post("/api/v1/payments/esewa/verify-all-pending", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["data"] == {"updated": 3, "failed": []}
    assert all(store.get(i).payment_status == PaymentStatus.COMPLETED for i in ids)


@pytest.mark.asyncio
async def test_config_info_hides_secret(payment_service, esewa):
    async with _client() as client:
        resp = await client.get("/api/v1/payments/config/info")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["secretKeyConfigured"] is True
    assert data["productCode"] == "EPAYTEST"
    assert esewa.secret_key not in resp.text


@pytest.mark.asyncio
async def test_health():
    async with _client() as client:
        resp = await client.get("/health")
    assert resp.json()["data"] == {"status": "healthy"}


@pytest.mark.asyncio
async def test_request_id_is_echoed():
    async with _client() as client:
        resp = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert "X-Process-Time" in resp.headers


def test_payment_codes_map_to_http_statuses():
    assert {code.name for code in PaymentCode} == {
        "SUCCESS",
        "GATEWAY_UNREACHABLE",
        "SIGNATURE_ERROR",
        "INVALID_PAYMENT_METHOD",
        "PAYMENT_FINALIZED",
        "CALLBACK_UNRESOLVED",
        "VERIFICATION_FAILED",
    }
    assert business_code_to_http_status(PaymentCode.GATEWAY_UNREACHABLE) == 502
    assert business_code_to_http_status(PaymentCode.PAYMENT_FINALIZED) == 409
    assert business_code_to_http_status(PaymentCode.VERIFICATION_FAILED) == 400
