"""
Tests for the webhook endpoints, the orders API and the health probe
"""
import httpx
import pytest

from app.domain.schemas import OrderStatus, Platform
from app.domain.services.order_store import OrderStore


class TestRappiWebhook:

    @pytest.mark.integration
    async def test_valid_order(self, test_client, db_session, rappi_order_factory):
        response = await test_client.post("/webhook/rappi", json=rappi_order_factory(code="RP-100"))

        assert response.status_code == 200
        assert response.json() == {"status": "success", "message": "Rappi order processed"}

        stored = await OrderStore(db_session).get_by_external_id(Platform.RAPPI, "RP-100")
        assert stored is not None
        assert stored.status is OrderStatus.RECEIVED

    @pytest.mark.integration
    async def test_duplicate_is_still_http_200(self, test_client, rappi_order_factory):
        body = rappi_order_factory(code="RP-101")

        await test_client.post("/webhook/rappi", json=body)
        response = await test_client.post("/webhook/rappi", json=body)

        assert response.status_code == 200
        assert response.json() == {"status": "error", "message": "Rappi order RP-101 already processed"}

    @pytest.mark.integration
    async def test_invalid_json_body(self, test_client):
        response = await test_client.post(
            "/webhook/rappi",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "error",
            "message": "Invalid Rappi order structure: payload is not a JSON object",
        }


class TestDidiFoodWebhook:

    @pytest.mark.integration
    async def test_missing_merchant_id(self, test_client, db_session, didi_food_order_factory):
        body = didi_food_order_factory(orderNumber="DD-200")
        del body["merchantId"]

        response = await test_client.post("/webhook/didi-food", json=body)

        assert response.status_code == 200
        assert response.json() == {
            "status": "error",
            "message": "Invalid Didi Food order structure: missing merchantId",
        }
        assert await OrderStore(db_session).get_by_external_id(Platform.DIDI_FOOD, "DD-200") is None

    @pytest.mark.integration
    async def test_valid_order(self, test_client, didi_food_order_factory):
        response = await test_client.post("/webhook/didi-food", json=didi_food_order_factory())

        assert response.json() == {"status": "success", "message": "Didi Food order processed"}


class TestUberEatsWebhook:

    @pytest.mark.integration
    async def test_notification(
        self, test_client, db_session, uber_eats_api, uber_eats_order_factory, uber_eats_event_factory
    ):
        href = uber_eats_api.add_order(uber_eats_order_factory(id="ue-300"))

        response = await test_client.post("/webhook/uber-eats", json=uber_eats_event_factory(href))

        assert response.status_code == 200
        assert response.json() == {"status": "success", "message": "Uber Eats order processed"}
        assert len(uber_eats_api.token_requests) == 1
        assert uber_eats_api.order_requests[0].headers["Authorization"] == "Bearer test-access-token"

        stored = await OrderStore(db_session).get_by_external_id(Platform.UBER_EATS, "ue-300")
        assert stored.order_data["store"]["id"] == "store-77"

    @pytest.mark.integration
    async def test_token_rejected(
        self, test_client, db_session, uber_eats_api, uber_eats_order_factory, uber_eats_event_factory
    ):
        href = uber_eats_api.add_order(uber_eats_order_factory(id="ue-301"))
        uber_eats_api.token_response = httpx.Response(401, json={"error": "invalid_client"})

        response = await test_client.post("/webhook/uber-eats", json=uber_eats_event_factory(href))

        assert response.status_code == 200
        assert response.json() == {
            "status": "error",
            "message": "Uber Eats auth error: token endpoint returned status 401",
        }
        assert uber_eats_api.order_requests == []
        assert await OrderStore(db_session).get_by_external_id(Platform.UBER_EATS, "ue-301") is None

    @pytest.mark.integration
    async def test_order_fetch_fails(self, test_client, uber_eats_event_factory):
        response = await test_client.post(
            "/webhook/uber-eats",
            json=uber_eats_event_factory("https://api.uber.test/v1/delivery/order/unknown"),
        )

        assert response.json() == {
            "status": "error",
            "message": "Uber Eats order fetch error: order endpoint returned status 404",
        }

    @pytest.mark.integration
    async def test_invalid_json_body(self, test_client, uber_eats_api):
        response = await test_client.post(
            "/webhook/uber-eats",
            content=b"",
            headers={"Content-Type": "application/json"},
        )

        assert response.json() == {
            "status": "error",
            "message": "Invalid Uber Eats webhook: payload is not a JSON object",
        }
        assert uber_eats_api.token_requests == []


class TestOrdersApi:

    @pytest.mark.integration
    async def test_get_stored_order(self, test_client, rappi_order_factory):
        await test_client.post("/webhook/rappi", json=rappi_order_factory(code="RP-400"))

        response = await test_client.get("/api/orders/1")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == 1
        assert data["platform"] == "rappi"
        assert data["external_order_id"] == "RP-400"
        assert data["status"] == "received"
        assert data["order_data"]["code"] == "RP-400"
        assert data["order_data"]["processedAt"].endswith("Z")

    @pytest.mark.integration
    async def test_unknown_order(self, test_client):
        response = await test_client.get("/api/orders/999")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ERR_1002"

    @pytest.mark.integration
    async def test_non_integer_id(self, test_client):
        response = await test_client.get("/api/orders/abc")

        assert response.status_code == 422


class TestHealthAndHeaders:

    @pytest.mark.integration
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.integration
    async def test_correlation_id_is_echoed(self, test_client, rappi_order_factory):
        response = await test_client.post(
            "/webhook/rappi",
            json=rappi_order_factory(),
            headers={"X-Correlation-ID": "abc12345"},
        )

        assert response.headers["X-Correlation-ID"] == "abc12345"
