"""
Scenario - Uber Eats order lifecycle through the HTTP app

Covers:
- Notification: token exchange, order fetch, order stored
- Redelivery of the notification: reported as already processed
- Cancel event for the stored order: status moves to cancelled
- Platform outage: nothing stored, the next delivery succeeds
"""
import httpx
import pytest

from app.domain.schemas import OrderStatus, Platform

from tests.scenarios.conftest import (
    assert_order_count,
    assert_order_status,
    send_webhook,
)


@pytest.mark.scenario
class TestUberEatsLifecycle:

    async def test_notify_redeliver_cancel(
        self,
        test_client,
        db_session,
        uber_eats_api,
        uber_eats_order_factory,
        uber_eats_event_factory,
    ):
        href = uber_eats_api.add_order(uber_eats_order_factory(id="ue-life-1"))

        # 1. New order
        body = await send_webhook(test_client, Platform.UBER_EATS, uber_eats_event_factory(href))
        assert body == {"status": "success", "message": "Uber Eats order processed"}
        await assert_order_status(db_session, Platform.UBER_EATS, "ue-life-1", OrderStatus.RECEIVED)

        # 2. Same notification again
        body = await send_webhook(test_client, Platform.UBER_EATS, uber_eats_event_factory(href))
        assert body == {"status": "error", "message": "Uber Eats order ue-life-1 already processed"}
        await assert_order_count(db_session, 1)

        # 3. Eater cancels
        uber_eats_api.orders["ue-life-1"]["current_state"] = "CANCELED"
        body = await send_webhook(
            test_client,
            Platform.UBER_EATS,
            uber_eats_event_factory(href, event_type="orders.cancel"),
        )
        assert body == {"status": "success", "message": "Uber Eats order cancelled"}
        await assert_order_status(db_session, Platform.UBER_EATS, "ue-life-1", OrderStatus.CANCELLED)

        # Every delivery exchanged credentials and fetched the order
        assert len(uber_eats_api.token_requests) == 3
        assert len(uber_eats_api.order_requests) == 3

        # The read API reflects the cancellation; the document is the first one stored
        response = await test_client.get("/api/orders/1")
        assert response.json()["status"] == "cancelled"
        assert response.json()["order_data"]["current_state"] == "CREATED"

    async def test_outage_then_recovery(
        self,
        test_client,
        db_session,
        uber_eats_api,
        uber_eats_order_factory,
        uber_eats_event_factory,
    ):
        href = uber_eats_api.add_order(uber_eats_order_factory(id="ue-life-2"))
        event = uber_eats_event_factory(href)

        uber_eats_api.token_error = httpx.ConnectTimeout("connect timed out")
        body = await send_webhook(test_client, Platform.UBER_EATS, event)
        assert body["status"] == "error"
        assert body["message"].startswith("Uber Eats auth error: token request timed out")
        await assert_order_count(db_session, 0)

        uber_eats_api.token_error = None
        body = await send_webhook(test_client, Platform.UBER_EATS, event)
        assert body == {"status": "success", "message": "Uber Eats order processed"}
        await assert_order_count(db_session, 1, Platform.UBER_EATS)
