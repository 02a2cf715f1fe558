"""
Smoke checks against a running instance.

Runs lightweight HTTP checks:
- GET /health
- POST /webhook/rappi with a valid order
- POST /webhook/didi-food with an order missing merchantId
- POST /webhook/uber-eats with an event type that needs no outbound call

Every webhook must answer 200 with {"status", "message"}. Orders are keyed by
a timestamped code, so re-running never trips the duplicate check.
"""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import httpx

# Allow running from any directory (`python scripts/smoke_webhooks.py`)
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.core.logging import get_logger, setup_logging  # noqa: E402


logger = get_logger(__name__)


def _base_url() -> str:
    port = os.environ.get("PORT", "3000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _rappi_payload(run_id: str) -> dict:
    return {
        "code": f"SMOKE-{run_id}",
        "total": 10.5,
        "store": {"id": "smoke-store"},
        "products": [{"id": "smoke-1", "units": 1}],
    }


def _didi_food_payload(run_id: str) -> dict:
    return {"orderNumber": f"SMOKE-{run_id}"}


def _uber_eats_payload(run_id: str) -> dict:
    return {
        "event_id": f"smoke-{run_id}",
        "event_type": "store.provisioned",
        "resource_href": "https://api.uber.com/v1/eats/stores/smoke",
    }


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    family = resp.status_code // 100
    if family != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def _check_webhook(resp: httpx.Response, expected_status: str, expected_message: str) -> None:
    _check_status(resp, expected_family=2)
    body = resp.json()
    if set(body) != {"status", "message"}:
        raise RuntimeError(f"Malformed webhook body from {resp.request.url}: {body}")
    if body["status"] != expected_status or body["message"] != expected_message:
        raise RuntimeError(
            f"Unexpected answer from {resp.request.url}: {body} "
            f"(expected {expected_status!r} / {expected_message!r})"
        )


def main() -> None:
    setup_logging(level="INFO", json_format=False, app_name="food-delivery-smoke")

    base_url = _base_url()
    timeout = _timeout_seconds()
    run_id = str(int(time.time() * 1000))

    logger.info("Starting smoke tests", extra_data={"base_url": base_url, "timeout_seconds": timeout})

    with httpx.Client(timeout=timeout) as client:
        health_url = f"{base_url}/health"
        logger.info("Checking health endpoint", extra_data={"url": health_url})
        _check_status(client.get(health_url), expected_family=2)

        rappi_url = f"{base_url}/webhook/rappi"
        logger.info("Posting Rappi order", extra_data={"url": rappi_url, "run_id": run_id})
        _check_webhook(
            client.post(rappi_url, json=_rappi_payload(run_id)),
            "success",
            "Rappi order processed",
        )

        didi_url = f"{base_url}/webhook/didi-food"
        logger.info("Posting incomplete Didi Food order", extra_data={"url": didi_url})
        _check_webhook(
            client.post(didi_url, json=_didi_food_payload(run_id)),
            "error",
            "Invalid Didi Food order structure: missing merchantId",
        )

        uber_url = f"{base_url}/webhook/uber-eats"
        logger.info("Posting unsupported Uber Eats event", extra_data={"url": uber_url})
        _check_webhook(
            client.post(uber_url, json=_uber_eats_payload(run_id)),
            "error",
            "Unsupported Uber Eats event type: store.provisioned",
        )

    logger.info("Smoke tests completed successfully")


if __name__ == "__main__":
    main()
