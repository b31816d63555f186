from __future__ import annotations

from typing import Iterator

from fastapi.testclient import TestClient
import pytest

from intake_flow.app import create_app
from intake_flow.config import AppSettings
from intake_flow.dependencies import get_price_sync
from intake_flow.price_sync import PriceSyncService


app = create_app(AppSettings())
client = TestClient(app)


@pytest.fixture
def service(fake_cms, fake_gateway) -> Iterator[PriceSyncService]:
    sync_service = PriceSyncService(fake_cms, fake_gateway)
    app.dependency_overrides[get_price_sync] = lambda: sync_service
    yield sync_service
    app.dependency_overrides.clear()


def test_admin_requires_configured_integrations() -> None:
    assert client.get("/admin/price-comparison").status_code == 503
    assert client.post("/admin/sync-price", json={}).status_code == 503


def test_price_comparison_rows(service: PriceSyncService) -> None:
    response = client.get("/admin/price-comparison")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    missing = next(row for row in data["rows"] if row["variantKey"] == "v6")
    assert missing == {
        "subscriptionId": "sub-semaglutide",
        "subscriptionTitle": "Semaglutide",
        "variantKey": "v6",
        "variantTitle": "6 Month Supply",
        "sanityPrice": 999.99,
        "status": "MISSING",
        "statusMessage": "No Stripe Price ID in Sanity",
        "needsAction": True,
        "actionType": "create",
    }


def test_sync_price_success(service: PriceSyncService, fake_gateway) -> None:
    response = client.post(
        "/admin/sync-price",
        json={"subscriptionId": "sub-semaglutide", "variantKey": "v6", "action": "create"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": 'Successfully created price for variant "6 Month Supply": $999.99',
        "newPriceId": "price_new_1",
    }
    assert fake_gateway.created_prices[0]["unit_amount"] == 99999


@pytest.mark.parametrize(
    ("body", "status_code"),
    [
        ({"action": "sync"}, 400),
        ({"subscriptionId": "sub-semaglutide", "action": "refund"}, 400),
        ({"subscriptionId": "nope", "action": "create"}, 404),
    ],
)
def test_sync_price_errors(service: PriceSyncService, body: dict[str, str], status_code: int) -> None:
    response = client.post("/admin/sync-price", json=body)

    assert response.status_code == status_code
    assert response.json()["success"] is False


def test_bulk_sync(service: PriceSyncService) -> None:
    response = client.post("/admin/sync-prices")

    assert response.status_code == 200
    data = response.json()
    assert data["progress"] == {"total": 3, "completed": 3, "failed": 0}
    assert [item.get("variantKey") for item in data["results"]] == ["v3", "v6", None]
