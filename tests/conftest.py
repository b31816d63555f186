from __future__ import annotations

from typing import Any, Dict, List, Mapping

import pytest

from intake_flow.config import get_settings
from intake_flow.payments import PaymentPrice


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure cached settings do not leak between tests."""

    get_settings.cache_clear()


class FakeCMS:
    """In-memory stand-in for the Sanity client."""

    def __init__(self, subscriptions: List[Dict[str, Any]]) -> None:
        self.subscriptions = subscriptions
        self.patches: List[tuple[str, Dict[str, Any], Dict[str, Any] | None]] = []
        self.queries: List[str] = []

    def fetch(self, query: str, params: Mapping[str, Any] | None = None) -> Any:
        self.queries.append(query)
        if params and "id" in params:
            return next((item for item in self.subscriptions if item["_id"] == params["id"]), None)
        return self.subscriptions

    def patch(
        self,
        document_id: str,
        values: Mapping[str, Any],
        *,
        set_if_missing: Mapping[str, Any] | None = None,
    ) -> Dict[str, Any]:
        self.patches.append((document_id, dict(values), dict(set_if_missing) if set_if_missing else None))
        return {"transactionId": "tx"}


class FakeGateway:
    """Records Stripe calls instead of making them."""

    def __init__(self, prices: Mapping[str, PaymentPrice] | None = None) -> None:
        self.prices = dict(prices or {})
        self.lookup_errors: Dict[str, Exception] = {}
        self.archive_error: Exception | None = None
        self.create_price_error: Exception | None = None
        self.archived: List[str] = []
        self.products: List[Dict[str, Any]] = []
        self.created_prices: List[Dict[str, Any]] = []

    def retrieve_price(self, price_id: str) -> PaymentPrice | None:
        if price_id in self.lookup_errors:
            raise self.lookup_errors[price_id]
        return self.prices.get(price_id)

    def archive_price(self, price_id: str) -> None:
        if self.archive_error is not None:
            raise self.archive_error
        self.archived.append(price_id)

    def create_product(self, name: str, description: str, metadata: Mapping[str, str]) -> str:
        self.products.append({"name": name, "description": description, "metadata": dict(metadata)})
        return f"prod_{len(self.products)}"

    def create_price(self, **kwargs: Any) -> str:
        if self.create_price_error is not None:
            raise self.create_price_error
        self.created_prices.append(kwargs)
        return f"price_new_{len(self.created_prices)}"


def price(price_id: str, unit_amount: int) -> PaymentPrice:
    return PaymentPrice(id=price_id, unit_amount=unit_amount, currency="usd", active=True)


@pytest.fixture
def subscriptions() -> List[Dict[str, Any]]:
    return [
        {
            "_id": "sub-semaglutide",
            "title": "Semaglutide",
            "price": 199,
            "billingPeriod": "monthly",
            "stripePriceId": "price_base",
            "stripeProductId": "prod_existing",
            "hasVariants": True,
            "variants": [
                {
                    "_key": "v3",
                    "title": "3 Month Supply",
                    "price": 549,
                    "billingPeriod": "three_month",
                    "stripePriceId": "price_v3",
                },
                {
                    "_key": "v6",
                    "title": "6 Month Supply",
                    "price": 999.99,
                    "billingPeriod": "six_month",
                },
            ],
        },
        {
            "_id": "sub-minoxidil",
            "title": "Minoxidil",
            "price": 39,
            "billingPeriod": "annually",
            "stripePriceId": "price_gone",
            "hasVariants": False,
        },
    ]


@pytest.fixture
def fake_cms(subscriptions: List[Dict[str, Any]]) -> FakeCMS:
    return FakeCMS(subscriptions)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway(
        {
            "price_base": price("price_base", 19900),
            "price_v3": price("price_v3", 50000),
        }
    )
