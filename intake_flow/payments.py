"""Stripe price and product operations used by the admin price sync."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import stripe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentPrice:
    id: str
    unit_amount: Optional[int]
    currency: str
    active: bool


class StripeGateway:
    """Wrap the Stripe SDK calls so the sync logic can be tested with a fake."""

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is not configured")
        self._api_key = api_key

    def retrieve_price(self, price_id: str) -> PaymentPrice | None:
        """Return the price, or ``None`` when Stripe does not know the id.

        Other Stripe failures propagate so callers can report them as errors.
        """

        try:
            price = stripe.Price.retrieve(price_id, api_key=self._api_key)
        except stripe.InvalidRequestError as exc:
            logger.warning("Stripe price %s not found: %s", price_id, exc)
            return None
        return PaymentPrice(
            id=price.id,
            unit_amount=price.unit_amount,
            currency=price.currency,
            active=bool(price.active),
        )

    def archive_price(self, price_id: str) -> None:
        stripe.Price.modify(price_id, active=False, api_key=self._api_key)

    def create_product(self, name: str, description: str, metadata: Dict[str, str]) -> str:
        product = stripe.Product.create(
            name=name,
            description=description,
            metadata=metadata,
            api_key=self._api_key,
        )
        return product.id

    def create_price(
        self,
        *,
        product_id: str,
        unit_amount: int,
        currency: str,
        interval: str,
        interval_count: int,
        metadata: Dict[str, str],
    ) -> str:
        price = stripe.Price.create(
            product=product_id,
            unit_amount=unit_amount,
            currency=currency,
            recurring={"interval": interval, "interval_count": interval_count},
            metadata=metadata,
            api_key=self._api_key,
        )
        return price.id
