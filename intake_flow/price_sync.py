"""Compare CMS subscription prices with Stripe prices and repair mismatches."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Tuple

import stripe
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .cms import CMSError
from .payments import PaymentPrice
from .schemas import (
    BulkSyncResponse,
    PriceComparisonResponse,
    PriceComparisonRow,
    PriceComparisonStatus,
    SyncActionType,
    SyncItemResult,
    SyncPriceRequest,
    SyncPriceResponse,
    SyncProgress,
)

logger = logging.getLogger(__name__)

CURRENCY = "usd"
MAX_MONTH_INTERVAL = 12

_SUBSCRIPTION_FIELDS = """
  _id,
  title,
  price,
  billingPeriod,
  customBillingPeriodMonths,
  stripePriceId,
  stripeProductId,
  hasVariants,
  variants[]{
    _key,
    title,
    price,
    billingPeriod,
    customBillingPeriodMonths,
    stripePriceId
  }
"""

ACTIVE_SUBSCRIPTIONS_QUERY = (
    '*[_type == "subscription" && isActive == true && isDeleted != true] {' + _SUBSCRIPTION_FIELDS + "}"
)
SUBSCRIPTION_BY_ID_QUERY = '*[_type == "subscription" && _id == $id][0] {' + _SUBSCRIPTION_FIELDS + "}"


class CmsVariant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(alias="_key")
    title: str = ""
    price: float = 0
    billing_period: str = Field(default="monthly", alias="billingPeriod")
    custom_billing_period_months: Optional[int] = Field(default=None, alias="customBillingPeriodMonths")
    stripe_price_id: Optional[str] = Field(default=None, alias="stripePriceId")


class CmsSubscription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    title: str = ""
    price: float = 0
    billing_period: str = Field(default="monthly", alias="billingPeriod")
    custom_billing_period_months: Optional[int] = Field(default=None, alias="customBillingPeriodMonths")
    stripe_price_id: Optional[str] = Field(default=None, alias="stripePriceId")
    stripe_product_id: Optional[str] = Field(default=None, alias="stripeProductId")
    has_variants: Optional[bool] = Field(default=False, alias="hasVariants")
    variants: Optional[List[CmsVariant]] = None


class PriceSyncError(Exception):
    """A sync request that cannot be honoured, with the HTTP status to report."""

    def __init__(self, status_code: int, message: str, error: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error = error


class ContentStore(Protocol):
    def fetch(self, query: str, params: Any = None) -> Any: ...

    def patch(self, document_id: str, values: Any, *, set_if_missing: Any = None) -> Any: ...


class PaymentGateway(Protocol):
    def retrieve_price(self, price_id: str) -> PaymentPrice | None: ...

    def archive_price(self, price_id: str) -> None: ...

    def create_product(self, name: str, description: str, metadata: Any) -> str: ...

    def create_price(self, **kwargs: Any) -> str: ...


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def _format_amount(amount: float) -> str:
    text = f"{amount:.2f}".rstrip("0").rstrip(".")
    return f"${text}"


def get_interval_config(billing_period: str, custom_months: Optional[int] = None) -> Tuple[str, int]:
    """Translate a CMS billing period into a Stripe ``(interval, interval_count)``."""

    if billing_period == "monthly":
        return "month", 1
    if billing_period == "three_month":
        return "month", 3
    if billing_period == "six_month":
        return "month", 6
    if billing_period == "annually":
        return "year", 1
    if billing_period == "other":
        months = custom_months or 1
        if months > MAX_MONTH_INTERVAL:
            if months % 12 == 0:
                return "year", months // 12
            logger.warning("Billing period of %s months exceeds Stripe's limit; capping at 12", months)
            return "month", MAX_MONTH_INTERVAL
        return "month", months
    return "month", 1


def create_comparison_row(
    subscription: CmsSubscription,
    variant: CmsVariant | None = None,
    stripe_price: PaymentPrice | None = None,
    error: str | None = None,
) -> PriceComparisonRow:
    """Classify one base plan or variant against its Stripe price."""

    sanity_price = variant.price if variant else subscription.price
    price_id = variant.stripe_price_id if variant else subscription.stripe_price_id
    common = dict(
        subscription_id=subscription.id,
        subscription_title=subscription.title,
        variant_key=variant.key if variant else None,
        variant_title=variant.title if variant else "Base Plan",
        sanity_price=sanity_price,
    )

    if error:
        return PriceComparisonRow(
            **common,
            stripe_price_id=price_id,
            status=PriceComparisonStatus.ERROR,
            status_message=f"Error: {error}",
            needs_action=False,
            error=error,
        )
    if not price_id:
        return PriceComparisonRow(
            **common,
            status=PriceComparisonStatus.MISSING,
            status_message="No Stripe Price ID in Sanity",
            needs_action=True,
            action_type=SyncActionType.CREATE,
        )
    if stripe_price is None:
        return PriceComparisonRow(
            **common,
            stripe_price_id=price_id,
            status=PriceComparisonStatus.NOT_FOUND,
            status_message="Stripe Price ID not found or deleted",
            needs_action=True,
            action_type=SyncActionType.CREATE,
        )

    stripe_cents = stripe_price.unit_amount or 0
    stripe_amount = stripe_cents / 100
    if stripe_cents != to_cents(sanity_price):
        return PriceComparisonRow(
            **common,
            stripe_price=stripe_amount,
            stripe_price_id=price_id,
            status=PriceComparisonStatus.DIFFERENT,
            status_message=f"Sanity: {_format_amount(sanity_price)} | Stripe: {_format_amount(stripe_amount)}",
            needs_action=True,
            action_type=SyncActionType.SYNC,
        )
    return PriceComparisonRow(
        **common,
        stripe_price=stripe_amount,
        stripe_price_id=price_id,
        status=PriceComparisonStatus.OK,
        status_message=f"{_format_amount(sanity_price)} - Prices match",
        needs_action=False,
    )


class PriceSyncService:
    """Admin operations spanning the CMS and the payment provider."""

    def __init__(self, cms: ContentStore, gateway: PaymentGateway) -> None:
        self._cms = cms
        self._gateway = gateway

    def _row_for(self, subscription: CmsSubscription, variant: CmsVariant | None) -> PriceComparisonRow:
        price_id = variant.stripe_price_id if variant else subscription.stripe_price_id
        if not price_id:
            return create_comparison_row(subscription, variant)
        try:
            stripe_price = self._gateway.retrieve_price(price_id)
        except stripe.StripeError as exc:
            logger.error("Error fetching Stripe price %s: %s", price_id, exc)
            return create_comparison_row(subscription, variant, error=str(exc) or "Stripe lookup failed")
        return create_comparison_row(subscription, variant, stripe_price)

    def compare_prices(self) -> PriceComparisonResponse:
        """Build one row per base plan and variant of every active subscription."""

        logger.info("Starting price comparison")
        try:
            documents = self._cms.fetch(ACTIVE_SUBSCRIPTIONS_QUERY) or []
        except CMSError as exc:
            logger.error("Price comparison failed: %s", exc)
            return PriceComparisonResponse(success=False, error=str(exc))

        rows: List[PriceComparisonRow] = []
        for document in documents:
            try:
                subscription = CmsSubscription.model_validate(document)
            except ValidationError as exc:
                logger.error("Skipping malformed subscription document: %s", exc)
                continue
            try:
                rows.append(self._row_for(subscription, None))
                if subscription.has_variants and subscription.variants:
                    for variant in subscription.variants:
                        rows.append(self._row_for(subscription, variant))
            except Exception as exc:
                logger.exception("Error processing subscription %s", subscription.id)
                rows.append(create_comparison_row(subscription, error=str(exc) or "Unknown error"))

        logger.info("Generated %d comparison rows from %d subscriptions", len(rows), len(documents))
        return PriceComparisonResponse(success=True, rows=rows)

    def sync_price(self, request: SyncPriceRequest) -> SyncPriceResponse:
        """Create a fresh Stripe price from the CMS value and point the CMS at it.

        Raises :class:`PriceSyncError` for invalid requests and remote failures.
        """

        if not request.subscription_id or not request.action:
            raise PriceSyncError(400, "Missing required fields: subscriptionId and action")
        try:
            action = SyncActionType(request.action)
        except ValueError:
            raise PriceSyncError(400, 'Invalid action. Must be "sync" or "create"') from None

        variant_label = request.variant_key or "base"
        logger.info(
            "Syncing price for subscription %s, variant %s, action %s",
            request.subscription_id,
            variant_label,
            action.value,
        )
        try:
            return self._sync(request.subscription_id, request.variant_key, action)
        except PriceSyncError:
            raise
        except stripe.StripeError as exc:
            logger.error("Stripe error syncing %s: %s", request.subscription_id, exc)
            raise PriceSyncError(500, "Stripe API error", str(exc)) from exc
        except CMSError as exc:
            logger.error("CMS error syncing %s: %s", request.subscription_id, exc)
            raise PriceSyncError(500, "Failed to sync price", str(exc)) from exc

    def _sync(self, subscription_id: str, variant_key: str | None, action: SyncActionType) -> SyncPriceResponse:
        document = self._cms.fetch(SUBSCRIPTION_BY_ID_QUERY, {"id": subscription_id})
        if not document:
            raise PriceSyncError(404, "Subscription not found")
        try:
            subscription = CmsSubscription.model_validate(document)
        except ValidationError as exc:
            logger.error("Malformed subscription document %s: %s", subscription_id, exc)
            raise PriceSyncError(500, "Failed to sync price", "Malformed subscription document") from exc

        variant: CmsVariant | None = None
        if variant_key:
            variant = next((item for item in subscription.variants or [] if item.key == variant_key), None)
            if variant is None:
                raise PriceSyncError(404, "Variant not found")

        target = variant or subscription
        if target.price <= 0:
            raise PriceSyncError(400, "Invalid price value in Sanity")

        product_id = subscription.stripe_product_id
        if not product_id:
            product_id = self._gateway.create_product(
                subscription.title,
                f"{subscription.title} subscription",
                {"sanityId": subscription.id},
            )
            self._cms.patch(subscription.id, {"stripeProductId": product_id})
            logger.info("Created Stripe product %s for %s", product_id, subscription.id)

        current_price_id = target.stripe_price_id
        if action is SyncActionType.SYNC and current_price_id:
            try:
                self._gateway.archive_price(current_price_id)
            except stripe.StripeError as exc:
                # Already archived or deleted prices are fine to leave behind.
                logger.warning("Failed to archive old price %s: %s", current_price_id, exc)

        interval, interval_count = get_interval_config(target.billing_period, target.custom_billing_period_months)
        new_price_id = self._gateway.create_price(
            product_id=product_id,
            unit_amount=to_cents(target.price),
            currency=CURRENCY,
            interval=interval,
            interval_count=interval_count,
            metadata={
                "sanityId": subscription.id,
                "variantKey": variant_key or "",
                "billingPeriod": target.billing_period,
                "customBillingPeriodMonths": str(target.custom_billing_period_months or ""),
            },
        )
        logger.info("Created Stripe price %s", new_price_id)

        if variant is not None:
            self._cms.patch(
                subscription.id,
                {f'variants[_key=="{variant.key}"].stripePriceId': new_price_id},
                set_if_missing={"variants": []},
            )
            target_text = f'variant "{variant.title}"'
        else:
            self._cms.patch(subscription.id, {"stripePriceId": new_price_id})
            target_text = "base subscription"

        action_text = "synced" if action is SyncActionType.SYNC else "created"
        return SyncPriceResponse(
            success=True,
            message=f"Successfully {action_text} price for {target_text}: {_format_amount(target.price)}",
            new_price_id=new_price_id,
        )

    def sync_all(self) -> BulkSyncResponse:
        """Sync every row needing action, one at a time, collecting per-item outcomes."""

        comparison = self.compare_prices()
        if not comparison.success:
            return BulkSyncResponse(success=False, progress=SyncProgress())

        pending = [row for row in comparison.rows if row.needs_action and row.action_type]
        progress = SyncProgress(total=len(pending))
        results: List[SyncItemResult] = []
        for row in pending:
            request = SyncPriceRequest(
                subscription_id=row.subscription_id,
                variant_key=row.variant_key,
                action=row.action_type.value,
            )
            try:
                response = self.sync_price(request)
                progress.completed += 1
            except PriceSyncError as exc:
                response = SyncPriceResponse(success=False, message=exc.message, error=exc.error)
                progress.failed += 1
            results.append(
                SyncItemResult(
                    subscription_id=row.subscription_id,
                    variant_key=row.variant_key,
                    action=row.action_type,
                    response=response,
                )
            )
        return BulkSyncResponse(success=progress.failed == 0, progress=progress, results=results)
