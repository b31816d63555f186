"""Admin endpoints keeping CMS subscription prices and Stripe prices aligned."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_price_sync
from ..price_sync import PriceSyncError, PriceSyncService
from ..schemas import (
    BulkSyncResponse,
    PriceComparisonResponse,
    SyncPriceRequest,
    SyncPriceResponse,
)


router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/price-comparison", response_model=PriceComparisonResponse, response_model_exclude_none=True)
def price_comparison(service: PriceSyncService = Depends(get_price_sync)) -> PriceComparisonResponse | JSONResponse:
    """List every base plan and variant with its sync status."""

    result = service.compare_prices()
    if not result.success:
        return JSONResponse(
            status_code=500,
            content=result.model_dump(by_alias=True, exclude_none=True, mode="json"),
        )
    return result


@router.post("/sync-price", response_model=SyncPriceResponse, response_model_exclude_none=True)
def sync_price(
    payload: SyncPriceRequest,
    service: PriceSyncService = Depends(get_price_sync),
) -> SyncPriceResponse | JSONResponse:
    """Create a fresh Stripe price for one base plan or variant."""

    try:
        return service.sync_price(payload)
    except PriceSyncError as exc:
        body = SyncPriceResponse(success=False, message=exc.message, error=exc.error)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(by_alias=True, exclude_none=True),
        )


@router.post("/sync-prices", response_model=BulkSyncResponse, response_model_exclude_none=True)
def sync_all_prices(service: PriceSyncService = Depends(get_price_sync)) -> BulkSyncResponse:
    """Sync every row that needs action, one after another."""

    return service.sync_all()
