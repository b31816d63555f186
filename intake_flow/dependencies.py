"""FastAPI dependency providers reading collaborators from ``app.state``."""

from __future__ import annotations

from fastapi import HTTPException, Request

from .cms import SanityClient
from .price_sync import PriceSyncService
from .storage import StateStorage
from .submission import SubmissionHandler


def get_storage(request: Request) -> StateStorage:
    return request.app.state.storage


def get_submission_handler(request: Request) -> SubmissionHandler:
    return request.app.state.submission_handler


def get_cms(request: Request) -> SanityClient | None:
    return request.app.state.cms


def get_price_sync(request: Request) -> PriceSyncService:
    """Return the sync service, or answer 503 when an integration is missing."""

    service = request.app.state.price_sync
    if service is None:
        raise HTTPException(status_code=503, detail="Price sync requires Stripe and CMS credentials.")
    return service
