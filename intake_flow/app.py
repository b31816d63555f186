"""Application factory for the intake-flow FastAPI backend."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .cms import SanityClient
from .config import AppSettings, get_settings
from .crm import SalesforceLeadClient
from .payments import StripeGateway
from .price_sync import PriceSyncService
from .routers import admin, funnels, leads
from .storage import build_storage
from .submission import HttpLeadSink, LeadSink, SubmissionHandler

logger = logging.getLogger(__name__)


def _build_lead_sink(settings: AppSettings) -> LeadSink | None:
    """Prefer an explicit ingestion URL, then direct CRM credentials."""

    if settings.lead_ingestion_url:
        return HttpLeadSink(settings.lead_ingestion_url)
    if settings.salesforce.is_configured:
        return SalesforceLeadClient(settings.salesforce)
    logger.warning("No lead sink configured; submissions will answer 503")
    return None


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Intake Flow Backend",
        version="0.1.0",
        description="Multi-step telehealth intake funnels, lead submission and admin price sync.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_origin_regex=r"http://localhost:\d+$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    cms = SanityClient(settings.sanity) if settings.sanity.is_configured else None
    app.state.settings = settings
    app.state.storage = build_storage(settings.storage_dir)
    app.state.submission_handler = SubmissionHandler(_build_lead_sink(settings))
    app.state.cms = cms
    app.state.price_sync = (
        PriceSyncService(cms, StripeGateway(settings.stripe_secret_key))
        if cms is not None and settings.has_payment_provider
        else None
    )

    app.include_router(funnels.router)
    app.include_router(leads.router)
    app.include_router(admin.router)
    return app


app = create_app()
