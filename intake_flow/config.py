"""Configuration helpers for the intake-flow backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping, Tuple

from dotenv import load_dotenv

DEFAULT_ALLOWED_ORIGINS: Tuple[str, ...] = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
)

load_dotenv(override=False)


@dataclass(frozen=True)
class SalesforceSettings:
    """Credentials for the CRM that receives intake leads."""

    username: str | None = None
    password: str | None = None
    login_url: str | None = None
    lead_object: str = "Weight_Loss_Lead__c"

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password and self.login_url)


@dataclass(frozen=True)
class SanitySettings:
    """Connection details for the headless CMS holding products and subscriptions."""

    project_id: str | None = None
    dataset: str = "production"
    api_version: str = "2024-01-01"
    token: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.project_id)


@dataclass(frozen=True)
class AppSettings:
    """Top-level settings container.

    Every remote integration is optional; endpoints that need a missing
    integration degrade to a "service unavailable" answer instead of failing
    at import time.
    """

    openai_api_key: str | None = None
    stripe_secret_key: str | None = None
    lead_ingestion_url: str | None = None
    storage_dir: str | None = None
    log_level: str = "INFO"
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    salesforce: SalesforceSettings = field(default_factory=SalesforceSettings)
    sanity: SanitySettings = field(default_factory=SanitySettings)

    @property
    def has_payment_provider(self) -> bool:
        return bool(self.stripe_secret_key)


def _split_origins(raw: str | None) -> Tuple[str, ...]:
    """Parse the comma separated ``INTAKE_ALLOWED_ORIGINS`` override."""

    if not raw:
        return DEFAULT_ALLOWED_ORIGINS
    origins = tuple(origin.strip() for origin in raw.split(",") if origin.strip())
    return origins or DEFAULT_ALLOWED_ORIGINS


def load_settings(environ: Mapping[str, str]) -> AppSettings:
    """Build settings from an arbitrary environment mapping."""

    return AppSettings(
        openai_api_key=environ.get("OPENAI_API_KEY") or None,
        stripe_secret_key=environ.get("STRIPE_SECRET_KEY") or None,
        lead_ingestion_url=environ.get("LEAD_INGESTION_URL") or None,
        storage_dir=environ.get("INTAKE_STORAGE_DIR") or None,
        log_level=(environ.get("INTAKE_LOG_LEVEL") or "INFO").upper(),
        allowed_origins=_split_origins(environ.get("INTAKE_ALLOWED_ORIGINS")),
        salesforce=SalesforceSettings(
            username=environ.get("SALESFORCE_USERNAME") or None,
            password=environ.get("SALESFORCE_PASSWORD") or None,
            login_url=environ.get("SALESFORCE_LOGIN_URL") or None,
            lead_object=environ.get("SALESFORCE_LEAD_OBJECT") or "Weight_Loss_Lead__c",
        ),
        sanity=SanitySettings(
            project_id=environ.get("SANITY_PROJECT_ID") or None,
            dataset=environ.get("SANITY_DATASET") or "production",
            api_version=environ.get("SANITY_API_VERSION") or "2024-01-01",
            token=environ.get("SANITY_API_TOKEN") or None,
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Read environment variables and return cached settings."""

    return load_settings(os.environ)
