import pytest

from intake_flow.config import DEFAULT_ALLOWED_ORIGINS, get_settings, load_settings


def test_settings_read_integrations_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("SANITY_PROJECT_ID", "abc123")
    monkeypatch.setenv("SALESFORCE_USERNAME", "intake@example.com")
    monkeypatch.setenv("SALESFORCE_PASSWORD", "secret")
    monkeypatch.setenv("SALESFORCE_LOGIN_URL", "https://login.salesforce.com")

    settings = get_settings()

    assert settings.has_payment_provider
    assert settings.sanity.is_configured
    assert settings.sanity.dataset == "production"
    assert settings.salesforce.is_configured
    assert settings.salesforce.lead_object == "Weight_Loss_Lead__c"


def test_settings_default_to_unconfigured() -> None:
    settings = load_settings({})

    assert not settings.has_payment_provider
    assert not settings.sanity.is_configured
    assert not settings.salesforce.is_configured
    assert settings.allowed_origins == DEFAULT_ALLOWED_ORIGINS
    assert settings.log_level == "INFO"


def test_allowed_origins_override() -> None:
    settings = load_settings({"INTAKE_ALLOWED_ORIGINS": "https://shop.example.com, ,https://admin.example.com"})

    assert settings.allowed_origins == ("https://shop.example.com", "https://admin.example.com")


def test_settings_are_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INTAKE_LOG_LEVEL", "debug")
    first = get_settings()
    monkeypatch.setenv("INTAKE_LOG_LEVEL", "warning")

    assert get_settings() is first
    assert first.log_level == "DEBUG"
