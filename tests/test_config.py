from decimal import Decimal

from backend.config import Settings


def test_defaults_cover_fees_and_payments(monkeypatch):
    for name in ("ANNUAL_FEE_AMOUNT", "FINE_DUE_DAYS", "STRIPE_API_KEY", "PAYMENT_CURRENCY"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.annual_fee_amount == Decimal("300.00")
    assert settings.fine_due_days == 30
    assert settings.stripe_api_key is None
    assert settings.payment_currency == "usd"
    assert settings.log_format == "plain"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ANNUAL_FEE_AMOUNT", "325.50")
    monkeypatch.setenv("FINE_DUE_DAYS", "14")
    monkeypatch.setenv("CORS_ORIGINS", '["https://portal.example.com"]')
    monkeypatch.setenv("LOG_FORMAT", "json")

    settings = Settings(_env_file=None)

    assert settings.annual_fee_amount == Decimal("325.50")
    assert settings.fine_due_days == 14
    assert settings.cors_origins == ["https://portal.example.com"]
    assert settings.log_format == "json"
