"""Pytest configuration and shared fixtures."""

from decimal import Decimal

import pytest

from config import reset_config
from monitoring.production_logging import get_production_logger
from order_state import CustomerDetails, OrderSelection
from pricing_utils import DurationRow, PricingSnapshot, SubscriptionPlan


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Each test reads configuration from its own environment."""
    for name in ("DATABASE_URL", "PUBLIC_BASE_URL", "ENVIRONMENT", "WHOAPI_SECRET_PROVIDER", "WHOAPI_SECRET_NAME"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def log_entries():
    """Structured log entries emitted during the test."""
    entries = []
    production_logger = get_production_logger()
    production_logger.add_log_handler(entries.append)
    yield entries
    production_logger.remove_log_handler(entries.append)


@pytest.fixture
def secrets(monkeypatch):
    """In-memory integration_secrets table keyed by (provider, name)."""
    table = {}

    async def fake_get_integration_secret(provider, name):
        return table.get((provider, name))

    monkeypatch.setattr("services.integration_secrets.get_integration_secret", fake_get_integration_secret)
    return table


@pytest.fixture
def flat_snapshot() -> PricingSnapshot:
    return PricingSnapshot(
        package_price_usd=Decimal("50"),
        default_package_id="pkg-default",
        subscription_plans=[
            SubscriptionPlan(years=1, price_usd=Decimal("50")),
            SubscriptionPlan(years=2, price_usd=Decimal("90")),
        ],
        add_on_prices={"extra_page": Decimal("10")},
        subscription_add_on_prices={"seo": Decimal("5")},
    )


@pytest.fixture
def monthly_snapshot() -> PricingSnapshot:
    return PricingSnapshot(
        package_price_usd=Decimal("100000"),
        default_package_id="pkg-monthly",
        duration_rows=[
            DurationRow(duration_months=12, discount_percent=Decimal("10")),
            DurationRow(duration_months=24, discount_percent=Decimal("20"), is_active=False),
        ],
        add_on_prices={"extra_page": Decimal("1000")},
    )


@pytest.fixture
def complete_selection() -> OrderSelection:
    return OrderSelection(
        domain="acme.com",
        selected_template_id="tpl-1",
        selected_template_name="Landing",
        selected_package_id="pkg-1",
        selected_package_name="Starter",
        subscription_years=1,
        details=CustomerDetails(
            name="Budi Santoso Putra",
            email="budi@example.com",
            phone="08123456789",
            province_code="31",
            province_name="DKI Jakarta",
            city="Jakarta Selatan",
            accepted_terms=True,
        ),
    )
