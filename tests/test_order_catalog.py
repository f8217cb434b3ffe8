"""Tests for composing catalog reads into a pricing snapshot."""

import asyncio
from decimal import Decimal

from services import order_catalog
from pricing_utils import DurationRow, SubscriptionPlan


def _patch_catalog(monkeypatch, default_package_id="pkg-default", package=None):
    requested = []

    async def get_default_package_id():
        return default_package_id

    async def get_package(package_id):
        requested.append(package_id)
        return package

    async def get_subscription_plans(package_id):
        return [{'years': 1, 'price_usd': Decimal("50")}, {'years': "x", 'price_usd': 1}]

    async def get_package_durations(package_id):
        return [{'duration_months': 12, 'discount_percent': Decimal("10"), 'is_active': True}]

    async def get_add_on_prices(package_id):
        return {'extra_page': Decimal("10")}

    async def get_subscription_add_on_prices(package_id):
        return {}

    for fn in (get_default_package_id, get_package, get_subscription_plans, get_package_durations,
               get_add_on_prices, get_subscription_add_on_prices):
        monkeypatch.setattr(order_catalog.database, fn.__name__, fn)
    return requested


class TestLoadPricingSnapshot:

    def test_selected_package(self, monkeypatch):
        requested = _patch_catalog(monkeypatch, package={'id': "pkg-1", 'name': "Starter", 'price_usd': Decimal("75")})
        snapshot = asyncio.run(order_catalog.load_pricing_snapshot("pkg-1"))

        assert requested == ["pkg-1"]
        assert snapshot.package_price_usd == Decimal("75")
        assert snapshot.package_name == "Starter"
        assert snapshot.default_package_id == "pkg-default"
        assert snapshot.subscription_plans == [SubscriptionPlan(1, Decimal("50"))]
        assert snapshot.duration_rows == [DurationRow(12, Decimal("10"), True)]
        assert snapshot.add_on_prices == {'extra_page': Decimal("10")}

    def test_falls_back_to_default_package(self, monkeypatch):
        requested = _patch_catalog(monkeypatch)
        snapshot = asyncio.run(order_catalog.load_pricing_snapshot(None))
        assert requested == ["pkg-default"]
        assert snapshot.package_price_usd is None
        assert snapshot.package_name is None

    def test_no_package_at_all(self, monkeypatch):
        requested = _patch_catalog(monkeypatch, default_package_id=None)
        snapshot = asyncio.run(order_catalog.load_pricing_snapshot(None))
        assert requested == []
        assert snapshot.subscription_plans == []
