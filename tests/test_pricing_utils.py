"""Tests for checkout pricing: billing mode, duration price, add-ons and the final total."""

from dataclasses import replace
from decimal import Decimal

import pytest

from financial_precision import round_whole, safe_decimal, to_decimal
from order_state import AppliedPromo
from pricing_utils import (
    BillingMode, DurationRow, PricingSnapshot, SubscriptionPlan, apply_discount,
    build_discount_table, calculate_checkout_totals, can_complete_checkout,
    classify_billing_mode, compute_add_ons_total, compute_discounted_total,
    find_plan_price, format_idr, resolve_duration_price
)


class TestBillingMode:

    @pytest.mark.parametrize("name", [
        "Full Digital Marketing",
        "  full   digital  MARKETING  Pro",
        "Blog + Social Media",
        "blog+social media bundle",
    ])
    def test_monthly_package_names(self, name):
        assert classify_billing_mode(name) is BillingMode.RECURRING_MONTHLY

    @pytest.mark.parametrize("name", [None, "", "Starter", "Business Website"])
    def test_other_packages_are_flat(self, name):
        assert classify_billing_mode(name) is BillingMode.FLAT_MULTIYEAR


class TestDurationPricing:

    def test_recurring_monthly_discount(self):
        """100000 x 12 months at 10% off is 1,080,000."""
        assert compute_discounted_total(100000, 12, 10) == Decimal("1080000")

    def test_recurring_rounds_half_up_to_whole_units(self):
        assert compute_discounted_total(Decimal("10.5"), 1, 0) == Decimal("11")

    def test_recurring_without_table_entry_uses_no_discount(self):
        price = resolve_duration_price(
            BillingMode.RECURRING_MONTHLY, 2, package_price_usd=100000, discount_table={12: Decimal("10")}
        )
        assert price == Decimal("2400000")

    def test_recurring_requires_positive_monthly_price(self):
        assert resolve_duration_price(BillingMode.RECURRING_MONTHLY, 1, package_price_usd=0) is None
        assert resolve_duration_price(BillingMode.RECURRING_MONTHLY, 1, package_price_usd=None) is None

    def test_flat_plan_exact_match(self):
        plans = [SubscriptionPlan(1, Decimal("50")), SubscriptionPlan(2, Decimal("90"))]
        assert resolve_duration_price(BillingMode.FLAT_MULTIYEAR, 2, subscription_plans=plans) == Decimal("90")

    def test_flat_plan_missing_year_is_unresolved(self):
        plans = [SubscriptionPlan(1, Decimal("50")), SubscriptionPlan(2, Decimal("90"))]
        assert resolve_duration_price(BillingMode.FLAT_MULTIYEAR, 3, subscription_plans=plans) is None

    @pytest.mark.parametrize("price", [None, Decimal("0"), Decimal("-5"), Decimal("NaN"), Decimal("Infinity")])
    def test_flat_plan_unusable_price_is_unresolved(self, price):
        assert find_plan_price([SubscriptionPlan(1, price)], 1) is None

    def test_no_duration_selected(self):
        assert resolve_duration_price(BillingMode.FLAT_MULTIYEAR, None, subscription_plans=[]) is None

    def test_discount_table_skips_inactive_rows(self):
        table = build_discount_table([
            DurationRow(12, Decimal("10")),
            DurationRow(24, Decimal("20"), is_active=False),
        ])
        assert table == {12: Decimal("10")}

    def test_duration_row_rejects_fractional_months(self):
        assert DurationRow.from_row({'duration_months': "1.5", 'discount_percent': 5}) is None
        row = DurationRow.from_row({'duration_months': 12, 'discount_percent': None})
        assert row == DurationRow(12, Decimal("0"), True)


class TestAddOns:

    def test_quantities_and_subscription_add_ons(self):
        total = compute_add_ons_total(
            {"extra_page": 3, "logo": 0},
            {"extra_page": Decimal("10"), "logo": Decimal("25")},
            {"seo": True, "ads": False},
            {"seo": Decimal("5"), "ads": Decimal("7")},
        )
        assert total == Decimal("35")

    def test_unpriced_add_ons_are_skipped(self):
        assert compute_add_ons_total({"unknown": 2}, {}, {"mystery": True}, {}) == Decimal("0")


class TestFinalTotal:

    @pytest.mark.parametrize("base,discount,expected", [
        (Decimal("100"), Decimal("30"), Decimal("70")),
        (Decimal("100"), Decimal("150"), Decimal("0")),
        (Decimal("100"), Decimal("0.4"), Decimal("100")),
        (Decimal("100"), Decimal("-10"), Decimal("100")),
        (Decimal("0"), Decimal("0"), Decimal("0")),
    ])
    def test_never_negative(self, base, discount, expected):
        assert apply_discount(base, discount) == expected

    def test_unresolved_base_stays_unresolved(self):
        assert apply_discount(None, Decimal("10")) is None


class TestCheckoutTotals:

    def test_flat_package(self, complete_selection, flat_snapshot):
        selection = replace(
            complete_selection,
            subscription_years=2,
            add_ons={"extra_page": 2},
            subscription_add_ons={"seo": True},
        )
        totals = calculate_checkout_totals(selection, flat_snapshot)

        assert totals.billing_mode is BillingMode.FLAT_MULTIYEAR
        assert totals.duration_price == Decimal("90")
        assert totals.add_ons_multiplier == 1
        assert totals.base_total == Decimal("115")
        assert totals.final_total == Decimal("115")
        assert totals.is_resolved

    def test_monthly_package_multiplies_add_ons(self, complete_selection, monthly_snapshot):
        selection = replace(
            complete_selection,
            selected_package_name="Full Digital Marketing",
            add_ons={"extra_page": 1},
        )
        totals = calculate_checkout_totals(selection, monthly_snapshot)

        assert totals.billing_mode is BillingMode.RECURRING_MONTHLY
        assert totals.duration_price == Decimal("1080000")
        assert totals.add_ons_multiplier == 12
        assert totals.effective_add_ons_total == Decimal("12000")
        assert totals.base_total == Decimal("1092000")

    def test_catalog_name_decides_billing_mode(self, complete_selection, flat_snapshot, monthly_snapshot):
        flat = replace(flat_snapshot, package_name="Starter")
        monthly = replace(monthly_snapshot, package_name="Full Digital Marketing")

        renamed = calculate_checkout_totals(replace(complete_selection, selected_package_name="Full Digital Marketing"), flat)
        unnamed = calculate_checkout_totals(replace(complete_selection, selected_package_name=None), monthly)

        assert renamed.billing_mode is BillingMode.FLAT_MULTIYEAR
        assert renamed.final_total == Decimal("50")
        assert unnamed.billing_mode is BillingMode.RECURRING_MONTHLY
        assert unnamed.final_total == Decimal("1080000")

    def test_missing_plan_leaves_totals_unresolved(self, complete_selection):
        snapshot = PricingSnapshot(subscription_plans=[
            SubscriptionPlan(1, Decimal("50")), SubscriptionPlan(2, Decimal("90")),
        ])
        totals = calculate_checkout_totals(replace(complete_selection, subscription_years=3), snapshot)

        assert totals.duration_price is None
        assert totals.base_total is None
        assert totals.final_total is None
        assert totals.unresolved_reason == "duration_price_unavailable"

    def test_no_duration_reason(self, complete_selection, flat_snapshot):
        totals = calculate_checkout_totals(replace(complete_selection, subscription_years=None), flat_snapshot)
        assert totals.unresolved_reason == "duration_not_selected"

    def test_applied_promo_discount(self, complete_selection, flat_snapshot):
        promo = AppliedPromo(id="p1", code="HEMAT", promo_name="Hemat", discount_usd=Decimal("20"))
        totals = calculate_checkout_totals(replace(complete_selection, applied_promo=promo), flat_snapshot)
        assert totals.discount == Decimal("20")
        assert totals.final_total == Decimal("30")

    def test_to_dict_serializes_unresolved_as_none(self, complete_selection):
        data = calculate_checkout_totals(complete_selection, PricingSnapshot()).to_dict()
        assert data['base_total'] is None
        assert data['final_total'] is None
        assert data['billing_mode'] == "flat_multiyear"


class TestReadinessGate:

    def test_complete_order(self, complete_selection):
        assert can_complete_checkout(complete_selection, "pkg-1")

    @pytest.mark.parametrize("changes", [
        {'domain': None},
        {'selected_template_id': None},
        {'subscription_years': None},
    ])
    def test_missing_selection_field_blocks(self, complete_selection, changes):
        assert not can_complete_checkout(replace(complete_selection, **changes), "pkg-1")

    def test_missing_package_blocks(self, complete_selection):
        assert not can_complete_checkout(complete_selection, None)

    def test_blank_email_blocks(self, complete_selection):
        details = replace(complete_selection.details, email="   ")
        assert not can_complete_checkout(replace(complete_selection, details=details), "pkg-1")

    def test_terms_not_accepted_blocks(self, complete_selection):
        details = replace(complete_selection.details, accepted_terms=False)
        assert not can_complete_checkout(replace(complete_selection, details=details), "pkg-1")


class TestMoneyHelpers:

    def test_format_idr(self):
        assert format_idr(Decimal("1080000")) == "Rp 1.080.000"
        assert format_idr(0) == "Rp 0"

    def test_float_input_does_not_drift(self):
        assert to_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", float("inf")])
    def test_safe_decimal_rejects(self, value):
        assert safe_decimal(value) is None

    def test_round_whole_half_up(self):
        assert round_whole("2.5") == Decimal("3")
