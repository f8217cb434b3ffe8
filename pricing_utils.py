"""
Pricing utility functions for the website order checkout
Handles billing-mode classification, duration discounts, add-on totals,
promo discount application and the final payable amount
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, TYPE_CHECKING

from financial_precision import (
    to_decimal, safe_decimal, is_positive_finite, round_whole, ZERO, ONE, HUNDRED
)

if TYPE_CHECKING:
    from order_state import AppliedPromo, OrderSelection

logger = logging.getLogger(__name__)

# Packages whose names contain one of these are billed per month
MONTHLY_PACKAGE_MARKERS = (
    "full digital marketing",
    "blog + social media",
    "blog+social media",
)

MONTHS_PER_YEAR = 12


class BillingMode(Enum):
    FLAT_MULTIYEAR = "flat_multiyear"
    RECURRING_MONTHLY = "recurring_monthly"


def is_monthly_package_name(name: Optional[str]) -> bool:
    """Check whether a package name identifies a recurring-monthly package"""
    normalized = " ".join(str(name or "").lower().split())
    return any(marker in normalized for marker in MONTHLY_PACKAGE_MARKERS)


def classify_billing_mode(package_name: Optional[str]) -> BillingMode:
    if is_monthly_package_name(package_name):
        return BillingMode.RECURRING_MONTHLY
    return BillingMode.FLAT_MULTIYEAR


# ====================================================================
# CATALOG TYPES
# ====================================================================

@dataclass(frozen=True)
class DurationRow:
    duration_months: int
    discount_percent: Decimal
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Optional["DurationRow"]:
        """Build from a database row; returns None for rows with an unusable month count"""
        months = safe_decimal(row.get('duration_months'), "duration_months")
        if months is None or months <= ZERO or months != months.to_integral_value():
            return None
        discount = safe_decimal(row.get('discount_percent'), "discount_percent") or ZERO
        return cls(
            duration_months=int(months),
            discount_percent=discount,
            is_active=row.get('is_active') is not False,
        )


@dataclass(frozen=True)
class SubscriptionPlan:
    years: int
    price_usd: Optional[Decimal]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Optional["SubscriptionPlan"]:
        years = safe_decimal(row.get('years'), "years")
        if years is None or years != years.to_integral_value():
            return None
        return cls(years=int(years), price_usd=safe_decimal(row.get('price_usd'), "price_usd"))


@dataclass(frozen=True)
class PricingSnapshot:
    """Catalog values the checkout needs, read once per package selection"""
    package_name: Optional[str] = None
    package_price_usd: Optional[Decimal] = None
    default_package_id: Optional[str] = None
    subscription_plans: List[SubscriptionPlan] = field(default_factory=list)
    duration_rows: List[DurationRow] = field(default_factory=list)
    add_on_prices: Dict[str, Decimal] = field(default_factory=dict)
    subscription_add_on_prices: Dict[str, Decimal] = field(default_factory=dict)


# ====================================================================
# DURATION PRICING
# ====================================================================

def build_discount_table(rows: Iterable[DurationRow]) -> Dict[int, Decimal]:
    """Map duration months -> discount percent, skipping inactive rows"""
    table: Dict[int, Decimal] = {}
    for row in rows or []:
        if row is None or row.is_active is False:
            continue
        if row.duration_months > 0:
            table[row.duration_months] = row.discount_percent
    return table


def compute_discounted_total(monthly_price: Any, months: int, discount_percent: Any = ZERO) -> Decimal:
    """
    Price a recurring-monthly subscription

    Args:
        monthly_price: Price for one month
        months: Number of months billed
        discount_percent: Percentage discount for that exact month count (0-100)

    Returns:
        Total rounded to whole currency units
    """
    price = to_decimal(monthly_price, "monthly_price")
    percent = to_decimal(discount_percent, "discount_percent")
    total = price * Decimal(months) * (ONE - percent / HUNDRED)
    return round_whole(total, "discounted_total")


def find_plan_price(plans: Iterable[SubscriptionPlan], years: int) -> Optional[Decimal]:
    """Price of the flat plan matching years exactly; None unless positive and finite"""
    plan = next((p for p in plans or [] if p.years == years), None)
    if plan is None:
        logger.debug(f"No subscription plan for {years} year(s)")
        return None
    price = safe_decimal(plan.price_usd, "price_usd")
    if price is None or price <= ZERO:
        logger.warning(f"⚠️ Subscription plan for {years} year(s) has unusable price {plan.price_usd!r}")
        return None
    return price


def resolve_duration_price(
    billing_mode: BillingMode,
    subscription_years: Optional[int],
    package_price_usd: Any = None,
    subscription_plans: Iterable[SubscriptionPlan] = (),
    discount_table: Optional[Mapping[int, Any]] = None,
) -> Optional[Decimal]:
    """
    Resolve the subscription price for the selected duration

    Returns None when the price cannot be resolved; callers must not
    fabricate a total in that case.
    """
    if not subscription_years:
        return None

    if billing_mode is BillingMode.RECURRING_MONTHLY:
        if not is_positive_finite(package_price_usd):
            return None
        months = int(subscription_years) * MONTHS_PER_YEAR
        discount_percent = (discount_table or {}).get(months, ZERO)
        return compute_discounted_total(package_price_usd, months, discount_percent)

    return find_plan_price(subscription_plans, int(subscription_years))


# ====================================================================
# ADD-ONS
# ====================================================================

def compute_add_ons_total(
    quantities: Mapping[str, int],
    unit_prices: Mapping[str, Any],
    selected_subscription_add_ons: Mapping[str, bool],
    subscription_unit_prices: Mapping[str, Any],
) -> Decimal:
    """Sum package add-ons (quantity x unit price) and selected subscription add-ons"""
    total = ZERO
    for key, quantity in (quantities or {}).items():
        if not quantity or quantity <= 0:
            continue
        price = safe_decimal(unit_prices.get(key), f"add_on[{key}]")
        if price is None:
            logger.debug(f"Add-on '{key}' has no price, skipping")
            continue
        total += price * Decimal(int(quantity))

    for key, selected in (selected_subscription_add_ons or {}).items():
        if not selected:
            continue
        price = safe_decimal(subscription_unit_prices.get(key), f"subscription_add_on[{key}]")
        if price is None:
            logger.debug(f"Subscription add-on '{key}' has no price, skipping")
            continue
        total += price
    return total


def add_ons_multiplier(billing_mode: BillingMode, subscription_years: Optional[int]) -> int:
    """Recurring packages bill add-ons every month; flat packages bill them once"""
    if billing_mode is BillingMode.RECURRING_MONTHLY and subscription_years:
        return int(subscription_years) * MONTHS_PER_YEAR
    return 1


# ====================================================================
# TOTALS
# ====================================================================

@dataclass(frozen=True)
class CheckoutTotals:
    billing_mode: BillingMode
    duration_price: Optional[Decimal]
    add_ons_total: Decimal
    add_ons_multiplier: int
    effective_add_ons_total: Decimal
    base_total: Optional[Decimal]
    discount: Decimal
    final_total: Optional[Decimal]
    unresolved_reason: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.final_total is not None

    def to_dict(self) -> Dict[str, Any]:
        def _num(value: Optional[Decimal]) -> Optional[float]:
            return float(value) if value is not None else None

        return {
            'billing_mode': self.billing_mode.value,
            'duration_price': _num(self.duration_price),
            'add_ons_total': float(self.add_ons_total),
            'add_ons_multiplier': self.add_ons_multiplier,
            'effective_add_ons_total': float(self.effective_add_ons_total),
            'base_total': _num(self.base_total),
            'discount': float(self.discount),
            'final_total': _num(self.final_total),
            'unresolved_reason': self.unresolved_reason,
        }


def promo_discount(applied_promo: Optional["AppliedPromo"]) -> Decimal:
    """Discount carried by an applied promo, or 0 when absent / not a positive number"""
    if applied_promo is None:
        return ZERO
    discount = safe_decimal(applied_promo.discount_usd, "discount_usd")
    if discount is None or discount <= ZERO:
        return ZERO
    return discount


def apply_discount(base_total: Optional[Decimal], discount: Any) -> Optional[Decimal]:
    """final = max(0, round(base - discount)); None when base is unresolved"""
    if base_total is None:
        return None
    amount = safe_decimal(discount, "discount")
    if amount is None or amount <= ZERO:
        amount = ZERO
    return max(ZERO, round_whole(base_total - amount, "final_total"))


def resolve_package_name(selection: "OrderSelection", snapshot: PricingSnapshot) -> Optional[str]:
    """Catalog name of the priced package; the selection's name only when the catalog has none"""
    if snapshot.package_name is not None:
        return snapshot.package_name
    return selection.selected_package_name


def resolve_effective_package_id(selection: "OrderSelection", snapshot: PricingSnapshot) -> Optional[str]:
    return selection.selected_package_id or snapshot.default_package_id or None


def calculate_checkout_totals(selection: "OrderSelection", snapshot: PricingSnapshot) -> CheckoutTotals:
    """
    Compose duration price, add-ons and promo discount into the payable amount

    Args:
        selection: Current order selection
        snapshot: Catalog prices for the effective package

    Returns:
        CheckoutTotals; base_total / final_total are None while unresolved
    """
    billing_mode = classify_billing_mode(resolve_package_name(selection, snapshot))
    years = selection.subscription_years

    duration_price = resolve_duration_price(
        billing_mode,
        years,
        package_price_usd=snapshot.package_price_usd,
        subscription_plans=snapshot.subscription_plans,
        discount_table=build_discount_table(snapshot.duration_rows),
    )

    add_ons_total = compute_add_ons_total(
        selection.add_ons,
        snapshot.add_on_prices,
        selection.subscription_add_ons,
        snapshot.subscription_add_on_prices,
    )
    multiplier = add_ons_multiplier(billing_mode, years)
    effective_add_ons_total = add_ons_total * Decimal(multiplier)

    unresolved_reason = None
    if not years:
        unresolved_reason = "duration_not_selected"
        base_total = None
    elif duration_price is None:
        unresolved_reason = "duration_price_unavailable"
        base_total = None
    else:
        base_total = duration_price + effective_add_ons_total

    discount = promo_discount(selection.applied_promo)
    final_total = apply_discount(base_total, discount)

    return CheckoutTotals(
        billing_mode=billing_mode,
        duration_price=duration_price,
        add_ons_total=add_ons_total,
        add_ons_multiplier=multiplier,
        effective_add_ons_total=effective_add_ons_total,
        base_total=base_total,
        discount=discount,
        final_total=final_total,
        unresolved_reason=unresolved_reason,
    )


def can_complete_checkout(selection: "OrderSelection", effective_package_id: Optional[str]) -> bool:
    """All required fields must be present at once; no partial submission"""
    email = str(selection.details.email or "").strip()
    return bool(
        selection.domain
        and selection.selected_template_id
        and effective_package_id
        and selection.subscription_years
        and email
        and selection.details.accepted_terms
    )


def format_idr(value: Any) -> str:
    """Format an amount as Indonesian Rupiah, e.g. 'Rp 1.080.000'"""
    amount = round_whole(value, "amount")
    sign = "-" if amount < ZERO else ""
    return f"Rp {sign}{int(abs(amount)):,}".replace(",", ".")
