"""
Catalog reads for the order flow: package price, plans, duration discounts and add-on prices
"""

import asyncio
import logging
from typing import Optional

import database
from financial_precision import safe_decimal
from pricing_utils import DurationRow, PricingSnapshot, SubscriptionPlan

logger = logging.getLogger(__name__)


async def load_pricing_snapshot(package_id: Optional[str]) -> PricingSnapshot:
    """
    Read every price the checkout needs for a package

    Args:
        package_id: Selected package; the configured default package is used when None

    Returns:
        PricingSnapshot (empty price lists when the package is unknown)
    """
    default_package_id = await database.get_default_package_id()
    effective_package_id = package_id or default_package_id
    if not effective_package_id:
        logger.warning("⚠️ No package selected and no default package configured")
        return PricingSnapshot(default_package_id=default_package_id)

    package, plan_rows, duration_rows, add_on_prices, subscription_add_on_prices = await asyncio.gather(
        database.get_package(effective_package_id),
        database.get_subscription_plans(effective_package_id),
        database.get_package_durations(effective_package_id),
        database.get_add_on_prices(effective_package_id),
        database.get_subscription_add_on_prices(effective_package_id),
    )

    if package is None:
        logger.warning(f"⚠️ Package {effective_package_id} not found")

    plans = [p for p in (SubscriptionPlan.from_row(r) for r in plan_rows) if p is not None]
    durations = [d for d in (DurationRow.from_row(r) for r in duration_rows) if d is not None]

    return PricingSnapshot(
        package_name=(package or {}).get('name'),
        package_price_usd=safe_decimal((package or {}).get('price_usd'), "price_usd"),
        default_package_id=default_package_id,
        subscription_plans=plans,
        duration_rows=durations,
        add_on_prices=add_on_prices,
        subscription_add_on_prices=subscription_add_on_prices,
    )
