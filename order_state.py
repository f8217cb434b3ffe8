"""
Order session state for the website checkout flow

OrderController owns one checkout session. Every transition produces a new
immutable OrderState with a bumped version; async work (promo validation,
catalog refreshes) compares versions or inputs before writing results back.
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional

from pricing_utils import (
    CheckoutTotals, PricingSnapshot, calculate_checkout_totals,
    can_complete_checkout, resolve_effective_package_id
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerDetails:
    name: str = ""
    email: str = ""
    phone: str = ""
    business_name: str = ""
    province_code: Optional[str] = None
    province_name: Optional[str] = None
    city: Optional[str] = None
    accepted_terms: bool = False

    @property
    def first_name(self) -> str:
        parts = self.name.strip().split()
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        return " ".join(self.name.strip().split()[1:])


@dataclass(frozen=True)
class AppliedPromo:
    """A promo discount, valid only against the base total it was computed for"""
    id: str
    code: str
    promo_name: str
    discount_usd: Decimal


@dataclass(frozen=True)
class OrderSelection:
    domain: Optional[str] = None
    selected_template_id: Optional[str] = None
    selected_template_name: Optional[str] = None
    selected_package_id: Optional[str] = None
    selected_package_name: Optional[str] = None
    subscription_years: Optional[int] = None
    add_ons: Mapping[str, int] = field(default_factory=dict)
    subscription_add_ons: Mapping[str, bool] = field(default_factory=dict)
    promo_code: str = ""
    applied_promo: Optional[AppliedPromo] = None
    details: CustomerDetails = field(default_factory=CustomerDetails)


@dataclass(frozen=True)
class OrderState:
    selection: OrderSelection
    version: int = 0


StateListener = Callable[[OrderState, OrderState], None]


def _validate_years(years: Any) -> Optional[int]:
    if years is None:
        return None
    if isinstance(years, bool) or not isinstance(years, int) or years <= 0:
        raise ValueError(f"subscription_years must be a positive integer, got {years!r}")
    return years


def _validate_quantity(key: str, quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValueError(f"add-on '{key}' quantity must be a non-negative integer, got {quantity!r}")
    return quantity


class OrderController:
    """Single owner of a checkout session's OrderState"""

    def __init__(self, selection: Optional[OrderSelection] = None, snapshot: Optional[PricingSnapshot] = None):
        self._state = OrderState(selection=selection or OrderSelection(), version=0)
        self._snapshot = snapshot or PricingSnapshot()
        self._listeners: List[StateListener] = []

    # ----------------------------------------------------------------
    # Reads
    # ----------------------------------------------------------------

    @property
    def state(self) -> OrderState:
        return self._state

    @property
    def selection(self) -> OrderSelection:
        return self._state.selection

    @property
    def version(self) -> int:
        return self._state.version

    @property
    def snapshot(self) -> PricingSnapshot:
        return self._snapshot

    def totals(self) -> CheckoutTotals:
        return calculate_checkout_totals(self.selection, self._snapshot)

    def base_total(self) -> Optional[Decimal]:
        return self.totals().base_total

    def effective_package_id(self) -> Optional[str]:
        return resolve_effective_package_id(self.selection, self._snapshot)

    def can_complete(self) -> bool:
        return can_complete_checkout(self.selection, self.effective_package_id())

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with (old_state, new_state); returns an unsubscribe function"""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ----------------------------------------------------------------
    # Transitions
    # ----------------------------------------------------------------

    def set_domain(self, domain: Optional[str]) -> OrderState:
        value = (domain or "").strip() or None
        return self._transition(domain=value)

    def select_template(self, template_id: Optional[str], template_name: Optional[str] = None) -> OrderState:
        return self._transition(selected_template_id=template_id, selected_template_name=template_name)

    def select_package(self, package_id: Optional[str], package_name: Optional[str] = None) -> OrderState:
        return self._transition(selected_package_id=package_id, selected_package_name=package_name)

    def set_subscription_years(self, years: Optional[int]) -> OrderState:
        return self._transition(subscription_years=_validate_years(years))

    def set_add_on_quantity(self, key: str, quantity: int) -> OrderState:
        add_ons: Dict[str, int] = dict(self.selection.add_ons)
        if _validate_quantity(key, quantity) == 0:
            add_ons.pop(key, None)
        else:
            add_ons[key] = quantity
        return self._transition(add_ons=add_ons)

    def set_subscription_add_on(self, key: str, selected: bool) -> OrderState:
        subscription_add_ons = dict(self.selection.subscription_add_ons)
        subscription_add_ons[key] = bool(selected)
        return self._transition(subscription_add_ons=subscription_add_ons)

    def update_details(self, **changes: Any) -> OrderState:
        details = replace(self.selection.details, **changes)
        return self._transition(details=details)

    def set_promo_code(self, code: Optional[str]) -> OrderState:
        return self._transition(promo_code=(code or "").strip())

    def set_applied_promo(self, promo: Optional[AppliedPromo], expected_version: Optional[int] = None) -> bool:
        """
        Store (or clear) the applied promo

        Args:
            promo: Promo to apply, or None to clear
            expected_version: When given, the write is discarded unless the
                state is still at this version

        Returns:
            True if the state was updated
        """
        if expected_version is not None and expected_version != self.version:
            logger.debug(f"Discarding promo write for stale version {expected_version} (current {self.version})")
            return False
        if promo is None and self.selection.applied_promo is None:
            return True
        self._transition(applied_promo=promo)
        return True

    def apply_promo_if_current(self, promo: Optional[AppliedPromo], code: str, base_total: Optional[Decimal]) -> bool:
        """Apply a promo result only if the code and base total it was computed for are still current"""
        if code != self.selection.promo_code or base_total != self.base_total():
            logger.debug(f"Discarding promo result for '{code}' computed against stale inputs")
            return False
        return self.set_applied_promo(promo)

    def update_snapshot(self, snapshot: PricingSnapshot) -> OrderState:
        """Swap catalog prices; an applied promo is dropped if the base total moves"""
        old_state = self._state
        old_base_total = self.base_total()
        self._snapshot = snapshot
        selection = self.selection
        if self.base_total() != old_base_total and selection.applied_promo is not None:
            selection = replace(selection, applied_promo=None)
        return self._commit(old_state, selection)

    def reset(self) -> OrderState:
        return self._commit(self._state, OrderSelection())

    def _transition(self, **changes: Any) -> OrderState:
        old_state = self._state
        old_base_total = self.base_total()
        selection = replace(old_state.selection, **changes)

        if 'applied_promo' not in changes and selection.applied_promo is not None:
            code_changed = selection.promo_code != old_state.selection.promo_code
            new_base_total = calculate_checkout_totals(selection, self._snapshot).base_total
            if code_changed or new_base_total != old_base_total:
                selection = replace(selection, applied_promo=None)
                logger.info(f"🏷️ Applied promo cleared (code_changed={code_changed}, base_total {old_base_total} -> {new_base_total})")

        return self._commit(old_state, selection)

    def _commit(self, old_state: OrderState, selection: OrderSelection) -> OrderState:
        new_state = OrderState(selection=selection, version=old_state.version + 1)
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"❌ Order state listener failed: {e}")
        return new_state
