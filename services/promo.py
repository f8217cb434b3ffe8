"""
Promo code evaluation for the order checkout

A promo discount is computed against one specific base total. Whenever the
code or the base total changes the applied promo is cleared and the code is
re-validated (debounced) against the new total.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

import database
from financial_precision import safe_decimal, to_currency_decimal, ZERO, HUNDRED
from monitoring.production_logging import log_error_with_context
from order_state import AppliedPromo, OrderController, OrderState
from utils.debounce import DebouncedTask

logger = logging.getLogger(__name__)

PromoValidator = Callable[[str, Decimal], Awaitable[Dict[str, Any]]]


class PromoOutcomeStatus(Enum):
    APPLIED = "applied"
    INVALID = "invalid"
    CLEARED = "cleared"
    SKIPPED = "skipped"


# Message keys for the caller's user-facing notice
OUTCOME_MESSAGE_KEYS = {
    PromoOutcomeStatus.APPLIED: "order.promoApplied",
    PromoOutcomeStatus.INVALID: "order.promoNotFound",
    PromoOutcomeStatus.CLEARED: "order.promoCleared",
    PromoOutcomeStatus.SKIPPED: "order.totalNotAvailableYet",
}

# Shown instead of promoNotFound when the validator itself failed
VALIDATION_FAILED_MESSAGE_KEY = "order.promoCheckFailed"


@dataclass(frozen=True)
class PromoOutcome:
    status: PromoOutcomeStatus
    code: str
    base_total: Optional[Decimal]
    applied_promo: Optional[AppliedPromo] = None
    validation_failed: bool = False

    @property
    def ok(self) -> bool:
        return self.status is PromoOutcomeStatus.APPLIED

    @property
    def message_key(self) -> str:
        if self.validation_failed:
            return VALIDATION_FAILED_MESSAGE_KEY
        return OUTCOME_MESSAGE_KEYS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        promo = self.applied_promo
        return {
            'status': self.status.value,
            'code': self.code,
            'message_key': self.message_key,
            'applied_promo': {
                'id': promo.id,
                'code': promo.code,
                'promo_name': promo.promo_name,
                'discount_usd': float(promo.discount_usd),
            } if promo else None,
        }


# ====================================================================
# DEFAULT VALIDATOR (order_promo_codes table)
# ====================================================================

def compute_promo_discount(promo: Mapping[str, Any], base_total: Any) -> Optional[Decimal]:
    """
    Discount a promo grants on base_total, or None if it does not apply

    Percent promos may be capped by max_discount_usd; the discount never
    exceeds the base total.
    """
    total = safe_decimal(base_total, "base_total")
    if total is None or total <= ZERO:
        return None

    min_order = safe_decimal(promo.get('min_order_usd'), "min_order_usd")
    if min_order is not None and total < min_order:
        logger.info(f"🏷️ Promo {promo.get('code')} needs a minimum order of {min_order}, got {total}")
        return None

    value = safe_decimal(promo.get('discount_value'), "discount_value")
    if value is None or value <= ZERO:
        return None

    discount_type = str(promo.get('discount_type') or "percent").lower()
    if discount_type == "percent":
        discount = total * value / HUNDRED
        cap = safe_decimal(promo.get('max_discount_usd'), "max_discount_usd")
        if cap is not None and cap > ZERO:
            discount = min(discount, cap)
    elif discount_type in ("fixed", "amount"):
        discount = value
    else:
        logger.warning(f"⚠️ Promo {promo.get('code')} has unknown discount type '{discount_type}'")
        return None

    return to_currency_decimal(min(discount, total), "discount")


async def validate_promo_code(code: str, base_total: Decimal) -> Dict[str, Any]:
    """(code, base_total) -> {'ok': True, 'promo': {...}, 'discountUsd': ...} | {'ok': False}"""
    promo = await database.get_active_promo_code(code)
    if not promo:
        return {'ok': False}

    discount = compute_promo_discount(promo, base_total)
    if discount is None:
        return {'ok': False}

    return {
        'ok': True,
        'promo': {
            'id': str(promo['id']),
            'code': promo['code'],
            'promo_name': promo.get('promo_name') or promo['code'],
        },
        'discountUsd': discount,
    }


def applied_promo_from_result(result: Mapping[str, Any]) -> Optional[AppliedPromo]:
    if not result or not result.get('ok'):
        return None
    promo = result.get('promo') or {}
    discount = safe_decimal(result.get('discountUsd'), "discountUsd")
    if discount is None or not promo.get('id'):
        return None
    return AppliedPromo(
        id=str(promo['id']),
        code=str(promo.get('code') or ""),
        promo_name=str(promo.get('promo_name') or ""),
        discount_usd=discount,
    )


# ====================================================================
# EVALUATOR
# ====================================================================

class PromoEvaluator:
    """Validates promo codes and keeps an OrderController's applied promo in sync"""

    def __init__(self, validator: Optional[PromoValidator] = None, debounce_ms: Optional[int] = None):
        if debounce_ms is None:
            from config import get_config
            debounce_ms = get_config().checkout.promo_debounce_ms
        self.validator = validator or validate_promo_code
        self._debounce = DebouncedTask(debounce_ms / 1000.0, name="promo_revalidation")

    async def evaluate(self, code: Optional[str], base_total: Optional[Decimal]) -> PromoOutcome:
        """
        Resolve a promo code against a base total

        Rejection is an outcome (INVALID), not an exception.
        """
        code = (code or "").strip()
        if not code:
            return PromoOutcome(PromoOutcomeStatus.CLEARED, code, base_total)
        if base_total is None or base_total <= ZERO:
            return PromoOutcome(PromoOutcomeStatus.SKIPPED, code, base_total)

        try:
            result = await self.validator(code, base_total)
        except Exception as e:
            log_error_with_context("promo", e, {'code': code, 'base_total': str(base_total)})
            return PromoOutcome(PromoOutcomeStatus.INVALID, code, base_total, validation_failed=True)

        applied = applied_promo_from_result(result)
        if applied is None:
            logger.info(f"🏷️ Promo '{code}' rejected for base total {base_total}")
            return PromoOutcome(PromoOutcomeStatus.INVALID, code, base_total)

        logger.info(f"🏷️ Promo '{code}' applied: -{applied.discount_usd} on {base_total}")
        return PromoOutcome(PromoOutcomeStatus.APPLIED, code, base_total, applied)

    async def apply_now(self, controller: OrderController, code: Optional[str] = None) -> PromoOutcome:
        """Immediate validation (the 'apply' action); optionally sets a new code first"""
        if code is not None:
            controller.set_promo_code(code)
        self._debounce.supersede()

        current_code = controller.selection.promo_code
        base_total = controller.base_total()
        outcome = await self.evaluate(current_code, base_total)
        if outcome.ok:
            controller.apply_promo_if_current(outcome.applied_promo, current_code, base_total)
        else:
            controller.set_applied_promo(None)
        return outcome

    def schedule(self, controller: OrderController) -> Optional[int]:
        """
        Debounced re-validation against the controller's current code and base total

        Returns:
            The debounce generation, or None when the promo was cleared immediately
        """
        code = controller.selection.promo_code
        base_total = controller.base_total()

        if not code or base_total is None:
            self._debounce.supersede()
            controller.set_applied_promo(None)
            return None

        async def _revalidate(generation: int) -> None:
            outcome = await self.evaluate(code, base_total)
            if not self._debounce.is_current(generation):
                logger.debug(f"Discarding promo outcome from stale generation {generation}")
                return
            controller.apply_promo_if_current(outcome.applied_promo, code, base_total)

        return self._debounce.schedule(_revalidate)

    def watch(self, controller: OrderController) -> Callable[[], None]:
        """
        Re-validate whenever the promo code or base total changes

        Must be called from a running event loop. Returns an unsubscribe function.
        """
        last_inputs: Dict[str, Tuple[str, Optional[Decimal]]] = {}

        def _inputs() -> Tuple[str, Optional[Decimal]]:
            return controller.selection.promo_code, controller.base_total()

        def _on_change(old_state: OrderState, new_state: OrderState) -> None:
            inputs = _inputs()
            if last_inputs.get('value') == inputs:
                return
            last_inputs['value'] = inputs
            self.schedule(controller)

        last_inputs['value'] = _inputs()
        return controller.subscribe(_on_change)

    async def wait_idle(self) -> None:
        await self._debounce.wait_idle()

    def close(self) -> None:
        self._debounce.cancel()
