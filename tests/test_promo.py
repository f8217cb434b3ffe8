"""Tests for promo code validation and re-validation."""

import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest

from order_state import OrderController
from services import promo as promo_module
from services.promo import (
    PromoEvaluator, PromoOutcomeStatus, applied_promo_from_result,
    compute_promo_discount, validate_promo_code
)


def _validator(discounts, calls=None):
    """Validator granting discounts[code] (a fraction of the base total) for known codes."""
    async def validate(code, base_total):
        if calls is not None:
            calls.append((code, base_total))
        if code not in discounts:
            return {'ok': False}
        return {
            'ok': True,
            'promo': {'id': f"id-{code}", 'code': code, 'promo_name': code.title()},
            'discountUsd': float(base_total * discounts[code]),
        }
    return validate


class TestComputePromoDiscount:

    def test_percent_with_cap(self):
        promo = {'code': "BIG", 'discount_type': "percent", 'discount_value': 50, 'max_discount_usd': 20}
        assert compute_promo_discount(promo, Decimal("100")) == Decimal("20.00")

    def test_percent_without_cap(self):
        promo = {'code': "TEN", 'discount_type': "percent", 'discount_value': 10}
        assert compute_promo_discount(promo, Decimal("55")) == Decimal("5.50")

    def test_fixed_never_exceeds_total(self):
        promo = {'code': "FLAT", 'discount_type': "fixed", 'discount_value': 80}
        assert compute_promo_discount(promo, Decimal("50")) == Decimal("50.00")

    def test_minimum_order(self):
        promo = {'code': "MIN", 'discount_type': "fixed", 'discount_value': 5, 'min_order_usd': 100}
        assert compute_promo_discount(promo, Decimal("99")) is None

    def test_unknown_type(self):
        promo = {'code': "ODD", 'discount_type': "bogo", 'discount_value': 5}
        assert compute_promo_discount(promo, Decimal("99")) is None

    def test_default_validator_reads_promo_table(self, monkeypatch):
        async def fake_get_active_promo_code(code):
            assert code == "HEMAT"
            return {'id': 7, 'code': "HEMAT", 'promo_name': None, 'discount_type': "percent", 'discount_value': 10}

        monkeypatch.setattr(promo_module.database, "get_active_promo_code", fake_get_active_promo_code)
        result = asyncio.run(validate_promo_code("HEMAT", Decimal("200")))
        assert result == {
            'ok': True,
            'promo': {'id': "7", 'code': "HEMAT", 'promo_name': "HEMAT"},
            'discountUsd': Decimal("20.00"),
        }

    def test_default_validator_unknown_code(self, monkeypatch):
        async def fake_get_active_promo_code(code):
            return None

        monkeypatch.setattr(promo_module.database, "get_active_promo_code", fake_get_active_promo_code)
        assert asyncio.run(validate_promo_code("NOPE", Decimal("200"))) == {'ok': False}

    def test_result_without_promo_id_is_rejected(self):
        assert applied_promo_from_result({'ok': True, 'promo': {}, 'discountUsd': 5}) is None


class TestPromoEvaluator:

    def test_outcomes(self):
        evaluator = PromoEvaluator(validator=_validator({"HEMAT": Decimal("0.1")}), debounce_ms=0)

        applied = asyncio.run(evaluator.evaluate(" HEMAT ", Decimal("50")))
        invalid = asyncio.run(evaluator.evaluate("NOPE", Decimal("50")))
        cleared = asyncio.run(evaluator.evaluate("", Decimal("50")))
        skipped = asyncio.run(evaluator.evaluate("HEMAT", None))

        assert applied.status is PromoOutcomeStatus.APPLIED
        assert applied.applied_promo.discount_usd == Decimal("5")
        assert invalid.status is PromoOutcomeStatus.INVALID
        assert invalid.message_key == "order.promoNotFound"
        assert not invalid.validation_failed
        assert cleared.status is PromoOutcomeStatus.CLEARED
        assert skipped.status is PromoOutcomeStatus.SKIPPED

    def test_validator_exception_is_an_invalid_outcome(self, log_entries):
        async def broken(code, base_total):
            raise ConnectionError("db down")

        outcome = asyncio.run(PromoEvaluator(validator=broken, debounce_ms=0).evaluate("HEMAT", Decimal("50")))

        assert outcome.status is PromoOutcomeStatus.INVALID
        assert outcome.message_key == "order.promoCheckFailed"
        assert log_entries[-1].component == "promo"
        assert log_entries[-1].context['error_type'] == "ConnectionError"

    def test_apply_now_sets_and_clears(self, complete_selection, flat_snapshot):
        evaluator = PromoEvaluator(validator=_validator({"HEMAT": Decimal("0.1")}), debounce_ms=0)
        controller = OrderController(complete_selection, flat_snapshot)

        outcome = asyncio.run(evaluator.apply_now(controller, "HEMAT"))
        assert outcome.ok
        assert controller.totals().final_total == Decimal("45")

        outcome = asyncio.run(evaluator.apply_now(controller, "NOPE"))
        assert not outcome.ok
        assert controller.selection.applied_promo is None
        assert controller.totals().final_total == Decimal("50")

    def test_watch_revalidates_after_duration_change(self, complete_selection, flat_snapshot):
        calls = []
        evaluator = PromoEvaluator(validator=_validator({"HEMAT": Decimal("0.1")}, calls), debounce_ms=0)
        controller = OrderController(replace(complete_selection, promo_code="HEMAT"), flat_snapshot)

        async def scenario():
            evaluator.watch(controller)
            await evaluator.apply_now(controller)
            assert controller.totals().final_total == Decimal("45")

            controller.set_subscription_years(2)
            # cleared until revalidated
            assert controller.selection.applied_promo is None
            await evaluator.wait_idle()

        asyncio.run(scenario())
        assert calls[-1] == ("HEMAT", Decimal("90"))
        assert controller.selection.applied_promo.discount_usd == Decimal("9")
        assert controller.totals().final_total == Decimal("81")

    def test_stale_revalidation_is_discarded(self, complete_selection, flat_snapshot):
        release = {}

        async def validator(code, base_total):
            if base_total == Decimal("50"):
                await release["slow"].wait()
            return {
                'ok': True,
                'promo': {'id': "p", 'code': code, 'promo_name': code},
                'discountUsd': 1,
            }

        evaluator = PromoEvaluator(validator=validator, debounce_ms=0)
        controller = OrderController(replace(complete_selection, promo_code="HEMAT"), flat_snapshot)

        async def scenario():
            release["slow"] = asyncio.Event()
            evaluator.schedule(controller)           # validates against 50
            await asyncio.sleep(0.01)
            controller.set_subscription_years(2)     # base total now 90
            evaluator.schedule(controller)
            await asyncio.sleep(0.01)
            release["slow"].set()
            await evaluator.wait_idle()

        asyncio.run(scenario())
        assert controller.selection.applied_promo is not None
        assert controller.base_total() == Decimal("90")
        assert controller.totals().final_total == Decimal("89")

    def test_schedule_clears_when_total_unresolved(self, complete_selection, flat_snapshot):
        evaluator = PromoEvaluator(validator=_validator({"HEMAT": Decimal("0.1")}), debounce_ms=0)
        controller = OrderController(replace(complete_selection, promo_code="HEMAT"), flat_snapshot)

        async def scenario():
            await evaluator.apply_now(controller)
            controller.set_subscription_years(3)     # no 3-year plan
            return evaluator.schedule(controller)

        assert asyncio.run(scenario()) is None
        assert controller.selection.applied_promo is None

    def test_close_stops_revalidation(self, complete_selection, flat_snapshot):
        evaluator = PromoEvaluator(validator=_validator({"HEMAT": Decimal("0.1")}), debounce_ms=0)
        controller = OrderController(replace(complete_selection, promo_code="HEMAT"), flat_snapshot)
        evaluator.close()

        async def scenario():
            with pytest.raises(RuntimeError):
                evaluator.schedule(controller)

        asyncio.run(scenario())
