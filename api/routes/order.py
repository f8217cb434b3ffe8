"""
Order Checkout Routes
Backend functions (whoapi-check, order-payment-provider), domain suggestions and the server-side quote/checkout
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

import database
from api.schemas.order import CheckoutRequest, DomainSuggestionsRequest, OrderSelectionRequest
from config import get_config
from monitoring.production_logging import log_error_with_context
from order_state import OrderController
from pricing_utils import format_idr
from services.checkout_orchestrator import (
    CheckoutBlockedError, CheckoutOrchestrator, PaymentDispatchError,
    TotalUnavailableError, create_xendit_invoice
)
from services.domain_suggestions import IDLE_STATE, DomainSuggestionService, build_candidates
from services.integration_secrets import get_ready_secret
from services.order_catalog import load_pricing_snapshot
from services.payment_provider import PaymentProviderFactory
from services.promo import PromoEvaluator, PromoOutcome, validate_promo_code
from services.whoisjson import WhoisJsonError, WhoisJsonService, normalize_domain

logger = logging.getLogger(__name__)

functions_router = APIRouter()
router = APIRouter()

MISSING_DATABASE_URL = "Missing DATABASE_URL"
WHOAPI_KEY_MISSING = "WhoAPI API key not configured"
DOMAIN_REQUIRED = "domain is required"


def _error(status_code: int, message: str, /, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# ====================================================================
# DEPENDENCIES
# ====================================================================

def get_whoisjson_service() -> WhoisJsonService:
    return WhoisJsonService()


def get_promo_validator():
    return validate_promo_code


def get_invoice_creator():
    return create_xendit_invoice


async def get_whoapi_key():
    settings = get_config().domain_check
    return await get_ready_secret(settings.secret_provider, settings.secret_name)


# ====================================================================
# BACKEND FUNCTIONS
# ====================================================================

@functions_router.post("/whoapi-check")
async def whoapi_check(request: Request, whoisjson: WhoisJsonService = Depends(get_whoisjson_service)):
    """Check a single domain's availability through WhoisJSON"""
    try:
        if not database.is_database_configured():
            return _error(500, MISSING_DATABASE_URL)

        api_key = await get_whoapi_key()
        if not api_key:
            logger.warning("⚠️ whoapi-check called but the WhoisJSON key is not configured")
            return _error(412, WHOAPI_KEY_MISSING)

        body = await request.json()
        domain = normalize_domain(body.get('domain') if isinstance(body, dict) else None)
        if not domain or "." not in domain:
            return _error(400, DOMAIN_REQUIRED)

        return await whoisjson.check_availability(domain, api_key)

    except WhoisJsonError as e:
        return _error(e.status_code, e.message, raw=e.raw)
    except Exception as e:
        logger.error(f"❌ whoapi-check failed: {e}")
        return _error(500, str(e) or e.__class__.__name__)


@functions_router.post("/order-payment-provider")
async def order_payment_provider():
    """Report which payment provider can take website order payments"""
    try:
        if not database.is_database_configured():
            return _error(500, MISSING_DATABASE_URL)
        return await PaymentProviderFactory.resolve_provider()
    except Exception as e:
        logger.error(f"❌ order-payment-provider failed: {e}")
        return _error(500, str(e) or e.__class__.__name__)


# ====================================================================
# DOMAIN SUGGESTIONS
# ====================================================================

@router.post("/domain/suggestions")
async def domain_suggestions(
    payload: DomainSuggestionsRequest,
    whoisjson: WhoisJsonService = Depends(get_whoisjson_service),
):
    """Check the suggested domains for a keyword; per-domain failures are reported, not raised"""
    if not build_candidates(payload.query):
        return IDLE_STATE.to_dict()

    try:
        if not database.is_database_configured():
            return _error(500, MISSING_DATABASE_URL)
        api_key = await get_whoapi_key()
    except database.DatabaseError as e:
        log_error_with_context("domain_suggestions", e, {'query': payload.query})
        return _error(500, str(e))

    if not api_key:
        logger.warning("⚠️ Domain suggestions requested but the WhoisJSON key is not configured")
        return _error(412, WHOAPI_KEY_MISSING)

    async def lookup(domain: str) -> Dict[str, Any]:
        return await whoisjson.check_availability(domain, api_key)

    state = await DomainSuggestionService(lookup, debounce_ms=0).suggest(payload.query)
    return state.to_dict()


# ====================================================================
# QUOTE / CHECKOUT
# ====================================================================

async def _prepare_order(payload: OrderSelectionRequest, validator) -> tuple:
    """Load catalog prices and re-validate the promo code against the server-side base total"""
    selection = payload.to_selection()
    snapshot = await load_pricing_snapshot(selection.selected_package_id)
    controller = OrderController(selection, snapshot)

    evaluator = PromoEvaluator(validator=validator, debounce_ms=0)
    try:
        outcome = await evaluator.apply_now(controller)
    finally:
        evaluator.close()
    return controller, outcome


def _quote_body(controller: OrderController, outcome: PromoOutcome) -> Dict[str, Any]:
    totals = controller.totals()
    return {
        "totals": totals.to_dict(),
        "formatted_total": format_idr(totals.final_total) if totals.final_total is not None else None,
        "effective_package_id": controller.effective_package_id(),
        "can_complete": controller.can_complete(),
        "promo": outcome.to_dict(),
    }


@router.post("/order/quote")
async def quote_order(payload: OrderSelectionRequest, validator=Depends(get_promo_validator)):
    """Price an order selection without side effects"""
    try:
        controller, outcome = await _prepare_order(payload, validator)
    except database.DatabaseNotConfiguredError:
        return _error(500, MISSING_DATABASE_URL)
    except database.DatabaseError as e:
        log_error_with_context("order.quote", e, {'domain': payload.domain})
        return _error(500, str(e))
    return _quote_body(controller, outcome)


@router.post("/order/checkout")
async def checkout_order(
    payload: CheckoutRequest,
    validator=Depends(get_promo_validator),
    invoice_creator=Depends(get_invoice_creator),
):
    """Price the order, then run audit -> lead -> invoice and return the payment redirect"""
    try:
        controller, outcome = await _prepare_order(payload, validator)
    except database.DatabaseNotConfiguredError:
        return _error(500, MISSING_DATABASE_URL)
    except database.DatabaseError as e:
        log_error_with_context("order.checkout", e, {'domain': payload.domain})
        return _error(500, str(e))

    orchestrator = CheckoutOrchestrator(invoice_creator=invoice_creator, session_user_id=payload.user_id)
    try:
        redirect = await orchestrator.checkout(controller)
    except (CheckoutBlockedError, TotalUnavailableError) as e:
        return _error(422, e.message_key, description=e.description_key, quote=_quote_body(controller, outcome))
    except PaymentDispatchError as e:
        return _error(502, e.message_key, message=e.message or "order.tryAgain")

    return {"orderId": redirect.order_id, "invoiceUrl": redirect.invoice_url}
