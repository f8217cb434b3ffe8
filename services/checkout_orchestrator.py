"""
Website Checkout Orchestrator - payment dispatch for the order flow

Runs the payment steps strictly in order once the order is complete:
audit record (best-effort) -> order lead (required) -> invoice -> redirect.

Failures in the lead/invoice/redirect steps surface as PaymentDispatchError
and may be retried. Nothing is rolled back: a lead saved before a failed
invoice stays as an orphan record for manual reconciliation.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import database
from monitoring.production_logging import log_business_event, log_error_with_context
from order_state import OrderController, OrderSelection
from pricing_utils import CheckoutTotals, can_complete_checkout

logger = logging.getLogger(__name__)

AuditWriter = Callable[[str, Dict[str, Any]], Awaitable[Any]]
LeadSaver = Callable[[OrderSelection, str, int], Awaitable[Any]]
InvoiceCreator = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]
RedirectHandler = Callable[["PaymentRedirect"], Any]

FLOW_TYPE_WEBSITE = "website"
AUDIT_PROVIDER = "order"
AUDIT_ACTION = "order_website_pay"


# ====================================================================
# ERRORS
# ====================================================================

class CheckoutError(Exception):
    """Base class for checkout failures; message_key identifies the user-facing notice"""

    message_key = "order.tryAgain"

    def __init__(self, message: Optional[str] = None, description_key: Optional[str] = None):
        super().__init__(message or self.message_key)
        self.message = message
        self.description_key = description_key


class CheckoutBlockedError(CheckoutError):
    """Required order fields are missing"""
    message_key = "order.completeOrderTitle"


class TotalUnavailableError(CheckoutError):
    """The payable amount could not be resolved"""
    message_key = "order.totalNotAvailableTitle"


class PaymentInProgressError(CheckoutError):
    """A payment dispatch is already running for this session"""
    message_key = "order.paymentInProgress"


class PaymentDispatchError(CheckoutError):
    """Lead, invoice or redirect step failed; safe to retry"""
    message_key = "order.paymentFailedTitle"


@dataclass(frozen=True)
class PaymentRedirect:
    invoice_url: str
    order_id: Optional[str] = None


# ====================================================================
# RECORD BUILDERS
# ====================================================================

def build_audit_metadata(selection: OrderSelection, amount_idr: Optional[int]) -> Dict[str, Any]:
    details = selection.details
    return {
        'first_name': details.first_name,
        'last_name': details.last_name,
        'email': details.email,
        'phone': details.phone,
        'business_name': details.business_name or None,
        'province': details.province_name,
        'city': details.city,
        'domain': selection.domain,
        'template_id': selection.selected_template_id,
        'template_name': selection.selected_template_name,
        'package_id': selection.selected_package_id,
        'package_name': selection.selected_package_name,
        'subscription_years': selection.subscription_years,
        'add_ons': dict(selection.add_ons),
        'subscription_add_ons': dict(selection.subscription_add_ons),
        'promo_code': selection.promo_code,
        'amount_idr': amount_idr,
    }


def build_lead_record(selection: OrderSelection, flow_type: str, amount_idr: int) -> Dict[str, Any]:
    details = selection.details
    return {
        'flow_type': flow_type,
        'domain': selection.domain,
        'template_id': selection.selected_template_id,
        'template_name': selection.selected_template_name,
        'package_id': selection.selected_package_id,
        'package_name': selection.selected_package_name,
        'subscription_years': selection.subscription_years,
        'add_ons': dict(selection.add_ons),
        'subscription_add_ons': dict(selection.subscription_add_ons),
        'first_name': details.first_name or None,
        'last_name': details.last_name or None,
        'email': details.email.strip() or None,
        'phone': details.phone or None,
        'business_name': details.business_name or None,
        'province_code': details.province_code,
        'province_name': details.province_name,
        'city': details.city,
        'amount_idr': amount_idr,
        'promo_code': selection.promo_code or None,
    }


def build_invoice_request(selection: OrderSelection, amount_idr: int) -> Dict[str, Any]:
    return {
        'amount_idr': amount_idr,
        'subscription_years': selection.subscription_years or 0,
        'promo_code': selection.promo_code,
        'domain': selection.domain,
        'selected_template_id': selection.selected_template_id or "",
        'selected_template_name': selection.selected_template_name or "",
        'customer_name': selection.details.name,
        'customer_email': selection.details.email,
    }


# ====================================================================
# DEFAULT COLLABORATORS
# ====================================================================

async def write_audit_log(actor_user_id: str, metadata: Dict[str, Any]) -> None:
    await database.insert_audit_log(actor_user_id, AUDIT_PROVIDER, AUDIT_ACTION, metadata)


async def save_order_lead(selection: OrderSelection, flow_type: str, amount_idr: int) -> str:
    return await database.save_order_lead(build_lead_record(selection, flow_type, amount_idr))


async def create_xendit_invoice(order: Dict[str, Any]) -> Dict[str, Any]:
    from services.payment_provider import PaymentProviderFactory
    return await PaymentProviderFactory.get_xendit_service().create_invoice(order)


# ====================================================================
# ORCHESTRATOR
# ====================================================================

class CheckoutOrchestrator:
    """Sequential payment dispatch with a failure boundary per step"""

    def __init__(
        self,
        audit_writer: Optional[AuditWriter] = None,
        lead_saver: Optional[LeadSaver] = None,
        invoice_creator: Optional[InvoiceCreator] = None,
        redirect: Optional[RedirectHandler] = None,
        session_user_id: Optional[str] = None,
    ):
        self.audit_writer = audit_writer or write_audit_log
        self.lead_saver = lead_saver or save_order_lead
        self.invoice_creator = invoice_creator or create_xendit_invoice
        self.redirect = redirect
        self.session_user_id = session_user_id
        self.last_order_id: Optional[str] = None
        self._paying = False

    @property
    def paying(self) -> bool:
        return self._paying

    async def checkout(self, controller: OrderController) -> PaymentRedirect:
        """Dispatch payment for the controller's current selection"""
        return await self.start_payment(controller.selection, controller.totals(), controller.effective_package_id())

    async def start_payment(
        self,
        selection: OrderSelection,
        totals: CheckoutTotals,
        effective_package_id: Optional[str],
    ) -> PaymentRedirect:
        """
        Run audit -> lead -> invoice -> redirect

        Raises:
            CheckoutBlockedError: Required fields missing (nothing is written)
            TotalUnavailableError: Final total unresolved (nothing is written)
            PaymentInProgressError: Another dispatch is running
            PaymentDispatchError: Lead, invoice or redirect step failed
        """
        if not can_complete_checkout(selection, effective_package_id):
            logger.info("🚫 CHECKOUT: Blocked - order details incomplete")
            raise CheckoutBlockedError(description_key="order.completeOrderBody")

        if totals.final_total is None:
            logger.info(f"🚫 CHECKOUT: Blocked - total unavailable ({totals.unresolved_reason})")
            raise TotalUnavailableError()

        if self._paying:
            raise PaymentInProgressError()

        amount_idr = int(totals.final_total)
        self._paying = True
        try:
            logger.info(f"🎯 CHECKOUT: Starting payment for {selection.domain}, amount Rp {amount_idr}")

            # Step 1: audit (best-effort)
            await self._log_order_audit(selection, amount_idr)

            try:
                # Step 2: lead must exist before an invoice references the order
                await self.lead_saver(selection, FLOW_TYPE_WEBSITE, amount_idr)

                # Step 3: invoice
                result = await self.invoice_creator(build_invoice_request(selection, amount_idr))
                invoice_url = (result or {}).get('invoiceUrl')
                if not invoice_url:
                    raise PaymentDispatchError("Payment gateway did not return an invoice URL")
                order_id = result.get('orderDbId')
                if order_id:
                    self.last_order_id = order_id

                # Step 4: redirect (terminal success)
                payment_redirect = PaymentRedirect(invoice_url=invoice_url, order_id=order_id)
                if self.redirect is not None:
                    outcome = self.redirect(payment_redirect)
                    if inspect.isawaitable(outcome):
                        await outcome
            except PaymentDispatchError as e:
                log_error_with_context("checkout", e, {'domain': selection.domain, 'amount_idr': amount_idr})
                raise
            except Exception as e:
                log_error_with_context("checkout", e, {'domain': selection.domain, 'amount_idr': amount_idr})
                raise PaymentDispatchError(str(e) or None, description_key="order.tryAgain") from e

            log_business_event(
                "checkout",
                "payment_redirect",
                {'domain': selection.domain, 'amount_idr': amount_idr},
                user_id=self.session_user_id,
                order_id=order_id,
            )
            logger.info(f"✅ CHECKOUT: Redirecting to invoice for order {order_id}")
            return payment_redirect
        finally:
            self._paying = False

    async def _log_order_audit(self, selection: OrderSelection, amount_idr: int) -> None:
        """Audit failures are logged and never block payment"""
        actor = self.session_user_id or "anonymous"
        try:
            await self.audit_writer(actor, build_audit_metadata(selection, amount_idr))
        except Exception as e:
            log_error_with_context(
                "checkout.audit",
                e,
                {'action': AUDIT_ACTION, 'domain': selection.domain, 'amount_idr': amount_idr},
                user_id=actor,
            )
            logger.warning(f"⚠️ Audit log failed (continuing with payment): {e}")
