"""
Xendit invoice service for website order payments
Creates a hosted invoice and returns the URL the customer is redirected to
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

import database
from financial_precision import round_whole
from services.integration_secrets import get_ready_secret
from utils.environment import get_public_url

logger = logging.getLogger(__name__)


class InvoiceCreationError(Exception):
    """Invoice could not be created; message is safe to show to the customer"""
    pass


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get('message') or payload.get('error') or payload.get('error_code')
        if message:
            return str(message)
    return f"Xendit request failed ({response.status_code})"


class XenditService:
    """Xendit hosted invoice client"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        from config import get_config
        settings = get_config().payment
        self.base_url = (base_url or settings.xendit_api_url).rstrip('/')
        self.timeout = timeout if timeout is not None else settings.timeout_seconds
        self.currency = settings.invoice_currency
        self._transport = transport

    def build_invoice_payload(self, order_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
        years = order.get('subscription_years') or 0
        domain = order.get('domain') or ""
        template_name = order.get('selected_template_name') or ""
        description = f"Website {domain} - {years} tahun"
        if template_name:
            description += f" ({template_name})"

        payload: Dict[str, Any] = {
            "external_id": order_id,
            "amount": int(round_whole(order['amount_idr'], "amount_idr")),
            "currency": self.currency,
            "description": description,
            "success_redirect_url": get_public_url(f"/order/success?order_id={order_id}"),
            "failure_redirect_url": get_public_url("/order/payment"),
            "metadata": {
                "order_id": order_id,
                "domain": domain,
                "template_id": order.get('selected_template_id') or "",
                "subscription_years": years,
                "promo_code": order.get('promo_code') or "",
            },
        }
        email = (order.get('customer_email') or "").strip()
        if email:
            payload["payer_email"] = email
            payload["customer"] = {
                "given_names": (order.get('customer_name') or "").strip() or email,
                "email": email,
            }
        return payload

    async def create_invoice(self, order: Dict[str, Any]) -> Dict[str, str]:
        """
        Create a website order row and a Xendit invoice for it

        Args:
            order: amount_idr, subscription_years, promo_code, domain,
                selected_template_id, selected_template_name, customer_name, customer_email

        Returns:
            {'orderDbId': ..., 'invoiceUrl': ...}

        Raises:
            InvoiceCreationError: With a human-readable message
        """
        operation_start = time.time()

        api_key = await get_ready_secret("xendit", "api_key")
        if not api_key:
            logger.warning("⚠️ Xendit create_invoice called but API key is not configured")
            raise InvoiceCreationError("Xendit payment gateway is not configured")

        order_id = await database.create_website_order({**order, 'provider': 'xendit'})
        payload = self.build_invoice_payload(order_id, order)
        logger.info(f"💰 Xendit: Creating invoice for order {order_id}: Rp {payload['amount']}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/v2/invoices",
                    json=payload,
                    auth=(api_key, ""),
                    headers={"accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Xendit request failed for order {order_id}: {e}")
            await self._mark_failed(order_id)
            raise InvoiceCreationError(f"Unable to reach Xendit: {e}") from e

        duration_ms = (time.time() - operation_start) * 1000

        if response.status_code not in (200, 201):
            message = _error_message(response)
            logger.error(f"❌ Xendit invoice failed for order {order_id} ({response.status_code}, {duration_ms:.0f}ms): {message}")
            await self._mark_failed(order_id)
            raise InvoiceCreationError(message)

        result = response.json()
        invoice_url = result.get('invoice_url')
        if not invoice_url:
            logger.error(f"❌ Xendit response for order {order_id} has no invoice_url")
            await self._mark_failed(order_id)
            raise InvoiceCreationError("Xendit did not return an invoice URL")

        await database.update_website_order_invoice(order_id, result.get('id'), invoice_url, 'invoice_created')
        logger.info(f"✅ Xendit invoice {result.get('id')} created for order {order_id} in {duration_ms:.0f}ms")
        return {'orderDbId': order_id, 'invoiceUrl': invoice_url}

    async def _mark_failed(self, order_id: str) -> None:
        try:
            await database.update_website_order_invoice(order_id, None, None, 'invoice_failed')
        except database.DatabaseError as e:
            logger.error(f"❌ Could not mark order {order_id} as invoice_failed: {e}")
