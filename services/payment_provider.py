"""
Payment provider readiness for the order flow
Reports which hosted-payment provider (currently only Xendit) can take payments
"""

import logging
from typing import Any, Dict, Optional

from services.integration_secrets import has_plain_secret

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("xendit",)


class PaymentProviderFactory:
    """Resolves provider readiness and hands out provider service instances"""

    _xendit_instance = None

    @classmethod
    def get_provider_name(cls) -> str:
        """Get the configured provider preference"""
        from config import get_config
        return get_config().payment.primary_provider

    @classmethod
    def get_xendit_service(cls):
        """Get Xendit service instance (singleton)"""
        if cls._xendit_instance is None:
            from services.xendit import XenditService
            cls._xendit_instance = XenditService()
        return cls._xendit_instance

    @classmethod
    async def get_provider_readiness(cls) -> Dict[str, bool]:
        """Map provider name -> whether its API key is stored and usable"""
        return {'xendit': await has_plain_secret("xendit", "api_key")}

    @classmethod
    async def resolve_provider(cls) -> Dict[str, Any]:
        """
        Build the order-payment-provider response body

        Returns:
            {'ok': True, 'provider': 'xendit' | None, 'providers': {'xendit': bool}}
        """
        providers = await cls.get_provider_readiness()
        preferred = cls.get_provider_name()

        provider: Optional[str] = None
        if providers.get(preferred):
            provider = preferred
        else:
            provider = next((name for name in SUPPORTED_PROVIDERS if providers.get(name)), None)

        if provider:
            logger.info(f"✅ Using {provider} as order payment provider")
        else:
            logger.warning("⚠️ No order payment provider is ready")
        return {'ok': True, 'provider': provider, 'providers': providers}
