"""Environment detection utilities for production vs development"""

import os
import logging

logger = logging.getLogger(__name__)


def is_production_environment() -> bool:
    """
    Check if we're running in production

    Returns:
        bool: True if in production, False if in development
    """
    # ENVIRONMENT wins over every other signal
    environment = os.getenv('ENVIRONMENT', '').lower()
    if environment == 'development':
        return False
    elif environment == 'production':
        return True

    return bool(os.getenv('PUBLIC_BASE_URL'))


def get_public_base_url() -> str:
    """
    Get the base URL customers are sent back to after paying

    Returns:
        str: Base URL without trailing slash
    """
    from config import get_config

    configured = get_config().server.public_base_url
    if configured:
        return configured.rstrip('/')

    if is_production_environment():
        logger.error("❌ CRITICAL: Production detected but PUBLIC_BASE_URL not set - payment redirects will fail")
    else:
        logger.debug("🔧 Development environment - using localhost public URL")
    return 'http://localhost:5173'


def get_public_url(path: str) -> str:
    """
    Get the complete public URL for an order-flow path

    Args:
        path: The path (e.g., '/order/success')

    Returns:
        str: Complete URL
    """
    return f"{get_public_base_url()}/{path.lstrip('/')}"
