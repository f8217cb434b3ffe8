"""
Centralized configuration for the order checkout backend
All settings come from environment variables (optionally loaded from .env)
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid integer for {name}={raw!r}, using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid number for {name}={raw!r}, using default {default}")
        return default


@dataclass
class DatabaseConfig:
    url: Optional[str] = None
    min_connections: int = 1
    max_connections: int = 10
    connect_timeout: int = 15


@dataclass
class DomainCheckConfig:
    whoisjson_api_url: str = "https://whoisjson.com/api/v1/domain-availability"
    timeout_seconds: float = 15.0
    # integration_secrets row holding the WhoisJSON token
    secret_provider: str = "whoapi"
    secret_name: str = "api_key"


@dataclass
class PaymentConfig:
    primary_provider: str = "xendit"
    xendit_api_url: str = "https://api.xendit.co"
    timeout_seconds: float = 15.0
    invoice_currency: str = "IDR"


@dataclass
class CheckoutConfig:
    domain_suggestion_debounce_ms: int = 450
    promo_debounce_ms: int = 450


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    public_base_url: Optional[str] = None


@dataclass
class AppConfig:
    database: DatabaseConfig
    domain_check: DomainCheckConfig
    payment: PaymentConfig
    checkout: CheckoutConfig
    server: ServerConfig


def load_config() -> AppConfig:
    """Build configuration from the current environment"""
    origins_raw = os.getenv('CORS_ALLOW_ORIGINS', '*')
    origins = [o.strip() for o in origins_raw.split(',') if o.strip()] or ["*"]

    return AppConfig(
        database=DatabaseConfig(
            url=os.getenv('DATABASE_URL') or None,
            min_connections=_env_int('DB_POOL_MIN', 1),
            max_connections=_env_int('DB_POOL_MAX', 10),
            connect_timeout=_env_int('DB_CONNECT_TIMEOUT', 15),
        ),
        domain_check=DomainCheckConfig(
            whoisjson_api_url=os.getenv(
                'WHOISJSON_API_URL', "https://whoisjson.com/api/v1/domain-availability"
            ),
            timeout_seconds=_env_float('DOMAIN_CHECK_TIMEOUT', 15.0),
            secret_provider=os.getenv('WHOAPI_SECRET_PROVIDER', 'whoapi'),
            secret_name=os.getenv('WHOAPI_SECRET_NAME', 'api_key'),
        ),
        payment=PaymentConfig(
            primary_provider=os.getenv('PAYMENT_PROVIDER', 'xendit').lower(),
            xendit_api_url=os.getenv('XENDIT_API_URL', "https://api.xendit.co").rstrip('/'),
            timeout_seconds=_env_float('XENDIT_TIMEOUT', 15.0),
            invoice_currency=os.getenv('INVOICE_CURRENCY', 'IDR'),
        ),
        checkout=CheckoutConfig(
            domain_suggestion_debounce_ms=_env_int('DOMAIN_SUGGESTION_DEBOUNCE_MS', 450),
            promo_debounce_ms=_env_int('PROMO_DEBOUNCE_MS', 450),
        ),
        server=ServerConfig(
            host=os.getenv('HOST', '0.0.0.0'),
            port=_env_int('PORT', 8000),
            cors_allow_origins=origins,
            public_base_url=os.getenv('PUBLIC_BASE_URL') or None,
        ),
    )


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the process-wide configuration (loads .env on first use)"""
    global _config
    if _config is None:
        load_dotenv()
        _config = load_config()
        logger.info(
            f"🔧 Config loaded: provider={_config.payment.primary_provider}, "
            f"database_configured={bool(_config.database.url)}"
        )
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment"""
    global _config
    _config = None
