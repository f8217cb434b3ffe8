"""
WhoisJSON domain availability provider
Backs the whoapi-check handler: one domain in, one normalized status out
"""

import logging
import re
import time
from typing import Any, Dict, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid WhoisJSON token. Please check token di Integrations lalu simpan ulang."

_PROTOCOL_RE = re.compile(r"^https?://")
_TOKEN_PREFIX_RE = re.compile(r"^token=", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


class WhoisJsonError(Exception):
    """Provider answered with a non-2xx status"""

    def __init__(self, status_code: int, message: str, raw: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.raw = raw


def normalize_domain(raw: Optional[str]) -> str:
    """'https://www.Acme.com/about' -> 'acme.com'"""
    value = str(raw if raw is not None else "").strip().lower()
    value = _PROTOCOL_RE.sub("", value)
    if value.startswith("www."):
        value = value[4:]
    value = value.split("/")[0]
    return _WHITESPACE_RE.sub("", value)


def build_auth_token(api_key: str) -> str:
    """WhoisJSON expects 'TOKEN=<key>'; keys saved with the prefix are sent as-is"""
    return api_key if _TOKEN_PREFIX_RE.match(api_key) else f"TOKEN={api_key}"


def _first_present(*values: Any) -> Any:
    return next((v for v in values if v is not None), None)


def derive_status(payload: Any) -> Tuple[str, Optional[str]]:
    """
    Derive availability from a WhoisJSON payload

    Returns:
        (status, registered) where status is available / unavailable / unknown
        and registered is the lowercased 'registered' field, if it was a string
    """
    data = payload if isinstance(payload, dict) else {}
    nested = data.get('data') if isinstance(data.get('data'), dict) else {}

    available_raw = _first_present(
        data.get('available'), data.get('availability'), data.get('is_available'), nested.get('available')
    )
    registered_raw = _first_present(data.get('registered'), nested.get('registered'))

    available_str = available_raw.lower() if isinstance(available_raw, str) else None
    registered_str = registered_raw.lower() if isinstance(registered_raw, str) else None

    if available_raw is True or available_str in ("true", "available"):
        status = "available"
    elif available_raw is False or available_str in ("false", "unavailable", "taken"):
        status = "unavailable"
    elif registered_str in ("yes", "true"):
        status = "unavailable"
    elif registered_str in ("no", "false"):
        status = "available"
    else:
        status = "unknown"
    return status, registered_str


def error_message_for(status_code: int, payload: Any) -> str:
    """Human-readable error for a failed provider response"""
    if status_code in (401, 403):
        return INVALID_TOKEN_MESSAGE
    data = payload if isinstance(payload, dict) else {}
    message = data.get('error') or data.get('message') or data.get('detail')
    return str(message) if message else f"WhoisJSON request failed ({status_code})"


class WhoisJsonService:
    """WhoisJSON availability client"""

    def __init__(self, api_url: Optional[str] = None, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        from config import get_config
        settings = get_config().domain_check
        self.api_url = api_url or settings.whoisjson_api_url
        self.timeout = timeout if timeout is not None else settings.timeout_seconds
        self._transport = transport

    async def check_availability(self, domain: str, api_key: str) -> Dict[str, Any]:
        """
        Check whether a normalized domain can be registered

        Args:
            domain: Normalized domain (e.g. 'acme.com')
            api_key: WhoisJSON token

        Returns:
            Dict with domain, status, registered and the raw provider payload

        Raises:
            WhoisJsonError: Provider returned a non-2xx status
            httpx.HTTPError: Transport failure
        """
        start_time = time.time()
        headers = {
            "Accept": "application/json",
            "Authorization": build_auth_token(api_key),
        }

        logger.info(f"🔍 USER_DOMAIN_SEARCH: Checking availability for '{domain}'")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(self.api_url, params={"domain": domain}, headers=headers)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        duration_ms = (time.time() - start_time) * 1000

        if not response.is_success:
            message = error_message_for(response.status_code, payload)
            logger.warning(f"⚠️ WhoisJSON returned {response.status_code} for {domain} in {duration_ms:.0f}ms: {message}")
            raise WhoisJsonError(response.status_code, message, raw=payload)

        status, registered = derive_status(payload)
        logger.info(f"✅ WhoisJSON: {domain} is {status} ({duration_ms:.0f}ms)")
        return {
            'domain': domain,
            'status': status,
            'registered': registered,
            'raw': payload,
        }
