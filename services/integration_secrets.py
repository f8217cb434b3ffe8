"""
Provider secret readiness
A stored secret is usable only when it was saved in plain form and is non-empty
"""

import logging
from typing import Any, Mapping, Optional

from database import get_integration_secret

logger = logging.getLogger(__name__)

PLAIN_MARKER = "plain"


def is_secret_ready(record: Optional[Mapping[str, Any]]) -> bool:
    """Encrypted (non-plain) secrets are treated as not ready"""
    if not record:
        return False
    marker = str(record.get('iv') if record.get('iv') is not None else "")
    value = str(record.get('ciphertext') if record.get('ciphertext') is not None else "").strip()
    return marker == PLAIN_MARKER and bool(value)


async def has_plain_secret(provider: str, name: str) -> bool:
    record = await get_integration_secret(provider, name)
    ready = is_secret_ready(record)
    if record and not ready:
        logger.warning(f"⚠️ Secret {provider}/{name} exists but is not a usable plain secret")
    return ready


async def get_ready_secret(provider: str, name: str) -> Optional[str]:
    """Trimmed secret value, or None when absent or not ready"""
    record = await get_integration_secret(provider, name)
    if not is_secret_ready(record):
        return None
    return str(record['ciphertext']).strip()
