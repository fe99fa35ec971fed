"""Shared-secret check for node-to-node and admin endpoints."""
from __future__ import annotations
import hmac
import logging
import secrets
import string
from typing import Optional

from fastapi import Depends, Header

from coursesync.config import SyncSettings
from coursesync.errors import AuthenticationError
from coursesync.services.container import get_settings
from coursesync.services.transport import API_KEY_HEADER

logger = logging.getLogger(__name__)

API_KEY_LENGTH = 32
_KEY_ALPHABET = string.ascii_letters + string.digits


def generate_api_key(length: int = API_KEY_LENGTH) -> str:
    """Return a fresh random alphanumeric secret for ``SYNC_API_KEY``."""
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(length))


async def require_api_key(
    api_key: Optional[str] = Header(None, alias=API_KEY_HEADER),
    settings: SyncSettings = Depends(get_settings),
) -> None:
    """401 when the header is absent, 403 when it does not match."""
    if not api_key:
        raise AuthenticationError("API key is required.", status_code=401)
    if not settings.api_key:
        logger.warning("Rejected request: no API key configured on this site")
        raise AuthenticationError("API key is not configured on this site.")
    if not hmac.compare_digest(api_key.encode(), settings.api_key.encode()):
        raise AuthenticationError("Invalid API key.")
