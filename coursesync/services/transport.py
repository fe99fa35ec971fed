"""
HTTP client side of the node-to-node contract.

``MasterClient`` is what a client node uses to talk to its master: paginated
listing, single item fetch and the ``/verify`` handshake. ``post_batch`` is
what a master uses to deliver a batch to one client's ``/receive``.

Every failure (connection error, timeout, non-200 answer, unreadable body) is
raised as ``TransportError`` so callers can count it and move on.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import httpx

from coursesync.config import SyncSettings
from coursesync.errors import TransportError
from coursesync.models.content import ContentKind

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
API_KEY_HEADER = "X-Sync-Api-Key"
CLIENT_URL_HEADER = "X-Sync-Client-URL"
CLIENT_NAME_HEADER = "X-Sync-Client-Name"


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise TransportError(
            f"Invalid JSON from {response.request.url}"
        ) from e
    if not isinstance(data, dict):
        raise TransportError(f"Unexpected response from {response.request.url}")
    return data


class MasterClient:
    def __init__(
        self,
        settings: SyncSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings.require_master()
        self._client = httpx.AsyncClient(
            base_url=settings.master_url + API_PREFIX,
            headers={
                API_KEY_HEADER: settings.master_api_key,
                CLIENT_URL_HEADER: settings.site_url,
                CLIENT_NAME_HEADER: settings.site_name,
                "Accept": "application/json",
            },
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "MasterClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get(self, path: str, **params) -> Dict[str, Any]:
        try:
            response = await self._client.get(path, params=params or None)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Master answered %s for %s", e.response.status_code, path
            )
            raise TransportError(
                f"Master returned HTTP {e.response.status_code} for {path}"
            ) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out requesting {path}") from e
        except httpx.HTTPError as e:
            logger.error("Request to master failed: %s", str(e))
            raise TransportError(f"Request to master failed: {e}") from e
        return _json_body(response)

    async def fetch_page(
        self, kind: ContentKind, page: int = 1, per_page: int = 10
    ) -> Dict[str, Any]:
        data = await self._get(
            f"/content/{kind.value}", page=page, per_page=per_page
        )
        if not isinstance(data.get("items"), list):
            raise TransportError(
                f"Listing for {kind.value} page {page} has no items"
            )
        return data

    async def verify(self) -> Dict[str, Any]:
        return await self._get("/verify")


async def post_batch(
    endpoint_url: str,
    secret: str,
    payload: Dict[str, Any],
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Deliver one batch to a client's receive endpoint."""
    url = endpoint_url.rstrip("/") + API_PREFIX + "/receive"
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            response = await client.post(
                url, json=payload, headers={API_KEY_HEADER: secret}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out after {timeout:g}s") from e
        except httpx.HTTPError as e:
            raise TransportError(str(e) or e.__class__.__name__) from e
    return _json_body(response)
