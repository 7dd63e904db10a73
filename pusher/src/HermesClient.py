"""HermesClient: Async client for the Hermes price service REST API.

Endpoints:
    {endpoint}/v2/updates/price/latest?ids[]=<id>&encoding=hex&parsed=true
    {endpoint}/v2/price_feeds

Response shape (abridged):

.. code-block:: json

    {
        "binary": {"encoding": "hex", "data": ["504e4155..."]},
        "parsed": [
            {
                "id": "e62df6c8...",
                "price": {"price": "6140993501000", "conf": "2501000000",
                          "expo": -8, "publish_time": 1713280245}
            }
        ]
    }

Transport errors and 429/5xx responses are retried with capped exponential
backoff; other HTTP errors fail immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .PriceConfig import PriceInfo

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://hermes.pyth.network"

# Retry configuration for Hermes requests
MAX_RETRIES = 3
BACKOFF_BASE = 0.5
BACKOFF_MAX = 5.0

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class HermesError(Exception):
    """Base exception for Hermes request errors."""

    pass


class HermesHTTPError(HermesError):
    """Raised when Hermes answers with a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class HermesClient:
    """Client for the Hermes latest price update endpoint.

    :ivar endpoint: Base URL of the Hermes service.
    :ivar timeout: Request timeout in seconds.
    :ivar max_retries: Attempts per request before giving up.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 10.0,
        max_retries: int = MAX_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        :param endpoint: Base URL of the Hermes service.
        :param timeout: Request timeout in seconds (default: 10).
        :param max_retries: Attempts per request (default: 3).
        :param transport: Optional httpx transport, mainly for tests.
        """
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _get(self, path: str, params: list[tuple[str, str]]) -> httpx.Response:
        """Make a GET request with retry and backoff.

        :param path: API endpoint path.
        :param params: Query parameters.
        :returns: Successful HTTP response.
        :raises HermesHTTPError: On a non-retryable or final non-2xx response.
        :raises HermesError: On a final network/timeout error.
        """
        client = self._get_client()
        url = self.endpoint + path
        last_error: HermesError | None = None

        for attempt in range(self.max_retries):
            try:
                response = await client.get(url, params=params)
                if response.is_success:
                    return response
                last_error = HermesHTTPError(response.status_code, response.text[:200])
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    raise last_error
            except httpx.TimeoutException as e:
                last_error = HermesError(f"Request timeout: {e}")
            except httpx.RequestError as e:
                last_error = HermesError(f"Request failed: {e}")

            logger.warning(
                "Hermes GET %s failed: %s (attempt %d/%d)",
                path,
                last_error,
                attempt + 1,
                self.max_retries,
            )
            if attempt + 1 < self.max_retries:
                await asyncio.sleep(min(BACKOFF_BASE * (2 ** attempt), BACKOFF_MAX))

        assert last_error is not None
        raise last_error

    async def get_price_feed_ids(self) -> set[str]:
        """List the ids of every feed Hermes serves.

        :returns: Set of feed ids (no 0x, lowercase).
        :raises HermesError: If the response is not a list of feeds.
        """
        response = await self._get("/v2/price_feeds", [])
        try:
            feeds = response.json()
            return {str(feed["id"]).lower().removeprefix("0x") for feed in feeds}
        except (ValueError, KeyError, TypeError) as e:
            raise HermesError(f"Invalid price feed list from Hermes: {e}") from e

    async def get_latest_price_updates(
        self, price_ids: list[str], parsed: bool = True
    ) -> dict[str, Any]:
        """Fetch the latest price updates for the given feeds.

        :param price_ids: Feed ids (hex, with or without 0x).
        :param parsed: Whether to request the parsed price section.
        :returns: Decoded JSON response.
        """
        params = [("ids[]", price_id) for price_id in price_ids]
        params.append(("encoding", "hex"))
        params.append(("parsed", "true" if parsed else "false"))
        response = await self._get("/v2/updates/price/latest", params)
        try:
            return response.json()
        except ValueError as e:
            raise HermesError(f"Invalid JSON from Hermes: {e}") from e

    async def get_latest_price_infos(self, price_ids: list[str]) -> dict[str, PriceInfo]:
        """Fetch the latest parsed prices.

        :param price_ids: Feed ids.
        :returns: Dict mapping feed id (no 0x, lowercase) to PriceInfo.
            Feeds missing from the response are absent.
        """
        data = await self.get_latest_price_updates(price_ids, parsed=True)
        result: dict[str, PriceInfo] = {}
        for entry in data.get("parsed") or []:
            try:
                price_id = str(entry["id"]).lower().removeprefix("0x")
                price = entry["price"]
                result[price_id] = PriceInfo(
                    price=int(price["price"]),
                    conf=int(price["conf"]),
                    expo=int(price["expo"]),
                    publish_time=int(price["publish_time"]),
                )
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed Hermes entry {entry!r}: {e}")
        return result

    async def get_price_update_data(self, price_ids: list[str]) -> list[str]:
        """Fetch the binary update payload for on-chain submission.

        :param price_ids: Feed ids.
        :returns: List of 0x-prefixed hex strings.
        :raises HermesError: If the response carries no binary data.
        """
        data = await self.get_latest_price_updates(price_ids, parsed=False)
        try:
            blobs = data["binary"]["data"]
        except (KeyError, TypeError) as e:
            raise HermesError(f"No binary update data in Hermes response: {e}") from e
        return [blob if blob.startswith("0x") else "0x" + blob for blob in blobs]
