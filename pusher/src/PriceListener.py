"""PriceListener: Interface for per-feed latest price caches.

Two listeners feed the controller: one observing the source price service and
one observing the target chain. Each keeps the latest PriceInfo per feed id
and refreshes it in the background while the controller reads it.

ChainPriceListener implements the common polling variant: an initial poll
during start() (whose failure propagates to the caller), then a background
task that polls every ``polling_frequency`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from .PriceConfig import PriceInfo

logger = logging.getLogger(__name__)


class PriceListener(ABC):
    """Abstract base class for price listeners."""

    @abstractmethod
    async def start(self) -> None:
        """Begin populating the price cache.

        :raises Exception: If the listener cannot establish its data source.
        """
        pass

    async def stop(self) -> None:
        """Stop background refreshing. Default is a no-op."""
        pass

    @abstractmethod
    def get_latest_price_info(self, price_id: str) -> PriceInfo | None:
        """Return the most recent price for a feed without blocking.

        :param price_id: Feed id (64 hex characters, no 0x prefix).
        :returns: Latest PriceInfo, or None if nothing was observed yet.
        """
        pass


class ChainPriceListener(PriceListener):
    """Polling price listener with a per-feed latest price cache.

    Cache entries are replaced wholesale and only by prices whose
    publish_time is not older than the cached one.

    :ivar name: Listener name used in log messages.
    :ivar price_ids: Feed ids to poll.
    :ivar polling_frequency: Seconds between polls.
    """

    def __init__(
        self,
        name: str,
        price_ids: list[str],
        polling_frequency: float = 5.0,
    ) -> None:
        """Initialize the listener.

        :param name: Listener name used in log messages.
        :param price_ids: Feed ids to poll.
        :param polling_frequency: Seconds between polls (default: 5).
        """
        self.name = name
        self.price_ids = list(price_ids)
        self.polling_frequency = polling_frequency
        self._latest_price_info: dict[str, PriceInfo] = {}
        self._poll_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Poll once, then keep polling in a background task.

        :raises Exception: If the initial poll fails.
        """
        await self.poll_prices()
        logger.info(
            f"[{self.name}] Started, {len(self._latest_price_info)}/"
            f"{len(self.price_ids)} feeds available, polling every "
            f"{self.polling_frequency}s"
        )
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Cancel the background poll task."""
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.polling_frequency)
            try:
                await self.poll_prices()
            except Exception as e:
                logger.warning(f"[{self.name}] Polling failed: {e}")

    async def poll_prices(self) -> None:
        """Fetch and cache the latest price of every feed.

        Subclasses can override this to fetch all feeds in one request.
        """
        for price_id in self.price_ids:
            price_info = await self.get_onchain_price_info(price_id)
            if price_info is not None:
                self.update_latest_price_info(price_id, price_info)

    @abstractmethod
    async def get_onchain_price_info(self, price_id: str) -> PriceInfo | None:
        """Fetch the current price of a single feed.

        :param price_id: Feed id.
        :returns: PriceInfo, or None if the feed does not exist.
        """
        pass

    def update_latest_price_info(self, price_id: str, price_info: PriceInfo) -> None:
        """Replace the cached price of a feed if the new one is not older.

        :param price_id: Feed id.
        :param price_info: Newly observed price.
        """
        cached = self._latest_price_info.get(price_id)
        if cached is not None and cached.publish_time > price_info.publish_time:
            logger.debug(
                f"[{self.name}] Ignoring older price for {price_id} "
                f"({price_info.publish_time} < {cached.publish_time})"
            )
            return
        self._latest_price_info[price_id] = price_info

    def get_latest_price_info(self, price_id: str) -> PriceInfo | None:
        return self._latest_price_info.get(price_id)
