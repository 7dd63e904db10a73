"""HermesPriceListener: Source price listener backed by Hermes."""

from __future__ import annotations

import logging

from .HermesClient import HermesClient, HermesError
from .PriceConfig import PriceInfo
from .PriceListener import ChainPriceListener

logger = logging.getLogger(__name__)


class HermesPriceListener(ChainPriceListener):
    """Polls Hermes for the latest price of all feeds in one request.

    Hermes rejects a whole request when one id is unknown, so ids are checked
    against its feed list before the first poll.

    :ivar hermes_client: Client used for polling.
    """

    def __init__(
        self,
        hermes_client: HermesClient,
        price_ids: list[str],
        polling_frequency: float = 5.0,
    ) -> None:
        """Initialize the listener.

        :param hermes_client: Hermes API client.
        :param price_ids: Feed ids to poll.
        :param polling_frequency: Seconds between polls (default: 5).
        """
        super().__init__("hermes", price_ids, polling_frequency)
        self.hermes_client = hermes_client

    async def start(self) -> None:
        """Check the configured ids, then start polling.

        :raises HermesError: If Hermes does not serve some configured ids.
        """
        await self.validate_price_ids()
        await super().start()

    async def validate_price_ids(self) -> None:
        """Fail with the list of ids Hermes does not know about.

        :raises HermesError: If any configured id is unknown to Hermes.
        """
        available = await self.hermes_client.get_price_feed_ids()
        missing = [price_id for price_id in self.price_ids if price_id not in available]
        if missing:
            raise HermesError(f"Price ids not found on Hermes: {', '.join(missing)}")

    async def poll_prices(self) -> None:
        """Fetch all feeds in one Hermes request and cache them."""
        price_infos = await self.hermes_client.get_latest_price_infos(self.price_ids)
        for price_id in self.price_ids:
            price_info = price_infos.get(price_id)
            if price_info is None:
                logger.debug(f"[{self.name}] No price for {price_id}")
                continue
            self.update_latest_price_info(price_id, price_info)

    async def get_onchain_price_info(self, price_id: str) -> PriceInfo | None:
        """Fetch the latest Hermes price of a single feed.

        :param price_id: Feed id.
        :returns: PriceInfo, or None if Hermes returned no price for it.
        """
        price_infos = await self.hermes_client.get_latest_price_infos([price_id])
        return price_infos.get(price_id)
