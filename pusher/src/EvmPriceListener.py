"""EvmPriceListener: Target price listener reading the on-chain Pyth contract."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from web3.exceptions import ContractLogicError

from .PriceConfig import PriceInfo
from .PriceListener import ChainPriceListener

if TYPE_CHECKING:
    from web3.contract import Contract

logger = logging.getLogger(__name__)


class EvmPriceListener(ChainPriceListener):
    """Polls getPriceUnsafe() for every feed.

    Web3 calls are blocking and run in worker threads.

    :ivar contract: Pyth contract on the target chain.
    """

    def __init__(
        self,
        contract: Contract,
        price_ids: list[str],
        polling_frequency: float = 5.0,
    ) -> None:
        """Initialize the listener.

        :param contract: Pyth contract bound with the Pyth ABI.
        :param price_ids: Feed ids to poll.
        :param polling_frequency: Seconds between polls (default: 5).
        """
        super().__init__("evm", price_ids, polling_frequency)
        self.contract = contract

    def _read_price(self, price_id: str) -> PriceInfo | None:
        try:
            price, conf, expo, publish_time = self.contract.functions.getPriceUnsafe(
                "0x" + price_id
            ).call()
        except ContractLogicError as e:
            if self.contract.functions.priceFeedExists("0x" + price_id).call():
                raise
            # Not pushed to this chain yet.
            logger.debug(f"[{self.name}] Feed {price_id} not on chain: {e}")
            return None
        return PriceInfo(
            price=int(price),
            conf=int(conf),
            expo=int(expo),
            publish_time=int(publish_time),
        )

    async def get_onchain_price_info(self, price_id: str) -> PriceInfo | None:
        """Read the current on-chain price of a feed.

        :param price_id: Feed id.
        :returns: PriceInfo, or None if the feed is not on chain yet.
        """
        return await asyncio.to_thread(self._read_price, price_id)
