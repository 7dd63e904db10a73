"""EvmPricePusher: Submits batched Pyth price updates to an EVM chain.

For each batch:
    1. Fetch the signed update payload for the feeds from Hermes
    2. Read the update fee from the contract
    3. Call updatePriceFeedsIfNecessary(updateData, priceIds, publishTimes)
       with the fee attached
    4. Wait for the receipt

The contract reverts with NoFreshUpdate when every feed on chain is already
at least as new as the requested publish time. That means some other party
already pushed, so it is treated as success.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from web3.exceptions import ContractLogicError

from .HermesClient import HermesClient
from .PricePusher import PricePusher, PushError
from .pyth_abi import NO_FRESH_UPDATE_SELECTOR

if TYPE_CHECKING:
    from web3 import Web3
    from web3.contract import Contract

logger = logging.getLogger(__name__)


class EvmPricePusher(PricePusher):
    """Price pusher for EVM chains running the Pyth contract.

    :ivar w3: Web3 instance with a signing default account.
    :ivar contract: Pyth contract on the target chain.
    :ivar hermes_client: Client providing the update payload.
    :ivar gas_price_multiplier: Factor applied to the node's gas price.
    :ivar gas_limit: Fixed gas limit, or None to estimate.
    :ivar receipt_timeout: Seconds to wait for the transaction receipt.
    """

    def __init__(
        self,
        w3: Web3,
        contract: Contract,
        hermes_client: HermesClient,
        gas_price_multiplier: float = 1.0,
        gas_limit: int | None = None,
        receipt_timeout: float = 120.0,
    ) -> None:
        """Initialize the pusher.

        :param w3: Web3 instance with a signing default account.
        :param contract: Pyth contract on the target chain.
        :param hermes_client: Client providing the update payload.
        :param gas_price_multiplier: Factor applied to the gas price (default: 1.0).
        :param gas_limit: Fixed gas limit, None to let the node estimate.
        :param receipt_timeout: Seconds to wait for the receipt (default: 120).
        :raises ValueError: If the gas price multiplier is not positive.
        """
        if gas_price_multiplier <= 0:
            raise ValueError("gas_price_multiplier must be positive")
        self.w3 = w3
        self.contract = contract
        self.hermes_client = hermes_client
        self.gas_price_multiplier = gas_price_multiplier
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout

    async def update_price_feed(
        self, price_ids: list[str], publish_times: list[int]
    ) -> None:
        """Push one batched update.

        :param price_ids: Feed ids, in batch order.
        :param publish_times: Minimum publish time per feed.
        :raises ValueError: If the two lists differ in length.
        :raises PushError: If the update could not be submitted.
        """
        if len(price_ids) != len(publish_times):
            raise ValueError("price_ids and publish_times must have the same length")
        if not price_ids:
            return

        try:
            update_data = await self.hermes_client.get_price_update_data(price_ids)
        except Exception as e:
            raise PushError(price_ids, f"Failed to fetch update data: {e}") from e

        try:
            tx_hash = await asyncio.to_thread(
                self._send_update, update_data, price_ids, publish_times
            )
        except ContractLogicError as e:
            if _is_no_fresh_update(e):
                logger.info(f"Feeds already fresh on chain, nothing to push: {price_ids}")
                return
            raise PushError(price_ids, f"Update reverted: {e}") from e
        except Exception as e:
            raise PushError(price_ids, f"Failed to send update: {e}") from e

        try:
            receipt = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=self.receipt_timeout,
            )
        except Exception as e:
            raise PushError(
                price_ids, f"No receipt for transaction {tx_hash.hex()}: {e}"
            ) from e

        if receipt["status"] != 1:
            raise PushError(price_ids, f"Transaction {tx_hash.hex()} failed")

        logger.info(
            f"Pushed {len(price_ids)} feeds in transaction {tx_hash.hex()} "
            f"(block {receipt.get('blockNumber')})"
        )

    def _send_update(
        self,
        update_data: list[str],
        price_ids: list[str],
        publish_times: list[int],
    ) -> Any:
        """Build and send the update transaction.

        :returns: Transaction hash.
        """
        fee = self.contract.functions.getUpdateFee(update_data).call()
        gas_price = int(self.w3.eth.gas_price * self.gas_price_multiplier)

        tx_params: dict[str, Any] = {"value": fee, "gasPrice": gas_price}
        if self.gas_limit is not None:
            tx_params["gas"] = self.gas_limit

        tx = self.contract.functions.updatePriceFeedsIfNecessary(
            update_data,
            ["0x" + price_id for price_id in price_ids],
            publish_times,
        ).build_transaction(tx_params)

        logger.debug(
            f"Sending update for {price_ids} (fee={fee}, gasPrice={gas_price})"
        )
        return self.w3.eth.send_transaction(tx)


def _is_no_fresh_update(error: ContractLogicError) -> bool:
    data = getattr(error, "data", None)
    if isinstance(data, str) and data.startswith(NO_FRESH_UPDATE_SELECTOR):
        return True
    message = str(error)
    return NO_FRESH_UPDATE_SELECTOR in message or "NoFreshUpdate" in message
