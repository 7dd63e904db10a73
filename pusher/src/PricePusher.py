"""PricePusher: Abstract base class for batched target-chain updates."""

from abc import ABC, abstractmethod


class PushError(Exception):
    """Raised when a batched price update could not be submitted.

    :ivar price_ids: Feed ids of the failed batch.
    """

    def __init__(self, price_ids: list[str], message: str):
        """Initialize the push error.

        :param price_ids: Feed ids of the failed batch.
        :param message: Error description.
        """
        self.price_ids = list(price_ids)
        super().__init__(f"{message} (price_ids={self.price_ids})")


class PricePusher(ABC):
    """Submits one update transaction for a batch of feeds.

    The call is all-or-nothing: it either returns normally or raises.
    """

    @abstractmethod
    async def update_price_feed(
        self, price_ids: list[str], publish_times: list[int]
    ) -> None:
        """Push the given feeds to the target chain.

        :param price_ids: Feed ids, in batch order.
        :param publish_times: Minimum publish time per feed, parallel to
            price_ids.
        :raises PushError: If the update could not be submitted.
        """
        pass
