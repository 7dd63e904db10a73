"""Controller: Main loop keeping target feeds in sync with the source.

Every push interval the controller evaluates each configured feed, collects
the feeds that need an update into one batch and submits it with a single
pusher call.

Batching policy:
    - A feed decided YES forces a push this cycle.
    - A feed decided EARLY joins the batch only when some feed is YES.
    - Without any YES, nothing is pushed.

A failed push is logged and counted per feed; the next cycle re-evaluates
and retries naturally if the condition persists. A push that exceeds
push_timeout is not cancelled and may still land on chain. Until it
finishes, later cycles skip their push. Listener start failures are
fatal and propagate out of start().
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from .PriceConfig import PriceConfig, UpdateCondition, should_update
from .PriceListener import PriceListener
from .PricePusher import PricePusher
from .PusherMetrics import NoopMetrics, PusherMetrics

logger = logging.getLogger(__name__)


@dataclass
class PushBatch:
    """Outcome of one evaluation cycle.

    :ivar price_ids: Feed ids selected for the batch, in config order.
    :ivar publish_times: Minimum publish time per feed, parallel to price_ids.
    :ivar conditions: Update condition per evaluated feed id.
    :ivar push_required: True if at least one feed was decided YES.
    :ivar pushed: True if the pusher was invoked.
    :ivar succeeded: True if the pusher call returned without error.
    """

    price_ids: list[str] = field(default_factory=list)
    publish_times: list[int] = field(default_factory=list)
    conditions: dict[str, UpdateCondition] = field(default_factory=dict)
    push_required: bool = False
    pushed: bool = False
    succeeded: bool = False


class Controller:
    """Evaluates all feeds each cycle and pushes qualifying ones in one batch.

    :ivar price_configs: Feed configs, evaluated in this order.
    :ivar pushing_frequency: Seconds between cycles.
    :ivar push_timeout: Optional timeout in seconds for one pusher call.
    :ivar metrics: Metrics sink.
    """

    def __init__(
        self,
        price_configs: list[PriceConfig],
        source_price_listener: PriceListener,
        target_price_listener: PriceListener,
        price_pusher: PricePusher,
        pushing_frequency: float,
        metrics: PusherMetrics | None = None,
        push_timeout: float | None = None,
    ) -> None:
        """Initialize the controller.

        :param price_configs: Feed configs to keep in sync.
        :param source_price_listener: Listener for the source of truth.
        :param target_price_listener: Listener for the target chain.
        :param price_pusher: Pusher submitting batched updates.
        :param pushing_frequency: Seconds between cycles.
        :param metrics: Metrics sink (default: NoopMetrics).
        :param push_timeout: Timeout for a single push call, None for none.
        :raises ValueError: On duplicate feed ids or a non-positive frequency.
        """
        if pushing_frequency <= 0:
            raise ValueError("pushing_frequency must be positive")

        ids = [config.id for config in price_configs]
        if len(set(ids)) != len(ids):
            raise ValueError("Price configs contain duplicate ids")

        self.price_configs = list(price_configs)
        self.source_price_listener = source_price_listener
        self.target_price_listener = target_price_listener
        self.price_pusher = price_pusher
        self.pushing_frequency = pushing_frequency
        self.push_timeout = push_timeout
        self.metrics: PusherMetrics = metrics or NoopMetrics()

        self._stop_event = asyncio.Event()
        self._push_task: asyncio.Task | None = None

        self._record(self.metrics.set_feed_count, len(self.price_configs))

    @property
    def stopped(self) -> bool:
        """True once stop() has been requested."""
        return self._stop_event.is_set()

    @property
    def push_in_flight(self) -> bool:
        """True while a previously started push has not finished."""
        return self._push_task is not None and not self._push_task.done()

    def stop(self) -> None:
        """Request a graceful stop at the next suspension point."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()

    async def start(self) -> None:
        """Start the listeners and run cycles until stop() is called.

        :raises Exception: If either listener fails to start.
        """
        try:
            await self.source_price_listener.start()
            await self.target_price_listener.start()
        except Exception as e:
            logger.error(f"Failed to start price listeners: {e}")
            await self._stop_listeners()
            raise

        try:
            # A push from a previous run may still be in flight. Wait one full
            # interval so the target listener observes it first.
            await self._sleep()

            while not self.stopped:
                await self.run_cycle()
                if self.stopped:
                    break
                await self._sleep()
        finally:
            await self._wait_for_push()
            await self._stop_listeners()
            logger.info("Controller stopped")

    async def run_cycle(self) -> PushBatch:
        """Evaluate every feed and push the batch if required.

        :returns: PushBatch describing the cycle.
        """
        batch = PushBatch()
        to_push: list[PriceConfig] = []

        for config in self.price_configs:
            target = self.target_price_listener.get_latest_price_info(config.id)
            source = self.source_price_listener.get_latest_price_info(config.id)

            if target is not None:
                self._record(
                    self.metrics.record_last_published_time,
                    config.id,
                    config.alias,
                    target,
                )

            condition = should_update(config, source, target)
            batch.conditions[config.id] = condition
            self._record(self.metrics.record_decision, config.id, config.alias, condition)

            if condition == UpdateCondition.YES:
                batch.push_required = True

            if condition in (UpdateCondition.YES, UpdateCondition.EARLY):
                to_push.append(config)
                batch.price_ids.append(config.id)
                batch.publish_times.append(
                    target.publish_time + 1 if target is not None else 1
                )

        if not batch.push_required:
            logger.info("None of the checks were triggered. No push needed.")
            return batch

        if self.stopped:
            logger.info(f"Stop requested, skipping push of {len(batch.price_ids)} feeds")
            return batch

        if self.push_in_flight:
            logger.warning(
                "Previous push is still in flight, skipping push of "
                f"{len(batch.price_ids)} feeds"
            )
            return batch

        logger.info(
            "Some of the checks triggered pushing update. Pushing "
            f"{[f'{c.alias} ({c.id})' for c in to_push]}"
        )

        batch.pushed = True
        try:
            await self._push(batch.price_ids, batch.publish_times)
        except Exception as e:
            logger.error(
                f"Error pushing price updates to chain for {batch.price_ids}: {e}"
            )
            for config in to_push:
                self._record(self.metrics.record_push_error, config.id, config.alias)
            return batch

        batch.succeeded = True
        for config in to_push:
            self._record(self.metrics.record_push_success, config.id, config.alias)
        return batch

    async def _push(self, price_ids: list[str], publish_times: list[int]) -> None:
        task = asyncio.create_task(
            self.price_pusher.update_price_feed(price_ids, publish_times)
        )
        self._push_task = task
        if self.push_timeout is None:
            await task
            return

        # Not cancelled on timeout: the send may already be running in a
        # worker thread.
        done, _ = await asyncio.wait({task}, timeout=self.push_timeout)
        if not done:
            task.add_done_callback(self._log_late_push)
            raise TimeoutError(
                f"Push timed out after {self.push_timeout}s, it may still land"
            )
        task.result()

    def _log_late_push(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Timed out push failed: {error}")
        else:
            logger.info("Timed out push completed")

    async def _wait_for_push(self) -> None:
        if self.push_in_flight:
            logger.info("Waiting for the in-flight push to finish")
            await asyncio.wait({self._push_task})

    async def _sleep(self) -> None:
        """Sleep one push interval, waking early if stop() is called."""
        try:
            await asyncio.wait_for(
                self._stop_event.wait(), timeout=self.pushing_frequency
            )
        except asyncio.TimeoutError:
            pass

    async def _stop_listeners(self) -> None:
        for listener in (self.source_price_listener, self.target_price_listener):
            try:
                await listener.stop()
            except Exception as e:
                logger.warning(f"Failed to stop listener {listener!r}: {e}")

    def _record(self, fn: Callable[..., None], *args: object) -> None:
        """Call a metrics method, logging instead of raising on failure."""
        try:
            fn(*args)
        except Exception as e:
            logger.warning(f"Metrics call {getattr(fn, '__name__', fn)} failed: {e}")
