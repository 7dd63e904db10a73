"""PusherMetrics: Per-feed observability for the price pusher.

The controller reports into a PusherMetrics sink. NoopMetrics is used when
metrics are disabled; PricePusherMetrics exports Prometheus metrics.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from .PriceConfig import PriceInfo, UpdateCondition

logger = logging.getLogger(__name__)


class PusherMetrics(ABC):
    """Metrics sink interface used by the controller."""

    @abstractmethod
    def set_feed_count(self, count: int) -> None:
        pass

    @abstractmethod
    def record_last_published_time(
        self, price_id: str, alias: str, price_info: PriceInfo
    ) -> None:
        pass

    @abstractmethod
    def record_decision(
        self, price_id: str, alias: str, condition: UpdateCondition
    ) -> None:
        pass

    @abstractmethod
    def record_push_success(self, price_id: str, alias: str) -> None:
        pass

    @abstractmethod
    def record_push_error(self, price_id: str, alias: str) -> None:
        pass


class NoopMetrics(PusherMetrics):
    """Metrics sink that discards everything."""

    def set_feed_count(self, count: int) -> None:
        pass

    def record_last_published_time(
        self, price_id: str, alias: str, price_info: PriceInfo
    ) -> None:
        pass

    def record_decision(
        self, price_id: str, alias: str, condition: UpdateCondition
    ) -> None:
        pass

    def record_push_success(self, price_id: str, alias: str) -> None:
        pass

    def record_push_error(self, price_id: str, alias: str) -> None:
        pass


class PricePusherMetrics(PusherMetrics):
    """Prometheus metrics for the price pusher.

    Each instance owns its registry so several instances (e.g. in tests)
    do not collide on metric names.

    :ivar registry: Prometheus registry holding all pusher metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Create the metric families.

        :param registry: Registry to register into. A new one if omitted.
        """
        self.registry = registry or CollectorRegistry()

        self.price_feeds_total = Gauge(
            "pyth_price_feeds_total",
            "Total number of price feeds being monitored",
            registry=self.registry,
        )
        self.last_published_time = Gauge(
            "pyth_price_last_published_time",
            "The last published time of a price feed on the target chain",
            ["price_id", "alias"],
            registry=self.registry,
        )
        self.update_conditions = Counter(
            "pyth_update_conditions_total",
            "Number of update condition evaluations by outcome",
            ["price_id", "alias", "condition"],
            registry=self.registry,
        )
        self.price_updates = Counter(
            "pyth_price_updates_total",
            "Number of successful price updates pushed",
            ["price_id", "alias"],
            registry=self.registry,
        )
        self.price_update_errors = Counter(
            "pyth_price_update_errors_total",
            "Number of failed price update attempts",
            ["price_id", "alias"],
            registry=self.registry,
        )

    def start_server(self, port: int) -> None:
        """Expose the registry over HTTP.

        :param port: TCP port for the metrics endpoint.
        """
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics server listening on port {port}")

    def set_feed_count(self, count: int) -> None:
        self.price_feeds_total.set(count)

    def record_last_published_time(
        self, price_id: str, alias: str, price_info: PriceInfo
    ) -> None:
        self.last_published_time.labels(price_id=price_id, alias=alias).set(
            price_info.publish_time
        )

    def record_decision(
        self, price_id: str, alias: str, condition: UpdateCondition
    ) -> None:
        self.update_conditions.labels(
            price_id=price_id, alias=alias, condition=condition.value
        ).inc()

    def record_push_success(self, price_id: str, alias: str) -> None:
        self.price_updates.labels(price_id=price_id, alias=alias).inc()

    def record_push_error(self, price_id: str, alias: str) -> None:
        self.price_update_errors.labels(price_id=price_id, alias=alias).inc()
