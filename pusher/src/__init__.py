"""
Price Pusher - Threshold-driven batched price updates

This module keeps target-chain price feeds in sync with a source price service:
- PriceConfig: Per-feed thresholds and the update decision policy
- PriceListener: Latest-price caches for source and target
- PricePusher: Batched on-chain update interface
- Controller: Main loop evaluating feeds and pushing batches
- PusherMetrics: Prometheus and no-op metrics sinks
"""

from .Controller import Controller, PushBatch
from .PriceConfig import (
    PriceConfig,
    PriceConfigError,
    PriceInfo,
    UpdateCondition,
    read_price_config_file,
    read_price_configs,
    should_update,
)
from .PriceListener import ChainPriceListener, PriceListener
from .PricePusher import PricePusher, PushError
from .PusherMetrics import NoopMetrics, PricePusherMetrics, PusherMetrics

__all__ = [
    "ChainPriceListener",
    "Controller",
    "NoopMetrics",
    "PriceConfig",
    "PriceConfigError",
    "PriceInfo",
    "PriceListener",
    "PricePusher",
    "PricePusherMetrics",
    "PushBatch",
    "PushError",
    "PusherMetrics",
    "UpdateCondition",
    "read_price_config_file",
    "read_price_configs",
    "should_update",
]
