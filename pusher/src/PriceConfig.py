"""PriceConfig: Per-feed thresholds and the update decision policy.

A feed is pushed when the target copy is stale, when its price has moved too
far from the source, or when that move is large compared to the source's
confidence interval. Each trigger has an optional "early" threshold: a feed
that only meets an early threshold is pushed opportunistically, together with
feeds that already force a transaction.

Decision order (first match wins):
    1. No source price -> NO
    2. No target price -> YES (bootstrap)
    3. Source older than target -> NO
    4. Any main threshold met -> YES
    5. Any early threshold met -> EARLY
    6. Otherwise -> NO

A YES or EARLY from steps 4-5 is downgraded to NO when the source's own
confidence interval is wider than ``max_source_confidence_ratio`` percent of
its price.

.. code-block:: python

    >>> config = PriceConfig(id="f1" * 32, alias="BTC/USD", time_difference=60,
    ...                      price_deviation=0.5, confidence_ratio=100)
    >>> source = PriceInfo(price=100, conf=1, expo=0, publish_time=161)
    >>> target = PriceInfo(price=100, conf=1, expo=0, publish_time=100)
    >>> should_update(config, source, target)
    <UpdateCondition.YES: 'YES'>
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Feed ids are 32 bytes, hex encoded without the 0x prefix.
PRICE_ID_HEX_LENGTH = 64


class PriceConfigError(ValueError):
    """Raised when a price config entry is malformed."""

    pass


class UpdateCondition(Enum):
    """Outcome of the update policy for a single feed."""

    # The feed does not need an update this cycle.
    NO = "NO"
    # The feed may be included if another feed already forces a push.
    EARLY = "EARLY"
    # The feed alone requires a push.
    YES = "YES"


@dataclass(frozen=True)
class PriceInfo:
    """Point-in-time price observation.

    :ivar price: Price mantissa.
    :ivar conf: Confidence interval mantissa.
    :ivar expo: Decimal exponent shared by price and conf.
    :ivar publish_time: Unix timestamp of the observation.
    """

    price: int
    conf: int
    expo: int
    publish_time: int

    @property
    def real_price(self) -> float:
        return self.price * 10.0 ** self.expo

    @property
    def real_conf(self) -> float:
        return self.conf * 10.0 ** self.expo


@dataclass(frozen=True)
class PriceConfig:
    """Update thresholds for a single feed.

    :ivar id: 64 character lowercase hex feed id (no 0x prefix).
    :ivar alias: Human readable name, used only in logs and metrics.
    :ivar time_difference: Staleness threshold in seconds.
    :ivar price_deviation: Price deviation threshold in percent.
    :ivar confidence_ratio: Threshold on price move over source confidence,
        in percent.
    :ivar early_update_time_difference: Early staleness threshold, or None.
    :ivar early_update_price_deviation: Early deviation threshold, or None.
    :ivar early_update_confidence_ratio: Early confidence ratio threshold,
        or None.
    :ivar max_source_confidence_ratio: Maximum source confidence interval
        as percent of the source price before pushes are withheld, or None.
    """

    id: str
    alias: str
    time_difference: float
    price_deviation: float
    confidence_ratio: float
    early_update_time_difference: float | None = None
    early_update_price_deviation: float | None = None
    early_update_confidence_ratio: float | None = None
    max_source_confidence_ratio: float | None = None

    def __post_init__(self) -> None:
        """Normalize the feed id and validate thresholds.

        :raises PriceConfigError: If the id or any threshold is invalid.
        """
        object.__setattr__(self, "id", normalize_price_id(self.id))

        for name in ("time_difference", "price_deviation", "confidence_ratio"):
            if getattr(self, name) <= 0:
                raise PriceConfigError(f"{self.alias}: {name} must be positive")

        for name in ("time_difference", "price_deviation", "confidence_ratio"):
            early = getattr(self, f"early_update_{name}")
            if early is None:
                continue
            if early <= 0:
                raise PriceConfigError(
                    f"{self.alias}: early_update.{name} must be positive"
                )
            if early > getattr(self, name):
                raise PriceConfigError(
                    f"{self.alias}: early_update.{name} must not exceed {name}"
                )

        if (
            self.max_source_confidence_ratio is not None
            and self.max_source_confidence_ratio <= 0
        ):
            raise PriceConfigError(
                f"{self.alias}: max_source_confidence_ratio must be positive"
            )

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PriceConfig:
        """Build a config from one entry of the price config file.

        :param raw: Mapping with id, alias, thresholds and an optional
            ``early_update`` mapping.
        :returns: New PriceConfig instance.
        :raises PriceConfigError: If required keys are missing or invalid.
        """
        if not isinstance(raw, dict):
            raise PriceConfigError(f"Price config entry must be a mapping, got {raw!r}")

        early = raw.get("early_update") or {}
        if not isinstance(early, dict):
            raise PriceConfigError(f"early_update must be a mapping, got {early!r}")

        try:
            return cls(
                id=str(raw["id"]),
                alias=str(raw.get("alias") or raw["id"]),
                time_difference=float(raw["time_difference"]),
                price_deviation=float(raw["price_deviation"]),
                confidence_ratio=float(raw["confidence_ratio"]),
                early_update_time_difference=_optional_float(early, "time_difference"),
                early_update_price_deviation=_optional_float(early, "price_deviation"),
                early_update_confidence_ratio=_optional_float(early, "confidence_ratio"),
                max_source_confidence_ratio=_optional_float(
                    raw, "max_source_confidence_ratio"
                ),
            )
        except PriceConfigError:
            raise
        except KeyError as e:
            raise PriceConfigError(f"Missing key {e} in price config entry {raw!r}") from e
        except (TypeError, ValueError) as e:
            raise PriceConfigError(f"Invalid price config entry {raw!r}: {e}") from e


def _optional_float(raw: dict[str, Any], key: str) -> float | None:
    value = raw.get(key)
    return None if value is None else float(value)


def normalize_price_id(price_id: str) -> str:
    """Strip the 0x prefix from a feed id and lowercase it.

    :param price_id: Feed id, with or without 0x prefix.
    :returns: 64 character lowercase hex string.
    :raises PriceConfigError: If the id is not 32 bytes of hex.
    """
    normalized = price_id.lower()
    if normalized.startswith("0x"):
        normalized = normalized[2:]
    if len(normalized) != PRICE_ID_HEX_LENGTH:
        raise PriceConfigError(
            f"Invalid price id '{price_id}': expected {PRICE_ID_HEX_LENGTH} hex characters"
        )
    try:
        bytes.fromhex(normalized)
    except ValueError as e:
        raise PriceConfigError(f"Invalid price id '{price_id}': not hex") from e
    return normalized


def read_price_configs(entries: list[dict[str, Any]]) -> list[PriceConfig]:
    """Parse price config entries, keeping their order.

    :param entries: List of raw config mappings.
    :returns: List of PriceConfig in the same order.
    :raises PriceConfigError: On invalid entries or duplicate ids.
    """
    if not isinstance(entries, list):
        raise PriceConfigError("Price config must be a list of feed entries")

    configs: list[PriceConfig] = []
    seen: set[str] = set()
    for entry in entries:
        config = PriceConfig.from_dict(entry)
        if config.id in seen:
            raise PriceConfigError(f"Duplicate price id {config.id} ({config.alias})")
        seen.add(config.id)
        configs.append(config)
    return configs


def read_price_config_file(path: str | Path) -> list[PriceConfig]:
    """Load price configs from a YAML file.

    :param path: Path to the YAML file.
    :returns: List of PriceConfig in file order.
    :raises PriceConfigError: If the file content is invalid.
    """
    with open(path, "r") as file:
        entries = yaml.safe_load(file) or []
    return read_price_configs(entries)


def _price_deviation_pct(source: PriceInfo, target: PriceInfo) -> float:
    source_price = source.real_price
    target_price = target.real_price
    if target_price == 0:
        return math.inf if source_price != 0 else 0.0
    return abs(source_price - target_price) * 100 / abs(target_price)


def _confidence_ratio_pct(source: PriceInfo, target: PriceInfo) -> float:
    move = abs(source.real_price - target.real_price)
    source_conf = source.real_conf
    if source_conf == 0:
        return math.inf if move != 0 else 0.0
    return move * 100 / source_conf


def _source_confidence_pct(source: PriceInfo) -> float:
    source_price = abs(source.real_price)
    if source_price == 0:
        return math.inf
    return source.real_conf * 100 / source_price


def _meets(value: float, threshold: float | None) -> bool:
    return threshold is not None and value >= threshold


def should_update(
    config: PriceConfig,
    source: PriceInfo | None,
    target: PriceInfo | None,
) -> UpdateCondition:
    """Decide whether a feed should be pushed to the target.

    :param config: Thresholds for the feed.
    :param source: Latest source price, or None if none arrived yet.
    :param target: Latest target price, or None if the feed is not on target.
    :returns: The update condition for this feed.
    """
    if source is None:
        logger.info(
            f"{config.alias} ({config.id}) is not available on the source, ignoring it"
        )
        return UpdateCondition.NO

    if target is None:
        logger.info(
            f"{config.alias} ({config.id}) is not available on the target, pushing it"
        )
        return UpdateCondition.YES

    time_difference = source.publish_time - target.publish_time
    if time_difference < 0:
        logger.debug(
            f"{config.alias}: source price is older than target "
            f"(source={source.publish_time}, target={target.publish_time})"
        )
        return UpdateCondition.NO

    price_deviation_pct = _price_deviation_pct(source, target)
    confidence_ratio_pct = _confidence_ratio_pct(source, target)

    logger.debug(
        f"{config.alias}: time_difference={time_difference}s, "
        f"price_deviation={price_deviation_pct:.4f}%, "
        f"confidence_ratio={confidence_ratio_pct:.4f}%"
    )

    if (
        time_difference >= config.time_difference
        or price_deviation_pct >= config.price_deviation
        or confidence_ratio_pct >= config.confidence_ratio
    ):
        condition = UpdateCondition.YES
    elif (
        _meets(time_difference, config.early_update_time_difference)
        or _meets(price_deviation_pct, config.early_update_price_deviation)
        or _meets(confidence_ratio_pct, config.early_update_confidence_ratio)
    ):
        condition = UpdateCondition.EARLY
    else:
        return UpdateCondition.NO

    if config.max_source_confidence_ratio is not None:
        source_confidence_pct = _source_confidence_pct(source)
        if source_confidence_pct > config.max_source_confidence_ratio:
            logger.info(
                f"{config.alias}: withholding {condition.value} update, source "
                f"confidence {source_confidence_pct:.4f}% exceeds "
                f"{config.max_source_confidence_ratio}%"
            )
            return UpdateCondition.NO

    return condition
