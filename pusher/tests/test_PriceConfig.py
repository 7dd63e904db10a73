"""Unit tests for PriceConfig and the update policy."""

import pytest

from pusher.src.PriceConfig import (
    PriceConfig,
    PriceConfigError,
    PriceInfo,
    UpdateCondition,
    normalize_price_id,
    read_price_config_file,
    read_price_configs,
    should_update,
)

BTC_ID = "e62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43"
ETH_ID = "ff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace"


def make_config(**overrides) -> PriceConfig:
    values = {
        "id": BTC_ID,
        "alias": "BTC/USD",
        "time_difference": 60,
        "price_deviation": 1.0,
        "confidence_ratio": 200.0,
    }
    values.update(overrides)
    return PriceConfig(**values)


def price(value: int, publish_time: int, conf: int = 1, expo: int = 0) -> PriceInfo:
    return PriceInfo(price=value, conf=conf, expo=expo, publish_time=publish_time)


class TestPriceInfo:
    """Test PriceInfo scaling helpers."""

    def test_real_price_applies_exponent(self) -> None:
        """Real price should be price * 10**expo."""
        info = PriceInfo(price=6140993501000, conf=2501000000, expo=-8, publish_time=1)
        assert info.real_price == pytest.approx(61409.93501)
        assert info.real_conf == pytest.approx(25.01)


class TestPriceConfigValidation:
    """Test PriceConfig construction and validation."""

    def test_id_is_normalized(self) -> None:
        """Ids should lose the 0x prefix and be lowercased."""
        config = make_config(id="0x" + BTC_ID.upper())
        assert config.id == BTC_ID

    def test_invalid_id_length(self) -> None:
        """Ids that are not 32 bytes should be rejected."""
        with pytest.raises(PriceConfigError, match="expected 64 hex characters"):
            make_config(id="abcd")

    def test_invalid_id_hex(self) -> None:
        """Non-hex ids should be rejected."""
        with pytest.raises(PriceConfigError, match="not hex"):
            normalize_price_id("z" * 64)

    @pytest.mark.parametrize(
        "field", ["time_difference", "price_deviation", "confidence_ratio"]
    )
    def test_non_positive_threshold(self, field: str) -> None:
        """Main thresholds must be positive."""
        with pytest.raises(PriceConfigError, match=f"{field} must be positive"):
            make_config(**{field: 0})

    def test_early_threshold_must_not_exceed_main(self) -> None:
        """Early thresholds above the main threshold make no sense."""
        with pytest.raises(PriceConfigError, match="must not exceed"):
            make_config(early_update_time_difference=120)

    def test_early_threshold_must_be_positive(self) -> None:
        """Early thresholds must be positive when set."""
        with pytest.raises(PriceConfigError, match="must be positive"):
            make_config(early_update_price_deviation=-1)

    def test_gate_must_be_positive(self) -> None:
        """The confidence gate must be positive when set."""
        with pytest.raises(PriceConfigError, match="max_source_confidence_ratio"):
            make_config(max_source_confidence_ratio=0)

    def test_config_is_immutable(self) -> None:
        """PriceConfig should be frozen."""
        config = make_config()
        with pytest.raises(AttributeError):
            config.time_difference = 10  # type: ignore[misc]


class TestReadPriceConfigs:
    """Test parsing of price config entries."""

    def test_from_dict_with_early_update(self) -> None:
        """Nested early_update values should map to early thresholds."""
        config = PriceConfig.from_dict(
            {
                "id": "0x" + BTC_ID,
                "alias": "BTC/USD",
                "time_difference": 60,
                "price_deviation": 0.5,
                "confidence_ratio": 100,
                "early_update": {"time_difference": 30, "price_deviation": 0.25},
                "max_source_confidence_ratio": 2,
            }
        )
        assert config.id == BTC_ID
        assert config.early_update_time_difference == 30.0
        assert config.early_update_price_deviation == 0.25
        assert config.early_update_confidence_ratio is None
        assert config.max_source_confidence_ratio == 2.0

    def test_missing_key(self) -> None:
        """Missing thresholds should raise PriceConfigError."""
        with pytest.raises(PriceConfigError, match="Missing key"):
            PriceConfig.from_dict({"id": BTC_ID, "alias": "BTC/USD"})

    def test_non_numeric_threshold(self) -> None:
        """Non-numeric thresholds should raise PriceConfigError."""
        with pytest.raises(PriceConfigError, match="Invalid price config entry"):
            PriceConfig.from_dict(
                {
                    "id": BTC_ID,
                    "time_difference": "soon",
                    "price_deviation": 1,
                    "confidence_ratio": 1,
                }
            )

    def test_alias_defaults_to_id(self) -> None:
        """Entries without alias should use the id as alias."""
        config = PriceConfig.from_dict(
            {
                "id": BTC_ID,
                "time_difference": 60,
                "price_deviation": 1,
                "confidence_ratio": 1,
            }
        )
        assert config.alias == BTC_ID

    def test_order_is_preserved(self) -> None:
        """Configs should keep the file order."""
        entries = [
            {"id": ETH_ID, "alias": "ETH/USD", "time_difference": 60,
             "price_deviation": 1, "confidence_ratio": 1},
            {"id": BTC_ID, "alias": "BTC/USD", "time_difference": 60,
             "price_deviation": 1, "confidence_ratio": 1},
        ]
        configs = read_price_configs(entries)
        assert [c.alias for c in configs] == ["ETH/USD", "BTC/USD"]

    def test_duplicate_ids_rejected(self) -> None:
        """The same feed may only be configured once."""
        entry = {"id": BTC_ID, "time_difference": 60, "price_deviation": 1,
                 "confidence_ratio": 1}
        with pytest.raises(PriceConfigError, match="Duplicate price id"):
            read_price_configs([entry, dict(entry, id="0x" + BTC_ID)])

    def test_non_list_rejected(self) -> None:
        """The top level must be a list."""
        with pytest.raises(PriceConfigError, match="must be a list"):
            read_price_configs({"id": BTC_ID})  # type: ignore[arg-type]

    def test_read_yaml_file(self, tmp_path) -> None:
        """YAML files should be parsed into configs."""
        path = tmp_path / "price-config.yaml"
        path.write_text(
            f"""
- alias: BTC/USD
  id: "{BTC_ID}"
  time_difference: 60
  price_deviation: 0.5
  confidence_ratio: 1
  early_update:
    time_difference: 30
- alias: ETH/USD
  id: "0x{ETH_ID}"
  time_difference: 120
  price_deviation: 1
  confidence_ratio: 5
"""
        )
        configs = read_price_config_file(path)
        assert [c.id for c in configs] == [BTC_ID, ETH_ID]
        assert configs[0].early_update_time_difference == 30.0
        assert configs[1].time_difference == 120.0

    def test_read_empty_yaml_file(self, tmp_path) -> None:
        """An empty file yields no configs."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert read_price_config_file(path) == []


class TestShouldUpdateMissingPrices:
    """Test decisions when one side has no price."""

    def test_no_source_price(self) -> None:
        """Without a source price nothing can be pushed."""
        assert should_update(make_config(), None, price(100, 100)) == UpdateCondition.NO

    def test_no_source_and_no_target(self) -> None:
        """A missing source wins over a missing target."""
        assert should_update(make_config(), None, None) == UpdateCondition.NO

    def test_no_target_price(self) -> None:
        """A feed missing on the target should be bootstrapped."""
        assert should_update(make_config(), price(100, 100), None) == UpdateCondition.YES

    def test_no_target_ignores_confidence_gate(self) -> None:
        """Bootstrapping is not subject to the confidence gate."""
        config = make_config(max_source_confidence_ratio=1)
        source = price(100, 100, conf=50)
        assert should_update(config, source, None) == UpdateCondition.YES


class TestShouldUpdateThresholds:
    """Test YES / EARLY / NO thresholds."""

    def test_time_difference_scenario(self) -> None:
        """Target at 100, source at 161, threshold 60 -> YES."""
        source = price(100, 161)
        target = price(100, 100)
        assert should_update(make_config(), source, target) == UpdateCondition.YES

    def test_time_difference_boundary(self) -> None:
        """Reaching the threshold exactly should trigger."""
        assert should_update(make_config(), price(100, 160), price(100, 100)) == (
            UpdateCondition.YES
        )
        assert should_update(make_config(), price(100, 159), price(100, 100)) == (
            UpdateCondition.NO
        )

    def test_source_older_than_target(self) -> None:
        """A source price older than the target is never pushed."""
        config = make_config()
        assert should_update(config, price(200, 90), price(100, 100)) == UpdateCondition.NO
        assert should_update(config, price(110, 99), price(100, 100)) == UpdateCondition.NO

    def test_equal_publish_times_still_compare_prices(self) -> None:
        """Equal publish times fall through to the deviation trigger."""
        config = make_config(price_deviation=1.0)
        assert should_update(config, price(110, 100), price(100, 100)) == (
            UpdateCondition.YES
        )

    def test_equal_publish_times_without_move(self) -> None:
        """Equal publish times and prices never meet the time threshold."""
        config = make_config()
        assert should_update(config, price(100, 100), price(100, 100)) == (
            UpdateCondition.NO
        )

    def test_price_deviation(self) -> None:
        """A 1% move with a 1% threshold should trigger."""
        assert should_update(make_config(), price(10100, 101), price(10000, 100)) == (
            UpdateCondition.YES
        )

    def test_price_deviation_below_threshold(self) -> None:
        """A 0.5% move with a 1% threshold should not trigger."""
        source = price(10050, 101, conf=100)
        assert should_update(make_config(), source, price(10000, 100)) == (
            UpdateCondition.NO
        )

    def test_price_deviation_uses_exponent(self) -> None:
        """Deviation should be computed on real values."""
        source = PriceInfo(price=1020, conf=100, expo=-1, publish_time=101)
        target = PriceInfo(price=10000, conf=100, expo=-2, publish_time=100)
        # 102.0 vs 100.00 -> 2%
        assert should_update(make_config(), source, target) == UpdateCondition.YES

    def test_zero_target_price(self) -> None:
        """A zero target price is infinitely far from a non-zero source."""
        assert should_update(make_config(), price(5, 101), price(0, 100)) == (
            UpdateCondition.YES
        )

    def test_confidence_ratio(self) -> None:
        """A move of twice the source confidence should trigger at 200%."""
        config = make_config(price_deviation=50)
        source = price(10020, 101, conf=10)
        assert should_update(config, source, price(10000, 100)) == UpdateCondition.YES

    def test_zero_confidence_with_move(self) -> None:
        """A zero confidence interval makes any move infinitely large."""
        config = make_config(price_deviation=50)
        source = price(10001, 101, conf=0)
        assert should_update(config, source, price(10000, 100)) == UpdateCondition.YES

    def test_zero_confidence_without_move(self) -> None:
        """Zero confidence and no move should not trigger."""
        source = price(10000, 101, conf=0)
        assert should_update(make_config(), source, price(10000, 100)) == (
            UpdateCondition.NO
        )

    def test_early_time_difference(self) -> None:
        """Meeting only the early time threshold should yield EARLY."""
        config = make_config(early_update_time_difference=30)
        assert should_update(config, price(100, 135), price(100, 100)) == (
            UpdateCondition.EARLY
        )

    def test_early_price_deviation(self) -> None:
        """Meeting only the early deviation threshold should yield EARLY."""
        config = make_config(early_update_price_deviation=0.5)
        source = price(10060, 101, conf=100)
        assert should_update(config, source, price(10000, 100)) == UpdateCondition.EARLY

    def test_early_confidence_ratio(self) -> None:
        """Meeting only the early confidence threshold should yield EARLY."""
        config = make_config(price_deviation=50, early_update_confidence_ratio=100)
        source = price(10010, 101, conf=10)
        assert should_update(config, source, price(10000, 100)) == UpdateCondition.EARLY

    def test_yes_wins_over_early(self) -> None:
        """Main thresholds take priority over early ones."""
        config = make_config(early_update_time_difference=30)
        assert should_update(config, price(100, 200), price(100, 100)) == (
            UpdateCondition.YES
        )

    def test_early_disabled_by_default(self) -> None:
        """Without early thresholds, a near-due feed is NO."""
        assert should_update(make_config(), price(100, 159), price(100, 100)) == (
            UpdateCondition.NO
        )


class TestShouldUpdateConfidenceGate:
    """Test withholding pushes for uncertain source prices."""

    def test_gate_downgrades_yes(self) -> None:
        """A 5% wide source interval above a 2% gate blocks the push."""
        config = make_config(max_source_confidence_ratio=2)
        source = price(100, 200, conf=5)
        assert should_update(config, source, price(100, 100)) == UpdateCondition.NO

    def test_gate_downgrades_early(self) -> None:
        """The gate applies to EARLY decisions too."""
        config = make_config(
            early_update_time_difference=30, max_source_confidence_ratio=2
        )
        source = price(100, 135, conf=5)
        assert should_update(config, source, price(100, 100)) == UpdateCondition.NO

    def test_gate_boundary_allows_push(self) -> None:
        """An interval exactly at the gate is still pushed."""
        config = make_config(max_source_confidence_ratio=5)
        source = price(100, 200, conf=5)
        assert should_update(config, source, price(100, 100)) == UpdateCondition.YES

    def test_gate_zero_source_price(self) -> None:
        """A zero source price has unbounded relative uncertainty."""
        config = make_config(max_source_confidence_ratio=5)
        source = price(0, 200, conf=1)
        assert should_update(config, source, price(100, 100)) == UpdateCondition.NO


class TestShouldUpdatePurity:
    """Test that the policy is a pure function."""

    def test_repeated_calls_agree(self) -> None:
        """Identical inputs should always give identical outputs."""
        config = make_config(early_update_time_difference=30)
        cases = [
            (None, price(100, 100)),
            (price(100, 100), None),
            (price(100, 161), price(100, 100)),
            (price(100, 135), price(100, 100)),
            (price(100, 101), price(100, 100)),
        ]
        for source, target in cases:
            first = should_update(config, source, target)
            for _ in range(5):
                assert should_update(config, source, target) == first

    def test_inputs_are_not_mutated(self) -> None:
        """Evaluation should leave its inputs unchanged."""
        source = price(100, 161)
        target = price(100, 100)
        should_update(make_config(), source, target)
        assert source == price(100, 161)
        assert target == price(100, 100)

    def test_zero_prices_on_both_sides(self) -> None:
        """Zero target and zero source prices count as no deviation."""
        source = price(0, 101, conf=1)
        result = should_update(make_config(), source, price(0, 100))
        assert result == UpdateCondition.NO
