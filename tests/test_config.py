"""
Tests for scenario configuration loading and validation.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rr_ofdma.config import (
    ConfigurationError,
    OfdmaConfig,
    PhyConfig,
    ScenarioConfig,
    TrafficConfig,
)
from rr_ofdma.traffic import TrafficClass, mac_address
from rr_ofdma.types import AccessCategory, DlMuAckSequence
from rr_ofdma.utils import fit_lognormal_quantiles, load_config, merge_configs, save_config

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"


@pytest.fixture
def cfg():
    return load_config(str(CONFIG_PATH))


class TestLoadConfig:
    def test_default_config_builds(self, cfg):
        scenario = ScenarioConfig.from_config(cfg)
        assert scenario.ofdma.n_stations == 4
        assert scenario.ofdma.packing_strategy == "legacy"
        assert scenario.phy.channel_width_mhz == 20
        assert scenario.phy.txop_limits_us[AccessCategory.AC_VI] == 3008.0
        assert scenario.simulation.n_associated == 8

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_override_deep_merge(self, tmp_path):
        override = tmp_path / "override.yaml"
        override.write_text(yaml.safe_dump({"ofdma": {"n_stations": 9}}))
        cfg = load_config(CONFIG_PATH, override)
        assert cfg["ofdma"]["n_stations"] == 9
        # siblings survive the merge
        assert cfg["ofdma"]["ul_psdu_size"] == 500

    def test_merge_does_not_mutate_base(self):
        base = {"a": {"b": 1, "c": 2}}
        merged = merge_configs(base, {"a": {"b": 5}})
        assert merged == {"a": {"b": 5, "c": 2}}
        assert base == {"a": {"b": 1, "c": 2}}

    def test_save_round_trip(self, cfg, tmp_path):
        path = tmp_path / "out" / "config.yaml"
        save_config(cfg, path)
        assert load_config(path) == cfg

    def test_empty_dict_gives_defaults(self):
        scenario = ScenarioConfig.from_config({})
        assert scenario.ofdma == OfdmaConfig()
        assert scenario.traffic.default_class == TrafficClass.WEB


class TestValidation:
    @pytest.mark.parametrize("n", [0, 75, -1])
    def test_n_stations_range(self, n):
        with pytest.raises(ConfigurationError):
            OfdmaConfig(n_stations=n)

    def test_n_stations_bounds_accepted(self):
        assert OfdmaConfig(n_stations=1).n_stations == 1
        assert OfdmaConfig(n_stations=74).n_stations == 74

    def test_zero_ul_psdu_allowed_without_ul(self):
        assert OfdmaConfig(enable_ul_ofdma=False, ul_psdu_size=0).ul_psdu_size == 0

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError, match="Valid options"):
            OfdmaConfig(packing_strategy="random")

    def test_unsupported_bandwidth(self):
        with pytest.raises(ConfigurationError):
            PhyConfig(channel_width_mhz=60)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            OfdmaConfig(n_stations=0)

    def test_unknown_traffic_class(self):
        with pytest.raises(ConfigurationError):
            TrafficConfig.from_config({"traffic": {"membership": {"video": [1]}}})

    def test_unknown_ack_sequence(self):
        with pytest.raises(ConfigurationError):
            PhyConfig.from_config({"phy": {"dl_ack_sequence": "dl_magic"}})

    def test_unknown_access_category(self):
        with pytest.raises(ConfigurationError):
            PhyConfig.from_config({"phy": {"txop_limits_us": {"ac_xx": 1.0}}})

    @pytest.mark.parametrize("phy", [
        {"guard_interval_ns": 400},
        {"default_mcs": 12},
        {"default_mcs": -1},
        {"default_nss": 0},
    ])
    def test_phy_values_outside_he_tables(self, phy):
        with pytest.raises(ConfigurationError):
            ScenarioConfig.from_config({"phy": phy})

    @pytest.mark.parametrize("gi", [800, 1600, 3200])
    def test_he_guard_intervals_accepted(self, gi):
        assert PhyConfig(guard_interval_ns=gi).guard_interval_ns == gi

    @pytest.mark.parametrize("mcs", [-1, 12])
    def test_max_trigger_mcs_range(self, mcs):
        with pytest.raises(ConfigurationError):
            OfdmaConfig(max_trigger_mcs=mcs)

    @pytest.mark.parametrize("sizes", [[900, 300], [0, 100], [-5, 10], [100]])
    def test_bad_frame_sizes(self, sizes):
        with pytest.raises(ConfigurationError):
            TrafficConfig.from_config({"traffic": {"frame_size_bytes": {"web": sizes}}})

    @pytest.mark.parametrize("prob", [-0.1, 1.5])
    def test_arrival_prob_range(self, prob):
        with pytest.raises(ConfigurationError):
            TrafficConfig.from_config({"traffic": {"arrival_prob": {"bulk": prob}}})

    def test_buffer_status_unknown_prob_range(self):
        with pytest.raises(ConfigurationError):
            ScenarioConfig.from_config({"simulation": {"buffer_status_unknown_prob": 2.0}})


class TestSections:
    def test_phy_from_config(self):
        phy_cfg = PhyConfig.from_config({"phy": {
            "channel_width_mhz": 80,
            "dl_ack_sequence": "dl_aggregate_tf",
            "txop_limits_us": {"ac_be": 2528},
        }})
        assert phy_cfg.channel_width_mhz == 80
        assert phy_cfg.dl_ack_sequence == DlMuAckSequence.DL_AGGREGATE_TF
        assert phy_cfg.txop_limits_us[AccessCategory.AC_BE] == 2528.0
        assert phy_cfg.txop_limits_us[AccessCategory.AC_VO] == 0.0

    def test_classifier_from_default_config(self, cfg):
        classifier = ScenarioConfig.from_config(cfg).traffic.build_classifier()
        assert classifier.classify(mac_address(1)) == TrafficClass.ON_OFF
        assert classifier.classify(mac_address(3)) == TrafficClass.BULK
        assert classifier.classify(mac_address(8)) == TrafficClass.WEB


class TestLognormalFit:
    def test_median_recovered(self):
        mu, sigma = fit_lognormal_quantiles(600.0, 1400.0)
        assert sigma > 0
        assert mu == pytest.approx(6.3969, abs=1e-3)

    def test_degenerate(self):
        _, sigma = fit_lognormal_quantiles(1500.0, 1500.0)
        assert sigma == 0.0

    def test_invalid_inputs(self):
        with pytest.raises(ValueError):
            fit_lognormal_quantiles(0.0, 10.0)
        with pytest.raises(ValueError):
            fit_lognormal_quantiles(100.0, 50.0)
