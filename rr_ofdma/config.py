"""
Scenario configuration for the round-robin OFDMA scheduler.

All sections are dataclasses built from the YAML config dict
(config/default.yaml) with ``from_config``. Invalid values raise
ConfigurationError when the config is built, before any scheduling
decision is taken.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .he_ru import SUPPORTED_BANDWIDTHS
from .phy import HE_GUARD_INTERVALS_NS, MAX_HE_MCS
from .traffic import TrafficClass, TrafficClassifier
from .types import AccessCategory, DlMuAckSequence, UlMuAckSequence


class ConfigurationError(ValueError):
    """Raised for configurations the scheduler cannot run with."""


MIN_STATIONS = 1
MAX_STATIONS = 74
PACKING_STRATEGIES = ("legacy", "greedy")


@dataclass
class OfdmaConfig:
    """
    Scheduler attributes.

    n_stations:        max stations granted an RU in a DL MU PPDU
    force_dl_ofdma:    return DL_OFDMA even if no DL MU PPDU could be built
    enable_ul_ofdma:   try UL_OFDMA after a DL_OFDMA decision
    ul_psdu_size:      size in bytes of the solicited PSDU (HE TB PPDU)
    packing_strategy:  "legacy" (traffic-class packing) or "greedy"
    max_trigger_mcs:   MCS cap for responses solicited by MU-BAR triggers
    """
    n_stations: int = 4
    force_dl_ofdma: bool = False
    enable_ul_ofdma: bool = True
    ul_psdu_size: int = 500
    packing_strategy: str = "legacy"
    max_trigger_mcs: int = 5

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not MIN_STATIONS <= self.n_stations <= MAX_STATIONS:
            raise ConfigurationError(
                f"n_stations must be in [{MIN_STATIONS}, {MAX_STATIONS}], "
                f"got {self.n_stations}"
            )
        if self.enable_ul_ofdma and self.ul_psdu_size <= 0:
            raise ConfigurationError(
                "ul_psdu_size must be set to a non-null value when UL OFDMA is enabled"
            )
        if self.packing_strategy not in PACKING_STRATEGIES:
            raise ConfigurationError(
                f"Unknown packing_strategy: '{self.packing_strategy}'. "
                f"Valid options: {list(PACKING_STRATEGIES)}"
            )
        if not 0 <= self.max_trigger_mcs <= MAX_HE_MCS:
            raise ConfigurationError(
                f"max_trigger_mcs must be in [0, {MAX_HE_MCS}], got {self.max_trigger_mcs}"
            )

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "OfdmaConfig":
        o = cfg.get("ofdma", {})
        return cls(
            n_stations=int(o.get("n_stations", 4)),
            force_dl_ofdma=bool(o.get("force_dl_ofdma", False)),
            enable_ul_ofdma=bool(o.get("enable_ul_ofdma", True)),
            ul_psdu_size=int(o.get("ul_psdu_size", 500)),
            packing_strategy=str(o.get("packing_strategy", "legacy")),
            max_trigger_mcs=int(o.get("max_trigger_mcs", 5)),
        )


@dataclass
class PhyConfig:
    """MAC/PHY parameters of the simulated access point."""
    channel_width_mhz: int = 20
    guard_interval_ns: int = 800
    default_tx_power_level: int = 0
    tx_power_start_dbm: float = 16.0
    tx_power_end_dbm: float = 16.0
    n_tx_power_levels: int = 1
    default_mcs: int = 7
    default_nss: int = 1
    default_rssi_dbm: float = -60.0
    dl_ack_sequence: DlMuAckSequence = DlMuAckSequence.DL_MU_BAR
    ul_ack_sequence: UlMuAckSequence = UlMuAckSequence.UL_MULTI_STA_BLOCK_ACK
    # TXOP limit per AC in microseconds (0 = no TXOP)
    txop_limits_us: Dict[AccessCategory, float] = field(default_factory=lambda: {
        AccessCategory.AC_BE: 0.0,
        AccessCategory.AC_BK: 0.0,
        AccessCategory.AC_VI: 0.0,
        AccessCategory.AC_VO: 0.0,
    })

    def __post_init__(self):
        if self.channel_width_mhz not in SUPPORTED_BANDWIDTHS:
            raise ConfigurationError(
                f"Channel width {self.channel_width_mhz} MHz not supported. "
                f"Valid options: {list(SUPPORTED_BANDWIDTHS)}"
            )
        if self.guard_interval_ns not in HE_GUARD_INTERVALS_NS:
            raise ConfigurationError(
                f"Guard interval {self.guard_interval_ns} ns not supported. "
                f"Valid options: {list(HE_GUARD_INTERVALS_NS)}"
            )
        if not 0 <= self.default_mcs <= MAX_HE_MCS:
            raise ConfigurationError(
                f"default_mcs must be in [0, {MAX_HE_MCS}], got {self.default_mcs}"
            )
        if self.default_nss < 1:
            raise ConfigurationError(f"default_nss must be >= 1, got {self.default_nss}")

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "PhyConfig":
        p = cfg.get("phy", {})
        txop = p.get("txop_limits_us", {})
        try:
            dl_seq = DlMuAckSequence(p.get("dl_ack_sequence", "dl_mu_bar"))
            ul_seq = UlMuAckSequence(p.get("ul_ack_sequence", "ul_multi_sta_block_ack"))
            txop_limits = {AccessCategory[k.upper()]: float(v) for k, v in txop.items()}
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(f"Invalid phy section: {exc}") from exc
        limits = {ac: 0.0 for ac in AccessCategory}
        limits.update(txop_limits)
        return cls(
            channel_width_mhz=int(p.get("channel_width_mhz", 20)),
            guard_interval_ns=int(p.get("guard_interval_ns", 800)),
            default_tx_power_level=int(p.get("default_tx_power_level", 0)),
            tx_power_start_dbm=float(p.get("tx_power_start_dbm", 16.0)),
            tx_power_end_dbm=float(p.get("tx_power_end_dbm", 16.0)),
            n_tx_power_levels=int(p.get("n_tx_power_levels", 1)),
            default_mcs=int(p.get("default_mcs", 7)),
            default_nss=int(p.get("default_nss", 1)),
            default_rssi_dbm=float(p.get("default_rssi_dbm", -60.0)),
            dl_ack_sequence=dl_seq,
            ul_ack_sequence=ul_seq,
            txop_limits_us=limits,
        )


@dataclass
class TrafficConfig:
    """
    Traffic class membership and per-class frame sizes.

    Membership entries are MAC-48 strings or station indexes (station i
    has address mac_address(i)).
    """
    membership: Dict[TrafficClass, List] = field(default_factory=lambda: {
        TrafficClass.ON_OFF: [],
        TrafficClass.BULK: [],
        TrafficClass.WEB: [],
    })
    default_class: TrafficClass = TrafficClass.WEB
    # (median, 90th percentile) of frame sizes in bytes
    frame_size_bytes: Dict[TrafficClass, Tuple[float, float]] = field(default_factory=lambda: {
        TrafficClass.ON_OFF: (300.0, 900.0),
        TrafficClass.BULK: (1400.0, 1500.0),
        TrafficClass.WEB: (600.0, 1400.0),
    })
    arrival_prob: Dict[TrafficClass, float] = field(default_factory=lambda: {
        TrafficClass.ON_OFF: 0.3,
        TrafficClass.BULK: 0.9,
        TrafficClass.WEB: 0.5,
    })

    def __post_init__(self):
        for c, (p50, p90) in self.frame_size_bytes.items():
            if not 0 < p50 <= p90:
                raise ConfigurationError(
                    f"frame_size_bytes.{c.value} needs 0 < median <= p90, got [{p50}, {p90}]"
                )
        for c, prob in self.arrival_prob.items():
            if not 0.0 <= prob <= 1.0:
                raise ConfigurationError(
                    f"arrival_prob.{c.value} must be in [0, 1], got {prob}"
                )

    def build_classifier(self) -> TrafficClassifier:
        return TrafficClassifier.from_tables(self.membership, default=self.default_class)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "TrafficConfig":
        t = cfg.get("traffic", {})
        defaults = cls()
        try:
            membership = {TrafficClass(k): list(v or []) for k, v in t.get("membership", {}).items()}
            sizes = {TrafficClass(k): (float(v[0]), float(v[1]))
                     for k, v in t.get("frame_size_bytes", {}).items()}
            arrivals = {TrafficClass(k): float(v) for k, v in t.get("arrival_prob", {}).items()}
            default_class = TrafficClass(t.get("default_class", "web"))
        except (ValueError, TypeError, IndexError) as exc:
            raise ConfigurationError(f"Invalid traffic section: {exc}") from exc
        for c in TrafficClass:
            membership.setdefault(c, [])
            sizes.setdefault(c, defaults.frame_size_bytes[c])
            arrivals.setdefault(c, defaults.arrival_prob[c])
        return cls(
            membership=membership,
            default_class=default_class,
            frame_size_bytes=sizes,
            arrival_prob=arrivals,
        )


@dataclass
class SimulationConfig:
    """Run length, population and output locations of a simulation."""
    n_rounds: int = 1000
    n_associated: int = 8
    seed: int = 42
    buffer_status_unknown_prob: float = 0.2
    log_dir: str = "./logs"
    result_dir: str = "./results"

    def __post_init__(self):
        if self.n_rounds < 0 or self.n_associated < 0:
            raise ConfigurationError("n_rounds and n_associated must be non-negative")
        if not 0.0 <= self.buffer_status_unknown_prob <= 1.0:
            raise ConfigurationError(
                f"buffer_status_unknown_prob must be in [0, 1], "
                f"got {self.buffer_status_unknown_prob}"
            )

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "SimulationConfig":
        s = cfg.get("simulation", {})
        return cls(
            n_rounds=int(s.get("n_rounds", 1000)),
            n_associated=int(s.get("n_associated", 8)),
            seed=int(s.get("seed", 42)),
            buffer_status_unknown_prob=float(s.get("buffer_status_unknown_prob", 0.2)),
            log_dir=str(s.get("log_dir", "./logs")),
            result_dir=str(s.get("result_dir", "./results")),
        )


@dataclass
class ScenarioConfig:
    """Complete scenario configuration bundling all sections."""
    ofdma: OfdmaConfig = field(default_factory=OfdmaConfig)
    phy: PhyConfig = field(default_factory=PhyConfig)
    traffic: TrafficConfig = field(default_factory=TrafficConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]]) -> "ScenarioConfig":
        cfg = cfg or {}
        return cls(
            ofdma=OfdmaConfig.from_config(cfg),
            phy=PhyConfig.from_config(cfg),
            traffic=TrafficConfig.from_config(cfg),
            simulation=SimulationConfig.from_config(cfg),
        )
