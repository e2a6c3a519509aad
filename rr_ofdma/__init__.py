"""
Round-robin OFDMA scheduling for HE (802.11ax) access points.

Modules:
- he_ru: HE resource unit table
- phy: HE PPDU timing model
- types: frames, TX vectors, ack setup and trigger descriptors
- mac: MAC/PHY interface and in-memory simulated MAC
- traffic: traffic classes of stations
- selector: round-robin candidate selection
- packer: RU packing strategies
- manager: transmission format decision and DL/UL MU parameters
- config: scenario configuration
- metrics: scheduling metrics and simulation logging
- simulation: round-based simulation driver
"""

from .config import ConfigurationError, OfdmaConfig, PhyConfig, ScenarioConfig
from .he_ru import RuSpec, RuType
from .mac import MacLayer, SimulatedMac
from .manager import RrOfdmaManager
from .packer import PackingStrategy, RuPacker
from .selector import StationSelector
from .traffic import TrafficClass, TrafficClassifier
from .types import Candidate, Frame, StaInfo, TxFormat

__all__ = [
    "ConfigurationError",
    "OfdmaConfig",
    "PhyConfig",
    "ScenarioConfig",
    "RuSpec",
    "RuType",
    "MacLayer",
    "SimulatedMac",
    "RrOfdmaManager",
    "PackingStrategy",
    "RuPacker",
    "StationSelector",
    "TrafficClass",
    "TrafficClassifier",
    "Candidate",
    "Frame",
    "StaInfo",
    "TxFormat",
]
