"""
Traffic classification of candidate stations.

Stations are split into three traffic classes by static membership
tables supplied by the caller (an address -> class mapping). The packer
uses the classes to decide which stations get narrow or wide RUs:

  ON_OFF   bursty short flows, reserved 26-tone RUs
  BULK     long transfers, granted 106/52-tone RUs
  WEB      request/response traffic, fills the remaining 26-tone RUs

Stations missing from every table fall back to the default class (WEB).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .types import Candidate

logger = logging.getLogger("rr_ofdma.traffic")


class TrafficClass(Enum):
    ON_OFF = "on_off"
    BULK = "bulk"
    WEB = "web"


# Lookup precedence when a station is listed in more than one table
CLASS_PRECEDENCE = (TrafficClass.BULK, TrafficClass.ON_OFF, TrafficClass.WEB)

DEFAULT_TRAFFIC_CLASS = TrafficClass.WEB


def mac_address(index: int) -> str:
    """Format a station index as a MAC-48 address, e.g. 3 -> 00:00:00:00:00:03."""
    if not 0 <= index < 2 ** 48:
        raise ValueError(f"Address index out of range: {index}")
    raw = f"{index:012x}"
    return ":".join(raw[i:i + 2] for i in range(0, 12, 2))


def normalize_address(entry) -> str:
    """Accept either a MAC-48 string or a station index."""
    if isinstance(entry, int):
        return mac_address(entry)
    return str(entry).lower()


def sort_by_pending_size(candidates: Sequence[Candidate]) -> List[Candidate]:
    """Descending pending size; equal sizes keep their relative order."""
    return sorted(candidates, key=lambda c: c.size, reverse=True)


class TrafficClassifier:
    """Maps station addresses to traffic classes."""

    def __init__(
        self,
        membership: Optional[Mapping[str, TrafficClass]] = None,
        default: TrafficClass = DEFAULT_TRAFFIC_CLASS
    ):
        self.membership: Dict[str, TrafficClass] = {
            normalize_address(addr): cls for addr, cls in (membership or {}).items()
        }
        self.default = default

    @classmethod
    def from_tables(
        cls,
        tables: Mapping[TrafficClass, Iterable],
        default: TrafficClass = DEFAULT_TRAFFIC_CLASS
    ) -> "TrafficClassifier":
        """Build from one address list per class. A station listed in
        several tables takes the class that comes first in CLASS_PRECEDENCE."""
        membership: Dict[str, TrafficClass] = {}
        for traffic_class in reversed(CLASS_PRECEDENCE):
            for entry in tables.get(traffic_class, ()):
                membership[normalize_address(entry)] = traffic_class
        return cls(membership, default=default)

    def classify(self, address: str) -> TrafficClass:
        return self.membership.get(normalize_address(address), self.default)

    def partition(self, candidates: Sequence[Candidate]) -> Dict[TrafficClass, List[Candidate]]:
        """Split candidates by class, each class sorted by pending size."""
        classes: Dict[TrafficClass, List[Candidate]] = {c: [] for c in TrafficClass}
        for cand in candidates:
            traffic_class = self.classify(cand.address)
            logger.debug("STA %s (AID=%d) classified as %s",
                         cand.address, cand.aid, traffic_class.value)
            classes[traffic_class].append(cand)
        return {c: sort_by_pending_size(members) for c, members in classes.items()}
