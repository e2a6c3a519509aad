"""
Round-robin selection of the receivers of a DL MU PPDU.

Stations are visited in AID order starting from the scheduling cursor.
A station becomes a candidate if the AP holds, for some TID whose AC is
not below the primary AC, a frame covered by a block ack agreement that
fits in the time budget when sent on an RU of the size the channel
would give to a full batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from . import phy
from .he_ru import RuSpec, RuType
from .mac import MacLayer
from .types import (
    AccessCategory,
    Candidate,
    Frame,
    HeMuUserInfo,
    StaInfo,
    TID_FALLBACK_ORDER,
    TxVector,
    tid_to_ac,
)

logger = logging.getLogger("rr_ofdma.selector")


@dataclass
class SelectionResult:
    """Selected candidates and the AID the next round should start from."""
    candidates: List[Candidate] = field(default_factory=list)
    next_station: int = 0


def resolve_start_station(sta_list: Mapping[int, str], start_station: int) -> int:
    """Keep the cursor if that station is still associated, else restart
    from the first associated station."""
    if start_station in sta_list:
        return start_station
    return next(iter(sta_list))


class StationSelector:
    """Builds the candidate batch of one scheduling decision."""

    def __init__(self, mac: MacLayer, n_stations: int):
        self.mac = mac
        self.n_stations = n_stations

    def fits(self, frame: Frame, aid: int, address: str, ru_type: RuType,
             txop_limit_us: Optional[float]) -> bool:
        """
        Check size and time limits of a frame sent alone on an RU of the
        given type. txop_limit_us is None when no TXOP limit applies.
        """
        if frame.size > phy.MAX_HE_AMPDU_SIZE:
            return False
        mcs, nss = self.mac.data_tx_mode(address)
        tx_vector = TxVector(
            channel_width=self.mac.channel_width(),
            guard_interval_ns=self.mac.guard_interval_ns(),
        )
        tx_vector.set_user_info(aid, HeMuUserInfo(RuSpec(ru_type, 1, False), mcs, nss))
        duration = self.mac.tx_duration_us(frame.size, tx_vector, aid)
        if duration > self.mac.max_ppdu_duration_us(tx_vector.preamble):
            return False
        return txop_limit_us is None or duration <= txop_limit_us

    def select(
        self,
        sta_list: Mapping[int, str],
        start_station: int,
        current_tid: int,
        primary_ac: AccessCategory,
        txop_limit_us: Optional[float],
        ru_type: RuType
    ) -> SelectionResult:
        """
        Visit stations circularly from start_station until n_stations
        candidates are found or every station has been visited once.

        Only the head-of-line frame of each TID is checked.
        """
        if not sta_list:
            return SelectionResult()

        aids = list(sta_list)
        start_station = resolve_start_station(sta_list, start_station)
        pos = aids.index(start_station)
        candidates: List[Candidate] = []

        while True:
            aid = aids[pos]
            address = sta_list[aid]
            logger.debug("Next candidate STA (MAC=%s, AID=%d)", address, aid)

            for tid in (current_tid,) + TID_FALLBACK_ORDER:
                ac = tid_to_ac(tid)
                # block ack is required by every DL MU ack sequence
                if ac < primary_ac or not self.mac.ba_agreement_established(address, tid):
                    continue
                frame = self.mac.peek_next_frame(tid, address)
                if frame is None:
                    logger.debug("No frames to send to %s with TID=%d", address, tid)
                    continue
                if self.fits(frame, aid, address, ru_type, txop_limit_us):
                    logger.debug("Adding candidate STA (MAC=%s, AID=%d) TID=%d",
                                 address, aid, tid)
                    candidates.append(Candidate(address, frame.size, StaInfo(aid, tid)))
                    break

            pos = (pos + 1) % len(aids)
            if len(candidates) >= self.n_stations or aids[pos] == start_station:
                break

        return SelectionResult(candidates=candidates, next_station=aids[pos])
