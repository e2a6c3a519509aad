"""
MAC/PHY layer seen by the OFDMA scheduler.

MacLayer lists the facts the scheduler queries: channel and power
parameters, the association table, queues and block ack agreements,
buffer status reports, TXOP state and frame/response durations. All
queries are synchronous and do not change state visible to the
scheduler.

SimulatedMac implements MacLayer in-process on top of the timing model
in phy.py. It is used by the tests and by the simulation runner.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from typing import Deque, Dict, Optional, Set, Tuple

from . import phy
from .config import PhyConfig
from .traffic import mac_address
from .types import (
    AccessCategory,
    BlockAckReqType,
    BlockAckType,
    DlMuAckSequence,
    Frame,
    TriggerInfo,
    TxParams,
    TxVector,
    UlMuAckSequence,
)

logger = logging.getLogger("rr_ofdma.mac")

# Buffer status codes (maximum queue size subfield)
BUFFER_STATUS_UNBOUNDED = 254
BUFFER_STATUS_UNKNOWN = 255


class MacLayer(ABC):
    """Interface of the MAC/PHY layer consumed by the scheduler."""

    # -- PHY ---------------------------------------------------------------

    @abstractmethod
    def channel_width(self) -> int:
        ...

    @abstractmethod
    def guard_interval_ns(self) -> int:
        ...

    @abstractmethod
    def default_tx_power_level(self) -> int:
        ...

    @abstractmethod
    def tx_power_dbm(self, level: int) -> float:
        ...

    @abstractmethod
    def max_ppdu_duration_us(self, preamble: str = "HE_MU") -> float:
        ...

    @abstractmethod
    def tx_duration_us(self, size_bytes: int, tx_vector: TxVector,
                       aid: Optional[int] = None) -> float:
        ...

    @abstractmethod
    def response_duration_us(self, params: TxParams, tx_vector: TxVector,
                             trigger: Optional[TriggerInfo] = None) -> float:
        ...

    @abstractmethod
    def trigger_tx_duration_us(self, trigger: TriggerInfo) -> float:
        ...

    @abstractmethod
    def ul_length_for_block_acks(self, trigger: TriggerInfo, params: TxParams) -> int:
        ...

    # -- MAC ---------------------------------------------------------------

    @abstractmethod
    def associated_stations(self) -> "OrderedDict[int, str]":
        """AID -> address of the associated stations, in AID order."""
        ...

    @abstractmethod
    def peek_next_frame(self, tid: int, address: str) -> Optional[Frame]:
        ...

    @abstractmethod
    def ba_agreement_established(self, address: str, tid: int) -> bool:
        ...

    @abstractmethod
    def block_ack_req_type(self, address: str, tid: int) -> BlockAckReqType:
        ...

    @abstractmethod
    def block_ack_type(self, address: str, tid: int) -> BlockAckType:
        ...

    @abstractmethod
    def data_tx_mode(self, address: str) -> Tuple[int, int]:
        """(MCS, NSS) used for single-user frames to the station."""
        ...

    @abstractmethod
    def buffer_status(self, address: str) -> int:
        ...

    @abstractmethod
    def most_recent_rssi_dbm(self, address: str) -> float:
        ...

    @abstractmethod
    def txop_limit_us(self, ac: AccessCategory) -> float:
        ...

    @abstractmethod
    def txop_remaining_us(self, ac: AccessCategory) -> float:
        """Remaining time of the TXOP held by the AC (0 if none)."""
        ...

    @abstractmethod
    def ack_sequence_for_dl_mu(self, ac: AccessCategory) -> DlMuAckSequence:
        ...

    @abstractmethod
    def ack_sequence_for_ul_mu(self, ac: AccessCategory) -> UlMuAckSequence:
        ...


class SimulatedMac(MacLayer):
    """
    In-memory access point MAC/PHY.

    Keeps the association table, per-(station, TID) queues, block ack
    agreements, buffer status reports and TXOP state, and computes frame
    durations with the HE timing model.
    """

    def __init__(self, config: Optional[PhyConfig] = None):
        self.config = config or PhyConfig()
        self._stations: Dict[int, str] = {}
        self._queues: Dict[Tuple[str, int], Deque[Frame]] = {}
        self._agreements: Dict[Tuple[str, int], Tuple[BlockAckReqType, BlockAckType]] = {}
        self._buffer_status: Dict[str, int] = {}
        self._rssi: Dict[str, float] = {}
        self._tx_mode: Dict[str, Tuple[int, int]] = {}
        self._txop_remaining: Dict[AccessCategory, float] = {ac: 0.0 for ac in AccessCategory}
        self.dl_ack_sequence = self.config.dl_ack_sequence
        self.ul_ack_sequence = self.config.ul_ack_sequence

    # -- state management --------------------------------------------------

    def associate(self, aid: int, address: Optional[str] = None) -> str:
        """Associate a station; its address defaults to mac_address(aid)."""
        if aid in self._stations:
            raise ValueError(f"AID {aid} already in use by {self._stations[aid]}")
        address = address or mac_address(aid)
        self._stations[aid] = address
        return address

    def disassociate(self, aid: int) -> None:
        address = self._stations.pop(aid)
        for key in [k for k in self._queues if k[0] == address]:
            del self._queues[key]
        for key in [k for k in self._agreements if k[0] == address]:
            del self._agreements[key]
        self._buffer_status.pop(address, None)

    def establish_ba(self, address: str, tid: int,
                     bar_type: BlockAckReqType = BlockAckReqType.COMPRESSED,
                     ba_type: BlockAckType = BlockAckType.COMPRESSED) -> None:
        self._agreements[(address, tid)] = (bar_type, ba_type)

    def enqueue(self, address: str, tid: int, size: int) -> None:
        self._queues.setdefault((address, tid), deque()).append(Frame(size=size, tid=tid))

    def dequeue(self, address: str, tid: int) -> Optional[Frame]:
        queue = self._queues.get((address, tid))
        if not queue:
            return None
        return queue.popleft()

    def queue_length(self, address: str, tid: Optional[int] = None) -> int:
        if tid is not None:
            return len(self._queues.get((address, tid), ()))
        return sum(len(q) for (addr, _), q in self._queues.items() if addr == address)

    def set_buffer_status(self, address: str, code: int) -> None:
        if not 0 <= code <= 255:
            raise ValueError(f"Invalid buffer status code: {code}")
        self._buffer_status[address] = code

    def set_rssi(self, address: str, rssi_dbm: float) -> None:
        self._rssi[address] = rssi_dbm

    def set_tx_mode(self, address: str, mcs: int, nss: int = 1) -> None:
        self._tx_mode[address] = (mcs, nss)

    def start_txop(self, ac: AccessCategory, remaining_us: Optional[float] = None) -> None:
        """Grant a TXOP to the AC (the full TXOP limit unless given)."""
        limit = self.config.txop_limits_us.get(ac, 0.0)
        self._txop_remaining[ac] = limit if remaining_us is None else remaining_us

    def end_txop(self, ac: AccessCategory) -> None:
        self._txop_remaining[ac] = 0.0

    # -- PHY ---------------------------------------------------------------

    def channel_width(self) -> int:
        return self.config.channel_width_mhz

    def guard_interval_ns(self) -> int:
        return self.config.guard_interval_ns

    def default_tx_power_level(self) -> int:
        return self.config.default_tx_power_level

    def tx_power_dbm(self, level: int) -> float:
        return phy.tx_power_dbm(level, self.config.tx_power_start_dbm,
                                self.config.tx_power_end_dbm,
                                self.config.n_tx_power_levels)

    def max_ppdu_duration_us(self, preamble: str = "HE_MU") -> float:
        return phy.MAX_HE_PPDU_DURATION_US

    def tx_duration_us(self, size_bytes: int, tx_vector: TxVector,
                       aid: Optional[int] = None) -> float:
        """
        Duration of an HE MU PPDU carrying size_bytes to the user with the
        given AID, or to the slowest user if no AID is given.
        """
        if not tx_vector.user_info:
            return phy.legacy_duration_us(size_bytes)
        users = tx_vector.user_info
        max_nss = max(u.nss for u in users.values())
        preamble = phy.he_mu_preamble_us(len(users), max_nss)
        targets = [users[aid]] if aid is not None else list(users.values())
        return max(
            phy.he_ppdu_duration_us(size_bytes, u.ru.ru_type, u.mcs, u.nss,
                                    tx_vector.guard_interval_ns, preamble)
            for u in targets
        )

    def _tb_ppdu_duration_us(self, trigger: Optional[TriggerInfo]) -> float:
        if trigger is None or trigger.ul_length <= 0:
            return 0.0
        return phy.tb_duration_from_lsig_length(trigger.ul_length)

    def trigger_tx_duration_us(self, trigger: TriggerInfo) -> float:
        return phy.legacy_duration_us(phy.trigger_frame_size(len(trigger.user_info)))

    def response_duration_us(self, params: TxParams, tx_vector: TxVector,
                             trigger: Optional[TriggerInfo] = None) -> float:
        """Time from the end of the PPDU to the end of the acknowledgments."""
        sifs = phy.SIFS_US
        if params.ul_mu_ack_sequence is not None:
            # SIFS + HE TB PPDUs + SIFS + Multi-STA BlockAck
            multi_sta_ba = phy.legacy_duration_us(
                phy.multi_sta_block_ack_size(len(params.block_acks)))
            return 2 * sifs + self._tb_ppdu_duration_us(trigger) + multi_sta_ba

        seq = params.dl_mu_ack_sequence
        bar = phy.legacy_duration_us(phy.BLOCK_ACK_REQ_SIZE)
        ba = phy.legacy_duration_us(phy.COMPRESSED_BLOCK_ACK_SIZE)
        if seq == DlMuAckSequence.DL_SU_FORMAT:
            # first station replies immediately, the others are polled by BAR
            n = len(params.block_ack_requests)
            if n == 0:
                return 0.0
            return sifs + ba + (n - 1) * (2 * sifs + bar + ba)
        if seq == DlMuAckSequence.DL_MU_BAR:
            trigger_time = self.trigger_tx_duration_us(trigger) if trigger else 0.0
            return 2 * sifs + trigger_time + self._tb_ppdu_duration_us(trigger)
        if seq == DlMuAckSequence.DL_AGGREGATE_TF:
            return sifs + self._tb_ppdu_duration_us(trigger)
        return 0.0

    def ul_length_for_block_acks(self, trigger: TriggerInfo, params: TxParams) -> int:
        """L-SIG length of HE TB PPDUs long enough for every solicited BlockAck."""
        if not trigger.user_info:
            return 0
        max_nss = max(u.nss for u in trigger.user_info.values())
        preamble = phy.he_tb_preamble_us(max_nss)
        duration = max(
            phy.he_ppdu_duration_us(phy.COMPRESSED_BLOCK_ACK_SIZE, u.ru.ru_type,
                                    u.mcs, u.nss, trigger.guard_interval_ns, preamble)
            for u in trigger.user_info.values()
        )
        return phy.lsig_length_from_tb_duration(duration)

    # -- MAC ---------------------------------------------------------------

    def associated_stations(self) -> "OrderedDict[int, str]":
        return OrderedDict(sorted(self._stations.items()))

    def peek_next_frame(self, tid: int, address: str) -> Optional[Frame]:
        queue = self._queues.get((address, tid))
        return queue[0] if queue else None

    def ba_agreement_established(self, address: str, tid: int) -> bool:
        return (address, tid) in self._agreements

    def block_ack_req_type(self, address: str, tid: int) -> BlockAckReqType:
        return self._agreements[(address, tid)][0]

    def block_ack_type(self, address: str, tid: int) -> BlockAckType:
        return self._agreements[(address, tid)][1]

    def data_tx_mode(self, address: str) -> Tuple[int, int]:
        return self._tx_mode.get(address, (self.config.default_mcs, self.config.default_nss))

    def buffer_status(self, address: str) -> int:
        return self._buffer_status.get(address, BUFFER_STATUS_UNKNOWN)

    def most_recent_rssi_dbm(self, address: str) -> float:
        return self._rssi.get(address, self.config.default_rssi_dbm)

    def txop_limit_us(self, ac: AccessCategory) -> float:
        return self.config.txop_limits_us.get(ac, 0.0)

    def txop_remaining_us(self, ac: AccessCategory) -> float:
        return self._txop_remaining.get(ac, 0.0)

    def ack_sequence_for_dl_mu(self, ac: AccessCategory) -> DlMuAckSequence:
        return self.dl_ack_sequence

    def ack_sequence_for_ul_mu(self, ac: AccessCategory) -> UlMuAckSequence:
        return self.ul_ack_sequence

    def stations_with_traffic(self) -> Set[str]:
        return {addr for (addr, _), q in self._queues.items() if q}
