"""
Data types shared by the OFDMA scheduler and the MAC/PHY layer.

Contains:
- Access categories and the TID -> AC mapping
- Transmission formats and acknowledgment sequence kinds
- Candidate / per-station info records
- TX vector, TX parameters and trigger descriptors handed to the MAC
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple

from .he_ru import RuSpec


class AccessCategory(IntEnum):
    """EDCA access categories, in the MAC's AC index order."""
    AC_BE = 0
    AC_BK = 1
    AC_VI = 2
    AC_VO = 3


# IEEE 802.11-2020 Table 10-1 (UP-to-AC mapping)
_TID_TO_AC: Dict[int, AccessCategory] = {
    0: AccessCategory.AC_BE,
    1: AccessCategory.AC_BK,
    2: AccessCategory.AC_BK,
    3: AccessCategory.AC_BE,
    4: AccessCategory.AC_VI,
    5: AccessCategory.AC_VI,
    6: AccessCategory.AC_VO,
    7: AccessCategory.AC_VO,
}

# TIDs probed after the TID of the frame that triggered scheduling
TID_FALLBACK_ORDER: Tuple[int, ...] = (1, 2, 0, 3, 4, 5, 6, 7)


def tid_to_ac(tid: int) -> AccessCategory:
    if tid not in _TID_TO_AC:
        raise ValueError(f"Invalid TID: {tid}")
    return _TID_TO_AC[tid]


class TxFormat(Enum):
    """Outcome of one scheduling decision."""
    NON_OFDMA = "non_ofdma"
    DL_OFDMA = "dl_ofdma"
    UL_OFDMA = "ul_ofdma"
    CONFIG_ERROR = "config_error"


class DlMuAckSequence(Enum):
    """How acknowledgments are collected after a DL MU PPDU."""
    DL_SU_FORMAT = "dl_su_format"
    DL_MU_BAR = "dl_mu_bar"
    DL_AGGREGATE_TF = "dl_aggregate_tf"


class UlMuAckSequence(Enum):
    """How the AP acknowledges the HE TB PPDUs of an UL MU exchange."""
    UL_MULTI_STA_BLOCK_ACK = "ul_multi_sta_block_ack"
    UL_BLOCK_ACK_IN_DL_MU = "ul_block_ack_in_dl_mu"


class BlockAckType(Enum):
    COMPRESSED = "compressed"
    EXTENDED_COMPRESSED = "extended_compressed"
    MULTI_TID = "multi_tid"
    MULTI_STA = "multi_sta"


class BlockAckReqType(Enum):
    COMPRESSED = "compressed"
    EXTENDED_COMPRESSED = "extended_compressed"
    MULTI_TID = "multi_tid"


class TriggerFrameType(Enum):
    BASIC_TRIGGER = "basic"
    MU_BAR_TRIGGER = "mu_bar"


@dataclass(frozen=True)
class Frame:
    """Head-of-queue frame descriptor as seen by the scheduler."""
    size: int
    tid: int


@dataclass(frozen=True)
class StaInfo:
    """Per-station info of a candidate receiver."""
    aid: int
    tid: int


@dataclass(frozen=True)
class Candidate:
    """A station selected for the current opportunity and the size of
    its pending frame in bytes."""
    address: str
    size: int
    info: StaInfo

    @property
    def aid(self) -> int:
        return self.info.aid


@dataclass
class HeMuUserInfo:
    """RU and transmission mode of one user of an HE MU PPDU."""
    ru: RuSpec
    mcs: int
    nss: int = 1


@dataclass
class TxVector:
    """HE MU TX vector: common parameters plus per-user info keyed by AID."""
    preamble: str = "HE_MU"
    channel_width: int = 20
    guard_interval_ns: int = 800
    tx_power_level: int = 0
    length: int = 0
    user_info: Dict[int, HeMuUserInfo] = field(default_factory=dict)

    def set_user_info(self, aid: int, info: HeMuUserInfo) -> None:
        self.user_info[aid] = info

    def set_ru(self, ru: RuSpec, aid: int) -> None:
        self.user_info[aid].ru = ru

    def get_ru(self, aid: int) -> RuSpec:
        return self.user_info[aid].ru

    def copy(self) -> "TxVector":
        return copy.deepcopy(self)


@dataclass
class TxParams:
    """MAC transmission parameters: the chosen ack sequence and the
    per-station acknowledgment setup."""
    dl_mu_ack_sequence: Optional[DlMuAckSequence] = None
    ul_mu_ack_sequence: Optional[UlMuAckSequence] = None
    block_ack_requests: Dict[str, Tuple[BlockAckReqType, BlockAckType]] = field(default_factory=dict)
    block_acks: Dict[str, BlockAckType] = field(default_factory=dict)

    def enable_block_ack_request(self, address: str,
                                 bar_type: BlockAckReqType,
                                 ba_type: BlockAckType) -> None:
        self.block_ack_requests[address] = (bar_type, ba_type)

    def enable_block_ack(self, address: str, ba_type: BlockAckType) -> None:
        self.block_acks[address] = ba_type


@dataclass
class TriggerInfo:
    """Trigger frame contents relevant to scheduling: the solicited users,
    the UL length (L-SIG) and the power control hints."""
    trigger_type: TriggerFrameType
    user_info: Dict[int, HeMuUserInfo] = field(default_factory=dict)
    channel_width: int = 20
    guard_interval_ns: int = 800
    ul_length: int = 0
    ap_tx_power_dbm: Optional[float] = None
    ul_target_rssi_dbm: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_tx_vector(cls, trigger_type: TriggerFrameType,
                       tx_vector: TxVector) -> "TriggerInfo":
        return cls(
            trigger_type=trigger_type,
            user_info=copy.deepcopy(tx_vector.user_info),
            channel_width=tx_vector.channel_width,
            guard_interval_ns=tx_vector.guard_interval_ns,
        )


@dataclass
class DlOfdmaInfo:
    """Everything the MAC needs to send a DL MU PPDU."""
    sta_info: Dict[str, StaInfo] = field(default_factory=dict)
    tx_vector: Optional[TxVector] = None
    params: Optional[TxParams] = None
    trigger: Optional[TriggerInfo] = None


@dataclass
class UlOfdmaInfo:
    """Everything the MAC needs to solicit an UL MU transmission."""
    params: Optional[TxParams] = None
    trigger: Optional[TriggerInfo] = None
