"""
HE Resource Unit (RU) Table

Derives the number of RUs of each size from the HE tone plans in
IEEE 802.11ax-2021, Section 27.3.2.2 (Resource unit, guard and DC
subcarriers). RU counts are looked up from the table below, not
computed ad hoc by the schedulers.

Tone plan summary (RUs per channel):

    RU size   20 MHz   40 MHz   80 MHz
    26-tone      9       18       37
    52-tone      4        8       16
    106-tone     2        4        8
    242-tone     1        2        4
    484-tone     -        1        2
    996-tone     -        -        1

A 160 MHz channel is two 80 MHz segments; every RU of the 80 MHz plan
exists once per segment, plus the 2x996-tone RU spanning the channel.

Reference:
- IEEE Std 802.11ax-2021, Tables 27-7 to 27-9 (subcarrier indices of RUs)
- IEEE Std 802.11ax-2021, Table 27-26 (number of data subcarriers N_SD)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterator, List, Tuple


class RuType(IntEnum):
    """RU sizes, enumerated from narrowest to widest."""
    RU_26_TONE = 26
    RU_52_TONE = 52
    RU_106_TONE = 106
    RU_242_TONE = 242
    RU_484_TONE = 484
    RU_996_TONE = 996
    RU_2x996_TONE = 1992


# Number of RUs of each type per channel width
# Format: RU_COUNT_TABLE[(bandwidth_mhz, ru_type)] = n_rus
# Insertion order matters: schedulers scan this table in its natural
# order (bandwidth ascending, then RU type ascending).
RU_COUNT_TABLE: Dict[Tuple[int, RuType], int] = {
    (20, RuType.RU_26_TONE): 9,
    (20, RuType.RU_52_TONE): 4,
    (20, RuType.RU_106_TONE): 2,
    (20, RuType.RU_242_TONE): 1,
    (40, RuType.RU_26_TONE): 18,
    (40, RuType.RU_52_TONE): 8,
    (40, RuType.RU_106_TONE): 4,
    (40, RuType.RU_242_TONE): 2,
    (40, RuType.RU_484_TONE): 1,
    (80, RuType.RU_26_TONE): 37,
    (80, RuType.RU_52_TONE): 16,
    (80, RuType.RU_106_TONE): 8,
    (80, RuType.RU_242_TONE): 4,
    (80, RuType.RU_484_TONE): 2,
    (80, RuType.RU_996_TONE): 1,
}

# Data subcarriers per RU (N_SD), Table 27-26
DATA_SUBCARRIERS: Dict[RuType, int] = {
    RuType.RU_26_TONE: 24,
    RuType.RU_52_TONE: 48,
    RuType.RU_106_TONE: 102,
    RuType.RU_242_TONE: 234,
    RuType.RU_484_TONE: 468,
    RuType.RU_996_TONE: 980,
    RuType.RU_2x996_TONE: 1960,
}

SUPPORTED_BANDWIDTHS = (20, 40, 80, 160)

# Position of the two 26-tone RUs inside each 52-tone RU of a 242-tone RU.
# The 26-tone RU at offset 5 is the center RU, not covered by any 52-tone RU.
_RU26_OFFSETS_IN_RU52 = ((1, 2), (3, 4), (6, 7), (8, 9))
_CENTER_RU26_OFFSET = 5
_CENTER_RU26_INDEX_80MHZ = 19


@dataclass(frozen=True)
class RuSpec:
    """An RU of a given type and index (from 1), within the primary or
    secondary 80 MHz segment of the channel."""
    ru_type: RuType
    index: int
    primary80: bool = True

    @property
    def tones(self) -> int:
        return int(self.ru_type)

    def __str__(self) -> str:
        half = "P80" if self.primary80 else "S80"
        return f"RU{int(self.ru_type)}#{self.index}({half})"


def check_bandwidth(bandwidth_mhz: int) -> None:
    """Raise ValueError if the channel width has no HE tone plan."""
    if bandwidth_mhz not in SUPPORTED_BANDWIDTHS:
        raise ValueError(
            f"Bandwidth {bandwidth_mhz} MHz not supported. "
            f"Valid options: {list(SUPPORTED_BANDWIDTHS)} MHz"
        )


def get_n_rus(bandwidth_mhz: int, ru_type: RuType) -> int:
    """
    Get the number of RUs of the given type in a channel.

    For 160 MHz, RUs narrower than 2x996 tones are counted on both
    80 MHz segments.

    Example:
        >>> get_n_rus(20, RuType.RU_52_TONE)
        4
        >>> get_n_rus(160, RuType.RU_996_TONE)
        2
    """
    check_bandwidth(bandwidth_mhz)
    if ru_type == RuType.RU_2x996_TONE:
        return 1 if bandwidth_mhz == 160 else 0
    if bandwidth_mhz == 160:
        return 2 * RU_COUNT_TABLE.get((80, ru_type), 0)
    return RU_COUNT_TABLE.get((bandwidth_mhz, ru_type), 0)


def iter_ru_groups() -> Iterator[Tuple[int, RuType, int]]:
    """Yield (bandwidth_mhz, ru_type, n_rus) in natural table order."""
    for (bw, ru_type), n_rus in RU_COUNT_TABLE.items():
        yield bw, ru_type, n_rus


def get_data_subcarriers(ru_type: RuType) -> int:
    return DATA_SUBCARRIERS[ru_type]


def get_max_rus(bandwidth_mhz: int) -> int:
    """Largest number of RUs the channel can be split into (all 26-tone)."""
    return get_n_rus(bandwidth_mhz, RuType.RU_26_TONE)


# ---------------------------------------------------------------------------
# RU tree: which RUs a wider RU can be split into
# ---------------------------------------------------------------------------

def get_root_ru(bandwidth_mhz: int) -> RuSpec:
    """The RU spanning the whole channel."""
    check_bandwidth(bandwidth_mhz)
    return {
        20: RuSpec(RuType.RU_242_TONE, 1),
        40: RuSpec(RuType.RU_484_TONE, 1),
        80: RuSpec(RuType.RU_996_TONE, 1),
        160: RuSpec(RuType.RU_2x996_TONE, 1),
    }[bandwidth_mhz]


def _ru26_base(bandwidth_mhz: int, ru242_index: int) -> int:
    """Index of the 26-tone RU preceding the given 242-tone RU."""
    base = 9 * (ru242_index - 1)
    if bandwidth_mhz >= 80 and ru242_index > 2:
        # skip the center 26-tone RU of the 80 MHz segment
        base += 1
    return base


def get_child_rus(ru: RuSpec, bandwidth_mhz: int) -> List[RuSpec]:
    """
    Split an RU into the narrower RUs occupying the same tones, in
    ascending frequency order. A 26-tone RU has no children.

    A 242-tone RU splits into two 106-tone RUs around its center 26-tone
    RU; a 996-tone RU splits into two 484-tone RUs around the center
    26-tone RU of the 80 MHz segment.
    """
    check_bandwidth(bandwidth_mhz)
    bw = 80 if bandwidth_mhz == 160 else bandwidth_mhz
    p80 = ru.primary80
    i = ru.index

    if ru.ru_type == RuType.RU_2x996_TONE:
        return [RuSpec(RuType.RU_996_TONE, 1, True),
                RuSpec(RuType.RU_996_TONE, 1, False)]
    if ru.ru_type == RuType.RU_996_TONE:
        return [RuSpec(RuType.RU_484_TONE, 1, p80),
                RuSpec(RuType.RU_26_TONE, _CENTER_RU26_INDEX_80MHZ, p80),
                RuSpec(RuType.RU_484_TONE, 2, p80)]
    if ru.ru_type == RuType.RU_484_TONE:
        return [RuSpec(RuType.RU_242_TONE, 2 * i - 1, p80),
                RuSpec(RuType.RU_242_TONE, 2 * i, p80)]
    if ru.ru_type == RuType.RU_242_TONE:
        base = _ru26_base(bw, i)
        return [RuSpec(RuType.RU_106_TONE, 2 * i - 1, p80),
                RuSpec(RuType.RU_26_TONE, base + _CENTER_RU26_OFFSET, p80),
                RuSpec(RuType.RU_106_TONE, 2 * i, p80)]
    if ru.ru_type == RuType.RU_106_TONE:
        return [RuSpec(RuType.RU_52_TONE, 2 * i - 1, p80),
                RuSpec(RuType.RU_52_TONE, 2 * i, p80)]
    if ru.ru_type == RuType.RU_52_TONE:
        ru242_index = (i - 1) // 4 + 1
        base = _ru26_base(bw, ru242_index)
        first, second = _RU26_OFFSETS_IN_RU52[(i - 1) % 4]
        return [RuSpec(RuType.RU_26_TONE, base + first, p80),
                RuSpec(RuType.RU_26_TONE, base + second, p80)]
    return []
