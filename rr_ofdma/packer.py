"""
RU packing: maps a candidate batch onto the RUs of the channel.

Two strategies are available:

LEGACY (traffic-class packing)
    1. Degenerate case: no BULK candidate, or at most one candidate.
       Every candidate gets the same RU type: the first type (in table
       order) whose RU count does not exceed the batch size.
    2. Overflow case: more than 7 ON_OFF candidates. The channel is
       split into 26-tone RUs.
    3. Mixed case: a 242-tone segment is shared by budget. Each ON_OFF
       candidate reserves a 26-tone RU, BULK candidates get one 106-tone
       RU and then 52-tone RUs, WEB candidates fill the rest with
       26-tone RUs. RU indices follow the layout

           52#1 | 26#3 26#4 | 26#5 | 52#3 52#4 ... | 26#6 ... (or 26#8 ...)
           106#1 | ...

       which must be kept as is, receivers decode it from the
       allocation metadata.

GREEDY (largest demand first)
    Candidates are sorted by pending size. Starting from the RU that
    spans the channel, the narrowest splittable RU is split until there
    are enough RUs for the batch; the widest RUs go to the largest
    demands.

Both strategies return the RUs in the order of the candidates they are
assigned to: allocation i belongs to order[i]. Candidates after the last
allocation are not served in this opportunity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .he_ru import (
    RuSpec,
    RuType,
    check_bandwidth,
    get_child_rus,
    get_n_rus,
    get_root_ru,
    iter_ru_groups,
)
from .traffic import TrafficClass, TrafficClassifier, sort_by_pending_size
from .types import Candidate

logger = logging.getLogger("rr_ofdma.packer")

SEGMENT_TONES = 242
OVERFLOW_THRESHOLD = 7


class PackingStrategy(Enum):
    LEGACY = "legacy"
    GREEDY = "greedy"


@dataclass
class PackingResult:
    """RU allocations and the candidate order they correspond to."""
    allocations: List[RuSpec] = field(default_factory=list)
    order: List[Candidate] = field(default_factory=list)

    @property
    def served(self) -> List[Candidate]:
        return self.order[:len(self.allocations)]

    @property
    def unserved(self) -> List[Candidate]:
        return self.order[len(self.allocations):]

    @property
    def tones(self) -> int:
        return sum(ru.tones for ru in self.allocations)


def uniform_allocation(bandwidth: int, n_stations: int) -> List[RuSpec]:
    """
    RUs of a single type for a batch of n_stations: the first RU type of
    the channel (in table order) whose RU count does not exceed the batch
    size. A 160 MHz channel uses an 80 MHz RU type on both segments, or
    the 2x996-tone RU for a single station.
    """
    check_bandwidth(bandwidth)
    for bw, ru_type, n_rus in iter_ru_groups():
        if bw == bandwidth and n_rus <= n_stations:
            return [RuSpec(ru_type, index) for index in range(1, n_rus + 1)]
        if bandwidth == 160 and bw == 80 and 2 * n_rus <= n_stations:
            return ([RuSpec(ru_type, index, True) for index in range(1, n_rus + 1)]
                    + [RuSpec(ru_type, index, False) for index in range(1, n_rus + 1)])
    if bandwidth == 160 and n_stations == 1:
        return [RuSpec(RuType.RU_2x996_TONE, 1)]
    return []


def narrowest_allocation(bandwidth: int) -> List[RuSpec]:
    """All the 26-tone RUs of the channel."""
    check_bandwidth(bandwidth)
    if bandwidth == 160:
        n_rus = get_n_rus(80, RuType.RU_26_TONE)
        return ([RuSpec(RuType.RU_26_TONE, i, True) for i in range(1, n_rus + 1)]
                + [RuSpec(RuType.RU_26_TONE, i, False) for i in range(1, n_rus + 1)])
    n_rus = get_n_rus(bandwidth, RuType.RU_26_TONE)
    return [RuSpec(RuType.RU_26_TONE, i) for i in range(1, n_rus + 1)]


class RuPacker:
    """Classifies a candidate batch and assigns RUs to it."""

    def __init__(
        self,
        classifier: Optional[TrafficClassifier] = None,
        strategy: PackingStrategy = PackingStrategy.LEGACY
    ):
        self.classifier = classifier or TrafficClassifier()
        self.strategy = strategy

    def pack(self, candidates: Sequence[Candidate], bandwidth: int) -> PackingResult:
        check_bandwidth(bandwidth)
        if not candidates:
            return PackingResult()
        if self.strategy == PackingStrategy.GREEDY:
            result = self._pack_greedy(candidates, bandwidth)
        else:
            result = self._pack_legacy(candidates, bandwidth)
        logger.debug("Packed %d/%d candidates into %s",
                     len(result.allocations), len(candidates),
                     [str(ru) for ru in result.allocations])
        return result

    # ------------------------------------------------------------------
    # LEGACY
    # ------------------------------------------------------------------

    def _pack_legacy(self, candidates: Sequence[Candidate], bandwidth: int) -> PackingResult:
        classes = self.classifier.partition(candidates)
        on_off = classes[TrafficClass.ON_OFF]
        bulk = classes[TrafficClass.BULK]
        web = classes[TrafficClass.WEB]
        logger.debug("Traffic classes: on_off=%d bulk=%d web=%d",
                     len(on_off), len(bulk), len(web))

        if not bulk or len(on_off) + len(bulk) + len(web) <= 1:
            order = on_off + bulk + web
            allocations = uniform_allocation(bandwidth, len(order))
            return PackingResult(allocations, order)

        if len(on_off) > OVERFLOW_THRESHOLD:
            # BULK candidates beyond the ON_OFF count go last
            n_bulk = len(on_off)
            order = on_off + bulk[:n_bulk] + web + bulk[n_bulk:]
            allocations = narrowest_allocation(bandwidth)[:len(order)]
            return PackingResult(allocations, order)

        return self._pack_mixed(on_off, bulk, web)

    def _pack_mixed(self, on_off: List[Candidate], bulk: List[Candidate],
                    web: List[Candidate]) -> PackingResult:
        # budget pass: how many RUs of each size fit in a 242-tone segment
        allocated106 = 0
        allocated52 = 0
        allocated26 = len(on_off)
        budget = SEGMENT_TONES - 26 * len(on_off)
        bulk_left = len(bulk)
        web_left = len(web)

        if budget >= 106 and bulk_left > 0:
            allocated106 += 1
            budget -= 106
            bulk_left -= 1
        while budget >= 52 and bulk_left > 0:
            allocated52 += 1
            budget -= 52
            bulk_left -= 1
        while budget >= 26 and web_left > 0:
            allocated26 += 1
            budget -= 26
            web_left -= 1
        logger.debug("Mixed packing: %d x 106, %d x 52, %d x 26",
                     allocated106, allocated52, allocated26)

        # assignment pass
        on_off_queue = list(on_off)
        bulk_queue = list(bulk)
        web_queue = list(web)
        order: List[Candidate] = []
        allocations: List[RuSpec] = []

        def assign(queue: List[Candidate], ru_type: RuType, index: int) -> None:
            order.append(queue.pop(0))
            allocations.append(RuSpec(ru_type, index))

        if allocated106 > 0:
            assign(bulk_queue, RuType.RU_106_TONE, 1)
        else:
            assign(bulk_queue, RuType.RU_52_TONE, 1)
            allocated52 -= 1
            index = 3
            for _ in range(2):
                source = on_off_queue or web_queue
                if not source:
                    break
                assign(source, RuType.RU_26_TONE, index)
                index += 1
                # counted against the reservation so the 26-tone tail
                # never reaches RU #10 or #11
                allocated26 -= 1

        if allocated26 % 2 != 0:
            source = on_off_queue or web_queue
            if source:
                assign(source, RuType.RU_26_TONE, 5)
            allocated26 -= 1

        index52 = 3
        index26 = 8 if allocated52 > 0 else 6
        while allocated52 > 0:
            assign(bulk_queue, RuType.RU_52_TONE, index52)
            index52 += 1
            allocated52 -= 1
        while allocated26 > 0 and on_off_queue:
            assign(on_off_queue, RuType.RU_26_TONE, index26)
            index26 += 1
            allocated26 -= 1
        while allocated26 > 0 and web_queue:
            assign(web_queue, RuType.RU_26_TONE, index26)
            index26 += 1
            allocated26 -= 1

        # not served this time
        order.extend(on_off_queue + bulk_queue + web_queue)
        return PackingResult(allocations, order)

    # ------------------------------------------------------------------
    # GREEDY
    # ------------------------------------------------------------------

    def _pack_greedy(self, candidates: Sequence[Candidate], bandwidth: int) -> PackingResult:
        order = sort_by_pending_size(candidates)
        rus = [get_root_ru(bandwidth)]
        while len(rus) < len(order):
            splittable = [i for i, ru in enumerate(rus) if ru.ru_type != RuType.RU_26_TONE]
            if not splittable:
                break
            narrowest = min(rus[i].tones for i in splittable)
            pos = max(i for i in splittable if rus[i].tones == narrowest)
            rus[pos:pos + 1] = get_child_rus(rus[pos], bandwidth)

        # widest RUs first, ties in frequency order
        rus = sorted(rus, key=lambda ru: ru.tones, reverse=True)
        return PackingResult(rus[:len(order)], order)
