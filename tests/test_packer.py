"""
Unit tests for RU packing.

Test groups:
  T1  Uniform allocation (degenerate RU choice per bandwidth)
  T2  Legacy: degenerate case
  T3  Legacy: overflow case
  T4  Legacy: mixed case index layout
  T5  Greedy strategy
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rr_ofdma.he_ru import RuSpec, RuType
from rr_ofdma.packer import (
    PackingStrategy,
    RuPacker,
    narrowest_allocation,
    uniform_allocation,
)
from rr_ofdma.traffic import TrafficClass, TrafficClassifier, mac_address
from rr_ofdma.types import Candidate, StaInfo


def cand(aid: int, size: int = 100) -> Candidate:
    return Candidate(mac_address(aid), size, StaInfo(aid, 0))


def classifier(on_off=(), bulk=(), web=()) -> TrafficClassifier:
    return TrafficClassifier.from_tables({
        TrafficClass.ON_OFF: list(on_off),
        TrafficClass.BULK: list(bulk),
        TrafficClass.WEB: list(web),
    })


def layout(result):
    return [(int(ru.ru_type), ru.index) for ru in result.allocations]


# =====================================================================
# T1  Uniform allocation
# =====================================================================
class TestUniformAllocation:
    def test_four_stations_20mhz(self):
        assert uniform_allocation(20, 4) == [RuSpec(RuType.RU_52_TONE, i) for i in range(1, 5)]

    @pytest.mark.parametrize("bw,n,ru_type,count", [
        (20, 1, RuType.RU_242_TONE, 1),
        (20, 3, RuType.RU_106_TONE, 2),
        (20, 9, RuType.RU_26_TONE, 9),
        (20, 20, RuType.RU_26_TONE, 9),
        (40, 1, RuType.RU_484_TONE, 1),
        (40, 5, RuType.RU_106_TONE, 4),
        (80, 1, RuType.RU_996_TONE, 1),
        (80, 74, RuType.RU_26_TONE, 37),
        (160, 1, RuType.RU_2x996_TONE, 1),
        (160, 2, RuType.RU_996_TONE, 2),
        (160, 4, RuType.RU_484_TONE, 4),
        (160, 74, RuType.RU_26_TONE, 74),
    ])
    def test_ru_type_and_count(self, bw, n, ru_type, count):
        rus = uniform_allocation(bw, n)
        assert len(rus) == count
        assert all(ru.ru_type == ru_type for ru in rus)

    def test_160mhz_uses_both_segments(self):
        rus = uniform_allocation(160, 4)
        assert [(ru.index, ru.primary80) for ru in rus] == [
            (1, True), (2, True), (1, False), (2, False)]

    def test_no_stations(self):
        assert uniform_allocation(20, 0) == []

    def test_narrowest_allocation(self):
        assert len(narrowest_allocation(40)) == 18
        rus = narrowest_allocation(160)
        assert len(rus) == 74
        assert sum(not ru.primary80 for ru in rus) == 37


# =====================================================================
# T2  Legacy: degenerate case
# =====================================================================
class TestLegacyDegenerate:
    def test_empty_membership_four_stations(self):
        """No BULK candidate: one RU52 per station, indices 1-4."""
        packer = RuPacker(TrafficClassifier())
        result = packer.pack([cand(i) for i in range(1, 5)], 20)
        assert layout(result) == [(52, 1), (52, 2), (52, 3), (52, 4)]
        assert [c.aid for c in result.order] == [1, 2, 3, 4]
        assert result.unserved == []

    def test_single_candidate_gets_widest_ru(self):
        packer = RuPacker(classifier(bulk=[1]))
        for bw, ru_type in [(20, RuType.RU_242_TONE), (40, RuType.RU_484_TONE),
                            (80, RuType.RU_996_TONE), (160, RuType.RU_2x996_TONE)]:
            result = packer.pack([cand(1)], bw)
            assert [ru.ru_type for ru in result.allocations] == [ru_type]

    def test_order_is_classes_then_size(self):
        packer = RuPacker(classifier(on_off=[3]))
        result = packer.pack([cand(1, 10), cand(2, 30), cand(3, 5), cand(4, 20)], 20)
        assert [c.aid for c in result.order] == [3, 2, 4, 1]

    def test_three_candidates_two_rus(self):
        packer = RuPacker(TrafficClassifier())
        result = packer.pack([cand(1, 10), cand(2, 30), cand(3, 20)], 20)
        assert layout(result) == [(106, 1), (106, 2)]
        assert [c.aid for c in result.unserved] == [1]

    def test_empty_batch(self):
        result = RuPacker().pack([], 20)
        assert result.allocations == [] and result.order == []


# =====================================================================
# T3  Legacy: overflow case
# =====================================================================
class TestLegacyOverflow:
    def test_nine_on_off_with_bulk(self):
        """More than 7 ON_OFF candidates: 26-tone RUs regardless of WEB."""
        packer = RuPacker(classifier(on_off=range(1, 10), bulk=[10, 11]))
        batch = [cand(i) for i in range(1, 13)]
        result = packer.pack(batch, 20)
        assert layout(result) == [(26, i) for i in range(1, 10)]
        assert [c.aid for c in result.served] == list(range(1, 10))
        assert {c.aid for c in result.unserved} == {10, 11, 12}

    def test_entries_capped_by_candidates(self):
        packer = RuPacker(classifier(on_off=range(1, 9), bulk=[9]))
        result = packer.pack([cand(i) for i in range(1, 11)], 40)
        assert len(result.allocations) == 10
        assert all(ru.ru_type == RuType.RU_26_TONE for ru in result.allocations)
        # ON_OFF, then BULK, then WEB
        assert [c.aid for c in result.order] == list(range(1, 11))

    def test_excess_bulk_goes_last(self):
        packer = RuPacker(classifier(on_off=range(1, 9), bulk=range(9, 19), web=[19]))
        result = packer.pack([cand(i, 100 + i) for i in range(1, 20)], 80)
        order = [c.aid for c in result.order]
        # 8 BULK (largest first), WEB, then the remaining 2 BULK
        assert order[8:16] == list(range(18, 10, -1))
        assert order[16] == 19
        assert order[17:] == [10, 9]
        assert len(result.allocations) == 19


# =====================================================================
# T4  Legacy: mixed case
# =====================================================================
class TestLegacyMixed:
    def test_106_branch(self):
        packer = RuPacker(classifier(on_off=[1], bulk=[2]))
        result = packer.pack([cand(1), cand(2), cand(3, 300), cand(4, 200)], 20)
        assert layout(result) == [(106, 1), (26, 5), (26, 6), (26, 7)]
        assert [c.aid for c in result.order] == [2, 1, 3, 4]
        assert result.tones <= 242

    def test_106_branch_leaves_bulk_unserved(self):
        packer = RuPacker(classifier(on_off=range(1, 6), bulk=[6, 7, 8]))
        batch = [cand(i) for i in range(1, 6)] + [cand(6, 100), cand(7, 300), cand(8, 200)]
        result = packer.pack(batch, 20)
        assert layout(result) == [(106, 1), (26, 5), (26, 6), (26, 7), (26, 8), (26, 9)]
        assert [c.aid for c in result.served] == [7, 1, 2, 3, 4, 5]
        assert [c.aid for c in result.unserved] == [8, 6]

    def test_106_and_52_branch(self):
        packer = RuPacker(classifier(on_off=[1, 2], bulk=[3, 4, 5]))
        batch = [cand(i) for i in range(1, 6)] + [cand(6), cand(7)]
        result = packer.pack(batch, 20)
        # 106#1, center 26, one 52 at index 3, then 26s from index 8
        assert layout(result) == [(106, 1), (26, 5), (52, 3), (26, 8), (26, 9)]
        assert [c.aid for c in result.served] == [3, 1, 4, 2, 6]
        assert [c.aid for c in result.unserved] == [5, 7]

    def test_52_branch(self):
        packer = RuPacker(classifier(on_off=range(1, 7), bulk=[7, 8]))
        result = packer.pack([cand(i) for i in range(1, 9)], 20)
        assert layout(result) == [(52, 1), (26, 3), (26, 4),
                                  (26, 6), (26, 7), (26, 8), (26, 9)]
        assert [c.aid for c in result.served] == [7, 1, 2, 3, 4, 5, 6]
        assert [c.aid for c in result.unserved] == [8]

    def test_52_branch_center_26(self):
        packer = RuPacker(classifier(on_off=range(1, 7), bulk=[7]))
        result = packer.pack([cand(i) for i in range(1, 11)], 20)
        assert layout(result) == [(52, 1), (26, 3), (26, 4), (26, 5),
                                  (26, 6), (26, 7), (26, 8), (26, 9)]
        assert result.tones <= 242
        assert [c.aid for c in result.unserved] == [9, 10]

    def test_26_tone_tail_stops_at_index_9(self):
        """Units at 26#3 and 26#4 count against the reserved 26-tone RUs."""
        packer = RuPacker(classifier(on_off=range(1, 7), bulk=[7], web=[8, 9]))
        result = packer.pack([cand(i) for i in range(1, 10)], 20)
        assert layout(result) == [(52, 1), (26, 3), (26, 4), (26, 5),
                                  (26, 6), (26, 7), (26, 8), (26, 9)]
        assert [c.aid for c in result.served] == [7, 1, 2, 3, 4, 5, 6, 8]
        assert [c.aid for c in result.unserved] == [9]


# =====================================================================
# T5  Greedy
# =====================================================================
class TestGreedy:
    def test_widest_rus_to_largest_demands(self):
        packer = RuPacker(strategy=PackingStrategy.GREEDY)
        result = packer.pack([cand(1, 100), cand(2, 300), cand(3, 200)], 20)
        assert [c.aid for c in result.order] == [2, 3, 1]
        assert layout(result) == [(106, 1), (106, 2), (26, 5)]

    def test_four_candidates_20mhz(self):
        packer = RuPacker(strategy=PackingStrategy.GREEDY)
        result = packer.pack([cand(i) for i in range(1, 5)], 20)
        assert layout(result) == [(106, 1), (52, 3), (52, 4), (26, 5)]

    def test_single_candidate_whole_channel(self):
        packer = RuPacker(strategy=PackingStrategy.GREEDY)
        assert layout(packer.pack([cand(1)], 80)) == [(996, 1)]
        assert layout(packer.pack([cand(1)], 160)) == [(1992, 1)]

    def test_160mhz_two_candidates(self):
        packer = RuPacker(strategy=PackingStrategy.GREEDY)
        result = packer.pack([cand(1), cand(2)], 160)
        assert result.allocations == [RuSpec(RuType.RU_996_TONE, 1, True),
                                      RuSpec(RuType.RU_996_TONE, 1, False)]

    def test_more_candidates_than_rus(self):
        packer = RuPacker(strategy=PackingStrategy.GREEDY)
        result = packer.pack([cand(i) for i in range(1, 13)], 20)
        assert len(result.allocations) == 9
        assert len(set(result.allocations)) == 9
        assert len(result.unserved) == 3
