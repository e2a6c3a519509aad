"""
Unit tests for round-robin candidate selection.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rr_ofdma.he_ru import RuType
from rr_ofdma.mac import MacLayer, SimulatedMac
from rr_ofdma.selector import StationSelector, resolve_start_station
from rr_ofdma.types import AccessCategory, Frame


def make_mac(n_stations: int = 4, size: int = 100, tid: int = 0) -> SimulatedMac:
    mac = SimulatedMac()
    for aid in range(1, n_stations + 1):
        address = mac.associate(aid)
        mac.establish_ba(address, tid)
        mac.enqueue(address, tid, size)
    return mac


def select(mac, n, start=0, tid=0, ac=AccessCategory.AC_BE, txop=None, ru_type=RuType.RU_52_TONE):
    selector = StationSelector(mac, n)
    return selector.select(mac.associated_stations(), start, tid, ac, txop, ru_type)


class TestResolveStart:
    def test_keeps_associated_station(self):
        assert resolve_start_station({1: "a", 2: "b"}, 2) == 2

    def test_stale_cursor_restarts_from_first(self):
        assert resolve_start_station({3: "a", 5: "b"}, 4) == 3
        assert resolve_start_station({3: "a", 5: "b"}, 0) == 3


class TestSelection:
    def test_full_batch_wraps_cursor(self):
        result = select(make_mac(4), 4)
        assert [c.aid for c in result.candidates] == [1, 2, 3, 4]
        assert all(c.size == 100 for c in result.candidates)
        assert result.next_station == 1

    def test_partial_batch_advances_cursor(self):
        mac = make_mac(4)
        first = select(mac, 2)
        assert [c.aid for c in first.candidates] == [1, 2]
        assert first.next_station == 3
        second = select(mac, 2, start=first.next_station)
        assert [c.aid for c in second.candidates] == [3, 4]
        assert second.next_station == 1

    def test_starts_from_cursor(self):
        result = select(make_mac(4), 4, start=3)
        assert [c.aid for c in result.candidates] == [3, 4, 1, 2]
        assert result.next_station == 3

    def test_each_station_visited_once(self):
        mac = make_mac(4)
        mac.dequeue(mac.associated_stations()[1], 0)
        mac.dequeue(mac.associated_stations()[3], 0)
        result = select(mac, 4, start=2)
        assert [c.aid for c in result.candidates] == [2, 4]
        assert result.next_station == 2

    def test_no_stations(self):
        result = select(SimulatedMac(), 4)
        assert result.candidates == []

    def test_requires_block_ack_agreement(self):
        mac = SimulatedMac()
        mac.associate(1)
        mac.enqueue(mac.associated_stations()[1], 0, 100)
        assert select(mac, 4).candidates == []

    def test_higher_ac_tid_is_eligible(self):
        mac = SimulatedMac()
        address = mac.associate(1)
        mac.establish_ba(address, 5)
        mac.enqueue(address, 5, 300)
        result = select(mac, 4, tid=0, ac=AccessCategory.AC_BE)
        assert len(result.candidates) == 1
        assert result.candidates[0].info.tid == 5
        assert result.candidates[0].size == 300

    def test_lower_ac_tid_is_skipped(self):
        mac = make_mac(1, tid=0)
        assert select(mac, 4, tid=4, ac=AccessCategory.AC_VI).candidates == []

    def test_current_tid_probed_first(self):
        mac = make_mac(1, tid=0)
        address = mac.associated_stations()[1]
        mac.establish_ba(address, 6)
        mac.enqueue(address, 6, 50)
        result = select(mac, 4, tid=6, ac=AccessCategory.AC_VO)
        assert result.candidates[0].info.tid == 6


class TestTimeLimits:
    def test_txop_limit_excludes_long_frames(self):
        mac = make_mac(4)
        assert select(mac, 4, txop=10.0).candidates == []
        assert len(select(mac, 4, txop=5000.0).candidates) == 4

    def test_max_ppdu_duration(self):
        mac = make_mac(2, size=2000)
        mac.set_tx_mode(mac.associated_stations()[1], mcs=0)
        result = select(mac, 4, ru_type=RuType.RU_26_TONE)
        assert [c.aid for c in result.candidates] == [2]

    @pytest.mark.parametrize("ru_type", [RuType.RU_26_TONE, RuType.RU_242_TONE, RuType.RU_2x996_TONE])
    def test_fits_small_frame(self, ru_type):
        mac = make_mac(1)
        selector = StationSelector(mac, 1)
        address = mac.associated_stations()[1]
        assert selector.fits(Frame(100, 0), 1, address, ru_type, None)


class TestMacInterface:
    def test_interface_is_abstract(self):
        with pytest.raises(TypeError):
            MacLayer()

    def test_partial_mac_cannot_be_built(self):
        class ChannelOnlyMac(MacLayer):
            def channel_width(self) -> int:
                return 20

        with pytest.raises(TypeError):
            ChannelOnlyMac()

    def test_simulated_mac_is_complete(self):
        assert isinstance(SimulatedMac(), MacLayer)
