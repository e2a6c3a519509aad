"""
Round-based simulation of an HE access point running the round-robin
OFDMA scheduler.

Each round:
1. DL frames arrive for each station with its class arrival probability;
   frame sizes are lognormal, fitted to the class (median, p90).
2. Stations refresh their UL buffer status reports (unknown with
   probability buffer_status_unknown_prob).
3. The AP gets a TXOP and asks the scheduler for a format, then delivers
   the DL MU PPDU, the SU frame or the UL solicitation it describes.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from .config import ScenarioConfig
from .mac import BUFFER_STATUS_UNKNOWN, SimulatedMac
from .manager import RrOfdmaManager
from .metrics import MetricsTracker, RoundMetrics
from .traffic import TrafficClass
from .types import Frame, TxFormat, tid_to_ac
from .utils import fit_lognormal_quantiles

logger = logging.getLogger("rr_ofdma.simulation")

MIN_FRAME_SIZE = 64
MAX_MSDU_SIZE = 2304
# largest UL backlog reported, in units of 256 bytes
MAX_UL_BACKLOG_UNITS = 16


class OfdmaSimulation:
    """
    Drives a SimulatedMac and an RrOfdmaManager built from a scenario.

    Args:
        scenario: complete scenario configuration
        rng: random generator (seeded from the scenario if None)
    """

    def __init__(self, scenario: ScenarioConfig,
                 rng: Optional[np.random.Generator] = None):
        self.scenario = scenario
        self.rng = rng if rng is not None else np.random.default_rng(scenario.simulation.seed)
        self.tid = 0

        self.mac = SimulatedMac(scenario.phy)
        self.classifier = scenario.traffic.build_classifier()
        self.manager = RrOfdmaManager(self.mac, scenario.ofdma, self.classifier)
        self.tracker = MetricsTracker()

        self._size_params: Dict[TrafficClass, Tuple[float, float]] = {
            c: fit_lognormal_quantiles(*scenario.traffic.frame_size_bytes[c])
            for c in TrafficClass
        }
        self.stations: List[str] = []
        for aid in range(1, scenario.simulation.n_associated + 1):
            address = self.mac.associate(aid)
            self.mac.establish_ba(address, self.tid)
            self.stations.append(address)
        self.round = 0

        logger.info("Simulation with %d stations at %d MHz, strategy=%s",
                    len(self.stations), scenario.phy.channel_width_mhz,
                    scenario.ofdma.packing_strategy)

    # ------------------------------------------------------------------
    # Traffic
    # ------------------------------------------------------------------

    def _frame_size(self, traffic_class: TrafficClass) -> int:
        mu, sigma = self._size_params[traffic_class]
        size = self.rng.lognormal(mu, sigma) if sigma > 0 else np.exp(mu)
        return int(np.clip(size, MIN_FRAME_SIZE, MAX_MSDU_SIZE))

    def generate_traffic(self) -> int:
        """Enqueue new DL frames and refresh buffer status reports.
        Returns the number of frames generated."""
        arrival_prob = self.scenario.traffic.arrival_prob
        unknown_prob = self.scenario.simulation.buffer_status_unknown_prob
        n_new = 0
        for address in self.stations:
            traffic_class = self.classifier.classify(address)
            if self.rng.random() < arrival_prob[traffic_class]:
                self.mac.enqueue(address, self.tid, self._frame_size(traffic_class))
                n_new += 1
            if self.rng.random() < unknown_prob:
                code = BUFFER_STATUS_UNKNOWN
            else:
                code = int(self.rng.integers(0, MAX_UL_BACKLOG_UNITS))
            self.mac.set_buffer_status(address, code)
        return n_new

    def _head_of_line(self) -> Optional[Tuple[str, Frame]]:
        for address in self.stations:
            frame = self.mac.peek_next_frame(self.tid, address)
            if frame is not None:
                return address, frame
        return None

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def step(self) -> RoundMetrics:
        """Run one channel access."""
        self.round += 1
        self.generate_traffic()

        ac = tid_to_ac(self.tid)
        self.mac.start_txop(ac)
        hol = self._head_of_line()
        frame = hol[1] if hol else Frame(size=0, tid=self.tid)
        tx_format = self.manager.select_tx_format(frame)

        served: Dict[str, int] = {}
        n_candidates = len(self.manager.candidates)
        tones = 0
        ul_solicited = 0

        if tx_format == TxFormat.DL_OFDMA:
            info = self.manager.compute_dl_ofdma_info()
            for address, sta_info in info.sta_info.items():
                delivered = self.mac.dequeue(address, sta_info.tid)
                if delivered is not None:
                    served[address] = delivered.size
            if info.tx_vector is not None:
                tones = sum(u.ru.tones for u in info.tx_vector.user_info.values())
        elif tx_format == TxFormat.UL_OFDMA:
            info = self.manager.compute_ul_ofdma_info()
            sta_list = self.mac.associated_stations()
            for aid in info.trigger.user_info:
                if aid in sta_list:
                    self.mac.set_buffer_status(sta_list[aid], 0)
                    ul_solicited += 1
        elif tx_format == TxFormat.NON_OFDMA and hol is not None:
            address, _ = hol
            delivered = self.mac.dequeue(address, self.tid)
            served[address] = delivered.size
        elif tx_format == TxFormat.CONFIG_ERROR:
            logger.warning("Round %d: %s", self.round, self.manager.last_error)

        self.mac.end_txop(ac)

        metrics = RoundMetrics(
            round=self.round,
            tx_format=tx_format.name,
            n_candidates=n_candidates,
            n_served=len(served),
            tones_allocated=tones,
            start_station=self.manager.start_station,
            bytes_served=sum(served.values()),
            ul_solicited=ul_solicited,
        )
        self.tracker.log_round(metrics, served)
        return metrics

    def run(self, n_rounds: Optional[int] = None,
            progress: bool = False) -> MetricsTracker:
        n_rounds = n_rounds if n_rounds is not None else self.scenario.simulation.n_rounds
        for _ in tqdm(range(n_rounds), desc="Rounds", disable=not progress):
            self.step()
        return self.tracker
