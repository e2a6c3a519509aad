"""
Scheduling metrics and simulation logging.

Provides:
- RoundMetrics: what one scheduling decision produced
- MetricsTracker: per-station service counts, fairness and format mix
- SimulationLogger: run directory with console/file logging and a CSV of rounds
"""

import csv
import json
import logging
from collections import Counter
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd


@dataclass
class RoundMetrics:
    """Metrics collected at each scheduling decision."""
    round: int
    tx_format: str

    # Batch
    n_candidates: int
    n_served: int
    tones_allocated: int

    # Cursor after the decision
    start_station: int

    # Traffic
    bytes_served: int = 0
    ul_solicited: int = 0


ROUND_COLUMNS = [f.name for f in fields(RoundMetrics)]


def jain_fairness(values) -> float:
    """Jain's fairness index of a set of allocations (1.0 = perfectly fair)."""
    x = np.asarray(values, dtype=np.float64)
    if x.size == 0 or not np.any(x):
        return 1.0
    return float(x.sum() ** 2 / (x.size * np.square(x).sum()))


class MetricsTracker:
    """
    Tracks and aggregates scheduling metrics over a run.
    """

    def __init__(self):
        self.rounds: List[RoundMetrics] = []
        self.service_counts: Counter = Counter()
        self.bytes_served: Counter = Counter()
        self.format_counts: Counter = Counter()

    def log_round(self, metrics: RoundMetrics,
                  served: Optional[Dict[str, int]] = None) -> None:
        """
        Record a decision.

        Args:
            metrics: round summary
            served: bytes delivered per station address in this round
        """
        self.rounds.append(metrics)
        self.format_counts[metrics.tx_format] += 1
        for address, n_bytes in (served or {}).items():
            self.service_counts[address] += 1
            self.bytes_served[address] += n_bytes

    def fairness(self, stations: Optional[List[str]] = None) -> float:
        """Jain's index over service counts. Stations never served count
        as zero when listed in *stations*."""
        keys = stations if stations is not None else list(self.service_counts)
        return jain_fairness([self.service_counts.get(k, 0) for k in keys])

    def format_histogram(self) -> Dict[str, float]:
        total = sum(self.format_counts.values())
        if total == 0:
            return {}
        return {fmt: n / total for fmt, n in self.format_counts.items()}

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(m) for m in self.rounds], columns=ROUND_COLUMNS)

    def summary(self, stations: Optional[List[str]] = None) -> Dict[str, Any]:
        df = self.to_dataframe()
        dl = df[df["tx_format"] == "DL_OFDMA"]
        return {
            "rounds": len(df),
            "formats": self.format_histogram(),
            "mean_batch_size": float(dl["n_served"].mean()) if len(dl) else 0.0,
            "mean_tones": float(dl["tones_allocated"].mean()) if len(dl) else 0.0,
            "total_bytes_served": int(df["bytes_served"].sum()) if len(df) else 0,
            "jain_fairness": self.fairness(stations),
            "service_counts": dict(self.service_counts),
        }


CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


class SimulationLogger:
    """
    Run directory for one scheduling simulation.

    Attaches a console and a DEBUG file handler to the ``rr_ofdma`` logger
    (the scheduler modules log below it) and appends every RoundMetrics
    to ``round_metrics.csv``. Call close() to detach the handlers.
    """

    def __init__(
        self,
        log_dir: str = "./logs",
        run_name: Optional[str] = None,
        console_level: int = logging.INFO,
        enable_csv: bool = True
    ):
        self.run_name = run_name or datetime.now().strftime("run_%Y%m%d_%H%M%S")
        self.run_dir = Path(log_dir) / self.run_name
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("rr_ofdma")
        self.logger.setLevel(logging.DEBUG)
        self._handlers: List[logging.Handler] = [
            self._attach(logging.StreamHandler(), console_level,
                         CONSOLE_FORMAT, datefmt="%H:%M:%S"),
            self._attach(logging.FileHandler(self.run_dir / "simulation.log"),
                         logging.DEBUG, FILE_FORMAT),
        ]

        self._csv_file = None
        self._rounds_writer = None
        if enable_csv:
            self._csv_file = open(self.run_dir / "round_metrics.csv", "w", newline="")
            self._rounds_writer = csv.DictWriter(self._csv_file, fieldnames=ROUND_COLUMNS)
            self._rounds_writer.writeheader()

        self.logger.info("Logging run %s to %s", self.run_name, self.run_dir)

    def _attach(self, handler: logging.Handler, level: int, fmt: str,
                datefmt: Optional[str] = None) -> logging.Handler:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
        self.logger.addHandler(handler)
        return handler

    def log_round(self, metrics: RoundMetrics) -> None:
        """DEBUG line per decision; one CSV row when enabled."""
        self.logger.debug(
            "Round %d: %s, served %d/%d, %d tones, next AID=%d",
            metrics.round, metrics.tx_format, metrics.n_served,
            metrics.n_candidates, metrics.tones_allocated, metrics.start_station,
        )
        if self._rounds_writer is not None:
            self._rounds_writer.writerow(asdict(metrics))
            self._csv_file.flush()

    def log_config(self, config: Dict[str, Any]) -> Path:
        """Dump the scenario dict as config.json in the run directory."""
        path = self.run_dir / "config.json"
        path.write_text(json.dumps(config, indent=2, default=str))
        self.logger.info("Scenario written to %s", path)
        return path

    def close(self) -> None:
        if self._csv_file is not None:
            self._csv_file.close()
            self._csv_file = None
            self._rounds_writer = None
        while self._handlers:
            handler = self._handlers.pop()
            self.logger.removeHandler(handler)
            handler.close()
