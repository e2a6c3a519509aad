#!/usr/bin/env python3
"""
Round-robin OFDMA scheduler simulation.

Usage:
    python run_simulation.py --config config/default.yaml
    python run_simulation.py --rounds 5000 --strategy greedy --out results/greedy

Writes round_metrics.csv and summary.json to the output directory.
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict

from tqdm import tqdm

PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))

from rr_ofdma.config import ConfigurationError, ScenarioConfig  # noqa: E402
from rr_ofdma.metrics import SimulationLogger  # noqa: E402
from rr_ofdma.simulation import OfdmaSimulation  # noqa: E402
from rr_ofdma.utils import load_config, merge_configs, save_config, set_seed  # noqa: E402


def build_config(args: argparse.Namespace) -> Dict[str, Any]:
    """YAML config with the command line overrides applied."""
    cfg = load_config(args.config, args.override)
    overrides: Dict[str, Any] = {"ofdma": {}, "simulation": {}}
    if args.rounds is not None:
        overrides["simulation"]["n_rounds"] = args.rounds
    if args.seed is not None:
        overrides["simulation"]["seed"] = args.seed
    if args.strategy is not None:
        overrides["ofdma"]["packing_strategy"] = args.strategy
    if args.out is not None:
        overrides["simulation"]["result_dir"] = args.out
    return merge_configs(cfg, overrides)


def run(cfg: Dict[str, Any], verbose: bool = False) -> Dict[str, Any]:
    scenario = ScenarioConfig.from_config(cfg)
    sim_cfg = scenario.simulation
    rng = set_seed(sim_cfg.seed)

    sim_logger = SimulationLogger(
        log_dir=sim_cfg.log_dir,
        console_level=logging.DEBUG if verbose else logging.INFO,
    )
    result_dir = Path(sim_cfg.result_dir)
    try:
        sim_logger.log_config(cfg)
        result_dir.mkdir(parents=True, exist_ok=True)
        save_config(cfg, result_dir / "config.yaml")

        sim = OfdmaSimulation(scenario, rng=rng)
        t0 = time.time()
        for _ in tqdm(range(sim_cfg.n_rounds), desc="Rounds"):
            sim_logger.log_round(sim.step())
        elapsed = time.time() - t0
    finally:
        sim_logger.close()

    df = sim.tracker.to_dataframe()
    df.to_csv(result_dir / "round_metrics.csv", index=False)

    summary = sim.tracker.summary(sim.stations)
    summary["elapsed_sec"] = round(elapsed, 2)
    with open(result_dir / "summary.json", "w") as f:
        json.dump(summary, f, indent=2)
    return summary


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Round-robin OFDMA scheduler simulation")
    parser.add_argument("--config", type=str, default="config/default.yaml",
                        help="Path to YAML config")
    parser.add_argument("--override", type=str, default=None,
                        help="YAML file deep-merged on top of --config")
    parser.add_argument("--rounds", type=int, default=None, help="Number of channel accesses")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--strategy", type=str, default=None, choices=["legacy", "greedy"],
                        help="RU packing strategy")
    parser.add_argument("--out", type=str, default=None, help="Result directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="DEBUG console output")
    args = parser.parse_args(argv)

    try:
        summary = run(build_config(args), verbose=args.verbose)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print("\n" + "=" * 60)
    print(f"  Rounds:          {summary['rounds']}")
    for fmt, share in sorted(summary["formats"].items()):
        print(f"  {fmt:<16} {share:6.1%}")
    print(f"  Mean batch size: {summary['mean_batch_size']:.2f}")
    print(f"  Jain fairness:   {summary['jain_fairness']:.3f}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
