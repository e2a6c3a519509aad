"""
Shared utilities: scenario YAML I/O, seeding and traffic size calibration.
"""

from __future__ import annotations

import copy
import logging
import random
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import yaml
from scipy import stats

logger = logging.getLogger("rr_ofdma.utils")

PathLike = Union[str, Path]


# ---------------------------------------------------------------------------
# Scenario YAML
# ---------------------------------------------------------------------------

def _read_yaml(path: PathLike, what: str) -> Dict[str, Any]:
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"{what} not found: {path}")
    with path.open() as f:
        return yaml.safe_load(f) or {}


def load_config(path: PathLike,
                override_path: Optional[PathLike] = None) -> Dict[str, Any]:
    """Read a scenario YAML. Sections of *override_path*, if given, are
    deep-merged on top."""
    cfg = _read_yaml(path, "Scenario config")
    if override_path is None:
        return cfg
    logger.debug("Applying scenario overrides from %s", override_path)
    return merge_configs(cfg, _read_yaml(override_path, "Override config"))


def save_config(cfg: Dict[str, Any], path: PathLike) -> None:
    """Write the scenario dict as YAML, keeping section order."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(cfg, sort_keys=False))


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dicts are merged key by key; any other value in *override*
    replaces the one in *base*. Neither input is modified."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_configs(current, value)
        merged[key] = copy.deepcopy(value)
    return merged


# ---------------------------------------------------------------------------
# Reproducibility
# ---------------------------------------------------------------------------

def set_seed(seed: int = 42) -> np.random.Generator:
    """Seed Python and NumPy global state, return a seeded Generator."""
    random.seed(seed)
    np.random.seed(seed)
    return np.random.default_rng(seed)


# ---------------------------------------------------------------------------
# Frame size calibration
# ---------------------------------------------------------------------------

def fit_lognormal_quantiles(p50: float, p90: float) -> Tuple[float, float]:
    """Lognormal (mu, sigma) with the given median and 90th percentile
    frame size. Equal quantiles give sigma = 0 (a fixed size)."""
    if p50 <= 0 or p90 < p50:
        raise ValueError(f"Need 0 < p50 <= p90; got p50={p50}, p90={p90}")
    mu = float(np.log(p50))
    sigma = float((np.log(p90) - mu) / stats.norm.ppf(0.90))
    return mu, sigma
