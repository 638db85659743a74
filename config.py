"""
Load battery and price-source settings from a YAML config file.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from dispatch import BatteryCfg


def load_config(path: str | Path) -> Dict[str, Any]:
    """Read the config YAML and return it as a dict (empty file → {})."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path) as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {path} must be a mapping, got {type(cfg).__name__}")
    return cfg


def battery_from_config(cfg: Dict[str, Any] | None = None, **overrides) -> BatteryCfg:
    """
    Build a BatteryCfg from the 'battery' section of *cfg*.

    Keyword overrides (e.g. from the command line) win over the file;
    None values are ignored.
    """
    defaults = BatteryCfg()
    section = dict((cfg or {}).get("battery") or {})
    section.update({k: v for k, v in overrides.items() if v is not None})
    return BatteryCfg(
        capacity_mwh=float(section.get("capacity_mwh", defaults.capacity_mwh)),
        power_mw=float(section.get("power_mw", defaults.power_mw)),
        round_trip_eff=float(section.get("round_trip_eff", defaults.round_trip_eff)),
    )
