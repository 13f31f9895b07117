#!/usr/bin/env python3
"""occmap.config

Shared configuration utilities for occmap CLI subsystems.

This module provides common helpers used across occmap.registry and occmap.density.
Centralizing these avoids duplication and ensures consistent behavior.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- One config file holds `regions:`, `occurrences:` and `density:` sections.
  CLI flags override whatever the file says.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    This strict behavior is intentional: config errors should fail fast.
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


def config_section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return one top-level section of the config as a dict.

    A missing section is an empty dict (all defaults apply).
    A section that exists but isn't a mapping is a config error.
    """
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise SystemExit(f"Config section '{name}:' must be a mapping, got {type(section).__name__}")
    return section


def load_section(path: Optional[Path], name: str) -> Dict[str, Any]:
    """Load a section from an optional config path.

    No path means no config file: every option comes from CLI flags or defaults.
    """
    if path is None:
        return {}
    return config_section(load_yaml(path), name)


def pick(cli_value: Any, section: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Resolve an option: CLI flag wins, then config section, then default."""
    if cli_value is not None:
        return cli_value
    value = section.get(key)
    if value is not None:
        return value
    return default


# -----------------------------------------------------------------------------
# Bounding box utilities
# -----------------------------------------------------------------------------
# Used by ingest (occurrence AOI filter) and for printing extents.

def coerce_bbox(x: Any) -> Optional[Tuple[float, float, float, float]]:
    """Try to coerce [xmin, ymin, xmax, ymax] into a bbox tuple.

    Returns None if input is invalid or missing.
    Accepts lists or tuples with 4 numeric elements.
    """
    if x is None:
        return None
    if isinstance(x, (list, tuple)) and len(x) == 4:
        try:
            xmin, ymin, xmax, ymax = map(float, x)
        except (TypeError, ValueError):
            return None
        if xmin > xmax or ymin > ymax:
            return None
        return (xmin, ymin, xmax, ymax)
    return None


def format_bbox(b: Tuple[float, float, float, float], precision: int = 5) -> str:
    """Format a bbox tuple as a readable string."""
    return f"[{b[0]:.{precision}f}, {b[1]:.{precision}f}, {b[2]:.{precision}f}, {b[3]:.{precision}f}]"


def coerce_range(x: Any) -> Optional[Tuple[float, float]]:
    """Coerce [low, high] into a (low, high) float tuple with low < high."""
    if isinstance(x, (list, tuple)) and len(x) == 2:
        try:
            low, high = map(float, x)
        except (TypeError, ValueError):
            return None
        if low < high:
            return (low, high)
    return None


# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_CONFIG_YAML = Path("config/occmap.yaml")
DEFAULT_REGIONS_GPKG = Path("data/interim/vectors/regions.gpkg")
DEFAULT_SUMMARY_CSV = Path("data/processed/tables/region_density.csv")

# EPSG:5070 is CONUS Albers; pass another equal-area CRS outside the US.
DEFAULT_AREA_CRS = "EPSG:5070"
DEFAULT_TARGET_CRS = "EPSG:4326"

# Raw area units (m^2) per reported unit. 1e9 gives "per 1000 km^2".
DEFAULT_AREA_PER_UNIT = 1_000_000.0

# Top of the log scale is held below 1 to leave room for the hillshade underneath.
DEFAULT_SCALE_RANGE = (0.0, 0.8)
DEFAULT_LEGEND_STEPS = 5
