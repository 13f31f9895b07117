#!/usr/bin/env python3
"""normalize.py

Turn per-region counts into densities and rescale them to [0, 1] for colouring.

Two rescaling strategies exist, chosen with ScaleStrategy:
- LINEAR: value / max(value)
- LOG:    log10(value + eps), shifted to start at 0 and stretched to a range
          (default [0, 0.8]) where eps = half the smallest positive value

Undefined values are NaN. They come from zero or missing areas, pass through
every rescaling untouched, and are never coerced to 0 or inf. Check with
is_undefined() before using a value.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import List, Tuple, Union

import numpy as np
import pandas as pd

from occmap.errors import DegenerateScale


class ScaleStrategy(str, Enum):
    """How densities are compressed into [0, 1]."""
    LINEAR = "linear"
    LOG = "log"


def is_undefined(value) -> bool:
    """True for the no-value marker (NaN / None / pd.NA)."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _as_float_series(values: Union[pd.Series, List[float], np.ndarray]) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(values, dtype=float)


def _check_non_negative(defined: pd.Series) -> None:
    if (defined < 0).any():
        raise ValueError(f"Can't rescale negative values: {defined[defined < 0].tolist()[:5]}")


# -----------------------------------------------------------------------------
# Density
# -----------------------------------------------------------------------------

def compute_density(counts: pd.Series, areas: pd.Series, *, area_per_unit: float = 1.0) -> pd.Series:
    """Count per unit area for each region.

    density = count / (area / area_per_unit)

    Args:
        counts: per-region counts, indexed by region id
        areas: per-region areas in raw CRS units (m^2 for metric CRSs)
        area_per_unit: raw area units per reported unit
            (1e6: per km^2, 1e9: per 1000 km^2)

    Returns:
        Series indexed like counts. Regions whose area is zero, negative,
        NaN or absent from `areas` get NaN.
    """
    if not area_per_unit > 0:
        raise ValueError(f"area_per_unit must be positive, got {area_per_unit}")

    area = areas.reindex(counts.index).astype(float)
    area = area.where(area > 0) / area_per_unit
    density = counts.astype(float) / area
    density.name = "density"
    return density


# -----------------------------------------------------------------------------
# Rescaling
# -----------------------------------------------------------------------------

def rescale_linear(values) -> pd.Series:
    """Scale to [0, 1] by dividing by the largest defined value.

    The maximum maps to exactly 1.0. If every defined value is 0, they all
    map to 0.0. NaN stays NaN.
    """
    s = _as_float_series(values)
    defined = s.dropna()
    if defined.empty:
        return s.copy()
    _check_non_negative(defined)

    top = defined.max()
    if top == 0:
        return s.where(s.isna(), 0.0)
    return s / top


def log_offset(values) -> float:
    """Half the smallest strictly-positive value.

    Added before log10 so zero counts land at the bottom of the scale
    instead of at -inf.

    Raises:
        DegenerateScale: no strictly-positive value exists
    """
    s = _as_float_series(values).dropna()
    positive = s[s > 0]
    if positive.empty:
        raise DegenerateScale("Log scale needs at least one value > 0; all values are zero or undefined.")
    return 0.5 * float(positive.min())


def rescale_log(values, *, scale_range: Tuple[float, float] = (0.0, 0.8)) -> pd.Series:
    """Log-compress values into scale_range.

    Steps: add eps = log_offset(values), take log10, subtract the minimum,
    divide by the maximum, stretch to scale_range. The smallest value maps to
    scale_range[0] and the largest to scale_range[1]. When every defined value
    is equal, all of them map to scale_range[1].

    Raises:
        DegenerateScale: no strictly-positive value exists (e.g. all zeros)
    """
    low, high = scale_range
    if not low < high:
        raise ValueError(f"scale_range must be increasing, got {scale_range}")

    s = _as_float_series(values)
    defined = s.dropna()
    _check_non_negative(defined)
    eps = log_offset(defined)

    logged = np.log10(s + eps)
    shifted = logged - logged.min()
    span = shifted.max()
    if span == 0:
        return s.where(s.isna(), high)
    return low + (shifted / span) * (high - low)


def rescale(values, strategy: Union[ScaleStrategy, str] = ScaleStrategy.LINEAR, *,
            scale_range: Tuple[float, float] = (0.0, 0.8)) -> pd.Series:
    """Rescale with the chosen strategy. scale_range only applies to LOG."""
    strategy = ScaleStrategy(strategy)
    if strategy is ScaleStrategy.LINEAR:
        out = rescale_linear(values)
    else:
        out = rescale_log(values, scale_range=scale_range)
    out.name = "scaled"
    return out


# -----------------------------------------------------------------------------
# Legend breaks
# -----------------------------------------------------------------------------

def legend_labels(values, strategy: Union[ScaleStrategy, str] = ScaleStrategy.LINEAR, n: int = 5) -> List[float]:
    """Evenly spaced legend break values, in data units.

    LINEAR: n values from 0 to the maximum.
    LOG: n values evenly spaced in log10(value + eps) between the smallest and
    largest value, converted back to data units (eps removed), so the first
    label is the minimum and the last is the maximum.
    """
    if n < 2:
        raise ValueError(f"Need at least 2 legend labels, got {n}")
    strategy = ScaleStrategy(strategy)
    s = _as_float_series(values).dropna()
    if s.empty:
        return []

    if strategy is ScaleStrategy.LINEAR:
        return np.linspace(0.0, float(s.max()), n).tolist()

    eps = log_offset(s)
    lo = math.log10(float(s.min()) + eps)
    hi = math.log10(float(s.max()) + eps)
    labels = [10 ** x - eps for x in np.linspace(lo, hi, n)]
    # Pin the ends so round-off doesn't push them past the data.
    labels[0] = float(s.min())
    labels[-1] = float(s.max())
    return labels
