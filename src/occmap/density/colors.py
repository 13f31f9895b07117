#!/usr/bin/env python3
"""colors.py

Map rescaled values in [0, 1] onto a discrete colour ramp.

A ColorRamp is an ordered tuple of RGBA colours. A value v picks entry
round(v * (N - 1)), clamped to the ramp; undefined values get the ramp's
no-data colour (fully transparent by default) so they can't be mistaken for
the bottom of the scale.

Opacity is applied separately from the ramp lookup, for drawing choropleths
over a hillshade backdrop.

Colour parsing and interpolation use matplotlib.colors; nothing here draws.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import matplotlib
import matplotlib.colors as mcolors
import numpy as np

from occmap.density.normalize import is_undefined


RGBA = Tuple[float, float, float, float]

NO_DATA: RGBA = (0.0, 0.0, 0.0, 0.0)


def apply_opacity(rgba: RGBA, opacity: float = 1.0) -> RGBA:
    """Multiply a colour's alpha by opacity (0 = invisible, 1 = unchanged)."""
    if not 0.0 <= opacity <= 1.0:
        raise ValueError(f"opacity must be within [0, 1], got {opacity}")
    r, g, b, a = rgba
    return (r, g, b, a * opacity)


def to_hex(rgba: RGBA) -> str:
    """'#rrggbbaa' string, alpha included."""
    return mcolors.to_hex(rgba, keep_alpha=True)


@dataclass(frozen=True)
class ColorRamp:
    """Ordered colours plus a reserved no-data colour."""
    colors: Tuple[RGBA, ...]
    no_data: RGBA = NO_DATA

    def __post_init__(self):
        if not self.colors:
            raise ValueError("A colour ramp needs at least one colour")

    # --- constructors ---

    @classmethod
    def from_colors(cls, colors: Sequence, no_data=NO_DATA) -> "ColorRamp":
        """Ramp from explicit colours (names, hex strings or RGB(A) tuples)."""
        return cls(tuple(mcolors.to_rgba(c) for c in colors), mcolors.to_rgba(no_data))

    @classmethod
    def between(cls, low, high, n: int = 101, no_data=NO_DATA) -> "ColorRamp":
        """n colours interpolated linearly from low to high."""
        if n < 2:
            raise ValueError(f"Need at least 2 ramp colours, got {n}")
        cmap = mcolors.LinearSegmentedColormap.from_list("occmap_ramp", [low, high], N=n)
        return cls(tuple(cmap(i) for i in range(n)), mcolors.to_rgba(no_data))

    @classmethod
    def from_cmap(cls, name: str, n: int = 101, no_data=NO_DATA) -> "ColorRamp":
        """n colours sampled from a registered matplotlib colormap."""
        if n < 2:
            raise ValueError(f"Need at least 2 ramp colours, got {n}")
        cmap = matplotlib.colormaps[name].resampled(n)
        return cls(tuple(cmap(i) for i in range(n)), mcolors.to_rgba(no_data))

    @classmethod
    def fade(cls, color, n: int = 101, no_data=NO_DATA) -> "ColorRamp":
        """One hue with alpha rising from 0 to 1.

        The classic choropleth-over-relief look: low values let the
        hillshade show through, high values cover it.
        """
        if n < 2:
            raise ValueError(f"Need at least 2 ramp colours, got {n}")
        r, g, b, _ = mcolors.to_rgba(color)
        return cls(tuple((r, g, b, float(a)) for a in np.linspace(0.0, 1.0, n)), mcolors.to_rgba(no_data))

    # --- lookup ---

    def __len__(self) -> int:
        return len(self.colors)

    def index(self, value) -> Optional[int]:
        """Ramp position for a value in [0, 1]; None when value is undefined.

        Values outside [0, 1] are clamped. Halves round up, so the mapping is
        monotonic: a larger value never gets a lower index.
        """
        if is_undefined(value):
            return None
        v = min(max(float(value), 0.0), 1.0)
        top = len(self.colors) - 1
        return min(max(int(math.floor(v * top + 0.5)), 0), top)

    def color(self, value, opacity: float = 1.0) -> RGBA:
        """Ramp colour for value, or the no-data colour, with opacity applied."""
        i = self.index(value)
        rgba = self.no_data if i is None else self.colors[i]
        return apply_opacity(rgba, opacity)

    def colors_for(self, values: Iterable, opacity: float = 1.0) -> List[RGBA]:
        return [self.color(v, opacity) for v in values]
