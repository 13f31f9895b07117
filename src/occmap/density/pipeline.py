#!/usr/bin/env python3
"""pipeline.py

Regions + occurrences -> per-region count, richness, area, density, scaled
value and colour.

This is the programmatic entry point that occmap.density's CLI calls:

    summary = summarize_regions(regions, occurrences, id_col="region_id",
                                taxon_col="species", strategy="log")
    summary.regions[["region_id", "count", "density", "scaled", "color"]]

Inputs are never modified; every call builds its statistics from scratch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import geopandas as gpd
import pandas as pd

from occmap.config import DEFAULT_AREA_CRS, DEFAULT_AREA_PER_UNIT, DEFAULT_LEGEND_STEPS, DEFAULT_SCALE_RANGE
from occmap.density.colors import ColorRamp, to_hex
from occmap.density.join import JoinResult, count_per_region, richness_per_region, spatial_join
from occmap.density.normalize import ScaleStrategy, compute_density, legend_labels, rescale
from occmap.registry.prep_regions import region_areas


DEFAULT_RAMP_COLOR = "darkred"


@dataclass
class DensitySummary:
    """Result of one pipeline run.

    Attributes:
        regions: copy of the input regions with statistic columns added
            (count, [richness], area, density, scaled, color)
        join: per-occurrence region assignment, including unmatched records
        strategy: rescaling strategy used for `scaled`
        labels: legend break values in density units
    """
    regions: gpd.GeoDataFrame
    join: JoinResult
    strategy: ScaleStrategy
    labels: List[float] = field(default_factory=list)

    @property
    def n_matched(self) -> int:
        return self.join.n_matched

    @property
    def n_unmatched(self) -> int:
        return self.join.n_unmatched


def _co_register(regions: gpd.GeoDataFrame, occurrences: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Bring occurrences into the regions' CRS when both declare one."""
    if regions.crs is not None and occurrences.crs is not None and occurrences.crs != regions.crs:
        return occurrences.to_crs(regions.crs)
    return occurrences


def summarize_regions(
    regions: gpd.GeoDataFrame,
    occurrences: gpd.GeoDataFrame,
    *,
    id_col: str = "region_id",
    taxon_col: Optional[str] = None,
    area_col: Optional[str] = None,
    area_crs: str = DEFAULT_AREA_CRS,
    area_per_unit: float = DEFAULT_AREA_PER_UNIT,
    strategy: Union[ScaleStrategy, str] = ScaleStrategy.LOG,
    scale_range: Tuple[float, float] = DEFAULT_SCALE_RANGE,
    ramp: Optional[ColorRamp] = None,
    opacity: float = 1.0,
    predicate: str = "contains",
    legend_steps: int = DEFAULT_LEGEND_STEPS,
) -> DensitySummary:
    """Run overlay, counting, density and colour scaling for every region.

    Args:
        regions: polygons with a unique id column
        occurrences: point records (reprojected to the regions' CRS if needed)
        id_col: region id column
        taxon_col: occurrence column for richness (distinct taxa per region)
        area_col: region column with precomputed areas in raw units; measured
            in area_crs when omitted
        area_crs: equal-area CRS for measuring areas
        area_per_unit: raw area units per reported unit (1e6 -> per km^2)
        strategy: "linear" or "log" rescaling of densities
        scale_range: output range of the log strategy
        ramp: colour ramp; defaults to a dark red fade
        opacity: alpha multiplier applied to every colour
        predicate: "contains" or "covers" (see occmap.density.join)
        legend_steps: number of legend labels

    Raises:
        DegenerateScale: log strategy and every density is zero
        InvalidGeometry / DuplicateRegionId: unusable regions
    """
    strategy = ScaleStrategy(strategy)
    ramp = ramp or ColorRamp.fade(DEFAULT_RAMP_COLOR)

    out = regions.copy()
    points = _co_register(regions, occurrences)

    join = spatial_join(out, points, id_col=id_col, predicate=predicate)

    # Statistics are keyed by region id; map them back onto rows by id.
    ids = out[id_col]
    counts = count_per_region(join)
    out["count"] = ids.map(counts).astype(int).to_numpy()

    if taxon_col is not None:
        if taxon_col not in occurrences.columns:
            raise KeyError(f"Taxon column '{taxon_col}' not found in occurrences")
        richness = richness_per_region(join, occurrences[taxon_col])
        out["richness"] = ids.map(richness).astype(int).to_numpy()

    if area_col is not None:
        area_values = out[area_col].astype(float)
    else:
        area_values = region_areas(out, area_crs=area_crs)
    areas = pd.Series(area_values.to_numpy(), index=join.regions, name="area")
    out["area"] = areas.to_numpy()

    density = compute_density(counts, areas, area_per_unit=area_per_unit)
    scaled = rescale(density, strategy, scale_range=scale_range)
    out["density"] = ids.map(density).to_numpy()
    out["scaled"] = ids.map(scaled).to_numpy()
    out["color"] = [to_hex(c) for c in ramp.colors_for(out["scaled"], opacity=opacity)]

    labels = legend_labels(density, strategy, n=legend_steps)

    return DensitySummary(regions=out, join=join, strategy=strategy, labels=labels)
