#!/usr/bin/env python3
"""join.py

Assign occurrence points to the region (county) that contains them, then
tabulate per-region counts and taxon richness.

This is the overlay step of the density pipeline:
  regions + points -> JoinResult -> count_per_region / richness_per_region

Notes:
- Containment is delegated to geopandas.sjoin (shapely/GEOS predicates).
- Tie-break: if a point falls inside more than one region (overlapping
  polygons, which a clean county partition shouldn't have), the FIRST region
  in the regions' row order wins. Unique membership is the caller's job;
  this rule only makes the outcome deterministic.
- Points that no region contains (outside the study area, on a boundary with
  predicate="contains", or with a null/empty geometry) are kept in the
  JoinResult as unmatched. They never vanish from the record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import geopandas as gpd
import numpy as np
import pandas as pd

from occmap.errors import CrsMismatch, DuplicateRegionId, InvalidGeometry, MismatchedLength


# Public predicate name -> sjoin predicate with the points on the left.
PREDICATES = {
    "contains": "within",
    "covers": "covered_by",
}

POLYGON_TYPES = ("Polygon", "MultiPolygon")

PointsLike = Union[gpd.GeoDataFrame, gpd.GeoSeries]


@dataclass
class JoinResult:
    """Region assignment for every input point.

    Attributes:
        region_ids: one entry per input point, same index and order as the
            points; the containing region's id, or None when unmatched
        regions: every region id, in the regions' row order
        id_col: name of the region id column the ids came from
    """
    region_ids: pd.Series
    regions: pd.Index
    id_col: str = "region_id"

    @property
    def matched(self) -> pd.Series:
        """Boolean mask over points: True where a region was found."""
        return self.region_ids.notna()

    @property
    def unmatched(self) -> pd.Index:
        """Index labels of points that no region contains."""
        return self.region_ids.index[self.region_ids.isna()]

    @property
    def n_matched(self) -> int:
        return int(self.matched.sum())

    @property
    def n_unmatched(self) -> int:
        return len(self.region_ids) - self.n_matched

    def __len__(self) -> int:
        return len(self.region_ids)


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

def _degenerate_reason(geom) -> str:
    """Return why a region geometry can't be used, or '' if it's fine."""
    if geom is None:
        return "null geometry"
    if geom.is_empty:
        return "empty geometry"
    if geom.geom_type not in POLYGON_TYPES:
        return f"non-polygonal geometry ({geom.geom_type})"
    if not geom.is_valid:
        return "invalid geometry"
    if not geom.area > 0:
        return "zero-area geometry"
    return ""


def validate_regions(regions: gpd.GeoDataFrame, id_col: str = "region_id") -> None:
    """Check that region ids are unique and every geometry is a usable polygon.

    Raises:
        KeyError: id_col isn't a column
        DuplicateRegionId: ids are missing or repeated
        InvalidGeometry: any geometry is null, empty, non-polygonal, invalid
            or has zero area (every offending id is listed)
    """
    if id_col not in regions.columns:
        raise KeyError(f"Region id column '{id_col}' not found. Available columns: {list(regions.columns)}")

    ids = regions[id_col]
    if ids.isna().any():
        raise DuplicateRegionId(f"{int(ids.isna().sum())} region(s) have no id in '{id_col}'")
    dupes = ids[ids.duplicated(keep=False)]
    if not dupes.empty:
        raise DuplicateRegionId(f"Duplicate region ids in '{id_col}': {sorted(set(map(str, dupes)))}")

    bad = {}
    for region_id, geom in zip(ids, regions.geometry):
        reason = _degenerate_reason(geom)
        if reason:
            bad.setdefault(reason, []).append(region_id)
    if bad:
        # Report the first kind of problem; fix-and-rerun surfaces the rest.
        reason, offenders = next(iter(bad.items()))
        raise InvalidGeometry(offenders, reason=reason)


def _check_crs(regions: gpd.GeoDataFrame, points: PointsLike) -> None:
    if regions.crs is not None and points.crs is not None and regions.crs != points.crs:
        raise CrsMismatch(
            f"Points CRS ({points.crs.to_string()}) differs from regions CRS ({regions.crs.to_string()}). "
            "Reproject the points first."
        )


# -----------------------------------------------------------------------------
# Overlay
# -----------------------------------------------------------------------------

def spatial_join(
    regions: gpd.GeoDataFrame,
    points: PointsLike,
    *,
    id_col: str = "region_id",
    predicate: str = "contains",
) -> JoinResult:
    """Find the containing region for each point.

    Args:
        regions: polygons with a unique id column; row order sets the tie-break
        points: point geometries in the same CRS as the regions
        id_col: region id column
        predicate: "contains" (boundary points are unmatched) or
            "covers" (boundary points match)

    Returns:
        JoinResult with one entry per point, in input order.
    """
    if predicate not in PREDICATES:
        raise ValueError(f"Unknown predicate '{predicate}'. Choose from: {sorted(PREDICATES)}")

    validate_regions(regions, id_col=id_col)
    _check_crs(regions, points)

    ids = regions[id_col].to_numpy(dtype=object)
    point_geoms = points.geometry if isinstance(points, gpd.GeoDataFrame) else points
    assigned = np.full(len(point_geoms), None, dtype=object)

    if len(point_geoms) and len(ids):
        # Positional frames on both sides: the join carries row positions, not labels,
        # so duplicate or non-integer indexes on the caller's side don't matter.
        left = gpd.GeoDataFrame(geometry=list(point_geoms), crs=regions.crs)
        right = gpd.GeoDataFrame(
            {"_region_pos": np.arange(len(ids))},
            geometry=list(regions.geometry),
            crs=regions.crs,
        )
        joined = gpd.sjoin(left, right, how="inner", predicate=PREDICATES[predicate])

        # First match wins: lowest region position per point.
        first = joined.groupby(level=0)["_region_pos"].min()
        assigned[first.index.to_numpy()] = ids[first.to_numpy()]

    region_ids = pd.Series(assigned, index=point_geoms.index, dtype=object, name=id_col)
    return JoinResult(region_ids=region_ids, regions=pd.Index(ids, name=id_col), id_col=id_col)


# -----------------------------------------------------------------------------
# Tabulation
# -----------------------------------------------------------------------------

def count_per_region(join: JoinResult) -> pd.Series:
    """Number of matched points in each region.

    Every region gets an entry; regions without points get an explicit 0.
    Unmatched points aren't counted anywhere (see JoinResult.unmatched).
    """
    counts = join.region_ids.dropna().value_counts()
    counts = counts.reindex(join.regions, fill_value=0).astype(int)
    counts.name = "count"
    return counts


def _is_blank(value) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        # pd.isna on list-likes returns an array; those aren't blank scalars
        return False
    return isinstance(value, str) and not value.strip()


def richness_per_region(join: JoinResult, attribute: Union[Sequence, pd.Series, Iterable]) -> pd.Series:
    """Number of DISTINCT attribute values (e.g. species) in each region.

    Points with a null, empty or whitespace-only attribute don't contribute.
    Unmatched points don't contribute. Every region gets an entry.

    Raises:
        MismatchedLength: attribute doesn't have exactly one value per point
    """
    values = attribute.to_numpy(dtype=object) if isinstance(attribute, pd.Series) else np.asarray(list(attribute), dtype=object)
    if len(values) != len(join):
        raise MismatchedLength(expected=len(join), got=len(values), what="attribute")

    frame = pd.DataFrame({
        "region": join.region_ids.to_numpy(dtype=object),
        "value": values,
    })
    keep = frame["region"].notna() & ~frame["value"].map(_is_blank)
    frame = frame[keep].copy()
    # "Asclepias tuberosa " and "Asclepias tuberosa" are one taxon
    frame["value"] = frame["value"].map(lambda v: v.strip() if isinstance(v, str) else v)

    richness = frame.groupby("region")["value"].nunique()
    richness = richness.reindex(join.regions, fill_value=0).astype(int)
    richness.name = "richness"
    return richness
