#!/usr/bin/env python3
"""prep_regions.py

Turn a county (or any admin/ecological region) vector file into a clean,
uniquely keyed GeoPackage with equal-area polygon areas.

This is what the density pipeline expects as its regions input:
- one row per region, keyed by a unique `region_id`
- valid, non-empty polygon geometries
- `area_m2` measured in an equal-area CRS (not in lon/lat degrees)

This module exposes two interfaces:
1. prep_regions() - callable function for programmatic use / CLI dispatch
2. region_areas() - area measurement reused by the density pipeline

Example (via occmap.registry):
  python -m occmap.registry prep-regions \
    --src data/raw/boundaries/gadm_usa_2.gpkg \
    --filter-field NAME_1 --filter-value Missouri \
    --id-field NAME_2

Notes:
- Ids are normalized so " St. Louis " and "St.  Louis" match "St. Louis".
- Counties split into several rows (islands, river cut-offs) need --dissolve.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional

import geopandas as gpd
import pandas as pd
from shapely.ops import unary_union

from occmap.config import DEFAULT_AREA_CRS, DEFAULT_TARGET_CRS
from occmap.density.join import POLYGON_TYPES


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------

def _normalize_id(x: Any) -> str:
    """Normalize a region identifier to a comparable string.

    Strips outer whitespace and collapses inner runs of whitespace.
    Leading zeros are kept: "029" is a FIPS code, not the number 29.
    Returns empty string for missing inputs.
    """
    if x is None:
        return ""
    try:
        if pd.isna(x):
            return ""
    except (TypeError, ValueError):
        pass
    return re.sub(r"\s+", " ", str(x)).strip()


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Repair invalid geometries (self-intersections, bow-ties).

    Uses GeoSeries.make_valid() where available, else the buffer(0) trick
    (works but can alter geometry slightly).
    """
    gdf = gdf.copy()
    if hasattr(gdf.geometry, "make_valid"):
        gdf["geometry"] = gdf.geometry.make_valid()
    else:
        gdf["geometry"] = gdf.geometry.buffer(0)
    return gdf


def _keep_polygons(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Drop null/empty geometries and the non-polygon debris make_valid can leave.

    make_valid can turn a bow-tie into a GeometryCollection; keep only its
    polygonal parts.
    """
    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty].copy()
    gdf["geometry"] = gdf.geometry.apply(_polygonal_part)
    gdf = gdf[gdf.geometry.notna()]
    return gdf[gdf.geom_type.isin(POLYGON_TYPES)].copy()


def _polygonal_part(geom):
    if geom.geom_type != "GeometryCollection":
        return geom
    polys = [p for p in geom.geoms if p.geom_type in POLYGON_TYPES]
    return unary_union(polys) if polys else None


def region_areas(gdf: gpd.GeoDataFrame, area_crs: str = DEFAULT_AREA_CRS) -> pd.Series:
    """Polygon areas in the squared units of an equal-area CRS (m^2 for Albers).

    Default CRS is EPSG:5070 (CONUS Albers), appropriate for US counties.
    For other regions, pass a suitable equal-area projection.
    Returned Series shares the frame's index.
    """
    if gdf.crs is None:
        raise ValueError("Input geometries have no CRS; can't compute area safely.")
    tmp = gdf.to_crs(area_crs)
    areas = tmp.geometry.area.astype(float)
    areas.name = "area_m2"
    return areas


# -----------------------------------------------------------------------------
# Core function (called by CLI)
# -----------------------------------------------------------------------------

def prep_regions(
    src: Path,
    out_gpkg: Path,
    *,
    id_field: str,
    name_field: Optional[str] = None,
    filter_field: Optional[str] = None,
    filter_value: Optional[str] = None,
    layer: str = "regions",
    target_crs: str = DEFAULT_TARGET_CRS,
    area_crs: str = DEFAULT_AREA_CRS,
    dissolve: bool = False,
) -> gpd.GeoDataFrame:
    """Process a region vector file into a clean GeoPackage.

    Steps:
    1. Optionally filter rows (e.g. NAME_1 == "Missouri")
    2. Normalize ids and check they are present and unique
    3. Fix invalid geometries, drop empty ones
    4. Optionally dissolve multipart rows into one row per id
    5. Compute areas in an equal-area CRS
    6. Reproject to target CRS and write

    Args:
        src: any vector file geopandas can read (shapefile, GeoPackage, GeoJSON)
        out_gpkg: output GeoPackage path
        id_field: column holding the region identifier (e.g. NAME_2, GEOID)
        name_field: optional display-name column (defaults to id_field)
        filter_field / filter_value: keep only rows where field == value
        layer: GeoPackage layer name
        target_crs: CRS for output geometries (default WGS84)
        area_crs: CRS for area calculations (default CONUS Albers)
        dissolve: merge rows sharing an id instead of failing on duplicates

    Returns:
        The processed GeoDataFrame (also written to out_gpkg).

    Raises:
        SystemExit: On missing files/fields, empty selections, or bad ids.
    """
    # --- Validate inputs ---
    if not src.exists():
        raise SystemExit(f"Region source not found: {src}")
    if (filter_field is None) != (filter_value is None):
        raise SystemExit("--filter-field and --filter-value must be given together")

    # --- Load ---
    gdf = gpd.read_file(src)

    if gdf.empty:
        raise SystemExit("Loaded region source but it contains zero features. Wrong file?")

    if gdf.crs is None:
        raise SystemExit(
            "Region source has no CRS (.prj missing or unreadable). "
            "Fix that first; area measurement depends on CRS."
        )

    for field in (id_field, name_field, filter_field):
        if field and field not in gdf.columns:
            raise SystemExit(f"Field '{field}' not found. Available columns: {list(gdf.columns)}")

    # --- Filter ---
    if filter_field is not None:
        wanted = _normalize_id(filter_value)
        gdf = gdf[gdf[filter_field].map(_normalize_id) == wanted]
        if gdf.empty:
            raise SystemExit(f"No features where {filter_field} == {filter_value!r}")
        print(f"[REGIONS] {len(gdf)} features where {filter_field} == {filter_value!r}")

    out = gdf.copy()
    out["region_id"] = out[id_field].map(_normalize_id)
    out["name"] = out[name_field or id_field].map(_normalize_id)

    # --- Check ids ---
    blank = out["region_id"] == ""
    if blank.any():
        raise SystemExit(f"{int(blank.sum())} feature(s) have an empty '{id_field}'. Pick another --id-field.")

    dupes = sorted(set(out.loc[out["region_id"].duplicated(), "region_id"]))
    if dupes and not dissolve:
        raise SystemExit(
            f"Duplicate ids in '{id_field}': {dupes[:10]}\n"
            "Use --dissolve to merge multipart regions, or pick a unique --id-field."
        )

    # --- Geometry cleanup ---
    out = _make_valid(out)
    out = _keep_polygons(out)
    if out.empty:
        raise SystemExit("No polygon geometries left after cleanup.")

    if dissolve:
        out = out[["region_id", "name", "geometry"]].dissolve(by="region_id", as_index=False)

    # --- Areas (equal-area CRS) ---
    out["area_m2"] = region_areas(out, area_crs=area_crs)
    zero = out.loc[out["area_m2"] <= 0, "region_id"].tolist()
    if zero:
        raise SystemExit(f"Regions with zero area after cleanup: {zero[:10]}")

    # --- Reproject to output CRS ---
    out = out.to_crs(target_crs)
    out = out[["region_id", "name", "area_m2", "geometry"]].reset_index(drop=True)

    # --- Write ---
    out_gpkg.parent.mkdir(parents=True, exist_ok=True)
    out.to_file(out_gpkg, layer=layer, driver="GPKG")

    # --- Human-friendly summary ---
    total_km2 = out["area_m2"].sum() / 1_000_000.0
    print(f"[REGIONS] Wrote {len(out)} regions -> {out_gpkg} (layer={layer})")
    print(f"[REGIONS] Total area: {total_km2:,.1f} km2 (measured in {area_crs}); output CRS: {target_crs}")

    return out
