#!/usr/bin/env python3
"""occurrences.py

Load an occurrence table (herbarium / GBIF-style CSV) as point geometries.

V0 scope (intentionally restrained):
- Read a local CSV with decimal longitude/latitude columns
- Drop records without complete, numeric coordinates
- Optional attribute filter (e.g. stateProvince == Missouri)
- Optional bbox filter
- No downloading, no georeferencing, no taxonomy cleanup

Records dropped here are reported, not hidden: the summary line says how
many went and why.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import geopandas as gpd
import pandas as pd

from occmap.config import format_bbox


BBox = Tuple[float, float, float, float]

DEFAULT_LON_COL = "decimalLongitude"
DEFAULT_LAT_COL = "decimalLatitude"


def points_from_frame(
    df: pd.DataFrame,
    *,
    lon_col: str = DEFAULT_LON_COL,
    lat_col: str = DEFAULT_LAT_COL,
    crs: str = "EPSG:4326",
    filter_field: Optional[str] = None,
    filter_value: Optional[str] = None,
    bounds: Optional[BBox] = None,
) -> gpd.GeoDataFrame:
    """Build a point GeoDataFrame from a table of occurrence records.

    The original row index is kept so records can be traced back to the table.
    """
    for col in (lon_col, lat_col, filter_field):
        if col and col not in df.columns:
            raise SystemExit(f"Column '{col}' not found in occurrences. Available columns: {list(df.columns)}")

    n_in = len(df)
    lon = pd.to_numeric(df[lon_col], errors="coerce")
    lat = pd.to_numeric(df[lat_col], errors="coerce")
    # Masks are plain arrays so duplicate index labels can't misalign them.
    keep = (lon.notna() & lat.notna()).to_numpy(copy=True)
    n_no_coords = int((~keep).sum())

    n_filtered = 0
    if filter_field is not None:
        match = (df[filter_field].astype(str).str.strip() == str(filter_value).strip()).to_numpy()
        n_filtered = int((keep & ~match).sum())
        keep = keep & match

    n_outside = 0
    if bounds is not None:
        xmin, ymin, xmax, ymax = bounds
        inside = (lon.between(xmin, xmax) & lat.between(ymin, ymax)).to_numpy()
        n_outside = int((keep & ~inside).sum())
        keep = keep & inside

    gdf = gpd.GeoDataFrame(
        df[keep].copy(),
        geometry=gpd.points_from_xy(lon.to_numpy()[keep], lat.to_numpy()[keep]),
        crs=crs,
    )

    print(f"[OCCURRENCES] {n_in} records in, {len(gdf)} kept")
    if n_no_coords:
        print(f"[OCCURRENCES]   dropped {n_no_coords} without complete coordinates")
    if n_filtered:
        print(f"[OCCURRENCES]   dropped {n_filtered} where {filter_field} != {filter_value!r}")
    if n_outside:
        print(f"[OCCURRENCES]   dropped {n_outside} outside {format_bbox(bounds)}")

    return gdf


def load_occurrences(
    path: Path,
    *,
    lon_col: str = DEFAULT_LON_COL,
    lat_col: str = DEFAULT_LAT_COL,
    crs: str = "EPSG:4326",
    filter_field: Optional[str] = None,
    filter_value: Optional[str] = None,
    bounds: Optional[BBox] = None,
) -> gpd.GeoDataFrame:
    """Read an occurrence CSV and return its georeferenced records as points."""
    if not path.exists():
        raise SystemExit(f"Occurrence table not found: {path}")
    df = pd.read_csv(path, low_memory=False)
    print(f"[OCCURRENCES] Read {path}")
    return points_from_frame(
        df,
        lon_col=lon_col,
        lat_col=lat_col,
        crs=crs,
        filter_field=filter_field,
        filter_value=filter_value,
        bounds=bounds,
    )
