#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import Point, box

from occmap.density.colors import ColorRamp, to_hex
from occmap.density.normalize import ScaleStrategy
from occmap.density.pipeline import summarize_regions
from occmap.errors import DegenerateScale


@pytest.fixture
def regions():
    # A: area 100, B: area 50 (planar, no CRS)
    return gpd.GeoDataFrame(
        {"region_id": ["A", "B"], "area": [100.0, 50.0]},
        geometry=[box(0, 0, 10, 10), box(20, 0, 25, 10)],
    )


@pytest.fixture
def occurrences():
    pts = [Point(1 + 0.5 * i, 5) for i in range(10)] + [Point(100, 100)]
    species = ["syriaca"] * 6 + ["tuberosa"] * 3 + [""] + ["viridis"]
    return gpd.GeoDataFrame({"species": species}, geometry=pts)


def test_linear_scenario(regions, occurrences):
    ramp = ColorRamp.fade("darkred", n=11)
    summary = summarize_regions(
        regions, occurrences,
        area_col="area", area_per_unit=1.0, strategy="linear", ramp=ramp,
    )
    out = summary.regions.set_index("region_id")
    assert out["count"].to_dict() == {"A": 10, "B": 0}
    assert out["density"].to_dict() == {"A": 0.1, "B": 0.0}
    assert out["scaled"].to_dict() == {"A": 1.0, "B": 0.0}
    assert out.loc["A", "color"] == to_hex(ramp.colors[-1])
    assert out.loc["B", "color"] == to_hex(ramp.colors[0])
    assert summary.strategy is ScaleStrategy.LINEAR
    assert summary.labels[0] == 0.0 and summary.labels[-1] == pytest.approx(0.1)


def test_unmatched_occurrences_are_reported(regions, occurrences):
    summary = summarize_regions(regions, occurrences, area_col="area", strategy="linear")
    assert summary.n_matched == 10
    assert summary.n_unmatched == 1
    assert list(summary.join.unmatched) == [10]
    assert summary.regions["count"].sum() == summary.n_matched


def test_richness_column(regions, occurrences):
    summary = summarize_regions(regions, occurrences, area_col="area", taxon_col="species", strategy="linear")
    out = summary.regions.set_index("region_id")
    assert out["richness"].to_dict() == {"A": 2, "B": 0}
    assert (out["richness"] <= out["count"]).all()


def test_missing_taxon_column(regions, occurrences):
    with pytest.raises(KeyError):
        summarize_regions(regions, occurrences, area_col="area", taxon_col="scientificName", strategy="linear")


def test_inputs_are_not_modified(regions, occurrences):
    before = list(regions.columns)
    summarize_regions(regions, occurrences, area_col="area", strategy="linear")
    assert list(regions.columns) == before
    assert list(occurrences.columns) == ["species", "geometry"]


def test_repeat_runs_are_identical(regions, occurrences):
    first = summarize_regions(regions, occurrences, area_col="area", strategy="log")
    second = summarize_regions(regions, occurrences, area_col="area", strategy="log")
    cols = ["count", "density", "scaled", "color"]
    assert first.regions[cols].equals(second.regions[cols])


def test_log_with_no_occurrences_is_degenerate(regions):
    empty = gpd.GeoDataFrame({"species": []}, geometry=gpd.GeoSeries([], dtype="geometry"))
    with pytest.raises(DegenerateScale):
        summarize_regions(regions, empty, area_col="area", strategy="log")


def test_zero_area_region_gets_no_data_color(regions, occurrences):
    regions = regions.copy()
    regions.loc[1, "area"] = 0.0
    summary = summarize_regions(regions, occurrences, area_col="area", strategy="linear")
    out = summary.regions.set_index("region_id")
    assert np.isnan(out.loc["B", "density"])
    assert np.isnan(out.loc["B", "scaled"])
    assert out.loc["B", "color"] == "#00000000"


def test_occurrences_reprojected_and_areas_measured():
    # Two 1-degree cells in Missouri, lon/lat
    regions = gpd.GeoDataFrame(
        {"region_id": ["west", "east"]},
        geometry=[box(-93, 38, -92, 39), box(-92, 38, -91, 39)],
        crs="EPSG:4326",
    )
    pts = gpd.GeoDataFrame(
        {"species": ["a", "b", "c"]},
        geometry=[Point(-92.5, 38.5), Point(-91.5, 38.5), Point(-91.2, 38.2)],
        crs="EPSG:4326",
    ).to_crs("EPSG:3857")

    summary = summarize_regions(regions, pts, area_crs="EPSG:5070", area_per_unit=1e6, strategy="log")
    out = summary.regions.set_index("region_id")
    assert out["count"].to_dict() == {"west": 1, "east": 2}
    # a 1x1 degree cell at 38N is roughly 9,700 km2
    assert 8_000e6 < out.loc["west", "area"] < 11_000e6
    assert out.loc["east", "scaled"] == 0.8
    assert out.loc["west", "scaled"] == 0.0
