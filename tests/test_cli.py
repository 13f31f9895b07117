#!/usr/bin/env python3

from __future__ import annotations

import importlib
import sys
from pathlib import Path
from types import SimpleNamespace

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

registry_cli = importlib.import_module("occmap.registry.__main__")
density_cli = importlib.import_module("occmap.density.__main__")


def test_registry_dry_run_uses_config(tmp_path, capsys):
    cfg = tmp_path / "occmap.yaml"
    cfg.write_text("regions:\n  src: counties.gpkg\n  id_field: NAME_2\n  filter_field: NAME_1\n  filter_value: Missouri\n")
    assert registry_cli.main(["--config", str(cfg), "--dry-run", "prep-regions", "--id-field", "GEOID"]) == 0
    out = capsys.readouterr().out
    assert "[dry-run] Would prepare regions" in out
    assert "id_field: GEOID" in out
    assert "filter_value: Missouri" in out


def test_registry_requires_source():
    with pytest.raises(SystemExit):
        registry_cli.main(["prep-regions", "--id-field", "NAME_2"])


def test_density_dry_run(capsys):
    assert density_cli.main(["--dry-run", "summarize", "--occurrences-csv", "x.csv", "--strategy", "linear"]) == 0
    out = capsys.readouterr().out
    assert "strategy: linear" in out
    assert "scale_range: (0.0, 0.8)" in out


def test_density_rejects_bad_scale_range():
    with pytest.raises(SystemExit):
        density_cli.main(["--dry-run", "summarize", "--occurrences-csv", "x.csv", "--scale-range", "1", "0"])


def test_registry_then_density_end_to_end(tmp_path, capsys):
    counties = gpd.GeoDataFrame(
        {"NAME_1": ["Missouri", "Missouri"], "NAME_2": ["Boone", "Callaway"]},
        geometry=[box(-92.6, 38.7, -92.1, 39.2), box(-92.1, 38.6, -91.4, 39.1)],
        crs="EPSG:4326",
    )
    src = tmp_path / "counties.gpkg"
    counties.to_file(src, layer="counties", driver="GPKG")
    regions_gpkg = tmp_path / "regions.gpkg"
    assert registry_cli.main(["prep-regions", "--src", str(src), "--id-field", "NAME_2", "--out-gpkg", str(regions_gpkg)]) == 0

    occ = pd.DataFrame({
        "species": ["syriaca", "tuberosa", "syriaca", "viridis"],
        "decimalLongitude": [-92.3, -92.2, -91.8, -80.0],
        "decimalLatitude": [38.9, 39.0, 38.8, 35.0],
    })
    occ_csv = tmp_path / "occ.csv"
    occ.to_csv(occ_csv, index=False)

    out_csv = tmp_path / "density.csv"
    unmatched_csv = tmp_path / "unmatched.csv"
    rc = density_cli.main([
        "summarize",
        "--regions-gpkg", str(regions_gpkg),
        "--occurrences-csv", str(occ_csv),
        "--taxon-col", "species",
        "--strategy", "linear",
        "--out-csv", str(out_csv),
        "--unmatched-csv", str(unmatched_csv),
    ])
    assert rc == 0

    table = pd.read_csv(out_csv).set_index("region_id")
    assert list(table.columns) == ["name", "count", "richness", "area", "density", "scaled", "color"]
    assert table["count"].to_dict() == {"Boone": 2, "Callaway": 1}
    assert table["richness"].to_dict() == {"Boone": 2, "Callaway": 1}
    assert table["scaled"].max() == 1.0

    unmatched = pd.read_csv(unmatched_csv)
    assert unmatched["species"].tolist() == ["viridis"]

    out = capsys.readouterr().out
    assert "3/4 occurrences matched a region; 1 unmatched" in out


def test_density_dry_run_bounds_flag(capsys):
    argv = ["--dry-run", "summarize", "--occurrences-csv", "x.csv", "--bounds", "-95.8", "35.9", "-89.1", "40.6"]
    assert density_cli.main(argv) == 0
    assert "bounds: (-95.8, 35.9, -89.1, 40.6)" in capsys.readouterr().out


def test_density_bounds_flag_overrides_config(tmp_path, capsys):
    cfg = tmp_path / "occmap.yaml"
    cfg.write_text("occurrences:\n  csv: x.csv\n  bounds: [0, 0, 1, 1]\n")
    argv = ["--config", str(cfg), "--dry-run", "summarize", "--bounds", "-93", "38", "-91", "40"]
    assert density_cli.main(argv) == 0
    assert "bounds: (-93.0, 38.0, -91.0, 40.0)" in capsys.readouterr().out


@pytest.mark.parametrize(
    "extra",
    [
        ["--opacity", "1.5"],
        ["--opacity", "-0.1"],
        ["--ramp-size", "1"],
        ["--bounds", "-89", "35", "-95", "40"],
    ],
)
def test_density_rejects_out_of_range_flags(extra):
    with pytest.raises(SystemExit):
        density_cli.main(["--dry-run", "summarize", "--occurrences-csv", "x.csv", *extra])


@pytest.mark.parametrize(
    "density_yaml",
    ["  strategy: exp\n", "  predicate: within\n", "  opacity: 2\n", "  ramp_size: 0\n"],
)
def test_density_rejects_bad_config_values(tmp_path, density_yaml):
    cfg = tmp_path / "occmap.yaml"
    cfg.write_text("density:\n" + density_yaml)
    with pytest.raises(SystemExit):
        density_cli.main(["--config", str(cfg), "--dry-run", "summarize", "--occurrences-csv", "x.csv"])


def test_density_config_strategy_is_case_insensitive(tmp_path, capsys):
    cfg = tmp_path / "occmap.yaml"
    cfg.write_text("density:\n  strategy: LOG\n")
    assert density_cli.main(["--config", str(cfg), "--dry-run", "summarize", "--occurrences-csv", "x.csv"]) == 0
    assert "strategy: log" in capsys.readouterr().out


def test_density_regions_without_crs_exit_cleanly(tmp_path):
    regions = gpd.GeoDataFrame({"region_id": ["Boone"]}, geometry=[box(0, 0, 1, 1)])
    regions_gpkg = tmp_path / "regions.gpkg"
    regions.to_file(regions_gpkg, layer="regions", driver="GPKG")
    occ_csv = tmp_path / "occ.csv"
    pd.DataFrame({"decimalLongitude": [0.5], "decimalLatitude": [0.5]}).to_csv(occ_csv, index=False)

    with pytest.raises(SystemExit, match="ValueError"):
        density_cli.main([
            "summarize",
            "--regions-gpkg", str(regions_gpkg),
            "--occurrences-csv", str(occ_csv),
            "--out-csv", str(tmp_path / "density.csv"),
        ])


def test_write_outputs_with_other_id_col_keeps_one_region_id(tmp_path):
    regions = gpd.GeoDataFrame(
        {
            "region_id": ["29019", "29027"],
            "name": ["Boone", "Callaway"],
            "count": [2, 1],
            "area": [1.0, 2.0],
            "density": [2.0, 0.5],
            "scaled": [1.0, 0.0],
            "color": ["#8b0000ff", "#8b000000"],
        },
        geometry=[box(0, 0, 1, 1), box(1, 0, 3, 1)],
        crs="EPSG:4326",
    )
    summary = SimpleNamespace(regions=regions, n_unmatched=0)
    out_csv = tmp_path / "density.csv"
    opts = {"id_col": "name", "out_csv": out_csv, "out_gpkg": None, "unmatched_csv": None}

    density_cli._write_outputs(summary, None, opts)

    table = pd.read_csv(out_csv)
    assert list(table.columns) == ["region_id", "count", "area", "density", "scaled", "color"]
    assert table["region_id"].tolist() == ["Boone", "Callaway"]
