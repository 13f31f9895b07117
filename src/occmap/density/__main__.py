#!/usr/bin/env python3
"""occmap.density

Occurrence density CLI for occmap.

This is one of two occmap subsystem CLIs:
- occmap.registry → region (county) geometries and areas
- occmap.density  → occurrence overlay, density and colour scaling (this file)

occmap.density consumes the regions GeoPackage written by occmap.registry and
an occurrence CSV, and writes one row per region:
  region_id, name, count, richness, area, density, scaled, color

It does NOT draw maps. `color` is a '#rrggbbaa' string ready for whatever
plotting layer comes next (geopandas .plot, QGIS, leaflet).

Design notes:
- Options come from CLI flags, then the `occurrences:` / `density:` sections
  of the config YAML, then defaults in occmap.config
- Unmatched occurrences are counted in the summary and can be written out
- Lazy-imports geopandas to keep CLI startup fast

Examples:
  # Log-scaled records per 1000 km^2, with species richness
  python -m occmap.density summarize \
    --occurrences-csv data/raw/occurrences/asclepias.csv \
    --filter-field stateProvince --filter-value Missouri \
    --taxon-col species --area-per-unit 1e9 --strategy log

  # Linear scale, keep the records that fell outside every county
  python -m occmap.density summarize --occurrences-csv asclepias.csv \
    --strategy linear --unmatched-csv data/processed/tables/unmatched.csv
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from occmap.config import (
    coerce_bbox,
    coerce_range,
    load_section,
    pick,
    DEFAULT_AREA_CRS,
    DEFAULT_AREA_PER_UNIT,
    DEFAULT_CONFIG_YAML,
    DEFAULT_LEGEND_STEPS,
    DEFAULT_REGIONS_GPKG,
    DEFAULT_SCALE_RANGE,
    DEFAULT_SUMMARY_CSV,
)


SUMMARY_COLUMNS = ["region_id", "name", "count", "richness", "area", "density", "scaled", "color"]
STRATEGIES = ("linear", "log")
PREDICATES = ("contains", "covers")


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for occmap.density."""
    ap = argparse.ArgumentParser(
        prog="occmap.density",
        description="Occurrence counts, richness and density per region",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m occmap.registry  # Region definition
  python -m occmap.density   # Overlay, density, colour scaling (this)
        """,
    )

    # --- Global args ---
    ap.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to config YAML (e.g. {DEFAULT_CONFIG_YAML}); CLI flags override it",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without reading data or writing files",
    )

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    # --- summarize ---
    summ = sub.add_parser(
        "summarize",
        help="Overlay occurrences on regions and compute density + colours",
        description="""
Assign each occurrence to the region containing it, then compute per region:
- count: number of occurrences
- richness: number of distinct taxa (with --taxon-col)
- density: count per unit area (equal-area measurement)
- scaled: density rescaled to [0, 1] (linear) or a log range (log)
- color: ramp colour for the scaled value
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    # inputs
    summ.add_argument("--regions-gpkg", type=Path, default=None, help=f"Regions GeoPackage (default: {DEFAULT_REGIONS_GPKG})")
    summ.add_argument("--layer", default=None, help="Regions layer name (default: regions)")
    summ.add_argument("--id-col", default=None, help="Region id column (default: region_id)")
    summ.add_argument("--area-col", default=None, help="Region area column in raw units (default: area_m2 if present)")
    summ.add_argument("--occurrences-csv", type=Path, default=None, help="Occurrence table (CSV)")
    summ.add_argument("--lon-col", default=None, help="Longitude column (default: decimalLongitude)")
    summ.add_argument("--lat-col", default=None, help="Latitude column (default: decimalLatitude)")
    summ.add_argument("--occurrences-crs", default=None, help="CRS of the coordinates (default: EPSG:4326)")
    summ.add_argument("--filter-field", default=None, help="Keep only occurrences where this column ...")
    summ.add_argument("--filter-value", default=None, help="... equals this value")
    summ.add_argument("--bounds", nargs=4, type=float, default=None, metavar=("XMIN", "YMIN", "XMAX", "YMAX"),
                      help="Keep only occurrences inside this bbox, in the coordinates' CRS")
    summ.add_argument("--taxon-col", default=None, help="Occurrence column for richness (e.g. species)")
    # statistics
    summ.add_argument("--area-crs", default=None, help=f"Equal-area CRS (default: {DEFAULT_AREA_CRS})")
    summ.add_argument("--area-per-unit", type=float, default=None,
                      help=f"Raw area units per reported unit (default: {DEFAULT_AREA_PER_UNIT:g}, i.e. per km2)")
    summ.add_argument("--strategy", choices=STRATEGIES, default=None, help="Rescaling (default: log)")
    summ.add_argument("--scale-range", nargs=2, type=float, default=None, metavar=("LOW", "HIGH"),
                      help=f"Log scale output range (default: {DEFAULT_SCALE_RANGE[0]} {DEFAULT_SCALE_RANGE[1]})")
    summ.add_argument("--predicate", choices=PREDICATES, default=None,
                      help="Containment test; 'covers' also matches points on boundaries (default: contains)")
    # colours
    summ.add_argument("--color", default=None, help="Ramp colour, faded from transparent (default: darkred)")
    summ.add_argument("--cmap", default=None, help="Use a matplotlib colormap instead of --color")
    summ.add_argument("--ramp-size", type=int, default=None, help="Number of ramp colours (default: 101)")
    summ.add_argument("--opacity", type=float, default=None, help="Alpha multiplier for all colours (default: 1.0)")
    summ.add_argument("--legend-steps", type=int, default=None, help=f"Legend labels (default: {DEFAULT_LEGEND_STEPS})")
    # outputs
    summ.add_argument("--out-csv", type=Path, default=None, help=f"Summary CSV (default: {DEFAULT_SUMMARY_CSV})")
    summ.add_argument("--out-gpkg", type=Path, default=None, help="Optional GeoPackage with regions + statistics")
    summ.add_argument("--unmatched-csv", type=Path, default=None, help="Optional CSV of occurrences outside every region")
    summ.add_argument("--top", type=int, default=10, help="Regions to list in the printed summary (default: 10)")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _resolve_summarize(args: argparse.Namespace) -> dict:
    """Merge CLI flags, config sections and defaults into one options dict."""
    regions_cfg = load_section(args.config, "regions")
    occ_cfg = load_section(args.config, "occurrences")
    cfg = load_section(args.config, "density")

    occurrences_csv = pick(args.occurrences_csv, occ_cfg, "csv")
    if occurrences_csv is None:
        raise SystemExit("No occurrence table: pass --occurrences-csv or set occurrences.csv in the config")

    scale_range = coerce_range(pick(args.scale_range, cfg, "scale_range", list(DEFAULT_SCALE_RANGE)))
    if scale_range is None:
        raise SystemExit("scale_range must be two numbers, LOW < HIGH")

    bounds_raw = pick(args.bounds, occ_cfg, "bounds")
    bounds = coerce_bbox(bounds_raw)
    if bounds_raw is not None and bounds is None:
        raise SystemExit(f"bounds must be [xmin, ymin, xmax, ymax] with min <= max, got {bounds_raw!r}")

    strategy = str(pick(args.strategy, cfg, "strategy", "log")).lower()
    if strategy not in STRATEGIES:
        raise SystemExit(f"strategy must be one of {STRATEGIES}, got {strategy!r}")

    predicate = pick(args.predicate, cfg, "predicate", "contains")
    if predicate not in PREDICATES:
        raise SystemExit(f"predicate must be one of {PREDICATES}, got {predicate!r}")

    opacity = float(pick(args.opacity, cfg, "opacity", 1.0))
    if not 0.0 <= opacity <= 1.0:
        raise SystemExit(f"opacity must be within [0, 1], got {opacity}")

    ramp_size = int(pick(args.ramp_size, cfg, "ramp_size", 101))
    if ramp_size < 2:
        raise SystemExit(f"ramp_size must be at least 2, got {ramp_size}")

    return dict(
        regions_gpkg=Path(pick(args.regions_gpkg, cfg, "regions_gpkg", regions_cfg.get("out_gpkg", DEFAULT_REGIONS_GPKG))),
        layer=pick(args.layer, cfg, "layer", regions_cfg.get("layer", "regions")),
        id_col=pick(args.id_col, cfg, "id_col", "region_id"),
        area_col=pick(args.area_col, cfg, "area_col"),
        occurrences_csv=Path(occurrences_csv),
        lon_col=pick(args.lon_col, occ_cfg, "lon_col", "decimalLongitude"),
        lat_col=pick(args.lat_col, occ_cfg, "lat_col", "decimalLatitude"),
        occurrences_crs=pick(args.occurrences_crs, occ_cfg, "crs", "EPSG:4326"),
        filter_field=pick(args.filter_field, occ_cfg, "filter_field"),
        filter_value=pick(args.filter_value, occ_cfg, "filter_value"),
        bounds=bounds,
        taxon_col=pick(args.taxon_col, occ_cfg, "taxon_col"),
        area_crs=pick(args.area_crs, cfg, "area_crs", regions_cfg.get("area_crs", DEFAULT_AREA_CRS)),
        area_per_unit=float(pick(args.area_per_unit, cfg, "area_per_unit", DEFAULT_AREA_PER_UNIT)),
        strategy=strategy,
        scale_range=scale_range,
        predicate=predicate,
        color=pick(args.color, cfg, "color", "darkred"),
        cmap=pick(args.cmap, cfg, "cmap"),
        ramp_size=ramp_size,
        opacity=opacity,
        legend_steps=int(pick(args.legend_steps, cfg, "legend_steps", DEFAULT_LEGEND_STEPS)),
        out_csv=Path(pick(args.out_csv, cfg, "out_csv", DEFAULT_SUMMARY_CSV)),
        out_gpkg=pick(args.out_gpkg, cfg, "out_gpkg"),
        unmatched_csv=pick(args.unmatched_csv, cfg, "unmatched_csv"),
        top=args.top,
    )


def _handle_summarize(args: argparse.Namespace) -> int:
    """Handle the summarize subcommand."""
    opts = _resolve_summarize(args)

    if args.dry_run:
        print("[dry-run] Would summarize occurrences by region:")
        for key, value in opts.items():
            print(f"  {key}: {value}")
        return 0

    if not opts["regions_gpkg"].exists():
        raise SystemExit(
            f"Regions GeoPackage not found: {opts['regions_gpkg']}\n"
            "Run `python -m occmap.registry prep-regions` first."
        )

    # Lazy imports: keep CLI startup fast, avoid loading geopandas until needed
    import geopandas as gpd

    from occmap.density.colors import ColorRamp
    from occmap.density.pipeline import summarize_regions
    from occmap.ingest.occurrences import load_occurrences

    regions = gpd.read_file(opts["regions_gpkg"], layer=opts["layer"])
    print(f"[DENSITY] Loaded {len(regions)} regions from {opts['regions_gpkg']} (layer={opts['layer']})")

    occurrences = load_occurrences(
        opts["occurrences_csv"],
        lon_col=opts["lon_col"],
        lat_col=opts["lat_col"],
        crs=opts["occurrences_crs"],
        filter_field=opts["filter_field"],
        filter_value=opts["filter_value"],
        bounds=opts["bounds"],
    )

    area_col = opts["area_col"]
    if area_col is None and "area_m2" in regions.columns:
        area_col = "area_m2"

    try:
        if opts["cmap"]:
            ramp = ColorRamp.from_cmap(opts["cmap"], n=opts["ramp_size"])
        else:
            ramp = ColorRamp.fade(opts["color"], n=opts["ramp_size"])

        summary = summarize_regions(
            regions,
            occurrences,
            id_col=opts["id_col"],
            taxon_col=opts["taxon_col"],
            area_col=area_col,
            area_crs=opts["area_crs"],
            area_per_unit=opts["area_per_unit"],
            strategy=opts["strategy"],
            scale_range=opts["scale_range"],
            ramp=ramp,
            opacity=opts["opacity"],
            predicate=opts["predicate"],
            legend_steps=opts["legend_steps"],
        )
    # OccmapError is a ValueError; matplotlib and pyproj report bad colours and CRSs the same way
    except (ValueError, KeyError) as e:
        raise SystemExit(f"[DENSITY] {type(e).__name__}: {e}") from e

    _write_outputs(summary, occurrences, opts)
    _print_summary(summary, opts)
    return 0


def _write_outputs(summary, occurrences, opts: dict) -> None:
    """Write the summary CSV, plus the optional GeoPackage and unmatched CSV."""
    table = summary.regions.drop(columns="geometry")
    if opts["id_col"] != "region_id":
        table = table.drop(columns="region_id", errors="ignore")
        table = table.rename(columns={opts["id_col"]: "region_id"})
    cols = [c for c in SUMMARY_COLUMNS if c in table.columns]

    out_csv = opts["out_csv"]
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    table[cols].to_csv(out_csv, index=False)
    print(f"[DENSITY] Wrote {len(table)} regions -> {out_csv}")

    if opts["out_gpkg"]:
        out_gpkg = Path(opts["out_gpkg"])
        out_gpkg.parent.mkdir(parents=True, exist_ok=True)
        summary.regions.to_file(out_gpkg, layer="region_density", driver="GPKG")
        print(f"[DENSITY] Wrote regions + statistics -> {out_gpkg} (layer=region_density)")

    if opts["unmatched_csv"] and summary.n_unmatched:
        unmatched_csv = Path(opts["unmatched_csv"])
        unmatched_csv.parent.mkdir(parents=True, exist_ok=True)
        unmatched = occurrences.loc[summary.join.unmatched].drop(columns="geometry")
        unmatched.to_csv(unmatched_csv, index=True)
        print(f"[DENSITY] Wrote {len(unmatched)} unmatched occurrences -> {unmatched_csv}")


def _print_summary(summary, opts: dict) -> None:
    """Human-friendly summary of the run."""
    regions = summary.regions
    total = summary.n_matched + summary.n_unmatched
    print(f"[DENSITY] {summary.n_matched}/{total} occurrences matched a region; {summary.n_unmatched} unmatched")
    print(f"[DENSITY] {int((regions['count'] == 0).sum())} of {len(regions)} regions have no occurrences")

    undefined = regions["density"].isna()
    if undefined.any():
        print(f"[DENSITY] {int(undefined.sum())} regions have undefined density (zero/missing area)")

    print(f"[DENSITY] Scale: {summary.strategy.value}; legend labels (per {opts['area_per_unit']:g} area units):")
    print("  " + ", ".join(f"{x:.3g}" for x in summary.labels))

    top = regions.sort_values("density", ascending=False, na_position="last").head(opts["top"])
    print(f"Top {len(top)} regions by density:")
    for _, row in top.iterrows():
        rich = f" | richness={row['richness']}" if "richness" in row.index else ""
        print(f"  - {row[opts['id_col']]} | count={row['count']}{rich} | density={row['density']:.3g} | {row['color']}")


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for occmap.density CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "summarize": _handle_summarize,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
