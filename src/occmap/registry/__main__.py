#!/usr/bin/env python3
"""occmap.registry

Region definition CLI for occmap.

This is one of two occmap subsystem CLIs:
- occmap.registry → region (county) geometries and areas (this file)
- occmap.density  → occurrence overlay, density and colour scaling

occmap.registry is the source of truth for the aggregation units.
It defines WHICH polygons exist and HOW BIG they are. occmap.density only
consumes its output.

Outputs:
- data/interim/vectors/regions.gpkg → region_id, name, area_m2, geometry

Design notes:
- Region source files are acquired by hand (GADM, TIGER, etc.); no download here
- Options come from CLI flags, then the `regions:` section of the config YAML
- Lazy-imports geopandas to keep CLI startup fast

Examples:
  # Missouri counties from a GADM level-2 file
  python -m occmap.registry prep-regions \
    --src data/raw/boundaries/gadm36_USA_2.gpkg \
    --filter-field NAME_1 --filter-value Missouri --id-field NAME_2

  # Same, with everything read from config/occmap.yaml
  python -m occmap.registry --config config/occmap.yaml prep-regions
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from occmap.config import (
    load_section,
    pick,
    DEFAULT_AREA_CRS,
    DEFAULT_CONFIG_YAML,
    DEFAULT_REGIONS_GPKG,
    DEFAULT_TARGET_CRS,
)


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for occmap.registry."""
    ap = argparse.ArgumentParser(
        prog="occmap.registry",
        description="Region definition for occmap (source of truth for aggregation units)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m occmap.registry  # Region definition (this)
  python -m occmap.density   # Overlay, density, colour scaling

Registry outputs:
  data/interim/vectors/regions.gpkg   # Canonical region geometries + area_m2
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
        help="Print planned actions without writing files",
    )

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    # --- prep-regions ---
    prep = sub.add_parser(
        "prep-regions",
        help="Prepare region polygons from a vector file",
        description="""
Process a region vector file into the canonical regions GeoPackage.

This command:
1. Optionally filters rows (e.g. one state out of a national county file)
2. Normalizes and checks region ids
3. Repairs geometries and optionally dissolves multipart regions
4. Measures areas in an equal-area CRS
5. Writes the GeoPackage
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    prep.add_argument("--src", type=Path, default=None, help="Region vector file (shapefile, GeoPackage, GeoJSON)")
    prep.add_argument("--out-gpkg", type=Path, default=None, help=f"Output GeoPackage (default: {DEFAULT_REGIONS_GPKG})")
    prep.add_argument("--layer", default=None, help="Layer name in output GeoPackage (default: regions)")
    prep.add_argument("--id-field", default=None, help="Column with the unique region id (e.g. NAME_2)")
    prep.add_argument("--name-field", default=None, help="Column with the display name (default: id field)")
    prep.add_argument("--filter-field", default=None, help="Keep only rows where this column ...")
    prep.add_argument("--filter-value", default=None, help="... equals this value")
    prep.add_argument("--target-crs", default=None, help=f"Output CRS (default: {DEFAULT_TARGET_CRS})")
    prep.add_argument("--area-crs", default=None, help=f"Equal-area CRS for areas (default: {DEFAULT_AREA_CRS})")
    prep.add_argument(
        "--dissolve",
        action="store_true",
        default=None,
        help="Merge rows sharing an id into one multipart region",
    )

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_prep_regions(args: argparse.Namespace) -> int:
    """Handle the prep-regions subcommand."""
    cfg = load_section(args.config, "regions")

    src = pick(args.src, cfg, "src")
    id_field = pick(args.id_field, cfg, "id_field")
    if src is None:
        raise SystemExit("No region source: pass --src or set regions.src in the config")
    if id_field is None:
        raise SystemExit("No id field: pass --id-field or set regions.id_field in the config")

    options = dict(
        src=Path(src),
        out_gpkg=Path(pick(args.out_gpkg, cfg, "out_gpkg", DEFAULT_REGIONS_GPKG)),
        id_field=id_field,
        name_field=pick(args.name_field, cfg, "name_field"),
        filter_field=pick(args.filter_field, cfg, "filter_field"),
        filter_value=pick(args.filter_value, cfg, "filter_value"),
        layer=pick(args.layer, cfg, "layer", "regions"),
        target_crs=pick(args.target_crs, cfg, "target_crs", DEFAULT_TARGET_CRS),
        area_crs=pick(args.area_crs, cfg, "area_crs", DEFAULT_AREA_CRS),
        dissolve=bool(pick(args.dissolve, cfg, "dissolve", False)),
    )

    if args.dry_run:
        print("[dry-run] Would prepare regions:")
        for key, value in options.items():
            print(f"  {key}: {value}")
        return 0

    # Lazy import to keep CLI startup fast
    from occmap.registry.prep_regions import prep_regions

    prep_regions(**options)
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for occmap.registry CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "prep-regions": _handle_prep_regions,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
