#!/usr/bin/env python
"""
Command-line interface for gpkg2osm

Usage:
    python cli.py inspect file.gpkg
    python cli.py convert file.gpkg file.osm.pbf
"""

import os
import sys
import argparse
from dataclasses import replace

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from loguru import logger
from gpkg2osm import ConversionPipeline, __version__
from gpkg2osm.config import get_config
from gpkg2osm.osm import open_writer


def setup_logging(verbose: bool = False):
    """Configure logging"""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{message}</cyan>",
        level=level
    )


def cmd_inspect(args):
    """Print the layers and tag columns that would be converted"""
    setup_logging(args.verbose)

    pipeline = ConversionPipeline()
    try:
        layers, dropped = pipeline.inspect(args.input)
    except Exception as e:
        logger.error(f"Failed to read {args.input}: {e}")
        return 1

    print(f"Analyzing GeoPackage: {args.input}")
    print("-" * 39)
    print("Detected Layers and OSM Tag Mappings:")
    for layer in layers:
        print(f"\nLayer: {layer.name} (Geometry: {layer.geometry_type_name})")
        print(f"  Columns: {', '.join(layer.tag_sources)}")
    for name, error in sorted(dropped.items()):
        print(f"\nSkipped layer: {name} ({error.reason}: {error.detail})")
    return 0


def cmd_convert(args):
    """Convert a GeoPackage to an OSM file"""
    setup_logging(args.verbose)

    config = replace(
        get_config(),
        tag_merge=args.tag_merge,
        force_overwrite=args.force,
    )

    try:
        writer = open_writer(args.output, config)
    except ValueError as e:
        logger.error(str(e))
        return 1

    if args.output != "-" and os.path.exists(args.output) and not args.force:
        logger.error(f"Output file already exists: {args.output} (use --force to overwrite)")
        return 1

    pipeline = ConversionPipeline(config)
    try:
        report = pipeline.run(args.input, writer, output_path=args.output)
    except Exception as e:
        logger.error(f"Failed to convert {args.input}: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    if args.report:
        with open(args.report, "w", encoding="utf-8") as f:
            f.write(report.model_dump_json(indent=2))
        logger.info(f"Saved report: {args.report}")

    for layer in report.layers:
        if layer.rows_skipped:
            reasons = ", ".join(f"{k}={v}" for k, v in sorted(layer.skip_reasons.items()))
            logger.warning(f"Layer '{layer.name}': {layer.rows_skipped} rows skipped ({reasons})")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description=f"gpkg2osm {__version__}: convert a GeoPackage file to an OpenStreetMap PBF or XML file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Print conversion summary (columns/fields) without converting:
    python cli.py inspect file.gpkg

  Convert to PBF or XML (format from the output extension):
    python cli.py convert file.gpkg file.osm.pbf
    python cli.py convert file.gpkg file.osm.xml

  Convert to OSM XML on stdout:
    python cli.py convert file.gpkg -
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Inspect command
    inspect_parser = subparsers.add_parser("inspect", help="List exportable layers and their tag columns")
    inspect_parser.add_argument("input", help="Input GeoPackage file")
    inspect_parser.set_defaults(func=cmd_inspect)

    # Convert command
    convert_parser = subparsers.add_parser("convert", help="Convert a GeoPackage to OSM")
    convert_parser.add_argument("input", help="Input GeoPackage file")
    convert_parser.add_argument("output", help="Output file (.osm.pbf, .osm, .osm.xml) or '-' for XML on stdout")
    convert_parser.add_argument("--force", "-f", action="store_true", help="Overwrite an existing output file")
    convert_parser.add_argument("--tag-merge", choices=["python", "sqlite"], default="python",
                                help="Merge tag columns in Python or in the SQLite query")
    convert_parser.add_argument("--report", "-r", help="Save the conversion report as JSON")
    convert_parser.set_defaults(func=cmd_convert)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
