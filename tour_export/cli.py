"""Command-line interface for tour_export.

Run:
    python -m tour_export download --creds creds.yaml
    python -m tour_export merge-by-date --connect 2025-08-15 2025-08-25 merged_rides.gpx
    python -m tour_export gpx2kml merged_rides.gpx merged_rides.kml
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

from tour_export.downloader import TOUR_TYPES, DownloadConfig, download_tours
from tour_export.errors import TourExportError
from tour_export.kml import ConvertConfig, convert_gpx_to_kml
from tour_export.merge import MergeConfig, merge_by_date
from tour_export.timeutils import format_display, parse_date


def _date_arg(text: str) -> date:
    try:
        return parse_date(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _fail(message: str) -> int:
    print(f"error: {message}", file=sys.stderr)
    return 1


def _cmd_download(args: argparse.Namespace) -> int:
    config = DownloadConfig(
        tours_dir=Path(args.tours_dir),
        creds_path=Path(args.creds),
        tour_type=args.tour_type,
        include_title_in_dir=args.include_title_in_dir,
    )
    try:
        n = download_tours(config)
    except (TourExportError, OSError) as exc:
        return _fail(str(exc))
    print(f"Downloaded {n} new tour(s) into {config.tours_dir}")
    return 0


def _cmd_merge(args: argparse.Namespace) -> int:
    config = MergeConfig(
        start_date=args.start_date,
        end_date=args.end_date,
        output_path=Path(args.output),
        tours_dir=Path(args.tours_dir),
        connect_gaps=args.connect,
    )
    try:
        result = merge_by_date(config)
    except OSError as exc:
        return _fail(str(exc))

    if not result.rides:
        print(f"No rides found between {config.start_label} and {config.end_label}")
        return 0

    print(f"\nMerged {len(result.rides)} rides into {result.output_path}:")
    for ride in result.rides:
        print(f"  - {ride.name} ({format_display(ride.started_at)})")
    return 0


def _cmd_gpx2kml(args: argparse.Namespace) -> int:
    if args.width <= 0:
        return _fail(f"line width must be positive, got {args.width}")

    config = ConvertConfig(
        line_color=args.color,
        gap_color=args.gap_color,
        line_width=args.width,
        show_waypoints=args.waypoints,
    )
    try:
        summary = convert_gpx_to_kml(args.input, args.output, config)
    except (TourExportError, OSError) as exc:
        return _fail(str(exc))

    print(f"Converted {summary.input_path} to {summary.output_path}")
    print(f"Found {summary.tracks} track(s) with {summary.segments} total segment(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="tour_export")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_dl = sub.add_parser("download", help="Download all tours of the account into per-tour directories")
    p_dl.add_argument("--tours-dir", type=str, default="tours", help="Directory for tour downloads")
    p_dl.add_argument("--creds", type=str, default="creds.yaml", help="YAML file with user_id and cookie")
    p_dl.add_argument(
        "--tour-type",
        type=str,
        default="tour_recorded",
        choices=list(TOUR_TYPES),
        help="Type of tours: tour_recorded or tour_planned",
    )
    p_dl.add_argument(
        "--include-title-in-dir",
        action="store_true",
        help="Name tour directories '<id> <title>' instead of '<id>'",
    )
    p_dl.set_defaults(func=_cmd_download)

    p_mg = sub.add_parser(
        "merge-by-date",
        help="Merge downloaded tours within a date range into one GPX track",
        epilog="Example: tour_export merge-by-date --connect 2025-08-15 2025-08-25 merged_rides.gpx",
    )
    p_mg.add_argument("start_date", type=_date_arg, help="First day, YYYY-MM-DD")
    p_mg.add_argument("end_date", type=_date_arg, help="Last day (inclusive), YYYY-MM-DD")
    p_mg.add_argument("output", type=str, help="Output GPX path")
    p_mg.add_argument("--connect", action="store_true", help="Connect gaps between rides with marked points")
    p_mg.add_argument("--tours-dir", type=str, default="tours", help="Directory scanned for GPX files")
    p_mg.set_defaults(func=_cmd_merge)

    defaults = ConvertConfig()
    p_kml = sub.add_parser("gpx2kml", help="Convert a GPX file to KML with gap connections styled apart")
    p_kml.add_argument("input", type=str, help="Input GPX path")
    p_kml.add_argument("output", type=str, help="Output KML path")
    p_kml.add_argument(
        "--color",
        type=str,
        default=defaults.line_color,
        help=f"Line color in KML format (aabbggrr, default: {defaults.line_color})",
    )
    p_kml.add_argument(
        "--gap-color",
        type=str,
        default=defaults.gap_color,
        help=f"Gap connection color (aabbggrr, default: {defaults.gap_color})",
    )
    p_kml.add_argument("--width", type=float, default=defaults.line_width, help="Line width")
    p_kml.add_argument("--waypoints", action="store_true", help="Show waypoints for gap connections")
    p_kml.set_defaults(func=_cmd_gpx2kml)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
