"""
print_profile_engine CLI — Inspect 3MF print profiles and version completeness.

Usage:
    print-profile-engine <command> [options]
    python -m print_profile_engine <command> [options]
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from print_profile_engine import (
    CompletenessEngine,
    EngineConfig,
    FileRecord,
    ParseStatus,
    is_3mf_file,
    normalize_printer_name,
    parse_container,
    similarity,
)
from print_profile_engine.matching import is_conflict
from print_profile_engine.reporting import JsonReporter, Reporter, RichReporter
from print_profile_engine.utils import extract_extension

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="print-profile-engine",
        description="3MF print profile parsing, printer matching, and completeness checks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  print-profile-engine parse benchy.3mf
  print-profile-engine parse benchy.3mf --json
  print-profile-engine similarity "Bambu Lab X1 Carbon" "Bambu Lab X1C"
  print-profile-engine completeness body.stl lid.stl benchy.3mf --thumbnail

Environment variables:
  PRINT_PROFILE_SIMILARITY_THRESHOLD   Conflict threshold (default 0.8)
  PRINT_PROFILE_EXTRACTION_WORKERS     Threads used to read archive entries
  PRINT_PROFILE_GRACE_PERIOD_HOURS     File removal window (default 24)
        """,
    )

    parser.add_argument(
        "--verbose", "-V", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true",
        help="Suppress non-error output (logging only)",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        required=True,
        metavar="<command>",
    )

    # --- parse ---
    parse_parser = subparsers.add_parser(
        "parse",
        help="Parse a 3MF file and show its print profile",
    )
    parse_parser.add_argument("file", type=Path, help="Path to the .3mf file")
    parse_parser.add_argument(
        "--json", action="store_true",
        help="Output as JSON",
    )
    parse_parser.set_defaults(func=run_parse)

    # --- similarity ---
    sim_parser = subparsers.add_parser(
        "similarity",
        help="Compare two printer names",
    )
    sim_parser.add_argument("name_a", help="First printer name")
    sim_parser.add_argument("name_b", help="Second printer name")
    sim_parser.add_argument(
        "--threshold", type=float, default=None,
        help="Conflict threshold (default: from environment or 0.8)",
    )
    sim_parser.add_argument(
        "--json", action="store_true",
        help="Output as JSON",
    )
    sim_parser.set_defaults(func=run_similarity)

    # --- completeness ---
    comp_parser = subparsers.add_parser(
        "completeness",
        help="Report the completeness of a set of version files",
    )
    comp_parser.add_argument("files", nargs="*", type=Path, help="Files of one version")
    comp_parser.add_argument(
        "--thumbnail", action="store_true",
        help="Count a stored thumbnail as the preview image",
    )
    comp_parser.add_argument(
        "--json", action="store_true",
        help="Output as JSON",
    )
    comp_parser.set_defaults(func=run_completeness)

    return parser


def _make_reporter(use_json: bool) -> Reporter:
    if use_json:
        return JsonReporter()
    return RichReporter()


def run_parse(args: argparse.Namespace) -> int:
    """Execute the parse command."""
    path: Path = args.file
    if not is_3mf_file(path.name):
        logger.error("Not a 3MF file: %s", path)
        return 1

    config = EngineConfig.from_env()
    result = parse_container(path.read_bytes(), max_workers=config.extraction_workers)

    if result.status == ParseStatus.UNKNOWN_FORMAT:
        logger.error("%s: unsupported slicer format", path.name)
        return 1
    if result.status == ParseStatus.PARSE_ERROR:
        logger.error("%s: %s", path.name, result.error)
        return 1

    _make_reporter(args.json).profile(path.name, result.profile)
    return 0


def run_similarity(args: argparse.Namespace) -> int:
    """Execute the similarity command."""
    threshold = args.threshold
    if threshold is None:
        threshold = EngineConfig.from_env().similarity_threshold
    if not 0.0 <= threshold <= 1.0:
        logger.error("Threshold must be between 0 and 1, got %s", threshold)
        return 1

    score = similarity(
        normalize_printer_name(args.name_a),
        normalize_printer_name(args.name_b),
    )
    conflict = is_conflict(args.name_a, args.name_b, threshold)
    _make_reporter(args.json).similarity(args.name_a, args.name_b, score, conflict)
    return 0


def run_completeness(args: argparse.Namespace) -> int:
    """Execute the completeness command."""
    config = EngineConfig.from_env()
    engine = CompletenessEngine(config.completeness)

    records = []
    for path in args.files:
        if not path.is_file():
            logger.error("File not found: %s", path)
            return 1
        stat = path.stat()
        records.append(
            FileRecord(
                id=path.name,
                version_id="local",
                filename=path.name,
                original_name=path.name,
                extension=extract_extension(path.name),
                size=stat.st_size,
                storage_key=str(path),
                created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )

    for record in records:
        if engine.classify(record.extension) is None:
            logger.info("%s is outside the completeness categories", record.filename)

    status = engine.status(records, has_thumbnail=args.thumbnail)
    _make_reporter(args.json).completeness(status)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    # Configure logging
    if getattr(args, "verbose", False):
        log_level = logging.DEBUG
    elif getattr(args, "quiet", False):
        log_level = logging.ERROR
    else:
        log_level = logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if hasattr(args, "func"):
        try:
            return args.func(args)
        except KeyboardInterrupt:
            logger.error("Interrupted")
            return 1
        except Exception as e:
            logger.error("%s", e)
            if getattr(args, "verbose", False):
                logger.debug("Traceback:", exc_info=True)
            return 1
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
