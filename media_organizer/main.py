import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from .core import MediaOrganizerApp
from .exceptions import MediaOrganizerError
from .models import ProcessOptions
from .reporting import ReportGenerator


def setup_logging(verbose: bool, log_dir: Optional[Path] = None, stream=None):
    """Sets up logging to the console and, for process runs, a file in the destination."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(stream or sys.stdout)]
    if log_dir is not None:
        # Create dest root if it doesn't exist so we can log there
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_dir / "organizer.log", encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Media Organizer: rename photos/videos by capture time and sort them by date")
    sub = p.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("src", type=Path, help="Source directory to scan")
    common.add_argument("--no-videos", action="store_true", help="Ignore video files")
    common.add_argument("--sequential", action="store_true", help="Disable parallel scanning/copying")
    common.add_argument("--workers", type=int, default=None, help="Number of worker threads")
    common.add_argument("--burst-interval", type=int, default=None, help="Max seconds between burst shots")
    common.add_argument("--burst-min", type=int, default=None, help="Min shots in a burst")
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    scan = sub.add_parser("scan", parents=[common], help="Resolve dates and planned names without copying")
    scan.add_argument("--json", action="store_true", help="Print records as JSON")

    process = sub.add_parser("process", parents=[common], help="Copy files into the dated hierarchy")
    process.add_argument("dest", type=Path, help="Output library root")
    process.add_argument("--backup", type=Path, default=None, help="Flat backup directory for originals")
    process.add_argument("--auto-orient", action="store_true", help="Rotate copies according to EXIF orientation")
    process.add_argument("--report-csv", type=Path, default=None, help="Write a CSV report of the run")

    return p.parse_args(argv)


def build_options(args) -> ProcessOptions:
    options = ProcessOptions(
        parallel=not args.sequential,
        include_videos=not args.no_videos,
        backup_dir=getattr(args, "backup", None),
        auto_correct_orientation=getattr(args, "auto_orient", False),
        show_progress=True,
    )
    if args.workers:
        options.max_workers = args.workers
    if args.burst_interval is not None:
        options.max_interval_seconds = args.burst_interval
    if args.burst_min is not None:
        options.min_count = args.burst_min
    return options


def run_scan(args, options: ProcessOptions) -> int:
    records = MediaOrganizerApp().scan(args.src.resolve(), options)
    if args.json:
        print(json.dumps([asdict(r) for r in records], indent=2, default=str))
    else:
        for r in records:
            burst = f" [burst {r.burst_group_id}#{r.burst_index}]" if r.burst_group_id is not None else ""
            print(f"{r.original_path} -> {r.new_name} ({r.date_source.value}){burst}")
    logging.info(f"{len(records)} files resolved")
    return 0


def run_process(args, options: ProcessOptions) -> int:
    result = MediaOrganizerApp().process(args.src.resolve(), args.dest.resolve(), options)

    if args.report_csv:
        ReportGenerator().write_process_report(result, args.report_csv)

    logging.info(f"Processed {result.processed_files}/{result.total_files} files")
    for message in result.errors:
        logging.warning(message)
    return 0 if result.success else 1


def main(argv=None):
    args = parse_args(argv)

    log_dir = args.dest.resolve() if args.command == "process" else None
    # Keep stdout clean when it carries JSON
    stream = sys.stderr if getattr(args, "json", False) else sys.stdout
    setup_logging(args.verbose, log_dir, stream)

    logging.info("=== Media Organizer Started ===")
    options = build_options(args)

    try:
        if args.command == "scan":
            return run_scan(args, options)
        return run_process(args, options)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1
    except MediaOrganizerError:
        logging.exception("Fatal error during organization.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
