from __future__ import annotations

import argparse
import logging
import threading
from pathlib import Path
from typing import List

from .batch import BatchScheduler, iter_images, process_batch
from .encoder import encoder_available
from .jobs import PER_FILE_OUTPUT_DIR, OutputDirectoryError, build_jobs
from .report import build_report, format_size, results_table, save_report_csv, save_report_json
from .results import Result
from .settings import (
    DEFAULT_QUALITY,
    BatchSettings,
    EncodeSpec,
    FitBoundingBox,
    FitHeight,
    FitWidth,
    NoResize,
    OutputFormat,
    Percentage,
    ResizeSpec,
    default_concurrency,
)

logger = logging.getLogger(__name__)


def _parse_box(text: str) -> tuple[int, int]:
    """
    Accept "1920x1080" (or "1920X1080", "1920*1080").
    """
    t = text.strip().lower().replace("*", "x")
    if "x" not in t:
        raise ValueError(f"expected WIDTHxHEIGHT, got {text!r}")
    a, b = t.split("x", 1)
    return int(a), int(b)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Pillow's plugin chatter is noise even in verbose mode.
    logging.getLogger("PIL").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bir",
        description="Batch Image Resizer: convert and resize images in parallel",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    rs = sub.add_parser("resize", help="Resize and convert images in files/folders")
    rs.add_argument("inputs", nargs="+", help="Files and/or folders to process")

    # Output
    rs.add_argument(
        "--out",
        default=None,
        help='Output directory (default: a "resized" folder next to each input)',
    )
    rs.add_argument("--no-recursive", action="store_true", help="Do not scan folders recursively")

    # Format
    rs.add_argument(
        "-f",
        "--format",
        default="jpeg",
        choices=[f.value for f in OutputFormat] + ["jpg"],
        help="Output format (default: jpeg)",
    )
    rs.add_argument("-q", "--quality", type=int, default=DEFAULT_QUALITY, help=f"Quality 1-100 (default: {DEFAULT_QUALITY})")
    rs.add_argument(
        "--target-kb",
        type=int,
        default=None,
        help="Search quality so each file fits in this many KB (lossy formats only)",
    )

    # Resize (at most one)
    size = rs.add_mutually_exclusive_group()
    size.add_argument("--scale", type=int, default=None, help="Scale percent (e.g. 50)")
    size.add_argument("--width", type=int, default=None, help="Fit to width, keep aspect")
    size.add_argument("--height", type=int, default=None, help="Fit to height, keep aspect")
    size.add_argument("--box", type=str, default=None, help='Fit inside a box, e.g. "1920x1080"')

    # Execution
    rs.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help=f"Parallel workers (default: {default_concurrency()})",
    )
    rs.add_argument("--report", action="store_true", help="Write report.json and report.csv to the output directory")
    rs.add_argument("--table", action="store_true", help="Print a tab-separated results table at the end")

    return p


def _resize_from_args(args: argparse.Namespace) -> ResizeSpec:
    if args.scale is not None:
        return Percentage(args.scale)
    if args.width is not None:
        return FitWidth(args.width)
    if args.height is not None:
        return FitHeight(args.height)
    if args.box is not None:
        w, h = _parse_box(args.box)
        return FitBoundingBox(w, h)
    return NoResize()


def settings_from_args(args: argparse.Namespace) -> BatchSettings:
    """Raises ValueError for any invalid combination (e.g. PNG with --target-kb)."""
    fmt = OutputFormat.parse(args.format)
    size_target = args.target_kb * 1024 if args.target_kb is not None else None

    return BatchSettings(
        output_dir=Path(args.out) if args.out else None,
        encode=EncodeSpec(format=fmt, quality=args.quality, size_target=size_target),
        resize=_resize_from_args(args),
        concurrency=args.jobs if args.jobs is not None else default_concurrency(),
        recursive=not bool(args.no_recursive),
    )


def _print_result(result: Result) -> None:
    name = result.input_path.name
    if result.ok:
        ow, oh = result.original_size
        nw, nh = result.new_size
        line = (
            f"  OK   {name} ({ow}x{oh} -> {nw}x{nh}, "
            f"{format_size(result.original_bytes)} -> {format_size(result.new_bytes)}, "
            f"{result.reduction_percent:.1f}%)"
        )
        if result.message:
            line += f" [{result.message}]"
        print(line)
    elif result.failed:
        print(f"  FAIL {name}: {result.message}")


def _run(args: argparse.Namespace) -> int:
    try:
        settings = settings_from_args(args)
    except ValueError as e:
        print(f"Invalid settings: {e}")
        return 2

    fmt = settings.encode.format
    if not encoder_available(fmt):
        # Not fatal: every job will report the encoder error individually.
        logger.warning("%s encoding is not available in this Pillow build", fmt.name)

    inputs = [Path(p) for p in args.inputs]
    files = list(
        iter_images(
            inputs,
            recursive=settings.recursive,
            exclude_dir=settings.output_dir,
            exclude_dir_name=PER_FILE_OUTPUT_DIR if settings.output_dir is None else None,
        )
    )
    if not files:
        print("No images found.")
        return 0

    try:
        jobs = build_jobs(files, settings.output_dir, settings.resize, settings.encode)
    except OutputDirectoryError as e:
        print(f"Error: {e}")
        return 2

    print(f"Processing {len(jobs)} image(s) with {settings.concurrency} worker(s)...")

    scheduler = BatchScheduler(settings.concurrency)
    outcome: dict = {}

    def work() -> None:
        outcome["value"] = process_batch(
            jobs,
            result_callback=lambda _idx, r: _print_result(r),
            scheduler=scheduler,
        )

    worker = threading.Thread(target=work, name="bir-batch", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        scheduler.cancel()
        if scheduler.cancel_requested:
            print("Cancel requested... finishing files already in progress.")
        worker.join()

    results, summary = outcome["value"]

    status_line = "CANCELLED" if summary.was_cancelled else "DONE"
    print(f"\n=== Batch Summary ({status_line}) ===")
    print("Total     :", summary.total_files)
    print("Succeeded :", summary.succeeded)
    print("Failed    :", summary.failed)
    print("Cancelled :", summary.cancelled)
    print(f"Saved     : {summary.saved_bytes} bytes ({summary.saved_percent:.1f}%)")

    if args.table:
        print()
        print(results_table(results), end="")

    if args.report:
        report_dir = settings.output_dir or Path.cwd()
        report = build_report(results, summary)

        json_path = report_dir / "report.json"
        save_report_json(report, json_path)

        csv_path = report_dir / "report.csv"
        save_report_csv(report, csv_path)

        print("\nReport written:", json_path)
        print("CSV written   :", csv_path)

    return 0 if summary.succeeded == summary.total_files else 1


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(bool(args.verbose))

    if args.command == "resize":
        return _run(args)

    parser.print_help()
    return 2
