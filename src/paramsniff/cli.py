# src/paramsniff/cli.py
"""Command-line interface for paramsniff."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from .core.config import RunConfig
from .php.anomalies import AnomalySink, Severity
from .runner import FileResult, RunSummary, run_paths

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_WARNINGS = 1
EXIT_FAILURE = 2
EXIT_FIXED_WITH_WARNINGS = 3


def setup_logging(verbosity: int = 0) -> None:
    """Configure logging to stderr."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paramsniff",
        description="Check the $autoload argument of WordPress option function calls",
    )
    parser.add_argument("paths", nargs="+", type=Path, help="PHP files or directories to check")
    parser.add_argument("--fix", action="store_true", help="Apply automatic fixes in place")
    parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Report format (default: text)",
    )
    parser.add_argument("--metrics", action="store_true", default=None, help="Print the value metrics histogram")
    parser.add_argument("--parquet", type=Path, default=None, metavar="DIR", help="Also write Parquet tables to DIR")
    parser.add_argument("--workers", type=int, default=None, help="Number of files checked concurrently")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-v info, -vv debug)")
    return parser


def render_text(summary: RunSummary, results: List[FileResult], *, metrics: bool, out: TextIO) -> None:
    for result in results:
        if result.report is None:
            continue
        for d in result.report.diagnostics:
            suffix = " [fixable]" if d.fixable else ""
            out.write(f"{d.path}:{d.line}:{d.column}: {d.severity} {d.code} {d.message}{suffix}\n")

    out.write(
        f"{summary.warnings} warning(s) in {summary.files_checked} file(s)"
        f" ({summary.fixable} fixable, {summary.fixes_applied} fixed)\n"
    )
    if metrics:
        for metric, values in summary.metrics.items():
            total = sum(values.values())
            out.write(f"\n{metric}:\n")
            for value, n in sorted(values.items(), key=lambda kv: (-kv[1], kv[0])):
                out.write(f"  {value:<24} {n:>6} {100.0 * n / total:6.2f}%\n")


def render_json(summary: RunSummary, results: List[FileResult], sink: AnomalySink, *, out: TextIO) -> None:
    payload = {
        "summary": summary.to_dict(),
        "files": [r.report.to_dict() for r in results if r.report is not None],
        "anomalies": [a.to_dict() for a in sink.items()],
    }
    json.dump(payload, out, indent=2)
    out.write("\n")


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        cfg = RunConfig.from_env(
            fix=args.fix,
            report_metrics=args.metrics,
            parquet_out=args.parquet,
            max_workers=args.workers,
        )
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_FAILURE

    missing = [p for p in args.paths if not p.exists()]
    if missing:
        for p in missing:
            logger.error("no such file or directory: %s", p)
        return EXIT_FAILURE

    sink = AnomalySink()
    try:
        summary, results = run_paths(args.paths, cfg, anomaly_sink=sink)
    except (OSError, RuntimeError) as e:
        logger.error("run failed: %s", e)
        return EXIT_FAILURE

    if args.format == "json":
        render_json(summary, results, sink, out=sys.stdout)
    else:
        render_text(summary, results, metrics=cfg.report_metrics, out=sys.stdout)

    for a in sink.items():
        if a.severity is Severity.ERROR:
            logger.error("%s: %s %s", a.path, a.kind.value, a.detail)

    if any(a.severity is Severity.ERROR for a in sink.items()) and summary.files_checked == 0:
        return EXIT_FAILURE
    if not summary.warnings:
        return EXIT_CLEAN
    if cfg.fix and summary.fixes_applied:
        return EXIT_FIXED_WITH_WARNINGS
    return EXIT_WARNINGS


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
