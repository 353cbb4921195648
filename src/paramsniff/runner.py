# src/paramsniff/runner.py
from __future__ import annotations

import concurrent.futures as futures
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .core.config import DEFAULT_MAX_FIX_PASSES, RunConfig
from .php.anomalies import Anomaly, AnomalyKind, AnomalySink, Severity
from .php.discovery import DiscoveryConfig, FileMeta, iter_paths
from .php.php_driver import ParserError, PhpTreeSitterDriver
from .php.tokens import TokenStream
from .sniffs.option_autoload import OptionAutoloadSniff
from .sniffs.report import FileReport, Fixer, histogram
from .store import ReportStore

logger = logging.getLogger(__name__)

_ERROR_KINDS: Dict[str, AnomalyKind] = {
    "IO_ERROR": AnomalyKind.IO_ERROR,
    "PERMISSION_DENIED": AnomalyKind.PERMISSION_DENIED,
    "ENCODING": AnomalyKind.ENCODING,
    "NOT_TEXT": AnomalyKind.BINARY_FILE,
    "FILE_TOO_LARGE": AnomalyKind.TOO_LARGE,
    "LIB_DEP_MISSING": AnomalyKind.TOOL_MISSING,
    "GRAMMAR_LOAD_FAILED": AnomalyKind.TOOL_MISSING,
}


@dataclass
class FileResult:
    """Outcome for one file. `report` is the report of the final (fixed) content."""
    path: str
    report: Optional[FileReport]
    blob_sha: Optional[str] = None
    fixed_source: Optional[str] = None
    fix_passes: int = 0
    fixes_applied: int = 0
    anomalies: List[Anomaly] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.report is not None


@dataclass(frozen=True)
class RunSummary:
    files_total: int
    files_checked: int
    files_fixed: int
    warnings: int
    fixable: int
    fixes_applied: int
    anomalies: int
    wall_ms: int
    metrics: Dict[str, Dict[str, int]]

    def to_dict(self) -> Dict:
        return {
            "files_total": self.files_total,
            "files_checked": self.files_checked,
            "files_fixed": self.files_fixed,
            "warnings": self.warnings,
            "fixable": self.fixable,
            "fixes_applied": self.fixes_applied,
            "anomalies": self.anomalies,
            "wall_ms": self.wall_ms,
            "metrics": self.metrics,
        }


# ==============================================================================
# Single source / single file
# ==============================================================================


def check_stream(
    stream: TokenStream,
    driver: PhpTreeSitterDriver,
    *,
    fix: bool = False,
    max_fix_passes: int = DEFAULT_MAX_FIX_PASSES,
) -> FileResult:
    """
    Run the sniff over a token stream. With fix=True, apply accepted fixes and
    re-check the rewritten source until nothing changes (bounded by
    max_fix_passes); the returned report describes the final content.
    """
    path = stream.path
    passes = 0
    applied = 0
    anomalies: List[Anomaly] = []

    while True:
        fixer = Fixer(stream, enabled=fix)
        report = FileReport(stream, fixer)
        OptionAutoloadSniff().process_file(stream, report, fixer)
        if not fixer.changed:
            break
        if passes >= max_fix_passes:
            anomalies.append(
                Anomaly(
                    path=path,
                    blob_sha=None,
                    kind=AnomalyKind.FIX_NOT_CONVERGED,
                    severity=Severity.WARN,
                    detail=f"Fixes still pending after {max_fix_passes} passes",
                )
            )
            break
        passes += 1
        applied += len(fixer.replacements)
        stream = driver.tokenize(fixer.apply(), path=path)

    logger.debug("%s: %d warning(s), %d fix pass(es)", path or "<source>", report.warning_count, passes)
    return FileResult(
        path=path,
        report=report,
        fixed_source=stream.source if passes else None,
        fix_passes=passes,
        fixes_applied=applied,
        anomalies=anomalies,
    )


def check_source(
    text: str,
    path: str = "",
    *,
    fix: bool = False,
    max_fix_passes: int = DEFAULT_MAX_FIX_PASSES,
    driver: Optional[PhpTreeSitterDriver] = None,
) -> FileResult:
    """Tokenize and check in-memory PHP source."""
    driver = driver or PhpTreeSitterDriver()
    stream = driver.tokenize(text, path=path)
    syntax = _syntax_anomalies(driver, path, None)
    result = check_stream(stream, driver, fix=fix, max_fix_passes=max_fix_passes)
    result.anomalies[:0] = syntax
    return result


def check_file(
    fm: FileMeta,
    cfg: Optional[RunConfig] = None,
    driver: Optional[PhpTreeSitterDriver] = None,
) -> FileResult:
    """
    Check one discovered file; with cfg.fix the fixed content is written back.
    Driver failures become anomalies, never exceptions.
    """
    cfg = cfg or RunConfig()
    driver = driver or PhpTreeSitterDriver()
    start = time.perf_counter()

    try:
        stream = driver.tokenize_file(fm)
    except ParserError as e:
        detail = f"{e.code}: {e.message}"
        if e.detail:
            detail += f" | {e.detail}"
        logger.warning("skipping %s: %s", fm.path, detail)
        return FileResult(
            path=fm.path,
            report=None,
            blob_sha=fm.blob_sha,
            anomalies=[
                Anomaly(
                    path=fm.path,
                    blob_sha=fm.blob_sha,
                    kind=_ERROR_KINDS.get(e.code, AnomalyKind.PARSE_FAILED),
                    severity=Severity.ERROR,
                    detail=detail,
                )
            ],
        )

    syntax = _syntax_anomalies(driver, fm.path, fm.blob_sha)
    result = check_stream(stream, driver, fix=cfg.fix, max_fix_passes=cfg.max_fix_passes)
    result.blob_sha = fm.blob_sha
    result.anomalies[:0] = syntax

    if cfg.fix and result.fixed_source is not None:
        try:
            Path(fm.real_path).write_text(result.fixed_source, encoding=fm.encoding or "utf-8", newline="")
        except OSError as e:
            result.anomalies.append(
                Anomaly(path=fm.path, blob_sha=fm.blob_sha, kind=AnomalyKind.IO_ERROR, severity=Severity.ERROR, detail=f"Write failed: {e}")
            )
        else:
            logger.info("fixed %s (%d replacement(s))", fm.path, result.fixes_applied)

    logger.debug("checked %s in %.1f ms", fm.path, (time.perf_counter() - start) * 1000)
    return result


def _syntax_anomalies(driver: PhpTreeSitterDriver, path: str, blob_sha: Optional[str]) -> List[Anomaly]:
    errors = driver.last_syntax_errors
    if not errors:
        return []
    first = errors[0]
    details = "; ".join(f"bytes {s}-{e}" for s, e in errors[:5])
    if len(errors) > 5:
        details += f" (and {len(errors) - 5} more)"
    return [
        Anomaly(
            path=path,
            blob_sha=blob_sha,
            kind=AnomalyKind.SYNTAX_ERRORS,
            severity=Severity.WARN,
            detail=f"{len(errors)} syntax error(s): {details}",
            span=first,
        )
    ]


# ==============================================================================
# Whole run
# ==============================================================================


def run_paths(
    paths: Iterable[Path],
    cfg: Optional[RunConfig] = None,
    *,
    discovery: Optional[DiscoveryConfig] = None,
    anomaly_sink: Optional[AnomalySink] = None,
) -> Tuple[RunSummary, List[FileResult]]:
    """
    Discover PHP files under `paths`, check them (concurrently when
    cfg.max_workers > 1, results kept in input order) and summarize.
    Writes Parquet output when cfg.parquet_out is set.
    """
    cfg = cfg or RunConfig()
    sink = anomaly_sink if anomaly_sink is not None else AnomalySink()
    t0 = time.perf_counter()

    files = [fm for fm in iter_paths(paths, discovery, sink) if fm.is_text and "too_large" not in fm.flags]
    logger.info("checking %d file(s)", len(files))

    def _task(fm: FileMeta) -> FileResult:
        # Parsers are not shared across threads
        return check_file(fm, cfg, PhpTreeSitterDriver())

    if cfg.max_workers > 1 and len(files) > 1:
        with futures.ThreadPoolExecutor(max_workers=cfg.max_workers, thread_name_prefix="paramsniff") as pool:
            results = list(pool.map(_task, files))
    else:
        results = [_task(fm) for fm in files]

    for r in results:
        sink.extend(r.anomalies)

    reports = [r.report for r in results if r.report is not None]
    summary = RunSummary(
        files_total=len(files),
        files_checked=len(reports),
        files_fixed=sum(1 for r in results if r.fixed_source is not None),
        warnings=sum(rep.warning_count for rep in reports),
        fixable=sum(rep.fixable_count for rep in reports),
        fixes_applied=sum(r.fixes_applied for r in results),
        anomalies=len(sink),
        wall_ms=int((time.perf_counter() - t0) * 1000),
        metrics=histogram([m for rep in reports for m in rep.metrics]),
    )

    if cfg.parquet_out is not None:
        store = ReportStore(cfg.parquet_out)
        store.write(
            [d for rep in reports for d in rep.diagnostics],
            [m for rep in reports for m in rep.metrics],
            sink.items(),
            receipt={"summary": summary.to_dict()},
        )
        logger.info("wrote parquet report to %s", cfg.parquet_out)

    return summary, results
