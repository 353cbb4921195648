# src/paramsniff/php/discovery.py
from __future__ import annotations

import fnmatch
import hashlib
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, Set, Tuple

from .anomalies import Anomaly, AnomalyKind, AnomalySink, Severity

# ---- Discovery data model -----------------------------------------------------


class Language(Enum):
    PHP = "php"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FileMeta:
    # Identity
    path: str                 # root-relative posix path (or the path as given)
    real_path: str            # resolved absolute path
    blob_sha: str             # content hash (BLAKE2b)
    size_bytes: int

    # Classification
    is_text: bool
    encoding: Optional[str]   # 'utf-8', 'utf-8-sig', ... (None for binary)
    lang: Language

    flags: Set[str] = field(default_factory=set)   # e.g., {'binary','too_large'}


@dataclass(frozen=True)
class DiscoveryConfig:
    # Limits
    max_file_size_bytes: int = 20 * 1024 * 1024  # 20 MiB
    sample_bytes_for_heuristics: int = 64 * 1024

    # Language gates
    php_extensions: Tuple[str, ...] = (".php", ".inc", ".phtml")

    # Skips
    include_globs: Tuple[str, ...] = ()
    exclude_globs: Tuple[str, ...] = (
        ".git/**",
        ".hg/**",
        ".svn/**",
        "node_modules/**",
        "vendor/**",
        "*.min.php",
    )

    # Safety / performance
    hard_read_time_budget_sec: float = 10.0


# ---- Utility helpers ----------------------------------------------------------


def _posix_relpath(p: Path, root: Path) -> str:
    rel = p.resolve().relative_to(root.resolve())
    return rel.as_posix()


def _matches_any(path: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(path, pat) for pat in patterns)


_BOMS: Tuple[Tuple[bytes, str], ...] = (
    (b"\xef\xbb\xbf", "utf-8-sig"),
    (b"\xff\xfe", "utf-16-le"),
    (b"\xfe\xff", "utf-16-be"),
)


def _detect_bom(data: bytes) -> Optional[str]:
    for sig, name in _BOMS:
        if data.startswith(sig):
            return name
    return None


def _is_binary_sample(sample: bytes) -> bool:
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    # Very low control chars excluding \t \n \v \f \r
    ctrl = sum(1 for b in sample if (b < 32 and b not in (9, 10, 11, 12, 13)))
    return ctrl / max(1, len(sample)) > 0.02


def _safe_decode(sample: bytes) -> Optional[str]:
    """BOM first, then strict utf-8, then latin-1 (PHP source is byte-oriented)."""
    bom = _detect_bom(sample)
    if bom:
        return bom
    try:
        sample.decode("utf-8", errors="strict")
        return "utf-8"
    except UnicodeDecodeError:
        return "latin-1"


def _ext_language(path: str, cfg: DiscoveryConfig) -> Language:
    p = path.lower()
    if any(p.endswith(ext) for ext in cfg.php_extensions):
        return Language.PHP
    return Language.UNKNOWN


# ---- Discovery core -----------------------------------------------------------


def iter_discovered_files(
    root: Path,
    cfg: Optional[DiscoveryConfig] = None,
    anomaly_sink: Optional[AnomalySink] = None,
) -> Iterator[FileMeta]:
    """
    Walk a directory root and yield FileMeta records for PHP candidates.
    Every skip produces an anomaly record. Ordering is deterministic.
    """
    cfg = cfg or DiscoveryConfig()
    root = Path(root).resolve()
    if not root.exists() or not root.is_dir():
        raise NotADirectoryError(f"Discovery root not found or not a directory: {root}")

    sink = anomaly_sink if anomaly_sink is not None else AnomalySink()

    for path in _iter_paths_lex(root, sink):
        posix_rel = _posix_relpath(path, root)
        if _ext_language(posix_rel, cfg) is not Language.PHP:
            continue
        if cfg.include_globs and not _matches_any(posix_rel, cfg.include_globs):
            sink.emit(Anomaly(path=posix_rel, blob_sha=None, kind=AnomalyKind.SKIPPED_BY_RULE, severity=Severity.INFO, detail="Not matched by include_globs"))
            continue
        if _matches_any(posix_rel, cfg.exclude_globs):
            sink.emit(Anomaly(path=posix_rel, blob_sha=None, kind=AnomalyKind.SKIPPED_BY_RULE, severity=Severity.INFO, detail="Matched exclude_globs"))
            continue

        fm = _file_meta(path, posix_rel, cfg, sink)
        if fm is not None:
            yield fm


def file_meta_for_path(
    path: Path,
    cfg: Optional[DiscoveryConfig] = None,
    anomaly_sink: Optional[AnomalySink] = None,
) -> Optional[FileMeta]:
    """Classify a single file given explicitly (no glob or extension filtering)."""
    cfg = cfg or DiscoveryConfig()
    sink = anomaly_sink if anomaly_sink is not None else AnomalySink()
    path = Path(path)
    return _file_meta(path, path.as_posix(), cfg, sink)


def iter_paths(
    paths: Iterable[Path],
    cfg: Optional[DiscoveryConfig] = None,
    anomaly_sink: Optional[AnomalySink] = None,
) -> Iterator[FileMeta]:
    """Expand a mix of files and directories into FileMeta records."""
    cfg = cfg or DiscoveryConfig()
    sink = anomaly_sink if anomaly_sink is not None else AnomalySink()
    for p in paths:
        p = Path(p)
        if p.is_dir():
            yield from iter_discovered_files(p, cfg, sink)
            continue
        if not p.exists():
            sink.emit(Anomaly(path=p.as_posix(), blob_sha=None, kind=AnomalyKind.IO_ERROR, severity=Severity.ERROR, detail="Path does not exist"))
            continue
        fm = file_meta_for_path(p, cfg, sink)
        if fm is not None:
            yield fm


def _file_meta(path: Path, rel: str, cfg: DiscoveryConfig, sink: AnomalySink) -> Optional[FileMeta]:
    try:
        size = int(path.stat().st_size)
    except PermissionError:
        sink.emit(Anomaly(path=rel, blob_sha=None, kind=AnomalyKind.PERMISSION_DENIED, severity=Severity.WARN, detail="Stat permission denied"))
        return None
    except OSError as e:
        sink.emit(Anomaly(path=rel, blob_sha=None, kind=AnomalyKind.IO_ERROR, severity=Severity.WARN, detail=f"Stat failed: {e}"))
        return None

    try:
        blob_sha, sample = _hash_and_sample(path, size, cfg)
    except PermissionError:
        sink.emit(Anomaly(path=rel, blob_sha=None, kind=AnomalyKind.PERMISSION_DENIED, severity=Severity.WARN, detail="Read permission denied"))
        return None
    except OSError as e:
        sink.emit(Anomaly(path=rel, blob_sha=None, kind=AnomalyKind.IO_ERROR, severity=Severity.WARN, detail=f"Read failed: {e}"))
        return None

    flags: Set[str] = set()
    is_text = not _is_binary_sample(sample)
    encoding = _safe_decode(sample) if is_text else None
    if not is_text:
        flags.add("binary")
        sink.emit(Anomaly(path=rel, blob_sha=blob_sha, kind=AnomalyKind.BINARY_FILE, severity=Severity.INFO, detail="Binary detected by content"))
    if size > cfg.max_file_size_bytes:
        flags.add("too_large")
        sink.emit(Anomaly(path=rel, blob_sha=blob_sha, kind=AnomalyKind.TOO_LARGE, severity=Severity.INFO, detail=f"File exceeds size budget ({size} bytes)"))

    return FileMeta(
        path=rel,
        real_path=str(path.resolve()),
        blob_sha=blob_sha,
        size_bytes=size,
        is_text=is_text,
        encoding=encoding,
        lang=Language.PHP if is_text else Language.UNKNOWN,
        flags=flags,
    )


def _iter_paths_lex(root: Path, sink: AnomalySink) -> Iterator[Path]:
    """
    Deterministic lexicographic directory walk. Symlinked directories are not
    followed.
    """
    stack: list[Path] = [root]

    while stack:
        cur = stack.pop()
        try:
            entries = sorted(os.scandir(cur), key=lambda e: e.name)
        except PermissionError:
            sink.emit(Anomaly(path=_posix_relpath(cur, root), blob_sha=None, kind=AnomalyKind.PERMISSION_DENIED, severity=Severity.WARN, detail="Dir read permission denied"))
            continue
        except OSError as e:
            sink.emit(Anomaly(path=_posix_relpath(cur, root), blob_sha=None, kind=AnomalyKind.IO_ERROR, severity=Severity.WARN, detail=f"Dir read failed: {e}"))
            continue

        subdirs: list[Path] = []
        for entry in entries:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = entry.is_file(follow_symlinks=False)
            except OSError:
                continue
            if is_dir:
                subdirs.append(Path(entry.path))
            elif is_file:
                yield Path(entry.path)
        # Reverse so the stack pops subdirectories in lexicographic order
        stack.extend(reversed(subdirs))


def _hash_and_sample(path: Path, size: int, cfg: DiscoveryConfig) -> Tuple[str, bytes]:
    """
    Stream the file to compute its content hash and keep a prefix sample.
    Returns: (blob_sha_hex, sample_bytes)
    """
    h = hashlib.blake2b(digest_size=32)
    sample_budget = min(cfg.sample_bytes_for_heuristics, size)
    sample = bytearray()
    start = time.time()

    with open(path, "rb", buffering=1024 * 1024) as f:
        while True:
            if (time.time() - start) > cfg.hard_read_time_budget_sec:
                break
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
            if len(sample) < sample_budget:
                need = sample_budget - len(sample)
                sample.extend(chunk[:need])

    return h.hexdigest(), bytes(sample)
