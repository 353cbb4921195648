# src/paramsniff/php/anomalies.py
from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple


class Severity(str, enum.Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class AnomalyKind(str, enum.Enum):
    # Discovery / IO
    IO_ERROR = "IO_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SKIPPED_BY_RULE = "SKIPPED_BY_RULE"    # include/exclude globs
    BINARY_FILE = "BINARY_FILE"
    TOO_LARGE = "TOO_LARGE"
    ENCODING = "ENCODING"
    # Tokenizing
    PARSE_FAILED = "PARSE_FAILED"
    SYNTAX_ERRORS = "SYNTAX_ERRORS"
    TOOL_MISSING = "TOOL_MISSING"          # dependency not available
    # Fixing
    FIX_NOT_CONVERGED = "FIX_NOT_CONVERGED"


@dataclass(frozen=True)
class Anomaly:
    """
    Immutable record of a non-fatal host problem. Never a sniff diagnostic:
    those live in sniffs.report.
    """
    path: str
    blob_sha: Optional[str]
    kind: AnomalyKind
    severity: Severity
    detail: str = ""
    span: Optional[Tuple[int, int]] = None  # (byte_start, byte_end)
    ts_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict:
        s0, s1 = (None, None)
        if self.span and len(self.span) == 2:
            s0, s1 = int(self.span[0]), int(self.span[1])
        return {
            "path": self.path,
            "blob_sha": self.blob_sha or "",
            "kind": self.kind.value,
            "severity": self.severity.value,
            "detail": self.detail,
            "span_start": int(s0 or 0),
            "span_end": int(s1 or 0),
            "ts_ms": int(self.ts_ms),
        }


class AnomalySink:
    """
    Thread-safe anomaly collector.

    - emit(): add an anomaly
    - items(): snapshot of everything emitted so far
    """

    __slots__ = ("_lock", "_buffer")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buffer: List[Anomaly] = []

    # ----------------------------- public API ---------------------------------

    def emit(self, anomaly: Anomaly) -> None:
        with self._lock:
            self._buffer.append(anomaly)

    def extend(self, anomalies: Iterable[Anomaly]) -> None:
        for a in anomalies:
            self.emit(a)

    def items(self) -> Tuple[Anomaly, ...]:
        with self._lock:
            return tuple(self._buffer)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

