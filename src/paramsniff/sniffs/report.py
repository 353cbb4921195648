# src/paramsniff/sniffs/report.py
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..php.tokens import TokenStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Diagnostic:
    """A rendered sniff warning attached to one token."""
    path: str
    line: int
    column: int
    token_index: int
    code: str
    message: str
    severity: str = "warning"
    fixable: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class MetricObservation:
    path: str
    line: int
    metric: str
    value: str


def render_message(message: str, data: Sequence[str]) -> str:
    """printf-style `%s` substitution; a message without data is left untouched."""
    if not data:
        return message
    return message % tuple(data)


class Fixer:
    """
    Collects single-token replacements and renders the fixed source.

    At most one replacement per token is kept (the first one); the stream
    itself is never mutated.
    """

    def __init__(self, stream: TokenStream, *, enabled: bool = False) -> None:
        self.stream = stream
        self.enabled = enabled
        self._replacements: Dict[int, str] = {}

    def replace_token(self, index: int, text: str) -> bool:
        if not self.enabled or index in self._replacements:
            return False
        if self.stream[index].text == text:
            return False
        self._replacements[index] = text
        logger.debug("fix %s token %d: %r -> %r", self.stream.path, index, self.stream[index].text, text)
        return True

    @property
    def changed(self) -> bool:
        return bool(self._replacements)

    @property
    def replacements(self) -> Dict[int, str]:
        return dict(self._replacements)

    def apply(self) -> str:
        return "".join(self._replacements.get(t.index, t.text) for t in self.stream)


class FileReport:
    """
    Per-file diagnostic and metric sink used by sniffs.

    add_fixable_warning() returns True when the fixer is active, which is the
    caller's cue to queue its replacement.
    """

    def __init__(self, stream: TokenStream, fixer: Optional[Fixer] = None) -> None:
        self.stream = stream
        self.path = stream.path
        self.fixer = fixer
        self.diagnostics: List[Diagnostic] = []
        self.metrics: List[MetricObservation] = []

    def add_warning(self, message: str, index: int, code: str, data: Sequence[str] = ()) -> None:
        self._add(message, index, code, data, fixable=False)

    def add_fixable_warning(self, message: str, index: int, code: str, data: Sequence[str] = ()) -> bool:
        self._add(message, index, code, data, fixable=True)
        return self.fixer is not None and self.fixer.enabled

    def record_metric(self, index: int, metric: str, value: str) -> None:
        tok = self.stream[index]
        self.metrics.append(MetricObservation(path=self.path, line=tok.line, metric=metric, value=value))

    # ---- summaries ------------------------------------------------------------

    @property
    def warning_count(self) -> int:
        return len(self.diagnostics)

    @property
    def fixable_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.fixable)

    def metric_histogram(self) -> Dict[str, Dict[str, int]]:
        return histogram(self.metrics)

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "warnings": self.warning_count,
            "fixable": self.fixable_count,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }

    # ---- internals ------------------------------------------------------------

    def _add(self, message: str, index: int, code: str, data: Sequence[str], *, fixable: bool) -> None:
        tok = self.stream[index]
        self.diagnostics.append(
            Diagnostic(
                path=self.path,
                line=tok.line,
                column=tok.column,
                token_index=index,
                code=code,
                message=render_message(message, data),
                fixable=fixable,
            )
        )


def histogram(observations: Sequence[MetricObservation]) -> Dict[str, Dict[str, int]]:
    counts: Dict[Tuple[str, str], int] = Counter((o.metric, o.value) for o in observations)
    out: Dict[str, Dict[str, int]] = {}
    for (metric, value), n in sorted(counts.items()):
        out.setdefault(metric, {})[value] = n
    return out
