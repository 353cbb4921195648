"""Configuration helpers and feature flag evaluation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


_TRUE_VALUES = {"1", "true", "yes", "on"}

DEFAULT_MAX_FIX_PASSES = 50
DEFAULT_MAX_WORKERS = 1


@lru_cache(maxsize=None)
def feature_enabled(name: str, default: bool = False) -> bool:
    """Return True when the named feature flag is enabled via environment variable.

    Feature names map to environment variables using the pattern:
        feature.report.metrics → PARAMSNIFF_FEATURE_REPORT_METRICS
    Values are interpreted case-insensitively; "1", "true", "yes", "on" enable the flag.
    """

    env_key = "PARAMSNIFF_" + name.upper().replace(".", "_")
    raw = os.getenv(env_key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv("PARAMSNIFF_" + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"PARAMSNIFF_{name} must be an integer, got {raw!r}") from None
    return max(minimum, value)


@dataclass(frozen=True)
class RunConfig:
    """Execution knobs for a sniff run (CLI flags override env defaults)."""
    fix: bool = False
    max_fix_passes: int = DEFAULT_MAX_FIX_PASSES
    max_workers: int = DEFAULT_MAX_WORKERS
    report_metrics: bool = False
    parquet_out: Optional[Path] = None

    @classmethod
    def from_env(cls, **overrides) -> "RunConfig":
        base = dict(
            max_fix_passes=_env_int("MAX_FIX_PASSES", DEFAULT_MAX_FIX_PASSES),
            max_workers=_env_int("MAX_WORKERS", DEFAULT_MAX_WORKERS),
            report_metrics=feature_enabled("feature.report.metrics"),
        )
        base.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**base)
