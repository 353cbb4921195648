# src/paramsniff/store.py
from __future__ import annotations

import hashlib
import json
import shutil
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from .php.anomalies import Anomaly
from .sniffs.report import Diagnostic, MetricObservation


SCHEMA_VERSION = "1.0"


class ReportStore:
    """
    Parquet store for one run's diagnostics, metric observations and anomalies:
      - explicit Arrow schemas with a schema_version column + metadata
      - ZSTD compression
      - verified writes (read-back row counts)
      - atomic publish (staging -> out_dir) with run_receipt.json
    """

    def __init__(
        self,
        out_dir: Path,
        *,
        zstd_level: int = 7,
        staging_suffix: str = ".staging",
    ) -> None:
        self.out_dir = Path(out_dir)
        self.zstd_level = int(zstd_level)
        self._staging = Path(str(self.out_dir) + staging_suffix)
        self._pq_write_kwargs = dict(
            compression="zstd",
            compression_level=self.zstd_level,
            use_dictionary=True,
            write_statistics=True,
        )
        self._transaction_log: List[str] = []

    def write(
        self,
        diagnostics: Iterable[Diagnostic],
        metrics: Iterable[MetricObservation],
        anomalies: Iterable[Anomaly],
        *,
        receipt: Optional[Dict] = None,
    ) -> Dict[str, int]:
        """Write all tables, then publish atomically. Returns row counts per table."""
        if self._staging.exists():
            shutil.rmtree(self._staging, ignore_errors=True)
        self._staging.mkdir(parents=True, exist_ok=True)

        try:
            counts = {
                "diagnostics": self._verified_write(
                    [_diagnostic_to_arrow_row(d) for d in diagnostics], _diagnostic_schema(), "diagnostics.parquet"
                ),
                "metrics": self._verified_write(
                    [_metric_to_arrow_row(m) for m in metrics], _metric_schema(), "metrics.parquet"
                ),
                "anomalies": self._verified_write(
                    [_anomaly_to_arrow_row(a) for a in anomalies], _anomaly_schema(), "anomalies.parquet"
                ),
            }

            meta = {
                "schema_version": SCHEMA_VERSION,
                "rows": counts,
                "compression": {"algorithm": "zstd", "level": self.zstd_level},
                "created_at_epoch": int(time.time()),
                "created_at_iso": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                "transaction_log": self._transaction_log,
            }
            meta.update(receipt or {})
            meta["integrity"] = self._compute_integrity_hashes()
            (self._staging / "run_receipt.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
        except Exception:
            shutil.rmtree(self._staging, ignore_errors=True)
            raise

        self._atomic_publish()
        return counts

    # ----------------------------- internals ----------------------------------

    def _verified_write(self, rows: List[Dict], schema: pa.Schema, name: str) -> int:
        """Write Parquet and verify on disk; clean up on failure. Returns row count."""
        path = self._staging / name
        try:
            tbl = pa.Table.from_pylist(rows, schema=schema)
            pq.write_table(tbl, path, **self._pq_write_kwargs)

            if not path.exists() or path.stat().st_size == 0:
                raise RuntimeError(f"Failed to write {path}")

            written = pq.read_table(path)
            if written.num_rows != tbl.num_rows:
                raise RuntimeError(f"Row count mismatch: expected {tbl.num_rows}, got {written.num_rows}")

            self._transaction_log.append(f"wrote:{name}")
            return tbl.num_rows
        except Exception as e:
            if path.exists():
                path.unlink()
            raise RuntimeError(f"Parquet write verification failed for {path}: {e}") from e

    def _compute_integrity_hashes(self) -> Dict[str, str]:
        hashes: Dict[str, str] = {}
        for file_path in sorted(self._staging.rglob("*.parquet")):
            with open(file_path, "rb") as f:
                hashes[file_path.relative_to(self._staging).as_posix()] = hashlib.blake2b(f.read(), digest_size=16).hexdigest()
        return hashes

    def _atomic_publish(self) -> None:
        # Replace existing out_dir atomically
        if self.out_dir.exists():
            backup = Path(str(self.out_dir) + ".bak")
            if backup.exists():
                shutil.rmtree(backup, ignore_errors=True)
            self.out_dir.replace(backup)
        self.out_dir.parent.mkdir(parents=True, exist_ok=True)
        self._staging.replace(self.out_dir)


# ============================== schemas & mapping ==============================

def _diagnostic_schema() -> pa.Schema:
    schema = pa.schema(
        [
            pa.field("path", pa.string()),
            pa.field("line", pa.int64()),
            pa.field("column", pa.int64()),
            pa.field("token_index", pa.int64()),
            pa.field("code", pa.string()),
            pa.field("message", pa.string()),
            pa.field("severity", pa.string()),
            pa.field("fixable", pa.bool_()),
            pa.field("schema_version", pa.string()),
        ]
    )
    return schema.with_metadata({"version": SCHEMA_VERSION})


def _metric_schema() -> pa.Schema:
    schema = pa.schema(
        [
            pa.field("path", pa.string()),
            pa.field("line", pa.int64()),
            pa.field("metric", pa.string()),
            pa.field("value", pa.string()),
            pa.field("schema_version", pa.string()),
        ]
    )
    return schema.with_metadata({"version": SCHEMA_VERSION})


def _anomaly_schema() -> pa.Schema:
    schema = pa.schema(
        [
            pa.field("path", pa.string()),
            pa.field("blob_sha", pa.string()),
            pa.field("kind", pa.string()),
            pa.field("severity", pa.string()),
            pa.field("detail", pa.string()),
            pa.field("span_start", pa.int64()),
            pa.field("span_end", pa.int64()),
            pa.field("ts_ms", pa.int64()),
            pa.field("schema_version", pa.string()),
        ]
    )
    return schema.with_metadata({"version": SCHEMA_VERSION})


def _diagnostic_to_arrow_row(d: Diagnostic) -> Dict:
    row = d.to_dict()
    row["schema_version"] = SCHEMA_VERSION
    return row


def _metric_to_arrow_row(m: MetricObservation) -> Dict:
    return dict(
        path=m.path,
        line=int(m.line),
        metric=m.metric,
        value=m.value,
        schema_version=SCHEMA_VERSION,
    )


def _anomaly_to_arrow_row(a: Anomaly) -> Dict:
    row = a.to_dict()
    row["schema_version"] = SCHEMA_VERSION
    return row
