"""buyback/monitoring/exporters.py

Export the audit trail and usage metrics to CSV/Parquet for external indexing.

Design goals:
- CSV: Simple append (creates header if missing)
- Parquet: full rewrite via pyarrow
- Streams records from AuditLog.iter_records, so exports can resume from an id
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List

import pyarrow as pa
import pyarrow.parquet as pq

from buyback.execution.models import ExecutionRecord

logger = logging.getLogger(__name__)

RECORD_FIELDS = [
    "execution_id",
    "timestamp",
    "amount_in",
    "amount_out",
    "price_per_unit",
    "outcome",
    "reason",
    "executor",
]

# Amounts are 18-decimal integers and overflow int64; store them as strings.
_AMOUNT_FIELDS = ("amount_in", "amount_out", "price_per_unit")


def flatten_metrics(
    metrics: Dict[str, Any],
    prefix: str = "",
    delimiter: str = "_",
) -> Dict[str, Any]:
    """Flatten nested metrics dict to single-level dict."""
    flat: Dict[str, Any] = {}

    for key, value in metrics.items():
        new_key = f"{prefix}{delimiter}{key}" if prefix else key

        if isinstance(value, dict):
            flat.update(flatten_metrics(value, new_key, delimiter))
        elif isinstance(value, list):
            flat[new_key] = ",".join(str(v) for v in value)
        else:
            flat[new_key] = value

    return flat


def _append_csv(rows: List[Dict[str, Any]], path: str, fieldnames: List[str]) -> int:
    file_exists = Path(path).exists() and Path(path).stat().st_size > 0
    with open(path, "a", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
        if not file_exists:
            writer.writeheader()
        writer.writerows(rows)
    return len(rows)


def _record_row(record: ExecutionRecord) -> Dict[str, Any]:
    row = record.to_dict()
    for key in _AMOUNT_FIELDS:
        row[key] = str(row[key])
    return row


def export_records(records: Iterable[ExecutionRecord], path: str, format: str = "csv") -> int:
    """Export execution records.

    Args:
        records: Records to export (typically AuditLog.iter_records(start_id)).
        path: Output file path.
        format: "csv" (append) or "parquet" (rewrite).

    Returns:
        Number of records written.
    """
    rows = [_record_row(r) for r in records]
    Path(path).parent.mkdir(parents=True, exist_ok=True)

    if format == "csv":
        written = _append_csv(rows, path, RECORD_FIELDS)
    elif format == "parquet":
        columns = {name: [row[name] for row in rows] for name in RECORD_FIELDS}
        schema = pa.schema([
            ("execution_id", pa.int64()),
            ("timestamp", pa.int64()),
            ("amount_in", pa.string()),
            ("amount_out", pa.string()),
            ("price_per_unit", pa.string()),
            ("outcome", pa.string()),
            ("reason", pa.string()),
            ("executor", pa.string()),
        ])
        pq.write_table(pa.Table.from_pydict(columns, schema=schema), path)
        written = len(rows)
    else:
        raise ValueError(f"Unknown export format: {format}")

    logger.info(f"[export] {written} records -> {path} ({format})")
    return written


def export_usage_metrics(snapshot: Dict[str, Any], path: str) -> bool:
    """Append one flattened engine snapshot to a CSV file."""
    flat = {k: (str(v) if isinstance(v, int) and not isinstance(v, bool) else v)
            for k, v in flatten_metrics(snapshot).items()}
    flat["exported_at"] = datetime.now(timezone.utc).isoformat()
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    try:
        _append_csv([flat], path, list(flat.keys()))
    except OSError as e:
        logger.error(f"[export] CSV write error: {e}")
        return False
    return True
