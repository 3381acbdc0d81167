"""buyback/monitoring/audit_log.py

Append-only ExecutionRecord log.

Design:
- Records are never mutated or removed
- Optional JSONL persistence (one record per line, append-only)
- iter_records() is lazy and restartable: every call re-reads from the
  requested id, so external indexers can resume where they stopped without
  the engine holding full history in memory
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Deque, Iterator, List, Optional

from buyback.execution.models import ExecutionRecord

logger = logging.getLogger(__name__)


class AuditLog:
    """Ordered, append-only record store."""

    def __init__(self, path: Optional[str] = None, *, memory_limit: int = 1000):
        """Initialize the audit log.

        Args:
            path: JSONL file to persist to. None keeps every record in memory.
            memory_limit: Recent records kept in memory when persisting.
        """
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._last_id = 0
        if self.path is None:
            self._records: Deque[ExecutionRecord] = deque()
        else:
            self._records = deque(maxlen=memory_limit)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._recover()

    def _recover(self) -> None:
        """Resume id numbering (and the recent tail) from an existing file."""
        if not self.path.exists():
            self.path.write_text("")
            return
        for record in self._read_file(start_id=1):
            self._records.append(record)
            self._last_id = record.execution_id
        if self._last_id:
            logger.info(f"[audit_log] Recovered {self._last_id} records from {self.path}")

    @property
    def last_id(self) -> int:
        return self._last_id

    def next_id(self) -> int:
        return self._last_id + 1

    def __len__(self) -> int:
        return self._last_id

    def append(self, record: ExecutionRecord) -> None:
        with self._lock:
            if record.execution_id != self._last_id + 1:
                raise ValueError(
                    f"Out-of-order execution_id {record.execution_id}, expected {self._last_id + 1}"
                )
            if self.path is not None:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record.to_dict(), sort_keys=True) + "\n")
            self._records.append(record)
            self._last_id = record.execution_id

    def latest(self, n: int = 10) -> List[ExecutionRecord]:
        with self._lock:
            records = list(self._records)
        return records[-n:] if n > 0 else []

    def iter_records(self, start_id: int = 1) -> Iterator[ExecutionRecord]:
        """Yield records with execution_id >= start_id, oldest first."""
        if self.path is not None:
            yield from self._read_file(start_id)
            return
        with self._lock:
            snapshot = list(self._records)
        for record in snapshot:
            if record.execution_id >= start_id:
                yield record

    def _read_file(self, start_id: int) -> Iterator[ExecutionRecord]:
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = ExecutionRecord.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                    # Skip malformed lines (e.g. a torn write after a crash)
                    logger.warning(f"[audit_log] Skipping malformed line in {self.path}")
                    continue
                if record.execution_id >= start_id:
                    yield record
