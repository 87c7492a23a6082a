"""Append-only disbursement history backed by a JSON-lines journal."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .models import DisbursementRecord

logger = logging.getLogger(__name__)


class HistoryLedger:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._records: Dict[str, List[DisbursementRecord]] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None:
            return
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return
        with self.path.open("r", encoding="utf-8") as handle:
            for lineno, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    record = DisbursementRecord.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError) as exc:
                    logger.warning("Skipping malformed history entry %s:%s: %s", self.path, lineno, exc)
                    continue
                self._records.setdefault(record.tenant_id, []).append(record)

    def append(self, tenant_id: str, record: DisbursementRecord) -> None:
        if record.tenant_id != tenant_id:
            raise ValueError(f"Record for {record.tenant_id} cannot be appended to {tenant_id}")
        with self._lock:
            if self.path is not None:
                with self.path.open("a", encoding="utf-8") as handle:
                    json.dump(record.to_dict(), handle, separators=(",", ":"))
                    handle.write("\n")
            self._records.setdefault(tenant_id, []).append(record)

    def list(self, tenant_id: str) -> List[DisbursementRecord]:
        with self._lock:
            return list(self._records.get(tenant_id, []))

    def recent(self, tenant_id: str, limit: int = 10) -> List[DisbursementRecord]:
        """Most recent records first."""
        with self._lock:
            records = self._records.get(tenant_id, [])
            return list(reversed(records[-limit:])) if limit > 0 else []
