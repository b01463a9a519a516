from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from meetscribe.core_types import AccuracyMetrics, CorrectionRecord, ErrorPattern, as_utc
from meetscribe.errors import PersistenceFailure
from meetscribe.utils.io import append_jsonl, atomic_write_json, iter_jsonl, read_json

PatternKey = Tuple[str, str, str]  # (organization_id, pattern, type)


def _in_period(ts: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    ts = as_utc(ts)
    if start is not None and ts < as_utc(start):
        return False
    if end is not None and ts > as_utc(end):
        return False
    return True


def _pattern_key(p: ErrorPattern) -> PatternKey:
    return (p.organization_id, p.pattern, p.type)


def merge_patterns(existing: Dict[PatternKey, ErrorPattern], patterns: Iterable[ErrorPattern]) -> None:
    """Upsert by (organization, pattern, type); frequencies add up."""
    for p in patterns:
        key = _pattern_key(p)
        cur = existing.get(key)
        if cur is None:
            existing[key] = p
        else:
            existing[key] = cur.model_copy(
                update={
                    "replacement": p.replacement,
                    "frequency": cur.frequency + p.frequency,
                    "last_seen": max(cur.last_seen, p.last_seen),
                }
            )


def _top_patterns(patterns: Iterable[ErrorPattern], organization_id: Optional[str], limit: int) -> List[ErrorPattern]:
    rows = [p for p in patterns if organization_id is None or p.organization_id == organization_id]
    rows.sort(key=lambda p: (-p.frequency, p.pattern))
    return rows[:limit]


class AccuracyStore(ABC):
    """
    Metrics sink and correction archive.
    AccuracyMetrics are append-only; error patterns are upserted.
    """

    @abstractmethod
    def append_metrics(self, metrics: AccuracyMetrics) -> None: ...

    @abstractmethod
    def list_metrics(
        self,
        organization_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AccuracyMetrics]: ...

    @abstractmethod
    def archive_correction(self, record: CorrectionRecord) -> None: ...

    @abstractmethod
    def list_corrections(
        self,
        organization_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CorrectionRecord]: ...

    @abstractmethod
    def upsert_patterns(self, patterns: List[ErrorPattern]) -> None: ...

    @abstractmethod
    def list_patterns(self, organization_id: Optional[str] = None, limit: int = 50) -> List[ErrorPattern]: ...

    def count_corrections(self, organization_id: str, transcription_id: str) -> int:
        return sum(1 for r in self.list_corrections(organization_id) if r.transcription_id == transcription_id)


class InMemoryAccuracyStore(AccuracyStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: List[AccuracyMetrics] = []
        self._corrections: List[CorrectionRecord] = []
        self._patterns: Dict[PatternKey, ErrorPattern] = {}

    def append_metrics(self, metrics: AccuracyMetrics) -> None:
        with self._lock:
            self._metrics.append(metrics)

    def list_metrics(self, organization_id, start=None, end=None):
        with self._lock:
            rows = list(self._metrics)
        return [m for m in rows if m.organization_id == organization_id and _in_period(m.timestamp, start, end)]

    def archive_correction(self, record: CorrectionRecord) -> None:
        with self._lock:
            self._corrections.append(record)

    def list_corrections(self, organization_id, start=None, end=None):
        with self._lock:
            rows = list(self._corrections)
        return [r for r in rows if r.organization_id == organization_id and _in_period(r.created_at, start, end)]

    def upsert_patterns(self, patterns: List[ErrorPattern]) -> None:
        with self._lock:
            merge_patterns(self._patterns, patterns)

    def list_patterns(self, organization_id=None, limit=50):
        with self._lock:
            rows = list(self._patterns.values())
        return _top_patterns(rows, organization_id, limit)


class JsonlAccuracyStore(AccuracyStore):
    """
    On-disk layout:
      <root>/metrics.jsonl       one AccuracyMetrics per line
      <root>/corrections.jsonl   one CorrectionRecord per line
      <root>/patterns.json       {"patterns": [...]}, rewritten atomically
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    @property
    def metrics_path(self) -> Path:
        return self.root / "metrics.jsonl"

    @property
    def corrections_path(self) -> Path:
        return self.root / "corrections.jsonl"

    @property
    def patterns_path(self) -> Path:
        return self.root / "patterns.json"

    def _append(self, path: Path, payload: dict) -> None:
        try:
            with self._lock:
                append_jsonl(path, payload)
        except OSError as e:
            raise PersistenceFailure(f"cannot append to {path.name}: {e}", details={"path": str(path)}) from e

    def append_metrics(self, metrics: AccuracyMetrics) -> None:
        self._append(self.metrics_path, metrics.model_dump(mode="json"))

    def list_metrics(self, organization_id, start=None, end=None):
        out: List[AccuracyMetrics] = []
        for row in iter_jsonl(self.metrics_path):
            m = AccuracyMetrics.model_validate(row)
            if m.organization_id == organization_id and _in_period(m.timestamp, start, end):
                out.append(m)
        return out

    def archive_correction(self, record: CorrectionRecord) -> None:
        self._append(self.corrections_path, record.model_dump(mode="json"))

    def list_corrections(self, organization_id, start=None, end=None):
        out: List[CorrectionRecord] = []
        for row in iter_jsonl(self.corrections_path):
            r = CorrectionRecord.model_validate(row)
            if r.organization_id == organization_id and _in_period(r.created_at, start, end):
                out.append(r)
        return out

    def _load_patterns(self) -> Dict[PatternKey, ErrorPattern]:
        if not self.patterns_path.exists():
            return {}
        rows = [ErrorPattern.model_validate(d) for d in read_json(self.patterns_path).get("patterns", [])]
        return {_pattern_key(p): p for p in rows}

    def upsert_patterns(self, patterns: List[ErrorPattern]) -> None:
        try:
            with self._lock:
                current = self._load_patterns()
                merge_patterns(current, patterns)
                atomic_write_json(
                    self.patterns_path,
                    {"patterns": [p.model_dump(mode="json") for p in current.values()]},
                )
        except OSError as e:
            raise PersistenceFailure(f"cannot write error patterns: {e}", details={"path": str(self.patterns_path)}) from e

    def list_patterns(self, organization_id=None, limit=50):
        return _top_patterns(self._load_patterns().values(), organization_id, limit)
