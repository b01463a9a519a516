from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from meetscribe.core.quality.store import InMemoryAccuracyStore, JsonlAccuracyStore
from meetscribe.core_types import AccuracyMetrics, CorrectionRecord, ErrorPattern
from meetscribe.errors import PersistenceFailure

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _metrics(tid: str, org: str = "org", days: int = 0, **kw: Any) -> AccuracyMetrics:
    return AccuracyMetrics(transcription_id=tid, organization_id=org, timestamp=T0 + timedelta(days=days), **kw)


@pytest.fixture(params=["memory", "jsonl"])
def store(request: Any, tmp_path: Path):
    if request.param == "memory":
        return InMemoryAccuracyStore()
    return JsonlAccuracyStore(tmp_path / "metrics")


def test_metrics_filtered_by_org_and_period(store) -> None:
    store.append_metrics(_metrics("t1", days=0))
    store.append_metrics(_metrics("t2", days=5))
    store.append_metrics(_metrics("t3", org="other", days=1))

    assert [m.transcription_id for m in store.list_metrics("org")] == ["t1", "t2"]
    assert [m.transcription_id for m in store.list_metrics("org", T0 + timedelta(days=1), T0 + timedelta(days=6))] == ["t2"]


def test_period_bounds_without_timezone_are_read_as_utc(store) -> None:
    store.append_metrics(_metrics("t1", days=0))
    store.append_metrics(_metrics("t2", days=5))
    naive = T0.replace(tzinfo=None)

    rows = store.list_metrics("org", naive + timedelta(days=1), naive + timedelta(days=6))
    assert [m.transcription_id for m in rows] == ["t2"]

    store.archive_correction(CorrectionRecord(transcription_id="t1", organization_id="org", original="a", corrected="b"))
    assert len(store.list_corrections("org", naive - timedelta(days=1), None)) == 1

def test_corrections_counted_per_transcription(store) -> None:
    for tid in ("t1", "t1", "t2"):
        store.archive_correction(CorrectionRecord(transcription_id=tid, organization_id="org", original="a", corrected="b"))
    assert store.count_corrections("org", "t1") == 2
    assert store.count_corrections("other", "t1") == 0


def test_patterns_upserted_with_frequencies_added(store) -> None:
    p = ErrorPattern(organization_id="org", pattern="kft", replacement="Kft.", type="spelling", frequency=2)
    store.upsert_patterns([p])
    store.upsert_patterns([p.model_copy(update={"frequency": 3})])
    store.upsert_patterns([ErrorPattern(organization_id="org", pattern="zrt", replacement="Zrt.", frequency=9)])

    rows = store.list_patterns("org")
    assert [(r.pattern, r.frequency) for r in rows] == [("zrt", 9), ("kft", 5)]
    assert store.list_patterns("org", limit=1)[0].pattern == "zrt"
    assert store.list_patterns("nobody") == []


def test_jsonl_append_failure_is_persistence_failure(tmp_path: Path, monkeypatch: Any) -> None:
    import meetscribe.core.quality.store as qs

    def _fail(path: Path, payload: Any) -> None:
        raise OSError("read-only")

    monkeypatch.setattr(qs, "append_jsonl", _fail)
    s = JsonlAccuracyStore(tmp_path)
    with pytest.raises(PersistenceFailure):
        s.append_metrics(_metrics("t1"))


def test_jsonl_reads_missing_files_as_empty(tmp_path: Path) -> None:
    s = JsonlAccuracyStore(tmp_path / "none")
    assert s.list_metrics("org") == []
    assert s.list_corrections("org") == []
    assert s.list_patterns() == []
