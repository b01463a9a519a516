from __future__ import annotations

from pathlib import Path

import pytest

from meetscribe.core.jobs import JobSpecStore
from meetscribe.core.jobs.schemas import JobKind, JobResult, JobState, JobStatus
from meetscribe.core.jobs.status import JobStoreStatusSink, initial_status
from meetscribe.utils.logger import clear_trace_id, set_trace_id


def _sink(tmp_path: Path) -> tuple[JobSpecStore, JobStoreStatusSink]:
    store = JobSpecStore(tmp_path)
    return store, JobStoreStatusSink(store, initial_status("job_status_1", JobKind.TRANSCRIBE))


def test_progress_maps_into_stt_window(tmp_path: Path) -> None:
    store, sink = _sink(tmp_path)
    sink.started("w1")
    sink.progress(1, 4)

    st = store.read_as_model("job_status_1", JobStatus, "status")
    assert st.state == JobState.RUNNING
    assert st.progress == pytest.approx(0.3)
    assert st.message == "transcribing 1/4"
    assert st.worker.worker_id == "w1"
    assert st.timestamps.started_at is not None

    sink.progress(0, 0)
    assert store.read_as_model("job_status_1", JobStatus, "status").progress == pytest.approx(0.3)


def test_completed_writes_status_and_result(tmp_path: Path) -> None:
    store, sink = _sink(tmp_path)
    sink.completed(JobResult(job_id="job_status_1", kind=JobKind.TRANSCRIBE, warnings=["w"]))

    st = store.read_as_model("job_status_1", JobStatus, "status")
    assert st.state == JobState.SUCCEEDED
    assert st.progress == 1.0
    assert st.timestamps.finished_at is not None
    assert store.read_as_model("job_status_1", JobResult, "result").warnings == ["w"]


def test_failed_records_code_and_trace(tmp_path: Path) -> None:
    store, sink = _sink(tmp_path)
    set_trace_id("job_status_1")
    try:
        sink.failed("download_failure", "HTTP 404")
    finally:
        clear_trace_id()

    st = store.read_as_model("job_status_1", JobStatus, "status")
    assert st.state == JobState.FAILED
    assert st.progress is None
    assert st.error is not None
    assert (st.error.code, st.error.trace_id) == ("download_failure", "job_status_1")

    res = store.read_as_model("job_status_1", JobResult, "result")
    assert res.ok is False
    assert res.meta["error"] == {"code": "download_failure", "detail": "HTTP 404"}
