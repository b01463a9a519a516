# tests/test_spec_store.py
from __future__ import annotations

from pathlib import Path

import pytest

from meetscribe.core.jobs import JobSpecStore
from meetscribe.core.jobs.schemas import JobKind, JobResult, JobSpec, JobState, JobStatus


def test_spec_store_write_read_models(tmp_path: Path) -> None:
    root = tmp_path / "jobs"
    store = JobSpecStore(str(root))

    job_id = "job_test_001"
    spec = JobSpec(
        job_id=job_id,
        kind=JobKind.TRANSCRIBE,
        job_root=str(store.job_dir(job_id)),
        inputs={"organization_id": "org", "transcription_id": "t1", "source": "a.wav"},
    )
    store.write_spec(job_id, spec)
    store.write_status(job_id, JobStatus(job_id=job_id, kind=JobKind.TRANSCRIBE))
    store.write_result(job_id, JobResult(job_id=job_id, kind=JobKind.TRANSCRIBE, ok=True))

    assert store.read_dict(job_id, "spec")["kind"] == "meeting.transcribe"
    assert store.read_as_model(job_id, JobSpec, "spec").inputs["source"] == "a.wav"
    assert store.read_as_model(job_id, JobStatus, "status").state == JobState.QUEUED
    assert store.read_as_model(job_id, JobResult, "result").ok is True
    assert store.has_spec(job_id) and store.has_status(job_id) and store.has_result(job_id)


def test_spec_store_layout_and_transcript(tmp_path: Path) -> None:
    store = JobSpecStore(tmp_path / "jobs" / ".." / "jobs")
    job_id = "job_test_002"

    assert store.job_dir(job_id) == tmp_path / "jobs" / job_id
    assert store.debug_log_path(job_id).name == "debug.log"
    assert not store.has_status(job_id)

    path = store.write_transcript(job_id, "jó napot")
    assert path.read_text(encoding="utf-8") == "jó napot"
    assert not list(store.job_dir(job_id).glob("*.tmp"))


@pytest.mark.parametrize("job_id", ["", ".", "..", "a/b", "..\\x"])
def test_spec_store_rejects_ids_that_escape_job_root(tmp_path: Path, job_id: str) -> None:
    store = JobSpecStore(tmp_path)

    with pytest.raises(ValueError):
        store.spec_path(job_id)
