from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from pydantic import ValidationError

from meetscribe.core.jobs import JobSpecStore
from meetscribe.core.jobs.schemas import (
    CorrectionJobRequest,
    JobKind,
    JobSpec,
    JobState,
    TranscribeJobRequest,
)
from meetscribe.service.jobs import RESULT_TTL_SEC, TASK_PATH, JobsService


class _Queue:
    def __init__(self) -> None:
        self.connection = None
        self.calls: List[Dict[str, Any]] = []

    def enqueue(self, func: str, *args: Any, **kwargs: Any) -> Any:
        self.calls.append({"func": func, "args": args, **kwargs})
        return SimpleNamespace(id=kwargs.get("job_id"))


def _service(tmp_path: Path, monkeypatch: Any) -> tuple[JobsService, _Queue]:
    queue = _Queue()
    svc = JobsService(SimpleNamespace(rq_job_timeout_sec=5400), JobSpecStore(tmp_path / "jobs"), queue)  # type: ignore[arg-type]
    monkeypatch.setattr(svc, "_rq_job_exists", lambda _jid: False)
    return svc, queue


def test_submit_transcription_persists_then_enqueues(tmp_path: Path, monkeypatch: Any) -> None:
    svc, queue = _service(tmp_path, monkeypatch)

    out = svc.submit_transcription(
        TranscribeJobRequest(organization_id="org", transcription_id="t1", source="https://x.test/a.wav"),
        job_id="job_enqueue_1",
    )

    [call] = queue.calls
    assert call["func"] == TASK_PATH
    assert call["args"] == ("job_enqueue_1",)
    assert call["job_id"] == "job_enqueue_1"
    assert call["job_timeout"] == 5400
    assert call["result_ttl"] == RESULT_TTL_SEC
    assert call["meta"] == {"kind": "meeting.transcribe"}

    spec = svc.store.read_as_model("job_enqueue_1", JobSpec, "spec")
    assert spec.inputs["source"] == "https://x.test/a.wav"
    assert spec.inputs["passes"] == 2

    st = svc.get_status("job_enqueue_1")
    assert st.state == JobState.QUEUED
    assert st.timestamps.enqueued_at is not None
    assert st.artifacts is not None
    assert st.artifacts.transcript_path == str(svc.store.transcript_path("job_enqueue_1"))
    assert out.status.job_id == "job_enqueue_1"
    assert svc.get_result("job_enqueue_1") is None


def test_correction_jobs_have_no_transcript_artifact(tmp_path: Path, monkeypatch: Any) -> None:
    svc, queue = _service(tmp_path, monkeypatch)

    out = svc.submit_correction(
        CorrectionJobRequest(organization_id="org", transcription_id="t1", original="a", corrected="b")
    )

    assert out.spec.kind == JobKind.CORRECTION
    assert out.status.artifacts is not None
    assert out.status.artifacts.transcript_path is None
    assert queue.calls[0]["meta"] == {"kind": "meeting.correction"}
    assert len(out.spec.job_id) == 32


def test_duplicate_job_id_rejected(tmp_path: Path, monkeypatch: Any) -> None:
    svc, queue = _service(tmp_path, monkeypatch)
    inputs = {"organization_id": "org", "transcription_id": "t1", "source": "a.wav"}
    svc.create_and_enqueue(kind=JobKind.TRANSCRIBE, inputs=inputs, job_id="job_dup_0001")

    with pytest.raises(ValueError):
        svc.create_and_enqueue(kind=JobKind.TRANSCRIBE, inputs=inputs, job_id="job_dup_0001")

    monkeypatch.setattr(svc, "_rq_job_exists", lambda _jid: True)
    with pytest.raises(ValueError):
        svc.create_and_enqueue(kind=JobKind.TRANSCRIBE, inputs=inputs, job_id="job_dup_0002")
    assert len(queue.calls) == 1


def test_bad_inputs_rejected_before_anything_is_written(tmp_path: Path, monkeypatch: Any) -> None:
    svc, queue = _service(tmp_path, monkeypatch)

    with pytest.raises(ValidationError):
        svc.create_and_enqueue(
            kind=JobKind.TRANSCRIBE,
            inputs={"organization_id": "org", "transcription_id": "t1", "source": "a.wav", "passes": 9},
            job_id="job_bad_0001",
        )

    assert not svc.store.job_dir("job_bad_0001").exists()
    assert queue.calls == []


def test_unknown_job_status(tmp_path: Path, monkeypatch: Any) -> None:
    svc, _ = _service(tmp_path, monkeypatch)
    with pytest.raises(FileNotFoundError):
        svc.get_status("job_missing_1")
