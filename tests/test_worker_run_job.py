# tests/test_worker_run_job.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest

import meetscribe.service.rq.tasks as tasks_mod
from meetscribe.core.asr.executor import PassExecutor, RetryPolicy
from meetscribe.core.jobs import JobSpecStore
from meetscribe.core.jobs.schemas import JobKind, JobResult, JobSpec, JobState, JobStatus
from meetscribe.core.jobs.status import initial_status
from meetscribe.core.pipeline import TranscriptionPipeline
from meetscribe.core.quality.monitor import AccuracyMonitor
from meetscribe.core.quality.store import InMemoryAccuracyStore
from meetscribe.core.refine.vocabulary import VocabularyEnhancer
from meetscribe.core.vocabulary.store import InMemoryVocabularyStore
from meetscribe.errors import FallbackExhausted
from tests._helpers import FakeEngine, FakePreprocessor, fake_fetch, make_cfg, no_sleep, term, transcription


def _runtime(job_root: Path, responder: Any, *, seed: bool = False) -> tasks_mod.WorkerRuntime:
    vocabulary = InMemoryVocabularyStore()
    pipeline = TranscriptionPipeline(
        executor=PassExecutor(FakeEngine(responder), retry=RetryPolicy(max_attempts=1), sleep=no_sleep),
        preprocessor=FakePreprocessor(duration=30.0),
        enhancer=VocabularyEnhancer(vocabulary),
        monitor=AccuracyMonitor(InMemoryAccuracyStore(), vocabulary),
        fetch=fake_fetch(30.0),
    )
    return tasks_mod.WorkerRuntime(
        settings=make_cfg(job_root=str(job_root), seed_default_vocabulary=seed),  # type: ignore[arg-type]
        pipeline=pipeline,
    )


def _write_job(store: JobSpecStore, job_id: str, kind: JobKind, inputs: Dict[str, Any]) -> None:
    store.write_spec(job_id, JobSpec(job_id=job_id, kind=kind, job_root=str(store.job_dir(job_id)), inputs=inputs))
    store.write_status(job_id, initial_status(job_id, kind))


def _transcribe_inputs(**kw: Any) -> Dict[str, Any]:
    base = {"organization_id": "org", "transcription_id": "t1", "source": "meeting.wav", "passes": 1}
    base.update(kw)
    return base


def test_run_job_transcribe_happy_path(tmp_path: Path, monkeypatch: Any) -> None:
    """
    rq task entrypoint with a fake engine:
    - no Redis, no ffmpeg, no network
    - status/result/transcript/debug.log land in the job directory
    """
    store = JobSpecStore(tmp_path / "jobs")
    job_id = "job_test_transcribe"
    _write_job(store, job_id, JobKind.TRANSCRIBE, _transcribe_inputs())

    rt = _runtime(tmp_path / "jobs", lambda *_a: transcription((0.0, 3.0, "a projekt rendben van")), seed=True)
    monkeypatch.setattr(tasks_mod, "_runtime", lambda: rt)

    out = tasks_mod.run_job(job_id)

    assert out == {
        "ok": True,
        "job_id": job_id,
        "kind": "meeting.transcribe",
        "transcript_path": str(store.transcript_path(job_id)),
    }

    st = store.read_as_model(job_id, JobStatus, "status")
    assert st.state == JobState.SUCCEEDED
    assert st.worker.worker_id

    res = store.read_as_model(job_id, JobResult, "result")
    assert res.outputs["transcript"]["text"] == "a projekt rendben van"
    assert res.meta["pass_count"] == 1
    assert store.transcript_path(job_id).read_text(encoding="utf-8") == "a projekt rendben van"
    assert "Pipeline start transcription=t1" in store.debug_log_path(job_id).read_text(encoding="utf-8")

    # default vocabulary seeded for the organization, so the known term is counted
    assert rt.enhancer.store.list_terms("org")
    assert res.outputs["metadata"]["vocabulary_matches"] == 1


def test_run_job_pipeline_error_is_recorded_and_reraised(tmp_path: Path, monkeypatch: Any) -> None:
    store = JobSpecStore(tmp_path / "jobs")
    job_id = "job_test_fallback"
    _write_job(store, job_id, JobKind.TRANSCRIBE, _transcribe_inputs())

    def _down(*_a: Any):
        raise RuntimeError("engine down")

    monkeypatch.setattr(tasks_mod, "_runtime", lambda: _runtime(tmp_path / "jobs", _down))

    with pytest.raises(FallbackExhausted):
        tasks_mod.run_job(job_id)

    st = store.read_as_model(job_id, JobStatus, "status")
    assert st.state == JobState.FAILED
    assert st.error is not None
    assert st.error.code == "fallback_exhausted"
    assert st.error.trace_id == job_id
    assert store.read_as_model(job_id, JobResult, "result").ok is False


def test_run_job_unexpected_error_uses_generic_code(tmp_path: Path, monkeypatch: Any) -> None:
    store = JobSpecStore(tmp_path / "jobs")
    job_id = "job_test_crash"
    _write_job(store, job_id, JobKind.TRANSCRIBE, _transcribe_inputs())

    rt = _runtime(tmp_path / "jobs", lambda *_a: transcription((0.0, 1.0, "x")))
    monkeypatch.setattr(tasks_mod, "_runtime", lambda: rt)

    def _boom(*_a: Any, **_kw: Any):
        raise KeyError("boom")

    monkeypatch.setattr(rt.pipeline, "run", _boom)

    with pytest.raises(KeyError):
        tasks_mod.run_job(job_id)

    st = store.read_as_model(job_id, JobStatus, "status")
    assert st.error is not None
    assert st.error.code == "JOB_FAILED"
    assert "Traceback" in st.error.detail


def test_run_job_correction_updates_vocabulary(tmp_path: Path, monkeypatch: Any) -> None:
    store = JobSpecStore(tmp_path / "jobs")
    job_id = "job_test_correction"
    _write_job(
        store,
        job_id,
        JobKind.CORRECTION,
        {
            "organization_id": "org",
            "transcription_id": "t1",
            "original": "a negyedéves árbevetél nőtt",
            "corrected": "a negyedéves árbevétel nőtt",
            "spans": [{"original": "árbevetél", "corrected": "árbevétel", "type": "vocabulary"}],
        },
    )
    rt = _runtime(tmp_path / "jobs", lambda *_a: transcription())
    t = rt.enhancer.store.add_term(term("org", "árbevétel", usage_count=2))
    rt.enhancer.terms("org")
    monkeypatch.setattr(tasks_mod, "_runtime", lambda: rt)

    tasks_mod.run_job(job_id)

    res = store.read_as_model(job_id, JobResult, "result")
    assert res.outputs["confirmed"] == ["árbevétel"]
    assert res.outputs["wer"] == pytest.approx(0.25)
    assert rt.enhancer.store.get_term(t.id).usage_count == 3
    # cache dropped so the next transcription sees the new confidence
    assert rt.enhancer.cache.get("org") is None


def test_run_job_correction_without_monitor_fails_the_job(tmp_path: Path, monkeypatch: Any) -> None:
    store = JobSpecStore(tmp_path / "jobs")
    job_id = "job_test_no_monitor"
    _write_job(
        store,
        job_id,
        JobKind.CORRECTION,
        {"organization_id": "org", "transcription_id": "t1", "original": "a", "corrected": "b"},
    )
    rt = _runtime(tmp_path / "jobs", lambda *_a: transcription())
    monkeypatch.setattr(rt.pipeline, "monitor", None)
    monkeypatch.setattr(tasks_mod, "_runtime", lambda: rt)

    with pytest.raises(RuntimeError, match="accuracy monitor"):
        tasks_mod.run_job(job_id)

    st = store.read_as_model(job_id, JobStatus, "status")
    assert st.state == JobState.FAILED
    assert st.error is not None
    assert st.error.code == "JOB_FAILED"
