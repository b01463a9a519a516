from __future__ import annotations

import os
import traceback
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict

from meetscribe.config import Settings, load_settings
from meetscribe.core.factory import build_pipeline
from meetscribe.core.jobs import JobSpecStore
from meetscribe.core.jobs.schemas import (
    CorrectionJobRequest,
    JobKind,
    JobResult,
    JobSpec,
    JobStatus,
    TranscribeJobRequest,
)
from meetscribe.core.jobs.status import JobStoreStatusSink, initial_status
from meetscribe.core.pipeline import TranscriptionPipeline
from meetscribe.core.quality.monitor import AccuracyMonitor
from meetscribe.core.refine.vocabulary import VocabularyEnhancer
from meetscribe.core.vocabulary.defaults import initialize_defaults
from meetscribe.errors import TranscriptionError
from meetscribe.service.logging_context import job_debug_logging
from meetscribe.utils.logger import clear_trace_id, get_logger, set_log_level, set_trace_id

logger = get_logger("meetscribe.worker")


@dataclass(frozen=True)
class WorkerRuntime:
    """Long-lived pieces shared by every job a worker process runs."""

    settings: Settings
    pipeline: TranscriptionPipeline

    @property
    def enhancer(self) -> VocabularyEnhancer:
        if self.pipeline.enhancer is None:
            raise RuntimeError("worker pipeline was built without a vocabulary enhancer")
        return self.pipeline.enhancer

    @property
    def monitor(self) -> AccuracyMonitor:
        if self.pipeline.monitor is None:
            raise RuntimeError("worker pipeline was built without an accuracy monitor")
        return self.pipeline.monitor


@lru_cache(maxsize=1)
def _runtime() -> WorkerRuntime:
    settings = load_settings()
    set_log_level(settings.log_level)
    pipeline = build_pipeline(settings, with_llm=settings.llm_enabled)
    return WorkerRuntime(settings=settings, pipeline=pipeline)


def _worker_id() -> str:
    return os.getenv("HOSTNAME") or os.getenv("COMPUTERNAME") or "worker"


def _load_status_or_init(store: JobSpecStore, spec: JobSpec) -> JobStatus:
    if store.has_status(spec.job_id):
        return store.read_as_model(spec.job_id, JobStatus, "status")
    return initial_status(spec.job_id, spec.kind)


def _run_transcribe(rt: WorkerRuntime, store: JobSpecStore, spec: JobSpec, sink: JobStoreStatusSink) -> JobResult:
    req = TranscribeJobRequest.model_validate(spec.inputs)

    if rt.settings.seed_default_vocabulary:
        seeded = initialize_defaults(rt.enhancer.store, req.organization_id)
        if seeded:
            rt.enhancer.invalidate(req.organization_id)

    sink.running(0.1, "transcribing")
    result = rt.pipeline.run(req.to_config(), sink)

    transcript_path = store.write_transcript(spec.job_id, result.text)
    return JobResult(
        job_id=spec.job_id,
        kind=spec.kind,
        ok=True,
        transcript_path=str(transcript_path),
        outputs=result.to_dict(),
        warnings=list(result.warnings),
        meta={
            "confidence": result.confidence,
            "audio_quality": result.audio_quality,
            "pass_count": result.pass_count,
        },
    )


def _run_correction(rt: WorkerRuntime, spec: JobSpec, sink: JobStoreStatusSink) -> JobResult:
    req = CorrectionJobRequest.model_validate(spec.inputs)

    sink.running(0.5, "recording correction")
    outcome = rt.monitor.record_correction(req.to_record())
    rt.enhancer.invalidate(req.organization_id)

    return JobResult(
        job_id=spec.job_id,
        kind=spec.kind,
        ok=True,
        outputs={
            "wer": outcome.rates.wer,
            "cer": outcome.rates.cer,
            "confirmed": outcome.confirmed,
            "penalized": outcome.penalized,
            "learned": outcome.learned,
            "patterns": outcome.patterns,
        },
        warnings=list(outcome.warnings),
    )


def run_job(job_id: str) -> Dict[str, Any]:
    """
    RQ task entrypoint:
      "meetscribe.service.rq.tasks.run_job"
    """
    # Correlate all worker logs by job_id
    set_trace_id(job_id)

    rt = _runtime()
    store = JobSpecStore(rt.settings.job_root)

    spec = store.read_as_model(job_id, JobSpec, "spec")
    sink = JobStoreStatusSink(store, _load_status_or_init(store, spec))
    sink.started(_worker_id())

    job_dir = store.job_dir(job_id)
    try:
        logger.info(f"JOB_START job_id={job_id} kind={spec.kind.value} job_dir={job_dir}")
        sink.running(0.05, "running")

        with job_debug_logging(log_path=store.debug_log_path(job_id)):
            if spec.kind == JobKind.TRANSCRIBE:
                result = _run_transcribe(rt, store, spec, sink)
            elif spec.kind == JobKind.CORRECTION:
                result = _run_correction(rt, spec, sink)
            else:
                raise ValueError(f"Unknown job kind: {spec.kind}")

        sink.running(0.95, "finalizing")
        sink.completed(result)

        logger.info(
            f"JOB_DONE job_id={job_id} kind={spec.kind.value} ok={result.ok} warnings={len(result.warnings)}"
        )
        return {"ok": True, "job_id": job_id, "kind": spec.kind.value, "transcript_path": result.transcript_path}

    except TranscriptionError as e:
        logger.error(f"JOB_FAILED job_id={job_id} kind={spec.kind.value} code={e.code} err={e.message}")
        sink.failed(e.code, e.message)
        raise
    except Exception as e:
        tb = traceback.format_exc()
        logger.error(f"JOB_FAILED job_id={job_id} kind={spec.kind.value} err={e}")
        sink.failed("JOB_FAILED", f"{e}\n{tb}")
        raise
    finally:
        clear_trace_id()
