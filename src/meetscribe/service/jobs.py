from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

from meetscribe.config import Settings
from meetscribe.core.jobs import JobSpecStore
from meetscribe.core.jobs.schemas import (
    CorrectionJobRequest,
    JobArtifacts,
    JobKind,
    JobResult,
    JobSpec,
    JobStatus,
    TranscribeJobRequest,
)
from meetscribe.core.jobs.status import initial_status
from meetscribe.core_types import utc_now
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.jobs_service")

TASK_PATH = "meetscribe.service.rq.tasks.run_job"
RESULT_TTL_SEC = 24 * 3600

_REQUEST_MODELS = {
    JobKind.TRANSCRIBE: TranscribeJobRequest,
    JobKind.CORRECTION: CorrectionJobRequest,
}


@dataclass(frozen=True)
class EnqueueResult:
    spec: JobSpec
    status: JobStatus


class JobsService:
    """
    Create job + persist spec/status + enqueue to RQ + query status/result.

    - job_id doubles as the RQ job id
    - the job directory (spec/status/result) is the source of truth; RQ only
      executes
    """

    def __init__(self, settings: Settings, store: JobSpecStore, queue: Queue) -> None:
        self.settings = settings
        self.store = store
        self.queue = queue

    def new_job_id(self) -> str:
        return uuid.uuid4().hex

    def _rq_job_exists(self, job_id: str) -> bool:
        try:
            Job.fetch(job_id, connection=self.queue.connection)
        except NoSuchJobError:
            return False
        return True

    def create_and_enqueue(
        self,
        *,
        kind: JobKind,
        inputs: Dict[str, Any],
        meta: Optional[Dict[str, Any]] = None,
        job_id: Optional[str] = None,
    ) -> EnqueueResult:
        jid = job_id or self.new_job_id()
        if self.store.job_dir(jid).exists() or self._rq_job_exists(jid):
            raise ValueError(f"job_id already exists: {jid}")

        # Reject bad inputs here, not minutes later in the worker.
        request = _REQUEST_MODELS[kind].model_validate(inputs)

        job_dir = self.store.ensure_job_dir(jid)
        spec = JobSpec(
            job_id=jid,
            kind=kind,
            created_at=utc_now(),
            job_root=str(job_dir),
            inputs=request.model_dump(mode="json"),
            meta=meta or {},
        )

        status = initial_status(jid, kind)
        status.timestamps.created_at = spec.created_at
        status.timestamps.enqueued_at = utc_now()
        status.artifacts = JobArtifacts(
            job_dir=str(job_dir),
            spec_path=str(self.store.spec_path(jid)),
            status_path=str(self.store.status_path(jid)),
            result_path=str(self.store.result_path(jid)),
            transcript_path=str(self.store.transcript_path(jid)) if kind == JobKind.TRANSCRIBE else None,
            log_path=str(self.store.debug_log_path(jid)),
        )

        # Persist before enqueue so polling works immediately.
        self.store.write_spec(jid, spec)
        self.store.write_status(jid, status)

        self.queue.enqueue(
            TASK_PATH,
            jid,
            job_id=jid,
            job_timeout=self.settings.rq_job_timeout_sec,
            result_ttl=RESULT_TTL_SEC,
            failure_ttl=RESULT_TTL_SEC,
            meta={"kind": kind.value},
        )

        logger.info(f"JOB_ENQUEUED job_id={jid} kind={kind.value} job_dir={job_dir}")
        return EnqueueResult(spec=spec, status=status)

    def submit_transcription(self, request: TranscribeJobRequest, **kwargs: Any) -> EnqueueResult:
        return self._submit(JobKind.TRANSCRIBE, request, **kwargs)

    def submit_correction(self, request: CorrectionJobRequest, **kwargs: Any) -> EnqueueResult:
        return self._submit(JobKind.CORRECTION, request, **kwargs)

    def _submit(self, kind: JobKind, request: BaseModel, **kwargs: Any) -> EnqueueResult:
        return self.create_and_enqueue(kind=kind, inputs=request.model_dump(mode="json"), **kwargs)

    def get_status(self, job_id: str) -> JobStatus:
        if not self.store.has_status(job_id):
            raise FileNotFoundError(f"unknown job: {job_id}")
        return self.store.read_as_model(job_id, JobStatus, "status")

    def get_result(self, job_id: str) -> Optional[JobResult]:
        if not self.store.has_result(job_id):
            return None
        return self.store.read_as_model(job_id, JobResult, "result")
