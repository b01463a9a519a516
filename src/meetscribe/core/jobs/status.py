from __future__ import annotations

import threading
from typing import Optional, Protocol

from meetscribe.core.jobs.schemas import JobError, JobKind, JobResult, JobState, JobStatus
from meetscribe.core.jobs.spec_store import JobSpecStore
from meetscribe.core_types import utc_now
from meetscribe.utils.logger import get_trace_id

# Share of the progress bar given to the STT calls; the rest is setup and finishing.
STT_PROGRESS_START = 0.1
STT_PROGRESS_END = 0.9


class JobStatusSink(Protocol):
    def progress(self, completed: int, total: int) -> None: ...

    def completed(self, result: JobResult) -> None: ...

    def failed(self, code: str, detail: str) -> None: ...


class NullStatusSink:
    def progress(self, completed: int, total: int) -> None:
        return None

    def completed(self, result: JobResult) -> None:
        return None

    def failed(self, code: str, detail: str) -> None:
        return None


class JobStoreStatusSink:
    """
    Status updates persisted to <job_dir>/status.json (and result.json on
    terminal states). Progress callbacks may come from pool threads.
    """

    def __init__(self, store: JobSpecStore, status: JobStatus) -> None:
        self.store = store
        self.status = status
        self._lock = threading.Lock()

    def _write(self) -> None:
        self.store.write_status(self.status.job_id, self.status)

    def started(self, worker_id: str) -> None:
        with self._lock:
            self.status.state = JobState.STARTED
            self.status.message = "started"
            self.status.worker.worker_id = worker_id
            if self.status.timestamps.started_at is None:
                self.status.timestamps.started_at = utc_now()
            self._write()

    def running(self, progress: Optional[float], message: str) -> None:
        with self._lock:
            self.status.state = JobState.RUNNING
            self.status.progress = progress
            self.status.message = message
            self._write()

    def progress(self, completed: int, total: int) -> None:
        if total <= 0:
            return
        span = STT_PROGRESS_END - STT_PROGRESS_START
        self.running(STT_PROGRESS_START + span * min(completed, total) / total, f"transcribing {completed}/{total}")

    def completed(self, result: JobResult) -> None:
        with self._lock:
            self.status.state = JobState.SUCCEEDED
            self.status.progress = 1.0
            self.status.message = "succeeded"
            if self.status.timestamps.finished_at is None:
                self.status.timestamps.finished_at = utc_now()
            self.status.error = None
            self._write()
            self.store.write_result(self.status.job_id, result)

    def failed(self, code: str, detail: str) -> None:
        with self._lock:
            self.status.state = JobState.FAILED
            self.status.progress = None
            self.status.message = "failed"
            if self.status.timestamps.finished_at is None:
                self.status.timestamps.finished_at = utc_now()
            self.status.error = JobError(code=code, detail=detail, trace_id=get_trace_id())
            self._write()
            self.store.write_result(
                self.status.job_id,
                JobResult(
                    job_id=self.status.job_id,
                    kind=self.status.kind,
                    ok=False,
                    meta={"error": {"code": code, "detail": detail}},
                ),
            )


def initial_status(job_id: str, kind: JobKind) -> JobStatus:
    return JobStatus(job_id=job_id, kind=kind, state=JobState.QUEUED, message="queued")
