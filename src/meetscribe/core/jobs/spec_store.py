from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Type, TypeVar

from pydantic import BaseModel

from meetscribe.core.jobs.layout import JobLayout
from meetscribe.utils.io import atomic_write_json, ensure_dir, read_json

M = TypeVar("M", bound=BaseModel)

JsonArtifact = Literal["spec", "status", "result"]


class JobSpecStore:
    """
    Read/write access to the job files. Shared by the enqueuer and the worker;
    every JSON write is atomic so pollers never see a torn document.
    """

    def __init__(self, job_root: str | Path) -> None:
        self.layout = JobLayout.at(job_root)
        self.job_root = self.layout.root

    # -------------------------
    # Paths
    # -------------------------

    def job_dir(self, job_id: str) -> Path:
        return self.layout.job_dir(job_id)

    def spec_path(self, job_id: str) -> Path:
        return self.layout.path(job_id, "spec")

    def status_path(self, job_id: str) -> Path:
        return self.layout.path(job_id, "status")

    def result_path(self, job_id: str) -> Path:
        return self.layout.path(job_id, "result")

    def transcript_path(self, job_id: str) -> Path:
        return self.layout.path(job_id, "transcript")

    def debug_log_path(self, job_id: str) -> Path:
        return self.layout.path(job_id, "debug_log")

    def _path(self, job_id: str, which: JsonArtifact) -> Path:
        if which not in ("spec", "status", "result"):
            raise ValueError("which must be 'spec' | 'status' | 'result'")
        return self.layout.path(job_id, which)

    # -------------------------
    # Write
    # -------------------------

    def ensure_job_dir(self, job_id: str) -> Path:
        return ensure_dir(self.job_dir(job_id))

    def _write(self, job_id: str, which: JsonArtifact, model: BaseModel) -> Path:
        path = self._path(job_id, which)
        self.ensure_job_dir(job_id)
        atomic_write_json(path, model.model_dump(mode="json"))
        return path

    def write_spec(self, job_id: str, spec: BaseModel) -> Path:
        return self._write(job_id, "spec", spec)

    def write_status(self, job_id: str, status: BaseModel) -> Path:
        return self._write(job_id, "status", status)

    def write_result(self, job_id: str, result: BaseModel) -> Path:
        return self._write(job_id, "result", result)

    def write_transcript(self, job_id: str, text: str) -> Path:
        path = self.transcript_path(job_id)
        self.ensure_job_dir(job_id)
        path.write_text(text, encoding="utf-8")
        return path

    # -------------------------
    # Read
    # -------------------------

    def read_dict(self, job_id: str, which: JsonArtifact) -> Dict[str, Any]:
        return read_json(self._path(job_id, which))

    def read_as_model(self, job_id: str, model_cls: Type[M], which: JsonArtifact) -> M:
        return model_cls.model_validate(self.read_dict(job_id, which))

    def has_spec(self, job_id: str) -> bool:
        return self.spec_path(job_id).exists()

    def has_status(self, job_id: str) -> bool:
        return self.status_path(job_id).exists()

    def has_result(self, job_id: str) -> bool:
        return self.result_path(job_id).exists()
