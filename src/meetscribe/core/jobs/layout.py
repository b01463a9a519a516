from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Literal

Artifact = Literal["spec", "status", "result", "transcript", "debug_log"]

FILENAMES: Dict[str, str] = {
    "spec": "spec.json",
    "status": "status.json",
    "result": "result.json",
    "transcript": "transcript.txt",
    "debug_log": "debug.log",
}


@dataclass(frozen=True)
class JobLayout:
    """
    Where one job's files live. The enqueuer and the worker both resolve
    paths through here:

      <job_root>/<job_id>/spec.json        inputs (JobSpec)
                          status.json      state, progress, error (JobStatus)
                          result.json      pipeline payload or correction outcome (JobResult)
                          transcript.txt   final text, transcribe jobs only
                          debug.log        job-scoped log
    """

    root: Path

    @classmethod
    def at(cls, job_root: str | Path) -> "JobLayout":
        # Lexical normalization only; symlinks are left alone.
        return cls(root=Path(os.path.normpath(str(job_root))))

    def job_dir(self, job_id: str) -> Path:
        if not job_id or job_id in (".", "..") or "/" in job_id or "\\" in job_id:
            raise ValueError(f"invalid job_id: {job_id!r}")
        return self.root / job_id

    def path(self, job_id: str, artifact: Artifact) -> Path:
        return self.job_dir(job_id) / FILENAMES[artifact]
