from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from meetscribe.core.contracts import PipelineConfig, PreprocessOptions
from meetscribe.core_types import CorrectionRecord, CorrectionSpan, QualityLabel, utc_now

JOB_SCHEMA_VERSION: Literal["1.0"] = "1.0"


class JobKind(str, Enum):
    TRANSCRIBE = "meeting.transcribe"
    CORRECTION = "meeting.correction"


class JobState(str, Enum):
    QUEUED = "queued"
    STARTED = "started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobTimestamps(BaseModel):
    created_at: datetime = Field(default_factory=utc_now)
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class JobWorkerInfo(BaseModel):
    worker_id: Optional[str] = None
    attempt: int = 1


class JobError(BaseModel):
    code: str  # e.g. download_failure / fallback_exhausted / JOB_FAILED
    detail: str
    trace_id: Optional[str] = None


class JobArtifacts(BaseModel):
    job_dir: str
    spec_path: Optional[str] = None
    status_path: Optional[str] = None
    result_path: Optional[str] = None
    transcript_path: Optional[str] = None
    log_path: Optional[str] = None


def _tz_aware(v: datetime) -> datetime:
    if v.tzinfo is None:
        raise ValueError("timestamps must be timezone-aware")
    return v


class JobSpec(BaseModel):
    """
    What the worker should do. Written once before enqueue.
    """

    schema_version: Literal["1.0"] = Field(default=JOB_SCHEMA_VERSION)

    job_id: str = Field(min_length=8, max_length=64)
    kind: JobKind
    created_at: datetime = Field(default_factory=utc_now)
    job_root: str = Field(min_length=1)

    inputs: Dict[str, Any] = Field(default_factory=dict)
    meta: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    @field_validator("created_at")
    @classmethod
    def _created_at_must_be_tz_aware(cls, v: datetime) -> datetime:
        return _tz_aware(v)


class JobStatus(BaseModel):
    """
    Mutable state; written on enqueue and by the worker as the job advances.
    `progress` follows completed/total STT calls while passes or chunks run.
    """

    schema_version: Literal["1.0"] = Field(default=JOB_SCHEMA_VERSION)

    job_id: str = Field(min_length=8, max_length=64)
    kind: JobKind
    state: JobState = JobState.QUEUED
    progress: Optional[float] = None

    timestamps: JobTimestamps = Field(default_factory=JobTimestamps)
    worker: JobWorkerInfo = Field(default_factory=JobWorkerInfo)

    message: Optional[str] = None
    error: Optional[JobError] = None
    artifacts: Optional[JobArtifacts] = None

    @field_validator("progress")
    @classmethod
    def _progress_range(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return None
        if v < 0.0 or v > 1.0:
            raise ValueError("progress must be within [0, 1]")
        return v


class JobResult(BaseModel):
    schema_version: Literal["1.0"] = Field(default=JOB_SCHEMA_VERSION)

    job_id: str = Field(min_length=8, max_length=64)
    kind: JobKind
    ok: bool = True

    transcript_path: Optional[str] = None
    outputs: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at")
    @classmethod
    def _result_created_at_tz_aware(cls, v: datetime) -> datetime:
        return _tz_aware(v)


# -----------------------------
# Job inputs
# -----------------------------


class TranscribeJobRequest(BaseModel):
    """
    Copied into JobSpec.inputs for JobKind.TRANSCRIBE.
    """

    organization_id: str
    transcription_id: str
    source: str

    language: str = "hu"
    passes: int = Field(default=2, ge=1, le=5)
    temperatures: List[float] = Field(default_factory=lambda: [0.0, 0.2, 0.4])
    custom_vocabulary: List[str] = Field(default_factory=list)
    context_hints: List[str] = Field(default_factory=list)
    speaker_count: Optional[int] = Field(default=None, ge=1)

    start_time: float = Field(default=0.0, ge=0.0)
    end_time: Optional[float] = None

    enable_preprocessing: bool = True
    enable_multi_pass: bool = True
    enable_parallel: bool = True
    enable_vocabulary: bool = True
    enable_llm_enhancement: bool = False
    enable_accuracy_monitoring: bool = True

    min_audio_quality: Optional[QualityLabel] = None
    min_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    model_config = {"extra": "forbid"}

    def to_config(self, preprocess: Optional[PreprocessOptions] = None) -> PipelineConfig:
        data = self.model_dump()
        data["temperatures"] = tuple(data["temperatures"])
        data["custom_vocabulary"] = tuple(data["custom_vocabulary"])
        data["context_hints"] = tuple(data["context_hints"])
        if preprocess is not None:
            data["preprocess"] = preprocess
        return PipelineConfig(**data)


class CorrectionJobRequest(BaseModel):
    """
    Copied into JobSpec.inputs for JobKind.CORRECTION.
    """

    organization_id: str
    transcription_id: str
    original: str
    corrected: str
    spans: List[CorrectionSpan] = Field(default_factory=list)
    user_id: Optional[str] = None

    model_config = {"extra": "forbid"}

    def to_record(self) -> CorrectionRecord:
        return CorrectionRecord(**self.model_dump())
