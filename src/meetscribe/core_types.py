from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

QualityLabel = Literal["excellent", "good", "fair", "poor"]
SpanType = Literal["spelling", "grammar", "vocabulary", "context", "user", "other"]
VocabularyCategory = Literal[
    "general",
    "finance",
    "it",
    "legal",
    "medical",
    "marketing",
    "hr",
    "manufacturing",
    "real_estate",
    "education",
    "government",
    "custom",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def clamp01(v: float) -> float:
    return max(0.0, min(1.0, float(v)))


# -----------------------------
# Audio
# -----------------------------


@dataclass
class AudioAsset:
    """
    Raw audio owned by a single job. Bytes are dropped with the job.
    """

    data: bytes
    duration: float
    sample_rate: int = 16000
    filename: str = "audio.wav"


class QualityMetrics(BaseModel):
    signal_to_noise_ratio: float
    peak_level: float
    average_level: float
    silence_percentage: float
    clipping_detected: bool = False
    quality: QualityLabel = "fair"


class VoiceSegment(BaseModel):
    start: float
    end: float
    confidence: float = 0.9


# -----------------------------
# Transcription
# -----------------------------


class Chunk(BaseModel):
    id: int
    start: float
    end: float
    overlap_prev: float = 0.0
    overlap_next: float = 0.0

    @property
    def duration(self) -> float:
        return self.end - self.start


class Segment(BaseModel):
    id: int = 0
    start: float
    end: float
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None


class EngineSegment(BaseModel):
    start: float
    end: float
    text: str
    no_speech_prob: Optional[float] = None

    model_config = {"extra": "allow"}


class EngineTranscription(BaseModel):
    """
    Shape returned by any speech-to-text engine (verbose_json-like).
    """

    text: str = ""
    segments: List[EngineSegment] = Field(default_factory=list)
    language: Optional[str] = None

    model_config = {"extra": "allow"}


class PassResult(BaseModel):
    text: str
    segments: List[Segment] = Field(default_factory=list)
    confidence: float = 0.5
    temperature: float = 0.0
    chunk_id: Optional[int] = None
    language: Optional[str] = None

    @field_validator("confidence")
    @classmethod
    def _confidence_range(cls, v: float) -> float:
        return clamp01(v)


class Transcript(BaseModel):
    text: str
    segments: List[Segment] = Field(default_factory=list)
    language: str = "unknown"


# -----------------------------
# Vocabulary
# -----------------------------


class VocabularyTerm(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    organization_id: str
    term: str
    variations: List[str] = Field(default_factory=list)
    category: VocabularyCategory = "custom"
    phonetic_hint: Optional[str] = None
    context_hints: List[str] = Field(default_factory=list)
    usage_count: int = 0
    confidence_score: float = 0.5
    is_active: bool = True
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("confidence_score")
    @classmethod
    def _confidence_clamped(cls, v: float) -> float:
        return clamp01(v)

    @field_validator("usage_count")
    @classmethod
    def _usage_non_negative(cls, v: int) -> int:
        return max(0, int(v))

    def forms(self) -> List[str]:
        """Term followed by its variations; empty strings dropped."""
        return [f for f in [self.term, *self.variations] if f and f.strip()]


# -----------------------------
# Corrections & accuracy
# -----------------------------


class CorrectionSpan(BaseModel):
    start: int = 0
    end: int = 0
    original: str
    corrected: str
    type: SpanType = "other"


class CorrectionRecord(BaseModel):
    transcription_id: str
    organization_id: str
    original: str
    corrected: str
    spans: List[CorrectionSpan] = Field(default_factory=list)
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class ErrorRates(BaseModel):
    wer: float
    cer: float


class AccuracyMetrics(BaseModel):
    """
    One record per completed job. Appended, never updated.
    """

    transcription_id: str
    organization_id: str
    word_error_rate: Optional[float] = None
    character_error_rate: Optional[float] = None
    vocabulary_match_rate: float = 0.0
    confidence_score: float = 0.0
    audio_quality: QualityLabel = "fair"
    duration: float = 0.0
    pass_count: int = 1
    enhancements_applied: List[str] = Field(default_factory=list)
    user_corrections: int = 0
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


class ErrorPattern(BaseModel):
    organization_id: str
    pattern: str
    replacement: str
    type: SpanType = "other"
    frequency: int = 1
    last_seen: datetime = Field(default_factory=utc_now)


class RealtimeFeedback(BaseModel):
    should_enhance: bool = False
    confidence_warning: bool = False
    suggestions: List[str] = Field(default_factory=list)


class CommonError(BaseModel):
    original: str
    corrected: str
    frequency: int


class VocabularyPerformance(BaseModel):
    total_terms: int = 0
    well_recognized: List[str] = Field(default_factory=list)
    poorly_recognized: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class AccuracyReport(BaseModel):
    organization_id: str
    period_start: datetime
    period_end: datetime
    total_transcriptions: int = 0
    average_word_error_rate: float = 0.0
    average_confidence: float = 0.0
    audio_quality_distribution: Dict[str, int] = Field(default_factory=dict)
    common_errors: List[CommonError] = Field(default_factory=list)
    vocabulary_performance: VocabularyPerformance = Field(default_factory=VocabularyPerformance)
    recommendations: List[str] = Field(default_factory=list)
