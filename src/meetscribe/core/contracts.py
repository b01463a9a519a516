from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from meetscribe.core_types import (
    AccuracyMetrics,
    PassResult,
    QualityLabel,
    QualityMetrics,
    Segment,
    VoiceSegment,
)

QUALITY_ORDER: Tuple[QualityLabel, ...] = ("poor", "fair", "good", "excellent")


@dataclass(frozen=True)
class PreprocessOptions:
    # Each cleaning stage can be toggled independently.
    bandpass: bool = True
    noise_reduction: bool = True
    normalize: bool = True
    compress: bool = True
    trim_silence: bool = True
    detect_voice_activity: bool = True
    sample_rate: int = 16000


@dataclass(frozen=True)
class PipelineConfig:
    organization_id: str
    transcription_id: str
    source: str  # http(s) URL or local path

    language: str = "hu"

    # Multi-pass
    passes: int = 2
    temperatures: Tuple[float, ...] = (0.0, 0.2, 0.4)

    # Prompt inputs
    custom_vocabulary: Tuple[str, ...] = ()
    context_hints: Tuple[str, ...] = ()
    speaker_count: Optional[int] = None

    # Time range (None -> whole file)
    start_time: float = 0.0
    end_time: Optional[float] = None

    # Stage toggles
    enable_preprocessing: bool = True
    enable_multi_pass: bool = True
    enable_parallel: bool = True
    enable_vocabulary: bool = True
    enable_llm_enhancement: bool = False
    enable_accuracy_monitoring: bool = True
    preprocess: PreprocessOptions = field(default_factory=PreprocessOptions)

    # Thresholds (warnings only)
    min_audio_quality: Optional[QualityLabel] = None
    min_confidence: Optional[float] = None

    def temperature_for(self, pass_index: int) -> float:
        if 0 <= pass_index < len(self.temperatures):
            return float(self.temperatures[pass_index])
        return 0.1


@dataclass(frozen=True)
class PreprocessResult:
    processed_audio: bytes
    original_duration: float
    processed_duration: float
    quality_metrics: QualityMetrics
    voice_segments: list[VoiceSegment]
    needs_enhancement: bool
    degraded: bool = False
    warning: Optional[str] = None


@dataclass(frozen=True)
class PipelineResult:
    transcription_id: str
    organization_id: str

    text: str
    segments: list[Segment]

    language: str
    duration: float
    audio_quality: QualityLabel
    confidence: float
    vocabulary_matches: int
    pass_count: int

    passes: list[PassResult] = field(default_factory=list)
    enhancements_applied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metrics: Optional[AccuracyMetrics] = None
    processing_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "transcription_id": self.transcription_id,
            "organization_id": self.organization_id,
            "transcript": {
                "text": self.text,
                "segments": [s.model_dump(mode="json") for s in self.segments],
            },
            "metadata": {
                "language": self.language,
                "duration": self.duration,
                "audio_quality": self.audio_quality,
                "confidence": self.confidence,
                "vocabulary_matches": self.vocabulary_matches,
                "pass_count": self.pass_count,
                "enhancements_applied": list(self.enhancements_applied),
                "processing_time": self.processing_time,
            },
            "warnings": list(self.warnings),
            "metrics": self.metrics.model_dump(mode="json") if self.metrics is not None else None,
        }


__all__ = [
    "QUALITY_ORDER",
    "PreprocessOptions",
    "PipelineConfig",
    "PreprocessResult",
    "PipelineResult",
]
