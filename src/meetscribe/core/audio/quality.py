from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from meetscribe.core_types import QualityLabel, QualityMetrics, VoiceSegment

NOISE_FLOOR_DB = -60.0
CLIPPING_PEAK_DB = -0.1
DEFAULT_AVERAGE_DB = -30.0
MIN_VOICE_SECONDS = 0.3

_PEAK_RE = re.compile(r"Peak_level=(-?inf|-?[\d.]+)")
_RMS_RE = re.compile(r"RMS_level=(-?inf|-?[\d.]+)")
_SILENCE_START_RE = re.compile(r"silence_start:\s*(-?[\d.]+)")
_SILENCE_END_RE = re.compile(r"silence_end:\s*(-?[\d.]+)")


@dataclass(frozen=True)
class LevelStats:
    peak_level: Optional[float]
    average_level: Optional[float]
    clipping: bool


def _last_float(pattern: re.Pattern[str], text: str) -> Optional[float]:
    # astats with reset=0 prints running totals; the last frame is the whole file.
    found = pattern.findall(text or "")
    if not found:
        return None
    raw = found[-1]
    if raw.endswith("inf"):
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def parse_levels(output: str) -> LevelStats:
    peak = _last_float(_PEAK_RE, output)
    avg = _last_float(_RMS_RE, output)
    clipping = "clipping" in (output or "").lower() or (peak is not None and peak > CLIPPING_PEAK_DB)
    return LevelStats(peak_level=peak, average_level=avg, clipping=clipping)


def estimate_snr(average_level: Optional[float]) -> float:
    """
    Approximate SNR: measured RMS level above an assumed -60 dB noise floor.
    """
    signal = average_level if average_level is not None else DEFAULT_AVERAGE_DB
    return max(0.0, signal - NOISE_FLOOR_DB)


def classify_quality(snr: float, clipping: bool) -> QualityLabel:
    if clipping:
        return "poor"
    if snr < 10:
        return "poor"
    if snr < 20:
        return "fair"
    if snr < 30:
        return "good"
    return "excellent"


def default_quality_metrics() -> QualityMetrics:
    return QualityMetrics(
        signal_to_noise_ratio=20.0,
        peak_level=-20.0,
        average_level=-30.0,
        silence_percentage=10.0,
        clipping_detected=False,
        quality="fair",
    )


def build_quality_metrics(levels: LevelStats, *, silence_percentage: float = 0.0) -> QualityMetrics:
    snr = estimate_snr(levels.average_level)
    return QualityMetrics(
        signal_to_noise_ratio=snr,
        peak_level=levels.peak_level if levels.peak_level is not None else -30.0,
        average_level=levels.average_level if levels.average_level is not None else -40.0,
        silence_percentage=silence_percentage,
        clipping_detected=levels.clipping,
        quality=classify_quality(snr, levels.clipping),
    )


# -----------------------------
# Voice activity
# -----------------------------


def parse_silences(output: str) -> Tuple[List[float], List[float]]:
    starts = [float(x) for x in _SILENCE_START_RE.findall(output or "")]
    ends = [float(x) for x in _SILENCE_END_RE.findall(output or "")]
    return starts, ends


def silence_percentage(starts: List[float], ends: List[float], duration: float) -> float:
    if duration <= 0:
        return 0.0
    total = 0.0
    for i, st in enumerate(starts):
        # A trailing silence may have no silence_end line.
        ed = ends[i] if i < len(ends) else duration
        total += max(0.0, min(ed, duration) - max(st, 0.0))
    return max(0.0, min(100.0, total / duration * 100.0))


def voice_segments_from_silence(
    starts: List[float],
    ends: List[float],
    duration: float,
    *,
    min_voice: float = MIN_VOICE_SECONDS,
    confidence: float = 0.9,
) -> List[VoiceSegment]:
    """
    Voice = complement of detected silence.

    - no silence: the whole clip is one voice interval
    - leading voice kept only if the first silence starts after 0.1s
    - interior/trailing voice intervals shorter than `min_voice` are dropped
    """
    if not starts:
        return [VoiceSegment(start=0.0, end=max(0.0, duration), confidence=confidence)]

    out: List[VoiceSegment] = []
    if starts[0] > 0.1:
        out.append(VoiceSegment(start=0.0, end=starts[0], confidence=confidence))

    for i, voice_start in enumerate(ends):
        voice_end = starts[i + 1] if i + 1 < len(starts) else duration
        if voice_end - voice_start > min_voice:
            out.append(VoiceSegment(start=voice_start, end=voice_end, confidence=confidence))
    return out
