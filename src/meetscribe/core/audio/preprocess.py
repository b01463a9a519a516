from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from meetscribe.core.audio import ffmpeg as ff
from meetscribe.core.audio.quality import (
    build_quality_metrics,
    default_quality_metrics,
    parse_levels,
    parse_silences,
    silence_percentage,
    voice_segments_from_silence,
)
from meetscribe.core.contracts import PreprocessOptions, PreprocessResult
from meetscribe.core_types import AudioAsset, QualityMetrics, VoiceSegment
from meetscribe.errors import PreprocessingDegraded
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.audio")

BANDPASS_FILTERS = ["highpass=f=80", "lowpass=f=8000"]
NOISE_REDUCTION_FILTER = "afftdn=nf=-25"
LOUDNORM_FILTER = "loudnorm=I=-16:TP=-1.5:LRA=11"
COMPRESSOR_FILTER = "acompressor=threshold=-20dB:ratio=4:attack=5:release=50"
TRIM_SILENCE_FILTER = "silenceremove=1:0:-50dB:1:1:-50dB"

ENHANCE_FILTERS = [
    "highpass=f=100",
    "lowpass=f=7000",
    "afftdn=nf=-30:nw=1:om=o",
    "volume=2",
    "acompressor=threshold=-24dB:ratio=6:attack=3:release=25",
    "loudnorm=I=-14:TP=-1:LRA=7",
]


def build_filter_chain(options: PreprocessOptions) -> List[str]:
    """
    Cleaning chain in fixed order: band-pass, noise reduction, loudness
    normalization, compression, leading/trailing silence trim.
    """
    filters: List[str] = []
    if options.bandpass:
        filters += BANDPASS_FILTERS
    if options.noise_reduction:
        filters.append(NOISE_REDUCTION_FILTER)
    if options.normalize:
        filters.append(LOUDNORM_FILTER)
    if options.compress:
        filters.append(COMPRESSOR_FILTER)
    if options.trim_silence:
        filters.append(TRIM_SILENCE_FILTER)
    return filters


def _suffix(filename: str) -> str:
    s = Path(filename or "").suffix
    return s if s else ".wav"


class AudioPreprocessor:
    """
    Best-effort audio cleanup on top of ffmpeg.

    Never fails a job: any toolchain problem yields the original audio plus
    conservative metrics (quality=fair) and `degraded=True`.
    """

    def __init__(self, *, silence_noise_db: float = -30.0, min_silence: float = 0.3) -> None:
        self.silence_noise_db = silence_noise_db
        self.min_silence = min_silence

    def preprocess(self, audio: AudioAsset, options: Optional[PreprocessOptions] = None) -> PreprocessResult:
        opts = options or PreprocessOptions()
        try:
            with ff.scratch_dir("meetscribe-pre-") as d:
                src = d / f"input{_suffix(audio.filename)}"
                src.write_bytes(audio.data)

                original_duration = self._duration_or(src, audio.duration)

                out = ff.apply_filters(
                    src,
                    d / "clean.wav",
                    filters=build_filter_chain(opts),
                    sample_rate=opts.sample_rate,
                )
                processed = out.read_bytes()
                processed_duration = self._duration_or(out, original_duration)

                voice: List[VoiceSegment] = []
                silence_pct = 0.0
                if opts.detect_voice_activity:
                    voice, silence_pct = self._detect_voice_activity(out, processed_duration)

                metrics = self._analyze_quality(out, silence_pct)
        except (ff.ToolchainError, OSError) as e:
            logger.warning(f"Audio toolchain unavailable, using defaults: {e}")
            return self._degraded(audio, str(e))

        logger.info(
            f"Preprocessed audio: {original_duration:.1f}s -> {processed_duration:.1f}s "
            f"quality={metrics.quality} snr={metrics.signal_to_noise_ratio:.1f}"
        )
        return PreprocessResult(
            processed_audio=processed,
            original_duration=original_duration,
            processed_duration=processed_duration,
            quality_metrics=metrics,
            voice_segments=voice,
            needs_enhancement=metrics.quality in ("poor", "fair"),
        )

    def enhance_audio(self, data: bytes, *, sample_rate: int = 16000) -> bytes:
        """
        Aggressive cleanup for poor/fair recordings.
        Raises PreprocessingDegraded; the caller keeps the un-enhanced audio.
        """
        try:
            with ff.scratch_dir("meetscribe-enh-") as d:
                src = d / "input.wav"
                src.write_bytes(data)
                out = ff.apply_filters(src, d / "enhanced.wav", filters=ENHANCE_FILTERS, sample_rate=sample_rate)
                return out.read_bytes()
        except ff.ToolchainError as e:
            raise PreprocessingDegraded(f"audio enhancement failed: {e}") from e

    def prepare_for_stt(self, data: bytes, *, sample_rate: int = 16000, bitrate: str = "64k") -> bytes:
        """Re-encode to 16 kHz mono mp3 (small uploads, engine-friendly)."""
        try:
            with ff.scratch_dir("meetscribe-stt-") as d:
                src = d / "input.wav"
                src.write_bytes(data)
                out = ff.encode_mp3(src, d / "prepared.mp3", sample_rate=sample_rate, bitrate=bitrate)
                return out.read_bytes()
        except ff.ToolchainError as e:
            raise PreprocessingDegraded(f"stt re-encode failed: {e}") from e

    def slice_audio(self, data: bytes, start: float, end: float, *, suffix: str = ".wav") -> bytes:
        """
        Cut [start, end] seconds. Raises ToolchainError so a failing slice
        fails its chunk task.
        """
        with ff.scratch_dir("meetscribe-cut-") as d:
            src = d / f"input{suffix}"
            src.write_bytes(data)
            out = ff.cut_range(src, d / f"slice{suffix}", start, end)
            return out.read_bytes()

    def probe_duration(self, data: bytes, *, suffix: str = ".wav") -> Optional[float]:
        try:
            with ff.scratch_dir("meetscribe-probe-") as d:
                src = d / f"input{suffix}"
                src.write_bytes(data)
                return ff.probe(src).duration
        except ff.ToolchainError:
            logger.debug("ffprobe failed; duration unknown.")
            return None

    # -------------------------
    # Internal helpers
    # -------------------------

    def _duration_or(self, path: Path, fallback: float) -> float:
        try:
            d = ff.probe(path).duration
        except ff.ToolchainError:
            return fallback
        return d if d > 0 else fallback

    def _analyze_quality(self, path: Path, silence_pct: float) -> QualityMetrics:
        try:
            levels = parse_levels(ff.measure_levels(path))
        except ff.ToolchainError as e:
            logger.warning(f"Quality analysis failed, using defaults: {e}")
            return default_quality_metrics()
        return build_quality_metrics(levels, silence_percentage=silence_pct)

    def _detect_voice_activity(self, path: Path, duration: float) -> tuple[List[VoiceSegment], float]:
        try:
            log = ff.detect_silence(path, noise_db=self.silence_noise_db, min_silence=self.min_silence)
        except ff.ToolchainError as e:
            logger.warning(f"Voice activity detection failed: {e}")
            return [VoiceSegment(start=0.0, end=duration, confidence=0.5)], 0.0

        starts, ends = parse_silences(log)
        segments = voice_segments_from_silence(starts, ends, duration, min_voice=self.min_silence)
        return segments, silence_percentage(starts, ends, duration)

    def _degraded(self, audio: AudioAsset, reason: str) -> PreprocessResult:
        warning = PreprocessingDegraded(reason).as_warning()
        return PreprocessResult(
            processed_audio=audio.data,
            original_duration=audio.duration,
            processed_duration=audio.duration,
            quality_metrics=default_quality_metrics(),
            voice_segments=[VoiceSegment(start=0.0, end=audio.duration, confidence=0.5)],
            needs_enhancement=True,
            degraded=True,
            warning=warning,
        )
