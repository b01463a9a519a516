from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from meetscribe.core.asr.executor import PassExecutor, PassRequest, build_prompt
from meetscribe.core.asr.pool import WorkerPool
from meetscribe.core.audio import ffmpeg as ff
from meetscribe.core.audio.preprocess import AudioPreprocessor
from meetscribe.core.audio.quality import default_quality_metrics
from meetscribe.core.audio.source import fetch_audio
from meetscribe.core.chunking.planner import ChunkPlanner
from meetscribe.core.contracts import QUALITY_ORDER, PipelineConfig, PipelineResult
from meetscribe.core.jobs.status import JobStatusSink, NullStatusSink
from meetscribe.core.quality.monitor import AccuracyMonitor
from meetscribe.core.reconcile import ReconcileConfig, merge_passes, stitch_chunks
from meetscribe.core.refine.diarize import assign_speakers
from meetscribe.core.refine.llm_openai import (
    EnhancementParseError,
    TextEnhancementEngine,
    apply_corrections_to_segments,
    build_system_context,
)
from meetscribe.core.refine.vocabulary import VocabularyEnhancer
from meetscribe.core_types import (
    AccuracyMetrics,
    AudioAsset,
    PassResult,
    QualityLabel,
    Segment,
    Transcript,
    clamp01,
)
from meetscribe.errors import EnhancementFailure, FallbackExhausted, PassFailure, PreprocessingDegraded
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.pipeline")

FetchFn = Callable[..., AudioAsset]

QUALITY_BONUS = {"excellent": 0.1, "good": 0.05, "fair": 0.0, "poor": -0.1}

POOR_QUALITY_WARNING = "Audio quality is poor. Results may be less accurate."


def overall_confidence(segments: Sequence[Segment], passes: Sequence[PassResult], quality: QualityLabel) -> float:
    """
    Mean segment confidence (0.5 when no segment carries one), averaged with
    the mean pass confidence when more than one pass ran, plus a quality bonus.
    """
    scored = [s.confidence for s in segments if s.confidence is not None]
    confidence = sum(scored) / len(scored) if scored else 0.5

    if len(passes) > 1:
        pass_mean = sum(p.confidence for p in passes) / len(passes)
        confidence = (confidence + pass_mean) / 2

    return clamp01(confidence + QUALITY_BONUS.get(quality, 0.0))


def below_quality(quality: QualityLabel, minimum: Optional[QualityLabel]) -> bool:
    if minimum is None:
        return False
    return QUALITY_ORDER.index(quality) < QUALITY_ORDER.index(minimum)


def vocabulary_match_rate(matches: int, text: str) -> float:
    return matches / max(len((text or "").split()), 1)


class TranscriptionPipeline:
    """
    End-to-end job:

      fetch -> preprocess (+enhance) -> prompt -> STT (chunked parallel,
      multi-pass or single) -> reconcile -> LLM / vocabulary / speakers ->
      confidence + metrics

    Only DownloadFailure and FallbackExhausted escape run(); every other
    problem becomes a warning on the result.
    """

    def __init__(
        self,
        *,
        executor: PassExecutor,
        preprocessor: Optional[AudioPreprocessor] = None,
        planner: Optional[ChunkPlanner] = None,
        enhancer: Optional[VocabularyEnhancer] = None,
        monitor: Optional[AccuracyMonitor] = None,
        llm: Optional[TextEnhancementEngine] = None,
        reconcile: ReconcileConfig = ReconcileConfig(),
        max_workers: int = 10,
        task_timeout: Optional[float] = None,
        parallel_min_seconds: float = 300.0,
        download_timeout: float = 60.0,
        fetch: FetchFn = fetch_audio,
    ) -> None:
        self.executor = executor
        self.preprocessor = preprocessor or AudioPreprocessor()
        self.planner = planner or ChunkPlanner()
        self.enhancer = enhancer
        self.monitor = monitor
        self.llm = llm
        self.reconcile = reconcile
        self.max_workers = max_workers
        self.task_timeout = task_timeout
        self.parallel_min_seconds = parallel_min_seconds
        self.download_timeout = download_timeout
        self.fetch = fetch

    def _pool(self) -> WorkerPool[PassResult]:
        return WorkerPool(self.max_workers, task_timeout=self.task_timeout)

    # -------------------------
    # Entry point
    # -------------------------

    def run(self, config: PipelineConfig, sink: Optional[JobStatusSink] = None) -> PipelineResult:
        sink = sink or NullStatusSink()
        t0 = time.monotonic()
        warnings: List[str] = []
        applied: List[str] = []

        logger.info(
            f"Pipeline start transcription={config.transcription_id} org={config.organization_id} "
            f"language={config.language} passes={config.passes}"
        )

        # 1) source audio (DownloadFailure is fatal)
        asset = self._load(config)

        # 2) preprocess
        audio = asset.data
        filename = asset.filename
        duration = asset.duration
        quality_metrics = default_quality_metrics()
        if config.enable_preprocessing:
            pre = self.preprocessor.preprocess(asset, config.preprocess)
            if pre.degraded:
                warnings.append(pre.warning or PreprocessingDegraded("audio toolchain unavailable").as_warning())
            else:
                audio = pre.processed_audio
                filename = "audio.wav"
                applied.append("audio_preprocessing")
            duration = pre.processed_duration
            quality_metrics = pre.quality_metrics

            if quality_metrics.quality == "poor":
                warnings.append(POOR_QUALITY_WARNING)
                if pre.needs_enhancement and not pre.degraded:
                    try:
                        audio = self.preprocessor.enhance_audio(audio, sample_rate=config.preprocess.sample_rate)
                        applied.append("audio_enhancement")
                    except PreprocessingDegraded as e:
                        logger.warning(f"Audio enhancement skipped: {e}")
                        warnings.append(e.as_warning())

        quality = quality_metrics.quality
        if below_quality(quality, config.min_audio_quality):
            warnings.append(f"Audio quality ({quality}) is below minimum threshold ({config.min_audio_quality})")

        # 3) vocabulary-aware prompt
        prompt_terms = self.enhancer.top_prompt_terms(config.organization_id) if self.enhancer else []
        prompt = build_prompt(
            prompt_terms=prompt_terms,
            custom_vocabulary=config.custom_vocabulary,
            context_hints=config.context_hints,
            language=config.language,
        )

        # 4) engine-friendly encoding
        if config.enable_preprocessing:
            try:
                audio = self.preprocessor.prepare_for_stt(audio, sample_rate=config.preprocess.sample_rate)
                filename = "audio.mp3"
            except PreprocessingDegraded as e:
                logger.warning(f"STT re-encode skipped: {e}")

        # 5) transcription
        start, end = self._time_range(config, duration)
        transcript, passes = self._transcribe(config, audio, filename, prompt, start, end, duration, sink, warnings, applied)
        text = transcript.text
        segments = list(transcript.segments)
        language = transcript.language if transcript.language != "unknown" else config.language

        # 6) LLM post-processing
        if config.enable_llm_enhancement and self.llm is not None and text:
            text, segments = self._llm_enhance(config, text, segments, applied)

        # 7) vocabulary
        if config.enable_vocabulary and self.enhancer is not None:
            new_text = self.enhancer.enhance(text, config.organization_id, config.language)
            new_segments = self.enhancer.enhance_segments(segments, config.organization_id, config.language)
            if new_text != text or any(a.text != b.text for a, b in zip(segments, new_segments)):
                applied.append("vocabulary_enhancement")
            text, segments = new_text, new_segments

        # 8) speaker labels
        if config.speaker_count and config.speaker_count > 1:
            segments = assign_speakers(segments, config.speaker_count)

        # 9) scoring
        matches = self.enhancer.count_matches(text, config.organization_id) if self.enhancer else 0
        confidence = overall_confidence(segments, passes, quality)
        if config.min_confidence is not None and confidence < config.min_confidence:
            warnings.append(
                f"Transcription confidence ({confidence * 100:.1f}%) is below minimum threshold "
                f"({config.min_confidence * 100:.1f}%)"
            )

        metrics: Optional[AccuracyMetrics] = None
        if config.enable_accuracy_monitoring and self.monitor is not None:
            metrics = AccuracyMetrics(
                transcription_id=config.transcription_id,
                organization_id=config.organization_id,
                vocabulary_match_rate=vocabulary_match_rate(matches, text),
                confidence_score=confidence,
                audio_quality=quality,
                duration=duration,
                pass_count=len(passes),
                enhancements_applied=[*applied, "accuracy_monitoring"],
            )
            if self.monitor.track(metrics):
                applied.append("accuracy_monitoring")
            else:
                warnings.append("persistence_failure: accuracy metrics were not stored")

        elapsed = time.monotonic() - t0
        logger.info(
            f"Pipeline done transcription={config.transcription_id} segments={len(segments)} "
            f"passes={len(passes)} confidence={confidence:.3f} quality={quality} "
            f"warnings={len(warnings)} elapsed={elapsed:.1f}s"
        )
        return PipelineResult(
            transcription_id=config.transcription_id,
            organization_id=config.organization_id,
            text=text,
            segments=segments,
            language=language,
            duration=duration,
            audio_quality=quality,
            confidence=confidence,
            vocabulary_matches=matches,
            pass_count=len(passes),
            passes=passes,
            enhancements_applied=applied,
            warnings=warnings,
            metrics=metrics,
            processing_time=elapsed,
        )

    # -------------------------
    # Steps
    # -------------------------

    def _load(self, config: PipelineConfig) -> AudioAsset:
        asset = self.fetch(config.source, timeout=self.download_timeout, sample_rate=config.preprocess.sample_rate)
        probed = self.preprocessor.probe_duration(asset.data, suffix=Path(asset.filename).suffix or ".wav")
        if probed:
            asset.duration = probed
        return asset

    def _time_range(self, config: PipelineConfig, duration: float) -> tuple[float, float]:
        end = duration if config.end_time is None else min(config.end_time, duration)
        start = max(0.0, config.start_time)
        if end <= start:
            raise ValueError(f"empty time range: start_time={config.start_time} end_time={config.end_time}")
        return start, end

    def _transcribe(
        self,
        config: PipelineConfig,
        audio: bytes,
        filename: str,
        prompt: str,
        start: float,
        end: float,
        duration: float,
        sink: JobStatusSink,
        warnings: List[str],
        applied: List[str],
    ) -> tuple[Transcript, List[PassResult]]:
        suffix = Path(filename).suffix or ".wav"
        try:
            if config.enable_parallel and end - start > self.parallel_min_seconds:
                transcript, passes = self._run_parallel(config, audio, suffix, prompt, start, end, sink)
                applied.append("parallel_processing")
                return transcript, passes

            span, offset = self._range_audio(audio, suffix, start, end, duration, warnings)
            if config.enable_multi_pass and config.passes > 1:
                transcript, passes = self._run_multi_pass(config, span, filename, prompt, offset, sink)
                applied.append("multi_pass_transcription")
                return transcript, passes

            result = self._single_pass(config, span, filename, prompt, offset)
            sink.progress(1, 1)
            return self._as_transcript(result, config), [result]
        except PassFailure as e:
            logger.warning(f"Transcription failed ({e}); falling back to one whole-file pass")
            warnings.append(e.as_warning())

        try:
            result = self._single_pass(config, audio, filename, prompt, 0.0)
        except PassFailure as e:
            raise FallbackExhausted(
                f"single-pass fallback failed: {e.message}",
                details={"transcription_id": config.transcription_id},
            ) from e
        sink.progress(1, 1)
        return self._as_transcript(result, config), [result]

    def _range_audio(
        self,
        audio: bytes,
        suffix: str,
        start: float,
        end: float,
        duration: float,
        warnings: List[str],
    ) -> tuple[bytes, float]:
        if start <= 0.0 and end >= duration:
            return audio, 0.0
        try:
            return self.preprocessor.slice_audio(audio, start, end, suffix=suffix), start
        except ff.ToolchainError as e:
            logger.warning(f"Could not cut {start:.1f}-{end:.1f}s, transcribing the whole file: {e}")
            warnings.append(PreprocessingDegraded(f"time range ignored: {e}").as_warning())
            return audio, 0.0

    def _run_parallel(
        self,
        config: PipelineConfig,
        audio: bytes,
        suffix: str,
        prompt: str,
        start: float,
        end: float,
        sink: JobStatusSink,
    ) -> tuple[Transcript, List[PassResult]]:
        chunks = self.planner.plan(start, end, self.max_workers)
        temperature = config.temperature_for(0)

        def _task(chunk):
            def _run() -> PassResult:
                try:
                    piece = self.preprocessor.slice_audio(audio, chunk.start, chunk.end, suffix=suffix)
                except ff.ToolchainError as e:
                    raise PassFailure(f"chunk {chunk.id} could not be cut: {e}", details={"chunk_id": chunk.id}) from e
                request = PassRequest(
                    language=config.language,
                    temperature=temperature,
                    prompt=prompt,
                    offset=chunk.start,
                    chunk_id=chunk.id,
                    filename=f"chunk_{chunk.id}{suffix}",
                )
                return self.executor.execute(piece, request)

            return _run

        results = self._pool().run_all([_task(c) for c in chunks], on_progress=sink.progress)
        transcript = stitch_chunks(results, chunks, self.reconcile)
        if transcript.language == "unknown":
            transcript = transcript.model_copy(update={"language": config.language})
        logger.info(f"Parallel transcription: {len(chunks)} chunk(s) -> {len(transcript.segments)} segment(s)")
        return transcript, results

    def _run_multi_pass(
        self,
        config: PipelineConfig,
        audio: bytes,
        filename: str,
        prompt: str,
        offset: float,
        sink: JobStatusSink,
    ) -> tuple[Transcript, List[PassResult]]:
        def _task(i: int):
            request = PassRequest(
                language=config.language,
                temperature=config.temperature_for(i),
                prompt=prompt,
                offset=offset,
                filename=filename,
            )
            return lambda: self.executor.execute(audio, request)

        results = self._pool().run_all([_task(i) for i in range(config.passes)], on_progress=sink.progress)
        transcript = merge_passes(results, self.reconcile)
        logger.info(f"Multi-pass transcription: {len(results)} pass(es) -> {len(transcript.segments)} segment(s)")
        return transcript, results

    def _single_pass(self, config: PipelineConfig, audio: bytes, filename: str, prompt: str, offset: float) -> PassResult:
        request = PassRequest(
            language=config.language,
            temperature=config.temperature_for(0),
            prompt=prompt,
            offset=offset,
            filename=filename,
        )
        return self.executor.execute(audio, request)

    def _as_transcript(self, result: PassResult, config: PipelineConfig) -> Transcript:
        return merge_passes([result], self.reconcile).model_copy(
            update={"language": result.language or config.language}
        )

    def _llm_enhance(
        self,
        config: PipelineConfig,
        text: str,
        segments: List[Segment],
        applied: List[str],
    ) -> tuple[str, List[Segment]]:
        terms = self.enhancer.terms(config.organization_id) if self.enhancer else []
        system_context = build_system_context(
            language=config.language,
            terms=terms,
            context_hints=config.context_hints,
        )
        try:
            outcome = self.llm.enhance(text, system_context)
        except EnhancementFailure as e:
            logger.warning(f"LLM enhancement skipped: {e}")
            return text, segments

        if isinstance(outcome, EnhancementParseError):
            return text, segments

        applied.append("llm_enhancement")
        return outcome.corrected_text, apply_corrections_to_segments(segments, outcome.corrections)
