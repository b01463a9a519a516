from __future__ import annotations

from typing import Optional

from meetscribe.config import Settings
from meetscribe.core.asr.base import SpeechToTextEngine
from meetscribe.core.asr.executor import PassExecutor, RetryPolicy
from meetscribe.core.audio.preprocess import AudioPreprocessor
from meetscribe.core.chunking.planner import ChunkPlanner
from meetscribe.core.pipeline import TranscriptionPipeline
from meetscribe.core.quality.monitor import AccuracyMonitor
from meetscribe.core.quality.store import AccuracyStore, JsonlAccuracyStore
from meetscribe.core.reconcile import ReconcileConfig
from meetscribe.core.refine.llm_openai import OpenAITextEnhancer, TextEnhancementEngine
from meetscribe.core.refine.vocabulary import VocabularyEnhancer
from meetscribe.core.vocabulary.store import JsonVocabularyStore, VocabularyStore
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.factory")

LOCAL_DEFAULT_MODEL = "large-v3"


def build_engine(settings: Settings) -> SpeechToTextEngine:
    name = settings.stt_engine.lower()
    if name == "openai":
        from meetscribe.core.asr.openai_whisper import OpenAIWhisperEngine

        return OpenAIWhisperEngine(settings.stt_model, timeout=settings.call_timeout_sec)
    if name == "local":
        from meetscribe.core.asr.local_whisper import LocalWhisperEngine

        model = settings.stt_model if settings.stt_model != "whisper-1" else LOCAL_DEFAULT_MODEL
        return LocalWhisperEngine(model_name=model, device=settings.local_device)
    raise ValueError(f"Unknown STT engine: {settings.stt_engine}")


def build_executor(settings: Settings, engine: Optional[SpeechToTextEngine] = None) -> PassExecutor:
    retry = RetryPolicy(
        max_attempts=settings.max_attempts,
        initial_delay=settings.backoff_initial_sec,
        multiplier=settings.backoff_multiplier,
    )
    return PassExecutor(engine or build_engine(settings), retry=retry)


def build_vocabulary_store(settings: Settings) -> VocabularyStore:
    return JsonVocabularyStore(settings.vocabulary_path)


def build_accuracy_store(settings: Settings) -> AccuracyStore:
    return JsonlAccuracyStore(settings.metrics_dir)


def build_enhancer(settings: Settings, store: VocabularyStore) -> VocabularyEnhancer:
    return VocabularyEnhancer(
        store,
        ttl_seconds=settings.vocabulary_ttl_sec,
        languages=settings.vocabulary_languages,
    )


def build_monitor(settings: Settings, store: AccuracyStore, vocabulary: VocabularyStore) -> AccuracyMonitor:
    return AccuracyMonitor(store, vocabulary)


def build_llm(settings: Settings) -> TextEnhancementEngine:
    return OpenAITextEnhancer(settings.llm_model, timeout=settings.enhancement_timeout_sec)


def build_reconcile_config(settings: Settings) -> ReconcileConfig:
    return ReconcileConfig(
        align_tolerance=settings.align_tolerance_sec,
        overlap_min_chars=settings.text_overlap_min_chars,
        overlap_max_chars=settings.text_overlap_max_chars,
    )


def build_pipeline(
    settings: Settings,
    *,
    engine: Optional[SpeechToTextEngine] = None,
    vocabulary: Optional[VocabularyStore] = None,
    accuracy: Optional[AccuracyStore] = None,
    llm: Optional[TextEnhancementEngine] = None,
    with_llm: bool = False,
) -> TranscriptionPipeline:
    """
    Wire one pipeline from settings. Pieces passed in (fakes in tests,
    shared stores in the worker) are used as-is.
    """
    vocabulary = vocabulary or build_vocabulary_store(settings)
    accuracy = accuracy or build_accuracy_store(settings)
    if llm is None and with_llm:
        llm = build_llm(settings)

    logger.info(
        f"Pipeline wiring: engine={settings.stt_engine} model={settings.stt_model} "
        f"workers={settings.max_workers} chunk={settings.chunk_seconds:g}s overlap={settings.overlap_seconds:g}s"
    )
    executor = build_executor(settings, engine)
    return TranscriptionPipeline(
        executor=executor,
        preprocessor=AudioPreprocessor(),
        planner=ChunkPlanner(settings.chunk_seconds, settings.overlap_seconds),
        enhancer=build_enhancer(settings, vocabulary),
        monitor=build_monitor(settings, accuracy, vocabulary),
        llm=llm,
        reconcile=build_reconcile_config(settings),
        max_workers=settings.max_workers,
        task_timeout=executor.retry.task_budget(settings.call_timeout_sec),
        parallel_min_seconds=settings.parallel_min_seconds,
    )
