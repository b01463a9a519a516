from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Tuple


def _split_csv(v: str) -> List[str]:
    parts = [p.strip() for p in (v or "").split(",")]
    return [p for p in parts if p]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default) not in ("0", "false", "False", "no", "off")


@dataclass(frozen=True)
class Settings:
    """
    Process-wide runtime settings (env-driven).

    Built once by load_settings() at process start and handed to the
    builders in meetscribe.core.factory; nothing reads os.environ later.
    """

    data_root: str = os.getenv("MEETSCRIBE_DATA_ROOT", "/data")
    job_root: str = os.getenv("MEETSCRIBE_JOB_ROOT", "/data/jobs")

    # Stores (empty -> derived from data_root)
    vocabulary_path: str = os.getenv("MEETSCRIBE_VOCAB_PATH", "")
    metrics_dir: str = os.getenv("MEETSCRIBE_METRICS_DIR", "")

    # Redis/RQ
    redis_url: str = os.getenv("MEETSCRIBE_REDIS_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
    rq_queue_name: str = os.getenv("MEETSCRIBE_RQ_QUEUE_NAME", "meetscribe")
    rq_job_timeout_sec: int = int(os.getenv("MEETSCRIBE_RQ_JOB_TIMEOUT_SEC", "5400"))

    # Engines
    stt_engine: str = os.getenv("MEETSCRIBE_STT_ENGINE", "openai")
    stt_model: str = os.getenv("MEETSCRIBE_STT_MODEL", "whisper-1")
    local_device: str = os.getenv("MEETSCRIBE_LOCAL_DEVICE", "auto")
    llm_model: str = os.getenv("MEETSCRIBE_LLM_MODEL", "gpt-4o-mini")
    llm_enabled: bool = _env_bool("MEETSCRIBE_LLM_ENABLED", "1")

    # Chunked/parallel execution
    max_workers: int = int(os.getenv("MEETSCRIBE_MAX_WORKERS", "10"))
    chunk_seconds: float = float(os.getenv("MEETSCRIBE_CHUNK_SECONDS", "180"))
    overlap_seconds: float = float(os.getenv("MEETSCRIBE_OVERLAP_SECONDS", "10"))
    parallel_min_seconds: float = float(os.getenv("MEETSCRIBE_PARALLEL_MIN_SECONDS", "300"))

    # Per-call budget
    call_timeout_sec: float = float(os.getenv("MEETSCRIBE_CALL_TIMEOUT_SEC", "120"))
    enhancement_timeout_sec: float = float(os.getenv("MEETSCRIBE_ENHANCEMENT_TIMEOUT_SEC", "30"))
    max_attempts: int = int(os.getenv("MEETSCRIBE_MAX_ATTEMPTS", "3"))
    backoff_initial_sec: float = float(os.getenv("MEETSCRIBE_BACKOFF_INITIAL_SEC", "1.0"))
    backoff_multiplier: float = float(os.getenv("MEETSCRIBE_BACKOFF_MULTIPLIER", "2.0"))

    # Reconciliation knobs
    align_tolerance_sec: float = float(os.getenv("MEETSCRIBE_ALIGN_TOLERANCE_SEC", "0.5"))
    text_overlap_min_chars: int = int(os.getenv("MEETSCRIBE_TEXT_OVERLAP_MIN", "20"))
    text_overlap_max_chars: int = int(os.getenv("MEETSCRIBE_TEXT_OVERLAP_MAX", "200"))

    # Vocabulary
    vocabulary_ttl_sec: float = float(os.getenv("MEETSCRIBE_VOCAB_TTL_SEC", "300"))
    vocabulary_languages: Tuple[str, ...] = None  # type: ignore[assignment]
    seed_default_vocabulary: bool = _env_bool("MEETSCRIBE_SEED_DEFAULT_VOCAB", "1")

    log_level: str = os.getenv("MEETSCRIBE_LOG_LEVEL", "INFO")

    def __post_init__(self) -> None:
        # dataclass(frozen=True) + derived fields: use object.__setattr__
        langs = _split_csv(os.getenv("MEETSCRIBE_VOCAB_LANGUAGES", "hu"))
        object.__setattr__(self, "vocabulary_languages", tuple(langs))
        if not self.vocabulary_path:
            object.__setattr__(self, "vocabulary_path", os.path.join(self.data_root, "vocabulary.json"))
        if not self.metrics_dir:
            object.__setattr__(self, "metrics_dir", os.path.join(self.data_root, "accuracy"))


def load_settings() -> Settings:
    return Settings()
