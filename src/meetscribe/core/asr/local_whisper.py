from __future__ import annotations

import tempfile
from pathlib import Path
from typing import List, Optional

from meetscribe.core.asr.base import SpeechToTextEngine
from meetscribe.core_types import EngineSegment, EngineTranscription
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.asr")

_CPU_SAFE_COMPUTE_TYPES = {"int8", "int8_float32", "float32", "int16"}
_COMPUTE_ALIASES = {"fp16": "float16", "fp32": "float32", "half": "float16"}


def _cuda_available() -> bool:
    try:
        import torch  # optional
    except ImportError:
        return False
    return bool(torch.cuda.is_available())


def _normalize_device(device: str) -> str:
    d = (device or "auto").strip().lower()
    if d == "auto":
        return "cuda" if _cuda_available() else "cpu"
    if d == "cuda" and not _cuda_available():
        logger.warning("CUDA requested but unavailable; falling back to cpu.")
        return "cpu"
    return d


def _normalize_compute_type(device: str, compute_type: Optional[str]) -> str:
    if compute_type is None:
        return "float16" if device == "cuda" else "int8"
    ct = compute_type.strip().lower()
    ct = _COMPUTE_ALIASES.get(ct, ct)
    if device == "cpu" and ct not in _CPU_SAFE_COMPUTE_TYPES:
        logger.warning(f"compute_type={ct} is not supported on cpu; using int8.")
        return "int8"
    return ct


class LocalWhisperEngine(SpeechToTextEngine):
    """
    faster-whisper on the local machine. Same contract as the hosted engine,
    so it can stand in for offline runs.
    """

    name = "local"

    def __init__(
        self,
        model_name: str = "large-v3",
        device: str = "auto",
        compute_type: Optional[str] = None,
        beam_size: int = 5,
        vad_filter: bool = False,
    ):
        self.model_name = model_name
        self.device = _normalize_device(device)
        self.compute_type = _normalize_compute_type(self.device, compute_type)
        self.beam_size = beam_size
        self.vad_filter = vad_filter

        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise ImportError("faster-whisper is not installed. Run: pip install 'meetscribe[local]'") from e

        logger.info(f"Loading faster-whisper model={self.model_name}, device={self.device}, compute_type={self.compute_type}")
        self.model = WhisperModel(self.model_name, device=self.device, compute_type=self.compute_type)

    def transcribe(
        self,
        audio: bytes,
        *,
        language: Optional[str] = None,
        temperature: float = 0.0,
        prompt: Optional[str] = None,
        filename: str = "audio.mp3",
        response_format: str = "verbose_json",
    ) -> EngineTranscription:
        suffix = Path(filename).suffix or ".wav"
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp.write(audio)
            tmp_path = Path(tmp.name)

        try:
            segments_iter, info = self.model.transcribe(
                str(tmp_path),
                language=None if language in (None, "auto") else language,
                beam_size=self.beam_size,
                vad_filter=self.vad_filter,
                temperature=temperature,
                initial_prompt=prompt or None,
                condition_on_previous_text=True,
            )
            fw_segments = list(segments_iter)
        finally:
            tmp_path.unlink(missing_ok=True)

        segments: List[EngineSegment] = []
        for s in fw_segments:
            text = (getattr(s, "text", "") or "").strip()
            if not text:
                continue
            segments.append(
                EngineSegment(
                    start=float(getattr(s, "start", 0.0)),
                    end=float(getattr(s, "end", 0.0)),
                    text=text,
                    no_speech_prob=getattr(s, "no_speech_prob", None),
                )
            )

        return EngineTranscription(
            text=" ".join(s.text for s in segments).strip(),
            segments=segments,
            language=getattr(info, "language", None) or language,
        )
