from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from openai import OpenAI

from meetscribe.core.asr.base import SpeechToTextEngine
from meetscribe.core_types import EngineSegment, EngineTranscription
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.asr")


def _segments_from_response(resp: Any) -> List[EngineSegment]:
    out: List[EngineSegment] = []
    for seg in getattr(resp, "segments", None) or []:
        text = (getattr(seg, "text", "") or "").strip()
        out.append(
            EngineSegment(
                start=float(getattr(seg, "start", 0.0)),
                end=float(getattr(seg, "end", 0.0)),
                text=text,
                no_speech_prob=getattr(seg, "no_speech_prob", None),
            )
        )
    return out


class OpenAIWhisperEngine(SpeechToTextEngine):
    name = "openai"

    def __init__(
        self,
        model: str = "whisper-1",
        *,
        timeout: float = 120.0,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        # max_retries=0: the pass executor owns the retry budget.
        self.client = client or OpenAI(api_key=os.getenv("OPENAI_API_KEY"), timeout=timeout, max_retries=0)

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
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "file": (filename, audio),
            "response_format": response_format,
            "temperature": temperature,
        }
        if language and language != "auto":
            kwargs["language"] = language
        if prompt:
            kwargs["prompt"] = prompt

        logger.debug(f"whisper request model={self.model} lang={language} temp={temperature} bytes={len(audio)}")
        resp = self.client.audio.transcriptions.create(**kwargs)

        if isinstance(resp, str):
            return EngineTranscription(text=resp.strip(), segments=[], language=language)

        return EngineTranscription(
            text=(getattr(resp, "text", "") or "").strip(),
            segments=_segments_from_response(resp),
            language=getattr(resp, "language", None) or language,
        )
