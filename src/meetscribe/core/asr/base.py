from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from meetscribe.core_types import EngineTranscription


class SpeechToTextEngine(ABC):
    """
    Black-box speech-to-text. Implementations must not leak vendor error
    types; any failure is just an exception for the executor to retry.
    """

    name: str = "stt"

    @abstractmethod
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
        ...
