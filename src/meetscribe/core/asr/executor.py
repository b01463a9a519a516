from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence

from tenacity import RetryCallState, Retrying, stop_after_attempt, wait_exponential

from meetscribe.core.asr.base import SpeechToTextEngine
from meetscribe.core.refine.vocabulary import PROMPT_TERM_LIMIT
from meetscribe.core_types import EngineTranscription, PassResult, Segment, clamp01
from meetscribe.errors import PassFailure
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.asr")

_DOMAIN_SENTENCES = {
    "hu": "Hungarian business meeting transcription with technical terminology.",
    "en": "English business meeting transcription with technical terminology.",
}
_DEFAULT_DOMAIN_SENTENCE = "Business meeting transcription with technical terminology."


def build_prompt(
    *,
    prompt_terms: Sequence[str] = (),
    custom_vocabulary: Sequence[str] = (),
    context_hints: Sequence[str] = (),
    language: str = "hu",
) -> str:
    """
    Vocabulary-aware STT prompt:
      Context: <hints>. Key terms: <learned terms>. Additional terms: <custom>. <domain sentence>
    `prompt_terms` should already be ranked and filtered (see VocabularyEnhancer.top_prompt_terms).
    """
    parts: List[str] = []
    hints = [h.strip() for h in context_hints if h and h.strip()]
    if hints:
        parts.append(f"Context: {', '.join(hints)}.")

    terms = [t.strip() for t in prompt_terms if t and t.strip()][:PROMPT_TERM_LIMIT]
    if terms:
        parts.append(f"Key terms: {', '.join(terms)}.")

    custom = [t.strip() for t in custom_vocabulary if t and t.strip()]
    if custom:
        parts.append(f"Additional terms: {', '.join(custom)}.")

    parts.append(_DOMAIN_SENTENCES.get(language, _DEFAULT_DOMAIN_SENTENCE))
    return " ".join(parts)


def pass_confidence(transcription: EngineTranscription) -> float:
    """
    Heuristic confidence for one pass, in [0, 1]:
      base 0.5
      +0.1 text longer than 100 chars
      +0.1 more than 5 segments
      +0.2 mean no-speech probability < 0.5 (only when the engine reports it)
      +0.1 mean gap between consecutive segments < 1.0s
    """
    confidence = 0.5
    segs = transcription.segments

    if len(transcription.text or "") > 100:
        confidence += 0.1
    if len(segs) > 5:
        confidence += 0.1

    probs = [s.no_speech_prob for s in segs if s.no_speech_prob is not None]
    if probs and sum(probs) / len(probs) < 0.5:
        confidence += 0.2

    if len(segs) > 1:
        gaps = [segs[i].start - segs[i - 1].end for i in range(1, len(segs))]
        if sum(gaps) / len(gaps) < 1.0:
            confidence += 0.1

    return clamp01(confidence)


def shift_segments(transcription: EngineTranscription, offset: float) -> List[Segment]:
    out: List[Segment] = []
    for idx, s in enumerate(transcription.segments):
        conf = None if s.no_speech_prob is None else clamp01(1.0 - float(s.no_speech_prob))
        out.append(
            Segment(
                id=idx,
                start=float(s.start) + offset,
                end=float(s.end) + offset,
                text=(s.text or "").strip(),
                confidence=conf,
            )
        )
    return out


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for one STT call: initial_delay * multiplier**n, capped at max_delay."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def stop(self) -> stop_after_attempt:
        return stop_after_attempt(max(1, self.max_attempts))

    def wait(self) -> wait_exponential:
        return wait_exponential(multiplier=self.initial_delay, exp_base=self.multiplier, max=self.max_delay)

    def delays(self) -> Iterator[float]:
        """Sleep before attempt 2, 3, ... as scheduled by wait()."""
        delay = self.initial_delay
        for _ in range(max(0, self.max_attempts - 1)):
            yield min(delay, self.max_delay)
            delay *= self.multiplier

    def backoff_budget(self) -> float:
        return sum(self.delays())

    def task_budget(self, call_timeout: float) -> float:
        """Worst case for one pass: every attempt times out, plus every backoff sleep."""
        return call_timeout * max(1, self.max_attempts) + self.backoff_budget()


@dataclass(frozen=True)
class PassRequest:
    language: str = "hu"
    temperature: float = 0.0
    prompt: Optional[str] = None
    offset: float = 0.0
    chunk_id: Optional[int] = None
    filename: str = "audio.mp3"


class PassExecutor:
    """
    One transcription pass = one engine call (+ retries) over one audio span.

    Used for multi-pass (same audio, different temperatures) and for chunked
    parallel runs (different slices, offset by their start time).
    """

    def __init__(
        self,
        engine: SpeechToTextEngine,
        *,
        retry: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.retry = retry
        self._sleep = sleep

    def execute(self, audio: bytes, request: PassRequest) -> PassResult:
        transcription = self._call_with_retry(audio, request)
        segments = shift_segments(transcription, request.offset)
        return PassResult(
            text=(transcription.text or "").strip(),
            segments=segments,
            confidence=pass_confidence(transcription),
            temperature=request.temperature,
            chunk_id=request.chunk_id,
            language=transcription.language or request.language,
        )

    def _call_with_retry(self, audio: bytes, request: PassRequest) -> EngineTranscription:
        label = f"chunk={request.chunk_id}" if request.chunk_id is not None else f"temp={request.temperature}"
        attempts = 0

        def _log_retry(state: RetryCallState) -> None:
            err = state.outcome.exception() if state.outcome is not None else None
            delay = state.next_action.sleep if state.next_action is not None else 0.0
            logger.warning(f"STT call failed ({label}, attempt {state.attempt_number}): {err}; retrying in {delay:.1f}s")

        def _transcribe() -> EngineTranscription:
            nonlocal attempts
            attempts += 1
            return self.engine.transcribe(
                audio,
                language=request.language,
                temperature=request.temperature,
                prompt=request.prompt,
                filename=request.filename,
                response_format="verbose_json",
            )

        retrying = Retrying(
            stop=self.retry.stop(),
            wait=self.retry.wait(),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            return retrying(_transcribe)
        except Exception as e:
            raise PassFailure(
                f"transcription pass failed after {attempts} attempt(s): {e}",
                details={"chunk_id": request.chunk_id, "temperature": request.temperature},
            ) from e
