from __future__ import annotations

import json
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union

from openai import OpenAI
from pydantic import BaseModel, Field, ValidationError

from meetscribe.core_types import Segment, VocabularyTerm
from meetscribe.errors import EnhancementFailure
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.refine")

PROMPT_VOCABULARY_LIMIT = 100

_LANGUAGE_NAMES = {"hu": "Hungarian", "en": "English", "de": "German"}

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

USER_INSTRUCTION = (
    'Please process this transcription and return the result in JSON format with fields "corrected_text" '
    'and "corrections" (array of {original, corrected, reason}):'
)


class LLMCorrection(BaseModel):
    original: str
    corrected: str
    reason: str = ""


class LLMPayload(BaseModel):
    corrected_text: str = Field(min_length=1)
    corrections: List[LLMCorrection] = Field(default_factory=list)


@dataclass(frozen=True)
class EnhancementOk:
    corrected_text: str
    corrections: List[LLMCorrection] = field(default_factory=list)


@dataclass(frozen=True)
class EnhancementParseError:
    reason: str
    raw: str = ""


LLMOutcome = Union[EnhancementOk, EnhancementParseError]


def build_system_context(
    *,
    language: str,
    terms: Sequence[VocabularyTerm] = (),
    context_hints: Sequence[str] = (),
) -> str:
    lang = _LANGUAGE_NAMES.get(language, language)
    vocab_lines = []
    for t in list(terms)[:PROMPT_VOCABULARY_LIMIT]:
        line = t.term
        if t.variations:
            line += f" (variations: {', '.join(t.variations)})"
        vocab_lines.append(line)
    context = ", ".join(h for h in context_hints if h) or "General business meeting"

    return f"""
You are an expert transcription post-processor specializing in {lang} business language. Your task is to:
1. Correct any transcription errors while preserving the original meaning
2. Fix grammar and punctuation
3. Ensure proper capitalization of names, companies, and technical terms
4. Maintain coherence and natural flow
5. Use the provided vocabulary when appropriate

Important vocabulary terms:
{chr(10).join(vocab_lines)}

Context: {context}

Return the corrected text and a list of corrections made.
""".strip()


def parse_enhancement(raw: Optional[str]) -> LLMOutcome:
    """
    Validate the model's JSON answer. Code fences around the JSON are tolerated;
    anything else malformed becomes EnhancementParseError.
    """
    txt = (raw or "").strip()
    if not txt:
        return EnhancementParseError(reason="empty response", raw="")

    m = _FENCE_RE.match(txt)
    if m:
        txt = m.group(1)

    try:
        data = json.loads(txt)
    except json.JSONDecodeError as e:
        return EnhancementParseError(reason=f"invalid json: {e}", raw=raw or "")

    try:
        payload = LLMPayload.model_validate(data)
    except ValidationError as e:
        return EnhancementParseError(reason=f"unexpected shape: {e.error_count()} error(s)", raw=raw or "")

    return EnhancementOk(corrected_text=payload.corrected_text.strip(), corrections=payload.corrections)


def apply_corrections_to_segments(segments: Sequence[Segment], corrections: Sequence[LLMCorrection]) -> List[Segment]:
    """Each correction replaces its first occurrence inside every segment that contains it."""
    out = list(segments)
    for c in corrections:
        if not c.original:
            continue
        out = [
            s.model_copy(update={"text": s.text.replace(c.original, c.corrected, 1)}) if c.original in s.text else s
            for s in out
        ]
    return out


class TextEnhancementEngine(ABC):
    @abstractmethod
    def enhance(self, text: str, system_context: str) -> LLMOutcome:
        """Raise EnhancementFailure when the engine cannot be reached."""


class OpenAITextEnhancer(TextEnhancementEngine):
    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        timeout: float = 30.0,
        client: Optional[Any] = None,
    ) -> None:
        self.model = model
        self.client = client or OpenAI(api_key=os.getenv("OPENAI_API_KEY"), timeout=timeout, max_retries=0)

    def enhance(self, text: str, system_context: str) -> LLMOutcome:
        try:
            resp = self.client.responses.create(
                model=self.model,
                temperature=0,
                input=[
                    {"role": "system", "content": system_context},
                    {"role": "user", "content": f"{USER_INSTRUCTION}\n\n{text}"},
                ],
            )
        except Exception as e:
            raise EnhancementFailure(f"text enhancement call failed: {e}", details={"model": self.model}) from e

        outcome = parse_enhancement(getattr(resp, "output_text", None))
        if isinstance(outcome, EnhancementParseError):
            logger.warning(f"LLM enhancement output rejected: {outcome.reason}")
        else:
            logger.info(f"LLM enhancement made {len(outcome.corrections)} correction(s)")
        return outcome
