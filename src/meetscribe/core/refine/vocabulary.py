from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional, Pattern, Sequence

from meetscribe.core.cache import TTLCache
from meetscribe.core.vocabulary.store import VocabularyStore
from meetscribe.core_types import Segment, VocabularyTerm
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.vocabulary")

DEEPGRAM_BOOST = 15
PROMPT_TERM_LIMIT = 50
PROMPT_TERM_MIN_CONFIDENCE = 0.7


def rank_score(term: VocabularyTerm) -> float:
    return term.confidence_score * math.log(term.usage_count + 1)


def rank_terms(terms: Sequence[VocabularyTerm]) -> List[VocabularyTerm]:
    """
    Best-established terms first: confidence * log(usage + 1), then
    confidence, then longer terms (so a phrase wins over a word inside it),
    then alphabetical.
    """
    return sorted(
        terms,
        key=lambda t: (-rank_score(t), -t.confidence_score, -len(t.term), t.term),
    )


def term_pattern(word: str) -> Pattern[str]:
    # \w is Unicode-aware, so accented letters count as word characters.
    return re.compile(rf"(?<!\w){re.escape(word)}(?!\w)", re.IGNORECASE)


def preserve_case(original: str, replacement: str) -> str:
    if not replacement:
        return replacement
    if original == original.upper():
        return replacement.upper()
    if original[:1] == original[:1].upper():
        return replacement[:1].upper() + replacement[1:].lower()
    return replacement.lower()


def has_context(text: str, start: int, end: int, hints: Sequence[str], window: int) -> bool:
    lo = max(0, start - window)
    hi = min(len(text), end + window)
    around = text[lo:hi].lower()
    return any(h.lower() in around for h in hints if h)


class VocabularyEnhancer:
    """
    Organization vocabulary applied to transcripts.

    Terms are read through a TTL cache keyed by organization id; writes made
    by the accuracy monitor show up once the entry expires.
    """

    def __init__(
        self,
        store: VocabularyStore,
        *,
        cache: Optional[TTLCache[str, List[VocabularyTerm]]] = None,
        ttl_seconds: float = 300.0,
        languages: Sequence[str] = ("hu",),
        context_window: int = 50,
    ) -> None:
        self.store = store
        self.cache: TTLCache[str, List[VocabularyTerm]] = cache if cache is not None else TTLCache(ttl_seconds)
        self.languages = tuple(languages)
        self.context_window = context_window

    # -------------------------
    # Terms
    # -------------------------

    def terms(self, organization_id: str) -> List[VocabularyTerm]:
        return self.cache.get_or_load(organization_id, lambda org: rank_terms(self.store.list_terms(org)))

    def invalidate(self, organization_id: str) -> None:
        self.cache.invalidate(organization_id)

    def applies_to(self, language: Optional[str]) -> bool:
        return (language or "").lower() in self.languages

    # -------------------------
    # Substitution
    # -------------------------

    def _replace(self, text: str, pattern: Pattern[str], replacement: str, hints: Sequence[str]) -> str:
        def _sub(m: re.Match) -> str:
            if hints and not has_context(m.string, m.start(), m.end(), hints, self.context_window):
                return m.group(0)
            return preserve_case(m.group(0), replacement)

        return pattern.sub(_sub, text)

    def apply_terms(self, text: str, terms: Sequence[VocabularyTerm]) -> str:
        out = text
        for term in terms:
            for form in term.forms():
                out = self._replace(out, term_pattern(form), term.term, term.context_hints)
        return out

    def enhance(self, text: str, organization_id: str, language: str = "hu") -> str:
        if not text or not self.applies_to(language):
            return text
        terms = self.terms(organization_id)
        if not terms:
            return text
        out = self.apply_terms(text, terms)
        if out != text:
            logger.debug(f"Vocabulary rewrite applied (org={organization_id}, terms={len(terms)})")
        return out

    def enhance_segments(self, segments: Sequence[Segment], organization_id: str, language: str = "hu") -> List[Segment]:
        if not self.applies_to(language):
            return list(segments)
        terms = self.terms(organization_id)
        if not terms:
            return list(segments)
        return [s.model_copy(update={"text": self.apply_terms(s.text, terms)}) for s in segments]

    # -------------------------
    # Matching / prompt feedback
    # -------------------------

    def count_matches(self, text: str, organization_id: str) -> int:
        if not text:
            return 0
        n = 0
        for term in self.terms(organization_id):
            for form in term.forms():
                n += len(term_pattern(form).findall(text))
        return n

    def top_prompt_terms(
        self,
        organization_id: str,
        *,
        limit: int = PROMPT_TERM_LIMIT,
        min_confidence: float = PROMPT_TERM_MIN_CONFIDENCE,
    ) -> List[str]:
        terms = [t for t in self.terms(organization_id) if t.confidence_score > min_confidence]
        return [t.term for t in terms[:limit]]

    def build_prompt_vocabulary(self, organization_id: str, format: str = "deepgram") -> Optional[Any]:
        """
        Engine-specific keyword list built from the learned vocabulary.

        deepgram -> {"keywords": [{"keyword": ..., "boost": 15}, ...]}
        whisper  -> [{"term": ..., "variations": [...], "phonetic": ...}, ...]
        anything else -> None
        """
        terms = self.terms(organization_id)
        if format == "deepgram":
            keywords: List[Dict[str, Any]] = []
            for t in terms:
                keywords += [{"keyword": f, "boost": DEEPGRAM_BOOST} for f in t.forms()]
            return {"keywords": keywords}
        if format == "whisper":
            return [{"term": t.term, "variations": list(t.variations), "phonetic": t.phonetic_hint} for t in terms]
        return None
