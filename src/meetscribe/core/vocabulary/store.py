from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from meetscribe.core_types import VocabularyCategory, VocabularyTerm, clamp01, utc_now
from meetscribe.errors import PersistenceFailure
from meetscribe.utils.io import atomic_write_json, read_json
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.vocabulary")

CONFIDENCE_FLOOR = 0.1
CONFIDENCE_CAP = 1.0


def _lower_all(items: List[str]) -> List[str]:
    out: List[str] = []
    for v in items:
        v = (v or "").strip().lower()
        if v and v not in out:
            out.append(v)
    return out


def normalize_term(term: VocabularyTerm) -> VocabularyTerm:
    """Terms and variations are stored lowercase; duplicates and blanks dropped."""
    return term.model_copy(
        update={
            "term": term.term.strip().lower(),
            "variations": _lower_all(term.variations),
            "context_hints": [h.strip() for h in term.context_hints if h and h.strip()],
        }
    )


def adjusted_confidence(current: float, delta: float, *, floor: float, cap: float) -> float:
    """
    Decreases never go below `floor`, increases never go above `cap`.
    A value already outside the band is not pushed further by the step.
    """
    if delta < 0:
        new = min(current, max(floor, current + delta))
    elif delta > 0:
        new = max(current, min(cap, current + delta))
    else:
        new = current
    return clamp01(new)


class VocabularyStore(ABC):
    """
    Per-organization term registry.

    Mutations are atomic per term: concurrent `adjust` calls on the same term
    never lose an update.
    """

    @abstractmethod
    def list_terms(
        self,
        organization_id: str,
        *,
        category: Optional[VocabularyCategory] = None,
        include_inactive: bool = False,
    ) -> List[VocabularyTerm]:
        """Terms of one organization, most used first."""

    @abstractmethod
    def get_term(self, term_id: str) -> Optional[VocabularyTerm]: ...

    @abstractmethod
    def add_term(self, term: VocabularyTerm) -> VocabularyTerm:
        """Insert, or merge into the existing (organization, term) entry."""

    @abstractmethod
    def update_term(self, term_id: str, **changes: Any) -> VocabularyTerm: ...

    @abstractmethod
    def delete_term(self, term_id: str) -> None:
        """Soft delete (is_active=False)."""

    @abstractmethod
    def adjust(
        self,
        term_id: str,
        *,
        confidence_delta: float = 0.0,
        usage_delta: int = 0,
        floor: float = CONFIDENCE_FLOOR,
        cap: float = CONFIDENCE_CAP,
    ) -> VocabularyTerm: ...


class InMemoryVocabularyStore(VocabularyStore):
    def __init__(self, terms: Optional[List[VocabularyTerm]] = None) -> None:
        self._lock = threading.RLock()
        self._terms: Dict[str, VocabularyTerm] = {}
        for t in terms or []:
            t = normalize_term(t)
            self._terms[t.id] = t

    # -------------------------
    # Persistence hook
    # -------------------------

    def _commit(self) -> None:
        """Called under the lock after every mutation."""

    def _apply(self, term: VocabularyTerm, previous: Optional[VocabularyTerm]) -> VocabularyTerm:
        self._terms[term.id] = term
        try:
            self._commit()
        except PersistenceFailure:
            if previous is None:
                self._terms.pop(term.id, None)
            else:
                self._terms[term.id] = previous
            raise
        return term

    # -------------------------
    # Read
    # -------------------------

    def list_terms(
        self,
        organization_id: str,
        *,
        category: Optional[VocabularyCategory] = None,
        include_inactive: bool = False,
    ) -> List[VocabularyTerm]:
        with self._lock:
            terms = [
                t
                for t in self._terms.values()
                if t.organization_id == organization_id
                and (include_inactive or t.is_active)
                and (category is None or t.category == category)
            ]
        return sorted(terms, key=lambda t: (-t.usage_count, t.term))

    def get_term(self, term_id: str) -> Optional[VocabularyTerm]:
        with self._lock:
            return self._terms.get(term_id)

    def find(self, organization_id: str, term: str) -> Optional[VocabularyTerm]:
        key = term.strip().lower()
        with self._lock:
            for t in self._terms.values():
                if t.organization_id == organization_id and t.term == key:
                    return t
        return None

    # -------------------------
    # Write
    # -------------------------

    def add_term(self, term: VocabularyTerm) -> VocabularyTerm:
        term = normalize_term(term)
        if not term.term:
            raise ValueError("term must not be empty")
        with self._lock:
            existing = self.find(term.organization_id, term.term)
            if existing is None:
                return self._apply(term, None)
            merged = existing.model_copy(
                update={
                    "variations": _lower_all(existing.variations + term.variations),
                    "context_hints": existing.context_hints
                    + [h for h in term.context_hints if h not in existing.context_hints],
                    "category": term.category,
                    "phonetic_hint": term.phonetic_hint or existing.phonetic_hint,
                    "is_active": True,
                    "updated_at": utc_now(),
                }
            )
            return self._apply(merged, existing)

    def update_term(self, term_id: str, **changes: Any) -> VocabularyTerm:
        with self._lock:
            current = self._terms.get(term_id)
            if current is None:
                raise KeyError(term_id)
            updated = VocabularyTerm.model_validate(
                {**current.model_dump(), **changes, "id": current.id, "updated_at": utc_now()}
            )
            return self._apply(normalize_term(updated), current)

    def delete_term(self, term_id: str) -> None:
        self.update_term(term_id, is_active=False)

    def adjust(
        self,
        term_id: str,
        *,
        confidence_delta: float = 0.0,
        usage_delta: int = 0,
        floor: float = CONFIDENCE_FLOOR,
        cap: float = CONFIDENCE_CAP,
    ) -> VocabularyTerm:
        if usage_delta < 0:
            raise ValueError("usage_count only grows; use update_term for an admin reset")
        with self._lock:
            current = self._terms.get(term_id)
            if current is None:
                raise KeyError(term_id)
            updated = current.model_copy(
                update={
                    "confidence_score": adjusted_confidence(
                        current.confidence_score, confidence_delta, floor=floor, cap=cap
                    ),
                    "usage_count": current.usage_count + usage_delta,
                    "updated_at": utc_now(),
                }
            )
            return self._apply(updated, current)


class JsonVocabularyStore(InMemoryVocabularyStore):
    """
    Whole registry kept in one JSON document, rewritten atomically after
    every mutation. Good for a single worker host.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        terms: List[VocabularyTerm] = []
        if self.path.exists():
            data = read_json(self.path)
            terms = [VocabularyTerm.model_validate(d) for d in data.get("terms", [])]
            logger.info(f"Loaded {len(terms)} vocabulary term(s) from {self.path}")
        super().__init__(terms)

    def _commit(self) -> None:
        payload = {"terms": [t.model_dump(mode="json") for t in self._terms.values()]}
        try:
            atomic_write_json(self.path, payload)
        except OSError as e:
            raise PersistenceFailure(f"cannot write vocabulary store: {e}", details={"path": str(self.path)}) from e
