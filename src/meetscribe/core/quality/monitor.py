from __future__ import annotations

import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from meetscribe.core.quality import metrics as qm
from meetscribe.core.quality.report import ReportThresholds, build_report
from meetscribe.core.quality.store import AccuracyStore
from meetscribe.core.refine.vocabulary import term_pattern
from meetscribe.core.vocabulary.store import CONFIDENCE_CAP, CONFIDENCE_FLOOR, VocabularyStore
from meetscribe.core_types import (
    AccuracyMetrics,
    AccuracyReport,
    CorrectionRecord,
    CorrectionSpan,
    ErrorPattern,
    ErrorRates,
    RealtimeFeedback,
    VocabularyTerm,
    as_utc,
    utc_now,
)
from meetscribe.errors import PersistenceFailure
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.accuracy")

REALTIME_CONFIDENCE_THRESHOLD = 0.7
MIN_PATTERN_FREQUENCY = 2
NEW_TERM_MIN_LENGTH = 3

_WORD_RE = re.compile(r"[^\W\d_][\w-]*", re.UNICODE)


@dataclass
class CorrectionOutcome:
    rates: ErrorRates
    confirmed: List[str] = field(default_factory=list)
    penalized: List[str] = field(default_factory=list)
    learned: List[str] = field(default_factory=list)
    patterns: int = 0
    warnings: List[str] = field(default_factory=list)


def _contains(text: str, term: VocabularyTerm) -> bool:
    return any(term_pattern(f).search(text or "") for f in term.forms())


def find_repeated_patterns(
    organization_id: str,
    spans: Sequence[CorrectionSpan],
    *,
    min_frequency: int = MIN_PATTERN_FREQUENCY,
) -> List[ErrorPattern]:
    """(original -> corrected) pairs seen at least `min_frequency` times, per span type."""
    by_type: Dict[str, Counter] = defaultdict(Counter)
    for s in spans:
        if s.original and s.original != s.corrected:
            by_type[s.type][(s.original, s.corrected)] += 1

    now = utc_now()
    out: List[ErrorPattern] = []
    for span_type, counts in by_type.items():
        for (original, corrected), n in counts.most_common():
            if n < min_frequency:
                continue
            out.append(
                ErrorPattern(
                    organization_id=organization_id,
                    pattern=original,
                    replacement=corrected,
                    type=span_type,  # type: ignore[arg-type]
                    frequency=n,
                    last_seen=now,
                )
            )
    return out


class AccuracyMonitor:
    """
    Scores transcripts against user corrections and feeds what it learns back
    into the vocabulary:

      - a known term the user had to remove from the transcript loses confidence
      - a known term the user had to add gains confidence and usage
      - repeated (original -> corrected) pairs become reusable error patterns

    Store errors are logged and reported in the outcome, never raised.
    """

    def __init__(
        self,
        store: AccuracyStore,
        vocabulary: VocabularyStore,
        *,
        confirm_step: float = 0.02,
        penalty_step: float = 0.05,
        floor: float = CONFIDENCE_FLOOR,
        cap: float = CONFIDENCE_CAP,
        learn_new_terms: bool = True,
        realtime_threshold: float = REALTIME_CONFIDENCE_THRESHOLD,
        thresholds: ReportThresholds = ReportThresholds(),
    ) -> None:
        if not 0.0 < confirm_step <= 0.1:
            raise ValueError("confirm_step must be in (0, 0.1]")
        self.store = store
        self.vocabulary = vocabulary
        self.confirm_step = confirm_step
        self.penalty_step = penalty_step
        self.floor = floor
        self.cap = cap
        self.learn_new_terms = learn_new_terms
        self.realtime_threshold = realtime_threshold
        self.thresholds = thresholds

    # -------------------------
    # Scoring
    # -------------------------

    def score(self, original: str, corrected: str) -> ErrorRates:
        return qm.score(original, corrected)

    # -------------------------
    # Metrics sink
    # -------------------------

    def track(self, metrics: AccuracyMetrics) -> bool:
        try:
            self.store.append_metrics(metrics)
        except PersistenceFailure as e:
            logger.warning(f"Accuracy metrics not stored (transcription={metrics.transcription_id}): {e}")
            return False
        return True

    # -------------------------
    # Corrections
    # -------------------------

    def record_correction(self, record: CorrectionRecord) -> CorrectionOutcome:
        outcome = CorrectionOutcome(rates=self.score(record.original, record.corrected))
        spans = list(record.spans) or [
            CorrectionSpan(
                start=0,
                end=len(record.original),
                original=record.original,
                corrected=record.corrected,
                type="user",
            )
        ]

        self._persist(outcome, "archive correction", lambda: self.store.archive_correction(record))
        self._learn_vocabulary(record.organization_id, spans, outcome)

        patterns = find_repeated_patterns(record.organization_id, spans)
        if patterns:
            self._persist(outcome, "store error patterns", lambda: self.store.upsert_patterns(patterns))
            outcome.patterns = len(patterns)

        logger.info(
            f"Correction recorded transcription={record.transcription_id} "
            f"wer={outcome.rates.wer:.3f} confirmed={len(outcome.confirmed)} "
            f"penalized={len(outcome.penalized)} learned={len(outcome.learned)} patterns={outcome.patterns}"
        )
        return outcome

    def _persist(self, outcome: CorrectionOutcome, what: str, fn) -> bool:
        try:
            fn()
        except PersistenceFailure as e:
            logger.warning(f"Could not {what}: {e}")
            outcome.warnings.append(e.as_warning())
            return False
        return True

    def _learn_vocabulary(self, organization_id: str, spans: Sequence[CorrectionSpan], outcome: CorrectionOutcome) -> None:
        terms = self.vocabulary.list_terms(organization_id)
        for span in spans:
            for term in terms:
                in_original = _contains(span.original, term)
                in_corrected = _contains(span.corrected, term)

                if in_original and not in_corrected:
                    if self._persist(
                        outcome,
                        f"lower confidence of '{term.term}'",
                        lambda t=term: self.vocabulary.adjust(
                            t.id, confidence_delta=-self.penalty_step, floor=self.floor, cap=self.cap
                        ),
                    ):
                        outcome.penalized.append(term.term)
                elif in_corrected and not in_original:
                    if self._persist(
                        outcome,
                        f"raise confidence of '{term.term}'",
                        lambda t=term: self.vocabulary.adjust(
                            t.id,
                            confidence_delta=self.confirm_step,
                            usage_delta=1,
                            floor=self.floor,
                            cap=self.cap,
                        ),
                    ):
                        outcome.confirmed.append(term.term)

            if self.learn_new_terms and span.type == "vocabulary":
                self._learn_new_terms(organization_id, span, terms, outcome)

    def _learn_new_terms(
        self,
        organization_id: str,
        span: CorrectionSpan,
        known: Sequence[VocabularyTerm],
        outcome: CorrectionOutcome,
    ) -> None:
        """Words a user typed into a vocabulary fix that no term covers yet."""
        known_forms = {f.lower() for t in known for f in t.forms()}
        for word in _WORD_RE.findall(span.corrected):
            w = word.lower()
            if len(w) < NEW_TERM_MIN_LENGTH or w in known_forms or w in outcome.learned:
                continue
            term = VocabularyTerm(organization_id=organization_id, term=w, category="general", confidence_score=0.5)
            if self._persist(outcome, f"add term '{w}'", lambda t=term: self.vocabulary.add_term(t)):
                outcome.learned.append(w)

    # -------------------------
    # Live hints
    # -------------------------

    def monitor_realtime(
        self,
        segment_text: str,
        confidence: Optional[float] = None,
        *,
        organization_id: Optional[str] = None,
    ) -> RealtimeFeedback:
        fb = RealtimeFeedback()
        if confidence is not None and confidence < self.realtime_threshold:
            fb.confidence_warning = True
            fb.should_enhance = True

        for p in self.store.list_patterns(organization_id):
            if p.pattern and p.pattern in (segment_text or ""):
                fb.suggestions.append(f'Consider replacing "{p.pattern}" with "{p.replacement}"')
        return fb

    # -------------------------
    # Reports
    # -------------------------

    def report(self, organization_id: str, start: datetime, end: datetime) -> AccuracyReport:
        start, end = as_utc(start), as_utc(end)
        return build_report(
            organization_id,
            start,
            end,
            metrics=self.store.list_metrics(organization_id, start, end),
            corrections=self.store.list_corrections(organization_id, start, end),
            terms=self.vocabulary.list_terms(organization_id),
            thresholds=self.thresholds,
        )
