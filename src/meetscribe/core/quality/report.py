from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence

from meetscribe.core.refine.vocabulary import term_pattern
from meetscribe.core_types import (
    AccuracyMetrics,
    AccuracyReport,
    CommonError,
    CorrectionRecord,
    VocabularyPerformance,
    VocabularyTerm,
)


@dataclass(frozen=True)
class ReportThresholds:
    """
    Where the report starts recommending changes.
    """

    poor_quality_rate: float = 0.2
    high_wer: float = 0.15
    low_confidence: float = 0.7
    well_recognized: float = 0.8
    poorly_recognized: float = 0.5
    max_poor_terms: int = 5
    suggestion_min_frequency: int = 3
    suggestion_min_length: int = 4
    common_error_limit: int = 20
    list_limit: int = 10


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def common_errors(corrections: Sequence[CorrectionRecord], limit: int = 20) -> List[CommonError]:
    counts: Counter = Counter()
    first_fix: Dict[str, str] = {}
    for rec in corrections:
        for span in rec.spans:
            key = span.original.lower()
            counts[key] += 1
            first_fix.setdefault(key, span.corrected)
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])[:limit]
    return [CommonError(original=k, corrected=first_fix[k], frequency=n) for k, n in ranked]


def vocabulary_suggestions(corrections: Sequence[CorrectionRecord], th: ReportThresholds) -> List[str]:
    """Words users keep writing into vocabulary/context fixes."""
    freq: Counter = Counter()
    for rec in corrections:
        for span in rec.spans:
            if span.type not in ("vocabulary", "context"):
                continue
            for w in span.corrected.lower().split():
                if len(w) >= th.suggestion_min_length:
                    freq[w] += 1
    ranked = sorted(freq.items(), key=lambda kv: -kv[1])
    return [w for w, n in ranked if n >= th.suggestion_min_frequency]


def vocabulary_performance(
    terms: Sequence[VocabularyTerm],
    corrections: Sequence[CorrectionRecord],
    th: ReportThresholds = ReportThresholds(),
) -> VocabularyPerformance:
    """
    Per term form: showing up in a span's original counts as a miss (the
    user had to fix it), showing up only in the corrected side counts as a
    recognition.
    """
    recognized: Counter = Counter()
    missed: Counter = Counter()
    for rec in corrections:
        for span in rec.spans:
            for term in terms:
                for form in term.forms():
                    pat = term_pattern(form)
                    if pat.search(span.original):
                        missed[form] += 1
                    elif pat.search(span.corrected):
                        recognized[form] += 1

    well: List[str] = []
    poor: List[str] = []
    for form in list(dict.fromkeys([*missed, *recognized])):
        total = recognized[form] + missed[form]
        rate = recognized[form] / total
        if rate > th.well_recognized:
            well.append(form)
        elif rate < th.poorly_recognized:
            poor.append(form)

    return VocabularyPerformance(
        total_terms=len(terms),
        well_recognized=well[: th.list_limit],
        poorly_recognized=poor[: th.list_limit],
        suggestions=vocabulary_suggestions(corrections, th)[: th.list_limit],
    )


def recommendations(report: AccuracyReport, th: ReportThresholds = ReportThresholds()) -> List[str]:
    out: List[str] = []
    total = report.total_transcriptions
    vp = report.vocabulary_performance

    if total and report.audio_quality_distribution.get("poor", 0) / total > th.poor_quality_rate:
        out.append("Consider improving audio recording setup. Over 20% of recordings have poor quality.")

    if report.average_word_error_rate > th.high_wer:
        out.append("Average word error rate is high. Consider enabling multi-pass transcription.")

    if total and report.average_confidence < th.low_confidence:
        out.append("Low average confidence scores. Enable enhanced post-processing for better results.")

    if len(vp.poorly_recognized) > th.max_poor_terms:
        out.append(f"Update phonetic hints for poorly recognized terms: {', '.join(vp.poorly_recognized[:3])}")

    if vp.suggestions:
        out.append(f"Consider adding these frequently corrected terms to vocabulary: {', '.join(vp.suggestions[:3])}")

    if report.common_errors:
        top = ", ".join(e.original for e in report.common_errors[:3])
        out.append(f"Create automatic replacements for common errors: {top}")

    return out


def build_report(
    organization_id: str,
    period_start: datetime,
    period_end: datetime,
    *,
    metrics: Sequence[AccuracyMetrics],
    corrections: Sequence[CorrectionRecord],
    terms: Sequence[VocabularyTerm],
    thresholds: ReportThresholds = ReportThresholds(),
) -> AccuracyReport:
    wers = [m.word_error_rate for m in metrics if m.word_error_rate is not None]
    distribution: Dict[str, int] = dict(Counter(m.audio_quality for m in metrics))

    report = AccuracyReport(
        organization_id=organization_id,
        period_start=period_start,
        period_end=period_end,
        total_transcriptions=len(metrics),
        average_word_error_rate=_mean(wers),
        average_confidence=_mean([m.confidence_score for m in metrics]),
        audio_quality_distribution=distribution,
        common_errors=common_errors(corrections, thresholds.common_error_limit),
        vocabulary_performance=vocabulary_performance(terms, corrections, thresholds),
    )
    return report.model_copy(update={"recommendations": recommendations(report, thresholds)})
