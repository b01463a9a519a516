from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, List

import pytest

from meetscribe.core.quality.monitor import AccuracyMonitor, find_repeated_patterns
from meetscribe.core.quality.store import InMemoryAccuracyStore
from meetscribe.core.vocabulary.store import InMemoryVocabularyStore
from meetscribe.core_types import AccuracyMetrics, CorrectionRecord, CorrectionSpan, ErrorPattern, utc_now
from meetscribe.errors import PersistenceFailure
from tests._helpers import term


def _monitor(*terms) -> AccuracyMonitor:
    return AccuracyMonitor(InMemoryAccuracyStore(), InMemoryVocabularyStore(list(terms)))


def _record(original: str, corrected: str, spans: List[CorrectionSpan] | None = None) -> CorrectionRecord:
    return CorrectionRecord(
        transcription_id="t1",
        organization_id="org",
        original=original,
        corrected=corrected,
        spans=spans or [],
    )


def test_confirmed_term_gains_usage_and_confidence() -> None:
    mon = _monitor(term("org", "árbevétel", usage_count=5, confidence_score=0.6, category="finance"))
    span = CorrectionSpan(start=10, end=19, original="árbevetél", corrected="árbevétel", type="vocabulary")

    out = mon.record_correction(_record("A negyedéves árbevetél nőtt", "A negyedéves árbevétel nőtt", [span]))

    [t] = mon.vocabulary.list_terms("org")
    assert out.confirmed == ["árbevétel"]
    assert t.usage_count == 6
    assert t.confidence_score == pytest.approx(0.62)
    assert out.rates.wer == pytest.approx(0.25)
    assert out.warnings == []


def test_confirmation_never_exceeds_cap() -> None:
    mon = _monitor(term("org", "árbevétel", confidence_score=0.995))
    span = CorrectionSpan(original="árbevetél", corrected="árbevétel", type="vocabulary")

    mon.record_correction(_record("árbevetél", "árbevétel", [span]))

    assert mon.vocabulary.list_terms("org")[0].confidence_score == 1.0


def test_wrongly_inserted_term_is_penalized() -> None:
    mon = _monitor(term("org", "hozam", confidence_score=0.5))
    span = CorrectionSpan(original="hozam", corrected="hozom", type="grammar")

    out = mon.record_correction(_record("holnap hozam", "holnap hozom", [span]))

    assert out.penalized == ["hozam"]
    t = mon.vocabulary.list_terms("org")[0]
    assert t.confidence_score == pytest.approx(0.45)
    assert t.usage_count == 0


def test_missing_spans_become_one_whole_text_span() -> None:
    mon = _monitor(term("org", "likviditás"))

    out = mon.record_correction(_record("a likvidítás romlott", "a likviditás romlott"))

    assert out.confirmed == ["likviditás"]
    [archived] = mon.store.list_corrections("org")
    assert archived.spans == []


def test_vocabulary_spans_teach_new_terms() -> None:
    mon = _monitor(term("org", "holding"))
    span = CorrectionSpan(original="kovács holding", corrected="Kovács Holding Zrt", type="vocabulary")

    out = mon.record_correction(_record("kovács holding", "Kovács Holding Zrt", [span]))

    assert out.learned == ["kovács", "zrt"]
    learned = mon.vocabulary.list_terms("org")
    by_name = {t.term: t for t in learned}
    assert by_name["kovács"].confidence_score == 0.5
    assert by_name["kovács"].category == "general"


def test_learning_can_be_disabled() -> None:
    mon = AccuracyMonitor(InMemoryAccuracyStore(), InMemoryVocabularyStore(), learn_new_terms=False)
    span = CorrectionSpan(original="x", corrected="Valami Új", type="vocabulary")
    assert mon.record_correction(_record("x", "Valami Új", [span])).learned == []


def test_repeated_pairs_become_patterns() -> None:
    spans = [
        CorrectionSpan(original="kft", corrected="Kft.", type="spelling"),
        CorrectionSpan(original="kft", corrected="Kft.", type="spelling"),
        CorrectionSpan(original="zrt", corrected="Zrt.", type="spelling"),
    ]
    mon = _monitor()

    out = mon.record_correction(_record("kft kft zrt", "Kft. Kft. Zrt.", spans))

    assert out.patterns == 1
    [p] = mon.store.list_patterns("org")
    assert (p.pattern, p.replacement, p.frequency) == ("kft", "Kft.", 2)


def test_find_repeated_patterns_keeps_types_apart() -> None:
    spans = [
        CorrectionSpan(original="a", corrected="b", type="spelling"),
        CorrectionSpan(original="a", corrected="b", type="grammar"),
    ]
    assert find_repeated_patterns("org", spans) == []


def test_store_failures_become_warnings(monkeypatch: Any) -> None:
    mon = _monitor(term("org", "árbevétel"))

    def _fail(*_a: Any, **_kw: Any) -> None:
        raise PersistenceFailure("disk full")

    monkeypatch.setattr(mon.store, "archive_correction", _fail)
    monkeypatch.setattr(mon.vocabulary, "adjust", _fail)

    span = CorrectionSpan(original="árbevetél", corrected="árbevétel", type="other")
    out = mon.record_correction(_record("árbevetél", "árbevétel", [span]))

    assert out.confirmed == []
    assert out.warnings == ["persistence_failure: disk full", "persistence_failure: disk full"]


def test_track_reports_persistence(monkeypatch: Any) -> None:
    mon = _monitor()
    m = AccuracyMetrics(transcription_id="t1", organization_id="org")
    assert mon.track(m) is True

    def _fail(_m: AccuracyMetrics) -> None:
        raise PersistenceFailure("nope")

    monkeypatch.setattr(mon.store, "append_metrics", _fail)
    assert mon.track(m) is False


def test_realtime_feedback() -> None:
    mon = _monitor()
    mon.store.upsert_patterns([ErrorPattern(organization_id="org", pattern="kft", replacement="Kft.", frequency=3)])

    low = mon.monitor_realtime("a kovács kft", 0.4, organization_id="org")
    assert low.confidence_warning and low.should_enhance
    assert low.suggestions == ['Consider replacing "kft" with "Kft."']

    ok = mon.monitor_realtime("minden rendben", 0.9, organization_id="org")
    assert not ok.confidence_warning
    assert ok.suggestions == []


def test_report_reads_the_period() -> None:
    mon = _monitor()
    now = utc_now()
    mon.track(AccuracyMetrics(transcription_id="t1", organization_id="org", confidence_score=0.9, audio_quality="good"))

    rep = mon.report("org", now - timedelta(days=1), now + timedelta(days=1))

    assert rep.total_transcriptions == 1
    assert rep.audio_quality_distribution == {"good": 1}


def test_report_accepts_naive_datetimes_as_utc() -> None:
    mon = _monitor()
    mon.track(AccuracyMetrics(transcription_id="t1", organization_id="org", confidence_score=0.9, audio_quality="good"))
    now = datetime.now(timezone.utc).replace(tzinfo=None)

    rep = mon.report("org", now - timedelta(days=1), now + timedelta(days=1))
    assert rep.total_transcriptions == 1
    assert rep.period_start.tzinfo is not None

    past = mon.report("org", now - timedelta(days=3), now - timedelta(days=2))
    assert past.total_transcriptions == 0


def test_confirm_step_bounds() -> None:
    with pytest.raises(ValueError):
        AccuracyMonitor(InMemoryAccuracyStore(), InMemoryVocabularyStore(), confirm_step=0.5)
