from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

import pytest

from meetscribe.core.vocabulary.store import (
    InMemoryVocabularyStore,
    JsonVocabularyStore,
    adjusted_confidence,
)
from meetscribe.errors import PersistenceFailure
from tests._helpers import term


def test_add_normalizes_and_merges_on_same_term() -> None:
    store = InMemoryVocabularyStore()
    first = store.add_term(term("org", " EBITDA ", variations=["Ebitda", "ebitda", "ebida"]))
    again = store.add_term(term("org", "ebitda", variations=["ebitdá"], context_hints=["eredmény"]))

    assert first.term == "ebitda"
    assert first.variations == ["ebitda", "ebida"]
    assert again.id == first.id
    assert again.variations == ["ebitda", "ebida", "ebitdá"]
    assert again.context_hints == ["eredmény"]
    assert len(store.list_terms("org")) == 1


def test_list_is_scoped_and_ordered_by_usage() -> None:
    store = InMemoryVocabularyStore(
        [
            term("org", "alpha", usage_count=1),
            term("org", "beta", usage_count=5, category="finance"),
            term("other", "gamma", usage_count=9),
        ]
    )
    assert [t.term for t in store.list_terms("org")] == ["beta", "alpha"]
    assert [t.term for t in store.list_terms("org", category="finance")] == ["beta"]


def test_soft_delete_and_reactivation() -> None:
    store = InMemoryVocabularyStore()
    t = store.add_term(term("org", "kpi"))
    store.delete_term(t.id)

    assert store.list_terms("org") == []
    assert store.list_terms("org", include_inactive=True)[0].is_active is False

    store.add_term(term("org", "KPI"))
    assert store.list_terms("org")[0].is_active is True


def test_adjust_clamps_and_counts() -> None:
    store = InMemoryVocabularyStore()
    t = store.add_term(term("org", "árbevétel", confidence_score=0.99, usage_count=3))

    up = store.adjust(t.id, confidence_delta=0.02, usage_delta=1)
    assert up.confidence_score == 1.0
    assert up.usage_count == 4

    low = store.add_term(term("org", "forgalom", confidence_score=0.12))
    down = store.adjust(low.id, confidence_delta=-0.05)
    assert down.confidence_score == pytest.approx(0.1)


def test_adjust_rejects_negative_usage_and_unknown_ids() -> None:
    store = InMemoryVocabularyStore()
    t = store.add_term(term("org", "x1"))
    with pytest.raises(ValueError):
        store.adjust(t.id, usage_delta=-1)
    with pytest.raises(KeyError):
        store.adjust("missing", confidence_delta=0.1)


def test_update_term_allows_admin_reset() -> None:
    store = InMemoryVocabularyStore()
    t = store.add_term(term("org", "hozam", usage_count=10))
    assert store.update_term(t.id, usage_count=0).usage_count == 0


def test_adjusted_confidence_band() -> None:
    assert adjusted_confidence(0.5, 0.02, floor=0.1, cap=1.0) == pytest.approx(0.52)
    assert adjusted_confidence(0.11, -0.05, floor=0.1, cap=1.0) == pytest.approx(0.1)
    # already below the floor: a penalty does not lift it
    assert adjusted_confidence(0.05, -0.05, floor=0.1, cap=1.0) == pytest.approx(0.05)


def test_concurrent_adjust_loses_no_update() -> None:
    store = InMemoryVocabularyStore()
    t = store.add_term(term("org", "projekt", confidence_score=0.2))

    def bump() -> None:
        for _ in range(50):
            store.adjust(t.id, usage_delta=1)

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert store.get_term(t.id).usage_count == 200


def test_json_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "vocab" / "terms.json"
    store = JsonVocabularyStore(path)
    t = store.add_term(term("org", "likviditás", variations=["likvid"]))
    store.adjust(t.id, confidence_delta=0.1, usage_delta=2)

    reloaded = JsonVocabularyStore(path)
    [got] = reloaded.list_terms("org")
    assert got.term == "likviditás"
    assert got.usage_count == 2
    assert got.confidence_score == pytest.approx(0.6)


def test_json_store_write_failure_rolls_back(tmp_path: Path, monkeypatch: Any) -> None:
    import meetscribe.core.vocabulary.store as vs

    store = JsonVocabularyStore(tmp_path / "terms.json")
    t = store.add_term(term("org", "adó"))

    def _fail(path: Path, payload: Any) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(vs, "atomic_write_json", _fail)

    with pytest.raises(PersistenceFailure):
        store.adjust(t.id, usage_delta=1)
    assert store.get_term(t.id).usage_count == 0

    with pytest.raises(PersistenceFailure):
        store.add_term(term("org", "új"))
    assert store.find("org", "új") is None
