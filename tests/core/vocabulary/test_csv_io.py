from __future__ import annotations

from meetscribe.core.vocabulary.csv_io import EXPORT_COLUMNS, export_csv, import_csv, parse_csv
from meetscribe.core.vocabulary.store import InMemoryVocabularyStore


def test_parse_accepts_aliases_and_semicolon_lists() -> None:
    data = (
        "Term,Variations,Phonetic,Context,Category\n"
        "EBITDA,ebida;ebitdá,e-bit-da,eredmény;profit,finance\n"
        ",ignored,,,\n"
        "Kovács Kft,,,,\n"
    )
    terms = parse_csv(data, "org")

    assert [t.term for t in terms] == ["EBITDA", "Kovács Kft"]
    assert terms[0].variations == ["ebida", "ebitdá"]
    assert terms[0].phonetic_hint == "e-bit-da"
    assert terms[0].context_hints == ["eredmény", "profit"]
    assert terms[0].category == "finance"
    assert terms[1].category == "custom"
    assert terms[1].phonetic_hint is None


def test_import_then_export() -> None:
    store = InMemoryVocabularyStore()
    n = import_csv(store, "org", "term,variations\nárbevétel,árbevételek\nforgalom,\n", category="finance")
    assert n == 2

    lines = export_csv(store, "org").splitlines()
    assert lines[0] == ",".join(EXPORT_COLUMNS)
    assert "árbevétel,árbevételek,finance,,,0,0.5" in lines
    assert "forgalom,,finance,,,0,0.5" in lines


def test_export_filters_by_category() -> None:
    store = InMemoryVocabularyStore()
    import_csv(store, "org", "term,category\nszámla,finance\nszerver,it\n")
    lines = export_csv(store, "org", category="it").splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("szerver,")
