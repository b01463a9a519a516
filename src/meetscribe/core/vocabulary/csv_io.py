from __future__ import annotations

import csv
import io
from typing import Dict, List, Optional

from meetscribe.core.vocabulary.store import VocabularyStore
from meetscribe.core_types import VocabularyCategory, VocabularyTerm
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.vocabulary")

EXPORT_COLUMNS = [
    "term",
    "variations",
    "category",
    "phonetic_hint",
    "context_hints",
    "usage_count",
    "confidence_score",
]

# Accepted header names -> field
_COLUMN_ALIASES: Dict[str, str] = {
    "term": "term",
    "variations": "variations",
    "phonetic": "phonetic_hint",
    "phonetic_hint": "phonetic_hint",
    "context": "context_hints",
    "context_hints": "context_hints",
    "category": "category",
}


def _split_list(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(";") if v.strip()]


def parse_csv(
    data: str,
    organization_id: str,
    *,
    category: VocabularyCategory = "custom",
) -> List[VocabularyTerm]:
    """
    Parse `term,variations,phonetic_hint,context_hints,category` rows.
    Lists are `;`-separated. A `category` column overrides the default.
    Rows without a term are skipped.
    """
    reader = csv.DictReader(io.StringIO(data))
    terms: List[VocabularyTerm] = []
    for row in reader:
        fields: Dict[str, str] = {}
        for col, value in row.items():
            key = _COLUMN_ALIASES.get((col or "").strip().lower())
            if key is not None and value is not None:
                fields[key] = value.strip()

        if not fields.get("term"):
            continue
        terms.append(
            VocabularyTerm(
                organization_id=organization_id,
                term=fields["term"],
                variations=_split_list(fields.get("variations", "")),
                category=fields.get("category") or category,  # type: ignore[arg-type]
                phonetic_hint=fields.get("phonetic_hint") or None,
                context_hints=_split_list(fields.get("context_hints", "")),
            )
        )
    return terms


def import_csv(
    store: VocabularyStore,
    organization_id: str,
    data: str,
    *,
    category: VocabularyCategory = "custom",
) -> int:
    terms = parse_csv(data, organization_id, category=category)
    for t in terms:
        store.add_term(t)
    logger.info(f"Imported {len(terms)} vocabulary term(s) for org={organization_id}")
    return len(terms)


def export_csv(
    store: VocabularyStore,
    organization_id: str,
    *,
    category: Optional[VocabularyCategory] = None,
) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for t in store.list_terms(organization_id, category=category):
        writer.writerow(
            [
                t.term,
                ";".join(t.variations),
                t.category,
                t.phonetic_hint or "",
                ";".join(t.context_hints),
                t.usage_count,
                t.confidence_score,
            ]
        )
    return buf.getvalue()
