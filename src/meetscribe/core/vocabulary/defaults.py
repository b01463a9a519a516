from __future__ import annotations

from typing import Dict, List

from meetscribe.core.vocabulary.store import VocabularyStore
from meetscribe.core_types import VocabularyTerm
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.vocabulary")

SEED_CONFIDENCE = 0.7

# category -> [{term, variations, context_hints}]
DEFAULT_BUSINESS_TERMS: Dict[str, List[dict]] = {
    "general": [
        {"term": "üzlet", "variations": ["üzleti", "üzletek"], "context_hints": ["megállapodás", "tárgyalás"]},
        {"term": "vállalat", "variations": ["vállalati", "vállalatok"], "context_hints": ["cég", "szervezet"]},
        {"term": "szerződés", "variations": ["szerződéses", "szerződések"], "context_hints": ["megállapodás", "feltételek"]},
        {"term": "ügyfél", "variations": ["ügyfelek", "ügyfeles"], "context_hints": ["vásárló", "partner"]},
        {"term": "projekt", "variations": ["projektek", "projektes"], "context_hints": ["feladat", "munka"]},
    ],
    "finance": [
        {"term": "számla", "variations": ["számlák", "számlázás"], "context_hints": ["fizetés", "díj"]},
        {"term": "árbevétel", "variations": ["árbevételek"], "context_hints": ["bevétel", "forgalom"]},
        {"term": "költségvetés", "variations": ["költségvetési"], "context_hints": ["büdzsé", "terv"]},
        {"term": "adó", "variations": ["adózás", "adók"], "context_hints": ["áfa", "társasági"]},
        {"term": "befektetés", "variations": ["befektetések", "befektető"], "context_hints": ["tőke", "hozam"]},
        {"term": "likviditás", "variations": ["likvid"], "context_hints": ["pénzügyi", "cash flow"]},
        {"term": "amortizáció", "variations": ["amortizációs"], "context_hints": ["értékcsökkenés", "leírás"]},
    ],
    "it": [
        {"term": "szoftver", "variations": ["szoftverek", "software"], "context_hints": ["program", "alkalmazás"]},
        {"term": "adatbázis", "variations": ["adatbázisok"], "context_hints": ["database", "SQL"]},
        {"term": "felhő", "variations": ["felhőalapú", "cloud"], "context_hints": ["szolgáltatás", "tárhely"]},
        {"term": "kiberbiztonsági", "variations": ["kiberbiztonság"], "context_hints": ["védelem", "security"]},
        {"term": "algoritmus", "variations": ["algoritmusok"], "context_hints": ["program", "megoldás"]},
        {"term": "mesterséges intelligencia", "variations": ["AI", "MI"], "context_hints": ["gépi tanulás", "neurális"]},
    ],
    "legal": [
        {"term": "jogszabály", "variations": ["jogszabályok", "jogszabályi"], "context_hints": ["törvény", "rendelet"]},
        {"term": "felelősség", "variations": ["felelősségek"], "context_hints": ["kártérítés", "garancia"]},
        {"term": "képviselet", "variations": ["képviseleti", "képviselő"], "context_hints": ["meghatalmazás", "ügyvéd"]},
        {"term": "bíróság", "variations": ["bírósági"], "context_hints": ["ítélet", "per"]},
        {"term": "szabályzat", "variations": ["szabályzatok"], "context_hints": ["előírás", "policy"]},
    ],
    "medical": [
        {"term": "diagnózis", "variations": ["diagnózisok"], "context_hints": ["betegség", "vizsgálat"]},
        {"term": "terápia", "variations": ["terápiák", "terápiás"], "context_hints": ["kezelés", "gyógyítás"]},
        {"term": "gyógyszer", "variations": ["gyógyszerek", "gyógyszeres"], "context_hints": ["medicina", "tabletta"]},
        {"term": "páciens", "variations": ["páciensek"], "context_hints": ["beteg", "kezelt"]},
    ],
    "marketing": [
        {"term": "kampány", "variations": ["kampányok"], "context_hints": ["hirdetés", "promóció"]},
        {"term": "célcsoport", "variations": ["célcsoportok"], "context_hints": ["vásárló", "szegmens"]},
        {"term": "márka", "variations": ["márkák", "brand"], "context_hints": ["termék", "imázs"]},
        {"term": "konverzió", "variations": ["konverziós"], "context_hints": ["átalakítás", "vásárlás"]},
    ],
    "hr": [
        {"term": "munkavállaló", "variations": ["munkavállalók"], "context_hints": ["alkalmazott", "dolgozó"]},
        {"term": "toborzás", "variations": ["toborzási"], "context_hints": ["felvétel", "recruitment"]},
        {"term": "teljesítményértékelés", "variations": ["teljesítmény"], "context_hints": ["értékelés", "review"]},
        {"term": "kompetencia", "variations": ["kompetenciák"], "context_hints": ["képesség", "skill"]},
    ],
    "manufacturing": [
        {"term": "gyártás", "variations": ["gyártási", "gyártó"], "context_hints": ["termelés", "előállítás"]},
        {"term": "minőségbiztosítás", "variations": ["minőség"], "context_hints": ["ellenőrzés", "QA"]},
        {"term": "készlet", "variations": ["készletek"], "context_hints": ["raktár", "inventory"]},
        {"term": "beszállító", "variations": ["beszállítók"], "context_hints": ["partner", "supplier"]},
    ],
    "real_estate": [
        {"term": "ingatlan", "variations": ["ingatlanok"], "context_hints": ["épület", "telek"]},
        {"term": "bérleti díj", "variations": ["bérleti"], "context_hints": ["havi", "költség"]},
        {"term": "tulajdonjog", "variations": ["tulajdon"], "context_hints": ["birtoklás", "ownership"]},
        {"term": "értékbecslés", "variations": ["értékbecslő"], "context_hints": ["ár", "piaci érték"]},
    ],
    "education": [
        {"term": "tanterv", "variations": ["tantervek"], "context_hints": ["curriculum", "oktatás"]},
        {"term": "hallgató", "variations": ["hallgatók"], "context_hints": ["diák", "tanuló"]},
        {"term": "képzés", "variations": ["képzések"], "context_hints": ["oktatás", "training"]},
        {"term": "akkreditáció", "variations": ["akkreditált"], "context_hints": ["minősítés", "elismerés"]},
    ],
    "government": [
        {"term": "önkormányzat", "variations": ["önkormányzati"], "context_hints": ["helyi", "település"]},
        {"term": "határozat", "variations": ["határozatok"], "context_hints": ["döntés", "rendelet"]},
        {"term": "közigazgatás", "variations": ["közigazgatási"], "context_hints": ["hivatal", "államigazgatás"]},
        {"term": "pályázat", "variations": ["pályázatok"], "context_hints": ["tender", "kiírás"]},
    ],
    "custom": [],
}


def default_terms(organization_id: str) -> List[VocabularyTerm]:
    out: List[VocabularyTerm] = []
    for category, entries in DEFAULT_BUSINESS_TERMS.items():
        for e in entries:
            out.append(
                VocabularyTerm(
                    organization_id=organization_id,
                    term=e["term"],
                    variations=list(e.get("variations", [])),
                    category=category,  # type: ignore[arg-type]
                    phonetic_hint=e.get("phonetic_hint"),
                    context_hints=list(e.get("context_hints", [])),
                    usage_count=0,
                    confidence_score=SEED_CONFIDENCE,
                )
            )
    return out


def initialize_defaults(store: VocabularyStore, organization_id: str) -> int:
    """
    Seed the default business vocabulary for an organization that has no
    terms yet (active or not). Returns the number of terms added.
    """
    if store.list_terms(organization_id, include_inactive=True):
        return 0
    terms = default_terms(organization_id)
    for t in terms:
        store.add_term(t)
    logger.info(f"Seeded {len(terms)} default vocabulary term(s) for org={organization_id}")
    return len(terms)
