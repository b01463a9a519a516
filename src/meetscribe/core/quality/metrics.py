from __future__ import annotations

from typing import List, Sequence, TypeVar

from meetscribe.core_types import ErrorRates

T = TypeVar("T")


def levenshtein(a: Sequence[T], b: Sequence[T]) -> int:
    """Edit distance (substitution, insertion, deletion all cost 1)."""
    if len(a) < len(b):
        a, b = b, a
    prev: List[int] = list(range(len(b) + 1))
    for i, x in enumerate(a, start=1):
        cur = [i] + [0] * len(b)
        for j, y in enumerate(b, start=1):
            if x == y:
                cur[j] = prev[j - 1]
            else:
                cur[j] = min(prev[j - 1], prev[j], cur[j - 1]) + 1
        prev = cur
    return prev[-1]


def _rate(reference: Sequence[T], hypothesis: Sequence[T]) -> float:
    if not reference:
        return 0.0 if not hypothesis else 1.0
    return min(1.0, levenshtein(reference, hypothesis) / len(reference))


def word_error_rate(reference: str, hypothesis: str) -> float:
    return _rate((reference or "").lower().split(), (hypothesis or "").lower().split())


def character_error_rate(reference: str, hypothesis: str) -> float:
    return _rate(list((reference or "").lower()), list((hypothesis or "").lower()))


def score(original: str, corrected: str) -> ErrorRates:
    """
    `original` is the machine transcript, `corrected` the user's fixed text.
    Both rates are normalized by the length of `original`.
    """
    return ErrorRates(
        wer=word_error_rate(original, corrected),
        cer=character_error_rate(original, corrected),
    )
