"""
Printer identity matching.

Two profiles on the same model version conflict when their normalized
printer names are at least ``threshold`` similar, where similarity is
``1 - levenshtein(a, b) / max(len(a), len(b))``.
"""

from typing import Iterable

from rapidfuzz.distance import Levenshtein

from .config import DEFAULT_SIMILARITY_THRESHOLD
from .models import ParsedProfile, PrintProfile, normalize_printer_name

# Absorbs float rounding so an exact 0.8 ratio still meets a 0.8 threshold.
_EPSILON = 1e-9

__all__ = [
    "normalize_printer_name",
    "levenshtein",
    "similarity",
    "is_conflict",
    "find_conflict",
    "rank_conflicts",
]


def levenshtein(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute) between two strings."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1]; two empty strings are identical."""
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def _meets(score: float, threshold: float) -> bool:
    return score + _EPSILON >= threshold


def is_conflict(
    name_a: str,
    name_b: str,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> bool:
    """True if two raw printer names likely denote the same printer."""
    return _meets(
        similarity(normalize_printer_name(name_a), normalize_printer_name(name_b)),
        threshold,
    )


def rank_conflicts(
    candidate: ParsedProfile | str,
    existing: Iterable[PrintProfile],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[tuple[PrintProfile, float]]:
    """
    Return every existing profile that conflicts with *candidate*, paired
    with its similarity, in the order the profiles were given.
    """
    if isinstance(candidate, ParsedProfile):
        target = candidate.printer_name_normalized
    else:
        target = normalize_printer_name(candidate)

    matches: list[tuple[PrintProfile, float]] = []
    for profile in existing:
        score = similarity(target, profile.printer_name_normalized)
        if _meets(score, threshold):
            matches.append((profile, score))
    return matches


def find_conflict(
    candidate: ParsedProfile | str,
    existing: Iterable[PrintProfile],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> PrintProfile | None:
    """First existing profile (in input order) whose printer conflicts with *candidate*."""
    matches = rank_conflicts(candidate, existing, threshold)
    return matches[0][0] if matches else None
