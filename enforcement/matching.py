"""
Company name normalisation and fuzzy offender matching.

Incoming cases and notices name their offender as free text.  Before a new
offender is created the repository looks for an existing one whose
normalised name is close enough, preferring candidates at the same postcode
and refusing candidates at a different one.
"""

from __future__ import annotations

import difflib
from typing import Iterable, TypeVar

from utils.patterns import (
    LIMITED_SUFFIX,
    NAME_PUNCTUATION,
    PLC_SUFFIX,
    UK_POSTCODE_TAIL,
    WHITESPACE,
)

T = TypeVar("T")

# Minimum similarity for a candidate to count as the same offender
MATCH_THRESHOLD = 0.7
# Similarity above which a shared postcode earns POSTCODE_BOOST
POSTCODE_BOOST_FLOOR = 0.6
POSTCODE_BOOST = 0.15
# difflib ratio treated as a near-identical spelling
NEAR_IDENTICAL_RATIO = 0.85
NEAR_IDENTICAL_SCORE = 0.9


def normalize_company_name(name: str | None) -> str:
    """Lowercase, strip punctuation, and unify "ltd"/"plc" suffixes.

    Examples:
        normalize_company_name("ACME Ltd.")        -> "acme limited"
        normalize_company_name("  Big Co P.L.C. ") -> "big co plc"
    """
    if not name:
        return ""
    value = WHITESPACE.sub(" ", name.strip().lower())
    # suffixes first: "p.l.c." loses its dots to NAME_PUNCTUATION otherwise
    value = LIMITED_SUFFIX.sub(" limited", value)
    value = PLC_SUFFIX.sub(" plc", value)
    value = NAME_PUNCTUATION.sub("", value)
    value = LIMITED_SUFFIX.sub(" limited", value)
    return WHITESPACE.sub(" ", value).strip()


def normalize_postcode(postcode: str | None) -> str | None:
    if postcode is None:
        return None
    value = WHITESPACE.sub(" ", postcode.strip().upper())
    return value or None


def extract_postcode(address: str | None) -> str | None:
    """Pull a trailing UK postcode off an address line, if there is one."""
    if not address:
        return None
    m = UK_POSTCODE_TAIL.search(address.strip())
    return normalize_postcode(m.group(1)) if m else None


def similarity(a: str | None, b: str | None) -> float:
    """Score two company names in ``0.0..1.0``.

    Equal normalised names score 1.0.  Otherwise the score is the Jaccard
    overlap of their word sets, raised to 0.9 when the spellings are nearly
    identical character for character.
    """
    na, nb = normalize_company_name(a), normalize_company_name(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0

    ta, tb = set(na.split()), set(nb.split())
    score = len(ta & tb) / len(ta | tb)
    if difflib.SequenceMatcher(None, na, nb).ratio() > NEAR_IDENTICAL_RATIO:
        score = max(score, NEAR_IDENTICAL_SCORE)
    return score


def _postcode_score(name: str, postcode: str | None, candidate) -> tuple[float, bool]:
    candidate_pc = normalize_postcode(getattr(candidate, "postcode", None))
    if postcode and candidate_pc and candidate_pc != postcode:
        return 0.0, False

    score = similarity(name, getattr(candidate, "name", None))
    same_postcode = bool(postcode) and candidate_pc == postcode
    if same_postcode and score > POSTCODE_BOOST_FLOOR:
        score = min(1.0, score + POSTCODE_BOOST)
    return score, same_postcode


def find_best_match(
    candidates: Iterable[T], name: str, postcode: str | None = None
) -> tuple[T, float] | None:
    """Pick the candidate most likely to be the offender called *name*.

    Candidates need ``name`` and ``postcode`` attributes.  A candidate with a
    different, non-null postcode never matches.

    Returns:
        ``(candidate, score)`` for the best candidate scoring above
        ``MATCH_THRESHOLD``, or None.
    """
    postcode = normalize_postcode(postcode)
    best = None
    best_key = (MATCH_THRESHOLD, False)
    for candidate in candidates:
        score, same_postcode = _postcode_score(name, postcode, candidate)
        if score <= MATCH_THRESHOLD:
            continue
        key = (score, same_postcode)
        if best is None or key > best_key:
            best, best_key = candidate, key
    if best is None:
        return None
    return best, best_key[0]
