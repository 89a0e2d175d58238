"""Pick the registry entry (EPC certificate) that belongs to a given address.

A postcode lookup returns every certificate in the postcode, typically a
whole street. House numbers must agree exactly; the street text and, when
known, the floor area decide between what is left.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Sequence

from soldcomp.common.fuzzy import similarity
from soldcomp.common.models import CandidateRecord
from soldcomp.pipeline.dedupe import normalize_address

STATUS_MATCHED = "MATCHED"
STATUS_AMBIGUOUS = "AMBIGUOUS"
STATUS_NO_CANDIDATES = "NO_CANDIDATES"
STATUS_NO_HOUSE_NUMBER = "NO_HOUSE_NUMBER"
STATUS_NO_MATCH = "NO_MATCH"

PATTERN_FLAT = "flat"
PATTERN_PROPERTY_NAME = "property_name"
PATTERN_LETTER_SUFFIX = "letter_suffix"
PATTERN_RANGE = "range"
PATTERN_SIMPLE = "simple"
PATTERN_NONE = "none"

MIN_STREET_SIMILARITY = 30
FLOOR_AREA_BONUSES = ((0.0, 3.0), (2.0, 2.0), (5.0, 1.0))
PLAIN_ADDRESS_BONUS = 0.1

_FLAT_RE = re.compile(
    r"^(?:flat|apartment|apt\.?|unit)\s*([0-9]+[a-z]?|[a-z])\b\s*,?\s*(\d+)\b",
    re.IGNORECASE,
)
_PROPERTY_NAME_RE = re.compile(r"^([a-z][a-z\s'.&-]*?)\s*,\s*(\d+)([a-z])?\b", re.IGNORECASE)
_LETTER_SUFFIX_RE = re.compile(r"^(\d+)\s?([a-z])\b", re.IGNORECASE)
_RANGE_RE = re.compile(r"^(\d+)\s*-\s*(\d+)\b")
_SIMPLE_RE = re.compile(r"^(\d+)\b")
_LEADING_SEPARATORS_RE = re.compile(r"^[,\s]+")


@dataclass(frozen=True)
class HouseNumber:
    primary: str | None
    flat: str | None = None
    has_range: bool = False
    range_to: str | None = None
    pattern: str = PATTERN_NONE
    street: str = ""


def _rest(address: str, end: int) -> str:
    return _LEADING_SEPARATORS_RE.sub("", address[end:]).strip()


def match_flat_prefix(address: str) -> HouseNumber | None:
    """``Flat 1, 32 Summerfields Drive`` -> primary 32, flat 1."""
    match = _FLAT_RE.match(address)
    if match is None:
        return None
    return HouseNumber(
        primary=match.group(2),
        flat=match.group(1).lower(),
        pattern=PATTERN_FLAT,
        street=_rest(address, match.end()),
    )


def match_property_name(address: str) -> HouseNumber | None:
    """``Spen Lea, 317 Wharf Road`` -> primary 317."""
    match = _PROPERTY_NAME_RE.match(address)
    if match is None:
        return None
    suffix = match.group(3)
    return HouseNumber(
        primary=match.group(2),
        flat=suffix.lower() if suffix else None,
        pattern=PATTERN_PROPERTY_NAME,
        street=_rest(address, match.end()),
    )


def match_letter_suffix(address: str) -> HouseNumber | None:
    match = _LETTER_SUFFIX_RE.match(address)
    if match is None:
        return None
    return HouseNumber(
        primary=match.group(1),
        flat=match.group(2).lower(),
        pattern=PATTERN_LETTER_SUFFIX,
        street=_rest(address, match.end()),
    )


def match_range(address: str) -> HouseNumber | None:
    match = _RANGE_RE.match(address)
    if match is None:
        return None
    return HouseNumber(
        primary=match.group(1),
        has_range=True,
        range_to=match.group(2),
        pattern=PATTERN_RANGE,
        street=_rest(address, match.end()),
    )


def match_simple_number(address: str) -> HouseNumber | None:
    match = _SIMPLE_RE.match(address)
    if match is None:
        return None
    return HouseNumber(primary=match.group(1), pattern=PATTERN_SIMPLE, street=_rest(address, match.end()))


HOUSE_NUMBER_PATTERNS: tuple[Callable[[str], HouseNumber | None], ...] = (
    match_flat_prefix,
    match_property_name,
    match_letter_suffix,
    match_range,
    match_simple_number,
)


def extract_house_number(address: str | None) -> HouseNumber:
    text = (address or "").strip()
    for pattern in HOUSE_NUMBER_PATTERNS:
        found = pattern(text)
        if found is not None:
            return found
    return HouseNumber(primary=None, street=text)


def street_portion(address: str | None) -> str:
    """Address with the house number (and any flat or name prefix) stripped."""
    return normalize_address(extract_house_number(address).street)


def floor_area_bonus(known: float | None, candidate: float | None) -> float:
    if known is None or candidate is None:
        return 0.0
    diff = abs(known - candidate)
    for limit, bonus in FLOOR_AREA_BONUSES:
        if diff <= limit:
            return bonus
    return 0.0


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: CandidateRecord
    score: float
    street_similarity: int


@dataclass(frozen=True)
class CandidateMatch:
    status: str
    candidate: CandidateRecord | None = None
    score: float = 0.0
    tied: tuple[CandidateRecord, ...] = ()

    @property
    def matched(self) -> CandidateRecord | None:
        """The chosen candidate, only when the choice was unambiguous."""
        if self.status == STATUS_MATCHED:
            return self.candidate
        return None


def score_candidate(
    target: HouseNumber,
    target_street: str,
    candidate: CandidateRecord,
    known_floor_area: float | None,
) -> ScoredCandidate | None:
    """Score one candidate; None when it is not eligible at all."""
    theirs = extract_house_number(candidate.address)
    if theirs.primary is None or theirs.primary != target.primary:
        return None
    if target.flat and theirs.flat and target.flat != theirs.flat:
        return None

    street_score = similarity(target_street, normalize_address(theirs.street))
    if street_score < MIN_STREET_SIMILARITY:
        return None

    score = street_score / 100
    score += floor_area_bonus(known_floor_area, candidate.floor_area)
    if theirs.pattern != PATTERN_PROPERTY_NAME:
        score += PLAIN_ADDRESS_BONUS
    return ScoredCandidate(candidate=candidate, score=round(score, 6), street_similarity=street_score)


def choose_candidate(
    target_address: str,
    candidates: Sequence[CandidateRecord],
    known_floor_area: float | None = None,
) -> CandidateMatch:
    """Best candidate for ``target_address``.

    Equal top scores are reported as ``AMBIGUOUS`` with every tied candidate,
    the first one encountered in ``candidate``; callers decide whether to use it.
    """
    if not candidates:
        return CandidateMatch(status=STATUS_NO_CANDIDATES)

    target = extract_house_number(target_address)
    if target.primary is None:
        return CandidateMatch(status=STATUS_NO_HOUSE_NUMBER)
    target_street = normalize_address(target.street)

    scored = [
        result
        for result in (score_candidate(target, target_street, c, known_floor_area) for c in candidates)
        if result is not None
    ]
    if not scored:
        return CandidateMatch(status=STATUS_NO_MATCH)

    best_score = max(result.score for result in scored)
    best = [result for result in scored if result.score == best_score]
    if len(best) > 1:
        return CandidateMatch(
            status=STATUS_AMBIGUOUS,
            candidate=best[0].candidate,
            score=best_score,
            tied=tuple(result.candidate for result in best),
        )
    return CandidateMatch(status=STATUS_MATCHED, candidate=best[0].candidate, score=best_score)
