# campus_delivery/services/location_matcher.py
import re
from enum import Enum
from typing import Iterable, List, NamedTuple, Optional, Sequence
from ..models.delivery import DeliveryPerson


class MatchThreshold(float, Enum):
    """Candidate filter presets"""
    LOW = 0.1
    MEDIUM = 0.3
    HIGH = 0.5


class MatchTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


HIGH_TIER_SCORE = 0.6

CONTAINMENT_BASE = 0.7
CONTAINMENT_BONUS = 0.3
PARTIAL_TOKEN_WEIGHT = 0.5

_STRIP_PATTERN = re.compile(r"[^\w\s,]")
_SPLIT_PATTERN = re.compile(r"[,\s]+")


class LocationScore(NamedTuple):
    location: str
    score: float


class RankedCandidate(NamedTuple):
    person: DeliveryPerson
    score: float
    tier: MatchTier
    details: List[LocationScore]


def tokenize(location: str) -> List[str]:
    """Unique keywords of a location, in order of appearance"""
    cleaned = _STRIP_PATTERN.sub("", location.lower())
    tokens: List[str] = []
    for word in _SPLIT_PATTERN.split(cleaned):
        word = word.strip()
        # two letter words like "st" still count
        if len(word) > 1 and word not in tokens:
            tokens.append(word)
    return tokens


def score(location1: Optional[str], location2: Optional[str]) -> float:
    """Similarity of two free-text locations in [0, 1]"""
    if not location1 or not location2:
        return 0.0

    loc1 = location1.lower()
    loc2 = location2.lower()

    # "cafe" inside "cafe 6th floor" beats any token overlap
    if loc1 in loc2 or loc2 in loc1:
        shorter = min(len(loc1), len(loc2))
        longer = max(len(loc1), len(loc2))
        return CONTAINMENT_BASE + CONTAINMENT_BONUS * (shorter / longer)

    keywords1 = tokenize(location1)
    keywords2 = tokenize(location2)
    if not keywords1 or not keywords2:
        return 0.0

    match_weight = 0.0
    consumed = set()
    for kw1 in keywords1:
        if kw1 in keywords2:
            match_weight += 1.0
            consumed.add(kw1)
            continue
        for kw2 in keywords2:
            if kw2 in consumed:
                continue
            if kw1 in kw2 or kw2 in kw1:
                match_weight += PARTIAL_TOKEN_WEIGHT * (
                    min(len(kw1), len(kw2)) / max(len(kw1), len(kw2))
                )
                consumed.add(kw2)
                break

    unique_keywords = len(set(keywords1) | set(keywords2))
    return min(1.0, match_weight / max(1, unique_keywords))


def best_score(person_location: Optional[str], order_locations: Sequence[str]) -> float:
    """Best match against any of the order's locations"""
    if not person_location or not order_locations:
        return 0.0
    return max(score(person_location, loc) for loc in order_locations)


def detailed_scores(person_location: Optional[str], order_locations: Sequence[str]) -> List[LocationScore]:
    if not person_location:
        return []
    return [LocationScore(loc, score(person_location, loc)) for loc in order_locations]


def match_tier(value: float, threshold: float = MatchThreshold.MEDIUM) -> MatchTier:
    """Display tier of a score, never used for filtering"""
    if value >= HIGH_TIER_SCORE:
        return MatchTier.HIGH
    if value >= threshold:
        return MatchTier.MEDIUM
    return MatchTier.LOW


def _matches_search(person: DeliveryPerson, search_term: str) -> bool:
    term = search_term.lower()
    return term in (person.contact or "").lower() or term in (person.location or "").lower()


def rank_candidates(persons: Iterable[DeliveryPerson], order_locations: Sequence[str],
                    threshold: float = MatchThreshold.MEDIUM,
                    search_term: str = "") -> List[RankedCandidate]:
    """Filter delivery persons by threshold and sort them best first.

    Without order locations only the search term filters and the input
    order is kept. Equal scores keep their input order.
    """
    threshold = float(threshold)
    ranked = []
    for person in persons:
        if search_term and not _matches_search(person, search_term):
            continue
        value = best_score(person.location, order_locations)
        if order_locations and value < threshold:
            continue
        ranked.append(RankedCandidate(
            person=person,
            score=value,
            tier=match_tier(value, threshold) if order_locations else MatchTier.LOW,
            details=detailed_scores(person.location, order_locations),
        ))

    if order_locations:
        ranked.sort(key=lambda candidate: candidate.score, reverse=True)
    return ranked
