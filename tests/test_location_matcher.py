# tests/test_location_matcher.py
import pytest

from campus_delivery.models.delivery import DeliveryPerson
from campus_delivery.services.location_matcher import (
    MatchThreshold,
    MatchTier,
    best_score,
    match_tier,
    rank_candidates,
    score,
    tokenize,
)


def person(user_id, location, contact=None):
    return DeliveryPerson(user_id=user_id, is_available=True, location=location,
                          contact=contact or f"@courier{user_id}")


def test_tokenize_drops_short_and_repeated_words():
    assert tokenize("Hall 3, Room 210, hall") == ["hall", "room", "210"]
    assert tokenize("Café #2 (north)") == ["café", "north"]


def test_identical_locations_score_one():
    assert score("Library", "library") == 1.0


def test_empty_locations_score_zero():
    assert score("", "Library") == 0.0
    assert score("Library", None) == 0.0
    assert score("!!", "??") == 0.0


def test_containment_scores_by_length_ratio():
    assert score("cafe", "cafe 6th floor") == pytest.approx(0.7 + 0.3 * 4 / 14)
    assert score("cafe", "cafe 6th floor") >= score("cafe", "6th floor cafeteria")


def test_exact_token_overlap():
    # hall, room, 210 against room, 210, library
    assert score("Hall 3 Room 210", "Room 210 Library") == pytest.approx(2 / 4)


def test_partial_token_overlap():
    # main matches exactly, lib is a partial of library
    expected = (1 + 0.5 * 3 / 7) / 3
    assert score("Lib Main", "Main Library") == pytest.approx(expected)


@pytest.mark.parametrize("a, b", [
    ("Hall 3", "hall three annex"),
    ("North Gate", "Gate"),
    ("x", "y"),
    ("Engineering Building 2", "Building 12 engineering lab"),
])
def test_score_is_bounded(a, b):
    assert 0.0 <= score(a, b) <= 1.0


def test_best_score_is_max_over_locations():
    locations = ["Cafe", "Main Library"]
    assert best_score("Library", locations) == max(score("Library", loc) for loc in locations)
    assert best_score("Library", []) == 0.0


def test_match_tier():
    assert match_tier(0.6) == MatchTier.HIGH
    assert match_tier(0.35) == MatchTier.MEDIUM
    assert match_tier(0.2) == MatchTier.LOW
    assert match_tier(0.2, MatchThreshold.LOW) == MatchTier.MEDIUM


def test_rank_filters_and_sorts_best_first():
    persons = [
        person(1, "Sports Complex"),
        person(2, "Library 2nd floor"),
        person(3, "Library"),
    ]
    ranked = rank_candidates(persons, ["Cafe", "Library"], MatchThreshold.MEDIUM)

    assert [c.person.user_id for c in ranked] == [3, 2]
    assert ranked[0].score == 1.0
    assert ranked[0].tier == MatchTier.HIGH
    assert [d.location for d in ranked[0].details] == ["Cafe", "Library"]


def test_rank_keeps_input_order_on_ties():
    persons = [person(1, "Library"), person(2, "Library")]
    ranked = rank_candidates(persons, ["Library"])
    assert [c.person.user_id for c in ranked] == [1, 2]


def test_lower_threshold_admits_more_candidates():
    persons = [person(1, "Lib Main"), person(2, "Main Library")]
    high = rank_candidates(persons, ["Main Library"], MatchThreshold.HIGH)
    low = rank_candidates(persons, ["Main Library"], MatchThreshold.LOW)
    assert len(high) == 1
    assert len(low) == 2


def test_search_term_filters_contact_or_location():
    persons = [person(1, "Library", "@alice"), person(2, "Cafe", "@bob")]
    assert [c.person.user_id for c in rank_candidates(persons, [], search_term="bob")] == [2]
    assert [c.person.user_id for c in rank_candidates(persons, [], search_term="libr")] == [1]


def test_without_locations_everyone_is_listed_unranked():
    persons = [person(1, "Cafe"), person(2, "Library")]
    ranked = rank_candidates(persons, [])
    assert [c.person.user_id for c in ranked] == [1, 2]
    assert all(c.tier == MatchTier.LOW and c.score == 0.0 for c in ranked)
