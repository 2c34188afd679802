"""Tests for the candidate deduplication engine."""

from __future__ import annotations

import itertools

import pytest

from workflows.dedup import (
    DedupOptions,
    DedupSeenSet,
    canonicalize_name,
    dedupe_candidates,
    is_duplicate,
    token_overlap,
)


def test_canonicalize_strips_accents_and_punctuation():
    assert canonicalize_name("  Musée d'Orsay! ") == "musee d orsay"
    assert canonicalize_name(None) == ""


@pytest.mark.parametrize("name", ["Duomo di Milano", "Milan Cathedral", "Cattedrale di Milano", "Il Duomo, Milano"])
def test_milan_cathedral_aliases_share_a_key(name):
    assert canonicalize_name(name) == "duomo milan"


@pytest.mark.parametrize("name", ["The Last Supper", "Cenacolo Vinciano", "Leonardo's Ultima Cena"])
def test_last_supper_aliases_share_a_key(name):
    assert canonicalize_name(name) == "last supper da vinci"


def test_cathedral_without_milan_keeps_its_own_name():
    assert canonicalize_name("Barcelona Cathedral") == "barcelona cathedral"


def test_token_overlap_ignores_stopwords():
    assert token_overlap("Musée du Louvre", "The Louvre Musee") == 1.0
    assert token_overlap("", "Louvre") == 0.0


def test_identical_ids_are_duplicates_regardless_of_name_and_place(make_poi):
    a = make_poi("Sagrada Familia", 41.4036, 2.1744, id="ChIJ1")
    b = make_poi("Completely different", 48.8566, 2.3522, id="ChIJ1")
    assert is_duplicate(a, b)
    assert is_duplicate(b, a)


def test_aliased_landmark_within_canonical_radius(make_poi):
    duomo = make_poi("Duomo di Milano", 45.4642, 9.1900, id="a", city="Milan")
    near = make_poi("Milan Cathedral", 45.4800, 9.1900, id="b", city="Milan")  # ~1.8 km
    far = make_poi("Milan Cathedral", 45.4900, 9.1900, id="c", city="Milan")  # ~2.9 km
    assert is_duplicate(duomo, near)
    assert not is_duplicate(duomo, far)


def test_same_canonical_name_without_coordinates_is_duplicate(make_poi):
    a = make_poi("Park Güell", None, None, id="a")
    b = make_poi("park guell", None, None, id="b")
    assert is_duplicate(a, b)


def test_similar_wording_requires_proximity(make_poi):
    a = make_poi("Sagrada Familia Basilica", 41.4036, 2.1744, id="a")
    close = make_poi("Basilica Sagrada Familia", 41.4040, 2.1750, id="b")
    far = make_poi("Basilica Sagrada Familia", 41.4500, 2.1744, id="c")
    assert is_duplicate(a, close)
    assert not is_duplicate(a, far)


def test_substring_rule_for_long_names(make_poi):
    a = make_poi("Casa Batllo Gaudi", 41.3917, 2.1649, id="a")
    b = make_poi("Casa Batllo Gaudi Museum", 41.3918, 2.1650, id="b")
    assert is_duplicate(a, b)


def test_short_substring_is_not_enough(make_poi):
    a = make_poi("Museu", 41.3917, 2.1649, id="a")
    b = make_poi("Museu Picasso", 41.3917, 2.1649, id="b")
    assert not is_duplicate(a, b)


def test_empty_name_is_never_a_duplicate(make_poi):
    a = make_poi("!!!", 41.3917, 2.1649, id="a")
    b = make_poi("???", 41.3917, 2.1649, id="b")
    assert not is_duplicate(a, b)


def test_is_duplicate_is_symmetric(make_poi):
    pois = [
        make_poi("Duomo di Milano", 45.4642, 9.1900, id="1", city="Milan"),
        make_poi("Milan Cathedral", 45.4641, 9.1919, id="2", city="Milan"),
        make_poi("Casa Batllo Gaudi", 41.3917, 2.1649, id="3"),
        make_poi("Casa Batllo Gaudi Museum", 41.3918, 2.1650, id="4"),
        make_poi("Sagrada Familia Basilica", 41.4036, 2.1744, id="5"),
        make_poi("Basilica Sagrada Familia", 41.4040, 2.1750, id="6"),
        make_poi("Museu Picasso", None, None, id="7"),
        make_poi("Museu Picasso", 41.3852, 2.1809, id="8"),
        make_poi("Museu", 41.3852, 2.1809, id="9"),
    ]
    for a, b in itertools.combinations(pois, 2):
        assert is_duplicate(a, b) == is_duplicate(b, a), (a.name, b.name)


def test_options_override_thresholds(make_poi):
    a = make_poi("Sagrada Familia Basilica", 41.4036, 2.1744, id="a")
    b = make_poi("Basilica Sagrada Familia", 41.4080, 2.1744, id="b")  # ~0.5 km
    assert not is_duplicate(a, b)
    assert is_duplicate(a, b, DedupOptions(near_distance_km=1.0))


def test_dedupe_drops_within_batch_and_against_seen(make_poi):
    seen = DedupSeenSet().extend([make_poi("Park Guell", 41.4145, 2.1527, id="pg")])
    batch = [
        make_poi("Park Güell", 41.4146, 2.1528, id="pg-2"),
        make_poi("Museu Picasso", 41.3852, 2.1809, id="mp"),
        make_poi("Museu Picasso", 41.3852, 2.1809, id="mp-2"),
    ]
    result = dedupe_candidates(batch, seen)

    assert [p.id for p in result.kept] == ["mp"]
    assert [p.id for p in result.dropped] == ["pg-2", "mp-2"]
    assert [p.id for p in result.seen] == ["pg", "mp"]


def test_seen_set_is_never_mutated(make_poi):
    seen = DedupSeenSet()
    first = dedupe_candidates([make_poi("Museu Picasso", id="mp")], seen)
    second = dedupe_candidates([make_poi("Museu Picasso", id="mp")], seen)

    assert len(seen) == 0
    assert [p.id for p in first.kept] == ["mp"]
    # a second run starting from its own empty set does not see the first run's picks
    assert [p.id for p in second.kept] == ["mp"]


def test_dedupe_keeps_input_untouched(make_poi):
    batch = [make_poi("Museu Picasso", id="mp"), make_poi("Museu Picasso", id="mp")]
    dedupe_candidates(batch)
    assert len(batch) == 2
