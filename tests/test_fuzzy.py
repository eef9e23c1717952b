import pytest

from randonneurs.fuzzy import (
    are_nickname_equivalent,
    find_fuzzy_name_matches,
    fuzzy_name_score,
    levenshtein,
    name_variants,
    similarity,
)


def test_name_variants_expand_both_directions():
    variants = name_variants("Bob")
    assert variants[0] == "bob"
    assert "robert" in variants
    assert "rob" in variants

    variants = name_variants("william")
    assert {"bill", "will", "liam"} <= set(variants)


def test_nickname_equivalence():
    assert are_nickname_equivalent("Bill", "William")
    assert are_nickname_equivalent("bob", "robbie")  # share "robert"
    assert not are_nickname_equivalent("bob", "william")


@pytest.mark.parametrize("a,b,d", [("kitten", "sitting", 3), ("", "abc", 3), ("Smith", "smith", 0), ("smith", "smyth", 1)])
def test_levenshtein(a, b, d):
    assert levenshtein(a, b) == d


def test_similarity():
    assert similarity("", "") == 1.0
    assert similarity("smith", "smyth") == pytest.approx(0.8)


def test_score_exact_and_nickname():
    assert fuzzy_name_score("Robert", "Smith", "robert", "smith") == 1.0
    assert fuzzy_name_score("Bob", "Smith", "Robert", "Smith") == 1.0
    assert fuzzy_name_score("Sean", "O'Callahan", "Sean", "OCallahan") == 1.0


def test_score_tolerates_swapped_names():
    assert fuzzy_name_score("Smith", "Robert", "Robert", "Smith") == 1.0


def test_score_of_unrelated_names_is_low():
    assert fuzzy_name_score("Alice", "Walker", "Zed", "Quon") < 0.4


def test_find_matches_sorted_and_thresholded():
    people = [("Robert", "Smith"), ("Rob", "Smyth"), ("Jane", "Doe")]
    matches = find_fuzzy_name_matches("Bob", "Smith", people, lambda p: p[0], lambda p: p[1], threshold=0.5)
    assert [m.item for m in matches] == [("Robert", "Smith"), ("Rob", "Smyth")]
    assert matches[0].score >= matches[1].score

    assert find_fuzzy_name_matches("Bob", "Smith", people, lambda p: p[0], lambda p: p[1], max_results=1)[0].item == ("Robert", "Smith")
