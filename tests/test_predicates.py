"""
Tests for predicates.py - deceased, professional and name heuristics.
"""

from prfinder.predicates import (
    first_names_equivalent,
    is_deceased_text,
    is_professional_text,
    is_rare_surname,
    mentions_name,
    name_similarity,
    names_match,
    shares_first_last,
    surname,
)


def test_is_deceased_text():
    assert is_deceased_text("In Memoriam: Jane Smith")
    assert is_deceased_text("Jane Smith, deceased")
    assert is_deceased_text("Died on March 3")
    assert not is_deceased_text("Jane Smith, 54, Seattle")
    assert not is_deceased_text(None)


class TestProfessional:
    def test_keywords(self):
        assert is_professional_text("Jane Smith, Attorney at Law")
        assert is_professional_text("Law Office of Jane Smith")
        assert is_professional_text("Jane Smith, Esq.")
        assert is_professional_text("Jane Smith JD")

    def test_no_false_positive_inside_words(self):
        assert not is_professional_text("Jdoe Smith")
        assert not is_professional_text("Jane Smith, Seattle WA")
        assert not is_professional_text(None)


class TestNameMatching:
    def test_nicknames(self):
        assert first_names_equivalent("Robert", "bob")
        assert first_names_equivalent("bob", "Robert")
        assert not first_names_equivalent("robert", "bill")

    def test_shares_first_last(self):
        assert shares_first_last("Bob Smith", "Robert J Smith")
        assert not shares_first_last("Bob Smith", "Robert Jones")
        assert not shares_first_last("", "Robert Jones")

    def test_names_match_is_fuzzy_on_first_and_last(self):
        assert names_match("JANE SMITH", "Jane A Smith")
        assert names_match("Jon Smith", "John Smith")
        assert not names_match("Jane Smith", "John Smith")

    def test_name_similarity_ignores_order(self):
        assert name_similarity("Smith Jane", "Jane Smith") == 100

    def test_mentions_name(self):
        assert mentions_name(["John Smith", "Ann Lee"], "ann lee")
        assert not mentions_name([], "Ann Lee")


def test_surnames():
    assert surname("Karl Stordahl Jr") == "stordahl"
    assert is_rare_surname("Karl Stordahl")
    assert not is_rare_surname("Jane Smith")
    assert not is_rare_surname("Al Wu")
