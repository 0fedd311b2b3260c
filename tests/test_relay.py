"""
Tests for relay.py - household relay, obituary survivors and address pivot.
"""

import pytest

from prfinder.cache import ProfileCache
from prfinder.merger import PhoneMerger
from prfinder.models import MatchResult, SearchTarget, Source, not_found, ResolutionOutcome
from prfinder.relay import address_pivot, find_backlink, household_relay, obituary_survivors, search_text_safely
from prfinder.retry import RetryPolicy
from prfinder.sources.common import SourceUnavailable

from conftest import RecordingOracle

NO_SLEEP = RetryPolicy(max_retries=1, base_delay=0.0)
TARGET = SearchTarget("Jane Smith", "Thomas Martin", "Seattle", "WA", "123 Main St, Seattle, WA 98101")


class FakeWeb:
    source = Source.WEB

    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.queries = []

    def search_text(self, query):
        self.queries.append(query)
        if self.error:
            raise self.error
        return list(self.items)


@pytest.fixture
def merger(logger):
    return PhoneMerger(ProfileCache(), [], 8, logger=logger)


class FakeGather:
    def __init__(self, pools):
        self.pools = pools
        self.calls = []

    def __call__(self, name, nationwide):
        self.calls.append((name, nationwide))
        return list(self.pools.get((name, nationwide), []))


def test_search_text_safely(logger):
    assert search_text_safely(None, "q", logger) == []
    assert search_text_safely(FakeWeb(error=SourceUnavailable("Web", "quota")), "q", logger) == []
    assert search_text_safely(FakeWeb(items=[{"title": "t"}]), "q", logger) == [{"title": "t"}]


def test_find_backlink(make_candidate):
    pool = [
        make_candidate("John Smith", relatives=["Jane Smith"], deceased=True),
        make_candidate("John Smith", relatives=["Mary Jones"]),
        make_candidate("John Q Smith", relatives=["Jane A Smith"]),
    ]
    assert find_backlink(pool, "Jane Smith", 85) is pool[2]
    assert find_backlink(pool[:2], "Jane Smith", 85) is None


class TestHouseholdRelay:
    MATCH = MatchResult(0, 88, "Jane Smith: linked")

    def test_reciprocal_link_yields_phones(self, make_candidate, merger, logger):
        best = make_candidate("Jane Smith", relatives=["John Smith"])
        link = make_candidate("John Smith", location="Seattle, WA", relatives=["Jane Smith"], phones=["2065559999"])
        gather = FakeGather({("John Smith", False): [link]})

        outcome = household_relay(best, self.MATCH, TARGET, gather, merger, logger=logger)

        assert outcome.found
        assert outcome.primary_phone == "(206) 555-9999"
        assert outcome.chosen_name == "Jane Smith"
        assert outcome.source == "Relay (Household)"
        assert outcome.tier == "relay"
        assert outcome.confidence == 88
        assert outcome.rationale.startswith("Found via household link through John Smith")
        assert gather.calls == [("John Smith", False)]

    def test_falls_back_to_nationwide(self, make_candidate, merger, logger):
        best = make_candidate("Jane Smith", relatives=["John Smith"])
        link = make_candidate("John Smith", relatives=["Jane Smith"], phones=["5035550000"])
        gather = FakeGather({
            ("John Smith", False): [make_candidate("John Smith")],
            ("John Smith", True): [link],
        })

        outcome = household_relay(best, self.MATCH, TARGET, gather, merger, logger=logger)

        assert outcome.primary_phone == "(503) 555-0000"
        assert gather.calls == [("John Smith", False), ("John Smith", True)]

    def test_no_backlink(self, make_candidate, merger, logger):
        best = make_candidate("Jane Smith", relatives=["John Smith"])
        gather = FakeGather({("John Smith", False): [make_candidate("John Smith", phones=["2065559999"])]})

        assert household_relay(best, self.MATCH, TARGET, gather, merger, logger=logger) is None

    def test_no_relatives(self, make_candidate, merger, logger):
        gather = FakeGather({})
        assert household_relay(make_candidate("Jane Smith"), self.MATCH, TARGET, gather, merger, logger=logger) is None
        assert gather.calls == []

    def test_relatives_are_capped(self, make_candidate, merger, logger):
        best = make_candidate("Jane Smith", relatives=["Al Bee", "Cy Dee", "Ed Eff", "Gus Hay", "Ida Jay"])
        gather = FakeGather({})

        household_relay(best, self.MATCH, TARGET, gather, merger, max_relatives=3, logger=logger)

        assert {name for name, _ in gather.calls} == {"Al Bee", "Cy Dee", "Ed Eff"}


class TestObituarySurvivors:
    ITEMS = [
        {"title": "Thomas Martin Obituary", "link": "https://obits.example.com/1",
         "snippet": "Thomas Martin, 88, is survived by his wife Ann Martin and son Paul Martin."},
        {"title": "Thomas Martin", "link": "https://obits.example.com/2", "snippet": "Services Friday."},
    ]

    def test_resolves_survivors(self, logger):
        web = FakeWeb(self.ITEMS)
        oracle = RecordingOracle()
        resolved = []

        def resolve_direct(target):
            resolved.append(target)
            if target.person_name == "Paul Martin":
                return ResolutionOutcome(True, "Paul Martin", "(206) 555-7777", ("(206) 555-7777",),
                                         "Test", 90, "Paul Martin: linked", "local")
            return not_found("nothing")

        outcome = obituary_survivors(TARGET, web, oracle, resolve_direct, NO_SLEEP, logger=logger)

        assert web.queries == ['Obituary "Thomas Martin" WA']
        assert "\n---\n" in oracle.extractions[0]
        assert {t.person_name for t in resolved} == {"Ann Martin", "Paul Martin"}
        assert all(t.associated_name == "Thomas Martin" for t in resolved)
        assert outcome.tier == "obituary"
        assert outcome.chosen_name == "Paul Martin"
        assert outcome.rationale == "Recovered via obituary: Paul Martin: linked"

    def test_survivor_limit(self, logger):
        resolved = []

        def resolve_direct(target):
            resolved.append(target.person_name)
            return not_found("nothing")

        outcome = obituary_survivors(TARGET, FakeWeb(self.ITEMS), RecordingOracle(), resolve_direct,
                                     NO_SLEEP, max_survivors=1, logger=logger)

        assert outcome is None
        assert resolved == ["Ann Martin"]

    def test_requires_decedent_and_web(self, logger):
        def resolve_direct(target):
            raise AssertionError("should not resolve")

        no_decedent = SearchTarget("Jane Smith", state="WA")
        assert obituary_survivors(no_decedent, FakeWeb(self.ITEMS), RecordingOracle(), resolve_direct,
                                  logger=logger) is None
        assert obituary_survivors(TARGET, None, RecordingOracle(), resolve_direct, logger=logger) is None

    def test_web_failure(self, logger):
        web = FakeWeb(error=SourceUnavailable("Web", "quota"))
        outcome = obituary_survivors(TARGET, web, RecordingOracle(), lambda t: not_found("x"), logger=logger)
        assert outcome is None


class TestAddressPivot:
    ITEMS = [
        {"title": "123 Main St, Seattle, WA | Zillow", "link": "https://zillow.com/x", "snippet": "(206) 555-0001"},
        {"title": "Pat Lee - 123 Main St Seattle | Whitepages", "link": "https://example.com/pat",
         "snippet": "Pat Lee, 47. Phone (206) 555-0000"},
    ]

    def test_finds_co_resident(self, logger):
        web = FakeWeb(self.ITEMS)

        outcome = address_pivot(TARGET, web, RecordingOracle(), NO_SLEEP, logger=logger)

        assert web.queries == ['"123 Main St, Seattle, WA 98101" residents "Full Name"']
        assert outcome.found
        assert outcome.chosen_name == "Pat Lee"
        assert outcome.primary_phone == "(206) 555-0000"
        assert outcome.source == "Address Pivot"
        assert outcome.tier == "address_pivot"
        assert outcome.rationale.startswith("Found at target address: ")

    def test_below_threshold(self, logger):
        outcome = address_pivot(TARGET, FakeWeb(self.ITEMS), RecordingOracle(), NO_SLEEP, threshold=60, logger=logger)
        assert outcome is None

    def test_requires_address(self, logger):
        target = SearchTarget("Jane Smith", "Thomas Martin", "Seattle", "WA")
        web = FakeWeb(self.ITEMS)
        assert address_pivot(target, web, RecordingOracle(), logger=logger) is None
        assert web.queries == []
