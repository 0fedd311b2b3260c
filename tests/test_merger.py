"""
Tests for merger.py - phone merge, ranking and the deep-fetch bound.
"""

from prfinder.cache import ProfileCache
from prfinder.merger import (
    FetchBudget,
    PhoneMerger,
    age_corroborates,
    location_corroborates,
    rank_phones,
)
from prfinder.models import DetailProfile, SearchTarget

from conftest import FakeAdapter

TARGET = SearchTarget("Jane Smith", "John Smith", "Seattle", "WA")


def make_merger(adapter, logger, max_deep_fetches=8, **kwargs):
    return PhoneMerger(ProfileCache(), [adapter], max_deep_fetches, logger=logger, **kwargs)


class TestRankPhones:
    def test_in_state_first_and_stable(self):
        phones = ["(503) 555-0000", "212-555-0000", "2065551234", "(425) 555-0000"]
        assert rank_phones(phones, "WA") == ["2065551234", "4255550000", "5035550000", "2125550000"]

    def test_unknown_state_keeps_order(self):
        assert rank_phones(["5035550000", "2065551234"], None) == ["5035550000", "2065551234"]

    def test_dedupes(self):
        assert rank_phones(["206-555-1234", "(206) 555-1234"], "WA") == ["2065551234"]


def test_corroboration(make_candidate):
    a = make_candidate("Jane Smith", location="Seattle, WA", age="54")
    assert location_corroborates(a, make_candidate("Jane Smith", location="seattle, wa"))
    assert location_corroborates(a, make_candidate("Jane Smith"))
    assert not location_corroborates(a, make_candidate("Jane Smith", location="Miami, FL"))
    assert age_corroborates(a, make_candidate("Jane Smith", age="55"))
    assert not age_corroborates(a, make_candidate("Jane Smith", age="60"))
    assert not age_corroborates(a, make_candidate("Jane Smith"))


def test_fetch_budget():
    budget = FetchBudget(2)
    assert budget.take() and budget.take()
    assert not budget.take()
    assert budget.remaining == 0


class TestRelatedGroup:
    def test_same_name_corroborated_entries(self, make_candidate, logger):
        best = make_candidate("Jane Smith", location="Seattle, WA", age="54")
        pool = [
            best,
            make_candidate("Jane A Smith", location="Seattle, WA"),
            make_candidate("Jane Smith", location="Miami, FL", age="55"),
            make_candidate("Jane Smith", location="Miami, FL", age="30"),
            make_candidate("Jane Smith", location="Seattle, WA", deceased=True),
            make_candidate("Mary Smith", location="Seattle, WA"),
        ]

        group = make_merger(FakeAdapter(), logger).related_group(best, pool, TARGET)

        assert group == [pool[1], pool[2]]


class TestMerge:
    def test_result_is_superset_of_visible_phones(self, make_candidate, logger):
        adapter = FakeAdapter(profiles={"/jane": DetailProfile(all_phones=frozenset({"4255550000"}))})
        best = make_candidate("Jane Smith", location="Seattle, WA", phones=["2065551234"], ref="/jane")

        phones = make_merger(adapter, logger).merge(best, [best], TARGET)

        assert phones == ["(206) 555-1234", "(425) 555-0000"]

    def test_related_entries_contribute(self, make_candidate, logger):
        best = make_candidate("Jane Smith", location="Seattle, WA", phones=["2065551234"])
        twin = make_candidate("Jane Smith", location="Seattle, WA", phones=["5035550000"])

        phones = make_merger(FakeAdapter(), logger).merge(best, [best, twin], TARGET)

        assert phones == ["(206) 555-1234", "(503) 555-0000"]

    def test_blacklist_removed(self, make_candidate, logger):
        best = make_candidate("Jane Smith", phones=["(855) 723-2747", "2065551234"])
        assert make_merger(FakeAdapter(), logger).merge(best, [best], TARGET) == ["(206) 555-1234"]

    def test_custom_blacklist(self, make_candidate, logger):
        best = make_candidate("Jane Smith", phones=["2065551234"])
        merger = make_merger(FakeAdapter(), logger, blacklist=["206-555-1234"])
        assert merger.merge(best, [best], TARGET) == []

    def test_no_phones_is_empty(self, make_candidate, logger):
        best = make_candidate("Jane Smith", ref="/jane")
        assert make_merger(FakeAdapter(), logger).merge(best, [best], TARGET) == []

    def test_deterministic(self, make_candidate, logger):
        pool = [
            make_candidate("Jane Smith", location="Seattle, WA", phones=["5035550000", "2065551234"], ref="/a"),
            make_candidate("Jane Smith", location="Seattle, WA", phones=["4255550000"], ref="/b"),
        ]
        adapter = FakeAdapter(profiles={"/b": DetailProfile(all_phones=frozenset({"3605550000"}))})
        merger = make_merger(adapter, logger)

        first = merger.merge(pool[0], pool, TARGET)
        second = merger.merge(pool[0], pool, TARGET)

        assert first == second
        assert first[-1] == "(503) 555-0000"

    def test_fetch_failure_falls_back_to_visible(self, make_candidate, logger):
        adapter = FakeAdapter(error=RuntimeError("blocked"))
        best = make_candidate("Jane Smith", phones=["2065551234"], ref="/jane")

        assert make_merger(adapter, logger).merge(best, [best], TARGET) == ["(206) 555-1234"]

    def test_deep_fetches_are_bounded(self, make_candidate, logger):
        pool = [make_candidate("Jane Smith", location="Seattle, WA", ref=f"/p/{i}") for i in range(50)]
        adapter = FakeAdapter()

        make_merger(adapter, logger, max_deep_fetches=8).merge(pool[0], pool, TARGET)

        assert len(adapter.fetches) == 8
        assert "/p/0" in adapter.fetches

    def test_duplicate_references_fetched_once(self, make_candidate, logger):
        pool = [make_candidate("Jane Smith", location="Seattle, WA", ref="/same") for _ in range(3)]
        adapter = FakeAdapter()

        make_merger(adapter, logger).merge(pool[0], pool, TARGET)

        assert adapter.fetches == ["/same"]

    def test_shared_budget_and_cache(self, make_candidate, logger):
        pool = [make_candidate("Jane Smith", location="Seattle, WA", ref=f"/p/{i}") for i in range(5)]
        adapter = FakeAdapter()
        merger = make_merger(adapter, logger)
        budget = FetchBudget(2)

        merger.merge(pool[0], pool, TARGET, budget=budget)
        assert len(adapter.fetches) == 2

        # Cached references cost nothing, so a spent budget still serves them
        merger.merge(pool[0], pool, TARGET, budget=budget)
        assert len(adapter.fetches) == 2
        assert logger.get_metrics()["cache_hits"] >= 2

    def test_related_entry_revealed_deceased_is_dropped(self, make_candidate, logger):
        best = make_candidate("Jane Smith", location="Seattle, WA", phones=["2065551234"])
        late = make_candidate("Jane Smith", location="Seattle, WA", phones=["2065550000"], ref="/late")
        adapter = FakeAdapter(profiles={
            "/late": DetailProfile(all_phones=frozenset({"4255550000"}), is_deceased=True),
        })

        phones = make_merger(adapter, logger).merge(best, [best, late], TARGET)

        assert phones == ["(206) 555-1234"]
