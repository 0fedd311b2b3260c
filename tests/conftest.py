"""
Pytest configuration and shared fixtures.
"""

import threading
from typing import Dict, List, Optional

import pytest

from prfinder.cache import ProfileCache
from prfinder.config import ResolverConfig
from prfinder.logger import StructuredLogger
from prfinder.merger import PhoneMerger
from prfinder.models import Candidate, DetailProfile, LocationHint, MatchResult, Relative, Source
from prfinder.oracle import RuleBasedOracle
from prfinder.resolver import TieredResolver
from prfinder.retry import RetryPolicy
from prfinder.sources.common import SourceAdapter


class FakeAdapter(SourceAdapter):
    """
    In-memory adapter.

    ``local`` answers state-scoped searches, ``nationwide`` answers searches
    with no state; both map a lowercase name to its candidates.
    """

    def __init__(self, source=Source.TEST, local=None, nationwide=None, profiles=None, error=None):
        self.source = source
        self.local: Dict[str, List[Candidate]] = local or {}
        self.nationwide: Dict[str, List[Candidate]] = nationwide or {}
        self.profiles: Dict[str, DetailProfile] = profiles or {}
        self.error = error
        self.searches: List[tuple] = []
        self.fetches: List[str] = []
        self._lock = threading.Lock()

    def search(self, name: str, hint: LocationHint) -> List[Candidate]:
        with self._lock:
            self.searches.append((name, hint))
        if self.error:
            raise self.error
        table = self.nationwide if hint.nationwide else self.local
        return list(table.get(name.lower(), []))

    def fetch_detail(self, detail_reference: str) -> Optional[DetailProfile]:
        with self._lock:
            self.fetches.append(detail_reference)
        if self.error:
            raise self.error
        return self.profiles.get(detail_reference)


class RecordingOracle(RuleBasedOracle):
    """Rule engine that remembers how often it was asked."""

    def __init__(self, scripted: Optional[List[MatchResult]] = None, names: Optional[List[str]] = None):
        super().__init__()
        self.calls: List[list] = []
        self.extractions: List[str] = []
        self.scripted = list(scripted or [])
        self.names = names

    def match(self, description, candidates):
        self.calls.append(list(candidates))
        if self.scripted:
            return self.scripted.pop(0)
        return super().match(description, candidates)

    def extract_names(self, subject, text):
        self.extractions.append(text)
        if self.names is not None:
            return list(self.names)
        return super().extract_names(subject, text)


@pytest.fixture
def logger() -> StructuredLogger:
    """Logger with no console or file output."""
    return StructuredLogger(name="prfinder-test", enable_file=False, enable_console=False)


@pytest.fixture
def fast_config() -> ResolverConfig:
    """Default thresholds with retries that never sleep long."""
    return ResolverConfig(oracle_retry=RetryPolicy(max_retries=2, base_delay=0.0))


@pytest.fixture
def make_candidate():
    def factory(name, source=Source.TEST, location="", phones=(), relatives=(), ref=None,
                age=None, deceased=None, snippet=None):
        return Candidate(
            full_name=name,
            source=source,
            age=age,
            location=location,
            detail_reference=ref,
            visible_phones=frozenset(phones),
            relatives=tuple(Relative(r) if isinstance(r, str) else r for r in relatives),
            is_deceased=deceased,
            raw_snippet=snippet,
        )
    return factory


@pytest.fixture
def build_resolver(logger, fast_config):
    """Factory wiring fake adapters into a resolver with a fresh cache."""
    def factory(adapters, oracle=None, config=None, web=None, cache=None):
        config = config or fast_config
        oracle = oracle or RecordingOracle()
        merger = PhoneMerger(cache or ProfileCache(), adapters, config.max_deep_fetches, logger=logger)
        return TieredResolver(adapters, oracle, merger, config=config, web=web, logger=logger)
    return factory


@pytest.fixture
def radaris_search_html() -> str:
    return """
    <html>
    <head><title>Jane Smith - 3 people found | Radaris</title></head>
    <body>
        <div class="teaser-card">
            <div class="card-title" data-href="/~Jane-Smith/123456">Jane  Smith</div>
            <span class="age">Age 54</span>
            <div class="many-links-item">Seattle, WA</div>
        </div>
        <div class="teaser-card">
            <a class="card-title" href="https://radaris.com/~Jane-Smith/654321">Jane A Smith</a>
            <div class="text-item">
                <span class="text-item_caption">Lived in</span>
                <span class="text-item_content">Portland, OR</span>
            </div>
        </div>
        <div class="teaser-card">
            <div class="card-title">No Link</div>
        </div>
    </body>
    </html>
    """


@pytest.fixture
def radaris_profile_html() -> str:
    return """
    <html>
    <head><title>Jane Smith, 54 - Seattle, WA | Radaris</title></head>
    <body>
        <h1>Jane Smith</h1>
        <a href="/ng/phone/2065551234">(206) 555-1234</a>
        <a href="tel:+14255550000">425-555-0000</a>
        <span class="truncate-text">(206) 555-1234</span>
        <div class="related-to">
            <div class="item"><a href="/~John-Smith/777">John Smith, 80</a></div>
            <div class="item"><a href="/~Al/1">Al</a></div>
        </div>
    </body>
    </html>
    """


@pytest.fixture
def spf_search_html() -> str:
    return """
    <html><body>
        <div class="card">
            <h2>Diane K Martin</h2>
            <span>Age 61</span>
            <address>Tacoma,
                WA</address>
            <a href="/find/diane-martin/abc123">View details</a>
        </div>
        <div class="card"><h2>Missing Link</h2></div>
    </body></html>
    """


@pytest.fixture
def spf_profile_html() -> str:
    return """
    <html><body>
        <h1>Diane K Martin</h1>
        <a href="tel:2535550101">(253) 555-0101</a>
        <h3>Relatives</h3>
        <ul><li><a href="/find/thomas-martin/def456">Thomas R Martin</a></li></ul>
        <p>Deceased</p>
    </body></html>
    """
