"""
Phone merger.

Given the chosen candidate and the pool it came from, collect every phone
that plausibly belongs to the same person: the candidate's own visible
phones, the phones of same-named corroborated pool entries, and a bounded
number of deep-fetched profiles. Output is normalized, deduplicated,
blacklist-filtered and ranked with in-state area codes first.
"""

import re
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence

from .cache import ProfileCache
from .logger import StructuredLogger, get_logger
from .models import Candidate, DetailProfile, SearchTarget, Source
from .normalize import STATE_AREA_CODES, area_code, format_phone, normalize_phones, normalize_text, state_code
from .predicates import shares_first_last
from .sources.common import SourceAdapter, safe_fetch_detail

# Provider support line that shows up on scraped profiles
DEFAULT_BLACKLIST = frozenset({"8557232747"})


class FetchBudget:
    """Thread-safe count of deep-fetches still allowed in one resolution run."""

    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0
        self._lock = threading.Lock()

    def take(self) -> bool:
        with self._lock:
            if self.used >= self.limit:
                return False
            self.used += 1
            return True

    @property
    def remaining(self) -> int:
        with self._lock:
            return self.limit - self.used


def rank_phones(phones: Iterable[str], state: Optional[str]) -> List[str]:
    """
    Normalize, dedupe and order phones: in-state area codes first.

    The sort is stable, so ties keep discovery order.
    """
    normalized = normalize_phones(phones)
    local_codes = STATE_AREA_CODES.get(state_code(state), set())
    return sorted(normalized, key=lambda p: 0 if area_code(p) in local_codes else 1)


def _age(value: Optional[str]) -> Optional[int]:
    m = re.search(r"\d+", value or "")
    return int(m.group(0)) if m else None


def location_corroborates(a: Candidate, b: Candidate) -> bool:
    """Loose check; a missing location on either side does not disqualify."""
    la, lb = normalize_text(a.location), normalize_text(b.location)
    if not la or not lb:
        return True
    return la in lb or lb in la


def age_corroborates(a: Candidate, b: Candidate, tolerance: int = 1) -> bool:
    age_a, age_b = _age(a.age), _age(b.age)
    if age_a is None or age_b is None:
        return False
    return abs(age_a - age_b) <= tolerance


class PhoneMerger:
    def __init__(
        self,
        cache: ProfileCache,
        adapters: Iterable[SourceAdapter] = (),
        max_deep_fetches: int = 8,
        blacklist: Iterable[str] = DEFAULT_BLACKLIST,
        logger: Optional[StructuredLogger] = None,
    ):
        self.cache = cache
        self.adapters: Dict[Source, SourceAdapter] = {a.source: a for a in adapters}
        self.max_deep_fetches = max_deep_fetches
        self.blacklist = frozenset(normalize_phones(blacklist))
        self.logger = logger or get_logger()

    def related_group(self, best: Candidate, pool: Sequence[Candidate], target: SearchTarget) -> List[Candidate]:
        group = []
        for c in pool:
            if c is best or c.is_deceased:
                continue
            same_name = shares_first_last(c.full_name, target.person_name) or shares_first_last(
                c.full_name, best.full_name
            )
            if same_name and (location_corroborates(c, best) or age_corroborates(c, best)):
                group.append(c)
        return group

    def can_fetch(self, candidate: Candidate) -> bool:
        adapter = self.adapters.get(candidate.source)
        return bool(candidate.cache_key and adapter is not None and adapter.supports_detail)

    def fetch_profile(self, candidate: Candidate, budget: Optional[FetchBudget] = None) -> Optional[DetailProfile]:
        """
        Deep-fetch one candidate through the cache.

        Cached keys are free; new fetches draw on ``budget`` and are skipped
        once it is spent.
        """
        if not self.can_fetch(candidate):
            return None
        key = candidate.cache_key
        if key not in self.cache and budget is not None and not budget.take():
            self.logger.debug("Deep-fetch budget spent", ref=candidate.detail_reference)
            return None

        adapter = self.adapters[candidate.source]
        profile, fetched = self.cache.get_or_fetch(
            key, lambda: safe_fetch_detail(adapter, candidate.detail_reference, self.logger)
        )
        self.logger.record_deep_fetch(cache_hit=not fetched)
        return profile

    def fetch_targets(self, best: Candidate, related: Sequence[Candidate]) -> List[Candidate]:
        """Distinct fetchable references, best candidate first, capped."""
        targets, seen = [], set()
        for c in [best, *related]:
            if not self.can_fetch(c) or c.cache_key in seen:
                continue
            seen.add(c.cache_key)
            targets.append(c)
            if len(targets) >= self.max_deep_fetches:
                break
        return targets

    def merge(
        self,
        best: Candidate,
        pool: Sequence[Candidate],
        target: SearchTarget,
        budget: Optional[FetchBudget] = None,
    ) -> List[str]:
        """
        Return display-formatted phones for ``best``, primary first.

        An empty list means "match found, no contact info".
        """
        budget = budget or FetchBudget(self.max_deep_fetches)
        related = self.related_group(best, pool, target)

        to_fetch = self.fetch_targets(best, related)
        profiles: List[Optional[DetailProfile]] = []
        if to_fetch:
            with ThreadPoolExecutor(max_workers=len(to_fetch)) as executor:
                profiles = list(executor.map(lambda c: self.fetch_profile(c, budget), to_fetch))
        # A profile page can reveal a related entry as deceased
        deceased = {
            c.cache_key for c, p in zip(to_fetch, profiles)
            if c is not best and p is not None and p.is_deceased
        }

        discovered: List[str] = sorted(best.visible_phones)
        for c in related:
            if c.cache_key is None or c.cache_key not in deceased:
                discovered.extend(sorted(c.visible_phones))
        for c, profile in zip(to_fetch, profiles):
            if profile is not None and c.cache_key not in deceased:
                discovered.extend(sorted(profile.all_phones))

        kept = [p for p in normalize_phones(discovered) if p not in self.blacklist]
        ranked = rank_phones(kept, target.state)
        self.logger.debug(
            "Merged phones",
            name=best.full_name,
            related=len(related),
            fetched=len(to_fetch),
            phones=len(ranked),
        )
        return [format_phone(p) for p in ranked]
