"""
Tiered resolver.

Escalates through search tiers only as far as needed for one SearchTarget:

    local pool -> broadened pool -> household relay
        -> obituary survivors / address pivot -> greedy fallback

Every tier ends in either an accepted ResolutionOutcome or escalation; the
last resort is ``found=False`` with a rationale. ``resolve`` never raises,
so a batch keeps going whatever a single target does.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .config import ResolverConfig
from .logger import StructuredLogger, get_logger
from .merger import FetchBudget, PhoneMerger
from .models import Candidate, LocationHint, MatchResult, ResolutionOutcome, SearchTarget, not_found
from .names import search_variations
from .normalize import location_mentions_state, normalize_text
from .oracle import MatchOracle, TargetDescription, call_with_retry
from .relay import address_pivot, household_relay, obituary_survivors
from .sources.common import SourceAdapter, safe_search
from .sources.web import WebSearchAdapter


@dataclass
class TierAttempt:
    """What the direct tiers learned, handed to the fallbacks."""

    pool: List[Candidate] = field(default_factory=list)
    # Highest-confidence pick of any tier, accepted or not (greedy fallback)
    best: Optional[Candidate] = None
    match: MatchResult = field(default_factory=MatchResult)
    # Identity that cleared its tier threshold but yielded no phone (household relay)
    accepted: Optional[Candidate] = None
    accepted_match: Optional[MatchResult] = None

    def consider(self, best: Optional[Candidate], match: MatchResult) -> None:
        if best is None:
            # Keep the latest explanation until some tier produces a candidate
            if self.best is None:
                self.match = match
            return
        if self.best is None or match.confidence >= self.match.confidence:
            self.best, self.match = best, match

    def accept_without_phone(self, best: Candidate, match: MatchResult) -> None:
        if self.accepted is None or match.confidence >= self.accepted_match.confidence:
            self.accepted, self.accepted_match = best, match


class TieredResolver:
    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        oracle: MatchOracle,
        merger: PhoneMerger,
        config: Optional[ResolverConfig] = None,
        web: Optional[WebSearchAdapter] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.adapters = list(adapters)
        self.oracle = oracle
        self.merger = merger
        self.config = config or ResolverConfig()
        self.web = web
        self.logger = logger or get_logger()

    # Public entry point

    def resolve(self, target: SearchTarget) -> ResolutionOutcome:
        try:
            outcome = self._resolve(target)
        except Exception as e:
            self.logger.error(
                "Resolution crashed", name=target.person_name, error_type=type(e).__name__, error=str(e)
            )
            outcome = not_found(f"Resolution aborted ({type(e).__name__}: {e})", target.person_name, tier="error")
        self.logger.record_outcome(outcome.tier)
        self.logger.info(
            "Resolved" if outcome.found else "Not resolved",
            name=target.person_name,
            tier=outcome.tier,
            confidence=outcome.confidence,
            phone=outcome.primary_phone,
        )
        return outcome

    def resolve_direct(self, target: SearchTarget, budget: Optional[FetchBudget] = None) -> ResolutionOutcome:
        """Local and broadened tiers only, as used for relayed names."""
        budget = budget or FetchBudget(self.config.max_deep_fetches)
        outcome, attempt = self._direct_tiers(target, budget)
        if outcome is not None:
            return outcome
        return not_found(self._exhausted(target, attempt), target.person_name)

    def _resolve(self, target: SearchTarget) -> ResolutionOutcome:
        budget = FetchBudget(self.config.max_deep_fetches)

        outcome, attempt = self._direct_tiers(target, budget)
        if outcome is not None:
            return outcome

        if attempt.accepted is not None and attempt.accepted.relatives:
            self.logger.info("Trying household relay", name=target.person_name, via=attempt.accepted.full_name)
            outcome = household_relay(
                attempt.accepted,
                attempt.accepted_match,
                target,
                lambda name, nationwide: self.gather(
                    SearchTarget(name, city=target.city, state=target.state), nationwide, with_web=False
                ),
                self.merger,
                max_relatives=self.config.max_relatives,
                similarity=self.config.backlink_similarity,
                budget=budget,
                logger=self.logger,
            )
            if outcome is not None:
                return outcome

        if target.associated_name:
            outcome = obituary_survivors(
                target,
                self.web,
                self.oracle,
                lambda t: self.resolve_direct(t, budget),
                policy=self.config.oracle_retry,
                max_survivors=self.config.max_survivors,
                logger=self.logger,
            )
            if outcome is not None:
                return outcome

            outcome = address_pivot(
                target,
                self.web,
                self.oracle,
                policy=self.config.oracle_retry,
                threshold=self.config.address_pivot_threshold,
                logger=self.logger,
            )
            if outcome is not None:
                return outcome

        outcome = self._greedy(target, attempt, budget)
        if outcome is not None:
            return outcome

        return not_found(self._exhausted(target, attempt), target.person_name)

    # Tiers

    def _direct_tiers(
        self, target: SearchTarget, budget: FetchBudget
    ) -> Tuple[Optional[ResolutionOutcome], TierAttempt]:
        attempt = TierAttempt()
        description = TargetDescription.for_target(target)

        # Local pool
        attempt.pool = self.gather(target, nationwide=False)
        if attempt.pool:
            match, best = self.choose(description, attempt.pool, budget)
            attempt.consider(best, match)
            if best is not None and match.confidence >= self.config.perfect_threshold:
                phones = self.merger.merge(best, attempt.pool, target, budget)
                if phones:
                    return self._accept(best, match, phones, tier="local"), attempt
                attempt.accept_without_phone(best, match)

        # Broadened pool, appended to the local one
        attempt.pool = attempt.pool + self.gather(target, nationwide=True)
        if not attempt.pool:
            return None, attempt

        match, best = self.choose(description, attempt.pool, budget)
        attempt.consider(best, match)
        if best is None:
            return None, attempt

        threshold = self.config.medium_threshold
        if not self._locally_corroborated(best, target):
            threshold = max(threshold, self.config.nationwide_threshold)
        if match.confidence >= threshold:
            phones = self.merger.merge(best, attempt.pool, target, budget)
            if phones:
                return self._accept(best, match, phones, tier="broadened"), attempt
            attempt.accept_without_phone(best, match)
        else:
            self.logger.debug(
                "Broadened match below threshold",
                name=target.person_name,
                confidence=match.confidence,
                threshold=threshold,
            )
        return None, attempt

    def _greedy(self, target: SearchTarget, attempt: TierAttempt, budget: FetchBudget) -> Optional[ResolutionOutcome]:
        best, match = attempt.best, attempt.match
        if best is None or match.confidence <= self.config.floor_threshold:
            return None
        phones = self.merger.merge(best, attempt.pool, target, budget)
        if not phones:
            return None
        self.logger.warning(
            "Accepting low-confidence match", name=target.person_name, chosen=best.full_name,
            confidence=match.confidence,
        )
        return ResolutionOutcome(
            found=True,
            chosen_name=best.full_name,
            primary_phone=phones[0],
            all_phones=tuple(phones),
            source=f"{best.source.value} (Greedy)",
            confidence=match.confidence,
            rationale=f"LOW CONFIDENCE: {match.rationale}",
            tier="greedy",
            low_confidence=True,
            is_professional=match.is_professional,
        )

    # Helpers

    def gather(self, target: SearchTarget, nationwide: bool, with_web: bool = True) -> List[Candidate]:
        """
        Query every adapter concurrently and concatenate the results.

        The local tier searches each name variation scoped to the target's
        city and state; the nationwide tier searches the name as given with
        no state, plus the web search scoped by state and associated name.
        """
        jobs = []
        if nationwide:
            for adapter in self.adapters:
                jobs.append((adapter, target.person_name, LocationHint()))
            if with_web and self.web is not None:
                hint = LocationHint(state=target.state or None, context=target.associated_name)
                jobs.append((self.web, target.person_name, hint))
        else:
            hint = LocationHint(city=target.city or None, state=target.state or None)
            for name in search_variations(target.person_name):
                for adapter in self.adapters:
                    jobs.append((adapter, name, hint))

        if not jobs:
            return []
        with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
            results = list(executor.map(lambda job: safe_search(*job, logger=self.logger), jobs))
        pool = [c for batch in results for c in batch]
        self.logger.debug(
            "Pooled candidates",
            name=target.person_name,
            nationwide=nationwide,
            searches=len(jobs),
            candidates=len(pool),
        )
        return pool

    def choose(
        self, description: TargetDescription, pool: Sequence[Candidate], budget: FetchBudget
    ) -> Tuple[MatchResult, Optional[Candidate]]:
        """
        Ask the oracle for the best candidate.

        A deceased pick is dropped and the oracle asked once more on the rest
        of the pool; a second deceased pick means no match for this tier.
        """
        match = call_with_retry(self.oracle, description, pool, self.config.oracle_retry, self.logger)
        if not match.has_match:
            return match, None
        best = self._with_profile(pool[match.best_index], budget)
        if not best.is_deceased:
            return match, best

        self.logger.info("Best candidate is deceased, re-matching", name=best.full_name)
        remaining = [c for i, c in enumerate(pool) if i != match.best_index]
        if not remaining:
            return MatchResult(rationale=f"Only candidate {best.full_name} is deceased"), None
        match = call_with_retry(self.oracle, description, remaining, self.config.oracle_retry, self.logger)
        if not match.has_match:
            return match, None
        best = self._with_profile(remaining[match.best_index], budget)
        if best.is_deceased:
            return MatchResult(rationale=f"Best remaining candidate {best.full_name} is also deceased"), None
        return match, best

    def _with_profile(self, candidate: Candidate, budget: FetchBudget) -> Candidate:
        """Enrich a candidate whose deceased flag is unknown."""
        if candidate.is_deceased is not None:
            return candidate
        return candidate.enriched(self.merger.fetch_profile(candidate, budget))

    @staticmethod
    def _locally_corroborated(best: Candidate, target: SearchTarget) -> bool:
        if not target.state:
            return True
        city = normalize_text(target.city)
        if city and city in normalize_text(best.location):
            return True
        return location_mentions_state(best.location, target.state)

    @staticmethod
    def _accept(best: Candidate, match: MatchResult, phones: List[str], tier: str) -> ResolutionOutcome:
        return ResolutionOutcome(
            found=True,
            chosen_name=best.full_name,
            primary_phone=phones[0],
            all_phones=tuple(phones),
            source=best.source.value,
            confidence=match.confidence,
            rationale=match.rationale,
            tier=tier,
            is_professional=match.is_professional,
        )

    @staticmethod
    def _exhausted(target: SearchTarget, attempt: TierAttempt) -> str:
        if not attempt.pool:
            return f"All tiers exhausted: no candidates found for {target.person_name}"
        detail = attempt.match.rationale or "no plausible candidate"
        return (
            f"All tiers exhausted: {len(attempt.pool)} candidates, best confidence "
            f"{attempt.match.confidence} ({detail})"
        )
