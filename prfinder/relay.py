"""
Fallback strategies used once the direct tiers fail.

Each strategy is a plain function that receives the resolver's own search
callables, so it can be exercised with fakes:

- household_relay: resolve the best candidate's relatives and accept a
  relative's profile only if it lists the target back (reciprocal link).
- obituary_survivors: pull survivor names out of obituary snippets for the
  associated decedent and resolve those instead.
- address_pivot: look for people listed at the property address.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

from .logger import StructuredLogger, get_logger
from .merger import FetchBudget, PhoneMerger, rank_phones
from .models import Candidate, MatchResult, ResolutionOutcome, SearchTarget, Source
from .normalize import format_phone
from .oracle import MatchOracle, TargetDescription, call_with_retry, extract_names_with_retry
from .predicates import mentions_name
from .retry import RetryPolicy
from .schema import build_candidates
from .sources.web import WebSearchAdapter, items_to_records

# gather(name, nationwide) -> pooled candidates for that name
Gather = Callable[[str, bool], List[Candidate]]
# resolve(target) -> outcome of the direct tiers for that target
ResolveDirect = Callable[[SearchTarget], ResolutionOutcome]

OBITUARY_SNIPPETS = 3


def search_text_safely(
    adapter: Optional[WebSearchAdapter],
    query: str,
    logger: Optional[StructuredLogger] = None,
) -> List[Dict[str, str]]:
    logger = logger or get_logger()
    if adapter is None:
        return []
    platform = adapter.source.value
    logger.record_search_attempt(platform)
    try:
        items = adapter.search_text(query)
    except Exception as e:
        logger.record_search_failure(platform, type(e).__name__)
        logger.warning(f"{platform} text search failed", query=query, error=str(e))
        return []
    logger.record_search_success(platform)
    return items


def find_backlink(pool: Sequence[Candidate], target_name: str, similarity: float) -> Optional[Candidate]:
    """First live candidate whose relatives list the target back."""
    for c in pool:
        if c.is_deceased:
            continue
        if mentions_name([r.name for r in c.relatives], target_name, similarity):
            return c
    return None


def household_relay(
    best: Candidate,
    match: MatchResult,
    target: SearchTarget,
    gather: Gather,
    merger: PhoneMerger,
    max_relatives: int = 3,
    similarity: float = 85,
    budget: Optional[FetchBudget] = None,
    logger: Optional[StructuredLogger] = None,
) -> Optional[ResolutionOutcome]:
    logger = logger or get_logger()
    relatives = [r.name for r in best.relatives][:max_relatives]
    if not relatives:
        return None

    def via(relative: str) -> List[str]:
        pool = gather(relative, False)
        link = find_backlink(pool, target.person_name, similarity)
        if link is None:
            pool = pool + gather(relative, True)
            link = find_backlink(pool, target.person_name, similarity)
        if link is None:
            logger.debug("No reciprocal household link", relative=relative, target=target.person_name)
            return []
        relative_target = SearchTarget(relative, target.person_name, target.city, target.state)
        return merger.merge(link, pool, relative_target, budget)

    with ThreadPoolExecutor(max_workers=len(relatives)) as executor:
        results = list(executor.map(via, relatives))

    for relative, phones in zip(relatives, results):
        if phones:
            logger.info("Household relay succeeded", target=target.person_name, relative=relative)
            return ResolutionOutcome(
                found=True,
                chosen_name=best.full_name,
                primary_phone=phones[0],
                all_phones=tuple(phones),
                source="Relay (Household)",
                confidence=match.confidence,
                rationale=f"Found via household link through {relative}. {match.rationale}",
                tier="relay",
                is_professional=match.is_professional,
            )
    return None


def obituary_survivors(
    target: SearchTarget,
    web: Optional[WebSearchAdapter],
    oracle: MatchOracle,
    resolve_direct: ResolveDirect,
    policy: Optional[RetryPolicy] = None,
    max_survivors: int = 2,
    logger: Optional[StructuredLogger] = None,
) -> Optional[ResolutionOutcome]:
    logger = logger or get_logger()
    decedent = target.associated_name
    if not decedent or web is None:
        return None

    query = f'Obituary "{decedent}" {target.state}'.strip()
    items = search_text_safely(web, query, logger)
    snippets = [i.get("snippet", "") for i in items[:OBITUARY_SNIPPETS] if i.get("snippet")]
    if not snippets:
        return None

    names = extract_names_with_retry(oracle, decedent, "\n---\n".join(snippets), policy, logger)
    survivors = [n for n in names if n.lower() != target.person_name.lower()][:max_survivors]
    if not survivors:
        return None
    logger.info("Obituary survivors extracted", decedent=decedent, survivors=survivors)

    def run(name: str) -> ResolutionOutcome:
        return resolve_direct(SearchTarget(name, decedent, target.city, target.state, target.address))

    with ThreadPoolExecutor(max_workers=len(survivors)) as executor:
        outcomes = list(executor.map(run, survivors))

    for outcome in outcomes:
        if outcome.found:
            return ResolutionOutcome(
                found=True,
                chosen_name=outcome.chosen_name,
                primary_phone=outcome.primary_phone,
                all_phones=outcome.all_phones,
                source=outcome.source,
                confidence=outcome.confidence,
                rationale=f"Recovered via obituary: {outcome.rationale}",
                tier="obituary",
                low_confidence=outcome.low_confidence,
                is_professional=outcome.is_professional,
            )
    return None


def address_pivot(
    target: SearchTarget,
    web: Optional[WebSearchAdapter],
    oracle: MatchOracle,
    policy: Optional[RetryPolicy] = None,
    threshold: int = 50,
    logger: Optional[StructuredLogger] = None,
) -> Optional[ResolutionOutcome]:
    logger = logger or get_logger()
    if not target.address or web is None:
        return None

    items = search_text_safely(web, f'"{target.address}" residents "Full Name"', logger)
    candidates = build_candidates(items_to_records(items, exclude_hosts=("Zillow",)), Source.ADDRESS_PIVOT)
    if not candidates:
        return None

    description = TargetDescription(
        subject_name="",
        associated_name=target.associated_name,
        location=target.location,
        city=target.city,
        state=target.state,
    )
    match = call_with_retry(oracle, description, candidates, policy, logger)
    if not match.has_match or match.confidence < threshold:
        return None

    best = candidates[match.best_index]
    phones = [format_phone(p) for p in rank_phones(sorted(best.visible_phones), target.state)]
    if not phones:
        return None
    return ResolutionOutcome(
        found=True,
        chosen_name=best.full_name,
        primary_phone=phones[0],
        all_phones=tuple(phones),
        source=Source.ADDRESS_PIVOT.value,
        confidence=match.confidence,
        rationale=f"Found at target address: {match.rationale}",
        tier="address_pivot",
        is_professional=match.is_professional,
    )
