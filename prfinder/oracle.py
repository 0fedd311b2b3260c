"""
Match oracle contract and the deterministic rule engine.

An oracle picks the best candidate for a target description and returns a
MatchResult. Any implementation (rule engine or model call) must follow the
same precedence:

    1. explicit cross-reference to the associated name
    2. rare surname shared by the subject and the associated name
    3. residence history in the target location
    4. name-only matches cap well below the above
    5. out-of-state residence is never a penalty on its own
    6. among equals, prefer candidates that already show phones

Oracles raise OracleTransientFailure for infrastructure or parse problems;
``call_with_retry`` is the only place those are retried.
"""

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from .logger import StructuredLogger, get_logger
from .models import NO_MATCH, Candidate, MatchResult, MatchType, SearchTarget
from .normalize import format_phone, location_mentions_state, normalize_text
from .predicates import is_professional_text, is_rare_surname, mentions_name, names_match, surname
from .retry import RetryError, RetryPolicy

PROFESSIONAL_CAUTION = "Caution: Professional PR detected."

SCORE_CROSS_REFERENCE = 95
SCORE_RARE_SURNAME = 88
SCORE_LOCAL_NAME = 80
SCORE_HISTORICAL_RESIDENCE = 72
SCORE_NAME_ONLY = 60
SCORE_CO_RESIDENT = 55
MAX_PHONE_BONUS = 3


class OracleTransientFailure(Exception):
    """The oracle could not answer (network, quota, unparseable reply)."""
    pass


@dataclass(frozen=True)
class TargetDescription:
    """
    What the oracle is asked to find.

    An empty ``subject_name`` means "anyone listed at the location", which is
    how the address pivot asks about co-residents.
    """

    subject_name: str
    associated_name: Optional[str] = None
    location: str = ""
    city: str = ""
    state: str = ""

    @classmethod
    def for_target(cls, target: SearchTarget) -> "TargetDescription":
        return cls(
            subject_name=target.person_name,
            associated_name=target.associated_name,
            location=target.location,
            city=target.city,
            state=target.state,
        )


class MatchOracle(Protocol):
    def match(self, description: TargetDescription, candidates: Sequence[Candidate]) -> MatchResult:
        ...

    def extract_names(self, subject: str, text: str) -> List[str]:
        ...


def serialize_candidates(candidates: Sequence[Candidate]) -> List[Dict[str, object]]:
    """The view of each candidate an oracle is allowed to see."""
    serialized = []
    for i, c in enumerate(candidates):
        serialized.append({
            "index": i,
            "name": c.full_name,
            "age": c.age,
            "location": c.location,
            "relatives": [r.name for r in c.relatives],
            "phones": [format_phone(p) for p in sorted(c.visible_phones)],
            "snippet": c.raw_snippet,
            "deceased": c.is_deceased,
        })
    return serialized


def candidate_text(candidate: Candidate) -> str:
    return " ".join(p for p in (candidate.full_name, candidate.location, candidate.raw_snippet or "") if p)


def match_type_for(confidence: int) -> MatchType:
    if confidence >= 90:
        return MatchType.VERIFIED
    if confidence >= 80:
        return MatchType.HIGHLY_PROBABLE
    if confidence > 0:
        return MatchType.PLAUSIBLE_GUESS
    return MatchType.NONE


# Survivor clause of an obituary up to the end of its sentence. A period after a
# lone capital is a middle initial, not a sentence end.
_SURVIVED_BY = re.compile(r"(?i:survived\s+by)\b((?:[^.]|(?<=\b[A-Z])\.)*)")
_FULL_NAME = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z]\.)?(?:\s+[A-Z][a-z'\-]+)+)\b")
_NOT_NAME_WORDS = {"his", "her", "their", "wife", "husband", "son", "sons", "daughter",
                   "daughters", "children", "grandchildren", "brother", "sister", "and"}


class RuleBasedOracle:
    """Deterministic scorer that reproduces the oracle precedence rules."""

    def __init__(self, name_threshold: float = 85):
        self.name_threshold = name_threshold

    def score(self, description: TargetDescription, candidate: Candidate):
        """Return (score, reason) for one candidate. Score 0 means not plausible."""
        if candidate.is_deceased:
            return 0, "deceased"

        if description.subject_name:
            if not names_match(candidate.full_name, description.subject_name, self.name_threshold):
                return 0, "name mismatch"
            base, reason = SCORE_NAME_ONLY, "name match only"
        else:
            base, reason = SCORE_CO_RESIDENT, "listed at the target address"

        associated = description.associated_name
        places = " ".join(p for p in (candidate.location, candidate.raw_snippet or "") if p)
        city = normalize_text(description.city)

        if associated and self._cross_referenced(candidate, associated):
            base, reason = SCORE_CROSS_REFERENCE, f"explicitly linked to {associated}"
        elif associated and self._rare_shared_surname(description, candidate):
            base, reason = SCORE_RARE_SURNAME, f"shares the rare surname {surname(associated).title()}"
        elif city and city in normalize_text(candidate.location):
            base, reason = SCORE_LOCAL_NAME, f"lives in {description.city}"
        elif (city and city in normalize_text(places)) or (
            description.state and location_mentions_state(places, description.state)
        ):
            base, reason = SCORE_HISTORICAL_RESIDENCE, "residence history in the target area"

        bonus = min(MAX_PHONE_BONUS, len(candidate.visible_phones))
        return base + bonus, reason

    def _cross_referenced(self, candidate: Candidate, associated: str) -> bool:
        if mentions_name([r.name for r in candidate.relatives], associated, self.name_threshold):
            return True
        return normalize_text(associated) in normalize_text(candidate.raw_snippet or "")

    def _rare_shared_surname(self, description: TargetDescription, candidate: Candidate) -> bool:
        associated = description.associated_name or ""
        shared = surname(associated)
        if not shared or not is_rare_surname(associated):
            return False
        if description.subject_name and surname(description.subject_name) != shared:
            return False
        return surname(candidate.full_name) == shared

    def match(self, description: TargetDescription, candidates: Sequence[Candidate]) -> MatchResult:
        if not candidates:
            return MatchResult(rationale="No candidates to evaluate")

        best_index, best_score, best_reason = NO_MATCH, 0, ""
        for i, candidate in enumerate(candidates):
            score, reason = self.score(description, candidate)
            if score > best_score:
                best_index, best_score, best_reason = i, score, reason

        if best_index == NO_MATCH:
            return MatchResult(rationale="No plausible candidate")

        chosen = candidates[best_index]
        rationale = f"{chosen.full_name}: {best_reason}"
        professional = is_professional_text(candidate_text(chosen))
        if professional:
            rationale = f"{rationale}. {PROFESSIONAL_CAUTION}"
        return MatchResult(
            best_index=best_index,
            confidence=best_score,
            rationale=rationale,
            is_professional=professional,
            match_type=match_type_for(best_score),
        )

    def extract_names(self, subject: str, text: str) -> List[str]:
        """Full names listed after "survived by" in obituary text."""
        names: List[str] = []
        for clause in _SURVIVED_BY.findall(text or ""):
            for raw in _FULL_NAME.findall(clause):
                tokens = [t for t in raw.split() if t.lower() not in _NOT_NAME_WORDS]
                if len(tokens) < 2:
                    continue
                name = " ".join(tokens)
                if subject and names_match(name, subject, self.name_threshold):
                    continue
                if name.lower() not in {n.lower() for n in names}:
                    names.append(name)
        return names


def call_with_retry(
    oracle: MatchOracle,
    description: TargetDescription,
    candidates: Sequence[Candidate],
    policy: Optional[RetryPolicy] = None,
    logger: Optional[StructuredLogger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> MatchResult:
    """
    Ask the oracle, retrying transient failures with backoff.

    Never raises for oracle trouble: exhaustion becomes a zero-confidence
    "AI Error" result, and an out-of-range index becomes no match.
    """
    policy = policy or RetryPolicy()
    logger = logger or get_logger()
    try:
        result = policy.call(
            oracle.match,
            description,
            candidates,
            exceptions=(OracleTransientFailure,),
            on_retry=lambda n, e, delay: logger.warning(
                f"Oracle attempt {n}/{policy.max_attempts} failed", error=str(e), delay=delay
            ),
            sleep=sleep,
        )
    except RetryError as e:
        logger.record_oracle_call(failed=True)
        logger.error("Oracle retries exhausted", subject=description.subject_name, error=str(e))
        cause = e.__cause__ or e
        return MatchResult(NO_MATCH, 0, f"AI Error: {cause}")

    logger.record_oracle_call()
    if result.best_index != NO_MATCH and not 0 <= result.best_index < len(candidates):
        logger.warning("Oracle returned an out-of-range index", index=result.best_index, pool=len(candidates))
        return MatchResult(NO_MATCH, 0, f"Oracle index {result.best_index} out of range")
    return result


def extract_names_with_retry(
    oracle: MatchOracle,
    subject: str,
    text: str,
    policy: Optional[RetryPolicy] = None,
    logger: Optional[StructuredLogger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[str]:
    """Text-extraction counterpart of ``call_with_retry``; exhaustion yields []."""
    policy = policy or RetryPolicy()
    logger = logger or get_logger()
    try:
        names = policy.call(
            oracle.extract_names, subject, text,
            exceptions=(OracleTransientFailure,), sleep=sleep,
        )
    except RetryError as e:
        logger.record_oracle_call(failed=True)
        logger.warning("Name extraction failed", subject=subject, error=str(e))
        return []
    logger.record_oracle_call()
    return [n for n in names if isinstance(n, str) and len(n.strip()) > 3]
