"""
Core data model for identity resolution.

Every value here is immutable. Adapters produce Candidates, deep-fetches
produce DetailProfiles, the oracle produces MatchResults and the resolver
emits exactly one ResolutionOutcome per SearchTarget.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

NO_MATCH = -1


class Source(str, Enum):
    """Provider that produced a Candidate."""

    RADARIS = "Radaris"
    SEARCHPEOPLEFREE = "SearchPeopleFree"
    WEB = "Web"
    ADDRESS_PIVOT = "Address Pivot"
    TEST = "Test"


class MatchType(str, Enum):
    VERIFIED = "VERIFIED"
    HIGHLY_PROBABLE = "HIGHLY_PROBABLE"
    PLAUSIBLE_GUESS = "PLAUSIBLE_GUESS"
    NONE = "NONE"


@dataclass(frozen=True)
class SearchTarget:
    person_name: str
    associated_name: Optional[str] = None
    city: str = ""
    state: str = ""
    address: Optional[str] = None

    @property
    def location(self) -> str:
        return ", ".join(p for p in (self.city, self.state) if p)


@dataclass(frozen=True)
class LocationHint:
    """Scope passed to an adapter search. ``state=None`` means nationwide."""

    city: Optional[str] = None
    state: Optional[str] = None
    # Extra quoted term for adapters that run free-text queries
    context: Optional[str] = None

    @property
    def nationwide(self) -> bool:
        return not self.state


@dataclass(frozen=True)
class Relative:
    name: str
    detail_reference: Optional[str] = None


@dataclass(frozen=True)
class DetailProfile:
    resolved_full_name: str = ""
    all_phones: FrozenSet[str] = frozenset()
    all_relatives: Tuple[Relative, ...] = ()
    is_deceased: Optional[bool] = None


@dataclass(frozen=True)
class Candidate:
    """
    One person-profile found on one provider.

    ``is_deceased`` is tri-state: None (unknown), False or True.
    ``extras`` carries adapter-specific fields; matching logic never reads it.
    """

    full_name: str
    source: Source
    age: Optional[str] = None
    location: str = ""
    detail_reference: Optional[str] = None
    visible_phones: FrozenSet[str] = frozenset()
    relatives: Tuple[Relative, ...] = ()
    is_deceased: Optional[bool] = None
    raw_snippet: Optional[str] = None
    extras: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def cache_key(self) -> Optional[Tuple[str, str]]:
        if not self.detail_reference:
            return None
        return (self.source.value, self.detail_reference)

    def enriched(self, profile: Optional[DetailProfile]) -> "Candidate":
        """Return a new Candidate merged with deep-fetched profile data."""
        if profile is None:
            return self
        known = {r.name.lower() for r in self.relatives}
        relatives = self.relatives + tuple(
            r for r in profile.all_relatives if r.name.lower() not in known
        )
        is_deceased = self.is_deceased
        if profile.is_deceased is not None:
            is_deceased = profile.is_deceased
        return replace(
            self,
            full_name=profile.resolved_full_name or self.full_name,
            visible_phones=self.visible_phones | profile.all_phones,
            relatives=relatives,
            is_deceased=is_deceased,
        )


@dataclass(frozen=True)
class MatchResult:
    best_index: int = NO_MATCH
    confidence: int = 0
    rationale: str = ""
    is_professional: bool = False
    match_type: MatchType = MatchType.NONE

    def __post_init__(self):
        object.__setattr__(self, "confidence", max(0, min(100, int(self.confidence))))

    @property
    def has_match(self) -> bool:
        return self.best_index != NO_MATCH


@dataclass(frozen=True)
class ResolutionOutcome:
    found: bool
    chosen_name: str = ""
    primary_phone: str = ""
    all_phones: Tuple[str, ...] = ()
    source: str = "None"
    confidence: int = 0
    rationale: str = ""
    tier: str = ""
    low_confidence: bool = False
    is_professional: bool = False

    def to_dict(self) -> dict:
        return {
            "found": self.found,
            "name": self.chosen_name,
            "phone": self.primary_phone,
            "all_phones": " | ".join(self.all_phones),
            "source": self.source,
            "confidence": self.confidence,
            "reasoning": self.rationale,
            "tier": self.tier,
            "low_confidence": self.low_confidence,
            "is_professional": self.is_professional,
        }


def not_found(rationale: str, name: str = "", tier: str = "exhausted") -> ResolutionOutcome:
    return ResolutionOutcome(found=False, chosen_name=name, rationale=rationale, tier=tier)
