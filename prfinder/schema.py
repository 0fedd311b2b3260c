"""
Boundary validation for raw adapter records.

Adapters scrape into plain dicts; ``build_candidate`` is the single place a
dict becomes a Candidate, so provider-specific keys end up in ``extras`` and
never leak into matching logic.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .models import Candidate, DetailProfile, Relative, Source
from .normalize import normalize_phones

REQUIRED_STR_FIELDS = ["full_name"]
OPTIONAL_STR_FIELDS = [
    "age",
    "location",
    "detail_reference",
    "raw_snippet",
]
LIST_FIELDS = ["phones", "relatives"]
CORE_FIELDS = set(REQUIRED_STR_FIELDS) | set(OPTIONAL_STR_FIELDS) | set(LIST_FIELDS) | {"is_deceased"}


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_url(v: str) -> bool:
    try:
        p = urlparse(v)
        return bool(p.scheme and p.netloc)
    except ValueError:
        return False


def validate_candidate_record(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    for f in REQUIRED_STR_FIELDS:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    for f in LIST_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], (list, tuple, set, frozenset)):
            errors.append(f"Field '{f}' must be a list if provided")

    if data.get("is_deceased") not in (None, True, False):
        errors.append("Field 'is_deceased' must be true, false or null")

    ref = data.get("detail_reference")
    if isinstance(ref, str) and ref.startswith("http") and not _valid_url(ref):
        errors.append("Field 'detail_reference' must be a valid absolute URL when it is a link")

    return errors


def _relatives(items) -> tuple:
    relatives = []
    for item in items or []:
        if isinstance(item, Relative):
            relatives.append(item)
        elif isinstance(item, dict) and _is_non_empty_str(item.get("name")):
            relatives.append(Relative(item["name"].strip(), item.get("detail_reference") or item.get("url")))
        elif _is_non_empty_str(item):
            relatives.append(Relative(item.strip()))
    return tuple(relatives)


def build_candidate(data: Dict[str, Any], source: Source) -> Candidate:
    """
    Convert an adapter record into a Candidate.

    Raises ValueError listing every validation problem.
    """
    errors = validate_candidate_record(data)
    if errors:
        raise ValueError("; ".join(errors))

    extras = {k: str(v) for k, v in data.items() if k not in CORE_FIELDS and v is not None}
    return Candidate(
        full_name=" ".join(data["full_name"].split()),
        source=source,
        age=data.get("age") or None,
        location=(data.get("location") or "").strip(),
        detail_reference=data.get("detail_reference") or None,
        visible_phones=frozenset(normalize_phones(data.get("phones") or [])),
        relatives=_relatives(data.get("relatives")),
        is_deceased=data.get("is_deceased"),
        raw_snippet=data.get("raw_snippet") or None,
        extras=MappingProxyType(extras),
    )


def build_profile(data: Optional[Dict[str, Any]]) -> Optional[DetailProfile]:
    if not data:
        return None
    return DetailProfile(
        resolved_full_name=" ".join((data.get("full_name") or "").split()),
        all_phones=frozenset(normalize_phones(data.get("phones") or [])),
        all_relatives=_relatives(data.get("relatives")),
        is_deceased=data.get("is_deceased"),
    )


def build_candidates(records: List[Dict[str, Any]], source: Source) -> List[Candidate]:
    """Convert a page of records, dropping the ones that fail validation."""
    candidates = []
    for record in records:
        if validate_candidate_record(record):
            continue
        candidates.append(build_candidate(record, source))
    return candidates
