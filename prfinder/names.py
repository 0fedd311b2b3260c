"""
Owner-name parsing for probate records and search-name variations.

Probate rows carry a combined owner field such as
"THOMAS R MARTIN (Dead) Diane K Martin (PR)". These helpers split it into
the decedent and the personal representative(s), and expand a name into the
variants worth searching for.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

PLACEHOLDER_NAMES = {"unknown", ""}

_PR_MARKER = r"\(PR(?:s)?(?:\s*(?:&|and)?\s*Owner)?\)"

_DEAD_WITH_PR = re.compile(rf"^(.+?)\s*\(Dead\)\s*(?:&|and|,)?\s*(.+?)\s*{_PR_MARKER}", re.I)
_DEAD_ONLY = re.compile(r"^(.+?)\s*\(Dead\)\s*(?:&|and|,)?\s*(.+?)$", re.I)
_ESTATE_OF = re.compile(r"ESTATE\s+OF\s+(.+)", re.I)
_DECEASED = re.compile(r"^(.+?)\s*\(Deceased\)", re.I)
_BOTH_DEAD = re.compile(r"^(.+?)\s*\(BOTH\s*DEAD\)\s*(?:&|and|,)?\s*(.+?)\s*\(PRs?\)", re.I)
_TRAILING_MARKERS = re.compile(
    r"\s*\((?:PR|Owner|PR\s*&\s*Owner|Owner\s*&\s*PR|PR\s*and\s*Owner)\)\s*", re.I
)


@dataclass(frozen=True)
class OwnerRecord:
    deceased_name: Optional[str]
    representative_name: Optional[str]
    is_probate: bool
    raw: Optional[str]


def clean_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    name = re.sub(r"\(.*?\)", "", name)
    name = re.sub(r"^\s*[,&]\s*|\s*[,&]\s*$", "", name)
    return " ".join(name.split()) or None


def parse_owner_name(raw: Optional[str]) -> OwnerRecord:
    """Split a combined owner field into decedent and representative."""
    if not raw or not isinstance(raw, str):
        return OwnerRecord(None, None, False, raw)

    text = raw.strip()

    m = _BOTH_DEAD.match(text)
    if m:
        return OwnerRecord(clean_name(m.group(1)), clean_name(m.group(2)), True, raw)

    m = _DEAD_WITH_PR.match(text)
    if m:
        return OwnerRecord(clean_name(m.group(1)), clean_name(m.group(2)), True, raw)

    m = _DEAD_ONLY.match(text)
    if m:
        remainder = _TRAILING_MARKERS.sub(" ", m.group(2)).strip()
        pr = clean_name(remainder.split("(")[0]) if len(remainder) > 2 else None
        return OwnerRecord(clean_name(m.group(1)), pr, True, raw)

    m = _ESTATE_OF.search(text)
    if m:
        return OwnerRecord(clean_name(m.group(1)), "Unknown", True, raw)

    m = _DECEASED.match(text)
    if m:
        remainder = text[m.end():].strip()
        remainder = re.sub(r"^(?:[,&]|and\s+)", "", remainder, flags=re.I).strip()
        pr = clean_name(remainder) if len(remainder) > 2 else None
        return OwnerRecord(clean_name(m.group(1)), pr, True, raw)

    return OwnerRecord(None, clean_name(text), False, raw)


def extract_representatives(field: Optional[str]) -> List[str]:
    """Split a multi-representative field on commas, '&', '/' and 'and'."""
    if not field:
        return []
    names = []
    for part in re.split(r"[,&/]|\s+and\s+", field, flags=re.I):
        cleaned = clean_name(part)
        if cleaned and len(cleaned) > 2:
            names.append(cleaned)
    return names


def is_searchable_name(name: Optional[str]) -> bool:
    if not name or name.strip().lower() in PLACEHOLDER_NAMES:
        return False
    lowered = name.lower()
    return "dead" not in lowered and "probate" not in lowered


def search_variations(name: str) -> List[str]:
    """
    Names worth searching for, original first.

    Adds "First Last" when a middle name or initial is present, and one
    "First Part" per component of a hyphenated surname.
    """
    parts = name.split()
    variations = [name]
    if len(parts) > 2:
        variations.append(f"{parts[0]} {parts[-1]}")
    if len(parts) >= 2 and "-" in parts[-1]:
        for piece in parts[-1].split("-"):
            if len(piece) > 2:
                variations.append(f"{parts[0]} {piece}")

    seen = set()
    unique = []
    for v in variations:
        if v.lower() not in seen:
            seen.add(v.lower())
            unique.append(v)
    return unique
