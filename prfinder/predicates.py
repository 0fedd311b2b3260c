"""
Heuristic string predicates used by matching and merging.

Each predicate is a plain function so it can be tested and swapped on its
own. None of them touch the network.
"""

import re
from typing import Iterable, Optional

from rapidfuzz import fuzz

from .normalize import first_last, name_tokens

DECEASED_MARKERS = ("DECEASED", "IN MEMORIAM", "DIED ON")

PROFESSIONAL_PATTERN = re.compile(
    r"\b(attorney|law\s+firm|law\s+office|lawyer|esquire|esq\.?|counsel|j\.?d\.?)(?=\W|$)",
    re.I,
)

NICKNAMES = {
    "robert": {"bob", "rob", "bobby"},
    "william": {"bill", "will", "billy"},
    "richard": {"rick", "dick", "rich"},
    "james": {"jim", "jimmy"},
    "joseph": {"joe", "joey"},
    "michael": {"mike"},
    "thomas": {"tom", "tommy"},
    "christopher": {"chris"},
    "daniel": {"dan", "danny"},
    "stephen": {"steve"},
    "steven": {"steve"},
    "kathleen": {"kathy", "kate"},
    "elizabeth": {"liz", "beth", "betty"},
    "margaret": {"maggie", "peggy"},
    "jennifer": {"jenny", "jen"},
    "patricia": {"pat", "patty"},
    "barbara": {"barb"},
    "jessica": {"jess"},
    "nancy": {"nan"},
    "diane": {"di"},
}

# Most frequent US surnames; sharing one of these proves little.
COMMON_SURNAMES = {
    "smith", "johnson", "williams", "brown", "jones", "garcia", "miller", "davis",
    "rodriguez", "martinez", "hernandez", "lopez", "gonzalez", "wilson", "anderson",
    "thomas", "taylor", "moore", "jackson", "martin", "lee", "perez", "thompson",
    "white", "harris", "sanchez", "clark", "ramirez", "lewis", "robinson", "walker",
    "young", "allen", "king", "wright", "scott", "torres", "nguyen", "hill", "flores",
    "green", "adams", "nelson", "baker", "hall", "rivera", "campbell", "mitchell",
    "carter", "roberts", "gomez", "phillips", "evans", "turner", "diaz", "parker",
    "cruz", "edwards", "collins", "reyes", "stewart", "morris", "morales", "murphy",
    "cook", "rogers", "gutierrez", "ortiz", "morgan", "cooper", "peterson", "bailey",
    "reed", "kelly", "howard", "ramos", "kim", "cox", "ward", "richardson", "watson",
    "brooks", "chavez", "wood", "james", "bennett", "gray", "mendoza", "ruiz", "hughes",
    "price", "alvarez", "castillo", "sanders", "patel", "myers", "long", "ross", "foster",
    "jimenez", "powell", "jenkins", "perry", "russell", "sullivan", "bell", "coleman",
    "butler", "henderson", "barnes", "gonzales", "fisher", "vasquez", "simmons",
    "romero", "jordan", "patterson", "alexander", "hamilton", "graham", "reynolds",
    "griffin", "wallace", "moreno", "west", "cole", "hayes", "bryant", "herrera",
    "gibson", "ellis", "tran", "medina", "aguilar", "stevens", "murray", "ford",
    "castro", "marshall", "owens", "harrison", "fernandez", "mcdonald", "woods",
    "washington", "kennedy", "wells", "vargas", "henry", "chen", "freeman", "webb",
    "tucker", "guzman", "burns", "crawford", "olson", "simpson", "porter", "hunter",
    "gordon", "mendez", "silva", "shaw", "snyder", "mason", "dixon", "munoz", "hunt",
    "hicks", "holmes", "palmer", "wagner", "black", "robertson", "boyd", "rose", "stone",
    "salazar", "fox", "warren", "mills", "meyer", "rice", "schmidt", "garza", "daniels",
    "ferguson", "nichols", "stephens", "soto", "weaver", "ryan", "gardner", "payne",
    "grant", "dunn", "kelley", "spencer", "hawkins", "arnold", "pierce", "vazquez",
    "hansen", "peters", "santos", "hart", "bradley", "knight", "elliott", "cunningham",
    "duncan", "armstrong", "hudson", "carroll", "lane", "riley", "andrews", "ray",
    "berry", "perkins", "hoffman", "johnston", "matthews", "pena", "richards",
    "contreras", "willis", "carpenter", "lawrence", "sandoval",
}


def is_deceased_text(text: Optional[str]) -> bool:
    if not text:
        return False
    upper = text.upper()
    return any(marker in upper for marker in DECEASED_MARKERS)


def is_professional_text(text: Optional[str]) -> bool:
    """Attorney / legal-practice indicators in free text."""
    if not text:
        return False
    return PROFESSIONAL_PATTERN.search(text) is not None


def first_names_equivalent(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    if a == b:
        return True
    return b in NICKNAMES.get(a, set()) or a in NICKNAMES.get(b, set())


def shares_first_last(a: str, b: str) -> bool:
    """Same first (nicknames allowed) and same last token."""
    a_first, a_last = first_last(a)
    b_first, b_last = first_last(b)
    if not a_first or not b_first:
        return False
    return a_last == b_last and first_names_equivalent(a_first, b_first)


def name_similarity(a: str, b: str) -> float:
    """0-100 order-insensitive similarity on normalized tokens."""
    return fuzz.token_sort_ratio(" ".join(name_tokens(a)), " ".join(name_tokens(b)))


def names_match(a: str, b: str, threshold: float = 85) -> bool:
    """
    Fuzzy person-name match on first and last tokens. Middle names and
    initials are ignored; known nicknames count as the same first name.
    """
    a_first, a_last = first_last(a)
    b_first, b_last = first_last(b)
    if not a_first or not b_first:
        return False
    first_ok = first_names_equivalent(a_first, b_first) or fuzz.ratio(a_first, b_first) >= threshold
    last_ok = fuzz.ratio(a_last, b_last) >= threshold
    return first_ok and last_ok


def mentions_name(names: Iterable[str], target: str, threshold: float = 85) -> bool:
    return any(names_match(n, target, threshold) for n in names)


def surname(name: str) -> str:
    return first_last(name)[1]


def is_rare_surname(name: str) -> bool:
    last = surname(name)
    return bool(last) and len(last) > 2 and last not in COMMON_SURNAMES
