import re
from typing import Iterable, List, Optional, Tuple

PHONE_PATTERN = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
NAME_SUFFIXES = {"jr", "sr", "ii", "iii", "iv"}


def normalize_text(s: str) -> str:
    return " ".join((s or "").strip().lower().split())


def name_tokens(name: str) -> List[str]:
    """Lowercased alphabetic tokens of a name, punctuation stripped."""
    cleaned = re.sub(r"[^a-z\s'-]", " ", normalize_text(name))
    return [t for t in cleaned.replace("-", " ").split() if t]


def first_last(name: str) -> Tuple[str, str]:
    # Suffixes are noise for first/last comparison
    tokens = [t for t in name_tokens(name) if t not in NAME_SUFFIXES]
    if not tokens:
        return ("", "")
    return (tokens[0], tokens[-1])


def normalize_phone(phone: str) -> str:
    """Digits only, last ten digits. Returns '' for anything shorter."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < 10:
        return ""
    return digits[-10:]


def format_phone(phone: str) -> str:
    digits = normalize_phone(phone)
    if not digits:
        return ""
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def normalize_phones(phones: Iterable[str]) -> List[str]:
    """Normalize and dedupe while preserving discovery order."""
    seen = set()
    result = []
    for p in phones:
        n = normalize_phone(p)
        if n and n not in seen:
            seen.add(n)
            result.append(n)
    return result


def extract_phones(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return normalize_phones(PHONE_PATTERN.findall(text))


def area_code(phone: str) -> str:
    digits = normalize_phone(phone)
    return digits[:3] if digits else ""


STATE_NAMES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas", "CA": "California",
    "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware", "DC": "District of Columbia",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho", "IL": "Illinois",
    "IN": "Indiana", "IA": "Iowa", "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana",
    "ME": "Maine", "MD": "Maryland", "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota",
    "MS": "Mississippi", "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma", "OR": "Oregon",
    "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina", "SD": "South Dakota",
    "TN": "Tennessee", "TX": "Texas", "UT": "Utah", "VT": "Vermont", "VA": "Virginia",
    "WA": "Washington", "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
}

STATE_AREA_CODES = {
    "AK": {"907"},
    "AL": {"205", "251", "256", "334", "659", "938"},
    "AR": {"479", "501", "870"},
    "AZ": {"480", "520", "602", "623", "928"},
    "CA": {"209", "213", "279", "310", "323", "341", "408", "415", "424", "442", "510",
           "530", "559", "562", "619", "626", "628", "650", "657", "661", "669", "707",
           "714", "747", "760", "805", "818", "820", "831", "858", "909", "916", "925",
           "949", "951"},
    "CO": {"303", "719", "720", "970"},
    "CT": {"203", "475", "860", "959"},
    "DC": {"202"},
    "DE": {"302"},
    "FL": {"239", "305", "321", "352", "386", "407", "561", "727", "754", "772", "786",
           "813", "850", "863", "904", "941", "954"},
    "GA": {"229", "404", "470", "478", "678", "706", "762", "770", "912"},
    "HI": {"808"},
    "IA": {"319", "515", "563", "641", "712"},
    "ID": {"208", "986"},
    "IL": {"217", "224", "309", "312", "331", "618", "630", "708", "773", "779", "815",
           "847", "872"},
    "IN": {"219", "260", "317", "463", "574", "765", "812", "930"},
    "KS": {"316", "620", "785", "913"},
    "KY": {"270", "364", "502", "606", "859"},
    "LA": {"225", "318", "337", "504", "985"},
    "MA": {"339", "351", "413", "508", "617", "774", "781", "857", "978"},
    "MD": {"240", "301", "410", "443", "667"},
    "ME": {"207"},
    "MI": {"231", "248", "269", "313", "517", "586", "616", "734", "810", "906", "947",
           "989"},
    "MN": {"218", "320", "507", "612", "651", "763", "952"},
    "MO": {"314", "417", "573", "636", "660", "816"},
    "MS": {"228", "601", "662", "769"},
    "MT": {"406"},
    "NC": {"252", "336", "704", "743", "828", "910", "919", "980", "984"},
    "ND": {"701"},
    "NE": {"308", "402", "531"},
    "NH": {"603"},
    "NJ": {"201", "551", "609", "640", "732", "848", "856", "862", "908", "973"},
    "NM": {"505", "575"},
    "NV": {"702", "725", "775"},
    "NY": {"212", "315", "332", "347", "516", "518", "585", "607", "631", "646", "680",
           "716", "718", "838", "845", "914", "917", "929", "934"},
    "OH": {"216", "220", "234", "330", "380", "419", "440", "513", "567", "614", "740",
           "937"},
    "OK": {"405", "539", "580", "918"},
    "OR": {"458", "503", "541", "971"},
    "PA": {"215", "223", "267", "272", "412", "445", "484", "570", "610", "717", "724",
           "814", "878"},
    "RI": {"401"},
    "SC": {"803", "839", "843", "854", "864"},
    "SD": {"605"},
    "TN": {"423", "615", "629", "731", "865", "901", "931"},
    "TX": {"210", "214", "254", "281", "325", "346", "361", "409", "430", "432", "469",
           "512", "682", "713", "726", "737", "806", "817", "830", "832", "903", "915",
           "936", "940", "956", "972", "979"},
    "UT": {"385", "435", "801"},
    "VA": {"276", "434", "540", "571", "703", "757", "804"},
    "VT": {"802"},
    "WA": {"206", "253", "360", "425", "509", "564"},
    "WI": {"262", "414", "534", "608", "715", "920"},
    "WV": {"304", "681"},
    "WY": {"307"},
}


def state_code(state: Optional[str]) -> str:
    """Accept 'WA', 'wa' or 'Washington' and return 'WA' ('' if unknown)."""
    if not state:
        return ""
    s = state.strip()
    if s.upper() in STATE_NAMES:
        return s.upper()
    for code, full in STATE_NAMES.items():
        if full.lower() == s.lower():
            return code
    return ""


def full_state_name(state: Optional[str]) -> str:
    code = state_code(state)
    return STATE_NAMES.get(code, state or "")


def location_mentions_state(location: str, state: str) -> bool:
    """True if a free-text location names the given state by code or full name."""
    code = state_code(state)
    if not code or not location:
        return False
    if re.search(rf"\b{code}\b", location):
        return True
    return STATE_NAMES[code].lower() in location.lower()


_ADDRESS_CITY_STATE = re.compile(r",\s*([^,]+),\s*([A-Z]{2})\s*(\d{5})?", re.IGNORECASE)


def parse_address(address: Optional[str], default_state: str = "WA") -> Tuple[str, str]:
    """Split a property address into (city, state)."""
    if not address:
        return ("", default_state)
    clean = address.replace("\n", ", ").strip()
    m = _ADDRESS_CITY_STATE.search(clean)
    if m:
        return (m.group(1).strip(), m.group(2).upper())
    parts = [p.strip() for p in clean.split(",") if p.strip()]
    if len(parts) >= 2:
        state_match = re.search(r"\b([A-Z]{2})\b", parts[-1], re.IGNORECASE)
        state = state_match.group(1).upper() if state_match else default_state
        city = parts[-2].split()[-1]
        return (city, state)
    return ("", default_state)
