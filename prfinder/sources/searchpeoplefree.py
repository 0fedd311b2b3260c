from typing import Any, Dict, List, Optional
import re

from bs4 import BeautifulSoup

from ..models import Candidate, DetailProfile, LocationHint, Source
from ..predicates import is_deceased_text
from ..schema import build_candidates, build_profile
from .common import HttpFetcher, SourceAdapter, absolute_url, deduplicate, slugify

BASE_URL = "https://www.searchpeoplefree.com"


def build_search_url(name: str, hint: LocationHint) -> str:
    """/find/<name>[/<state>[/<city>]]"""
    parts = [BASE_URL, "find", slugify(name)]
    if hint.state:
        parts.append(hint.state.strip().lower())
        if hint.city:
            parts.append(slugify(hint.city))
    return "/".join(parts)


def parse_search_page(html: str) -> List[Dict[str, Any]]:
    soup = BeautifulSoup(html, "html.parser")
    records = []
    for card in soup.select(".card"):
        h2 = card.find("h2")
        link = card.select_one('a[href*="/find/"]')
        if not h2 or link is None:
            continue

        age = ""
        for span in card.find_all("span"):
            text = span.get_text(" ", strip=True)
            if text.lower().startswith("age"):
                age = re.sub(r"(?i)^age\s*", "", text).strip()
                break

        address = card.find("address")
        records.append({
            "full_name": h2.get_text(" ", strip=True),
            "age": age or None,
            "location": " ".join(address.get_text(" ").split()) if address else "",
            "detail_reference": absolute_url(BASE_URL, link.get("href")),
            "raw_snippet": card.get_text(" ", strip=True)[:500],
        })
    return records


def parse_profile_page(html: str) -> Dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")

    phones = deduplicate([
        a.get_text(strip=True) for a in soup.select('a[href^="tel:"]') if a.get_text(strip=True)
    ])

    relatives = []
    heading = soup.find(lambda tag: tag.name == "h3" and "Relatives" in tag.get_text())
    if heading is not None:
        for sibling in heading.find_next_siblings():
            for a in sibling.select('a[href*="/find/"]'):
                name = a.get_text(strip=True)
                if name:
                    relatives.append({"name": name, "detail_reference": absolute_url(BASE_URL, a.get("href"))})

    h1 = soup.find("h1")
    return {
        "full_name": h1.get_text(" ", strip=True) if h1 else "",
        "phones": phones,
        "relatives": relatives,
        "is_deceased": is_deceased_text(soup.get_text(" ", strip=True)),
    }


class SearchPeopleFreeAdapter(SourceAdapter):
    source = Source.SEARCHPEOPLEFREE

    def __init__(self, fetcher: HttpFetcher):
        self.fetcher = fetcher

    def search(self, name: str, hint: LocationHint) -> List[Candidate]:
        html = self.fetcher.get_text(build_search_url(name, hint), self.source.value)
        return build_candidates(parse_search_page(html), self.source)

    def fetch_detail(self, detail_reference: str) -> Optional[DetailProfile]:
        html = self.fetcher.get_text(detail_reference, self.source.value)
        return build_profile(parse_profile_page(html))
