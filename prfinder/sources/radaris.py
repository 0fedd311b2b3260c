from typing import Any, Dict, List, Optional
from urllib.parse import urlencode
import re

from bs4 import BeautifulSoup

from ..models import Candidate, DetailProfile, LocationHint, Source
from ..normalize import PHONE_PATTERN, first_last, full_state_name
from ..predicates import is_deceased_text
from ..schema import build_candidates, build_profile
from .common import HttpFetcher, SourceAdapter, absolute_url

BASE_URL = "https://radaris.com"
CARD_SELECTOR = ".teaser-card, .card, .blocks-wrapper, .teaser-profile"


def build_search_url(name: str, state: Optional[str], page: int = 1) -> str:
    first, last = first_last(name)
    params = {"ff": first.title(), "fl": last.title()}
    if state:
        params["fs"] = full_state_name(state)
    if page > 1:
        params["page"] = page
    return f"{BASE_URL}/ng/search?{urlencode(params)}"


def parse_search_page(html: str) -> List[Dict[str, Any]]:
    """Parse a Radaris results page into raw candidate records."""
    soup = BeautifulSoup(html, "html.parser")

    title = soup.find("title")
    title_text = title.get_text(strip=True) if title else ""
    if "0 people found" in title_text or "Page not found" in title_text:
        return []

    # A single exact hit redirects straight to the profile page
    if "SUMMARY" in html and not soup.select(CARD_SELECTOR):
        h1 = soup.find("h1")
        canonical = soup.find("link", rel="canonical")
        if h1 and canonical and canonical.get("href"):
            return [{
                "full_name": h1.get_text(" ", strip=True),
                "detail_reference": absolute_url(BASE_URL, canonical["href"]),
                "direct": "true",
            }]
        return []

    records = []
    for card in soup.select(CARD_SELECTOR):
        name_node = card.select_one(".blocks-name, .card-title, h3")
        name = " ".join(name_node.get_text(" ", strip=True).split()) if name_node else ""

        link_node = card.select_one(".view-all-details, .card-title, a[data-href], .blocks-name")
        href = None
        if link_node is not None:
            href = (link_node.get("data-href-target-blank") or link_node.get("data-href")
                    or link_node.get("href"))

        age_node = card.select_one(".age, .blocks-right span.gray-text")
        age = re.sub(r"[^0-9]", "", age_node.get_text()) if age_node else ""

        location = ""
        loc_node = card.select_one(".many-links-item")
        if loc_node and loc_node.get_text(strip=True):
            location = loc_node.get_text(" ", strip=True)
        else:
            for item in card.select(".text-item"):
                caption = item.select_one(".text-item_caption")
                content = item.select_one(".text-item_content")
                if caption and content and "Lived in" in caption.get_text():
                    location = content.get_text(" ", strip=True)

        if name and href and len(name) > 3:
            records.append({
                "full_name": name,
                "age": age or None,
                "location": location,
                "detail_reference": absolute_url(BASE_URL, href),
                "raw_snippet": card.get_text(" ", strip=True)[:500],
            })
    return records


def parse_profile_page(html: str) -> Dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    body = soup.find("body") or soup
    page_text = body.get_text(" ", strip=True)

    phones = []
    for node in soup.select('a[href^="/ng/phone/"], a[href^="tel:"], span.truncate-text'):
        m = PHONE_PATTERN.search(node.get_text())
        if m and m.group(0) not in phones:
            phones.append(m.group(0))

    relatives = []
    for a in soup.select('.related-to .item a, .related-to a[href*="/~"]'):
        name = re.sub(r",\s*\d+$", "", a.get_text(strip=True))
        if len(name) > 3:
            relatives.append({"name": name, "detail_reference": absolute_url(BASE_URL, a.get("href"))})

    h1 = soup.find("h1")
    return {
        "full_name": h1.get_text(" ", strip=True) if h1 else "",
        "phones": phones,
        "relatives": relatives,
        "is_deceased": is_deceased_text(page_text) or soup.select_one(".deceased-label") is not None,
    }


class RadarisAdapter(SourceAdapter):
    source = Source.RADARIS

    def __init__(self, fetcher: HttpFetcher, max_pages: int = 1):
        self.fetcher = fetcher
        self.max_pages = max_pages

    def search(self, name: str, hint: LocationHint) -> List[Candidate]:
        candidates: List[Candidate] = []
        for page in range(1, self.max_pages + 1):
            html = self.fetcher.get_text(build_search_url(name, hint.state, page), self.source.value)
            records = parse_search_page(html)
            if not records:
                break
            candidates.extend(build_candidates(records, self.source))
            if f"page={page + 1}" not in html:
                break
        return candidates

    def fetch_detail(self, detail_reference: str) -> Optional[DetailProfile]:
        html = self.fetcher.get_text(detail_reference, self.source.value)
        return build_profile(parse_profile_page(html))
