"""
Google Custom Search JSON API adapter.

Result pages carry no detail page worth fetching, so candidates built here
only contribute the phones visible in their snippets. ``search_text`` gives
the relay strategies raw result items (obituaries, address listings).
"""

from typing import Dict, List, Optional
import re

from ..models import Candidate, LocationHint, Source
from ..normalize import extract_phones, full_state_name
from ..schema import build_candidates
from .common import HttpFetcher, SourceAdapter, SourceUnavailable

GOOGLE_CUSTOM_SEARCH_ENDPOINT = "https://www.googleapis.com/customsearch/v1"

# Splits "Jane Smith-Jones - Seattle, WA | Radaris" before " - ", leaving hyphenated surnames whole
_TITLE_SEPARATOR = re.compile(r"\s*[|•]\s*|\s+[-–]\s+")


def build_query(name: str, hint: LocationHint) -> str:
    parts = [f'"{name}"']
    if hint.context:
        parts.append(f'"{hint.context}"')
    if hint.state:
        parts.append(full_state_name(hint.state))
    parts.append("phone")
    return " ".join(parts)


def title_name(title: str) -> str:
    head = _TITLE_SEPARATOR.split(title or "", maxsplit=1)[0]
    return " ".join(head.split())


def items_to_records(items: List[Dict[str, str]], exclude_hosts=()) -> List[Dict[str, object]]:
    """Turn search result items into candidate records, one per titled result."""
    records = []
    for item in items:
        title = item.get("title") or ""
        link = item.get("link") or ""
        if any(host in title or host in link for host in exclude_hosts):
            continue
        name = title_name(title)
        if not name:
            continue
        snippet = item.get("snippet") or ""
        records.append({
            "full_name": name,
            "detail_reference": link or None,
            "phones": extract_phones(snippet),
            "raw_snippet": snippet,
            "title": title,
        })
    return records


class WebSearchAdapter(SourceAdapter):
    source = Source.WEB
    supports_detail = False

    def __init__(self, fetcher: HttpFetcher, api_key: Optional[str], cse_id: Optional[str], num: int = 10):
        self.fetcher = fetcher
        self.api_key = api_key
        self.cse_id = cse_id
        # Google Custom Search API max results per request is 10
        self.num = min(num, 10)

    def search_text(self, query: str) -> List[Dict[str, str]]:
        """
        Run a raw query and return result items as {title, link, snippet}.

        Raises:
            SourceUnavailable: when credentials are missing or the call fails
        """
        if not self.api_key:
            raise SourceUnavailable(self.source.value, "missing GOOGLE_API_KEY")
        if not self.cse_id:
            raise SourceUnavailable(self.source.value, "missing GOOGLE_CSE_ID")

        params = {
            "key": self.api_key,
            "cx": self.cse_id,
            "q": query,
            "num": self.num,
        }
        resp = self.fetcher.get(GOOGLE_CUSTOM_SEARCH_ENDPOINT, self.source.value, params=params)
        try:
            data = resp.json()
        except ValueError as e:
            raise SourceUnavailable(self.source.value, f"invalid JSON: {e}")

        return [
            {
                "title": item.get("title", ""),
                "link": item.get("link", ""),
                "snippet": item.get("snippet", ""),
            }
            for item in data.get("items", [])
        ]

    def search(self, name: str, hint: LocationHint) -> List[Candidate]:
        items = self.search_text(build_query(name, hint))
        # Only results with a visible phone or a people-search profile are worth pooling
        records = [
            r for r in items_to_records(items)
            if r["phones"] or "radaris.com" in (r["detail_reference"] or "")
        ]
        return build_candidates(records, self.source)
