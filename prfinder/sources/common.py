"""Shared plumbing for all people-search source adapters."""

from typing import Dict, List, Optional

import requests

from ..limiter import RequestLimiter
from ..logger import StructuredLogger, get_logger
from ..models import Candidate, DetailProfile, LocationHint, Source
from ..retry import CircuitBreaker, CircuitOpenError, RetryError, RetryPolicy, should_retry_http_status

BRIGHTDATA_ENDPOINT = "https://api.brightdata.com/request"

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class SourceUnavailable(Exception):
    """A provider call failed or returned unusable data."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source} unavailable: {reason}")
        self.source = source
        self.reason = reason


class TransientHTTPError(Exception):
    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status} from {url}")
        self.status = status


class HttpFetcher:
    """
    Rate-limited HTTP access shared by every adapter.

    Each attempt holds one limiter slot; backoff sleeps happen outside it.
    When a BrightData key is configured, pages are requested through its
    unlocker endpoint instead of directly.
    """

    def __init__(
        self,
        limiter: RequestLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 15.0,
        brightdata_api_key: Optional[str] = None,
        brightdata_zone: str = "web_unlocker1",
        session: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.limiter = limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.brightdata_api_key = brightdata_api_key
        self.brightdata_zone = brightdata_zone
        self.session = session or requests.Session()
        self.logger = logger or get_logger()
        self._breakers: Dict[str, CircuitBreaker] = {}

    def _breaker(self, platform: str) -> CircuitBreaker:
        # setdefault is atomic on dicts, so two threads end up sharing one breaker
        return self._breakers.setdefault(
            platform, CircuitBreaker(platform, failure_threshold=5, recovery_timeout=60)
        )

    def _request_once(self, url: str, params: Optional[dict]) -> requests.Response:
        with self.limiter.slot():
            if self.brightdata_api_key and params is None:
                resp = self.session.post(
                    BRIGHTDATA_ENDPOINT,
                    json={"zone": self.brightdata_zone, "url": url, "format": "raw"},
                    headers={"Authorization": f"Bearer {self.brightdata_api_key}"},
                    timeout=self.timeout,
                )
            else:
                resp = self.session.get(url, params=params, headers=HEADERS, timeout=self.timeout)
        if should_retry_http_status(resp.status_code):
            raise TransientHTTPError(resp.status_code, url)
        return resp

    def get(self, url: str, platform: str, params: Optional[dict] = None) -> requests.Response:
        """
        Fetch a URL with retry, rate limiting and per-platform circuit breaking.

        Raises:
            SourceUnavailable: on any HTTP error, timeout, or request failure
        """
        def attempt():
            return self.retry_policy.call(
                self._request_once,
                url,
                params,
                exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, TransientHTTPError),
                on_retry=lambda n, e, delay: self.logger.debug(
                    f"{platform} retry {n}", url=url, error=str(e), delay=delay
                ),
            )

        try:
            resp = self._breaker(platform).call(attempt)
            resp.raise_for_status()
            return resp
        except CircuitOpenError as e:
            self.logger.record_error("CircuitOpen")
            raise SourceUnavailable(platform, str(e))
        except RetryError as e:
            self.logger.record_error("RetryExhausted")
            self.logger.warning(f"{platform} retries exhausted", url=url, error=str(e))
            raise SourceUnavailable(platform, str(e))
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "HTTPError"
            self.logger.record_error(f"HTTPError_{status}")
            if status == 404:
                self.logger.warning(f"{platform} URL not found", url=url, status=404)
                raise SourceUnavailable(platform, f"not found (404): {url}")
            self.logger.error(f"{platform} request failed", url=url, status=status)
            raise SourceUnavailable(platform, f"request failed ({status}): {url}")
        except requests.exceptions.RequestException as e:
            self.logger.record_error("RequestException")
            self.logger.error(f"{platform} request error", url=url, error=str(e))
            raise SourceUnavailable(platform, f"request error: {e}")

    def get_text(self, url: str, platform: str) -> str:
        text = self.get(url, platform).text
        if not text:
            raise SourceUnavailable(platform, f"empty response: {url}")
        return text


class SourceAdapter:
    """
    One people-search provider.

    ``search`` returns Candidates for a name within an optional location
    scope; ``fetch_detail`` expands a candidate's detail reference. Adapters
    may raise; callers go through ``safe_search`` / ``safe_fetch_detail``.
    """

    source: Source = Source.TEST
    supports_detail: bool = True

    def search(self, name: str, hint: LocationHint) -> List[Candidate]:
        raise NotImplementedError

    def fetch_detail(self, detail_reference: str) -> Optional[DetailProfile]:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source.value})"


def safe_search(
    adapter: SourceAdapter,
    name: str,
    hint: LocationHint,
    logger: Optional[StructuredLogger] = None,
) -> List[Candidate]:
    """Adapter search that never raises: any failure counts as zero candidates."""
    logger = logger or get_logger()
    platform = adapter.source.value
    logger.record_search_attempt(platform)
    try:
        results = list(adapter.search(name, hint) or [])
    except Exception as e:
        logger.record_search_failure(platform, type(e).__name__)
        logger.warning(f"{platform} search failed", name=name, state=hint.state, error=str(e))
        return []
    logger.record_search_success(platform)
    logger.debug(f"{platform} returned {len(results)} candidates", name=name, state=hint.state)
    return results


def safe_fetch_detail(
    adapter: SourceAdapter,
    detail_reference: str,
    logger: Optional[StructuredLogger] = None,
) -> Optional[DetailProfile]:
    """Deep-fetch that never raises: any failure counts as no profile."""
    logger = logger or get_logger()
    try:
        return adapter.fetch_detail(detail_reference)
    except Exception as e:
        logger.record_error(type(e).__name__)
        logger.warning(f"{adapter.source.value} profile fetch failed", ref=detail_reference, error=str(e))
        return None


def slugify(value: str) -> str:
    cleaned = "".join(c for c in (value or "").lower() if c.isalnum() or c.isspace())
    return "-".join(cleaned.split())


def absolute_url(base: str, href: Optional[str]) -> Optional[str]:
    if not href:
        return None
    if href.startswith("http"):
        return href
    return f"{base.rstrip('/')}/{href.lstrip('/')}"


def deduplicate(items: List[str]) -> List[str]:
    """Deduplicate while preserving order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
