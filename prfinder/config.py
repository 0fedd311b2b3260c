"""
Runtime configuration.

Tier thresholds are tunable per deployment: the right values depend on the
providers in use and should be calibrated against labeled outcomes. Every
field can be overridden from the environment with a ``PRFINDER_`` prefix,
e.g. ``PRFINDER_MEDIUM_THRESHOLD=75``.
"""

import os
from dataclasses import dataclass, field, fields, replace
from typing import Optional

from .env import load_env
from .retry import RetryPolicy

ENV_PREFIX = "PRFINDER_"


@dataclass(frozen=True)
class ResolverConfig:
    # Tier acceptance thresholds (0-100)
    perfect_threshold: int = 85
    medium_threshold: int = 70
    nationwide_threshold: int = 85
    floor_threshold: int = 25
    address_pivot_threshold: int = 50

    # Cost bounds
    max_deep_fetches: int = 8
    max_relatives: int = 3
    max_survivors: int = 2
    max_representatives: int = 2

    # Concurrency
    concurrent_rows: int = 20
    max_concurrent_requests: int = 20
    request_timeout: float = 15.0

    # Fuzzy household back-link, rapidfuzz ratio on first and last names
    backlink_similarity: int = 85

    default_state: str = "WA"
    oracle_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_retries=2, base_delay=1.0))
    http_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_retries=2, base_delay=1.0))

    # Credentials, only needed by the live adapters and the Gemini oracle
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    google_api_key: Optional[str] = None
    google_cse_id: Optional[str] = None
    brightdata_api_key: Optional[str] = None
    brightdata_zone: str = "web_unlocker1"
    cache_db_path: Optional[str] = None
    cache_ttl_days: int = 30

    def __post_init__(self):
        for name in ("perfect_threshold", "medium_threshold", "nationwide_threshold",
                     "floor_threshold", "address_pivot_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")
        if self.max_deep_fetches < 1:
            raise ValueError("max_deep_fetches must be at least 1")

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "ResolverConfig":
        if load_dotenv_file:
            load_env()
        overrides = {}
        for f in fields(cls):
            if f.name in ("oracle_retry", "http_retry"):
                continue
            raw = os.getenv(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(raw, f.default)

        # Provider credentials keep the names the providers document
        overrides.setdefault("gemini_api_key", os.getenv("GEMINI_API_KEY"))
        overrides.setdefault("google_api_key", os.getenv("GOOGLE_API_KEY"))
        overrides.setdefault("google_cse_id", os.getenv("GOOGLE_CSE_ID"))
        overrides.setdefault("brightdata_api_key", os.getenv("BRIGHTDATA_API_KEY"))

        retries = os.getenv(ENV_PREFIX + "ORACLE_RETRIES")
        if retries:
            overrides["oracle_retry"] = RetryPolicy(max_retries=int(retries))
        return cls(**overrides)

    def with_overrides(self, **kwargs) -> "ResolverConfig":
        return replace(self, **kwargs)


def _coerce(raw: str, default):
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw
