"""
Profile cache for deep-fetch results.

Keyed by (source, detail_reference) because references are only unique
within one provider. Failed fetches are cached as None so a broken profile
page is not requested twice in the same run. Concurrent requests for the
same key wait on the first fetch instead of issuing their own.
"""

import json
import threading
from concurrent.futures import Future
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .database import CachedProfile, get_session, init_database
from .models import DetailProfile, Relative

CacheKey = Tuple[str, str]


class ProfileCache:
    """In-memory memoization for one run (or one process)."""

    def __init__(self):
        self._entries: Dict[CacheKey, Optional[DetailProfile]] = {}
        self._inflight: Dict[CacheKey, Future] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: CacheKey) -> Optional[DetailProfile]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: CacheKey, profile: Optional[DetailProfile]) -> None:
        with self._lock:
            self._entries[key] = profile
        self._store(key, profile)

    def get_or_fetch(
        self, key: CacheKey, fetch: Callable[[], Optional[DetailProfile]]
    ) -> Tuple[Optional[DetailProfile], bool]:
        """
        Return (profile, fetched). ``fetched`` is False when the value came
        from the cache or from another thread's in-flight fetch.
        """
        with self._lock:
            if key in self._entries:
                return self._entries[key], False
            pending = self._inflight.get(key)
            if pending is None:
                pending = Future()
                self._inflight[key] = pending
                owner = True
            else:
                owner = False

        if not owner:
            return pending.result(), False

        # Waiters block on ``pending``, so it must settle on every path
        fetched = False
        try:
            found, profile = self._load(key)
            if not found:
                profile = fetch()
                fetched = True
            with self._lock:
                self._entries[key] = profile
            if fetched:
                self._store(key, profile)
        except BaseException as e:
            pending.set_exception(e)
            raise
        else:
            pending.set_result(profile)
        finally:
            with self._lock:
                self._inflight.pop(key, None)
        return profile, fetched

    def _load(self, key: CacheKey) -> Tuple[bool, Optional[DetailProfile]]:
        return False, None

    def _store(self, key: CacheKey, profile: Optional[DetailProfile]) -> None:
        pass


def profile_to_json(profile: Optional[DetailProfile]) -> Optional[str]:
    if profile is None:
        return None
    return json.dumps({
        "full_name": profile.resolved_full_name,
        "phones": sorted(profile.all_phones),
        "relatives": [
            {"name": r.name, "detail_reference": r.detail_reference}
            for r in profile.all_relatives
        ],
        "is_deceased": profile.is_deceased,
    })


def profile_from_json(payload: Optional[str]) -> Optional[DetailProfile]:
    if not payload:
        return None
    data = json.loads(payload)
    return DetailProfile(
        resolved_full_name=data.get("full_name", ""),
        all_phones=frozenset(data.get("phones", [])),
        all_relatives=tuple(
            Relative(r["name"], r.get("detail_reference")) for r in data.get("relatives", [])
        ),
        is_deceased=data.get("is_deceased"),
    )


class SqlProfileCache(ProfileCache):
    """
    Profile cache persisted in SQLite across runs.

    Rows older than ``ttl_days`` are treated as misses: a profile can go stale
    (a person dies, a number is disconnected), so persistence is bounded by
    freshness rather than kept forever.
    """

    def __init__(self, db_path: Path, ttl_days: int = 30):
        super().__init__()
        self.db_path = Path(db_path)
        self.ttl = timedelta(days=ttl_days)
        self._engine = init_database(self.db_path)
        self._db_lock = threading.Lock()

    def _load(self, key: CacheKey) -> Tuple[bool, Optional[DetailProfile]]:
        with self._db_lock:
            session = get_session(self.db_path, engine=self._engine)
            try:
                row = session.get(CachedProfile, {"source": key[0], "detail_reference": key[1]})
                if row is None or row.fetched_at < datetime.now() - self.ttl:
                    return False, None
                return True, profile_from_json(row.payload)
            finally:
                session.close()

    def _store(self, key: CacheKey, profile: Optional[DetailProfile]) -> None:
        with self._db_lock:
            session = get_session(self.db_path, engine=self._engine)
            try:
                session.merge(CachedProfile(
                    source=key[0],
                    detail_reference=key[1],
                    payload=profile_to_json(profile),
                    fetched_at=datetime.now(),
                ))
                session.commit()
            finally:
                session.close()

    def purge_expired(self) -> int:
        """Delete rows older than the TTL. Returns the number removed."""
        cutoff = datetime.now() - self.ttl
        with self._db_lock:
            session = get_session(self.db_path, engine=self._engine)
            try:
                removed = session.query(CachedProfile).filter(CachedProfile.fetched_at < cutoff).delete()
                session.commit()
                return removed
            finally:
                session.close()
