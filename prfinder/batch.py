"""
Batch processing of probate records.

A record is a dict with an ``owner_name`` field (the combined decedent /
representative text) and an optional ``property_address``. Records that
already name their target directly (``name``, ``associated_name``, ``city``,
``state``) are resolved as-is.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config import ResolverConfig
from .logger import StructuredLogger, get_logger
from .models import ResolutionOutcome, SearchTarget, not_found
from .names import extract_representatives, is_searchable_name, parse_owner_name
from .normalize import parse_address
from .resolver import TieredResolver


def target_from_record(record: Dict[str, Any], default_state: str = "WA") -> Optional[SearchTarget]:
    """Build a SearchTarget from a record that names its target directly."""
    name = (record.get("name") or "").strip()
    if not name:
        return None
    city = record.get("city") or ""
    state = record.get("state") or ""
    address = record.get("address") or record.get("property_address")
    if address and not (city and state):
        parsed_city, parsed_state = parse_address(address, default_state)
        city, state = city or parsed_city, state or parsed_state
    return SearchTarget(
        person_name=name,
        associated_name=record.get("associated_name") or None,
        city=city,
        state=state or default_state,
        address=address or None,
    )


def resolve_many(
    targets: Sequence[SearchTarget],
    resolver: TieredResolver,
    max_workers: int = 20,
    logger: Optional[StructuredLogger] = None,
) -> List[ResolutionOutcome]:
    """
    Resolve targets concurrently; results keep input order.

    A run that fails becomes a ``found=False`` outcome so the batch carries on.
    """
    logger = logger or get_logger()
    if not targets:
        return []

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(targets)))) as executor:
        futures = [executor.submit(resolver.resolve, t) for t in targets]
        outcomes = []
        for target, future in zip(targets, futures):
            try:
                outcomes.append(future.result())
            except Exception as e:
                logger.error("Resolution run failed", name=target.person_name, error=str(e))
                outcomes.append(not_found(f"Resolution failed: {e}", target.person_name, tier="error"))
    return outcomes


def process_record(
    record: Dict[str, Any],
    resolver: TieredResolver,
    config: Optional[ResolverConfig] = None,
    logger: Optional[StructuredLogger] = None,
) -> Dict[str, Any]:
    """
    Resolve one probate record and return it with the outcome fields added.

    Up to ``max_representatives`` representatives are resolved concurrently;
    the first one found wins, otherwise the first outcome is reported.
    """
    config = config or ResolverConfig()
    logger = logger or get_logger()

    direct = target_from_record(record, config.default_state)
    if direct is not None:
        outcome = resolve_many([direct], resolver, 1, logger)[0]
        return {**record, **outcome.to_dict()}

    owner = parse_owner_name(record.get("owner_name"))
    address = record.get("property_address")
    city, state = parse_address(address, config.default_state)

    candidates = extract_representatives(owner.representative_name or "")
    representatives = [n for n in candidates if is_searchable_name(n)][: config.max_representatives]

    row = {
        **record,
        "deceased_name": owner.deceased_name or "",
        "is_probate": owner.is_probate,
        "representatives": representatives,
    }

    if not representatives:
        logger.info("No searchable representative", owner=record.get("owner_name"))
        return {**row, **not_found("No searchable representative name", tier="skipped").to_dict()}

    targets = [
        SearchTarget(name, owner.deceased_name, city, state, address or None)
        for name in representatives
    ]
    outcomes = resolve_many(targets, resolver, len(targets), logger)
    chosen = next((o for o in outcomes if o.found), outcomes[0])
    return {**row, **chosen.to_dict()}


def process_records(
    records: Iterable[Dict[str, Any]],
    resolver: TieredResolver,
    config: Optional[ResolverConfig] = None,
    logger: Optional[StructuredLogger] = None,
) -> List[Dict[str, Any]]:
    """Process many records with at most ``concurrent_rows`` in flight."""
    config = config or ResolverConfig()
    logger = logger or get_logger()
    records = list(records)
    if not records:
        return []

    def run(record):
        try:
            return process_record(record, resolver, config, logger)
        except Exception as e:
            logger.error("Record failed", owner=record.get("owner_name"), error=str(e))
            return {**record, **not_found(f"Record failed: {e}", tier="error").to_dict()}

    with ThreadPoolExecutor(max_workers=max(1, min(config.concurrent_rows, len(records)))) as executor:
        return list(executor.map(run, records))
