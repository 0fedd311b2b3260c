import argparse
import json
from pathlib import Path
from typing import Optional

from .env import load_env

from . import __version__
from .batch import process_records
from .cache import ProfileCache, SqlProfileCache
from .config import ResolverConfig
from .gemini import GeminiOracle
from .limiter import RequestLimiter
from .logger import StructuredLogger, get_logger
from .merger import PhoneMerger
from .models import SearchTarget
from .normalize import parse_address
from .oracle import RuleBasedOracle
from .resolver import TieredResolver
from .schema import validate_candidate_record
from .sources.common import HttpFetcher
from .sources.radaris import RadarisAdapter
from .sources.searchpeoplefree import SearchPeopleFreeAdapter
from .sources.web import WebSearchAdapter


def build_oracle(config: ResolverConfig, kind: str, logger: StructuredLogger):
    if kind == "gemini" or (kind == "auto" and config.gemini_api_key):
        return GeminiOracle(api_key=config.gemini_api_key, model=config.gemini_model, logger=logger)
    return RuleBasedOracle()


def build_resolver(
    config: ResolverConfig,
    oracle_kind: str = "auto",
    logger: Optional[StructuredLogger] = None,
) -> TieredResolver:
    """Wire the live adapters, oracle, cache and limiter from configuration."""
    logger = logger or get_logger()
    limiter = RequestLimiter(config.max_concurrent_requests)
    fetcher = HttpFetcher(
        limiter,
        retry_policy=config.http_retry,
        timeout=config.request_timeout,
        brightdata_api_key=config.brightdata_api_key,
        brightdata_zone=config.brightdata_zone,
        logger=logger,
    )
    adapters = [RadarisAdapter(fetcher), SearchPeopleFreeAdapter(fetcher)]

    web = None
    if config.google_api_key and config.google_cse_id:
        web = WebSearchAdapter(fetcher, config.google_api_key, config.google_cse_id)
    else:
        logger.info("Web search disabled (set GOOGLE_API_KEY and GOOGLE_CSE_ID to enable)")

    if config.cache_db_path:
        cache = SqlProfileCache(Path(config.cache_db_path), ttl_days=config.cache_ttl_days)
    else:
        cache = ProfileCache()

    merger = PhoneMerger(cache, adapters, max_deep_fetches=config.max_deep_fetches, logger=logger)
    oracle = build_oracle(config, oracle_kind, logger)
    return TieredResolver(adapters, oracle, merger, config=config, web=web, logger=logger)


def cmd_resolve(args: argparse.Namespace) -> None:
    config = ResolverConfig.from_env(load_dotenv_file=False)
    city, state = args.city or "", args.state or ""
    if args.address and not (city and state):
        parsed_city, parsed_state = parse_address(args.address, config.default_state)
        city, state = city or parsed_city, state or parsed_state

    target = SearchTarget(
        person_name=args.name,
        associated_name=args.associated,
        city=city,
        state=state or config.default_state,
        address=args.address,
    )
    resolver = build_resolver(config, args.oracle)
    outcome = resolver.resolve(target)
    print(json.dumps(outcome.to_dict(), indent=2))


def cmd_batch(args: argparse.Namespace) -> None:
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    records = []
    with input_path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise SystemExit(f"{input_path}:{line_no}: invalid JSON ({e})")

    config = ResolverConfig.from_env(load_dotenv_file=False)
    if args.workers:
        config = config.with_overrides(concurrent_rows=args.workers)

    logger = get_logger()
    resolver = build_resolver(config, args.oracle, logger)
    rows = process_records(records, resolver, config, logger)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(row, default=str) + "\n")

    found = sum(1 for r in rows if r.get("found"))
    print(f"Resolved {found}/{len(rows)} records -> {output_path}")
    logger.log_metrics_summary()


def cmd_validate(args: argparse.Namespace) -> None:
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    with input_path.open("r", encoding="utf-8") as f:
        record = json.load(f)

    errors = validate_candidate_record(record)
    if errors:
        print("Invalid candidate record:")
        for err in errors:
            print(f"- {err}")
        raise SystemExit(1)
    print("Valid candidate record.")


def cmd_purge_cache(args: argparse.Namespace) -> None:
    config = ResolverConfig.from_env(load_dotenv_file=False)
    db_path = args.db or config.cache_db_path
    if not db_path:
        raise SystemExit("No cache database configured (use --db or PRFINDER_CACHE_DB_PATH)")
    cache = SqlProfileCache(Path(db_path), ttl_days=config.cache_ttl_days)
    removed = cache.purge_expired()
    print(f"Removed {removed} expired profiles from {db_path}")


def main():
    # Load .env if present (GEMINI_API_KEY, GOOGLE_API_KEY, BRIGHTDATA_API_KEY, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="prfinder", description="Resolve personal representatives to phone numbers")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    res = subparsers.add_parser("resolve", help="Resolve a single person")
    res.add_argument("--name", required=True, help="Person to find")
    res.add_argument("--associated", help="Linked name, e.g. the decedent")
    res.add_argument("--city", help="Target city")
    res.add_argument("--state", help="Target state code (default: PRFINDER_DEFAULT_STATE or WA)")
    res.add_argument("--address", help="Property address, used for city/state and the address pivot")
    res.add_argument("--oracle", choices=["auto", "gemini", "rules"], default="auto",
                     help="Match oracle (default: gemini when GEMINI_API_KEY is set)")
    res.set_defaults(func=cmd_resolve)

    bat = subparsers.add_parser("batch", help="Resolve every record of a JSON lines file")
    bat.add_argument("--input", required=True, help="JSONL with owner_name/property_address or name/city/state")
    bat.add_argument("--output", required=True, help="JSONL output path")
    bat.add_argument("--workers", type=int, help="Records processed concurrently")
    bat.add_argument("--oracle", choices=["auto", "gemini", "rules"], default="auto", help="Match oracle")
    bat.set_defaults(func=cmd_batch)

    val = subparsers.add_parser("validate", help="Validate a raw candidate record JSON")
    val.add_argument("--input", required=True, help="Path to candidate JSON")
    val.set_defaults(func=cmd_validate)

    prg = subparsers.add_parser("purge-cache", help="Delete expired rows from the profile cache")
    prg.add_argument("--db", help="Cache database path (default: PRFINDER_CACHE_DB_PATH)")
    prg.set_defaults(func=cmd_purge_cache)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
