import argparse
import json
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from . import __version__
from .config import Settings
from .database import AdRow, get_session, init_database
from .levels.client import LlmLevelClassifier
from .logger import get_logger
from .models import currency_from_code
from .salaries.rates import CbrRateClient
from .schema import validate_ad
from pipelines.runner import STAGES, BatchRunner, load_rates
from storage.repositories import AdRepository

logger = get_logger()


def _load_json(input_path: Path):
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


def ingest_ads(items: Iterable[dict], session: Session) -> dict:
    """Validate and append ads; ids already stored are left alone."""
    repo = AdRepository(session)
    counts = {"added": 0, "existing": 0, "invalid": 0}
    seen = set()
    for item in items:
        errors = validate_ad(item)
        if errors:
            counts["invalid"] += 1
            logger.warning("Invalid ad skipped", ad_id=item.get("id"), errors=errors)
            continue
        if item["id"] in seen or session.get(AdRow, item["id"]) is not None:
            counts["existing"] += 1
            continue
        repo.add_from_dict(item)
        seen.add(item["id"])
        counts["added"] += 1
    session.commit()
    return counts


def cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    items = _load_json(Path(args.input))
    init_database(settings.db_path)
    session = get_session(settings.db_path)
    try:
        counts = ingest_ads(items, session)
    finally:
        session.close()
    print(f"Added: {counts['added']}")
    print(f"Existing: {counts['existing']}")
    print(f"Invalid: {counts['invalid']}")


def cmd_validate(args: argparse.Namespace, settings: Settings) -> None:
    items = _load_json(Path(args.input))
    invalid = 0
    for item in items:
        errors = validate_ad(item)
        if errors:
            invalid += 1
            print(f"Invalid: {item.get('id')}")
            for e in errors:
                print(f" - {e}")
    if invalid:
        raise SystemExit(2)
    print("Valid")


def _parse_currencies(raw: str) -> List:
    currencies = []
    for code in raw.split(","):
        if not code.strip():
            continue
        currency = currency_from_code(code)
        if currency is None:
            raise SystemExit(f"Unknown currency: {code.strip()}")
        currencies.append(currency)
    return currencies


def cmd_fetch_rates(args: argparse.Namespace, settings: Settings) -> None:
    table = load_rates(settings)
    client = CbrRateClient(settings.rate_api_url)
    end = date.fromisoformat(args.end) if args.end else None
    added = client.fill(table, _parse_currencies(args.currencies), date.fromisoformat(args.start), end)
    table.save_csv(settings.rate_cache_path)
    print(f"Rates added: {added}")
    print(f"Cache: {settings.rate_cache_path}")


def cmd_run(args: argparse.Namespace, settings: Settings) -> None:
    stages = [s.strip() for s in args.stages.split(",") if s.strip()] if args.stages else list(STAGES)
    classifier = None
    if args.llm:
        classifier = LlmLevelClassifier(model=settings.llm_model, timeout=settings.llm_timeout)

    init_database(settings.db_path)
    session = get_session(settings.db_path)
    runner = BatchRunner(settings, session, classifier=classifier)
    try:
        summary = runner.run(stages)
    except KeyboardInterrupt:
        runner.cancel()
        raise
    finally:
        session.close()

    print(json.dumps(summary.as_dict(), indent=2, ensure_ascii=False))
    if not summary.ok:
        raise SystemExit(1)


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="tgjobads", description="Job ad deduplication and enrichment")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ing = subparsers.add_parser("ingest", help="Append ads from a JSON file (one object or a list)")
    ing.add_argument("--input", required=True, help="Path to ads JSON input")
    ing.set_defaults(func=cmd_ingest)

    val = subparsers.add_parser("validate", help="Validate an ads JSON file")
    val.add_argument("--input", required=True, help="Path to ads JSON input")
    val.set_defaults(func=cmd_validate)

    rts = subparsers.add_parser("fetch-rates", help="Fetch historical exchange rates into the CSV cache")
    rts.add_argument("--currencies", required=True, help="Comma-separated codes, e.g. EUR,RUB,KZT")
    rts.add_argument("--start", required=True, help="First day, YYYY-MM-DD")
    rts.add_argument("--end", help="Last day, YYYY-MM-DD (default: today)")
    rts.set_defaults(func=cmd_fetch_rates)

    run = subparsers.add_parser("run", help="Run the batch stages")
    run.add_argument("--stages", help="Comma-separated stages (default: all, in order)")
    run.add_argument("--llm", action="store_true", help="Classify levels with the LLM instead of hashtag rules")
    run.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        settings = Settings.from_env()
        get_logger().set_level(settings.log_level)
        args.func(args, settings)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
