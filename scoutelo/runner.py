"""Validation runner for schedulers and admins.

Usage:
    # From CLI
    python -m scoutelo.runner --event 2025casj
    python -m scoutelo.runner --match 2025casj_qm12 --strategies consensus

    # From code
    from scoutelo.runner import run_validation
    summary = await run_validation(event_key="2025casj")
"""

import argparse
import asyncio
import json
import logging
from typing import Optional

from scoutelo.database import AsyncSessionLocal, init_db
from scoutelo.errors import ScoutEloError
from scoutelo.validation.service import build_official_source, create_validation_service

logger = logging.getLogger(__name__)


async def run_validation(
    event_key: Optional[str] = None,
    match_key: Optional[str] = None,
    strategies: Optional[list[str]] = None,
    source: Optional[str] = None,
    create_tables: bool = False,
) -> dict:
    """Validate an event or a match on a fresh session and return the summary dict."""
    if create_tables:
        await init_db()

    async with AsyncSessionLocal() as session:
        official_source = build_official_source(session, source)
        service = create_validation_service(session, official_source=official_source)
        try:
            if match_key:
                summary = await service.validate_match(match_key, strategies)
            else:
                summary = await service.validate_event(event_key, strategies)
        finally:
            close = getattr(official_source, "close", None)
            if close is not None:
                await close()
    return summary.to_dict()


def main():
    """CLI entrypoint for validation runs."""
    parser = argparse.ArgumentParser(description="Scouter validation runner")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--event", type=str, help="Event key (e.g., 2025casj)")
    target.add_argument("--match", type=str, help="Match key (e.g., 2025casj_qm12)")
    parser.add_argument(
        "--strategies",
        type=str,
        default=None,
        help="Comma-separated strategies (consensus,official_result). Default: all",
    )
    parser.add_argument(
        "--source",
        choices=["tba", "schedule"],
        default=None,
        help="Official result source. Default: tba when TBA_API_KEY is set",
    )
    parser.add_argument("--init-db", action="store_true", help="Create tables before running")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    # Setup logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    strategies = [s.strip() for s in args.strategies.split(",") if s.strip()] if args.strategies else None

    try:
        result = asyncio.run(run_validation(
            event_key=args.event,
            match_key=args.match,
            strategies=strategies,
            source=args.source,
            create_tables=args.init_db,
        ))
    except ScoutEloError as e:
        print(json.dumps(e.to_dict(), indent=2))
        raise SystemExit(2)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
