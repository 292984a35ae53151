#!/usr/bin/env python
"""
Best-Seller Recompute CLI

Runs one full recompute against the configured database and prints the
summary as JSON.

Usage:
    python scripts/recompute_best_sellers.py
    python scripts/recompute_best_sellers.py --timeout 120 --strict

Exit codes:
    0  completed (or partial without --strict)
    1  partial run with --strict
    2  aborted: data source error, timeout or a run already in progress
"""

import argparse
import asyncio
import json
import sys

import structlog

from bestsellers.components import build_components
from bestsellers.config import get_settings
from bestsellers.config.logging import configure_logging
from bestsellers.database.connection import close_database, get_session_factory, init_database
from bestsellers.ranking.exceptions import BestSellersError, PartialRecomputeFailure
from bestsellers.serving.cache import InMemoryResultCache

logger = structlog.get_logger(__name__)


async def run(timeout, strict: bool) -> int:
    settings = get_settings()

    await init_database()
    try:
        components = build_components(settings, get_session_factory(), cache=InMemoryResultCache())
        try:
            result = await components.recompute.run(timeout=timeout)
        except BestSellersError as e:
            logger.error("Recompute aborted", error=str(e), error_type=type(e).__name__)
            return 2
    finally:
        await close_database()

    print(json.dumps(result.summary(), indent=2))

    if strict:
        try:
            result.raise_for_failures()
        except PartialRecomputeFailure as e:
            logger.error("Recompute finished with failures", error=str(e))
            return 1
        if result.timed_out:
            logger.error("Recompute deadline reached", skipped=result.skipped)
            return 1
    return 0


def main() -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Recompute persisted best-seller ranks and flags")
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.ranking.recompute_timeout_seconds,
        help="Deadline in seconds (default: RANKING_RECOMPUTE_TIMEOUT_SECONDS)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when any product write failed or was skipped",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    args = parser.parse_args()
    configure_logging(args.log_level)

    return asyncio.run(run(args.timeout, args.strict))


if __name__ == "__main__":
    sys.exit(main())
