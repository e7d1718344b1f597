"""Run the trellis-shares worker.

    python -m trellis_shares run [--interval SECONDS]
    python -m trellis_shares run-once
"""
from __future__ import annotations

import argparse
import asyncio
import sys

from trellis_shares.observability import configure_logging, get_logger
from trellis_shares.settings import ShareSettings
from trellis_shares.sharing.errors import ConfigurationError
from trellis_shares.worker import build_service, build_store


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="trellis-shares")
    sub = parser.add_subparsers(dest="command", required=True)
    run = sub.add_parser("run", help="poll the job queue forever")
    run.add_argument("--interval", type=float, default=None, help="seconds between polls")
    sub.add_parser("run-once", help="process the current queue once and exit")
    return parser.parse_args(argv)


async def _run(settings: ShareSettings, args: argparse.Namespace) -> int:
    store = build_store(settings)
    try:
        service = build_service(settings, store)
        if args.command == "run-once":
            outcomes = await service.run_once()
            return 0 if all(o.success for o in outcomes) else 1
        interval = args.interval or settings.poll_interval_seconds
        await service.run_forever(interval_seconds=interval)
        return 0
    finally:
        await store.aclose()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()
    logger = get_logger(__name__)

    try:
        settings = ShareSettings.from_env()
    except ValueError as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return 2
    errors = settings.validate()
    if errors:
        for error in errors:
            print(f"config error: {error}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run(settings, args))
    except ConfigurationError as exc:
        logger.error("startup_failed", error=str(exc))
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
