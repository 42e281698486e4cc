"""
rankkeeper.__main__ — Entry point for ``python -m rankkeeper``
===============================================================

Commands:

``sweep``
    Run expiration passes until a pass removes nothing (or ``--max-passes``
    is reached).  Meant to be called by cron / an external scheduler,
    e.g. hourly.
``init-db``
    Create tables and seed the default rank catalogue.

Wiring:
1. Load .env (``DATABASE_URL``).
2. Load config.yaml (sweep batch size, renewal policy).
3. Create the SQLAlchemy engine.
4. Run the command.

Run with::

    python -m rankkeeper sweep --config config.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from rankkeeper.config import RankkeeperConfig, load_config
from rankkeeper.database.engine import create_db_engine, init_db
from rankkeeper.engine.clock import SystemClock
from rankkeeper.errors import StoreUnavailable
from rankkeeper.services.store import SqlEntitlementStore
from rankkeeper.services.sweeper import ExpirationSweeper

logger = logging.getLogger("rankkeeper")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rankkeeper")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Revoke expired rank grants")
    sweep.add_argument("--batch-size", type=int, default=None)
    sweep.add_argument("--max-passes", type=int, default=10)

    sub.add_parser("init-db", help="Create tables and seed default ranks")
    return parser


def _load_config(path: str) -> RankkeeperConfig:
    try:
        return load_config(path)
    except FileNotFoundError:
        logger.warning("No config file at %s — using defaults", path)
        return RankkeeperConfig()


def run_sweep(sweeper: ExpirationSweeper, max_passes: int) -> int:
    """Sweep until a pass removes nothing.  Returns total ranks removed."""
    total = 0
    for _ in range(max(1, max_passes)):
        result = sweeper.sweep()
        total += result.removed
        if result.removed == 0 or result.checked < sweeper.batch_size:
            break
    return total


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    args = _build_parser().parse_args(argv)

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = _load_config(args.config)
    except ValueError as exc:
        logger.critical("Invalid configuration: %s", exc)
        return 1

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        return 1

    if args.command == "init-db":
        try:
            init_db(engine)
        except SQLAlchemyError as exc:
            logger.critical("Could not initialise the database: %s", exc)
            return 1
        logger.info("Database ready for %s", cfg.community_name)
        return 0

    # 4. Sweep.
    clock = SystemClock()
    sweeper = ExpirationSweeper(
        SqlEntitlementStore(engine, clock),
        clock,
        batch_size=args.batch_size or cfg.sweep_batch_size,
    )
    try:
        removed = run_sweep(sweeper, args.max_passes)
    except StoreUnavailable:
        logger.exception("Rank expiration sweep failed")
        return 1
    logger.info(
        "Rank expiration check complete for %s: %d ranks removed",
        cfg.community_name, removed,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
