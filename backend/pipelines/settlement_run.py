"""Standalone job that settles finished matches without a fixture sync."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, ContextManager, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from pickem.core.config import Settings, get_settings
from pickem.db import init_db, session_scope
from pickem.domain import SettlementResult
from pickem.errors import SettlementError
from pickem.repositories import SqlSettlementStore
from pickem.services.settlement import settle


def run_settlement(
    *,
    dry_run: bool = False,
    session_factory: Callable[[], ContextManager[Session]] | None = None,
    store_factory: Callable[[Session], Any] | None = None,
) -> SettlementResult:
    """Settle every finished, unsettled match in one pass.

    Raises:
        SettlementError: unsettled matches could not be listed.
    """

    if session_factory is None:
        init_db()
        session_factory = session_scope
    store_factory = store_factory or SqlSettlementStore

    logger.info("Starting settlement run (dry_run={})", dry_run)
    with session_factory() as session:
        return settle(store_factory(session), dry_run=dry_run)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Award points for finished matches without running a fixture sync",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be settled without writing scores or settled flags",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _summary_path(args: argparse.Namespace, settings: Settings) -> Path | None:
    if args.summary_path:
        return args.summary_path
    if settings.settlement_summary_dir:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        return Path(settings.settlement_summary_dir) / f"settlement_{stamp}.json"
    return None


def _write_summary(payload: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, default=str, indent=2))
    logger.info("Settlement summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    try:
        result = run_settlement(dry_run=args.dry_run)
    except SettlementError as exc:
        logger.error("Settlement run failed: {}", exc)
        return 1

    path = _summary_path(args, settings)
    if path is not None:
        _write_summary({"dry_run": args.dry_run, **result.to_dict()}, path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
