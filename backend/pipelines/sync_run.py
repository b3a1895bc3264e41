"""Fixture sync job: pull fixtures from the feed, then settle finished matches.

``full`` mode inserts fixtures the database has not seen yet, starting from the
latest stored kickoff of each tracked tournament. ``live`` mode refreshes
matches that are in play or should already have kicked off. Both modes finish
with a settlement pass so newly finished matches are scored in the same run.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, ContextManager, Iterable, Literal, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ingestion.client import FootballApiClient, FootballApiError
from ingestion.normalize import normalize_fixture
from pickem.core.config import Settings, get_settings
from pickem.db import init_db, session_scope
from pickem.errors import SettlementError
from pickem.models import Match
from pickem.repositories import MatchRepository, SqlSettlementStore
from pickem.services.settlement import settle

SyncMode = Literal["full", "live"]
SYNC_MODES: tuple[str, ...] = ("full", "live")


class SyncError(RuntimeError):
    """The sync job could not determine what to synchronize."""


@dataclass(slots=True)
class TournamentStats:
    processed: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "errors": self.errors}


@dataclass(slots=True)
class MatchStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass(slots=True)
class ScoringStats:
    processed_matches: int = 0
    updated_scores: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed_matches": self.processed_matches,
            "updated_scores": self.updated_scores,
            "errors": self.errors,
        }


@dataclass(slots=True)
class SyncSummary:
    mode: str
    tournaments: TournamentStats = field(default_factory=TournamentStats)
    matches: MatchStats = field(default_factory=MatchStats)
    scoring: ScoringStats = field(default_factory=ScoringStats)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "tournaments": self.tournaments.to_dict(),
            "matches": self.matches.to_dict(),
            "scoring": self.scoring.to_dict(),
            "failures": self.failures,
        }


def _chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for index in range(0, len(items), size):
        yield items[index : index + size]


def _default_client_factory(settings: Settings) -> Callable[[], FootballApiClient]:
    return lambda: FootballApiClient(
        base_url=str(settings.football_api_base_url),
        api_key=settings.football_api_key,
        timeout=settings.football_api_timeout_seconds,
    )


def _sync_full(
    session: Session,
    client: FootballApiClient,
    settings: Settings,
    summary: SyncSummary,
    *,
    now: datetime,
) -> None:
    repo = MatchRepository(session)
    season = settings.sync_season or now.year

    for tournament in settings.sync_tournaments:
        api_id = tournament["api_id"]
        name = tournament["name"]
        logger.info("[FULL] Processing tournament {} (api_id={})", name, api_id)
        try:
            record = repo.upsert_tournament(api_tournament_id=api_id, name=name)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Error upserting tournament {}: {}", name, exc)
            summary.tournaments.errors += 1
            summary.failures.append({"tournament": name, "reason": str(exc)})
            continue

        summary.tournaments.processed += 1
        tournament_id = record.id
        latest = repo.latest_match_datetime(tournament_id)
        existing_ids = repo.existing_api_match_ids(tournament_id)
        from_date = latest.date() if latest is not None else None
        if from_date is None:
            logger.info("[FULL] First sync for {}; fetching the whole season", name)
        else:
            logger.info("[FULL] Fetching {} fixtures from {}", name, from_date)

        try:
            fixtures = client.fetch_fixtures(api_id, season, from_date=from_date)
        except FootballApiError as exc:
            logger.error("Feed error for {}: {}", name, exc)
            summary.failures.append({"tournament": name, "reason": str(exc)})
            continue

        logger.info("[FULL] Feed returned {} fixtures for {}", len(fixtures), name)
        for raw_fixture in fixtures:
            fixture = normalize_fixture(raw_fixture)
            if fixture is None:
                summary.matches.errors += 1
                continue
            if fixture.api_match_id in existing_ids:
                summary.matches.skipped += 1
                continue
            try:
                repo.insert_fixture(tournament_id, fixture)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Error inserting fixture {}: {}", fixture.api_match_id, exc)
                summary.matches.errors += 1
                continue
            existing_ids.add(fixture.api_match_id)
            summary.matches.inserted += 1


def _sync_live(
    session: Session,
    client_factory: Callable[[], FootballApiClient],
    settings: Settings,
    summary: SyncSummary,
    *,
    now: datetime,
) -> None:
    repo = MatchRepository(session)
    try:
        candidates = repo.get_matches_needing_refresh(now=now)
    except SQLAlchemyError as exc:
        session.rollback()
        raise SyncError("Failed to query matches for live update") from exc

    if not candidates:
        logger.info("[LIVE] No matches to update; skipping feed call")
        return

    by_api_id: dict[int, Match] = {match.api_match_id: match for match in candidates}
    api_ids = list(by_api_id)
    batches = list(_chunked(api_ids, settings.sync_live_batch_size))
    logger.info("[LIVE] Refreshing {} matches in {} batch(es)", len(api_ids), len(batches))

    with client_factory() as client:
        for index, batch in enumerate(batches, start=1):
            try:
                fixtures = client.fetch_fixtures_by_ids(batch)
            except FootballApiError as exc:
                logger.error("[LIVE] Feed error for batch {}/{}: {}", index, len(batches), exc)
                summary.matches.errors += len(batch)
                summary.failures.append({"batch": index, "reason": str(exc)})
                continue

            for raw_fixture in fixtures:
                fixture = normalize_fixture(raw_fixture)
                if fixture is None:
                    continue
                match = by_api_id.get(fixture.api_match_id)
                if match is None:
                    continue
                try:
                    repo.apply_fixture(match, fixture)
                    session.commit()
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.error("[LIVE] Error updating fixture {}: {}", fixture.api_match_id, exc)
                    summary.matches.errors += 1
                    continue
                summary.matches.updated += 1
                logger.info(
                    "[LIVE] Updated fixture {}: {} ({}-{})",
                    fixture.api_match_id,
                    fixture.status.value,
                    fixture.home_score,
                    fixture.away_score,
                )


def _run_scoring(session: Session, summary: SyncSummary) -> None:
    logger.info("Running settlement for finished matches")
    try:
        result = settle(SqlSettlementStore(session))
    except SettlementError as exc:
        logger.error("Settlement pass failed: {}", exc)
        summary.scoring.errors += 1
        summary.failures.append({"stage": "scoring", "reason": str(exc)})
        return
    summary.scoring.processed_matches = result.processed_matches
    summary.scoring.updated_scores = result.updated_scores
    summary.scoring.errors = len(result.errors)


def run_sync(
    mode: SyncMode,
    settings: Settings | None = None,
    *,
    now: datetime | None = None,
    client_factory: Callable[[], FootballApiClient] | None = None,
    session_factory: Callable[[], ContextManager[Session]] | None = None,
) -> SyncSummary:
    """Run one sync pass followed by settlement.

    Per-fixture and per-batch failures are counted in the summary. A failure to
    decide which matches to refresh raises :class:`SyncError`.
    """

    if mode not in SYNC_MODES:
        raise ValueError(f"Invalid mode {mode!r}; use 'full' or 'live'")

    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    client_factory = client_factory or _default_client_factory(settings)
    if session_factory is None:
        init_db()
        session_factory = session_scope

    summary = SyncSummary(mode=mode)
    logger.info("Starting sync in {} mode", mode.upper())
    with session_factory() as session:
        if mode == "full":
            with client_factory() as client:
                _sync_full(session, client, settings, summary, now=now)
        else:
            _sync_live(session, client_factory, settings, summary, now=now)
        _run_scoring(session, summary)

    logger.info("Sync completed: {}", summary.to_dict())
    return summary


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronize fixtures and settle finished matches")
    parser.add_argument(
        "--mode",
        choices=SYNC_MODES,
        default="full",
        help="full inserts new fixtures; live refreshes matches in play",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(summary: SyncSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), indent=2))
    logger.info("Sync summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        summary = run_sync(args.mode, get_settings())
    except (SyncError, FootballApiError) as exc:
        logger.error("Sync error: {}", exc)
        return 1

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
