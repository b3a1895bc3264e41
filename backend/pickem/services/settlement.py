"""Match settlement: award points for correct predictions on finished matches.

Settlement is a stateless function over a store. Each invocation discovers
every finished, unsettled match with a final outcome, credits
``POINTS_PER_CORRECT_PICK`` to each user whose prediction matches, and then
marks the match settled. A match that has been marked settled is never
selected again, which is what keeps repeated runs from double counting.

Only a failure to list unsettled matches aborts a run. Failures on a single
match or a single user's score are recorded in the returned result and the
run moves on.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, Sequence

from loguru import logger

from pickem.domain import MatchRecord, PredictionRecord, ScoreRecord, SettlementResult
from pickem.domain.models import MatchOutcome, MatchStatus
from pickem.errors import SettlementError, StoreError

POINTS_PER_CORRECT_PICK = 3


class SettlementStore(Protocol):
    """Storage operations the settlement engine relies on."""

    def find_unsettled_finished_matches(self) -> Sequence[MatchRecord]: ...

    def find_predictions_for_match(self, match_id: int) -> Sequence[PredictionRecord]: ...

    def get_score(self, user_id: str, tournament_id: int) -> ScoreRecord | None: ...

    def upsert_score(
        self, user_id: str, tournament_id: int, new_total: int, updated_at: datetime
    ) -> None: ...

    def mark_match_settled(self, match_id: int) -> None: ...


def is_correct_prediction(predicted: MatchOutcome, actual: MatchOutcome | None) -> bool:
    if actual is None:
        return False
    return predicted == actual


def is_settleable(match: MatchRecord) -> bool:
    return (
        match.status == MatchStatus.FINISHED
        and match.outcome is not None
        and not match.settled
    )


def settle(
    store: SettlementStore,
    dry_run: bool = False,
    *,
    now: datetime | None = None,
) -> SettlementResult:
    """Settle every finished, unsettled match known to ``store``.

    In dry-run mode nothing is written: scores and settled flags stay as they
    are, but the counters report what a live run would have done.

    Raises:
        SettlementError: the unsettled matches could not be listed.
    """

    result = SettlementResult()

    try:
        matches = list(store.find_unsettled_finished_matches())
    except StoreError as exc:
        raise SettlementError(f"Failed to fetch unsettled matches: {exc}") from exc

    if not matches:
        logger.info("No unsettled matches found; settlement finished with no updates")
        return result

    logger.info("Settling {} matches (dry_run={})", len(matches), dry_run)

    for match in matches:
        if not is_settleable(match):
            logger.warning(
                "Skipping match {}: status={}, outcome={}, settled={}",
                match.match_id,
                match.status,
                match.outcome,
                match.settled,
            )
            continue
        _settle_match(store, match, result, dry_run=dry_run, now=now)

    logger.info(
        "Settlement finished: processed_matches={}, updated_scores={}, errors={}",
        result.processed_matches,
        result.updated_scores,
        len(result.errors),
    )
    return result


def _settle_match(
    store: SettlementStore,
    match: MatchRecord,
    result: SettlementResult,
    *,
    dry_run: bool,
    now: datetime | None,
) -> None:
    try:
        predictions = list(store.find_predictions_for_match(match.match_id))
    except StoreError as exc:
        message = f"Failed to fetch predictions for match {match.match_id}: {exc}"
        logger.warning(message)
        result.errors.append(message)
        return

    for prediction in predictions:
        if not is_correct_prediction(prediction.predicted, match.outcome):
            continue

        if dry_run:
            result.updated_scores += 1
            continue

        try:
            _award_points(store, prediction.user_id, match.tournament_id, now=now)
        except StoreError as exc:
            message = (
                f"Failed to update score for user {prediction.user_id} "
                f"(match {match.match_id}): {exc}"
            )
            logger.warning(message)
            result.errors.append(message)
            continue
        result.updated_scores += 1

    if not dry_run:
        try:
            store.mark_match_settled(match.match_id)
        except StoreError as exc:
            message = f"Failed to mark match {match.match_id} as settled: {exc}"
            logger.warning(message)
            result.errors.append(message)
            return

    result.processed_matches += 1


def _award_points(
    store: SettlementStore,
    user_id: str,
    tournament_id: int,
    *,
    now: datetime | None,
) -> int:
    existing = store.get_score(user_id, tournament_id)
    current = existing.points if existing is not None else 0
    new_total = current + POINTS_PER_CORRECT_PICK
    store.upsert_score(
        user_id,
        tournament_id,
        new_total,
        now or datetime.now(timezone.utc),
    )
    return new_total


__all__ = [
    "POINTS_PER_CORRECT_PICK",
    "SettlementStore",
    "is_correct_prediction",
    "is_settleable",
    "settle",
]
