from __future__ import annotations

from datetime import datetime, timezone

import pytest

from pickem.domain import MatchRecord, PredictionRecord, ScoreRecord
from pickem.domain.models import MatchOutcome, MatchStatus
from pickem.errors import SettlementError
from pickem.repositories import InMemorySettlementStore
from pickem.services.settlement import (
    POINTS_PER_CORRECT_PICK,
    is_correct_prediction,
    is_settleable,
    settle,
)

KICKOFF = datetime(2025, 3, 11, 20, 0, tzinfo=timezone.utc)
SETTLED_AT = datetime(2025, 3, 11, 23, 0, tzinfo=timezone.utc)
TOURNAMENT = 1


def _match(
    match_id: int,
    *,
    outcome: MatchOutcome | None = MatchOutcome.HOME_WIN,
    status: MatchStatus = MatchStatus.FINISHED,
    settled: bool = False,
    tournament_id: int = TOURNAMENT,
) -> MatchRecord:
    return MatchRecord(
        match_id=match_id,
        tournament_id=tournament_id,
        match_datetime=KICKOFF,
        status=status,
        outcome=outcome,
        settled=settled,
    )


def _pick(prediction_id: int, user_id: str, match_id: int, predicted: MatchOutcome) -> PredictionRecord:
    return PredictionRecord(
        prediction_id=prediction_id,
        user_id=user_id,
        match_id=match_id,
        predicted=predicted,
    )


def test_no_unsettled_matches_returns_empty_result():
    store = InMemorySettlementStore()

    result = settle(store)

    assert result.to_dict() == {"processed_matches": 0, "updated_scores": 0, "errors": []}
    assert store.writes == 0


def test_single_correct_prediction_awards_points_and_settles_match():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10)],
        predictions=[_pick(1, "u", 10, MatchOutcome.HOME_WIN)],
    )

    result = settle(store, now=SETTLED_AT)

    assert result.to_dict() == {"processed_matches": 1, "updated_scores": 1, "errors": []}
    assert store.points_for("u", TOURNAMENT) == POINTS_PER_CORRECT_PICK == 3
    assert store.matches[10].settled is True
    assert store.scores[("u", TOURNAMENT)].updated_at == SETTLED_AT


def test_only_matching_predictions_score():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10)],
        predictions=[
            _pick(1, "a", 10, MatchOutcome.HOME_WIN),
            _pick(2, "b", 10, MatchOutcome.AWAY_WIN),
            _pick(3, "c", 10, MatchOutcome.HOME_WIN),
            _pick(4, "d", 10, MatchOutcome.DRAW),
        ],
    )

    result = settle(store)

    assert result.updated_scores == 2
    assert store.points_for("a", TOURNAMENT) == 3
    assert store.points_for("c", TOURNAMENT) == 3
    assert ("b", TOURNAMENT) not in store.scores
    assert ("d", TOURNAMENT) not in store.scores


def test_points_add_to_existing_total():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10)],
        predictions=[_pick(1, "u", 10, MatchOutcome.HOME_WIN)],
        scores=[ScoreRecord(user_id="u", tournament_id=TOURNAMENT, points=10)],
    )

    settle(store)

    assert store.points_for("u", TOURNAMENT) == 13


def test_points_accumulate_across_matches_in_same_tournament():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10), _match(11, outcome=MatchOutcome.DRAW)],
        predictions=[
            _pick(1, "u", 10, MatchOutcome.HOME_WIN),
            _pick(2, "u", 11, MatchOutcome.DRAW),
        ],
        scores=[ScoreRecord(user_id="u", tournament_id=TOURNAMENT, points=4)],
    )

    result = settle(store)

    assert result.processed_matches == 2
    assert store.points_for("u", TOURNAMENT) == 4 + 2 * POINTS_PER_CORRECT_PICK


def test_scores_are_kept_per_tournament():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10, tournament_id=1), _match(20, tournament_id=2)],
        predictions=[
            _pick(1, "u", 10, MatchOutcome.HOME_WIN),
            _pick(2, "u", 20, MatchOutcome.HOME_WIN),
        ],
    )

    settle(store)

    assert store.points_for("u", 1) == 3
    assert store.points_for("u", 2) == 3


def test_failed_score_write_is_isolated_to_that_user():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10)],
        predictions=[
            _pick(1, "broken", 10, MatchOutcome.HOME_WIN),
            _pick(2, "ok", 10, MatchOutcome.HOME_WIN),
        ],
    )
    store.failing_score_users.add("broken")

    result = settle(store)

    assert result.processed_matches == 1
    assert result.updated_scores == 1
    assert len(result.errors) == 1
    assert "broken" in result.errors[0]
    assert ("broken", TOURNAMENT) not in store.scores
    assert store.points_for("ok", TOURNAMENT) == 3
    assert store.matches[10].settled is True


def test_failed_prediction_fetch_does_not_block_other_matches():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10), _match(11)],
        predictions=[
            _pick(1, "u", 10, MatchOutcome.HOME_WIN),
            _pick(2, "v", 11, MatchOutcome.HOME_WIN),
        ],
    )
    store.failing_prediction_matches.add(10)

    result = settle(store)

    assert result.processed_matches == 1
    assert result.updated_scores == 1
    assert result.errors == [
        "Failed to fetch predictions for match 10: simulated failure reading bets for match 10"
    ]
    assert store.matches[10].settled is False
    assert store.matches[11].settled is True
    assert store.points_for("v", TOURNAMENT) == 3


def test_failed_settle_flag_is_reported_and_not_counted():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10)],
        predictions=[_pick(1, "u", 10, MatchOutcome.HOME_WIN)],
    )
    store.failing_settle_matches.add(10)

    result = settle(store)

    assert result.processed_matches == 0
    assert result.updated_scores == 1
    assert result.errors[0].startswith("Failed to mark match 10 as settled")


def test_discovery_failure_is_fatal():
    store = InMemorySettlementStore(fail_discovery=True)

    with pytest.raises(SettlementError, match="Failed to fetch unsettled matches"):
        settle(store)


def test_second_run_does_not_award_again():
    store = InMemorySettlementStore.from_records(
        matches=[_match(10)],
        predictions=[_pick(1, "u", 10, MatchOutcome.HOME_WIN)],
    )

    first = settle(store)
    second = settle(store)

    assert first.processed_matches == 1
    assert second.to_dict() == {"processed_matches": 0, "updated_scores": 0, "errors": []}
    assert store.points_for("u", TOURNAMENT) == 3


def test_dry_run_reports_live_counts_without_writing():
    records = dict(
        matches=[_match(10), _match(11, outcome=MatchOutcome.AWAY_WIN)],
        predictions=[
            _pick(1, "a", 10, MatchOutcome.HOME_WIN),
            _pick(2, "b", 10, MatchOutcome.DRAW),
            _pick(3, "a", 11, MatchOutcome.AWAY_WIN),
        ],
        scores=[ScoreRecord(user_id="a", tournament_id=TOURNAMENT, points=7)],
    )
    preview_store = InMemorySettlementStore.from_records(**records)
    live_store = InMemorySettlementStore.from_records(**records)

    preview = settle(preview_store, dry_run=True)
    live = settle(live_store)

    assert preview.processed_matches == live.processed_matches == 2
    assert preview.updated_scores == live.updated_scores == 2
    assert preview_store.writes == 0
    assert preview_store.points_for("a", TOURNAMENT) == 7
    assert not any(match.settled for match in preview_store.matches.values())


@pytest.mark.parametrize(
    "match",
    [
        _match(30, status=MatchStatus.IN_PLAY),
        _match(31, outcome=None),
        _match(32, settled=True),
        _match(33, status=MatchStatus.CANCELED),
    ],
)
def test_ineligible_matches_are_never_touched(match):
    store = InMemorySettlementStore.from_records(
        matches=[match],
        predictions=[_pick(1, "u", match.match_id, MatchOutcome.HOME_WIN)],
    )

    result = settle(store)

    assert result.processed_matches == 0
    assert store.writes == 0
    assert store.matches[match.match_id] == match


def test_ineligible_match_returned_by_store_is_skipped():
    store = InMemorySettlementStore.from_records(
        predictions=[_pick(1, "u", 40, MatchOutcome.HOME_WIN)],
    )
    store.find_unsettled_finished_matches = lambda: [_match(40, status=MatchStatus.IN_PLAY)]

    result = settle(store)

    assert result.to_dict() == {"processed_matches": 0, "updated_scores": 0, "errors": []}
    assert store.writes == 0


def test_prediction_helpers():
    assert is_correct_prediction(MatchOutcome.DRAW, MatchOutcome.DRAW)
    assert not is_correct_prediction(MatchOutcome.DRAW, MatchOutcome.HOME_WIN)
    assert not is_correct_prediction(MatchOutcome.DRAW, None)
    assert is_settleable(_match(1))
    assert not is_settleable(_match(1, settled=True))
