from __future__ import annotations

from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, HTTPException, Path, Query, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from . import schemas
from .auth import CurrentUser, get_current_user, require_admin
from .core.config import settings
from .db import get_db, init_db
from .errors import Forbidden, SettlementError, StoreError, describe, http_status_for
from .repositories import SqlSettlementStore
from .services.bet_service import BetService
from .services.leaderboard_service import LeaderboardService
from .services.settlement import settle

app = FastAPI(title="Matchday Pick'em API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database tables when the API boots."""

    init_db()


@app.exception_handler(HTTPException)
async def _http_exception_handler(_request, exc: HTTPException) -> JSONResponse:
    content: Any = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(StoreError)
async def _store_error_handler(_request, exc: StoreError) -> JSONResponse:
    content: dict[str, Any] = {"error": describe(exc.kind)}
    if isinstance(exc.kind, Forbidden):
        content = {"error": "Cannot modify this bet", "reason": exc.kind.reason}
    return JSONResponse(status_code=http_status_for(exc.kind), content=content)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(_request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"path": list(error.get("loc", ())), "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": details},
    )


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _settlement_store(db=Depends(get_db)) -> SqlSettlementStore:
    """Provide the settlement store wired with a SQLAlchemy session."""

    return SqlSettlementStore(db)


def _leaderboard_service(db=Depends(get_db)) -> LeaderboardService:
    return LeaderboardService(db)


def _bet_service(db=Depends(get_db)) -> BetService:
    return BetService(db)


@app.post(
    "/api/admin/score-matches",
    response_model=schemas.ScoreMatchesResponse,
    responses={401: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}},
    tags=["admin"],
)
def score_matches(
    payload: Annotated[schemas.ScoreMatchesRequest | None, Body()] = None,
    user: CurrentUser = Depends(require_admin),
    store: SqlSettlementStore = Depends(_settlement_store),
):
    """Settle every finished match that has not been scored yet.

    Per-match and per-user failures are reported in ``errors`` with a 200
    response; only a failure to list unsettled matches returns 500.
    """

    dry_run = payload.dry_run if payload is not None else False
    logger.info("Settlement requested by {} (dry_run={})", user.user_id, dry_run)
    try:
        result = settle(store, dry_run=dry_run)
    except SettlementError as exc:
        logger.error("Score matches error: {}", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to score matches", "message": str(exc)},
        )

    return schemas.ScoreMatchesResponse(success=True, dry_run=dry_run, **result.to_dict())


@app.get(
    "/api/tournaments/{tournament_id}/leaderboard",
    response_model=schemas.Leaderboard,
    tags=["leaderboard"],
)
def get_leaderboard(
    tournament_id: Annotated[int, Path(gt=0, description="Tournament identifier")],
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    service: LeaderboardService = Depends(_leaderboard_service),
    _user: CurrentUser = Depends(get_current_user),
):
    """Return ranked standings for one tournament."""

    return service.get_leaderboard(tournament_id, limit=limit, offset=offset)


@app.post("/api/bets", response_model=schemas.Bet, status_code=201, tags=["bets"])
def create_bet(
    payload: schemas.CreateBetRequest,
    service: BetService = Depends(_bet_service),
    user: CurrentUser = Depends(get_current_user),
):
    """Place a prediction while the match is still open for betting."""

    return service.create_bet(user.user_id, payload.match_id, payload.picked_result)


@app.put("/api/bets/{bet_id}", response_model=schemas.Bet, tags=["bets"])
def update_bet(
    bet_id: Annotated[int, Path(gt=0)],
    payload: schemas.UpdateBetRequest,
    service: BetService = Depends(_bet_service),
    user: CurrentUser = Depends(get_current_user),
):
    return service.update_bet(bet_id, user.user_id, payload.picked_result)


@app.delete("/api/bets/{bet_id}", status_code=204, tags=["bets"])
def delete_bet(
    bet_id: Annotated[int, Path(gt=0)],
    service: BetService = Depends(_bet_service),
    user: CurrentUser = Depends(get_current_user),
) -> Response:
    service.delete_bet(bet_id, user.user_id)
    return Response(status_code=204)


@app.get("/api/me/bets", response_model=schemas.BetList, tags=["bets"])
def list_my_bets(
    tournament_id: Annotated[int | None, Query(gt=0)] = None,
    match_id: Annotated[int | None, Query(gt=0)] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    service: BetService = Depends(_bet_service),
    user: CurrentUser = Depends(get_current_user),
):
    """List the caller's bets, newest first, with their match summaries."""

    return service.list_user_bets(
        user.user_id,
        tournament_id=tournament_id,
        match_id=match_id,
        limit=limit,
        offset=offset,
    )


@app.get("/api/me/bets/stats", tags=["bets"])
def my_bet_stats(
    tournament_id: Annotated[int | None, Query(gt=0)] = None,
    service: BetService = Depends(_bet_service),
    user: CurrentUser = Depends(get_current_user),
) -> dict[str, int]:
    """Hit/miss/pending counts over all of the caller's bets."""

    return service.user_bet_stats(user.user_id, tournament_id=tournament_id).to_dict()
