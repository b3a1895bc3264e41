from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from .domain.models import MatchOutcome, MatchStatus


class ScoreMatchesRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    dry_run: StrictBool = False


class ScoreMatchesResponse(BaseModel):
    success: bool
    dry_run: bool
    processed_matches: int
    updated_scores: int
    errors: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    reason: str | None = None
    message: str | None = None


class MatchSummary(BaseModel):
    id: int
    tournament_id: int
    home_team: str
    away_team: str
    match_datetime: datetime
    status: MatchStatus
    result: MatchOutcome | None = None
    home_score: int | None = None
    away_score: int | None = None

    model_config = {"from_attributes": True}


class CreateBetRequest(BaseModel):
    match_id: int = Field(gt=0, description="Match the prediction is for")
    picked_result: MatchOutcome


class UpdateBetRequest(BaseModel):
    picked_result: MatchOutcome


class Bet(BaseModel):
    id: int
    user_id: str
    match_id: int
    picked_result: MatchOutcome
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BetWithMatch(Bet):
    match: MatchSummary


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class BetList(BaseModel):
    data: list[BetWithMatch]
    pagination: Pagination


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    username: str
    points: int


class TournamentRef(BaseModel):
    id: int
    name: str


class Leaderboard(BaseModel):
    data: list[LeaderboardEntry]
    pagination: Pagination
    tournament: TournamentRef
