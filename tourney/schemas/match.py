"""
Match and progression API Schemas (Pydantic)
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tourney.domain import MatchStage, MatchStatus
from tourney.schemas.prediction import MatchOddsResponse
from tourney.schemas.tournament import TeamResponse, TournamentResponse


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    stage: MatchStage
    round_name: str
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    team_a_score: Optional[int] = None
    team_b_score: Optional[int] = None
    winner_team_id: Optional[int] = None
    status: MatchStatus
    match_date: Optional[datetime] = None


class RoundResponse(BaseModel):
    round_name: str
    matches: List[MatchResponse]


class ResultCreate(BaseModel):
    """Reported score; winner_team_id is derived from the score when omitted."""
    team_a_score: int = Field(..., ge=0)
    team_b_score: int = Field(..., ge=0)
    winner_team_id: Optional[int] = None


class AdvanceRequest(BaseModel):
    stage: MatchStage = MatchStage.TOURNAMENT
    round_name: str = Field(..., min_length=1)


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    match_id: int
    winner_team_id: int
    total_pot: int
    winning_pot: int
    multiplier: float
    winners: int
    losers: int
    paid_out: int
    house_retained: int


class AdvancementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    round_complete: bool
    next_round_name: Optional[str] = None
    created_matches: List[MatchResponse] = []
    champion_team_id: Optional[int] = None
    skipped_existing_round: bool = False


class ResultReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    match: MatchResponse
    settlement: Optional[SettlementResponse] = None
    advancement: AdvancementResponse


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tournament: TournamentResponse
    matches: List[MatchResponse] = []
    qualifiers: List[int] = []
    advancement: Optional[AdvancementResponse] = None


class MatchDetailResponse(BaseModel):
    match: MatchResponse
    tournament_name: str
    sport: str
    team_a: Optional[TeamResponse] = None
    team_b: Optional[TeamResponse] = None
    prediction_count: int = 0
    odds: MatchOddsResponse
