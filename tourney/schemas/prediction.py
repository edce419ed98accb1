"""
Prediction API Schemas (Pydantic)
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from tourney.domain import MatchStatus, PredictionStatus


class PredictionCreate(BaseModel):
    match_id: int
    predicted_team_id: int
    bet_amount: int


class PredictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    match_id: int
    user_id: int
    predicted_team_id: int
    bet_amount: int
    status: PredictionStatus
    payout: Optional[int] = None
    created_at: Optional[datetime] = None


class PredictionReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    prediction: PredictionResponse
    balance: int


class MatchOddsResponse(BaseModel):
    match_id: int
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    total_points: int
    team_a_points: int
    team_b_points: int
    team_a_percent: int
    team_b_percent: int
    ratio_a: float
    ratio_b: float
    is_betting_open: bool


class UserBetResponse(BaseModel):
    predicted_team_id: int
    bet_amount: int


class BettingMatchResponse(BaseModel):
    """Betting board row as seen by the caller."""
    id: int
    tournament_id: int
    tournament_name: Optional[str] = None
    sport: Optional[str] = None
    round_name: str
    team_a_id: int
    team_a_name: Optional[str] = None
    team_b_id: int
    team_b_name: Optional[str] = None
    match_date: Optional[datetime] = None
    status: MatchStatus
    winner_team_id: Optional[int] = None
    team_a_percent: int
    team_b_percent: int
    ratio_a: float
    ratio_b: float
    user_bet: Optional[UserBetResponse] = None
    earned_points: Optional[int] = None
    is_betting_open: bool
