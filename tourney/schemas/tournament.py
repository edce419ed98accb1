"""
Tournament API Schemas (Pydantic)
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tourney.domain import ParticipationStatus, TournamentFormat, TournamentStatus
from tourney.services.schedule_generator import to_naive_local


class TournamentCreate(BaseModel):
    """Request schema for creating a tournament."""
    name: str = Field(..., min_length=1, max_length=100)
    sport: str = Field(..., min_length=1, max_length=50)
    format: TournamentFormat = TournamentFormat.TOURNAMENT
    description: Optional[str] = None
    group_count: Optional[int] = None
    playoff_teams: Optional[int] = None
    target_team_count: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator('name', 'sport')
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Surrounding whitespace is not part of the name"""
        return v.strip()

    @field_validator('start_date', 'end_date')
    @classmethod
    def local_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Offsets such as "Z" are converted to naive local time"""
        return to_naive_local(v)


class TournamentUpdate(BaseModel):
    """Partial settings update; only fields that are sent are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    target_team_count: Optional[int] = None
    group_count: Optional[int] = None
    playoff_teams: Optional[int] = None

    @field_validator('start_date', 'end_date')
    @classmethod
    def local_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_local(v)


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sport: str
    description: Optional[str] = None
    format: TournamentFormat
    status: TournamentStatus
    group_count: Optional[int] = None
    playoff_teams: Optional[int] = None
    target_team_count: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    manager_id: int
    champion_team_id: Optional[int] = None
    bracket_generation: Optional[str] = None
    created_at: Optional[datetime] = None


class TournamentSummaryResponse(TournamentResponse):
    approved_count: int = 0


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sport_type: str
    leader_id: int


class TournamentDetailResponse(TournamentResponse):
    teams: List[TeamResponse] = []
    champion: Optional[TeamResponse] = None


class JoinRequest(BaseModel):
    team_id: int


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tournament_id: int
    team_id: int
    status: ParticipationStatus


class StandingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    team_id: int
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_diff: int
    points: int
    recent_form: List[str] = []


class GroupStandingsResponse(BaseModel):
    group_name: str
    standings: List[StandingResponse]


class ManualPairing(BaseModel):
    """One first-round slot; a missing side is a bye."""
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None


class ManualBracketCreate(BaseModel):
    pairings: List[ManualPairing] = Field(..., min_length=1)
