"""
tourney/domain.py
Domain records and state enums shared by the engine and both gateways.

Services work on these plain dataclasses; the SQLAlchemy gateway maps them
to ORM rows and the in-memory gateway stores them directly.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class TournamentFormat(str, Enum):
    """How the schedule is built."""
    TOURNAMENT = "TOURNAMENT"
    LEAGUE = "LEAGUE"
    HYBRID = "HYBRID"


class TournamentStatus(str, Enum):
    """Tournament lifecycle status state machine."""
    RECRUITING = "RECRUITING"
    UPCOMING = "UPCOMING"
    ONGOING = "ONGOING"
    ENDED = "ENDED"


class ParticipationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class MatchStage(str, Enum):
    """LEAGUE = round-robin phase, TOURNAMENT = single-elimination phase."""
    LEAGUE = "LEAGUE"
    TOURNAMENT = "TOURNAMENT"


class MatchStatus(str, Enum):
    UPCOMING = "UPCOMING"
    DONE = "DONE"


class PredictionStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


@dataclass
class Tournament:
    name: str
    sport: str
    manager_id: int
    format: TournamentFormat = TournamentFormat.TOURNAMENT
    status: TournamentStatus = TournamentStatus.RECRUITING
    description: Optional[str] = None
    group_count: Optional[int] = None
    playoff_teams: Optional[int] = None
    target_team_count: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    champion_team_id: Optional[int] = None
    bracket_generation: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class TournamentTeam:
    """Participation record keyed by (tournament_id, team_id)."""
    tournament_id: int
    team_id: int
    status: ParticipationStatus = ParticipationStatus.PENDING


@dataclass
class Team:
    """Roster entry owned by the team-management module."""
    name: str
    sport_type: str
    leader_id: int
    id: Optional[int] = None


@dataclass
class Account:
    """User account carrying the points ledger balance."""
    name: str
    points: int = 0
    id: Optional[int] = None


@dataclass
class Match:
    tournament_id: int
    stage: MatchStage
    round_name: str
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    team_a_score: Optional[int] = None
    team_b_score: Optional[int] = None
    winner_team_id: Optional[int] = None
    status: MatchStatus = MatchStatus.UPCOMING
    match_date: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def is_bye(self) -> bool:
        """Exactly one side populated, or no side at all."""
        return self.team_a_id is None or self.team_b_id is None

    def has_team(self, team_id: Optional[int]) -> bool:
        return team_id is not None and team_id in (self.team_a_id, self.team_b_id)


@dataclass
class Prediction:
    match_id: int
    user_id: int
    predicted_team_id: int
    bet_amount: int
    status: PredictionStatus = PredictionStatus.PENDING
    payout: Optional[int] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class DateWindow:
    start: datetime
    end: datetime


@dataclass
class AdvancementResult:
    """Outcome of a finalize-and-advance check on one round."""
    round_complete: bool = False
    next_round_name: Optional[str] = None
    created_matches: list = field(default_factory=list)
    champion_team_id: Optional[int] = None
    skipped_existing_round: bool = False
