"""
tourney/repositories/memory.py
In-memory gateway with the same transactional contract as the SQL gateway.

Transactions are serialized with an asyncio.Lock and rolled back by restoring
a deep-copied snapshot, which gives serializable isolation for tests and for
single-process deployments without a database.
"""
import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from tourney.domain import (
    Account, Match, MatchStage, ParticipationStatus, Prediction,
    PredictionStatus, Team, Tournament, TournamentStatus, TournamentTeam,
)
from tourney.errors import ErrorCode, NotFoundError, ValidationError
from tourney.repositories.base import TournamentGateway

logger = logging.getLogger(__name__)


@dataclass
class _Store:
    accounts: Dict[int, Account] = field(default_factory=dict)
    teams: Dict[int, Team] = field(default_factory=dict)
    tournaments: Dict[int, Tournament] = field(default_factory=dict)
    participants: Dict[Tuple[int, int], TournamentTeam] = field(default_factory=dict)
    matches: Dict[int, Match] = field(default_factory=dict)
    predictions: Dict[int, Prediction] = field(default_factory=dict)
    sequences: Dict[str, int] = field(default_factory=dict)

    def next_id(self, name: str) -> int:
        self.sequences[name] = self.sequences.get(name, 0) + 1
        return self.sequences[name]


def _copy(record):
    return copy.deepcopy(record)


class InMemoryGateway(TournamentGateway):
    """Dict-backed TournamentGateway."""

    def __init__(self):
        self._store = _Store()
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None
        self.commits = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self):
        task = asyncio.current_task()
        if self._owner is not None and self._owner is task:
            # Nested block joins the outer transaction
            yield self
            return

        async with self._lock:
            self._owner = task
            snapshot = copy.deepcopy(self._store)
            try:
                yield self
            except BaseException:
                self._store = snapshot
                self.rollbacks += 1
                raise
            else:
                self.commits += 1
            finally:
                self._owner = None

    # ------------------------------------------------------------------
    # Accounts and teams
    # ------------------------------------------------------------------

    async def add_account(self, account: Account) -> Account:
        record = _copy(account)
        record.id = self._store.next_id("accounts")
        self._store.accounts[record.id] = record
        return _copy(record)

    async def get_account(self, user_id: int, for_update: bool = False) -> Optional[Account]:
        record = self._store.accounts.get(user_id)
        return _copy(record) if record else None

    async def adjust_points(self, user_id: int, delta: int) -> int:
        record = self._store.accounts.get(user_id)
        if record is None:
            raise NotFoundError("Account", user_id)
        if record.points + delta < 0:
            raise ValidationError(
                "Insufficient points",
                code=ErrorCode.INSUFFICIENT_POINTS,
                details={"balance": record.points, "requested": -delta}
            )
        record.points += delta
        return record.points

    async def add_team(self, team: Team) -> Team:
        record = _copy(team)
        record.id = self._store.next_id("teams")
        self._store.teams[record.id] = record
        return _copy(record)

    async def get_team(self, team_id: int) -> Optional[Team]:
        record = self._store.teams.get(team_id)
        return _copy(record) if record else None

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    async def add_tournament(self, tournament: Tournament) -> Tournament:
        record = _copy(tournament)
        record.id = self._store.next_id("tournaments")
        if record.created_at is None:
            record.created_at = datetime.now()
        self._store.tournaments[record.id] = record
        return _copy(record)

    async def get_tournament(self, tournament_id: int, for_update: bool = False) -> Optional[Tournament]:
        record = self._store.tournaments.get(tournament_id)
        return _copy(record) if record else None

    async def save_tournament(self, tournament: Tournament) -> None:
        if tournament.id not in self._store.tournaments:
            raise NotFoundError("Tournament", tournament.id)
        self._store.tournaments[tournament.id] = _copy(tournament)

    async def list_tournaments(
        self,
        status: Optional[TournamentStatus] = None,
        sport: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[Tournament]:
        rows = [
            t for t in self._store.tournaments.values()
            if (status is None or t.status == status)
            and (sport is None or t.sport.lower() == sport.lower())
        ]
        rows.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return [_copy(t) for t in rows[offset:offset + limit]]

    # ------------------------------------------------------------------
    # Participation
    # ------------------------------------------------------------------

    async def add_participant(self, participant: TournamentTeam) -> TournamentTeam:
        key = (participant.tournament_id, participant.team_id)
        if key in self._store.participants:
            raise ValidationError("Team already registered for this tournament")
        self._store.participants[key] = _copy(participant)
        return _copy(participant)

    async def get_participant(self, tournament_id: int, team_id: int) -> Optional[TournamentTeam]:
        record = self._store.participants.get((tournament_id, team_id))
        return _copy(record) if record else None

    async def save_participant(self, participant: TournamentTeam) -> None:
        key = (participant.tournament_id, participant.team_id)
        if key not in self._store.participants:
            raise NotFoundError("Participant", f"{participant.tournament_id}/{participant.team_id}")
        self._store.participants[key] = _copy(participant)

    async def list_participants(
        self,
        tournament_id: int,
        status: Optional[ParticipationStatus] = None
    ) -> List[TournamentTeam]:
        return [
            _copy(p) for (t_id, _), p in self._store.participants.items()
            if t_id == tournament_id and (status is None or p.status == status)
        ]

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    async def add_matches(self, matches: List[Match]) -> List[Match]:
        created = []
        for match in matches:
            record = _copy(match)
            record.id = self._store.next_id("matches")
            self._store.matches[record.id] = record
            created.append(_copy(record))
        return created

    async def get_match(self, match_id: int, for_update: bool = False) -> Optional[Match]:
        record = self._store.matches.get(match_id)
        return _copy(record) if record else None

    async def save_match(self, match: Match) -> None:
        if match.id not in self._store.matches:
            raise NotFoundError("Match", match.id)
        self._store.matches[match.id] = _copy(match)

    async def list_matches(
        self,
        tournament_id: int,
        stage: Optional[MatchStage] = None,
        round_name: Optional[str] = None
    ) -> List[Match]:
        rows = [
            m for m in self._store.matches.values()
            if m.tournament_id == tournament_id
            and (stage is None or m.stage == stage)
            and (round_name is None or m.round_name == round_name)
        ]
        rows.sort(key=lambda m: m.id)
        return [_copy(m) for m in rows]

    async def list_scheduled_matches(self) -> List[Match]:
        rows = [
            m for m in self._store.matches.values()
            if m.team_a_id is not None and m.team_b_id is not None
        ]
        rows.sort(key=lambda m: (m.match_date is None, m.match_date or datetime.min, m.id))
        return [_copy(m) for m in rows]

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    async def add_prediction(self, prediction: Prediction) -> Prediction:
        if await self.find_prediction(prediction.user_id, prediction.match_id):
            raise ValidationError(
                "Prediction already placed on this match",
                code=ErrorCode.DUPLICATE_PREDICTION
            )
        record = _copy(prediction)
        record.id = self._store.next_id("predictions")
        if record.created_at is None:
            record.created_at = datetime.now()
        self._store.predictions[record.id] = record
        return _copy(record)

    async def save_prediction(self, prediction: Prediction) -> None:
        if prediction.id not in self._store.predictions:
            raise NotFoundError("Prediction", prediction.id)
        self._store.predictions[prediction.id] = _copy(prediction)

    async def find_prediction(self, user_id: int, match_id: int) -> Optional[Prediction]:
        for p in self._store.predictions.values():
            if p.user_id == user_id and p.match_id == match_id:
                return _copy(p)
        return None

    async def list_match_predictions(
        self,
        match_id: int,
        status: Optional[PredictionStatus] = None
    ) -> List[Prediction]:
        rows = [
            p for p in self._store.predictions.values()
            if p.match_id == match_id and (status is None or p.status == status)
        ]
        rows.sort(key=lambda p: p.id)
        return [_copy(p) for p in rows]

    async def list_user_predictions(self, user_id: int) -> List[Prediction]:
        rows = [p for p in self._store.predictions.values() if p.user_id == user_id]
        rows.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [_copy(p) for p in rows]
