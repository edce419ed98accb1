"""
tourney/repositories/sqlalchemy_gateway.py
TournamentGateway backed by an SQLAlchemy AsyncSession.

Rules:
- One gateway per request, wrapping the request's session
- transaction() commits on success and rolls back on any exception
- Storage failures surface as PersistenceError after a full rollback
- Points move only through a single conditional UPDATE, so a balance can
  never be driven below zero by concurrent debits
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tourney.domain import (
    Account, Match, MatchStage, ParticipationStatus, Prediction,
    PredictionStatus, Team, Tournament, TournamentStatus, TournamentTeam,
)
from tourney.errors import ErrorCode, NotFoundError, PersistenceError, ValidationError
from tourney.orm import (
    MatchRow, PredictionRow, TeamRow, TournamentRow, TournamentTeamRow, UserRow,
)
from tourney.repositories.base import TournamentGateway

logger = logging.getLogger(__name__)


# =============================================================================
# Row <-> record mapping
# =============================================================================

_TOURNAMENT_FIELDS = (
    "name", "sport", "description", "format", "status", "group_count",
    "playoff_teams", "target_team_count", "start_date", "end_date",
    "manager_id", "champion_team_id", "bracket_generation",
)

_MATCH_FIELDS = (
    "tournament_id", "stage", "round_name", "team_a_id", "team_b_id",
    "team_a_score", "team_b_score", "winner_team_id", "status", "match_date",
)

_PREDICTION_FIELDS = (
    "match_id", "user_id", "predicted_team_id", "bet_amount", "status", "payout",
)


def _copy_fields(source, target, fields) -> None:
    for name in fields:
        setattr(target, name, getattr(source, name))


def _to_tournament(row: TournamentRow) -> Tournament:
    record = Tournament(name=row.name, sport=row.sport, manager_id=row.manager_id)
    _copy_fields(row, record, _TOURNAMENT_FIELDS)
    record.id = row.id
    record.created_at = row.created_at
    return record


def _to_match(row: MatchRow) -> Match:
    record = Match(tournament_id=row.tournament_id, stage=row.stage, round_name=row.round_name)
    _copy_fields(row, record, _MATCH_FIELDS)
    record.id = row.id
    return record


def _to_prediction(row: PredictionRow) -> Prediction:
    record = Prediction(
        match_id=row.match_id,
        user_id=row.user_id,
        predicted_team_id=row.predicted_team_id,
        bet_amount=row.bet_amount,
    )
    _copy_fields(row, record, _PREDICTION_FIELDS)
    record.id = row.id
    record.created_at = row.created_at
    return record


def _to_participant(row: TournamentTeamRow) -> TournamentTeam:
    return TournamentTeam(tournament_id=row.tournament_id, team_id=row.team_id, status=row.status)


def _to_account(row: UserRow) -> Account:
    return Account(id=row.id, name=row.name, points=row.points)


def _to_team(row: TeamRow) -> Team:
    return Team(id=row.id, name=row.name, sport_type=row.sport_type, leader_id=row.leader_id)


class SqlAlchemyGateway(TournamentGateway):
    """TournamentGateway over an AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._depth = 0

    @asynccontextmanager
    async def transaction(self):
        if self._depth:
            yield self
            return

        self._depth += 1
        try:
            yield self
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            error = PersistenceError()
            logger.error(f"[{error.log_id}] Transaction rolled back: {type(e).__name__}: {e}")
            raise error from e
        except BaseException:
            await self.session.rollback()
            raise
        finally:
            self._depth -= 1

    async def _get_row(self, model, row_id, for_update: bool = False):
        query = select(model).where(model.id == row_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Accounts and teams
    # ------------------------------------------------------------------

    async def add_account(self, account: Account) -> Account:
        row = UserRow(name=account.name, points=account.points)
        self.session.add(row)
        await self.session.flush()
        return _to_account(row)

    async def get_account(self, user_id: int, for_update: bool = False) -> Optional[Account]:
        row = await self._get_row(UserRow, user_id, for_update)
        return _to_account(row) if row else None

    async def adjust_points(self, user_id: int, delta: int) -> int:
        result = await self.session.execute(
            update(UserRow)
            .where(UserRow.id == user_id, UserRow.points + delta >= 0)
            .values(points=UserRow.points + delta)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            balance = (await self.session.execute(
                select(UserRow.points).where(UserRow.id == user_id)
            )).scalar_one_or_none()
            if balance is None:
                raise NotFoundError("Account", user_id)
            raise ValidationError(
                "Insufficient points",
                code=ErrorCode.INSUFFICIENT_POINTS,
                details={"balance": balance, "requested": -delta}
            )
        return (await self.session.execute(
            select(UserRow.points).where(UserRow.id == user_id)
        )).scalar_one()

    async def add_team(self, team: Team) -> Team:
        row = TeamRow(name=team.name, sport_type=team.sport_type, leader_id=team.leader_id)
        self.session.add(row)
        await self.session.flush()
        return _to_team(row)

    async def get_team(self, team_id: int) -> Optional[Team]:
        row = await self._get_row(TeamRow, team_id)
        return _to_team(row) if row else None

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    async def add_tournament(self, tournament: Tournament) -> Tournament:
        row = TournamentRow()
        _copy_fields(tournament, row, _TOURNAMENT_FIELDS)
        if tournament.created_at is not None:
            row.created_at = tournament.created_at
        self.session.add(row)
        await self.session.flush()
        return _to_tournament(row)

    async def get_tournament(self, tournament_id: int, for_update: bool = False) -> Optional[Tournament]:
        row = await self._get_row(TournamentRow, tournament_id, for_update)
        return _to_tournament(row) if row else None

    async def save_tournament(self, tournament: Tournament) -> None:
        row = await self._get_row(TournamentRow, tournament.id)
        if row is None:
            raise NotFoundError("Tournament", tournament.id)
        _copy_fields(tournament, row, _TOURNAMENT_FIELDS)
        await self.session.flush()

    async def list_tournaments(
        self,
        status: Optional[TournamentStatus] = None,
        sport: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[Tournament]:
        query = select(TournamentRow)
        if status is not None:
            query = query.where(TournamentRow.status == status)
        if sport is not None:
            query = query.where(func.lower(TournamentRow.sport) == sport.lower())
        query = query.order_by(
            TournamentRow.created_at.desc(), TournamentRow.id.desc()
        ).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return [_to_tournament(row) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Participation
    # ------------------------------------------------------------------

    async def _participant_row(self, tournament_id: int, team_id: int) -> Optional[TournamentTeamRow]:
        result = await self.session.execute(
            select(TournamentTeamRow).where(
                TournamentTeamRow.tournament_id == tournament_id,
                TournamentTeamRow.team_id == team_id
            )
        )
        return result.scalar_one_or_none()

    async def add_participant(self, participant: TournamentTeam) -> TournamentTeam:
        row = TournamentTeamRow(
            tournament_id=participant.tournament_id,
            team_id=participant.team_id,
            status=participant.status
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ValidationError("Team already registered for this tournament") from e
        return _to_participant(row)

    async def get_participant(self, tournament_id: int, team_id: int) -> Optional[TournamentTeam]:
        row = await self._participant_row(tournament_id, team_id)
        return _to_participant(row) if row else None

    async def save_participant(self, participant: TournamentTeam) -> None:
        row = await self._participant_row(participant.tournament_id, participant.team_id)
        if row is None:
            raise NotFoundError("Participant", f"{participant.tournament_id}/{participant.team_id}")
        row.status = participant.status
        await self.session.flush()

    async def list_participants(
        self,
        tournament_id: int,
        status: Optional[ParticipationStatus] = None
    ) -> List[TournamentTeam]:
        query = select(TournamentTeamRow).where(TournamentTeamRow.tournament_id == tournament_id)
        if status is not None:
            query = query.where(TournamentTeamRow.status == status)
        result = await self.session.execute(query.order_by(TournamentTeamRow.id))
        return [_to_participant(row) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    async def add_matches(self, matches: List[Match]) -> List[Match]:
        rows = []
        for match in matches:
            row = MatchRow()
            _copy_fields(match, row, _MATCH_FIELDS)
            self.session.add(row)
            # Flush per row keeps ids in list order
            await self.session.flush()
            rows.append(row)
        return [_to_match(row) for row in rows]

    async def get_match(self, match_id: int, for_update: bool = False) -> Optional[Match]:
        row = await self._get_row(MatchRow, match_id, for_update)
        return _to_match(row) if row else None

    async def save_match(self, match: Match) -> None:
        row = await self._get_row(MatchRow, match.id)
        if row is None:
            raise NotFoundError("Match", match.id)
        _copy_fields(match, row, _MATCH_FIELDS)
        await self.session.flush()

    async def list_matches(
        self,
        tournament_id: int,
        stage: Optional[MatchStage] = None,
        round_name: Optional[str] = None
    ) -> List[Match]:
        query = select(MatchRow).where(MatchRow.tournament_id == tournament_id)
        if stage is not None:
            query = query.where(MatchRow.stage == stage)
        if round_name is not None:
            query = query.where(MatchRow.round_name == round_name)
        result = await self.session.execute(query.order_by(MatchRow.id))
        return [_to_match(row) for row in result.scalars().all()]

    async def list_scheduled_matches(self) -> List[Match]:
        result = await self.session.execute(
            select(MatchRow)
            .where(MatchRow.team_a_id.is_not(None), MatchRow.team_b_id.is_not(None))
            .order_by(MatchRow.match_date.is_(None), MatchRow.match_date, MatchRow.id)
        )
        return [_to_match(row) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    async def add_prediction(self, prediction: Prediction) -> Prediction:
        row = PredictionRow()
        _copy_fields(prediction, row, _PREDICTION_FIELDS)
        if prediction.created_at is not None:
            row.created_at = prediction.created_at
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ValidationError(
                "Prediction already placed on this match",
                code=ErrorCode.DUPLICATE_PREDICTION
            ) from e
        return _to_prediction(row)

    async def save_prediction(self, prediction: Prediction) -> None:
        row = await self._get_row(PredictionRow, prediction.id)
        if row is None:
            raise NotFoundError("Prediction", prediction.id)
        _copy_fields(prediction, row, _PREDICTION_FIELDS)
        await self.session.flush()

    async def find_prediction(self, user_id: int, match_id: int) -> Optional[Prediction]:
        result = await self.session.execute(
            select(PredictionRow).where(
                PredictionRow.user_id == user_id,
                PredictionRow.match_id == match_id
            )
        )
        row = result.scalar_one_or_none()
        return _to_prediction(row) if row else None

    async def list_match_predictions(
        self,
        match_id: int,
        status: Optional[PredictionStatus] = None
    ) -> List[Prediction]:
        query = select(PredictionRow).where(PredictionRow.match_id == match_id)
        if status is not None:
            query = query.where(PredictionRow.status == status)
        result = await self.session.execute(query.order_by(PredictionRow.id))
        return [_to_prediction(row) for row in result.scalars().all()]

    async def list_user_predictions(self, user_id: int) -> List[Prediction]:
        result = await self.session.execute(
            select(PredictionRow)
            .where(PredictionRow.user_id == user_id)
            .order_by(PredictionRow.created_at.desc(), PredictionRow.id.desc())
        )
        return [_to_prediction(row) for row in result.scalars().all()]
