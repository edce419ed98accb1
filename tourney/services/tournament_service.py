"""
Tournament Service

Tournament setup, registration and read models (standings, bracket).
Scheduling and result handling live in progression_service.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from tourney.config.settings import settings
from tourney.domain import (
    Match, MatchStage, ParticipationStatus, Team, Tournament, TournamentFormat,
    TournamentStatus, TournamentTeam,
)
from tourney.errors import (
    ConflictError, ErrorCode, NotFoundError, PermissionDeniedError,
    ValidationError, require_manager,
)
from tourney.repositories.base import TournamentGateway
from tourney.services.prediction_service import MatchOdds, build_odds
from tourney.services.schedule_generator import to_naive_local, validate_playoff_split
from tourney.services.standings_service import (
    DEFAULT_GROUP_NAME, StandingRow, compute_standings, group_league_matches,
)

logger = logging.getLogger(__name__)

ALL_PARTICIPANTS = "ALL"
LOCKED_STATUSES = [TournamentStatus.ONGOING, TournamentStatus.ENDED]
EDITABLE_FIELDS = (
    "name", "description", "start_date", "end_date", "target_team_count", "group_count",
    "playoff_teams",
)
LOCKED_FIELDS = ("group_count", "playoff_teams")
DATE_FIELDS = ("start_date", "end_date")


@dataclass
class TournamentSummary:
    tournament: Tournament
    approved_count: int = 0


@dataclass
class TournamentDetail:
    tournament: Tournament
    teams: List[Team] = field(default_factory=list)
    champion: Optional[Team] = None


@dataclass
class MatchDetail:
    match: Match
    tournament: Tournament
    odds: MatchOdds
    team_a: Optional[Team] = None
    team_b: Optional[Team] = None
    prediction_count: int = 0


def validate_format_rules(
    format: TournamentFormat,
    group_count: Optional[int],
    playoff_teams: Optional[int]
) -> None:
    """playoff_teams is HYBRID-only, group_count LEAGUE/HYBRID-only, split must be even."""
    if group_count is not None:
        if format == TournamentFormat.TOURNAMENT:
            raise ValidationError(
                "group_count is only allowed for LEAGUE and HYBRID tournaments",
                code=ErrorCode.INVALID_INPUT,
                details={"format": format.value}
            )
        if group_count < 1:
            raise ValidationError("group_count must be at least 1", code=ErrorCode.INVALID_INPUT)

    if playoff_teams is not None:
        if format != TournamentFormat.HYBRID:
            raise ValidationError(
                "playoff_teams is only allowed for HYBRID tournaments",
                code=ErrorCode.INVALID_INPUT,
                details={"format": format.value}
            )
        if playoff_teams < 2:
            raise ValidationError("playoff_teams must be at least 2", code=ErrorCode.INVALID_INPUT)
        validate_playoff_split(playoff_teams, group_count or 1)


def validate_dates(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date",
            code=ErrorCode.INVALID_INPUT,
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
        )


class TournamentService:
    """Setup, registration and read-only views."""

    def __init__(self, gateway: TournamentGateway, clock: Callable[[], datetime] = datetime.now):
        self.gateway = gateway
        self.clock = clock

    async def _get_tournament(self, tournament_id: int, for_update: bool = False) -> Tournament:
        tournament = await self.gateway.get_tournament(tournament_id, for_update=for_update)
        if tournament is None:
            raise NotFoundError("Tournament", tournament_id)
        return tournament

    # ==========================================================================
    # Setup
    # ==========================================================================

    async def create_tournament(
        self,
        manager_id: int,
        name: str,
        sport: str,
        format: TournamentFormat = TournamentFormat.TOURNAMENT,
        description: Optional[str] = None,
        group_count: Optional[int] = None,
        playoff_teams: Optional[int] = None,
        target_team_count: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Tournament:
        """
        Create a RECRUITING tournament owned by manager_id.

        Raises:
            ValidationError: blank name or sport, format rules broken,
                uneven playoff split, inverted date window
        """
        if not name or not name.strip():
            raise ValidationError("Tournament name is required", code=ErrorCode.INVALID_INPUT)
        if not sport or not sport.strip():
            raise ValidationError("Sport is required", code=ErrorCode.INVALID_INPUT)
        if target_team_count is not None and target_team_count < 2:
            raise ValidationError("target_team_count must be at least 2", code=ErrorCode.INVALID_INPUT)
        validate_format_rules(format, group_count, playoff_teams)
        start_date = to_naive_local(start_date)
        end_date = to_naive_local(end_date)
        validate_dates(start_date, end_date)

        async with self.gateway.transaction():
            tournament = await self.gateway.add_tournament(Tournament(
                name=name.strip(),
                sport=sport.strip(),
                manager_id=manager_id,
                format=format,
                status=TournamentStatus.RECRUITING,
                description=description,
                group_count=group_count,
                playoff_teams=playoff_teams,
                target_team_count=target_team_count,
                start_date=start_date,
                end_date=end_date,
            ))

        logger.info(
            f"Tournament {tournament.id} '{tournament.name}' created by user {manager_id} "
            f"({format.value})"
        )
        return tournament

    async def update_settings(self, tournament_id: int, user_id: int, changes: Dict[str, Any]) -> Tournament:
        """Apply editable fields; group_count and playoff_teams are locked once the tournament has started."""
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Fields cannot be changed: {', '.join(unknown)}",
                code=ErrorCode.INVALID_INPUT,
                details={"fields": unknown}
            )
        changes = {
            key: to_naive_local(value) if key in DATE_FIELDS else value
            for key, value in changes.items()
        }

        async with self.gateway.transaction():
            tournament = await self._get_tournament(tournament_id, for_update=True)
            require_manager(tournament, user_id)

            locked = [
                key for key in LOCKED_FIELDS
                if key in changes and changes[key] != getattr(tournament, key)
            ]
            if locked and tournament.status in LOCKED_STATUSES:
                raise ConflictError(
                    f"{', '.join(locked)} cannot change after the tournament has started",
                    code=ErrorCode.ALREADY_STARTED,
                    details={"status": tournament.status.value, "fields": locked}
                )

            if "name" in changes and not (changes["name"] or "").strip():
                raise ValidationError("Tournament name is required", code=ErrorCode.INVALID_INPUT)
            if changes.get("target_team_count") is not None and changes["target_team_count"] < 2:
                raise ValidationError("target_team_count must be at least 2", code=ErrorCode.INVALID_INPUT)

            for key, value in changes.items():
                setattr(tournament, key, value.strip() if key == "name" else value)

            validate_format_rules(tournament.format, tournament.group_count, tournament.playoff_teams)
            validate_dates(tournament.start_date, tournament.end_date)
            await self.gateway.save_tournament(tournament)

        logger.info(f"Tournament {tournament_id} settings updated: {sorted(changes)}")
        return tournament

    # ==========================================================================
    # Registration
    # ==========================================================================

    async def request_join(self, tournament_id: int, team_id: int, user_id: int) -> TournamentTeam:
        """Register team_id as PENDING; only the team leader may ask."""
        async with self.gateway.transaction():
            tournament = await self._get_tournament(tournament_id, for_update=True)
            team = await self.gateway.get_team(team_id)
            if team is None:
                raise NotFoundError("Team", team_id)
            if team.leader_id != user_id:
                raise PermissionDeniedError(
                    "Only the team leader can request to join",
                    details={"team_id": team_id}
                )
            if tournament.status != TournamentStatus.RECRUITING:
                raise ValidationError(
                    "Tournament is not recruiting",
                    code=ErrorCode.INVALID_INPUT,
                    details={"status": tournament.status.value}
                )
            if team.sport_type.lower() != tournament.sport.lower():
                raise ValidationError(
                    f"Team sport '{team.sport_type}' does not match tournament sport '{tournament.sport}'",
                    code=ErrorCode.SPORT_MISMATCH
                )
            if await self.gateway.get_participant(tournament_id, team_id):
                raise ConflictError(
                    "Team already requested to join",
                    code=ErrorCode.ALREADY_PROCESSED,
                    details={"tournament_id": tournament_id, "team_id": team_id}
                )

            participant = await self.gateway.add_participant(
                TournamentTeam(tournament_id=tournament_id, team_id=team_id)
            )

        logger.info(f"Team {team_id} requested to join tournament {tournament_id}")
        return participant

    async def _process_participant(
        self,
        tournament_id: int,
        team_id: int,
        user_id: int,
        new_status: ParticipationStatus
    ) -> TournamentTeam:
        async with self.gateway.transaction():
            tournament = await self._get_tournament(tournament_id, for_update=True)
            require_manager(tournament, user_id)

            participant = await self.gateway.get_participant(tournament_id, team_id)
            if participant is None:
                raise NotFoundError("Participant", f"{tournament_id}/{team_id}")
            if participant.status != ParticipationStatus.PENDING:
                raise ConflictError(
                    f"Request already {participant.status.value.lower()}",
                    code=ErrorCode.ALREADY_PROCESSED,
                    details={"team_id": team_id, "status": participant.status.value}
                )

            participant.status = new_status
            await self.gateway.save_participant(participant)

        logger.info(f"Tournament {tournament_id}: team {team_id} {new_status.value}")
        return participant

    async def approve_participant(self, tournament_id: int, team_id: int, user_id: int) -> TournamentTeam:
        return await self._process_participant(tournament_id, team_id, user_id, ParticipationStatus.APPROVED)

    async def reject_participant(self, tournament_id: int, team_id: int, user_id: int) -> TournamentTeam:
        return await self._process_participant(tournament_id, team_id, user_id, ParticipationStatus.REJECTED)

    # ==========================================================================
    # Read models
    # ==========================================================================

    async def list_tournaments(
        self,
        status: Optional[TournamentStatus] = None,
        sport: Optional[str] = None,
        page: int = 1
    ) -> List[TournamentSummary]:
        page = max(page, 1)
        tournaments = await self.gateway.list_tournaments(
            status=status,
            sport=sport,
            limit=settings.PAGE_SIZE,
            offset=(page - 1) * settings.PAGE_SIZE
        )
        return [
            TournamentSummary(tournament=t, approved_count=len(await self.gateway.approved_team_ids(t.id)))
            for t in tournaments
        ]

    async def get_tournament_detail(self, tournament_id: int) -> TournamentDetail:
        tournament = await self._get_tournament(tournament_id)
        detail = TournamentDetail(tournament=tournament)
        for team_id in await self.gateway.approved_team_ids(tournament_id):
            team = await self.gateway.get_team(team_id)
            if team is not None:
                detail.teams.append(team)
        if tournament.champion_team_id is not None:
            detail.champion = await self.gateway.get_team(tournament.champion_team_id)
        return detail

    async def list_participants(self, tournament_id: int, status: str = "APPROVED") -> List[TournamentTeam]:
        """Participation rows; status "ALL" returns every row."""
        await self._get_tournament(tournament_id)
        if status == ALL_PARTICIPANTS:
            return await self.gateway.list_participants(tournament_id)
        try:
            wanted = ParticipationStatus(status)
        except ValueError as e:
            raise ValidationError(
                f"Unknown participation status '{status}'",
                code=ErrorCode.INVALID_INPUT
            ) from e
        return await self.gateway.list_participants(tournament_id, wanted)

    async def get_standings(self, tournament_id: int) -> "OrderedDict[str, List[StandingRow]]":
        """
        Ranked table per league group.

        Before any league match exists every approved team is listed with an
        empty record under a single default group.
        """
        await self._get_tournament(tournament_id)
        league = await self.gateway.list_matches(tournament_id, MatchStage.LEAGUE)
        groups = group_league_matches(league)
        if not groups:
            team_ids = await self.gateway.approved_team_ids(tournament_id)
            return OrderedDict([(DEFAULT_GROUP_NAME, compute_standings([], team_ids))])

        return OrderedDict(
            (name, compute_standings([m for m in league if m.round_name == name], members))
            for name, members in groups.items()
        )

    async def get_bracket(self, tournament_id: int) -> "OrderedDict[str, List[Match]]":
        """TOURNAMENT-stage matches grouped by round label, rounds in creation order."""
        await self._get_tournament(tournament_id)
        rounds: "OrderedDict[str, List[Match]]" = OrderedDict()
        for match in await self.gateway.list_matches(tournament_id, MatchStage.TOURNAMENT):
            rounds.setdefault(match.round_name, []).append(match)
        return rounds

    async def get_league_matches(self, tournament_id: int) -> List[Match]:
        await self._get_tournament(tournament_id)
        league = await self.gateway.list_matches(tournament_id, MatchStage.LEAGUE)
        return sorted(league, key=lambda m: (m.round_name, m.id))

    async def get_match_detail(self, tournament_id: int, match_id: int) -> MatchDetail:
        """Single match with both teams and its prediction totals."""
        tournament = await self._get_tournament(tournament_id)
        match = await self.gateway.get_match(match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        if match.tournament_id != tournament_id:
            raise ValidationError(
                f"Match {match_id} does not belong to tournament {tournament_id}",
                code=ErrorCode.INVALID_INPUT,
                details={"match_id": match_id, "tournament_id": tournament_id}
            )

        predictions = await self.gateway.list_match_predictions(match_id)
        return MatchDetail(
            match=match,
            tournament=tournament,
            odds=build_odds(match, predictions, self.clock()),
            team_a=await self.gateway.get_team(match.team_a_id) if match.team_a_id else None,
            team_b=await self.gateway.get_team(match.team_b_id) if match.team_b_id else None,
            prediction_count=len(predictions),
        )
