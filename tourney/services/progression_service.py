"""
Progression Controller

Drives a tournament through its lifecycle and its rounds.

Rules:
- Every operation runs in one gateway transaction: all-or-nothing
- The manager check runs right after the tournament is loaded
- Status only moves forward, per VALID_TRANSITIONS
- Only TOURNAMENT-stage rounds advance automatically; league completion
  is evaluated when the manager asks for it (start_playoff / complete_league)
- Next-round generation is skipped when a round with that label already
  exists, which makes finalize-and-advance idempotent
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from tourney.config.settings import settings
from tourney.domain import (
    AdvancementResult, Match, MatchStage, MatchStatus, Tournament,
    TournamentFormat, TournamentStatus,
)
from tourney.errors import (
    ConflictError, ErrorCode, NotFoundError, ValidationError, require_manager,
)
from tourney.repositories.base import TournamentGateway
from tourney.services.schedule_generator import (
    bracket_base_date, bracket_round_name, generate_bracket,
    generate_league_schedule, league_window, make_bracket_match,
    next_power_of_two, next_round_base_date, require_enough_teams,
    validate_playoff_split,
)
from tourney.services.settlement_service import SettlementReport, settle_match
from tourney.services.standings_service import (
    compute_standings, group_league_matches, select_qualifiers,
)

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    """Matches created by a scheduling action."""
    tournament: Tournament
    matches: List[Match] = field(default_factory=list)
    qualifiers: List[int] = field(default_factory=list)
    advancement: Optional[AdvancementResult] = None


@dataclass
class ResultReport:
    """Everything a reported result changed."""
    match: Match
    settlement: Optional[SettlementReport] = None
    advancement: AdvancementResult = field(default_factory=AdvancementResult)


class ProgressionService:
    """
    Tournament state machine.

    The gateway, the shuffle source and the clock are injected so the whole
    controller runs against the in-memory gateway in tests.
    """

    VALID_TRANSITIONS = {
        TournamentStatus.RECRUITING: [TournamentStatus.UPCOMING, TournamentStatus.ONGOING],
        TournamentStatus.UPCOMING: [TournamentStatus.ONGOING],
        TournamentStatus.ONGOING: [TournamentStatus.ENDED],
        TournamentStatus.ENDED: [],  # Terminal state
    }

    STARTED_STATUSES = [TournamentStatus.ONGOING, TournamentStatus.ENDED]

    def __init__(
        self,
        gateway: TournamentGateway,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.gateway = gateway
        self.rng = rng or random.Random()
        self.clock = clock

    @classmethod
    def _is_valid_transition(cls, current: TournamentStatus, new: TournamentStatus) -> bool:
        return new in cls.VALID_TRANSITIONS.get(current, [])

    def _transition(self, tournament: Tournament, new_status: TournamentStatus) -> None:
        if not self._is_valid_transition(tournament.status, new_status):
            raise ConflictError(
                f"Invalid status transition: {tournament.status.value} -> {new_status.value}",
                code=ErrorCode.STATE_TRANSITION_INVALID,
                details={"tournament_id": tournament.id, "status": tournament.status.value}
            )
        logger.info(
            f"Tournament {tournament.id}: {tournament.status.value} -> {new_status.value}"
        )
        tournament.status = new_status

    async def _load_tournament(self, tournament_id: int) -> Tournament:
        tournament = await self.gateway.get_tournament(tournament_id, for_update=True)
        if tournament is None:
            raise NotFoundError("Tournament", tournament_id)
        return tournament

    def _require_not_started(self, tournament: Tournament) -> None:
        if tournament.status in self.STARTED_STATUSES:
            raise ConflictError(
                f"Tournament already {tournament.status.value.lower()}",
                code=ErrorCode.ALREADY_STARTED,
                details={"tournament_id": tournament.id, "status": tournament.status.value}
            )

    def _require_ongoing(self, tournament: Tournament) -> None:
        if tournament.status != TournamentStatus.ONGOING:
            raise ConflictError(
                f"Tournament is {tournament.status.value}, expected ONGOING",
                code=ErrorCode.STATE_TRANSITION_INVALID,
                details={"tournament_id": tournament.id, "status": tournament.status.value}
            )

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def close_registration(self, tournament_id: int, user_id: int) -> Tournament:
        """RECRUITING -> UPCOMING."""
        async with self.gateway.transaction():
            tournament = await self._load_tournament(tournament_id)
            require_manager(tournament, user_id)
            self._transition(tournament, TournamentStatus.UPCOMING)
            await self.gateway.save_tournament(tournament)
            return tournament

    async def start_tournament(self, tournament_id: int, user_id: int) -> ScheduleResult:
        """
        Generate the initial schedule and move the tournament to ONGOING.

        Args:
            tournament_id: Tournament to start
            user_id: Caller; must be the manager

        Returns:
            ScheduleResult with the created matches

        Raises:
            PermissionDeniedError: caller is not the manager
            ConflictError: tournament already ONGOING or ENDED
            ValidationError: too few approved teams, a group would get < 2,
                or a HYBRID playoff could not be filled from the groups
        """
        async with self.gateway.transaction():
            tournament = await self._load_tournament(tournament_id)
            require_manager(tournament, user_id)
            self._require_not_started(tournament)

            team_ids = await self.gateway.approved_team_ids(tournament.id)
            require_enough_teams(team_ids)

            shuffled = list(team_ids)
            self.rng.shuffle(shuffled)
            now = self.clock()

            if tournament.format in (TournamentFormat.LEAGUE, TournamentFormat.HYBRID):
                matches = self._league_schedule(tournament, shuffled, now)
            else:
                matches = generate_bracket(
                    tournament.id,
                    shuffled,
                    MatchStage.TOURNAMENT,
                    bracket_base_date(tournament, MatchStage.TOURNAMENT, now)
                )
                tournament.bracket_generation = "random"

            created = await self.gateway.add_matches(matches)
            self._transition(tournament, TournamentStatus.ONGOING)
            await self.gateway.save_tournament(tournament)

            logger.info(
                f"Started tournament {tournament.id} ({tournament.format.value}) "
                f"with {len(team_ids)} teams, {len(created)} matches"
            )
            return ScheduleResult(tournament=tournament, matches=created)

    def _league_schedule(self, tournament: Tournament, team_ids: Sequence[int], now: datetime) -> List[Match]:
        group_count = tournament.group_count or 1
        if group_count > 1 and len(team_ids) < 2 * group_count:
            raise ValidationError(
                f"{len(team_ids)} teams cannot fill {group_count} groups of at least 2",
                code=ErrorCode.INSUFFICIENT_TEAMS,
                details={"team_count": len(team_ids), "group_count": group_count}
            )
        if tournament.format == TournamentFormat.HYBRID:
            self._require_playoff_reachable(tournament, len(team_ids), group_count)

        return generate_league_schedule(
            tournament.id, team_ids, tournament.group_count, league_window(tournament, now)
        )

    @staticmethod
    def _require_playoff_reachable(tournament: Tournament, team_count: int, group_count: int) -> None:
        """Every group must be able to send its share of playoff_teams."""
        if not tournament.playoff_teams:
            raise ValidationError(
                "Playoff team count is not configured",
                code=ErrorCode.INVALID_INPUT,
                details={"tournament_id": tournament.id}
            )
        per_group = validate_playoff_split(tournament.playoff_teams, group_count)
        # assign_groups deals round robin, so the smallest group gets the floor share
        smallest = team_count // group_count
        if per_group > smallest:
            raise ValidationError(
                f"Playoff needs {per_group} teams from each group, smallest group has {smallest}",
                code=ErrorCode.INSUFFICIENT_TEAMS,
                details={
                    "playoff_teams": tournament.playoff_teams,
                    "per_group": per_group,
                    "smallest_group": smallest,
                }
            )

    # ==========================================================================
    # Results and advancement
    # ==========================================================================

    async def report_result(
        self,
        match_id: int,
        team_a_score: int,
        team_b_score: int,
        winner_team_id: Optional[int],
        user_id: int
    ) -> ResultReport:
        """
        Record a result, settle predictions and advance the bracket.

        All three happen in one transaction. When winner_team_id is omitted
        it is taken from the scores; a draw is only accepted on a LEAGUE match.
        """
        async with self.gateway.transaction():
            match = await self.gateway.get_match(match_id, for_update=True)
            if match is None:
                raise NotFoundError("Match", match_id)
            tournament = await self._load_tournament(match.tournament_id)
            require_manager(tournament, user_id)

            if match.status == MatchStatus.DONE:
                raise ConflictError(
                    "Result already reported for this match",
                    code=ErrorCode.ALREADY_REPORTED,
                    details={"match_id": match.id}
                )
            self._require_ongoing(tournament)
            if match.is_bye:
                raise ValidationError(
                    "Both teams must be set before a result can be reported",
                    details={"match_id": match.id}
                )

            winner = self._resolve_winner(match, team_a_score, team_b_score, winner_team_id)

            match.team_a_score = team_a_score
            match.team_b_score = team_b_score
            match.winner_team_id = winner
            match.status = MatchStatus.DONE
            await self.gateway.save_match(match)
            logger.info(
                f"Match {match.id} ({match.round_name}) reported "
                f"{team_a_score}:{team_b_score}, winner={winner}"
            )

            report = ResultReport(match=match)
            if winner is not None:
                report.settlement = await settle_match(self.gateway, match)
            if match.stage == MatchStage.TOURNAMENT:
                report.advancement = await self._advance(tournament, match.stage, match.round_name)
            return report

    @staticmethod
    def _resolve_winner(
        match: Match,
        team_a_score: int,
        team_b_score: int,
        winner_team_id: Optional[int]
    ) -> Optional[int]:
        if team_a_score is None or team_b_score is None or team_a_score < 0 or team_b_score < 0:
            raise ValidationError(
                "Scores must be non-negative integers",
                code=ErrorCode.INVALID_INPUT,
                details={"team_a_score": team_a_score, "team_b_score": team_b_score}
            )

        if winner_team_id is not None:
            if not match.has_team(winner_team_id):
                raise ValidationError(
                    f"Team {winner_team_id} is not playing in match {match.id}",
                    code=ErrorCode.INVALID_INPUT,
                    details={"winner_team_id": winner_team_id}
                )
            return winner_team_id

        if team_a_score > team_b_score:
            return match.team_a_id
        if team_b_score > team_a_score:
            return match.team_b_id
        if match.stage == MatchStage.LEAGUE:
            return None
        raise ValidationError(
            "Elimination matches need a winner; report winner_team_id for a tied score",
            code=ErrorCode.INVALID_INPUT,
            details={"match_id": match.id}
        )

    async def advance_round(
        self,
        tournament_id: int,
        stage: MatchStage,
        round_name: str,
        user_id: int
    ) -> AdvancementResult:
        """Finalize-and-advance one round; safe to call any number of times."""
        async with self.gateway.transaction():
            tournament = await self._load_tournament(tournament_id)
            require_manager(tournament, user_id)
            return await self._advance(tournament, stage, round_name)

    async def _advance(self, tournament: Tournament, stage: MatchStage, round_name: str) -> AdvancementResult:
        if stage != MatchStage.TOURNAMENT:
            return AdvancementResult()

        round_matches = await self.gateway.list_matches(tournament.id, stage, round_name)
        if not round_matches or any(m.status != MatchStatus.DONE for m in round_matches):
            return AdvancementResult()

        # Creation order preserves bracket slot order
        winners = [m.winner_team_id for m in round_matches if m.winner_team_id is not None]
        result = AdvancementResult(round_complete=True)

        if len(winners) == 1:
            result.champion_team_id = winners[0]
            if tournament.status != TournamentStatus.ENDED:
                tournament.champion_team_id = winners[0]
                self._transition(tournament, TournamentStatus.ENDED)
                await self.gateway.save_tournament(tournament)
                logger.info(f"Tournament {tournament.id} ended, champion team {winners[0]}")
            return result

        if not winners:
            logger.warning(f"Tournament {tournament.id}: round {round_name} finished without winners")
            return result

        next_name = bracket_round_name(next_power_of_two(len(winners)))
        result.next_round_name = next_name
        if await self.gateway.round_exists(tournament.id, stage, next_name):
            logger.info(f"Tournament {tournament.id}: round {next_name} already exists, skipping")
            result.skipped_existing_round = True
            return result

        base_date = next_round_base_date(round_matches, self.clock())
        result.created_matches = await self.gateway.add_matches(
            generate_bracket(tournament.id, winners, stage, base_date)
        )
        logger.info(
            f"Tournament {tournament.id}: {round_name} complete, "
            f"created {next_name} with {len(result.created_matches)} matches"
        )
        return result

    # ==========================================================================
    # League endings
    # ==========================================================================

    async def _finished_league(self, tournament: Tournament) -> List[Match]:
        league = await self.gateway.list_matches(tournament.id, MatchStage.LEAGUE)
        pending = sum(1 for m in league if m.status != MatchStatus.DONE)
        if not league or pending:
            raise ValidationError(
                "League phase incomplete",
                code=ErrorCode.LEAGUE_INCOMPLETE,
                details={"league_matches": len(league), "pending": pending}
            )
        return league

    async def start_playoff(self, tournament_id: int, user_id: int) -> ScheduleResult:
        """
        HYBRID cutover: top teams of every group into a TOURNAMENT bracket.

        Runs once; a second call after playoff matches exist is a ConflictError.
        """
        async with self.gateway.transaction():
            tournament = await self._load_tournament(tournament_id)
            require_manager(tournament, user_id)

            if tournament.format != TournamentFormat.HYBRID:
                raise ValidationError(
                    "Playoffs are only available for HYBRID tournaments",
                    details={"format": tournament.format.value}
                )
            if not tournament.playoff_teams:
                raise ValidationError("Playoff team count is not configured")
            self._require_ongoing(tournament)

            if await self.gateway.list_matches(tournament.id, MatchStage.TOURNAMENT):
                raise ConflictError(
                    "Playoff bracket already generated",
                    code=ErrorCode.ROUND_EXISTS,
                    details={"tournament_id": tournament.id}
                )

            league = await self._finished_league(tournament)
            groups = group_league_matches(league)
            per_group = validate_playoff_split(tournament.playoff_teams, len(groups))
            short = [name for name, members in groups.items() if len(members) < per_group]
            if short:
                raise ValidationError(
                    f"Groups {', '.join(short)} have fewer than {per_group} teams",
                    code=ErrorCode.INSUFFICIENT_TEAMS,
                    details={"per_group": per_group}
                )

            qualifiers = select_qualifiers(league, per_group)
            last_league_date = max(
                (m.match_date for m in league if m.match_date is not None), default=None
            )
            base_date = bracket_base_date(
                tournament, MatchStage.TOURNAMENT, self.clock(), last_league_date
            )
            created = await self.gateway.add_matches(
                generate_bracket(tournament.id, qualifiers, MatchStage.TOURNAMENT, base_date)
            )
            tournament.bracket_generation = "random"
            await self.gateway.save_tournament(tournament)

            logger.info(
                f"Tournament {tournament.id}: playoff started with {len(qualifiers)} "
                f"qualifiers from {len(groups)} group(s)"
            )
            return ScheduleResult(tournament=tournament, matches=created, qualifiers=qualifiers)

    async def complete_league(self, tournament_id: int, user_id: int) -> Tournament:
        """End a LEAGUE tournament once every match is DONE; the table leader is champion."""
        async with self.gateway.transaction():
            tournament = await self._load_tournament(tournament_id)
            require_manager(tournament, user_id)

            if tournament.format != TournamentFormat.LEAGUE:
                raise ValidationError(
                    "Only LEAGUE tournaments end from the league table",
                    details={"format": tournament.format.value}
                )
            self._require_ongoing(tournament)

            league = await self._finished_league(tournament)
            # First group in label order decides the champion
            name, members = next(iter(group_league_matches(league).items()))
            table = compute_standings([m for m in league if m.round_name == name], members)

            tournament.champion_team_id = table[0].team_id
            self._transition(tournament, TournamentStatus.ENDED)
            await self.gateway.save_tournament(tournament)
            logger.info(f"Tournament {tournament.id} league complete, champion team {table[0].team_id}")
            return tournament

    # ==========================================================================
    # Manual bracket
    # ==========================================================================

    async def create_manual_bracket(
        self,
        tournament_id: int,
        pairings: Sequence[Tuple[Optional[int], Optional[int]]],
        user_id: int
    ) -> ScheduleResult:
        """
        Manager-supplied first round for a TOURNAMENT-format event.

        Skips generation but not advancement: byes are resolved on creation,
        the tournament moves to ONGOING, and later rounds are generated as usual.
        """
        async with self.gateway.transaction():
            tournament = await self._load_tournament(tournament_id)
            require_manager(tournament, user_id)
            self._require_not_started(tournament)

            if tournament.format != TournamentFormat.TOURNAMENT:
                raise ValidationError(
                    "Manual brackets are only available for TOURNAMENT format",
                    details={"format": tournament.format.value}
                )
            if not pairings:
                raise ValidationError("At least one pairing is required", code=ErrorCode.INVALID_INPUT)
            if await self.gateway.list_matches(tournament.id):
                raise ConflictError("Bracket already exists", code=ErrorCode.ROUND_EXISTS)

            listed = [team_id for pair in pairings for team_id in pair if team_id is not None]
            if len(set(listed)) != len(listed):
                raise ValidationError("A team appears in more than one slot", code=ErrorCode.INVALID_INPUT)
            approved = set(await self.gateway.approved_team_ids(tournament.id))
            unapproved = [team_id for team_id in listed if team_id not in approved]
            if unapproved:
                raise ValidationError(
                    "Only APPROVED teams can be placed in the bracket",
                    code=ErrorCode.INVALID_INPUT,
                    details={"team_ids": unapproved}
                )
            require_enough_teams(listed)

            round_name = bracket_round_name(next_power_of_two(2 * len(pairings)))
            base_date = bracket_base_date(tournament, MatchStage.TOURNAMENT, self.clock())
            interval = timedelta(minutes=settings.BRACKET_INTERVAL_MINUTES)
            created = await self.gateway.add_matches([
                make_bracket_match(
                    tournament.id, MatchStage.TOURNAMENT, round_name,
                    team_a_id, team_b_id, base_date + interval * i
                )
                for i, (team_a_id, team_b_id) in enumerate(pairings)
            ])

            tournament.bracket_generation = "manual"
            self._transition(tournament, TournamentStatus.ONGOING)
            await self.gateway.save_tournament(tournament)
            logger.info(
                f"Tournament {tournament.id}: manual {round_name} bracket with {len(created)} matches"
            )

            # A first round made only of byes is already complete
            advancement = await self._advance(tournament, MatchStage.TOURNAMENT, round_name)
            return ScheduleResult(tournament=tournament, matches=created, advancement=advancement)
