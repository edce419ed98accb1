"""
Tournament setup, registration and read-model tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from tourney.domain import (
    Account, MatchStage, ParticipationStatus, Team, Tournament, TournamentFormat, TournamentStatus,
    TournamentTeam,
)
from tourney.errors import (
    ConflictError, ErrorCode, NotFoundError, PermissionDeniedError, ValidationError,
)
from tourney.services.standings_service import DEFAULT_GROUP_NAME


# =============================================================================
# create_tournament
# =============================================================================

class TestCreateTournament:

    @pytest.mark.asyncio
    async def test_created_recruiting(self, gateway, tournaments):
        tournament = await tournaments.create_tournament(
            manager_id=1, name="  Spring Cup ", sport="soccer",
            format=TournamentFormat.HYBRID, group_count=2, playoff_teams=4
        )

        assert tournament.id is not None
        assert tournament.name == "Spring Cup"
        assert tournament.status == TournamentStatus.RECRUITING
        assert (await gateway.get_tournament(tournament.id)).manager_id == 1

    @pytest.mark.asyncio
    async def test_name_required(self, tournaments):
        with pytest.raises(ValidationError):
            await tournaments.create_tournament(manager_id=1, name="   ", sport="soccer")

    @pytest.mark.asyncio
    async def test_playoff_teams_only_for_hybrid(self, tournaments):
        with pytest.raises(ValidationError) as exc_info:
            await tournaments.create_tournament(
                manager_id=1, name="Cup", sport="soccer",
                format=TournamentFormat.LEAGUE, playoff_teams=4
            )
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_groups_not_allowed_for_elimination(self, tournaments):
        with pytest.raises(ValidationError):
            await tournaments.create_tournament(
                manager_id=1, name="Cup", sport="soccer", group_count=2
            )

    @pytest.mark.asyncio
    async def test_uneven_playoff_split(self, gateway, tournaments):
        with pytest.raises(ValidationError) as exc_info:
            await tournaments.create_tournament(
                manager_id=1, name="Cup", sport="soccer",
                format=TournamentFormat.HYBRID, group_count=3, playoff_teams=4
            )
        assert exc_info.value.code == ErrorCode.INDIVISIBLE_PLAYOFF
        assert await gateway.list_tournaments() == []

    @pytest.mark.asyncio
    async def test_end_before_start(self, tournaments):
        start = datetime(2026, 4, 1)
        with pytest.raises(ValidationError):
            await tournaments.create_tournament(
                manager_id=1, name="Cup", sport="soccer",
                start_date=start, end_date=start - timedelta(days=1)
            )

    @pytest.mark.asyncio
    async def test_offset_dates_stored_as_local_time(self, gateway, tournaments, progression):
        start = datetime(2030, 3, 10, 9, 0, tzinfo=timezone.utc)
        end = datetime(2030, 3, 20, 9, 0, tzinfo=timezone(timedelta(hours=9)))
        tournament = await tournaments.create_tournament(
            manager_id=1, name="Cup", sport="soccer",
            format=TournamentFormat.LEAGUE, start_date=start, end_date=end
        )

        stored = await gateway.get_tournament(tournament.id)
        assert stored.start_date.tzinfo is None
        assert stored.start_date == start.astimezone().replace(tzinfo=None)
        assert stored.end_date == end.astimezone().replace(tzinfo=None)

        for i in range(2):
            team = await gateway.add_team(Team(name=f"Team {i}", sport_type="soccer", leader_id=1))
            await gateway.add_participant(TournamentTeam(
                tournament_id=tournament.id, team_id=team.id, status=ParticipationStatus.APPROVED
            ))
        [match] = (await progression.start_tournament(tournament.id, 1)).matches
        assert match.match_date.date() == stored.start_date.date()


# =============================================================================
# Registration
# =============================================================================

class TestRegistration:

    async def _team(self, gateway, sport="soccer"):
        leader = await gateway.add_account(Account(name="leader"))
        team = await gateway.add_team(Team(name="Reds", sport_type=sport, leader_id=leader.id))
        return team, leader.id

    @pytest.mark.asyncio
    async def test_join_then_approve(self, gateway, tournaments, make_tournament):
        setup = await make_tournament(team_count=0)
        team, leader_id = await self._team(gateway, sport="SOCCER")

        joined = await tournaments.request_join(setup.tournament.id, team.id, leader_id)
        assert joined.status == ParticipationStatus.PENDING

        approved = await tournaments.approve_participant(setup.tournament.id, team.id, setup.manager_id)
        assert approved.status == ParticipationStatus.APPROVED
        assert await gateway.approved_team_ids(setup.tournament.id) == [team.id]

    @pytest.mark.asyncio
    async def test_only_leader_can_join(self, gateway, tournaments, make_tournament):
        setup = await make_tournament(team_count=0)
        team, _ = await self._team(gateway)

        with pytest.raises(PermissionDeniedError):
            await tournaments.request_join(setup.tournament.id, team.id, setup.manager_id)

    @pytest.mark.asyncio
    async def test_sport_must_match(self, gateway, tournaments, make_tournament):
        setup = await make_tournament(team_count=0)
        team, leader_id = await self._team(gateway, sport="basketball")

        with pytest.raises(ValidationError) as exc_info:
            await tournaments.request_join(setup.tournament.id, team.id, leader_id)
        assert exc_info.value.code == ErrorCode.SPORT_MISMATCH

    @pytest.mark.asyncio
    async def test_join_twice_is_conflict(self, gateway, tournaments, make_tournament):
        setup = await make_tournament(team_count=0)
        team, leader_id = await self._team(gateway)
        await tournaments.request_join(setup.tournament.id, team.id, leader_id)

        with pytest.raises(ConflictError) as exc_info:
            await tournaments.request_join(setup.tournament.id, team.id, leader_id)
        assert exc_info.value.code == ErrorCode.ALREADY_PROCESSED

    @pytest.mark.asyncio
    async def test_join_closed_tournament(self, gateway, tournaments, progression, make_tournament):
        setup = await make_tournament(team_count=2)
        await progression.close_registration(setup.tournament.id, setup.manager_id)
        team, leader_id = await self._team(gateway)

        with pytest.raises(ValidationError):
            await tournaments.request_join(setup.tournament.id, team.id, leader_id)

    @pytest.mark.asyncio
    async def test_unknown_team(self, tournaments, make_tournament):
        setup = await make_tournament(team_count=0)
        with pytest.raises(NotFoundError):
            await tournaments.request_join(setup.tournament.id, 999, 1)

    @pytest.mark.asyncio
    async def test_processed_once(self, tournaments, make_tournament):
        setup = await make_tournament(team_count=1, status=ParticipationStatus.PENDING)
        team_id = setup.team_ids[0]
        rejected = await tournaments.reject_participant(setup.tournament.id, team_id, setup.manager_id)
        assert rejected.status == ParticipationStatus.REJECTED

        with pytest.raises(ConflictError) as exc_info:
            await tournaments.approve_participant(setup.tournament.id, team_id, setup.manager_id)
        assert exc_info.value.code == ErrorCode.ALREADY_PROCESSED

    @pytest.mark.asyncio
    async def test_only_manager_approves(self, gateway, tournaments, make_tournament):
        setup = await make_tournament(team_count=1, status=ParticipationStatus.PENDING)
        team_id = setup.team_ids[0]

        with pytest.raises(PermissionDeniedError):
            await tournaments.approve_participant(setup.tournament.id, team_id, setup.leader_ids[0])
        participant = await gateway.get_participant(setup.tournament.id, team_id)
        assert participant.status == ParticipationStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_participant(self, tournaments, make_tournament):
        setup = await make_tournament(team_count=0)
        with pytest.raises(NotFoundError):
            await tournaments.approve_participant(setup.tournament.id, 999, setup.manager_id)

    @pytest.mark.asyncio
    async def test_list_participants_by_status(self, tournaments, make_tournament):
        setup = await make_tournament(team_count=2, status=ParticipationStatus.PENDING)
        await tournaments.approve_participant(setup.tournament.id, setup.team_ids[1], setup.manager_id)

        approved = await tournaments.list_participants(setup.tournament.id)
        pending = await tournaments.list_participants(setup.tournament.id, "PENDING")
        everyone = await tournaments.list_participants(setup.tournament.id, "ALL")

        assert [p.team_id for p in approved] == [setup.team_ids[1]]
        assert [p.team_id for p in pending] == [setup.team_ids[0]]
        assert [p.team_id for p in everyone] == setup.team_ids

        with pytest.raises(ValidationError):
            await tournaments.list_participants(setup.tournament.id, "MAYBE")


# =============================================================================
# update_settings
# =============================================================================

class TestUpdateSettings:

    @pytest.mark.asyncio
    async def test_editable_fields(self, gateway, tournaments, make_tournament):
        setup = await make_tournament(format=TournamentFormat.LEAGUE)
        updated = await tournaments.update_settings(
            setup.tournament.id, setup.manager_id,
            {"name": " Autumn Cup ", "group_count": 2, "target_team_count": 8}
        )
        assert (updated.name, updated.group_count, updated.target_team_count) == ("Autumn Cup", 2, 8)
        assert (await gateway.get_tournament(setup.tournament.id)).group_count == 2

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, tournaments, make_tournament):
        setup = await make_tournament()
        with pytest.raises(ValidationError) as exc_info:
            await tournaments.update_settings(setup.tournament.id, setup.manager_id, {"status": "ENDED"})
        assert exc_info.value.details == {"fields": ["status"]}

    @pytest.mark.asyncio
    async def test_group_count_locked_after_start(self, gateway, tournaments, progression, make_tournament):
        setup = await make_tournament(format=TournamentFormat.LEAGUE, team_count=4)
        await progression.start_tournament(setup.tournament.id, setup.manager_id)

        with pytest.raises(ConflictError) as exc_info:
            await tournaments.update_settings(setup.tournament.id, setup.manager_id, {"group_count": 2})
        assert exc_info.value.code == ErrorCode.ALREADY_STARTED

        renamed = await tournaments.update_settings(
            setup.tournament.id, setup.manager_id, {"description": "moved indoors"}
        )
        assert renamed.description == "moved indoors"

    @pytest.mark.asyncio
    async def test_offset_end_date_compared_with_stored_start(self, gateway, tournaments, make_tournament):
        setup = await make_tournament(format=TournamentFormat.LEAGUE, start_date=datetime(2030, 1, 1))
        end = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)

        updated = await tournaments.update_settings(setup.tournament.id, setup.manager_id, {"end_date": end})

        assert updated.end_date == end.astimezone().replace(tzinfo=None)
        assert (await gateway.get_tournament(setup.tournament.id)).end_date.tzinfo is None
        with pytest.raises(ValidationError):
            await tournaments.update_settings(
                setup.tournament.id, setup.manager_id,
                {"end_date": datetime(2029, 12, 1, tzinfo=timezone.utc)}
            )

    @pytest.mark.asyncio
    async def test_playoff_teams_editable_until_start(self, tournaments, progression, make_tournament):
        setup = await make_tournament(
            format=TournamentFormat.HYBRID, team_count=4, group_count=2, playoff_teams=4
        )
        updated = await tournaments.update_settings(setup.tournament.id, setup.manager_id, {"playoff_teams": 2})
        assert updated.playoff_teams == 2

        with pytest.raises(ValidationError) as exc_info:
            await tournaments.update_settings(setup.tournament.id, setup.manager_id, {"playoff_teams": 3})
        assert exc_info.value.code == ErrorCode.INDIVISIBLE_PLAYOFF

        await progression.start_tournament(setup.tournament.id, setup.manager_id)
        with pytest.raises(ConflictError) as exc_info:
            await tournaments.update_settings(setup.tournament.id, setup.manager_id, {"playoff_teams": 4})
        assert exc_info.value.details["fields"] == ["playoff_teams"]

    @pytest.mark.asyncio
    async def test_only_manager_updates(self, tournaments, make_tournament):
        setup = await make_tournament()
        with pytest.raises(PermissionDeniedError):
            await tournaments.update_settings(setup.tournament.id, setup.leader_ids[0], {"name": "Mine"})


# =============================================================================
# Read models
# =============================================================================

class TestReadModels:

    @pytest.mark.asyncio
    async def test_list_newest_first_with_paging(self, gateway, tournaments):
        created = datetime(2026, 1, 1)
        for i in range(12):
            await gateway.add_tournament(Tournament(
                name=f"Cup {i}",
                sport="Soccer" if i % 2 else "tennis",
                manager_id=1,
                created_at=created + timedelta(hours=i),
            ))

        first = await tournaments.list_tournaments()
        second = await tournaments.list_tournaments(page=2)
        soccer = await tournaments.list_tournaments(sport="soccer")

        assert [s.tournament.name for s in first][:2] == ["Cup 11", "Cup 10"]
        assert len(first) == 10
        assert [s.tournament.name for s in second] == ["Cup 1", "Cup 0"]
        assert len(soccer) == 6
        assert await tournaments.list_tournaments(status=TournamentStatus.ENDED) == []

    @pytest.mark.asyncio
    async def test_summary_counts_approved_teams(self, tournaments, make_tournament):
        setup = await make_tournament(team_count=3)
        [summary] = await tournaments.list_tournaments()
        assert summary.tournament.id == setup.tournament.id
        assert summary.approved_count == 3

    @pytest.mark.asyncio
    async def test_detail_with_champion(self, gateway, tournaments, progression, make_tournament):
        setup = await make_tournament(team_count=2)
        [final] = (await progression.start_tournament(setup.tournament.id, setup.manager_id)).matches
        await progression.report_result(final.id, 1, 0, None, setup.manager_id)

        detail = await tournaments.get_tournament_detail(setup.tournament.id)

        assert {team.id for team in detail.teams} == set(setup.team_ids)
        assert detail.champion.id == final.team_a_id
        assert detail.tournament.status == TournamentStatus.ENDED

    @pytest.mark.asyncio
    async def test_detail_unknown(self, tournaments):
        with pytest.raises(NotFoundError):
            await tournaments.get_tournament_detail(404)

    @pytest.mark.asyncio
    async def test_standings_before_start(self, tournaments, make_tournament):
        setup = await make_tournament(format=TournamentFormat.LEAGUE, team_count=3)
        standings = await tournaments.get_standings(setup.tournament.id)

        assert list(standings) == [DEFAULT_GROUP_NAME]
        assert [row.team_id for row in standings[DEFAULT_GROUP_NAME]] == setup.team_ids
        assert all(row.points == 0 for row in standings[DEFAULT_GROUP_NAME])

    @pytest.mark.asyncio
    async def test_standings_per_group(self, tournaments, progression, make_tournament):
        setup = await make_tournament(
            format=TournamentFormat.HYBRID, team_count=8, group_count=2, playoff_teams=4
        )
        league = (await progression.start_tournament(setup.tournament.id, setup.manager_id)).matches
        first = league[0]
        await progression.report_result(first.id, 3, 0, None, setup.manager_id)

        standings = await tournaments.get_standings(setup.tournament.id)

        assert list(standings) == ["A조", "B조"]
        assert all(len(rows) == 4 for rows in standings.values())
        leader = standings[first.round_name][0]
        assert (leader.team_id, leader.points, leader.goal_diff) == (first.team_a_id, 3, 3)

    @pytest.mark.asyncio
    async def test_bracket_grouped_by_round(self, tournaments, progression, make_tournament):
        setup = await make_tournament(team_count=4)
        semis = (await progression.start_tournament(setup.tournament.id, setup.manager_id)).matches
        for match in semis:
            await progression.report_result(match.id, 1, 0, None, setup.manager_id)

        bracket = await tournaments.get_bracket(setup.tournament.id)

        assert list(bracket) == ["준결승", "결승"]
        assert [m.id for m in bracket["준결승"]] == [m.id for m in semis]
        assert len(bracket["결승"]) == 1
        assert all(m.stage == MatchStage.TOURNAMENT for rnd in bracket.values() for m in rnd)

    @pytest.mark.asyncio
    async def test_league_matches_sorted_by_group(self, tournaments, progression, make_tournament):
        setup = await make_tournament(
            format=TournamentFormat.HYBRID, team_count=4, group_count=2, playoff_teams=2
        )
        await progression.start_tournament(setup.tournament.id, setup.manager_id)

        matches = await tournaments.get_league_matches(setup.tournament.id)

        assert [m.round_name for m in matches] == ["A조", "B조"]
        assert await tournaments.get_bracket(setup.tournament.id) == {}

    @pytest.mark.asyncio
    async def test_match_detail(self, gateway, tournaments, progression, predictions, make_tournament):
        setup = await make_tournament(team_count=4)
        semi = (await progression.start_tournament(setup.tournament.id, setup.manager_id)).matches[0]
        bettor = await gateway.add_account(Account(name="bettor", points=500))
        await predictions.create_prediction(bettor.id, semi.id, semi.team_b_id, 100)

        detail = await tournaments.get_match_detail(setup.tournament.id, semi.id)

        assert detail.match.round_name == "준결승"
        assert detail.tournament.name == "Spring Cup"
        assert (detail.team_a.id, detail.team_b.id) == (semi.team_a_id, semi.team_b_id)
        assert detail.prediction_count == 1
        assert (detail.odds.team_a_points, detail.odds.team_b_points) == (0, 100)
        assert detail.odds.is_betting_open is True

    @pytest.mark.asyncio
    async def test_match_detail_checks_tournament(self, tournaments, progression, make_tournament):
        setup = await make_tournament(team_count=2)
        other = await make_tournament(team_count=2)
        [final] = (await progression.start_tournament(setup.tournament.id, setup.manager_id)).matches

        with pytest.raises(ValidationError):
            await tournaments.get_match_detail(other.tournament.id, final.id)
        with pytest.raises(NotFoundError):
            await tournaments.get_match_detail(setup.tournament.id, 999)
