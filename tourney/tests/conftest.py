"""
Shared fixtures for the engine tests.

Everything runs on InMemoryGateway with a frozen clock and a seeded shuffle,
so generated schedules and dates are reproducible.
"""
import random
from datetime import datetime
from types import SimpleNamespace
from typing import List, Optional

import pytest
import pytest_asyncio

from tourney.domain import (
    Account, ParticipationStatus, Team, Tournament, TournamentFormat, TournamentTeam,
)
from tourney.repositories import InMemoryGateway
from tourney.services.prediction_service import PredictionService
from tourney.services.progression_service import ProgressionService
from tourney.services.tournament_service import TournamentService

FIXED_NOW = datetime(2026, 3, 2, 10, 0)


class FrozenClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def progression(gateway, clock) -> ProgressionService:
    return ProgressionService(gateway, rng=random.Random(7), clock=clock)


@pytest.fixture
def predictions(gateway, clock) -> PredictionService:
    return PredictionService(gateway, clock=clock)


@pytest.fixture
def tournaments(gateway, clock) -> TournamentService:
    return TournamentService(gateway, clock=clock)


@pytest_asyncio.fixture
async def make_tournament(gateway):
    """
    Factory: a tournament with team_count registered teams.

    Returns a namespace with tournament, manager_id, team_ids and leader_ids.
    """
    async def factory(
        format: TournamentFormat = TournamentFormat.TOURNAMENT,
        team_count: int = 4,
        group_count: Optional[int] = None,
        playoff_teams: Optional[int] = None,
        sport: str = "soccer",
        status: ParticipationStatus = ParticipationStatus.APPROVED,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> SimpleNamespace:
        manager = await gateway.add_account(Account(name="manager", points=1000))
        tournament = await gateway.add_tournament(Tournament(
            name="Spring Cup",
            sport=sport,
            manager_id=manager.id,
            format=format,
            group_count=group_count,
            playoff_teams=playoff_teams,
            start_date=start_date,
            end_date=end_date,
        ))

        team_ids: List[int] = []
        leader_ids: List[int] = []
        for i in range(team_count):
            leader = await gateway.add_account(Account(name=f"leader {i}", points=1000))
            team = await gateway.add_team(Team(name=f"Team {i}", sport_type=sport, leader_id=leader.id))
            await gateway.add_participant(
                TournamentTeam(tournament_id=tournament.id, team_id=team.id, status=status)
            )
            team_ids.append(team.id)
            leader_ids.append(leader.id)

        return SimpleNamespace(
            tournament=tournament,
            manager_id=manager.id,
            team_ids=team_ids,
            leader_ids=leader_ids,
        )

    return factory
