"""
tourney/repositories/base.py
Persistence gateway contract used by every engine service.

Rules:
- Every multi-step mutation runs inside `async with gateway.transaction():`
- Leaving the block normally commits; any exception rolls back everything
  written inside the block and propagates
- Reads return detached records: changing a record does nothing until it is
  passed to the matching save_* method
- `for_update=True` reads take a row lock where the backend supports it
"""
from abc import ABC, abstractmethod
from typing import AsyncContextManager, List, Optional

from tourney.domain import (
    Account, Match, MatchStage, ParticipationStatus, Prediction,
    PredictionStatus, Team, Tournament, TournamentStatus, TournamentTeam,
)


class TournamentGateway(ABC):
    """Transactional storage for tournaments, matches, predictions and points."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager["TournamentGateway"]:
        """Atomic unit of work."""

    # ------------------------------------------------------------------
    # Accounts and teams (collaborator data)
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_account(self, account: Account) -> Account:
        ...

    @abstractmethod
    async def get_account(self, user_id: int, for_update: bool = False) -> Optional[Account]:
        ...

    @abstractmethod
    async def adjust_points(self, user_id: int, delta: int) -> int:
        """
        Atomically add delta to the balance and return the new balance.

        Raises ValidationError if the balance would go negative and
        NotFoundError if the account does not exist.
        """

    @abstractmethod
    async def add_team(self, team: Team) -> Team:
        ...

    @abstractmethod
    async def get_team(self, team_id: int) -> Optional[Team]:
        ...

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_tournament(self, tournament: Tournament) -> Tournament:
        ...

    @abstractmethod
    async def get_tournament(self, tournament_id: int, for_update: bool = False) -> Optional[Tournament]:
        ...

    @abstractmethod
    async def save_tournament(self, tournament: Tournament) -> None:
        ...

    @abstractmethod
    async def list_tournaments(
        self,
        status: Optional[TournamentStatus] = None,
        sport: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[Tournament]:
        """Newest first."""

    # ------------------------------------------------------------------
    # Participation
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_participant(self, participant: TournamentTeam) -> TournamentTeam:
        ...

    @abstractmethod
    async def get_participant(self, tournament_id: int, team_id: int) -> Optional[TournamentTeam]:
        ...

    @abstractmethod
    async def save_participant(self, participant: TournamentTeam) -> None:
        ...

    @abstractmethod
    async def list_participants(
        self,
        tournament_id: int,
        status: Optional[ParticipationStatus] = None
    ) -> List[TournamentTeam]:
        """In join-request order."""

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_matches(self, matches: List[Match]) -> List[Match]:
        """Insert in list order; returned records carry their new ids."""

    @abstractmethod
    async def get_match(self, match_id: int, for_update: bool = False) -> Optional[Match]:
        ...

    @abstractmethod
    async def save_match(self, match: Match) -> None:
        ...

    @abstractmethod
    async def list_matches(
        self,
        tournament_id: int,
        stage: Optional[MatchStage] = None,
        round_name: Optional[str] = None
    ) -> List[Match]:
        """Ordered by id (creation order)."""

    @abstractmethod
    async def list_scheduled_matches(self) -> List[Match]:
        """Matches of every tournament with both sides set, by match_date then id; undated last."""

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_prediction(self, prediction: Prediction) -> Prediction:
        ...

    @abstractmethod
    async def save_prediction(self, prediction: Prediction) -> None:
        ...

    @abstractmethod
    async def find_prediction(self, user_id: int, match_id: int) -> Optional[Prediction]:
        ...

    @abstractmethod
    async def list_match_predictions(
        self,
        match_id: int,
        status: Optional[PredictionStatus] = None
    ) -> List[Prediction]:
        """Ordered by id."""

    @abstractmethod
    async def list_user_predictions(self, user_id: int) -> List[Prediction]:
        """Newest first."""

    # ------------------------------------------------------------------
    # Convenience queries shared by both backends
    # ------------------------------------------------------------------

    async def round_exists(self, tournament_id: int, stage: MatchStage, round_name: str) -> bool:
        matches = await self.list_matches(tournament_id, stage=stage, round_name=round_name)
        return len(matches) > 0

    async def approved_team_ids(self, tournament_id: int) -> List[int]:
        participants = await self.list_participants(tournament_id, ParticipationStatus.APPROVED)
        return [p.team_id for p in participants]
