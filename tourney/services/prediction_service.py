"""
Prediction Service

Point bets on match outcomes.

Betting window: open while the match is UPCOMING and today is strictly
before the match's calendar day. The stake is debited in the same
transaction that inserts the prediction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from tourney.domain import Match, MatchStatus, Prediction, Team, Tournament
from tourney.errors import ErrorCode, NotFoundError, ValidationError
from tourney.repositories.base import TournamentGateway

logger = logging.getLogger(__name__)

EMPTY_MARKET_RATIO = 2.0
ONE_SIDED_RATIO = 1.0


def is_betting_open(match: Match, now: datetime) -> bool:
    if match.status != MatchStatus.UPCOMING or match.match_date is None:
        return False
    return now.date() < match.match_date.date()


def side_ratio(total: int, side: int) -> float:
    if total == 0:
        return EMPTY_MARKET_RATIO
    if side == 0:
        return ONE_SIDED_RATIO
    return round(total / side, 2)


def side_percent(total: int, side: int) -> int:
    if total == 0:
        return 50
    return round(side * 100 / total)


@dataclass
class PredictionReceipt:
    prediction: Prediction
    balance: int


@dataclass
class MatchOdds:
    match_id: int
    team_a_id: Optional[int]
    team_b_id: Optional[int]
    team_a_points: int
    team_b_points: int
    is_betting_open: bool

    @property
    def total_points(self) -> int:
        return self.team_a_points + self.team_b_points

    def to_dict(self) -> dict:
        total = self.total_points
        return {
            "match_id": self.match_id,
            "team_a_id": self.team_a_id,
            "team_b_id": self.team_b_id,
            "total_points": total,
            "team_a_points": self.team_a_points,
            "team_b_points": self.team_b_points,
            "team_a_percent": side_percent(total, self.team_a_points),
            "team_b_percent": side_percent(total, self.team_b_points),
            "ratio_a": side_ratio(total, self.team_a_points),
            "ratio_b": side_ratio(total, self.team_b_points),
            "is_betting_open": self.is_betting_open,
        }


def build_odds(match: Match, predictions: Sequence[Prediction], now: datetime) -> MatchOdds:
    """Market view of one match from all of its predictions."""
    return MatchOdds(
        match_id=match.id,
        team_a_id=match.team_a_id,
        team_b_id=match.team_b_id,
        team_a_points=sum(p.bet_amount for p in predictions if p.predicted_team_id == match.team_a_id),
        team_b_points=sum(p.bet_amount for p in predictions if p.predicted_team_id == match.team_b_id),
        is_betting_open=is_betting_open(match, now),
    )


@dataclass
class BettingMatch:
    """One row of the betting board, seen by a single user."""
    match: Match
    odds: MatchOdds
    tournament_name: Optional[str] = None
    sport: Optional[str] = None
    team_a_name: Optional[str] = None
    team_b_name: Optional[str] = None
    user_bet: Optional[Prediction] = None

    @property
    def earned_points(self) -> Optional[int]:
        return self.user_bet.payout if self.user_bet else None

    def to_dict(self) -> dict:
        odds = self.odds.to_dict()
        return {
            "id": self.match.id,
            "tournament_id": self.match.tournament_id,
            "tournament_name": self.tournament_name,
            "sport": self.sport,
            "round_name": self.match.round_name,
            "team_a_id": self.match.team_a_id,
            "team_a_name": self.team_a_name,
            "team_b_id": self.match.team_b_id,
            "team_b_name": self.team_b_name,
            "match_date": self.match.match_date,
            "status": self.match.status,
            "winner_team_id": self.match.winner_team_id,
            "team_a_percent": odds["team_a_percent"],
            "team_b_percent": odds["team_b_percent"],
            "ratio_a": odds["ratio_a"],
            "ratio_b": odds["ratio_b"],
            "user_bet": {
                "predicted_team_id": self.user_bet.predicted_team_id,
                "bet_amount": self.user_bet.bet_amount,
            } if self.user_bet else None,
            "earned_points": self.earned_points,
            "is_betting_open": self.odds.is_betting_open,
        }


class PredictionService:
    """Creates predictions and reports the betting market."""

    def __init__(self, gateway: TournamentGateway, clock: Callable[[], datetime] = datetime.now):
        self.gateway = gateway
        self.clock = clock

    async def _get_match(self, match_id: int) -> Match:
        match = await self.gateway.get_match(match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        return match

    async def create_prediction(
        self,
        user_id: int,
        match_id: int,
        predicted_team_id: int,
        bet_amount: int
    ) -> PredictionReceipt:
        """
        Stake bet_amount points on predicted_team_id winning match_id.

        Raises:
            ValidationError: bad amount or team, betting closed, duplicate
                prediction, insufficient balance
            NotFoundError: unknown match or account
        """
        if bet_amount is None or bet_amount <= 0:
            raise ValidationError(
                "Bet amount must be a positive number of points",
                code=ErrorCode.INVALID_INPUT,
                details={"bet_amount": bet_amount}
            )

        async with self.gateway.transaction():
            match = await self.gateway.get_match(match_id, for_update=True)
            if match is None:
                raise NotFoundError("Match", match_id)
            if match.is_bye:
                raise ValidationError("Both teams must be set before betting", details={"match_id": match_id})
            if not match.has_team(predicted_team_id):
                raise ValidationError(
                    f"Team {predicted_team_id} is not playing in match {match_id}",
                    code=ErrorCode.INVALID_INPUT,
                    details={"predicted_team_id": predicted_team_id}
                )

            now = self.clock()
            if not is_betting_open(match, now):
                raise ValidationError(
                    "Betting is closed for this match",
                    code=ErrorCode.BETTING_CLOSED,
                    details={"match_id": match_id, "status": match.status.value}
                )

            if await self.gateway.find_prediction(user_id, match_id):
                raise ValidationError(
                    "Prediction already placed on this match",
                    code=ErrorCode.DUPLICATE_PREDICTION,
                    details={"match_id": match_id}
                )

            account = await self.gateway.get_account(user_id, for_update=True)
            if account is None:
                raise NotFoundError("Account", user_id)
            if account.points < bet_amount:
                raise ValidationError(
                    "Insufficient points",
                    code=ErrorCode.INSUFFICIENT_POINTS,
                    details={"balance": account.points, "requested": bet_amount}
                )

            balance = await self.gateway.adjust_points(user_id, -bet_amount)
            prediction = await self.gateway.add_prediction(Prediction(
                match_id=match_id,
                user_id=user_id,
                predicted_team_id=predicted_team_id,
                bet_amount=bet_amount,
                created_at=now,
            ))

            logger.info(
                f"User {user_id} staked {bet_amount} on team {predicted_team_id} "
                f"in match {match_id}, balance {balance}"
            )
            return PredictionReceipt(prediction=prediction, balance=balance)

    async def get_match_odds(self, match_id: int) -> MatchOdds:
        match = await self._get_match(match_id)
        predictions = await self.gateway.list_match_predictions(match_id)
        return build_odds(match, predictions, self.clock())

    async def list_user_predictions(self, user_id: int) -> List[Prediction]:
        return await self.gateway.list_user_predictions(user_id)

    async def list_betting_matches(self, user_id: int) -> List[BettingMatch]:
        """
        Betting board: every match with both teams set, earliest first.

        Each row carries the market for that match plus user_id's own
        prediction and payout, if any.
        """
        now = self.clock()
        tournaments: Dict[int, Optional[Tournament]] = {}
        teams: Dict[int, Optional[Team]] = {}

        async def tournament_for(tournament_id: int) -> Optional[Tournament]:
            if tournament_id not in tournaments:
                tournaments[tournament_id] = await self.gateway.get_tournament(tournament_id)
            return tournaments[tournament_id]

        async def team_name(team_id: int) -> Optional[str]:
            if team_id not in teams:
                teams[team_id] = await self.gateway.get_team(team_id)
            return teams[team_id].name if teams[team_id] else None

        board = []
        for match in await self.gateway.list_scheduled_matches():
            predictions = await self.gateway.list_match_predictions(match.id)
            tournament = await tournament_for(match.tournament_id)
            board.append(BettingMatch(
                match=match,
                odds=build_odds(match, predictions, now),
                tournament_name=tournament.name if tournament else None,
                sport=tournament.sport if tournament else None,
                team_a_name=await team_name(match.team_a_id),
                team_b_name=await team_name(match.team_b_id),
                user_bet=next((p for p in predictions if p.user_id == user_id), None),
            ))
        return board
