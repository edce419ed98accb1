"""
Settlement Engine

Pari-mutuel payout of pending predictions when a match gets a winner.

Rules:
- Runs inside the caller's transaction, together with the match update
- payout = floor(bet * total_pot / winning_pot), computed in integers
- Losing stakes were debited at prediction time; losers get payout 0
- Nobody on the winning side (winning_pot == 0): every prediction is lost
  and no points are paid out; the pot is not refunded
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from tourney.domain import Match, Prediction, PredictionStatus
from tourney.repositories.base import TournamentGateway

logger = logging.getLogger(__name__)


@dataclass
class SettlementReport:
    match_id: int
    winner_team_id: int
    total_pot: int = 0
    winning_pot: int = 0
    multiplier: Decimal = Decimal("1")
    winners: int = 0
    losers: int = 0
    paid_out: int = 0

    @property
    def house_retained(self) -> int:
        return self.total_pot - self.paid_out


def payout_for(bet_amount: int, total_pot: int, winning_pot: int) -> int:
    """floor(bet_amount * multiplier) without float rounding."""
    if winning_pot <= 0:
        return 0
    return (bet_amount * total_pot) // winning_pot


def compute_multiplier(total_pot: int, winning_pot: int) -> Decimal:
    if winning_pot <= 0:
        return Decimal("1")
    return Decimal(total_pot) / Decimal(winning_pot)


async def settle_match(gateway: TournamentGateway, match: Match) -> SettlementReport:
    """
    Settle every pending prediction on a finished match.

    Args:
        gateway: Gateway inside an open transaction
        match: Match already marked DONE with a winner

    Returns:
        SettlementReport with pot totals and payouts
    """
    winner = match.winner_team_id
    report = SettlementReport(match_id=match.id, winner_team_id=winner)

    predictions: List[Prediction] = await gateway.list_match_predictions(
        match.id, status=PredictionStatus.PENDING
    )
    if not predictions:
        return report

    report.total_pot = sum(p.bet_amount for p in predictions)
    report.winning_pot = sum(p.bet_amount for p in predictions if p.predicted_team_id == winner)
    report.multiplier = compute_multiplier(report.total_pot, report.winning_pot)

    if report.winning_pot == 0:
        logger.warning(
            f"Match {match.id}: no prediction on winner {winner}, "
            f"pot of {report.total_pot} points is not paid out"
        )

    for prediction in predictions:
        if prediction.predicted_team_id == winner:
            payout = payout_for(prediction.bet_amount, report.total_pot, report.winning_pot)
            prediction.status = PredictionStatus.WON
            prediction.payout = payout
            await gateway.save_prediction(prediction)
            await gateway.adjust_points(prediction.user_id, payout)
            report.winners += 1
            report.paid_out += payout
        else:
            prediction.status = PredictionStatus.LOST
            prediction.payout = 0
            await gateway.save_prediction(prediction)
            report.losers += 1

    logger.info(
        f"Settled match {match.id}: pot={report.total_pot} winning_pot={report.winning_pot} "
        f"multiplier={report.multiplier:.4f} winners={report.winners} losers={report.losers} "
        f"paid={report.paid_out}"
    )
    return report
