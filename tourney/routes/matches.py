"""
tourney/routes/matches.py
Result reporting and the betting market view of a match.
"""
import logging

from fastapi import APIRouter, Depends

from tourney.rbac import get_current_user_id
from tourney.routes.dependencies import (
    get_prediction_service, get_progression_service, require_feature,
)
from tourney.schemas.match import ResultCreate, ResultReportResponse
from tourney.schemas.prediction import MatchOddsResponse
from tourney.services.prediction_service import PredictionService
from tourney.services.progression_service import ProgressionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/matches", tags=["Matches"])


@router.post("/{match_id}/result")
async def report_result(
    match_id: int,
    data: ResultCreate,
    user_id: int = Depends(get_current_user_id),
    service: ProgressionService = Depends(get_progression_service)
):
    """
    Record a result.
    - Manager of the match's tournament only
    - Settles predictions and advances the bracket in the same transaction
    """
    report = await service.report_result(
        match_id, data.team_a_score, data.team_b_score, data.winner_team_id, user_id
    )
    return {"success": True, "data": ResultReportResponse.model_validate(report)}


@router.get(
    "/{match_id}/odds",
    dependencies=[Depends(require_feature("FEATURE_BETTING_MARKET"))]
)
async def get_match_odds(
    match_id: int,
    service: PredictionService = Depends(get_prediction_service)
):
    odds = await service.get_match_odds(match_id)
    return {"success": True, "data": MatchOddsResponse(**odds.to_dict())}
