"""
tourney/routes/predictions.py
Point predictions on upcoming matches.
"""
import logging

from fastapi import APIRouter, Depends, status

from tourney.rbac import get_current_user_id
from tourney.routes.dependencies import get_prediction_service, require_feature
from tourney.schemas.prediction import (
    BettingMatchResponse, PredictionCreate, PredictionReceiptResponse, PredictionResponse,
)
from tourney.services.prediction_service import PredictionService

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/predictions",
    tags=["Predictions"],
    dependencies=[Depends(require_feature("FEATURE_BETTING_MARKET"))]
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_prediction(
    data: PredictionCreate,
    user_id: int = Depends(get_current_user_id),
    service: PredictionService = Depends(get_prediction_service)
):
    """Stake points on a team; the stake is debited immediately."""
    receipt = await service.create_prediction(
        user_id, data.match_id, data.predicted_team_id, data.bet_amount
    )
    return {"success": True, "data": PredictionReceiptResponse.model_validate(receipt)}


@router.get("/me")
async def list_my_predictions(
    user_id: int = Depends(get_current_user_id),
    service: PredictionService = Depends(get_prediction_service)
):
    predictions = await service.list_user_predictions(user_id)
    return {"success": True, "data": [PredictionResponse.model_validate(p) for p in predictions]}


@router.get("/matches")
async def list_betting_matches(
    user_id: int = Depends(get_current_user_id),
    service: PredictionService = Depends(get_prediction_service)
):
    """Every match with both teams, earliest first, with odds and the caller's own bet."""
    board = await service.list_betting_matches(user_id)
    return {"success": True, "data": [BettingMatchResponse(**row.to_dict()) for row in board]}
