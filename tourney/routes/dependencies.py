"""
tourney/routes/dependencies.py
FastAPI dependencies that build the engine services for a request.

Tests override get_gateway to run the API against InMemoryGateway.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tourney.config.feature_flags import feature_flags
from tourney.database import get_db
from tourney.errors import ErrorCode, PermissionDeniedError
from tourney.repositories import SqlAlchemyGateway, TournamentGateway
from tourney.services.prediction_service import PredictionService
from tourney.services.progression_service import ProgressionService
from tourney.services.tournament_service import TournamentService


async def get_gateway(db: AsyncSession = Depends(get_db)) -> TournamentGateway:
    return SqlAlchemyGateway(db)


async def get_tournament_service(gateway: TournamentGateway = Depends(get_gateway)) -> TournamentService:
    return TournamentService(gateway)


async def get_progression_service(gateway: TournamentGateway = Depends(get_gateway)) -> ProgressionService:
    return ProgressionService(gateway)


async def get_prediction_service(gateway: TournamentGateway = Depends(get_gateway)) -> PredictionService:
    return PredictionService(gateway)


def require_feature(flag_name: str):
    """Dependency factory: 403 unless the named feature flag is on."""
    async def check() -> None:
        if not feature_flags.is_enabled(flag_name):
            raise PermissionDeniedError(
                f"{flag_name} is disabled",
                code=ErrorCode.FEATURE_DISABLED,
                details={"flag": flag_name}
            )
    return check
