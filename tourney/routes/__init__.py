"""
tourney/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from tourney.routes import matches, predictions, tournaments

router = APIRouter()

router.include_router(tournaments.router)
router.include_router(matches.router)
router.include_router(predictions.router)
