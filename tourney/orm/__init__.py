from .base import Base

from .account import UserRow, TeamRow
from .tournament import TournamentRow, TournamentTeamRow
from .match import MatchRow
from .prediction import PredictionRow

__all__ = [
    "Base",
    "UserRow",
    "TeamRow",
    "TournamentRow",
    "TournamentTeamRow",
    "MatchRow",
    "PredictionRow",
]
