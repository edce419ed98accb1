from .base import TournamentGateway
from .memory import InMemoryGateway
from .sqlalchemy_gateway import SqlAlchemyGateway

__all__ = ["TournamentGateway", "InMemoryGateway", "SqlAlchemyGateway"]
