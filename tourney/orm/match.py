"""
tourney/orm/match.py
Match rows for both league and elimination stages.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum, Index

from tourney.orm.base import Base
from tourney.domain import MatchStage, MatchStatus


class MatchRow(Base):
    """
    One fixture. team_a_id / team_b_id are nullable: a missing side is a bye
    slot and the row is created already DONE.

    Round order inside a stage is the insertion order (id ascending).
    """
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    stage = Column(SQLEnum(MatchStage), nullable=False)
    round_name = Column(String(50), nullable=False)

    team_a_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    team_b_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    team_a_score = Column(Integer, nullable=True)
    team_b_score = Column(Integer, nullable=True)
    winner_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)

    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.UPCOMING)
    match_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    __table_args__ = (
        Index("idx_matches_round", "tournament_id", "stage", "round_name"),
    )
