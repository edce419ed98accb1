"""
tourney/orm/prediction.py
Point bets placed on match outcomes.
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, DateTime, ForeignKey, Enum as SQLEnum,
    UniqueConstraint, CheckConstraint, Index
)

from tourney.orm.base import Base
from tourney.domain import PredictionStatus


class PredictionRow(Base):
    """At most one prediction per (user_id, match_id)."""
    __tablename__ = "predictions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    predicted_team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    bet_amount = Column(Integer, nullable=False)
    status = Column(
        SQLEnum(PredictionStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PredictionStatus.PENDING
    )
    payout = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "match_id", name="uq_prediction_user_match"),
        CheckConstraint("bet_amount > 0", name="ck_prediction_bet_positive"),
        Index("idx_predictions_match_status", "match_id", "status"),
    )
