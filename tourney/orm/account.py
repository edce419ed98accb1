"""
tourney/orm/account.py
User accounts (points ledger) and team roster rows.

Both tables belong to neighbouring modules (user accounts, team management);
the engine only reads them and moves points.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index

from tourney.orm.base import Base


class UserRow(Base):
    """User account with a non-negative points balance."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
    )


class TeamRow(Base):
    """Team roster entry."""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    sport_type = Column(String(30), nullable=False, index=True)
    leader_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        Index("idx_teams_leader", "leader_id"),
    )
