"""
tourney/orm/tournament.py
Tournament and participation (TournamentTeam) rows.
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum,
    UniqueConstraint, CheckConstraint, Index
)

from tourney.orm.base import Base
from tourney.domain import TournamentFormat, TournamentStatus, ParticipationStatus


class TournamentRow(Base):
    """
    Tournament configuration and lifecycle status.

    playoff_teams is only set for HYBRID; group_count only for LEAGUE/HYBRID.
    """
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    sport = Column(String(30), nullable=False, index=True)
    description = Column(Text, nullable=True)

    format = Column(SQLEnum(TournamentFormat), nullable=False, default=TournamentFormat.TOURNAMENT)
    status = Column(SQLEnum(TournamentStatus), nullable=False, default=TournamentStatus.RECRUITING, index=True)

    group_count = Column(Integer, nullable=True)
    playoff_teams = Column(Integer, nullable=True)
    target_team_count = Column(Integer, nullable=True)

    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    manager_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    champion_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    bracket_generation = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "playoff_teams IS NULL OR format = 'HYBRID'",
            name="ck_playoff_teams_hybrid_only"
        ),
        CheckConstraint(
            "group_count IS NULL OR format IN ('LEAGUE', 'HYBRID')",
            name="ck_group_count_league_only"
        ),
    )


class TournamentTeamRow(Base):
    """Join request / participation of a team in a tournament."""
    __tablename__ = "tournament_teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    status = Column(SQLEnum(ParticipationStatus), nullable=False, default=ParticipationStatus.PENDING)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "team_id", name="uq_tournament_team"),
        Index("idx_tournament_teams_status", "tournament_id", "status"),
    )
