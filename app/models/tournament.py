from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base


class TournamentStatus(str, Enum):
    DRAFT = "draft"
    REGISTRATION = "registration"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BracketType(str, Enum):
    SINGLE_ELIMINATION = "single-elimination"
    DOUBLE_ELIMINATION = "double-elimination"
    ROUND_ROBIN = "round-robin"


class RoundStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class MatchupStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


DEFAULT_QUADRANT_NAMES = ["Region A", "Region B", "Region C", "Region D"]


class Tournament(Base):
    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=TournamentStatus.DRAFT.value, index=True)
    bracket_type: Mapped[str] = mapped_column(String(30), default=BracketType.SINGLE_ELIMINATION.value)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    max_contestants: Mapped[int] = mapped_column(Integer, nullable=False)
    quadrant_names: Mapped[list[str]] = mapped_column(JSON, default=lambda: list(DEFAULT_QUADRANT_NAMES))
    voting_duration_hours: Mapped[int] = mapped_column(Integer, default=24)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    allow_ties: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contestants: Mapped[list["Contestant"]] = relationship(
        "Contestant",
        back_populates="tournament",
        cascade="all, delete-orphan",
    )
    rounds: Mapped[list["Round"]] = relationship("Round", back_populates="tournament", cascade="all, delete-orphan")


class Contestant(Base):
    __tablename__ = "contestants"
    __table_args__ = (
        UniqueConstraint("tournament_id", "name", name="uq_contestant_tournament_name"),
        UniqueConstraint("tournament_id", "position", name="uq_contestant_tournament_position"),
        UniqueConstraint("tournament_id", "seed", name="uq_contestant_tournament_seed"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    seed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quadrant: Mapped[int | None] = mapped_column(Integer, nullable=True)
    eliminated_round: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    votes_received: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    losses: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    tournament: Mapped[Tournament] = relationship("Tournament", back_populates="contestants")


class Round(Base):
    __tablename__ = "rounds"
    __table_args__ = (UniqueConstraint("tournament_id", "round_number", name="uq_round_tournament_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), index=True)
    round_number: Mapped[int] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default=RoundStatus.UPCOMING.value, index=True)
    total_matchups: Mapped[int] = mapped_column(Integer, default=0)
    completed_matchups: Mapped[int] = mapped_column(Integer, default=0)
    start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    tournament: Mapped[Tournament] = relationship("Tournament", back_populates="rounds")
    matchups: Mapped[list["Matchup"]] = relationship("Matchup", back_populates="round", cascade="all, delete-orphan")


class Matchup(Base):
    __tablename__ = "matchups"
    __table_args__ = (UniqueConstraint("round_id", "position", name="uq_matchup_round_position"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    round_id: Mapped[int] = mapped_column(ForeignKey("rounds.id", ondelete="CASCADE"), index=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer)
    contestant1_id: Mapped[int | None] = mapped_column(ForeignKey("contestants.id", ondelete="SET NULL"), nullable=True)
    contestant2_id: Mapped[int | None] = mapped_column(ForeignKey("contestants.id", ondelete="SET NULL"), nullable=True)
    winner_id: Mapped[int | None] = mapped_column(ForeignKey("contestants.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=MatchupStatus.UPCOMING.value, index=True)
    contestant1_votes: Mapped[int] = mapped_column(Integer, default=0)
    contestant2_votes: Mapped[int] = mapped_column(Integer, default=0)
    total_votes: Mapped[int] = mapped_column(Integer, default=0)
    is_tie: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str] = mapped_column(String(255), default="")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    round: Mapped[Round] = relationship("Round", back_populates="matchups")
