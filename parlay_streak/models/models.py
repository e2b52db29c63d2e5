"""
Database models for bets, selections, parlays and the streak ledger.

Ownership of writes:
- Game rows come from the ingestion pipeline (external); this service only
  refreshes status/start_time.
- Bet rows are created by admin tooling; after creation only the bet
  lifecycle touches ``outcome`` and the resolution fields.
- StreakEvent rows are append-only.
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Boolean, Text,
    Index, UniqueConstraint, JSON,
)
from sqlalchemy.orm import relationship, declarative_base

from parlay_streak.models.constants import (
    BetOutcome, GameStatus, ParlayStatus, SelectionStatus,
)

Base = declarative_base()


class User(Base):
    """Streak owner. Authentication data lives elsewhere."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    username = Column(String(100), nullable=False, unique=True)

    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    # Compare-and-swap token: bumped on every streak mutation
    streak_version = Column(Integer, nullable=False, default=0)

    # Only one insured open parlay at a time
    insurance_locked = Column(Boolean, nullable=False, default=False)
    last_insured_parlay_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class Game(Base):
    """A scheduled sporting event bets are written against."""
    __tablename__ = "games"

    id = Column(String(36), primary_key=True)
    external_id = Column(String(100), nullable=False, unique=True, index=True)  # ESPN event id
    sport = Column(String(30), nullable=False, default="basketball")
    league = Column(String(30), nullable=False, default="nba")

    home_team_name = Column(String(100), nullable=False)
    away_team_name = Column(String(100), nullable=False)
    # Normalised at ingestion time, never re-parsed from raw provider payloads
    home_team_external_id = Column(String(50), nullable=True)
    away_team_external_id = Column(String(50), nullable=True)

    start_time = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=GameStatus.SCHEDULED, index=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    bets = relationship("Bet", back_populates="game", cascade="all, delete-orphan")


class Bet(Base):
    """A declarative wager definition on one game."""
    __tablename__ = "bets"

    id = Column(String(36), primary_key=True)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)

    bet_type = Column(String(20), nullable=False)
    config = Column(JSON, nullable=False)
    priority = Column(Integer, nullable=False)

    outcome = Column(String(10), nullable=False, default=BetOutcome.PENDING, index=True)
    display_text = Column(String(255), nullable=False)
    display_text_override = Column(String(255), nullable=True)

    # Raw values the outcome was computed from, kept for audit
    resolution_snapshot = Column(JSON, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    last_fetched_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    game = relationship("Game", back_populates="bets")
    selections = relationship("BetSelection", back_populates="bet", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("game_id", "priority", name="uq_bets_game_priority"),
        Index("ix_bets_game_outcome", "game_id", "outcome"),
    )

    @property
    def label(self) -> str:
        return self.display_text_override or self.display_text


class BetSelection(Base):
    """A user's pick of one side of a bet, alone or as a parlay leg."""
    __tablename__ = "bet_selections"

    id = Column(String(36), primary_key=True)
    bet_id = Column(String(36), ForeignKey("bets.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    parlay_id = Column(String(36), ForeignKey("parlays.id", ondelete="SET NULL"), nullable=True, index=True)

    selected_side = Column(String(20), nullable=False)
    status = Column(String(10), nullable=False, default=SelectionStatus.SELECTED)
    outcome = Column(String(10), nullable=False, default=BetOutcome.PENDING)
    # Set once a single (non-parlay) selection has been applied to the streak
    settled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    bet = relationship("Bet", back_populates="selections")
    parlay = relationship("Parlay", back_populates="selections")

    __table_args__ = (
        UniqueConstraint("user_id", "bet_id", name="uq_bet_selections_user_bet"),
    )


class Parlay(Base):
    """A bundle of selections settled together."""
    __tablename__ = "parlays"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    bet_count = Column(Integer, nullable=False, default=0)
    parlay_value = Column(Integer, nullable=False, default=0)
    insured = Column(Boolean, nullable=False, default=False)
    insurance_cost = Column(Integer, nullable=False, default=0)

    status = Column(String(10), nullable=False, default=ParlayStatus.BUILDING, index=True)
    locked_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    selections = relationship(
        "BetSelection",
        back_populates="parlay",
        order_by="BetSelection.created_at",
    )

    __table_args__ = (
        Index("ix_parlays_user_status", "user_id", "status"),
    )


class StreakEvent(Base):
    """One immutable entry in a user's streak ledger."""
    __tablename__ = "streak_events"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Equals the user's streak_version after this event was applied
    sequence = Column(Integer, nullable=False)

    type = Column(String(30), nullable=False)
    points_change = Column(Integer, nullable=False)
    resulting_streak = Column(Integer, nullable=False)

    parlay_id = Column(String(36), ForeignKey("parlays.id", ondelete="SET NULL"), nullable=True)
    bet_selection_id = Column(String(36), ForeignKey("bet_selections.id", ondelete="SET NULL"), nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, index=True)

    parlay = relationship("Parlay")
    bet_selection = relationship("BetSelection")

    __table_args__ = (
        UniqueConstraint("user_id", "sequence", name="uq_streak_events_user_sequence"),
    )
