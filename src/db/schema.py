"""Database tables / schema"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.core.models import utc_now


class Base(DeclarativeBase):
    pass


class DBGame(Base):
    __tablename__ = "games"
    id: Mapped[str] = mapped_column(primary_key=True)
    state: Mapped[str] = mapped_column(index=True)
    mode: Mapped[str]
    match_code: Mapped[Optional[str]]
    board: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    player_ids: Mapped[list[str]] = mapped_column(JSON)
    current_player_id: Mapped[str]
    # player id -> serialized in-game state (hand, placed cards, score, deck id)
    players: Mapped[dict[str, Any]] = mapped_column(JSON)
    scores: Mapped[dict[str, int]] = mapped_column(JSON, default=dict)
    # JSON object keys are strings: column index is stored as "0", "1", "2"
    final_column_scores: Mapped[Optional[dict[str, dict[str, int]]]] = mapped_column(JSON)
    winner_id: Mapped[Optional[str]]
    is_tie: Mapped[bool] = mapped_column(default=False)
    has_pending_win_request: Mapped[bool] = mapped_column(default=False)
    pending_win_request_player_id: Mapped[Optional[str]]
    player_connections: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )


class DBPlayer(Base):
    __tablename__ = "players"
    id: Mapped[str] = mapped_column(primary_key=True)
    name: Mapped[str]
    current_deck_id: Mapped[Optional[str]]
    original_deck_id: Mapped[Optional[str]]
    lifetime_score: Mapped[int] = mapped_column(default=0)


class DBDeck(Base):
    __tablename__ = "decks"
    id: Mapped[str] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(index=True)
    cards: Mapped[list[dict[str, Any]]] = mapped_column(JSON)
