"""
Boundary layer data model(s).

These objects can be used to communicate with the Service.
Hence, the API layer (higher) and the domain/db layers (lower) use the models defined here to send to/receive from the Service.
Only plain data lives here (str keys, lists, dicts, datetimes) so that every layer can store or serialize it without knowing the domain classes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

# Type aliases to make the models easier to read
PlayerId = str
CardId = str
PositionKey = str  # canonical "x,y" form of a board position


@dataclass
class CardModel:
    id: CardId
    power: int
    name: str
    image_url: Optional[str] = None


@dataclass
class PlayerStateModel:
    """In-game state of a single participant."""

    player_id: PlayerId
    hand: list[CardModel]
    placed_cards: dict[PositionKey, CardModel]
    score: int = 0
    deck_id: Optional[str] = None


@dataclass
class GameModel:
    """Transport-safe representation of a game used between API, Service, DB, and Game layers."""

    id: str
    state: str
    board: dict[PositionKey, CardId]
    player_ids: list[PlayerId]
    current_player_id: PlayerId
    players: dict[PlayerId, PlayerStateModel]
    scores: dict[PlayerId, int]
    created_at: datetime
    updated_at: datetime
    mode: str = "LOCAL"
    match_code: Optional[str] = None
    final_column_scores: Optional[dict[int, dict[PlayerId, int]]] = None
    winner_id: Optional[PlayerId] = None
    is_tie: bool = False
    has_pending_win_request: bool = False
    pending_win_request_player_id: Optional[PlayerId] = None
    player_connections: dict[PlayerId, str] = field(default_factory=dict)


@dataclass
class DeckModel:
    id: str
    owner_id: PlayerId
    cards: list[CardModel]


@dataclass
class PlayerProfile:
    """Account-level player record as provided by the persistence collaborator."""

    id: PlayerId
    name: str
    current_deck_id: Optional[str] = None
    original_deck_id: Optional[str] = None
    lifetime_score: int = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
