"""Requests and Response models"""

from datetime import datetime
from typing import Optional, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from src.core.exceptions import InvalidRequestError
from src.core.shared_types import ActionType, GameState, MatchStatus
from src.game.cards import Card
from src.game.game import Game

PlayerId = str
PositionKey = str


class CamelModel(BaseModel):
    """The frontend speaks camelCase; python code keeps snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- REQUEST MODELS ---
class CreateGameRequest(CamelModel):
    player1_id: PlayerId
    player2_id: PlayerId
    deck1_id: str
    deck2_id: str

    @field_validator("player2_id")
    @classmethod
    def validate_distinct_players(cls, value: str, info: ValidationInfo) -> str:
        if value == info.data.get("player1_id"):
            raise InvalidRequestError("A player cannot play against themselves.")
        return value


class PositionPayload(BaseModel):
    x: int
    y: int


class CardPayload(CamelModel):
    id: str
    power: int = Field(default=0, ge=0)
    name: str = ""
    image_url: Optional[str] = None


class ActionRequest(CamelModel):
    """A move submitted over REST. Same fields as the `action` of a GAME_ACTION message."""

    player_id: PlayerId
    type: ActionType
    card: Optional[CardPayload] = None
    target_position: Optional[PositionPayload] = None
    accepted: Optional[bool] = None

    def to_payload(self) -> dict:
        return self.model_dump(
            mode="json", by_alias=True, exclude_none=True, exclude={"player_id"}
        )


class CreateMatchRequest(CamelModel):
    player_id: PlayerId


class JoinMatchRequest(CamelModel):
    player_id: PlayerId


# --- RESPONSE MODELS ---
class CardView(CamelModel):
    id: str
    power: int
    name: str
    image_url: Optional[str] = None

    @classmethod
    def from_card(cls, card: Card) -> Self:
        return cls(id=card.id, power=card.power, name=card.name, image_url=card.image_url)


class BoardView(CamelModel):
    width: int
    height: int
    pieces: dict[PositionKey, str]


class ColumnScoreView(CamelModel):
    player_scores: dict[PlayerId, int]
    winner_id: Optional[PlayerId] = None
    is_tie: bool


class GameView(CamelModel):
    """
    What one player is allowed to see of a game.
    ----

    Only the requesting player's hand is included, never the opponent's.
    Without a known viewer the hand is empty.
    """

    id: str
    state: GameState
    mode: str
    match_code: Optional[str] = None
    board: BoardView
    player_ids: list[PlayerId]
    current_player_id: PlayerId
    viewer_id: Optional[PlayerId] = None
    hand: list[CardView]
    card_ownership: dict[PositionKey, PlayerId]
    placed_cards: dict[str, CardView]
    column_scores: dict[int, ColumnScoreView]
    scores: dict[PlayerId, int]
    final_column_scores: Optional[dict[int, dict[PlayerId, int]]] = None
    winner_id: Optional[PlayerId] = None
    is_tie: bool = False
    has_pending_win_request: bool = False
    pending_win_request_player_id: Optional[PlayerId] = None
    player_connections: dict[PlayerId, str] = {}
    created_at: datetime
    updated_at: datetime

    @classmethod
    def for_player(cls, game: Game, player_id: Optional[str] = None) -> Self:
        """Project the game for `player_id`. Nobody's hand is shown when the viewer is unknown."""
        viewer_state = game.players.get(player_id) if player_id else None
        hand = viewer_state.hand if viewer_state else []
        completed = game.state == GameState.COMPLETED
        return cls(
            id=game.id,
            state=game.state,
            mode=game.mode.value,
            match_code=game.match_code,
            board=BoardView(
                width=game.board.width,
                height=game.board.height,
                pieces=game.board.to_storage(),
            ),
            player_ids=game.player_ids,
            current_player_id=game.current_player_id,
            viewer_id=player_id,
            hand=[CardView.from_card(card) for card in hand],
            card_ownership=game.card_ownership(),
            placed_cards={
                card.id: CardView.from_card(card)
                for player in game.players.values()
                for card in player.placed_cards.values()
            },
            column_scores={
                column: ColumnScoreView(
                    player_scores=score.player_scores,
                    winner_id=score.winner_id,
                    is_tie=score.is_tie,
                )
                for column, score in game.column_scores().items()
            },
            scores=game.scores,
            final_column_scores=game.final_column_scores,
            winner_id=game.winner_id if completed else None,
            is_tie=game.is_tie if completed else False,
            has_pending_win_request=game.has_pending_win_request,
            pending_win_request_player_id=game.pending_win_request_player_id,
            player_connections={
                pid: status.value for pid, status in game.player_connections.items()
            },
            created_at=game.created_at,
            updated_at=game.updated_at,
        )


class MatchResponse(CamelModel):
    match_id: str
    status: MatchStatus
    creator_id: PlayerId
    game_id: Optional[str] = None
    created_at: datetime
    game: Optional[GameView] = None


class ClearMatchesResponse(CamelModel):
    player_id: PlayerId
    cleared: bool = True
