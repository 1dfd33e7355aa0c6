"""
The Game class is the entrypoint into the domain layer for the service layer.
It owns the lifecycle of one game (INITIALIZED -> IN_PROGRESS -> COMPLETED), the turn order,
and applies validated actions to the board and to the players' in-game state.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Self

from src.core.exceptions import (
    GameNotInProgressError,
    GameStateError,
    InvalidRequestError,
    NoPendingWinRequestError,
    WinRequestPendingError,
)
from src.core.models import GameModel, PlayerStateModel, utc_now
from src.core.shared_types import ACTIVE_STATES, ConnectionStatus, GameMode, GameState
from src.game.actions import MoveAction, Pass, PlaceCard, RequestWin, RespondToWinRequest
from src.game.board import Board
from src.game.cards import Card, Deck, HAND_SIZE
from src.game.position import Position
from src.game.rules import (
    STARTING_POSITIONS,
    has_valid_moves,
    placement_error,
    validate_placement,
    validate_turn,
)
from src.game.scoring import ColumnScore, column_scores, determine_result


@dataclass
class PlayerState:
    """What a participant holds during a game: the hand and the cards already on the board."""

    player_id: str
    hand: list[Card] = field(default_factory=list)
    placed_cards: dict[str, Card] = field(default_factory=dict)  # "x,y" -> card
    score: int = 0
    deck_id: Optional[str] = None

    @classmethod
    def from_model(cls, model: PlayerStateModel) -> Self:
        return cls(
            player_id=model.player_id,
            hand=[Card.from_model(c) for c in model.hand],
            placed_cards={
                key: Card.from_model(c) for key, c in model.placed_cards.items()
            },
            score=model.score,
            deck_id=model.deck_id,
        )

    def to_model(self) -> PlayerStateModel:
        return PlayerStateModel(
            player_id=self.player_id,
            hand=[c.to_model() for c in self.hand],
            placed_cards={key: c.to_model() for key, c in self.placed_cards.items()},
            score=self.score,
            deck_id=self.deck_id,
        )

    def placed_power(self) -> int:
        return sum(card.power for card in self.placed_cards.values())

    def take_from_hand(self, card: Card) -> Card:
        """Remove the hand's own copy of the card (the server's power/name win over the client's)."""
        index = self.hand.index(card)
        return self.hand.pop(index)


@dataclass
class Game:
    # --- DOMAIN LAYER API CALLED BY SERVICE---

    id: str
    state: GameState
    board: Board
    player_ids: list[str]
    current_player_id: str
    players: dict[str, PlayerState]
    scores: dict[str, int]
    created_at: datetime
    updated_at: datetime
    mode: GameMode = GameMode.LOCAL
    match_code: Optional[str] = None
    final_column_scores: Optional[dict[int, dict[str, int]]] = None
    winner_id: Optional[str] = None
    is_tie: bool = False
    has_pending_win_request: bool = False
    pending_win_request_player_id: Optional[str] = None
    player_connections: dict[str, ConnectionStatus] = field(default_factory=dict)

    @classmethod
    def from_model(cls, model: GameModel) -> Self:
        """Define how to construct a Game from the information the Service layer actually has"""
        if model.state not in GameState.__members__:
            raise GameStateError(
                f"Invalid game state: {model.state!r}. \nPick one from {','.join(GameState)}"
            )
        return cls(
            id=model.id,
            state=GameState(model.state),
            board=Board.from_storage(model.board),
            player_ids=list(model.player_ids),
            current_player_id=model.current_player_id,
            players={
                player_id: PlayerState.from_model(player)
                for player_id, player in model.players.items()
            },
            scores=dict(model.scores),
            created_at=model.created_at,
            updated_at=model.updated_at,
            mode=GameMode(model.mode),
            match_code=model.match_code,
            final_column_scores=(
                {int(column): dict(s) for column, s in model.final_column_scores.items()}
                if model.final_column_scores is not None
                else None
            ),
            winner_id=model.winner_id,
            is_tie=model.is_tie,
            has_pending_win_request=model.has_pending_win_request,
            pending_win_request_player_id=model.pending_win_request_player_id,
            player_connections={
                player_id: ConnectionStatus(status)
                for player_id, status in model.player_connections.items()
            },
        )

    def to_model(self) -> GameModel:
        """Encode back into a format the Service layer uses"""
        return GameModel(
            id=self.id,
            state=self.state.value,
            board=self.board.to_storage(),
            player_ids=list(self.player_ids),
            current_player_id=self.current_player_id,
            players={
                player_id: player.to_model() for player_id, player in self.players.items()
            },
            scores=dict(self.scores),
            created_at=self.created_at,
            updated_at=self.updated_at,
            mode=self.mode.value,
            match_code=self.match_code,
            final_column_scores=(
                {column: dict(s) for column, s in self.final_column_scores.items()}
                if self.final_column_scores is not None
                else None
            ),
            winner_id=self.winner_id,
            is_tie=self.is_tie,
            has_pending_win_request=self.has_pending_win_request,
            pending_win_request_player_id=self.pending_win_request_player_id,
            player_connections={
                player_id: status.value
                for player_id, status in self.player_connections.items()
            },
        )

    @classmethod
    def new_game(
        cls,
        game_id: str,
        decks: list[Deck],
        rng: Optional[random.Random] = None,
        mode: GameMode = GameMode.LOCAL,
        match_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Self:
        """
        Set up a game for the owners of the two decks (first deck = first player).
        ----

        1. deal 5 cards from the top of each deck
        2. place one random card of each hand on that player's starting cell
        3. the first player is to move
        """
        if len(decks) != 2:
            raise InvalidRequestError(f"A game needs exactly 2 decks, got {len(decks)}.")
        player_ids = [deck.owner_id for deck in decks]
        if player_ids[0] == player_ids[1]:
            raise InvalidRequestError("A player cannot play against themselves.")
        for deck in decks:
            if not deck.is_playable():
                raise InvalidRequestError(
                    f"Deck {deck.id} must contain exactly 15 cards, has {len(deck.cards)}."
                )

        rng = rng or random.Random()
        created = now or utc_now()
        players = {}
        for deck in decks:
            # deal from a copy: the stored deck itself is never consumed by a game
            game_deck = Deck(deck.id, deck.owner_id, list(deck.cards))
            players[deck.owner_id] = PlayerState(
                player_id=deck.owner_id, hand=game_deck.deal(HAND_SIZE), deck_id=deck.id
            )

        game = cls(
            id=game_id,
            state=GameState.INITIALIZED,
            board=Board(),
            player_ids=player_ids,
            current_player_id=player_ids[0],
            players=players,
            scores={player_id: 0 for player_id in player_ids},
            created_at=created,
            updated_at=created,
            mode=mode,
            match_code=match_code,
        )
        if mode == GameMode.ONLINE:
            game.player_connections = {
                player_id: ConnectionStatus.CONNECTED for player_id in player_ids
            }

        for player_id, start in zip(player_ids, STARTING_POSITIONS):
            hand = game.players[player_id].hand
            opening_card = hand[rng.randrange(len(hand))]
            error = placement_error(game, player_id, opening_card, start)
            if error:
                raise error
            game._place(player_id, opening_card, start)

        game._change_state(GameState.IN_PROGRESS)
        return game

    # --- QUERIES ---
    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def opponent_of(self, player_id: str) -> str:
        return next(pid for pid in self.player_ids if pid != player_id)

    def card_ownership(self) -> dict[str, str]:
        """'x,y' -> id of the player who placed the card there"""
        return {
            key: player_id
            for player_id, player in self.players.items()
            for key in player.placed_cards
        }

    def column_scores(self) -> dict[int, ColumnScore]:
        return column_scores(self.player_ids, self._placements(), self.board.width)

    def last_activity(self) -> datetime:
        return self.updated_at or self.created_at

    # --- ACTIONS ---
    def apply(self, action: MoveAction, now: Optional[datetime] = None) -> None:
        """
        Validate and execute a single action.
        -----

        Raises an InvalidMoveError (and leaves the game untouched) if the action is not allowed.
        """
        if self.state != GameState.IN_PROGRESS:
            raise GameNotInProgressError(f"Game is not in progress. state: {self.state}")

        match action:
            case PlaceCard(player_id=player_id, card=card, position=position):
                validate_turn(self, player_id)
                self._assert_no_pending_win_request()
                validate_placement(self, player_id, card, position)
                self._place(player_id, card, position)
                self._end_move(player_id)

            case Pass(player_id=player_id):
                validate_turn(self, player_id)
                self._assert_no_pending_win_request()
                self._end_move(player_id)

            case RequestWin(player_id=player_id):
                validate_turn(self, player_id)
                self._assert_no_pending_win_request()
                self.has_pending_win_request = True
                self.pending_win_request_player_id = player_id
                self.current_player_id = self.opponent_of(player_id)

            case RespondToWinRequest(player_id=player_id, accepted=accepted):
                if not self.has_pending_win_request:
                    raise NoPendingWinRequestError()
                validate_turn(self, player_id)
                requester = self.pending_win_request_player_id
                self._clear_win_request()
                if accepted:
                    self._finalize()
                elif requester is not None:
                    self.current_player_id = requester

        self.updated_at = now or utc_now()

    def abandon(self, now: Optional[datetime] = None) -> bool:
        """
        Force the game to end because nobody acted for too long.
        The player who was waiting for their opponent (i.e. not the current player) wins.
        Returns False if the game had already ended.
        """
        if not self.is_active:
            return False

        if self.state == GameState.IN_PROGRESS and self.current_player_id in self.player_ids:
            self.winner_id = self.opponent_of(self.current_player_id)
        else:
            self.winner_id = None
        self.is_tie = self.winner_id is None
        self.final_column_scores = {
            column: dict(score.player_scores)
            for column, score in self.column_scores().items()
        }
        self._clear_win_request()
        self._change_state(GameState.COMPLETED)
        self.updated_at = now or utc_now()
        return True

    def set_connection(self, player_id: str, status: ConnectionStatus) -> Optional[ConnectionStatus]:
        """Record a player's connection status; returns the previous one."""
        if player_id not in self.player_ids:
            raise InvalidRequestError(f"Player {player_id} is not part of game {self.id}.")
        previous = self.player_connections.get(player_id)
        self.player_connections[player_id] = status
        return previous

    # -- PRIVATE HELPERS ---
    def _place(self, player_id: str, card: Card, position: Position) -> None:
        player = self.players[player_id]
        placed = player.take_from_hand(card)
        self.board.place_card(position, placed.id)
        player.placed_cards[position.to_storage()] = placed
        player.score = player.placed_power()
        self.scores[player_id] = player.score

    def _end_move(self, mover_id: str) -> None:
        """After a placement or a pass: either the game is over, or somebody gets the turn."""
        if self.board.is_full() or not self._anyone_can_move():
            self._finalize()
        else:
            self._advance_turn(mover_id)

    def _advance_turn(self, mover_id: str) -> None:
        """
        Hand the turn to the opponent, unless the opponent cannot do anything while the mover still can.
        Then the mover continues (consecutive turns) instead of stalling the game.
        """
        next_player_id = self.opponent_of(mover_id)
        self.current_player_id = next_player_id
        if not has_valid_moves(self, next_player_id) and has_valid_moves(self, mover_id):
            self.current_player_id = mover_id

    def _anyone_can_move(self) -> bool:
        return any(has_valid_moves(self, player_id) for player_id in self.player_ids)

    def _finalize(self) -> None:
        """Score the columns and settle the winner."""
        result = determine_result(self.player_ids, self._placements(), self.board.width)
        self.final_column_scores = result.breakdown()
        self.winner_id = result.winner_id
        self.is_tie = result.is_tie
        self.scores = dict(result.columns_won)
        for player_id, columns_won in result.columns_won.items():
            self.players[player_id].score = columns_won
        self._change_state(GameState.COMPLETED)

    def _placements(self) -> dict[str, dict[str, Card]]:
        return {
            player_id: player.placed_cards for player_id, player in self.players.items()
        }

    def _assert_no_pending_win_request(self) -> None:
        if self.has_pending_win_request:
            raise WinRequestPendingError()

    def _clear_win_request(self) -> None:
        self.has_pending_win_request = False
        self.pending_win_request_player_id = None

    def _change_state(self, new_state: GameState) -> None:
        allowed = {
            GameState.INITIALIZED: {GameState.IN_PROGRESS, GameState.COMPLETED},
            GameState.IN_PROGRESS: {GameState.COMPLETED},
            GameState.COMPLETED: set(),
        }
        if new_state not in allowed[self.state]:
            raise GameStateError(f"Cannot move game from {self.state} to {new_state}.")
        self.state = new_state
