"""
Move legality.

Every check is done before anything is mutated, so a rejected move never changes the game.
`placement_error` reports a problem as a value (used when searching for legal moves),
`validate_turn` / `validate_placement` raise it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from src.core.exceptions import (
    CardNotInHandError,
    GameNotInProgressError,
    InvalidMoveError,
    InvalidOrOccupiedPositionError,
    InvalidStartingPositionError,
    MustBeAdjacentToOwnCardError,
    NotYourTurnError,
)
from src.core.shared_types import GameState
from src.game.cards import Card
from src.game.position import Position

if TYPE_CHECKING:
    from src.game.game import Game, PlayerState

# Fixed opening cell per participant (index in Game.player_ids)
STARTING_POSITIONS: tuple[Position, Position] = (Position(2, 4), Position(2, 0))


def starting_position(game: Game, player_id: str) -> Position:
    return STARTING_POSITIONS[game.player_ids.index(player_id)]


def turn_error(game: Game, player_id: str) -> InvalidMoveError | None:
    if game.state != GameState.IN_PROGRESS:
        return GameNotInProgressError(
            f"Game is not in progress. state: {game.state}"
        )
    if player_id != game.current_player_id:
        return NotYourTurnError(
            f"It is not your turn. Waiting for player {game.current_player_id} to make a move first."
        )
    return None


def placement_error(
    game: Game, player_id: str, card: Card, position: Position
) -> InvalidMoveError | None:
    """
    Why this card cannot go on this cell (None if it can)
    ----

    1. the cell must be on the board and still empty
    2. the card must be in the player's hand
    3. the first card of a player goes on their starting cell,
       every later card must touch (orthogonally) a card that player placed before.
    """
    if not game.board.is_position_valid(position):
        return InvalidOrOccupiedPositionError(
            f"Invalid or occupied position: {position.to_storage()}"
        )

    player = game.players[player_id]
    if card not in player.hand:
        return CardNotInHandError(f"Card not in player's hand: {card.id}")

    if not player.placed_cards:
        if position != starting_position(game, player_id):
            return InvalidStartingPositionError(
                f"First card must be placed on {starting_position(game, player_id).to_storage()}"
            )
        return None

    if not _touches_own_card(game, player, position):
        return MustBeAdjacentToOwnCardError()
    return None


def validate_turn(game: Game, player_id: str) -> None:
    error = turn_error(game, player_id)
    if error:
        raise error


def validate_placement(game: Game, player_id: str, card: Card, position: Position) -> None:
    """Full check of a PlaceCard action: turn first, then the placement itself."""
    validate_turn(game, player_id)
    error = placement_error(game, player_id, card, position)
    if error:
        raise error


def legal_placements(game: Game, player_id: str) -> Iterator[tuple[Card, Position]]:
    """Every (card, cell) combination the player could play right now (turn order not considered)."""
    player = game.players[player_id]
    for position in game.board.empty_positions():
        for card in player.hand:
            if placement_error(game, player_id, card, position) is None:
                yield card, position


def has_valid_moves(game: Game, player_id: str) -> bool:
    """
    Placement legality does not depend on which card is chosen, only on the cell.
    So testing the first card of the hand against all empty cells suffices.
    """
    player = game.players[player_id]
    if not player.hand:
        return False
    first_card = player.hand[0]
    return any(
        placement_error(game, player_id, first_card, position) is None
        for position in game.board.empty_positions()
    )


def _touches_own_card(game: Game, player: PlayerState, position: Position) -> bool:
    """Ownership is decided by the card id on the neighbouring cell, not just by the cell being occupied."""
    own_card_ids = {card.id for card in player.placed_cards.values()}
    return any(
        game.board.card_id_at(neighbour) in own_card_ids
        for neighbour in game.board.adjacent_positions(position)
    )
