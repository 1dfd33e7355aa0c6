"""The board only knows which card id sits on which cell. Ownership and rules live in the Game and the validator."""

from dataclasses import dataclass, field
from typing import Iterator, Self

from src.core.exceptions import InvalidPositionError
from src.game.position import BOARD_DIMENSIONS, Position


@dataclass
class Board:
    pieces: dict[Position, str] = field(default_factory=dict)
    width: int = BOARD_DIMENSIONS[0]
    height: int = BOARD_DIMENSIONS[1]

    @classmethod
    def from_storage(cls, pieces: dict[str, str]) -> Self:
        """Construct a board from its stored form: {'x,y': card_id}"""
        board = cls()
        for key, card_id in pieces.items():
            board.place_card(Position.from_storage(key), card_id)
        return board

    def to_storage(self) -> dict[str, str]:
        return {position.to_storage(): card_id for position, card_id in self.pieces.items()}

    def is_within_bounds(self, position: Position) -> bool:
        return (0 <= position.x < self.width) and (0 <= position.y < self.height)

    def is_occupied(self, position: Position) -> bool:
        return position in self.pieces

    def is_position_valid(self, position: Position) -> bool:
        """A card can go here: on the board and nothing placed yet."""
        return self.is_within_bounds(position) and not self.is_occupied(position)

    def is_full(self) -> bool:
        return len(self.pieces) >= self.width * self.height

    def card_id_at(self, position: Position) -> str | None:
        return self.pieces.get(position)

    def place_card(self, position: Position, card_id: str) -> None:
        if not self.is_within_bounds(position):
            raise InvalidPositionError(f"Position {position.to_storage()} is off the board.")
        if self.is_occupied(position):
            raise InvalidPositionError(f"Position {position.to_storage()} is already occupied.")
        self.pieces[position] = card_id

    def adjacent_positions(self, position: Position) -> list[Position]:
        """Orthogonal neighbours that lie on the board (diagonals do not count)."""
        return [
            neighbour
            for neighbour in position.neighbours()
            if self.is_within_bounds(neighbour)
        ]

    def empty_positions(self) -> Iterator[Position]:
        """Recomputed on every call: the board changes between turns."""
        for x in range(self.width):
            for y in range(self.height):
                position = Position(x, y)
                if not self.is_occupied(position):
                    yield position
