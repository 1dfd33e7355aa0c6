"""
A cell on the board

(placed in its own module as multiple other modules need to import it)
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.exceptions import InvalidRequestError

# The board is always 3 columns wide and 5 rows tall. Columns are the unit of scoring.
BOARD_DIMENSIONS = (3, 5)


@dataclass(frozen=True)
class Position:
    x: int
    y: int

    @classmethod
    def from_storage(cls, key: str) -> Position:
        """Storage form: 'x,y' ex. '2,4'"""
        try:
            x, y = key.split(",")
            return cls(int(x), int(y))
        except ValueError as exc:
            raise InvalidRequestError(
                f"Cannot interpret {key!r} as a board position."
            ) from exc

    def to_storage(self) -> str:
        return f"{self.x},{self.y}"

    def neighbours(self) -> list[Position]:
        """Orthogonal neighbours (north, south, east, west). May lie outside the board."""
        return [
            Position(self.x, self.y + 1),
            Position(self.x, self.y - 1),
            Position(self.x + 1, self.y),
            Position(self.x - 1, self.y),
        ]
