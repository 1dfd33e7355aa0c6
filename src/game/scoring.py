"""
Column scoring.

Each of the 3 columns is scored on its own: the player with the strictly higher summed power wins it.
The game goes to whoever wins more columns. Equal sums (also 0-0) are a column tie, equal column counts a game tie.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional

from src.game.cards import Card
from src.game.position import BOARD_DIMENSIONS, Position

# player id -> {"x,y": card}
Placements = Mapping[str, Mapping[str, Card]]


@dataclass
class ColumnScore:
    player_scores: dict[str, int] = field(default_factory=dict)
    winner_id: Optional[str] = None

    @property
    def is_tie(self) -> bool:
        return self.winner_id is None


@dataclass
class GameResult:
    columns: dict[int, ColumnScore]
    columns_won: dict[str, int]
    winner_id: Optional[str]

    @property
    def is_tie(self) -> bool:
        return self.winner_id is None

    def breakdown(self) -> dict[int, dict[str, int]]:
        """column -> player -> summed power (the part that is stored on the game)"""
        return {
            column: dict(score.player_scores) for column, score in self.columns.items()
        }


def column_scores(
    player_ids: list[str], placements: Placements, width: int = BOARD_DIMENSIONS[0]
) -> dict[int, ColumnScore]:
    columns = {
        column: ColumnScore(player_scores={player_id: 0 for player_id in player_ids})
        for column in range(width)
    }
    for player_id in player_ids:
        for key, card in placements.get(player_id, {}).items():
            column = Position.from_storage(key).x
            columns[column].player_scores[player_id] += card.power

    for score in columns.values():
        score.winner_id = _strict_leader(score.player_scores)
    return columns


def determine_result(
    player_ids: list[str], placements: Placements, width: int = BOARD_DIMENSIONS[0]
) -> GameResult:
    columns = column_scores(player_ids, placements, width)
    columns_won = {player_id: 0 for player_id in player_ids}
    for score in columns.values():
        if score.winner_id is not None:
            columns_won[score.winner_id] += 1
    return GameResult(
        columns=columns,
        columns_won=columns_won,
        winner_id=_strict_leader(columns_won),
    )


def _strict_leader(totals: Mapping[str, int]) -> Optional[str]:
    """The single player with the highest total, None when the top is shared."""
    if not totals:
        return None
    best = max(totals.values())
    leaders = [player_id for player_id, total in totals.items() if total == best]
    return leaders[0] if len(leaders) == 1 else None
