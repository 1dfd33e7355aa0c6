"""Protocol repositories (the persistence collaborator). Implemented with SQLAlchemy and in memory."""

from typing import Optional, Protocol

from src.core.models import DeckModel, GameModel, PlayerProfile


class GameRepository(Protocol):
    """Persistence layer orchestration"""

    def get_game(self, game_id: str) -> GameModel | None:
        """Get game by ID, if record exists."""
        ...

    def create_game(self, game: GameModel) -> GameModel:
        """Store new game and return the stored data."""
        ...

    def update_game(self, game: GameModel) -> GameModel | None:
        """Replace the record with the same ID. None if there is no such record."""
        ...

    def delete_game(self, game_id: str) -> GameModel | None:
        """Remove a game's record."""
        ...

    def find_active_games(self, player_id: Optional[str] = None) -> list[GameModel]:
        """Non-terminal games (optionally only those containing the player), most recently updated first."""
        ...


class PlayerRepository(Protocol):
    """Player accounts and their decks."""

    def get_player(self, player_id: str) -> PlayerProfile | None: ...

    def save_player(self, player: PlayerProfile) -> PlayerProfile: ...

    def get_deck(self, deck_id: str) -> DeckModel | None: ...

    def save_deck(self, deck: DeckModel) -> DeckModel: ...
