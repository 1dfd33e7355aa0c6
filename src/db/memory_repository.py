"""In-memory repositories: used for local play without a database and in tests."""

import threading
from copy import deepcopy
from typing import Optional

from src.core.models import DeckModel, GameModel, PlayerProfile
from src.core.shared_types import ACTIVE_STATES


class InMemoryGameRepository:
    """Games kept in a dictionary. Copies go in and out, so callers never share mutable state with the store."""

    def __init__(self) -> None:
        self._games: dict[str, GameModel] = {}
        self._lock = threading.Lock()

    def get_game(self, game_id: str) -> GameModel | None:
        with self._lock:
            game = self._games.get(game_id)
            return deepcopy(game) if game else None

    def create_game(self, game: GameModel) -> GameModel:
        with self._lock:
            self._games[game.id] = deepcopy(game)
        return game

    def update_game(self, game: GameModel) -> GameModel | None:
        with self._lock:
            if game.id not in self._games:
                return None
            self._games[game.id] = deepcopy(game)
        return game

    def delete_game(self, game_id: str) -> GameModel | None:
        with self._lock:
            return self._games.pop(game_id, None)

    def find_active_games(self, player_id: Optional[str] = None) -> list[GameModel]:
        active_states = {state.value for state in ACTIVE_STATES}
        with self._lock:
            games = [
                deepcopy(game)
                for game in self._games.values()
                if game.state in active_states
                and (player_id is None or player_id in game.player_ids)
            ]
        return sorted(games, key=lambda game: game.updated_at, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._games.clear()


class InMemoryPlayerRepository:
    def __init__(self) -> None:
        self._players: dict[str, PlayerProfile] = {}
        self._decks: dict[str, DeckModel] = {}
        self._lock = threading.Lock()

    def get_player(self, player_id: str) -> PlayerProfile | None:
        with self._lock:
            player = self._players.get(player_id)
            return deepcopy(player) if player else None

    def save_player(self, player: PlayerProfile) -> PlayerProfile:
        with self._lock:
            self._players[player.id] = deepcopy(player)
        return player

    def get_deck(self, deck_id: str) -> DeckModel | None:
        with self._lock:
            deck = self._decks.get(deck_id)
            return deepcopy(deck) if deck else None

    def save_deck(self, deck: DeckModel) -> DeckModel:
        with self._lock:
            self._decks[deck.id] = deepcopy(deck)
        return deck
