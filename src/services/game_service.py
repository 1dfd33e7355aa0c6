"""Orchestration of communication from the API / online layers to the domain and persistence layers (and the reverse direction)."""

import logging
import random
from datetime import datetime
from typing import Optional
from uuid import uuid4

from src.core.exceptions import GameNotFoundError, InvalidRequestError, ResourceUnavailableError
from src.core.locks import KeyedLocks
from src.core.models import GameModel, utc_now
from src.core.shared_types import ConnectionStatus, GameMode, GameState
from src.db.repository import GameRepository, PlayerRepository
from src.game.actions import MoveAction
from src.game.cards import Deck
from src.game.game import Game

logger = logging.getLogger(__name__)

# added to the winner's lifetime score on top of the columns won
WIN_BONUS = 10


class GameService:
    """
    Orchestration of layers for the card game.

    Every change to a stored game happens while holding that game's lock:
    moves, connection updates and abandonment are serialized per game, different games never wait on each other.
    """

    def __init__(
        self,
        games: GameRepository,
        players: PlayerRepository,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.games = games
        self.players = players
        self.rng = rng or random.Random()
        self._locks = KeyedLocks()
        self._player_locks = KeyedLocks()

    # -- Game creation --
    def initialize_game(
        self,
        player1_id: str,
        player2_id: str,
        deck1_id: str,
        deck2_id: str,
        mode: GameMode = GameMode.LOCAL,
        match_code: Optional[str] = None,
    ) -> Game:
        """Validate players and decks, then set up and store a new game. Nothing is stored if validation fails."""
        decks = [
            self._playable_deck(player1_id, deck1_id),
            self._playable_deck(player2_id, deck2_id),
        ]
        game = Game.new_game(
            game_id=str(uuid4()),
            decks=decks,
            rng=self.rng,
            mode=mode,
            match_code=match_code,
        )
        self.games.create_game(game.to_model())
        logger.info(
            "Initialized game %s (%s) for players %s and %s",
            game.id,
            mode,
            player1_id,
            player2_id,
        )
        return game

    def resolve_deck_id(self, player_id: str) -> str:
        """
        The deck a player brings to a new game: the current deck, or the original deck when the current one is not available.
        """
        player = self.players.get_player(player_id)
        if player is None:
            raise ResourceUnavailableError(f"Player {player_id} not found.")
        for deck_id in (player.current_deck_id, player.original_deck_id):
            if deck_id and self.players.get_deck(deck_id) is not None:
                return deck_id
        raise ResourceUnavailableError(f"Player {player_id} has no deck available.")

    # -- Playing --
    def process_move(self, game_id: str, action: MoveAction) -> Game:
        """Validate and apply an action. Raises InvalidMoveError (game untouched) when it is not allowed."""
        with self._locks.hold(game_id):
            game = self._load(game_id)
            game.apply(action)
            self._store(game)

        logger.debug("Applied %s by %s to game %s", action.type, action.player_id, game_id)
        if game.state == GameState.COMPLETED:
            logger.info(
                "Game %s completed. winner=%s tie=%s scores=%s",
                game.id,
                game.winner_id,
                game.is_tie,
                game.scores,
            )
            self._settle_players(game)
        return game

    def get_game(self, game_id: str) -> Game:
        return self._load(game_id)

    def find_active_game_for_player(self, player_id: str) -> Game | None:
        """Most recently updated game of the player that has not ended yet."""
        active = self.games.find_active_games(player_id)
        return Game.from_model(active[0]) if active else None

    def find_active_games(self) -> list[Game]:
        return [Game.from_model(model) for model in self.games.find_active_games()]

    # -- Online / maintenance --
    def set_connection_status(
        self, game_id: str, player_id: str, status: ConnectionStatus
    ) -> Optional[ConnectionStatus]:
        """Returns the status the player had before."""
        with self._locks.hold(game_id):
            game = self._load(game_id)
            previous = game.set_connection(player_id, status)
            self._store(game)
        return previous

    def abandon_game(
        self, game_id: str, inactive_since: datetime, now: Optional[datetime] = None
    ) -> Game | None:
        """
        Force-complete a game that has not been touched since `inactive_since`.

        Staleness is re-checked under the game's lock: if a move came in meanwhile the game is left alone (returns None).
        """
        with self._locks.hold(game_id):
            game = self._load(game_id)
            last_activity = game.last_activity()
            if not game.is_active or last_activity >= inactive_since:
                return None
            game.abandon(now or utc_now())
            self._store(game)
        logger.info(
            "Abandoned game %s (last activity %s). winner=%s",
            game.id,
            last_activity,
            game.winner_id,
        )
        return game

    # -- Internal helpers --
    def _settle_players(self, game: Game) -> None:
        """
        Credit a finished game to the players' accounts.
        ----

        - the columns each player won are added to their lifetime score, the winner gets WIN_BONUS on top
        - a player who fell back to their original deck gets it back as current deck
        """
        for player_id in game.player_ids:
            with self._player_locks.hold(player_id):
                player = self.players.get_player(player_id)
                if player is None:
                    logger.warning("Player %s of game %s is gone, score not credited", player_id, game.id)
                    continue
                player.lifetime_score += game.scores.get(player_id, 0)
                if player_id == game.winner_id and not game.is_tie:
                    player.lifetime_score += WIN_BONUS
                if player.original_deck_id:
                    player.current_deck_id = player.original_deck_id
                    player.original_deck_id = None
                self.players.save_player(player)
            logger.info("Player %s lifetime score is now %s", player_id, player.lifetime_score)

    def _playable_deck(self, player_id: str, deck_id: str) -> Deck:
        if self.players.get_player(player_id) is None:
            raise ResourceUnavailableError(f"Player {player_id} not found.")
        deck_model = self.players.get_deck(deck_id)
        if deck_model is None:
            raise ResourceUnavailableError(f"Deck {deck_id} not found.")
        if deck_model.owner_id != player_id:
            raise InvalidRequestError(f"Deck {deck_id} does not belong to player {player_id}.")
        return Deck.from_model(deck_model)

    def _load(self, game_id: str) -> Game:
        """Attempt to find the game in the repository and raise error if it fails."""
        game_model = self.games.get_game(game_id)
        if game_model is None:
            raise GameNotFoundError(f"Game with {game_id=} not found.")
        return Game.from_model(game_model)

    def _store(self, game: Game) -> GameModel:
        stored = self.games.update_game(game.to_model())
        if stored is None:
            raise GameNotFoundError(f"Game with game_id={game.id!r} disappeared while being updated.")
        return stored
