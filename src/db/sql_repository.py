"""Implementation of the repositories using SQLAlchemy"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.core.models import (
    CardModel,
    DeckModel,
    GameModel,
    PlayerProfile,
    PlayerStateModel,
)
from src.core.shared_types import ACTIVE_STATES
from src.db.schema import DBDeck, DBGame, DBPlayer


class SQLGameRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_game(self, game_id: str) -> GameModel | None:
        """Get game by ID, if record exists."""
        game_db = self._fetch_game(game_id)
        if game_db:
            return self._to_model(game_db)
        return None

    def create_game(self, game: GameModel) -> GameModel:
        """Store new game and return the stored data."""
        game_db = DBGame(id=game.id)
        self._copy_onto(game, game_db)
        self.db.add(game_db)
        self.db.commit()
        self.db.refresh(game_db)
        return self._to_model(game_db)

    def update_game(self, game: GameModel) -> GameModel | None:
        """Replace the record with the same ID."""
        game_db = self._fetch_game(game.id)
        if not game_db:
            return None
        self._copy_onto(game, game_db)
        self.db.commit()
        self.db.refresh(game_db)
        return self._to_model(game_db)

    def delete_game(self, game_id: str) -> GameModel | None:
        """Remove a game's record."""
        game_db = self._fetch_game(game_id)
        if not game_db:
            return None
        game_model = self._to_model(game_db)
        self.db.delete(game_db)
        self.db.commit()
        return game_model

    def find_active_games(self, player_id: Optional[str] = None) -> list[GameModel]:
        """Non-terminal games, most recently updated first."""
        query = (
            select(DBGame)
            .where(DBGame.state.in_([state.value for state in ACTIVE_STATES]))
            .order_by(DBGame.updated_at.desc())
        )
        games = [self._to_model(game_db) for game_db in self.db.scalars(query)]
        # player_ids is a JSON column: membership is filtered here to stay portable across backends
        if player_id is not None:
            games = [game for game in games if player_id in game.player_ids]
        return games

    def _fetch_game(self, game_id: str) -> DBGame | None:
        query = select(DBGame).where(DBGame.id == game_id)
        return self.db.scalar(query)

    def _copy_onto(self, game: GameModel, game_db: DBGame) -> None:
        game_db.state = game.state
        game_db.mode = game.mode
        game_db.match_code = game.match_code
        game_db.board = dict(game.board)
        game_db.player_ids = list(game.player_ids)
        game_db.current_player_id = game.current_player_id
        game_db.players = {
            player_id: asdict(player) for player_id, player in game.players.items()
        }
        game_db.scores = dict(game.scores)
        game_db.final_column_scores = (
            {str(column): dict(s) for column, s in game.final_column_scores.items()}
            if game.final_column_scores is not None
            else None
        )
        game_db.winner_id = game.winner_id
        game_db.is_tie = game.is_tie
        game_db.has_pending_win_request = game.has_pending_win_request
        game_db.pending_win_request_player_id = game.pending_win_request_player_id
        game_db.player_connections = dict(game.player_connections)
        game_db.created_at = game.created_at
        game_db.updated_at = game.updated_at

    def _to_model(self, game_db: DBGame) -> GameModel:
        """Convert SQLAlchemy model to data transfer model."""
        return GameModel(
            id=game_db.id,
            state=game_db.state,
            board=dict(game_db.board),
            player_ids=list(game_db.player_ids),
            current_player_id=game_db.current_player_id,
            players={
                player_id: _player_state_from_json(data)
                for player_id, data in game_db.players.items()
            },
            scores=dict(game_db.scores),
            created_at=_as_utc(game_db.created_at),
            updated_at=_as_utc(game_db.updated_at),
            mode=game_db.mode,
            match_code=game_db.match_code,
            final_column_scores=(
                {int(column): dict(s) for column, s in game_db.final_column_scores.items()}
                if game_db.final_column_scores is not None
                else None
            ),
            winner_id=game_db.winner_id,
            is_tie=game_db.is_tie,
            has_pending_win_request=game_db.has_pending_win_request,
            pending_win_request_player_id=game_db.pending_win_request_player_id,
            player_connections=dict(game_db.player_connections or {}),
        )


class SQLPlayerRepository:
    """Player accounts and decks stored using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_player(self, player_id: str) -> PlayerProfile | None:
        player_db = self.db.get(DBPlayer, player_id)
        if player_db is None:
            return None
        return PlayerProfile(
            id=player_db.id,
            name=player_db.name,
            current_deck_id=player_db.current_deck_id,
            original_deck_id=player_db.original_deck_id,
            lifetime_score=player_db.lifetime_score,
        )

    def save_player(self, player: PlayerProfile) -> PlayerProfile:
        player_db = self.db.get(DBPlayer, player.id) or DBPlayer(id=player.id)
        player_db.name = player.name
        player_db.current_deck_id = player.current_deck_id
        player_db.original_deck_id = player.original_deck_id
        player_db.lifetime_score = player.lifetime_score
        self.db.add(player_db)
        self.db.commit()
        return player

    def get_deck(self, deck_id: str) -> DeckModel | None:
        deck_db = self.db.get(DBDeck, deck_id)
        if deck_db is None:
            return None
        return DeckModel(
            id=deck_db.id,
            owner_id=deck_db.owner_id,
            cards=[CardModel(**card) for card in deck_db.cards],
        )

    def save_deck(self, deck: DeckModel) -> DeckModel:
        deck_db = self.db.get(DBDeck, deck.id) or DBDeck(id=deck.id)
        deck_db.owner_id = deck.owner_id
        deck_db.cards = [asdict(card) for card in deck.cards]
        self.db.add(deck_db)
        self.db.commit()
        return deck


def _player_state_from_json(data: dict[str, Any]) -> PlayerStateModel:
    return PlayerStateModel(
        player_id=data["player_id"],
        hand=[CardModel(**card) for card in data["hand"]],
        placed_cards={key: CardModel(**card) for key, card in data["placed_cards"].items()},
        score=data.get("score", 0),
        deck_id=data.get("deck_id"),
    )


def _as_utc(value: datetime) -> datetime:
    """SQLite hands datetimes back without tzinfo even for timezone-aware columns."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
