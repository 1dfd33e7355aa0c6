"""
In-memory directory of online matches.

A match is a short code two players use to meet. While WAITING it only knows its creator;
once the second player joins, a game is created and the match points to it.
The registry holds routing metadata only, never cards or boards.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from src.core.exceptions import (
    GameNotFoundError,
    InvalidRequestError,
    MatchAlreadyStartedError,
    MatchNotFoundError,
)
from src.core.locks import KeyedLocks
from src.core.models import utc_now
from src.core.shared_types import ConnectionStatus, GameMode, GameState, MatchStatus
from src.game.game import Game
from src.services.game_service import GameService

logger = logging.getLogger(__name__)

MATCH_CODE_LENGTH = 6

# (player_id, match code whose sessions must be kept or None)
ReleaseListener = Callable[[str, Optional[str]], None]


@dataclass
class MatchMetadata:
    code: str
    creator_id: str
    status: MatchStatus
    created_at: datetime
    game_id: Optional[str] = None
    subscribers: set[str] = field(default_factory=set)

    def snapshot(self) -> "MatchMetadata":
        return replace(self, subscribers=set(self.subscribers))


class MatchRegistry:
    """
    Every change to one match happens while holding that match code's lock.
    The guard lock only protects the dictionary itself and is never held while waiting for a code lock.
    """

    def __init__(self, game_service: GameService, grace_seconds: int = 5) -> None:
        self.game_service = game_service
        self.grace = timedelta(seconds=grace_seconds)
        self._guard = threading.Lock()
        self._locks = KeyedLocks()
        self._matches: dict[str, MatchMetadata] = {}
        self._release_listeners: list[ReleaseListener] = []

    def add_release_listener(self, listener: ReleaseListener) -> None:
        """`listener` is told whenever a player's sessions should be let go of."""
        self._release_listeners.append(listener)

    # -- Creating and joining --
    def create_match(self, player_id: str, now: Optional[datetime] = None) -> str:
        """Open a new WAITING match for `player_id`. Matches the player left waiting before are evicted."""
        self._evict_player(player_id)

        with self._guard:
            code = self._new_code()
            self._matches[code] = MatchMetadata(
                code=code,
                creator_id=player_id,
                status=MatchStatus.WAITING,
                created_at=now or utc_now(),
                subscribers={player_id},
            )
        logger.info("Created match %s for player %s", code, player_id)
        return code

    def join_match(self, player_id: str, code: str) -> Game:
        """
        Join a WAITING match as the second player, which creates the game.
        ----

        If anything fails nothing changes: the match stays WAITING, no game is created
        and the joiner keeps their own matches. Only a successful join evicts the joiner elsewhere.
        """
        metadata = self._get(code)
        if metadata is None:
            raise MatchNotFoundError(f"Match {code} not found.")
        if metadata.creator_id == player_id:
            raise InvalidRequestError("A player cannot join their own match.")

        with self._locks.hold(code):
            metadata = self._get(code)
            if metadata is None:
                raise MatchNotFoundError(f"Match {code} not found.")
            if metadata.status != MatchStatus.WAITING:
                raise MatchAlreadyStartedError(f"Match {code} has already started.")

            creator_deck = self.game_service.resolve_deck_id(metadata.creator_id)
            joiner_deck = self.game_service.resolve_deck_id(player_id)
            game = self.game_service.initialize_game(
                metadata.creator_id,
                player_id,
                creator_deck,
                joiner_deck,
                mode=GameMode.ONLINE,
                match_code=code,
            )
            with self._guard:
                metadata.status = MatchStatus.IN_PROGRESS
                metadata.game_id = game.id
                metadata.subscribers.add(player_id)

        self._evict_player(player_id, keep_code=code)
        logger.info(
            "Player %s joined match %s (creator %s), game %s started",
            player_id,
            code,
            metadata.creator_id,
            game.id,
        )
        return game

    # -- Queries --
    def get_match_state(self, code: str) -> Game | None:
        """The game behind the match, None while the match is WAITING or unknown."""
        metadata = self._get(code)
        if metadata is None or metadata.game_id is None:
            return None
        try:
            return self.game_service.get_game(metadata.game_id)
        except GameNotFoundError:
            logger.warning("Match %s points to missing game %s", code, metadata.game_id)
            return None

    def is_match_waiting(self, code: str) -> bool:
        metadata = self._get(code)
        return metadata is not None and metadata.status == MatchStatus.WAITING

    def get_match_metadata(self, code: str) -> MatchMetadata | None:
        with self._guard:
            metadata = self._matches.get(code)
            return metadata.snapshot() if metadata else None

    def all_matches(self) -> dict[str, MatchMetadata]:
        with self._guard:
            return {code: metadata.snapshot() for code, metadata in self._matches.items()}

    # -- Connections --
    def handle_disconnection(self, player_id: str, code: str) -> bool:
        """Mark the player as disconnected in the match's game. Returns False if there is no game (yet)."""
        with self._locks.hold(code):
            metadata = self._get(code)
            if metadata is not None:
                with self._guard:
                    metadata.subscribers.discard(player_id)
            game = self.get_match_state(code)
            if game is None:
                logger.debug("No game for match %s, nothing to mark for %s", code, player_id)
                return False
            self.game_service.set_connection_status(
                game.id, player_id, ConnectionStatus.DISCONNECTED
            )
        logger.info("Player %s disconnected from match %s", player_id, code)
        return True

    def handle_reconnection(self, player_id: str, code: str) -> bool:
        """
        Mark the player as connected again.
        Returns True only if the player had been disconnected from a running game.
        """
        with self._locks.hold(code):
            metadata = self._get(code)
            if metadata is None:
                raise MatchNotFoundError(f"Match {code} not found.")
            game = self.get_match_state(code)
            previous = None
            if game is not None:
                previous = self.game_service.set_connection_status(
                    game.id, player_id, ConnectionStatus.CONNECTED
                )
            with self._guard:
                metadata.subscribers.add(player_id)

        reconnected = previous == ConnectionStatus.DISCONNECTED
        if reconnected:
            logger.info("Player %s reconnected to match %s", player_id, code)
        return reconnected

    # -- Cleanup --
    def clear_player_matches(self, player_id: str, now: Optional[datetime] = None) -> None:
        """
        Let go of everything the registry holds for a player. Safe to call repeatedly.
        ----

        - the player is removed from every match's subscribers
        - WAITING matches the player created are removed
        - matches of the player whose game is COMPLETED are removed,
          unless the match is younger than the grace period
        """
        now = now or utc_now()
        removed = []
        for code in self._codes():
            with self._locks.hold(code):
                metadata = self._get(code)
                if metadata is None:
                    continue
                if self._should_remove(metadata, player_id, now):
                    self._remove(code)
                    removed.append(code)
                else:
                    with self._guard:
                        metadata.subscribers.discard(player_id)

        if removed:
            logger.info("Removed matches %s of player %s", removed, player_id)
        self._release(player_id)

    def clear_all_matches(self) -> None:
        with self._guard:
            count = len(self._matches)
            self._matches.clear()
        logger.info("Cleared all %s matches", count)

    # -- Internal helpers --
    def _should_remove(self, metadata: MatchMetadata, player_id: str, now: datetime) -> bool:
        if metadata.status == MatchStatus.WAITING:
            return metadata.creator_id == player_id
        if now - metadata.created_at < self.grace:
            return False
        game = self.get_match_state(metadata.code)
        if game is None:
            return metadata.creator_id == player_id or player_id in metadata.subscribers
        return player_id in game.player_ids and game.state == GameState.COMPLETED

    def _evict_player(self, player_id: str, keep_code: Optional[str] = None) -> None:
        """Remove the player's WAITING matches and subscriptions once they create or join another one."""
        for code in self._codes():
            if code == keep_code:
                continue
            with self._locks.hold(code):
                metadata = self._get(code)
                if metadata is None:
                    continue
                if metadata.status == MatchStatus.WAITING and metadata.creator_id == player_id:
                    self._remove(code)
                    logger.info("Evicted waiting match %s of player %s", code, player_id)
                else:
                    with self._guard:
                        metadata.subscribers.discard(player_id)
        self._release(player_id, keep_code)

    def _release(self, player_id: str, keep_code: Optional[str] = None) -> None:
        for listener in self._release_listeners:
            listener(player_id, keep_code)

    def _new_code(self) -> str:
        """Caller holds the guard lock."""
        code = uuid4().hex[:MATCH_CODE_LENGTH].upper()
        while code in self._matches:
            code = uuid4().hex[:MATCH_CODE_LENGTH].upper()
        return code

    def _get(self, code: str) -> MatchMetadata | None:
        with self._guard:
            return self._matches.get(code)

    def _codes(self) -> list[str]:
        with self._guard:
            return list(self._matches)

    def _remove(self, code: str) -> None:
        with self._guard:
            self._matches.pop(code, None)
