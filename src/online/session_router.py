"""
Routing between websocket sessions and matches.

A session is one live connection. After a JOIN_MATCH it is bound to (match code, player id)
and receives everything that happens in that match, always as that player's own view of the game.
"""

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol
from uuid import uuid4

from pydantic import ValidationError

from src.api.models import GameView
from src.core.exceptions import (
    GameError,
    InvalidMoveError,
    InvalidRequestError,
    MatchNotFoundError,
)
from src.core.shared_types import GameState, MatchStatus
from src.game.actions import action_from_payload
from src.game.game import Game
from src.online.match_registry import MatchRegistry
from src.online.messages import MessageType, WebSocketMessage
from src.services.game_service import GameService

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...


@dataclass
class Session:
    id: str
    connection: Connection
    match_code: Optional[str] = None
    player_id: Optional[str] = None

    @property
    def is_bound(self) -> bool:
        return self.match_code is not None and self.player_id is not None


Handler = Callable[[Session, dict[str, Any]], Awaitable[None]]


@dataclass
class _MatchLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionRouter:
    """
    Session maps are guarded by a thread lock because the sweeper releases players from its own thread.
    Within one match, applying a move and sending the resulting views happen under that match's asyncio lock,
    so every session sees the updates of a match in the order they were applied.
    """

    def __init__(self, registry: MatchRegistry, game_service: GameService) -> None:
        self.registry = registry
        self.game_service = game_service
        self._guard = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._match_sessions: dict[str, set[str]] = {}
        self._match_locks: dict[str, _MatchLock] = {}
        self._handlers: dict[MessageType, Handler] = {
            MessageType.JOIN_MATCH: self._handle_join,
            MessageType.LEAVE_MATCH: self._handle_leave,
            MessageType.GAME_ACTION: self._handle_game_action,
            MessageType.GAME_STATE_REQUEST: self._handle_state_request,
        }
        registry.add_release_listener(self.clear_player_sessions)

    # -- Connection lifecycle --
    async def connect(self, connection: Connection) -> str:
        session = Session(id=str(uuid4()), connection=connection)
        with self._guard:
            self._sessions[session.id] = session
        logger.info("Session %s connected", session.id)
        await self._send(session, MessageType.CONNECTION_SUCCESS, {"sessionId": session.id})
        return session.id

    async def disconnect(self, session_id: str) -> None:
        with self._guard:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return
        logger.info("Session %s disconnected (player %s)", session_id, session.player_id)
        await self._detach(session)

    async def handle_message(self, session_id: str, raw: str) -> None:
        session = self.get_session(session_id)
        if session is None:
            logger.warning("Message for unknown session %s dropped", session_id)
            return

        try:
            message = WebSocketMessage.model_validate_json(raw)
        except ValidationError:
            logger.warning("Malformed message from session %s: %s", session_id, raw)
            await self._send_error(session, "Invalid message format")
            return

        logger.debug("Session %s sent %s: %s", session_id, message.type, message.data)
        handler = self._handlers.get(message.type)
        if handler is None:
            await self._send_error(session, f"Unknown message type: {message.type}")
            return

        data = message.data if message.data is not None else {}
        try:
            if not isinstance(data, dict):
                raise InvalidRequestError("Message data must be an object.")
            await handler(session, data)
        except InvalidMoveError as error:
            logger.info("Rejected action from %s: %s", session.player_id, error.reason)
            await self._send_error(session, str(error), reason=error.reason.value)
        except GameError as error:
            logger.warning("Request from session %s failed: %s", session_id, error)
            await self._send_error(session, str(error))

    # -- Outbound, called by the REST layer and the registry --
    async def broadcast_match_start(self, code: str, game: Game) -> None:
        """Send each bound session of the match its view of the freshly created game."""
        async with self._match_locked(code):
            await self._broadcast_state(code, game)

    def clear_player_sessions(self, player_id: str, keep_code: Optional[str] = None) -> None:
        """Unbind every session of the player (except those bound to `keep_code`). Connections stay open."""
        with self._guard:
            for session in self._sessions.values():
                if session.player_id == player_id and session.match_code != keep_code:
                    self._unbind(session)

    def clear_all_sessions(self) -> None:
        with self._guard:
            for session in self._sessions.values():
                self._unbind(session)
            self._match_sessions.clear()
        logger.info("Unbound all sessions")

    # -- Queries --
    def get_session(self, session_id: str) -> Session | None:
        with self._guard:
            return self._sessions.get(session_id)

    def sessions_in_match(self, code: str) -> list[Session]:
        with self._guard:
            return [
                self._sessions[session_id]
                for session_id in self._match_sessions.get(code, set())
                if session_id in self._sessions
            ]

    # -- Message handlers --
    async def _handle_join(self, session: Session, data: dict[str, Any]) -> None:
        code = _required(data, "matchId")
        player_id = _required(data, "playerId")

        reconnected = self.registry.handle_reconnection(player_id, code)
        with self._guard:
            if session.match_code != code:
                self._unbind(session)
            session.match_code = code
            session.player_id = player_id
            self._match_sessions.setdefault(code, set()).add(session.id)
            player_count = len(self._match_sessions[code])

        logger.info("Player %s joined match %s via session %s", player_id, code, session.id)
        notice = MessageType.PLAYER_RECONNECTED if reconnected else MessageType.PLAYER_JOINED
        async with self._match_locked(code):
            await self._send(
                session,
                MessageType.JOIN_SUCCESS,
                {"matchId": code, "playerId": player_id, "playerCount": player_count},
            )
            await self._broadcast(
                code, notice, {"matchId": code, "playerId": player_id}, exclude=session.id
            )
            game = self.registry.get_match_state(code)
            if game is not None:
                await self._send_state(session, game)

    async def _handle_leave(self, session: Session, data: dict[str, Any]) -> None:
        code = session.match_code
        await self._detach(session)
        await self._send(session, MessageType.LEAVE_SUCCESS, {"matchId": code})

    async def _handle_game_action(self, session: Session, data: dict[str, Any]) -> None:
        if not session.is_bound:
            raise InvalidRequestError("Join a match before sending game actions.")
        code = data.get("matchId") or session.match_code
        if code != session.match_code:
            raise InvalidRequestError(f"Session is not part of match {code}.")

        action = action_from_payload(session.player_id, data.get("action"))
        metadata = self.registry.get_match_metadata(code)
        if metadata is None:
            raise MatchNotFoundError(f"Match {code} not found.")
        if metadata.game_id is None:
            raise InvalidRequestError(f"Match {code} has not started yet.")

        async with self._match_locked(code):
            game = self.game_service.process_move(metadata.game_id, action)
            await self._broadcast_state(code, game)

    async def _handle_state_request(self, session: Session, data: dict[str, Any]) -> None:
        code = data.get("matchId") or session.match_code
        if code is None:
            raise InvalidRequestError("matchId is required.")

        game = self.registry.get_match_state(code)
        if game is not None:
            await self._send_state(session, game)
        elif self.registry.is_match_waiting(code):
            await self._send(
                session,
                MessageType.GAME_STATE_UPDATE,
                {"matchId": code, "status": MatchStatus.WAITING.value},
            )
        else:
            raise MatchNotFoundError(f"Match {code} not found.")

    # -- Internal helpers --
    async def _detach(self, session: Session) -> None:
        """Unbind the session and tell the registry and the remaining players."""
        code, player_id = session.match_code, session.player_id
        if code is None or player_id is None:
            return
        with self._guard:
            self._unbind(session)

        if self.registry.get_match_metadata(code) is not None:
            try:
                self.registry.handle_disconnection(player_id, code)
            except GameError:
                logger.exception("Could not record disconnection of %s from match %s", player_id, code)

        async with self._match_locked(code):
            await self._broadcast(
                code, MessageType.PLAYER_DISCONNECTED, {"matchId": code, "playerId": player_id}
            )

    async def _broadcast_state(self, code: str, game: Game) -> None:
        """Caller holds the match lock."""
        for session in self.sessions_in_match(code):
            await self._send_state(session, game)

        if game.state == GameState.COMPLETED:
            await self._broadcast(
                code,
                MessageType.GAME_END,
                {
                    "winnerId": game.winner_id,
                    "isTie": game.is_tie,
                    "scores": game.scores,
                    "columnScores": game.final_column_scores,
                },
            )

    async def _send_state(self, session: Session, game: Game) -> None:
        """Always the session's own view: an unbound session sees no hand at all."""
        view = GameView.for_player(game, session.player_id)
        await self._send(
            session, MessageType.GAME_STATE_UPDATE, view.model_dump(mode="json", by_alias=True)
        )

    async def _broadcast(
        self, code: str, message_type: MessageType, data: Any, exclude: Optional[str] = None
    ) -> None:
        for session in self.sessions_in_match(code):
            if session.id != exclude:
                await self._send(session, message_type, data)

    async def _send_error(self, session: Session, message: str, reason: Optional[str] = None) -> None:
        data = {"message": message}
        if reason is not None:
            data["reason"] = reason
        await self._send(session, MessageType.ERROR, data)

    async def _send(self, session: Session, message_type: MessageType, data: Any) -> bool:
        message = WebSocketMessage.build(message_type, data)
        try:
            await session.connection.send_text(message.to_json())
        except Exception:
            logger.exception("Failed to send %s to session %s, dropping it", message_type, session.id)
            self._drop(session)
            return False
        return True

    def _drop(self, session: Session) -> None:
        """A session we cannot write to counts as disconnected. No broadcast: we may be inside one."""
        code, player_id = session.match_code, session.player_id
        with self._guard:
            self._sessions.pop(session.id, None)
            self._unbind(session)
        if code is not None and player_id is not None:
            try:
                self.registry.handle_disconnection(player_id, code)
            except GameError:
                logger.exception("Could not record disconnection of %s from match %s", player_id, code)

    def _unbind(self, session: Session) -> None:
        """Caller holds the guard lock."""
        if session.match_code is not None:
            members = self._match_sessions.get(session.match_code)
            if members is not None:
                members.discard(session.id)
                if not members:
                    del self._match_sessions[session.match_code]
        session.match_code = None
        session.player_id = None

    @asynccontextmanager
    async def _match_locked(self, code: str) -> AsyncIterator[None]:
        """Hold the match's lock. It is forgotten once nobody holds or waits for it."""
        entry = self._match_locks.get(code)
        if entry is None:
            entry = self._match_locks[code] = _MatchLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._match_locks[code]


def _required(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRequestError(f"{key} is required.")
    return value
