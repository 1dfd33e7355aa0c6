"""
HTTP and websocket endpoints. Kept thin: parse, call the service / registry, project the result.

Collaborators live on `app.state` (see src/main.py).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from src.api.models import (
    ActionRequest,
    ClearMatchesResponse,
    CreateGameRequest,
    CreateMatchRequest,
    GameView,
    JoinMatchRequest,
    MatchResponse,
)
from src.core.exceptions import (
    GameError,
    GameNotFoundError,
    GameStateError,
    InvalidMoveError,
    InvalidRequestError,
    MatchAlreadyStartedError,
    MatchNotFoundError,
    ResourceUnavailableError,
)
from src.core.shared_types import GameMode
from src.game.actions import action_from_payload
from src.game.game import Game
from src.online.match_registry import MatchMetadata, MatchRegistry
from src.online.session_router import SessionRouter
from src.services.game_service import GameService

logger = logging.getLogger(__name__)

router = APIRouter()

# first match wins, so subclasses come before their parents
ERROR_STATUS: list[tuple[type[GameError], int]] = [
    (InvalidMoveError, 400),
    (InvalidRequestError, 400),
    (GameNotFoundError, 404),
    (MatchNotFoundError, 404),
    (MatchAlreadyStartedError, 409),
    (GameStateError, 409),
    (ResourceUnavailableError, 422),
]


def status_for(error: GameError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 400


async def handle_game_error(request: Request, error: GameError) -> JSONResponse:
    status_code = status_for(error)
    logger.info("%s %s -> %s: %s", request.method, request.url.path, status_code, error)
    content = {"detail": str(error)}
    if isinstance(error, InvalidMoveError):
        content["reason"] = error.reason.value
    return JSONResponse(status_code=status_code, content=content)


# --- Dependencies ---
def get_game_service(request: Request) -> GameService:
    return request.app.state.game_service


def get_registry(request: Request) -> MatchRegistry:
    return request.app.state.registry


def get_session_router(request: Request) -> SessionRouter:
    return request.app.state.session_router


# --- Games ---
@router.post("/games", status_code=201)
def create_game(
    request: CreateGameRequest, service: GameService = Depends(get_game_service)
) -> GameView:
    game = service.initialize_game(
        request.player1_id, request.player2_id, request.deck1_id, request.deck2_id
    )
    return GameView.for_player(game, request.player1_id)


@router.get("/games/{game_id}")
def get_game(
    game_id: str,
    player_id: Optional[str] = None,
    service: GameService = Depends(get_game_service),
) -> GameView:
    return GameView.for_player(service.get_game(game_id), player_id)


@router.post("/games/{game_id}/actions")
def submit_action(
    game_id: str,
    request: ActionRequest,
    service: GameService = Depends(get_game_service),
) -> GameView:
    if service.get_game(game_id).mode == GameMode.ONLINE:
        raise InvalidRequestError("Online games are played over the websocket.")
    action = action_from_payload(request.player_id, request.to_payload())
    game = service.process_move(game_id, action)
    return GameView.for_player(game, request.player_id)


# --- Online matches ---
@router.post("/online/matches", status_code=201)
def create_match(
    request: CreateMatchRequest, registry: MatchRegistry = Depends(get_registry)
) -> MatchResponse:
    code = registry.create_match(request.player_id)
    return _match_response(registry.get_match_metadata(code))


@router.post("/online/matches/{code}/join")
async def join_match(
    code: str,
    request: JoinMatchRequest,
    registry: MatchRegistry = Depends(get_registry),
    session_router: SessionRouter = Depends(get_session_router),
) -> MatchResponse:
    game = registry.join_match(request.player_id, code)
    await session_router.broadcast_match_start(code, game)
    return _match_response(registry.get_match_metadata(code), game, request.player_id)


@router.get("/online/matches/{code}")
def get_match(
    code: str,
    player_id: Optional[str] = None,
    registry: MatchRegistry = Depends(get_registry),
) -> MatchResponse:
    metadata = registry.get_match_metadata(code)
    if metadata is None:
        raise MatchNotFoundError(f"Match {code} not found.")
    return _match_response(metadata, registry.get_match_state(code), player_id)


@router.delete("/online/players/{player_id}/matches")
def clear_player_matches(
    player_id: str, registry: MatchRegistry = Depends(get_registry)
) -> ClearMatchesResponse:
    registry.clear_player_matches(player_id)
    return ClearMatchesResponse(player_id=player_id)


# --- Realtime ---
@router.websocket("/ws/game")
async def game_socket(websocket: WebSocket) -> None:
    session_router: SessionRouter = websocket.app.state.session_router
    await websocket.accept()
    session_id = await session_router.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await session_router.handle_message(session_id, raw)
    except WebSocketDisconnect as disconnect:
        logger.debug("Websocket of session %s closed (code %s)", session_id, disconnect.code)
    finally:
        await session_router.disconnect(session_id)


def _match_response(
    metadata: MatchMetadata | None, game: Optional[Game] = None, player_id: Optional[str] = None
) -> MatchResponse:
    if metadata is None:
        raise MatchNotFoundError("Match disappeared while being read.")
    return MatchResponse(
        match_id=metadata.code,
        status=metadata.status,
        creator_id=metadata.creator_id,
        game_id=metadata.game_id,
        created_at=metadata.created_at,
        game=GameView.for_player(game, player_id) if game is not None else None,
    )
