"""Application entrypoint: wires persistence, services, online coordination and the HTTP surface together."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import handle_game_error, router
from src.core.config import Settings, get_settings
from src.core.exceptions import GameError
from src.db.database import create_db_engine, create_session_factory
from src.db.repository import GameRepository, PlayerRepository
from src.db.sql_repository import SQLGameRepository, SQLPlayerRepository
from src.online.match_registry import MatchRegistry
from src.online.session_router import SessionRouter
from src.online.sweeper import AbandonmentSweeper
from src.services.game_service import GameService

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # the scheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    games: Optional[GameRepository] = None,
    players: Optional[PlayerRepository] = None,
) -> FastAPI:
    """
    Build the application. Repositories default to SQL ones on `settings.database_url`;
    tests pass in-memory ones instead.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if games is None or players is None:
        db_session = create_session_factory(create_db_engine(settings.database_url))
        if games is None:
            games = SQLGameRepository(db_session)
        if players is None:
            players = SQLPlayerRepository(db_session)

    game_service = GameService(games, players)
    registry = MatchRegistry(game_service, grace_seconds=settings.match_cleanup_grace_seconds)
    session_router = SessionRouter(registry, game_service)
    sweeper = AbandonmentSweeper(game_service, registry, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.enable_sweeper:
            sweeper.start()
        yield
        sweeper.shutdown()

    app = FastAPI(title="Card game backend", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GameError, handle_game_error)
    app.include_router(router)

    app.state.settings = settings
    app.state.game_service = game_service
    app.state.registry = registry
    app.state.session_router = session_router
    app.state.sweeper = sweeper
    logger.info("Application created (database: %s)", settings.database_url)
    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
