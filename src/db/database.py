"""Generate database sessions"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from src.core.config import get_settings
from src.db.schema import Base


def create_db_engine(database_url: str | None = None) -> Engine:
    url = database_url or get_settings().database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connect_args)
    # Ensure all tables are created
    Base.metadata.create_all(bind=engine)
    return engine


def create_session_factory(engine: Engine) -> scoped_session[Session]:
    """
    Thread-local sessions: websocket handlers, REST handlers and the sweeper's scheduler thread
    all go through the same repositories.
    """
    return scoped_session(sessionmaker(bind=engine, expire_on_commit=False))

