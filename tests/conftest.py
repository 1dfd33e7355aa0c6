"""
Pytest will auto-discover / import this file called 'conftest.py'. ]
This file defines fixtures/variables required for testing multiple layers.
"""

import random
from typing import Callable, Generator, Optional

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.models import CardModel, DeckModel, PlayerProfile
from src.db.memory_repository import InMemoryGameRepository, InMemoryPlayerRepository
from src.db.schema import Base
from src.game.cards import DECK_SIZE, Card, Deck
from src.game.game import Game
from src.services.game_service import GameService

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)

ALICE = "alice"
BOB = "bob"

DeckFactory = Callable[..., Deck]


@pytest.fixture
def db_session_repo() -> Generator[Session, None, None]:
    """Connection to a test database. Tables are removed at teardown to make unit tests of repository independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        Base.metadata.drop_all(bind=engine)
        db.close()


# --- Cards and decks ---
@pytest.fixture
def make_deck() -> DeckFactory:
    """
    Build a deck of 15 cards. Card i (0-based) has id '<deck>-<i>' and power i + 1 unless `powers` says otherwise,
    so the hand dealt from a fresh deck holds the powers 1 to 5.
    """

    def _make(owner_id: str, deck_id: Optional[str] = None, powers: Optional[list[int]] = None) -> Deck:
        deck_id = deck_id or f"deck-{owner_id}"
        powers = powers or [i + 1 for i in range(DECK_SIZE)]
        cards = [
            Card(id=f"{deck_id}-{i:02d}", power=power, name=f"Card {i}")
            for i, power in enumerate(powers)
        ]
        return Deck(id=deck_id, owner_id=owner_id, cards=cards)

    return _make


def deck_to_model(deck: Deck) -> DeckModel:
    return DeckModel(
        id=deck.id,
        owner_id=deck.owner_id,
        cards=[CardModel(c.id, c.power, c.name, c.image_url) for c in deck.cards],
    )


# --- Games ---
@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def new_game(make_deck: DeckFactory, rng: random.Random) -> Game:
    """A freshly started game between alice (first to move, starts at 2,4) and bob (starts at 2,0)."""
    return Game.new_game("game-1", [make_deck(ALICE), make_deck(BOB)], rng=rng)


# --- Repositories and service ---
@pytest.fixture
def game_repository() -> Generator[InMemoryGameRepository, None, None]:
    repo = InMemoryGameRepository()
    try:
        yield repo
    finally:
        repo.clear()


@pytest.fixture
def player_repository(make_deck: DeckFactory) -> InMemoryPlayerRepository:
    """
    alice plays with her current deck.
    bob has no current deck anymore and falls back to his original one.
    carol has no deck at all.
    """
    repo = InMemoryPlayerRepository()
    repo.save_deck(deck_to_model(make_deck(ALICE)))
    repo.save_deck(deck_to_model(make_deck(BOB, deck_id="deck-bob-original")))
    repo.save_player(PlayerProfile(id=ALICE, name="Alice", current_deck_id="deck-alice"))
    repo.save_player(
        PlayerProfile(
            id=BOB,
            name="Bob",
            current_deck_id="deck-bob-missing",
            original_deck_id="deck-bob-original",
        )
    )
    repo.save_player(PlayerProfile(id="carol", name="Carol"))
    return repo


@pytest.fixture
def game_service(
    game_repository: InMemoryGameRepository,
    player_repository: InMemoryPlayerRepository,
    rng: random.Random,
) -> GameService:
    return GameService(game_repository, player_repository, rng=rng)


@pytest.fixture
def add_player(
    player_repository: InMemoryPlayerRepository, make_deck: DeckFactory
) -> Callable[[str], None]:
    """Register one more player with a playable current deck."""

    def _add(player_id: str) -> None:
        deck = make_deck(player_id)
        player_repository.save_deck(deck_to_model(deck))
        player_repository.save_player(
            PlayerProfile(id=player_id, name=player_id.title(), current_deck_id=deck.id)
        )

    return _add
