"""Cards and decks"""

from dataclasses import dataclass, field
from typing import Optional, Self

from src.core.models import CardModel, DeckModel

DECK_SIZE = 15
HAND_SIZE = 5


@dataclass(frozen=True)
class Card:
    """Identity is the id: two cards may share power and name but never an id."""

    id: str
    power: int = field(compare=False)
    name: str = field(compare=False)
    image_url: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.power < 0:
            raise ValueError(f"Card power cannot be negative: {self.power}")

    @classmethod
    def from_model(cls, model: CardModel) -> Self:
        return cls(model.id, model.power, model.name, model.image_url)

    def to_model(self) -> CardModel:
        return CardModel(
            id=self.id, power=self.power, name=self.name, image_url=self.image_url
        )


@dataclass
class Deck:
    id: str
    owner_id: str
    cards: list[Card]

    @classmethod
    def from_model(cls, model: DeckModel) -> Self:
        return cls(model.id, model.owner_id, [Card.from_model(c) for c in model.cards])

    def is_playable(self) -> bool:
        return len(self.cards) == DECK_SIZE

    def deal(self, count: int = HAND_SIZE) -> list[Card]:
        """Take cards from the top of the deck."""
        dealt, self.cards = self.cards[:count], self.cards[count:]
        return dealt
