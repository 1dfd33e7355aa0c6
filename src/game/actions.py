"""
What a player can do on their turn.

MoveAction is a closed union; the Game handles every member in a single `match` statement.
"""

import time
from dataclasses import dataclass, field
from typing import Any

from src.core.exceptions import InvalidRequestError
from src.core.shared_types import ActionType
from src.game.cards import Card
from src.game.position import Position


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PlaceCard:
    player_id: str
    card: Card
    position: Position
    timestamp: int = field(default_factory=now_ms)

    type = ActionType.PLACE_CARD


@dataclass(frozen=True)
class Pass:
    player_id: str
    timestamp: int = field(default_factory=now_ms)

    type = ActionType.PASS


@dataclass(frozen=True)
class RequestWin:
    """Ask the opponent to end the game now and score the board as it is."""

    player_id: str
    timestamp: int = field(default_factory=now_ms)

    type = ActionType.REQUEST_WIN_CALCULATION


@dataclass(frozen=True)
class RespondToWinRequest:
    player_id: str
    accepted: bool
    timestamp: int = field(default_factory=now_ms)

    type = ActionType.RESPOND_TO_WIN_REQUEST


MoveAction = PlaceCard | Pass | RequestWin | RespondToWinRequest


def action_from_payload(player_id: str, payload: dict[str, Any]) -> MoveAction:
    """
    Rebuild a typed action from a transport payload.

    ex) {"type": "PLACE_CARD", "card": {"id": "c1", "power": 5, "name": "Imp"}, "targetPosition": {"x": 1, "y": 4}}
    """
    if not isinstance(payload, dict):
        raise InvalidRequestError("Action payload must be an object")
    raw_type = payload.get("type")
    if not isinstance(raw_type, str) or raw_type not in ActionType.__members__:
        raise InvalidRequestError(f"Unknown action type: {raw_type!r}")
    action_type = ActionType(raw_type)

    match action_type:
        case ActionType.PLACE_CARD:
            return PlaceCard(
                player_id=player_id,
                card=_card_from_payload(payload.get("card")),
                position=_position_from_payload(payload.get("targetPosition")),
            )
        case ActionType.PASS:
            return Pass(player_id=player_id)
        case ActionType.REQUEST_WIN_CALCULATION:
            return RequestWin(player_id=player_id)
        case ActionType.RESPOND_TO_WIN_REQUEST:
            accepted = payload.get("accepted")
            if not isinstance(accepted, bool):
                raise InvalidRequestError(
                    "Response action must include a boolean 'accepted' value"
                )
            return RespondToWinRequest(player_id=player_id, accepted=accepted)


def _card_from_payload(data: Any) -> Card:
    if not isinstance(data, dict) or "id" not in data:
        raise InvalidRequestError("Card is required for PLACE_CARD action")
    try:
        return Card(
            id=str(data["id"]),
            power=int(data.get("power", 0)),
            name=str(data.get("name", "")),
            image_url=data.get("imageUrl"),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Invalid card data: {data!r}") from exc


def _position_from_payload(data: Any) -> Position:
    if not isinstance(data, dict) or "x" not in data or "y" not in data:
        raise InvalidRequestError("Target position is required for PLACE_CARD action")
    try:
        return Position(int(data["x"]), int(data["y"]))
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Invalid target position: {data!r}") from exc
