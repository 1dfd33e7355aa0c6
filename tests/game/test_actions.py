"""Unit tests for /src/game/actions.py"""

import pytest

from src.core.exceptions import InvalidRequestError
from src.core.shared_types import ActionType
from src.game.actions import (
    Pass,
    PlaceCard,
    RequestWin,
    RespondToWinRequest,
    action_from_payload,
)
from src.game.position import Position


def test_place_card_from_payload() -> None:
    payload = {
        "type": "PLACE_CARD",
        "card": {"id": "c1", "power": 5, "name": "Imp", "imageUrl": "/imp.png"},
        "targetPosition": {"x": 1, "y": 4},
    }
    action = action_from_payload("alice", payload)

    assert isinstance(action, PlaceCard)
    assert action.type == ActionType.PLACE_CARD
    assert action.player_id == "alice"
    assert action.card.id == "c1"
    assert action.card.power == 5
    assert action.card.image_url == "/imp.png"
    assert action.position == Position(1, 4)
    assert action.timestamp > 0


@pytest.mark.parametrize(
    "payload, expected_type",
    [
        ({"type": "PASS"}, Pass),
        ({"type": "REQUEST_WIN_CALCULATION"}, RequestWin),
        ({"type": "RESPOND_TO_WIN_REQUEST", "accepted": False}, RespondToWinRequest),
    ],
)
def test_other_actions_from_payload(payload: dict, expected_type: type) -> None:
    assert isinstance(action_from_payload("bob", payload), expected_type)


def test_response_keeps_the_answer() -> None:
    action = action_from_payload("bob", {"type": "RESPOND_TO_WIN_REQUEST", "accepted": True})
    assert action.accepted is True


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "PASS",
        {},
        {"type": "FLIP_TABLE"},
        {"type": {"nested": True}},
        {"type": "PLACE_CARD", "targetPosition": {"x": 1, "y": 4}},  # no card
        {"type": "PLACE_CARD", "card": {"id": "c1"}},  # no position
        {"type": "PLACE_CARD", "card": {"id": "c1"}, "targetPosition": {"x": "left", "y": 4}},
        {"type": "PLACE_CARD", "card": {"id": "c1", "power": -3}, "targetPosition": {"x": 1, "y": 4}},
        {"type": "RESPOND_TO_WIN_REQUEST"},  # no answer
        {"type": "RESPOND_TO_WIN_REQUEST", "accepted": "yes"},
    ],
)
def test_malformed_payloads(payload) -> None:
    """Anything that cannot be turned into an action is a bad request, never a crash."""
    with pytest.raises(InvalidRequestError):
        action_from_payload("alice", payload)
