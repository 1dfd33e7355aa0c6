"""
Type definitions used across layers
"""

from enum import StrEnum


class GameState(StrEnum):
    INITIALIZED = "INITIALIZED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# --- Games that still accept actions (and can be abandoned)
ACTIVE_STATES: tuple[GameState, ...] = (GameState.INITIALIZED, GameState.IN_PROGRESS)


class GameMode(StrEnum):
    LOCAL = "LOCAL"
    ONLINE = "ONLINE"


class MatchStatus(StrEnum):
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"


class ConnectionStatus(StrEnum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class ActionType(StrEnum):
    PLACE_CARD = "PLACE_CARD"
    PASS = "PASS"
    # --- win-request exchange: optional extension of the turn state machine
    REQUEST_WIN_CALCULATION = "REQUEST_WIN_CALCULATION"
    RESPOND_TO_WIN_REQUEST = "RESPOND_TO_WIN_REQUEST"


class MoveRejection(StrEnum):
    """Reason strings reported back to the caller when a move is refused."""

    GAME_NOT_IN_PROGRESS = "Game is not in progress"
    NOT_YOUR_TURN = "Not your turn"
    INVALID_OR_OCCUPIED_POSITION = "Invalid or occupied position"
    CARD_NOT_IN_HAND = "Card not in player's hand"
    INVALID_STARTING_POSITION = "First card must be placed on your starting position"
    MUST_BE_ADJACENT_TO_OWN_CARD = "Must place card adjacent to your existing cards"
    NO_PENDING_WIN_REQUEST = "There is no pending win request to respond to"
    WIN_REQUEST_PENDING = "A win request is pending and must be answered first"
