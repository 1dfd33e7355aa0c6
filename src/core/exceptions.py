"""
Exceptions shared by all layers.

Hierarchy:
- GameError (base for everything raised on purpose by this application)
  - InvalidRequestError (malformed input at the boundary)
  - InvalidPositionError (board level: out of bounds / occupied)
  - GameStateError (lifecycle violations)
  - InvalidMoveError (a rule rejected the move; carries a reason)
    - GameNotInProgressError (also a GameStateError), NotYourTurnError,
      InvalidOrOccupiedPositionError, CardNotInHandError,
      InvalidStartingPositionError, MustBeAdjacentToOwnCardError,
      NoPendingWinRequestError, WinRequestPendingError
  - RepositoryError (persistence collaborator)
    - GameNotFoundError, ResourceUnavailableError
  - MatchError (online coordination)
    - MatchNotFoundError, MatchAlreadyStartedError
"""

from src.core.shared_types import MoveRejection


class GameError(Exception):
    """Base exception for the card game backend."""


class InvalidRequestError(GameError):
    pass


class InvalidPositionError(GameError):
    pass


class GameStateError(GameError):
    pass


class InvalidMoveError(GameError):
    """A move was refused. Game state is unchanged when this is raised."""

    reason: MoveRejection

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.reason.value)


class GameNotInProgressError(InvalidMoveError, GameStateError):
    reason = MoveRejection.GAME_NOT_IN_PROGRESS


class NotYourTurnError(InvalidMoveError):
    reason = MoveRejection.NOT_YOUR_TURN


class InvalidOrOccupiedPositionError(InvalidMoveError):
    reason = MoveRejection.INVALID_OR_OCCUPIED_POSITION


class CardNotInHandError(InvalidMoveError):
    reason = MoveRejection.CARD_NOT_IN_HAND


class InvalidStartingPositionError(InvalidMoveError):
    reason = MoveRejection.INVALID_STARTING_POSITION


class MustBeAdjacentToOwnCardError(InvalidMoveError):
    reason = MoveRejection.MUST_BE_ADJACENT_TO_OWN_CARD


class NoPendingWinRequestError(InvalidMoveError):
    reason = MoveRejection.NO_PENDING_WIN_REQUEST


class WinRequestPendingError(InvalidMoveError):
    reason = MoveRejection.WIN_REQUEST_PENDING


class RepositoryError(GameError):
    pass


class GameNotFoundError(RepositoryError):
    pass


class ResourceUnavailableError(RepositoryError):
    """A collaborator resource (player, deck) could not be resolved."""


class MatchError(GameError):
    pass


class MatchNotFoundError(MatchError):
    pass


class MatchAlreadyStartedError(MatchError):
    pass
