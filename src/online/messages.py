"""The envelope every websocket message travels in: {type, data, timestamp}."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from src.game.actions import now_ms


class MessageType(StrEnum):
    CONNECTION_SUCCESS = "CONNECTION_SUCCESS"
    JOIN_MATCH = "JOIN_MATCH"
    JOIN_SUCCESS = "JOIN_SUCCESS"
    LEAVE_MATCH = "LEAVE_MATCH"
    LEAVE_SUCCESS = "LEAVE_SUCCESS"
    GAME_ACTION = "GAME_ACTION"
    GAME_STATE_REQUEST = "GAME_STATE_REQUEST"
    GAME_STATE_UPDATE = "GAME_STATE_UPDATE"
    PLAYER_JOINED = "PLAYER_JOINED"
    PLAYER_DISCONNECTED = "PLAYER_DISCONNECTED"
    PLAYER_RECONNECTED = "PLAYER_RECONNECTED"
    GAME_END = "GAME_END"
    ERROR = "ERROR"


class WebSocketMessage(BaseModel):
    type: MessageType
    data: Any = None
    timestamp: int = Field(default_factory=now_ms)  # epoch milliseconds

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def build(cls, message_type: MessageType, data: Any = None) -> "WebSocketMessage":
        return cls(type=message_type, data=data)
