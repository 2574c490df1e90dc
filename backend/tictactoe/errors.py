"""
Результаты операций ядра. Ошибки не бросаются, а возвращаются в Result:
шлюз сам превращает их в событие error для клиента.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INVALID_INPUT = "invalid_input"


class ErrorCode(str, Enum):
    ROOM_NOT_FOUND = "room_not_found"
    PLAYER_NOT_IN_ROOM = "player_not_in_room"
    PLAYER_NOT_FOUND = "player_not_found"
    NOT_YOUR_TURN = "not_your_turn"
    GAME_NOT_ACTIVE = "game_not_active"
    GAME_NOT_FINISHED = "game_not_finished"
    OPPONENT_MISSING = "opponent_missing"
    INVALID_MOVE = "invalid_move"

    @property
    def kind(self) -> ErrorKind:
        return _KINDS[self]

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_KINDS = {
    ErrorCode.ROOM_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.PLAYER_NOT_IN_ROOM: ErrorKind.NOT_FOUND,
    ErrorCode.PLAYER_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.NOT_YOUR_TURN: ErrorKind.INVALID_STATE,
    ErrorCode.GAME_NOT_ACTIVE: ErrorKind.INVALID_STATE,
    ErrorCode.GAME_NOT_FINISHED: ErrorKind.INVALID_STATE,
    ErrorCode.OPPONENT_MISSING: ErrorKind.INVALID_STATE,
    ErrorCode.INVALID_MOVE: ErrorKind.INVALID_INPUT,
}

_MESSAGES = {
    ErrorCode.ROOM_NOT_FOUND: "Room not found",
    ErrorCode.PLAYER_NOT_IN_ROOM: "Player not in any room",
    ErrorCode.PLAYER_NOT_FOUND: "Player not found",
    ErrorCode.NOT_YOUR_TURN: "Not your turn",
    ErrorCode.GAME_NOT_ACTIVE: "Game is not active",
    ErrorCode.GAME_NOT_FINISHED: "Game is not finished",
    ErrorCode.OPPONENT_MISSING: "Opponent has left the room",
    ErrorCode.INVALID_MOVE: "Invalid move",
}


@dataclass(frozen=True)
class Result(Generic[T]):
    """Успех (value) или ошибка (error). Ровно одно из двух осмысленно."""

    value: T | None = None
    error: ErrorCode | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorCode) -> "Result[T]":
        return cls(error=error)
