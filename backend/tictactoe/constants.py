"""Константы партии: метки, статусы, исходы."""
from enum import Enum
from typing import TypedDict

BOARD_SIZE = 3


class Mark(str, Enum):
    X = "X"
    O = "O"


class GameStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "playing"
    FINISHED = "finished"


class Outcome(str, Enum):
    X = "X"
    O = "O"
    DRAW = "draw"


class RematchState(str, Enum):
    NONE = "none"
    ONE_READY = "one_ready"
    BOTH_READY = "both_ready"


class PlayerStats(TypedDict):
    telegram_id: int
    wins: int
    losses: int
    draws: int
    total_games: int


# Ходит первым всегда X, независимо от того, кому он достался
FIRST_MARK = Mark.X
