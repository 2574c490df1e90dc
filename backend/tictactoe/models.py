"""Изменяемое состояние комнат (in-memory). Наружу отдаются только снимки."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .board import Board, empty_board
from .constants import FIRST_MARK, GameStatus, Mark, Outcome


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Player:
    connection_id: str
    external_identity: int  # telegram id
    display_name: str
    mark: Mark | None = None
    ready_for_rematch: bool = False


@dataclass
class Game:
    players: list[Player]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    board: Board = field(default_factory=empty_board)
    turn: Mark = FIRST_MARK
    status: GameStatus = GameStatus.WAITING
    outcome: Outcome | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def find_player(self, connection_id: str) -> Player | None:
        for p in self.players:
            if p.connection_id == connection_id:
                return p
        return None

    def player_with_mark(self, mark: Mark) -> Player | None:
        for p in self.players:
            if p.mark == mark:
                return p
        return None

    def opponent_of(self, connection_id: str) -> Player | None:
        for p in self.players:
            if p.connection_id != connection_id:
                return p
        return None

    def touch(self) -> None:
        self.updated_at = _now()


@dataclass
class Room:
    id: str
    game: Game
    spectators: set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.game.players and not self.spectators

    def participant_ids(self) -> list[str]:
        return [p.connection_id for p in self.game.players] + sorted(self.spectators)
