"""
Неизменяемые снимки комнаты/партии для рассылки клиентам.
Снимок снимается сразу после изменения и не меняется вслед за комнатой.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .constants import GameStatus, Mark, Outcome
from .models import Game, Player, Room


@dataclass(frozen=True)
class PlayerView:
    connection_id: str
    external_identity: int
    display_name: str
    mark: Mark | None
    ready_for_rematch: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.connection_id,
            "telegram_id": self.external_identity,
            "username": self.display_name,
            "symbol": self.mark.value if self.mark else None,
            "is_ready": self.ready_for_rematch,
        }


@dataclass(frozen=True)
class GameView:
    game_id: str
    players: tuple[PlayerView, ...]
    board: tuple[tuple[Mark | None, ...], ...]
    turn: Mark
    status: GameStatus
    outcome: Outcome | None
    created_at: datetime
    updated_at: datetime

    def player(self, connection_id: str) -> PlayerView | None:
        for p in self.players:
            if p.connection_id == connection_id:
                return p
        return None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.game_id,
            "players": [p.to_payload() for p in self.players],
            "board": [[c.value if c else None for c in row] for row in self.board],
            "current_player": self.turn.value,
            "status": self.status.value,
            "result": self.outcome.value if self.outcome else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class RoomView:
    room_id: str
    game: GameView
    spectators: frozenset[str]

    def participant_ids(self) -> list[str]:
        return [p.connection_id for p in self.game.players] + sorted(self.spectators)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.room_id,
            "game": self.game.to_payload(),
            "spectators": sorted(self.spectators),
        }


def player_view(p: Player) -> PlayerView:
    return PlayerView(
        connection_id=p.connection_id,
        external_identity=p.external_identity,
        display_name=p.display_name,
        mark=p.mark,
        ready_for_rematch=p.ready_for_rematch,
    )


def game_view(g: Game) -> GameView:
    return GameView(
        game_id=g.id,
        players=tuple(player_view(p) for p in g.players),
        board=tuple(tuple(row) for row in g.board),
        turn=g.turn,
        status=g.status,
        outcome=g.outcome,
        created_at=g.created_at,
        updated_at=g.updated_at,
    )


def room_view(r: Room) -> RoomView:
    return RoomView(room_id=r.id, game=game_view(r.game), spectators=frozenset(r.spectators))
