"""
Реванш: оба игрока подтверждают готовность, после чего в той же комнате
начинается новая партия с переставленными метками. X снова ходит первым.
"""
import logging
from dataclasses import dataclass

from .board import other_mark
from .constants import FIRST_MARK, GameStatus, RematchState
from .errors import ErrorCode, Result
from .models import Game, Room
from .rooms import RoomRegistry
from .snapshots import RoomView, room_view

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RematchInfo:
    room: RoomView
    started: bool  # True — обе стороны готовы, новая партия уже идёт
    opponent_id: str


def rematch_state(room: Room) -> RematchState:
    if room.game.status != GameStatus.FINISHED:
        return RematchState.NONE
    ready = sum(1 for p in room.game.players if p.ready_for_rematch)
    if ready == 0:
        return RematchState.NONE
    if ready == 2:
        return RematchState.BOTH_READY
    return RematchState.ONE_READY


def reset_game(game: Game) -> Game:
    """Новая партия для тех же двух игроков: метки меняются местами."""
    for p in game.players:
        p.mark = other_mark(p.mark) if p.mark else None
        p.ready_for_rematch = False
    return Game(players=list(game.players), turn=FIRST_MARK, status=GameStatus.ACTIVE)


class RematchCoordinator:
    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    def state(self, connection_id: str) -> RematchState:
        room = self.registry.room_state(connection_id)
        return rematch_state(room) if room else RematchState.NONE

    def _finished_room(self, connection_id: str) -> Result[Room]:
        room = self.registry.room_state(connection_id)
        if not room:
            return Result.failure(ErrorCode.PLAYER_NOT_IN_ROOM)
        if not room.game.find_player(connection_id):
            return Result.failure(ErrorCode.PLAYER_NOT_FOUND)
        if room.game.status != GameStatus.FINISHED:
            return Result.failure(ErrorCode.GAME_NOT_FINISHED)
        if len(room.game.players) < 2:
            return Result.failure(ErrorCode.OPPONENT_MISSING)
        return Result.success(room)

    def request_rematch(self, connection_id: str) -> Result[RematchInfo]:
        """Запрос и согласие на реванш — одна и та же операция."""
        found = self._finished_room(connection_id)
        if not found.ok:
            return Result.failure(found.error)
        room = found.value
        game = room.game
        game.find_player(connection_id).ready_for_rematch = True
        opponent = game.opponent_of(connection_id)

        if rematch_state(room) == RematchState.BOTH_READY:
            old_id = game.id
            room.game = reset_game(game)
            logger.info("Room %s: rematch, game %s -> %s", room.id, old_id, room.game.id)
            return Result.success(RematchInfo(room=room_view(room), started=True, opponent_id=opponent.connection_id))

        logger.info("Room %s: %s is ready for rematch", room.id, connection_id)
        return Result.success(RematchInfo(room=room_view(room), started=False, opponent_id=opponent.connection_id))

    def decline_rematch(self, connection_id: str) -> Result[RematchInfo]:
        """Отказ сбрасывает готовность обоих, чтобы старый запрос не сработал позже."""
        found = self._finished_room(connection_id)
        if not found.ok:
            return Result.failure(found.error)
        room = found.value
        for p in room.game.players:
            p.ready_for_rematch = False
        opponent = room.game.opponent_of(connection_id)
        logger.info("Room %s: %s declined rematch", room.id, connection_id)
        return Result.success(RematchInfo(room=room_view(room), started=False, opponent_id=opponent.connection_id))
