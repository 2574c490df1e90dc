"""
Реестр комнат (in-memory): создание, вход, ходы, выход.
Все изменения синхронны и завершаются до первого await, поэтому для одного
event loop отдельные блокировки на комнату не нужны. Хранилище вызывается
только после фиксации состояния в памяти, его ошибки логируются и глотаются.
"""
import logging
import random
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from . import board as rules
from .constants import FIRST_MARK, GameStatus, Mark, Outcome
from .errors import ErrorCode, Result
from .models import Game, Player, Room
from .snapshots import GameView, RoomView, room_view
from .storage import StatsSink

logger = logging.getLogger(__name__)

Coin = Callable[[], bool]


def fair_coin() -> bool:
    return random.random() < 0.5


def outcome_labels(outcome: Outcome, players: list[Player]) -> list[tuple[int, str]]:
    """Пары (telegram_id, "win" | "loss" | "draw") для записи статистики."""
    if outcome == Outcome.DRAW:
        return [(p.external_identity, "draw") for p in players]
    return [
        (p.external_identity, "win" if p.mark and p.mark.value == outcome.value else "loss")
        for p in players
    ]


@dataclass(frozen=True)
class JoinInfo:
    room: RoomView
    as_spectator: bool


@dataclass(frozen=True)
class MoveInfo:
    room: RoomView
    finished: bool

    @property
    def game(self) -> GameView:
        return self.room.game


@dataclass(frozen=True)
class LeaveInfo:
    room_id: str
    room_deleted: bool
    room: RoomView | None  # None если комната удалена


class RoomRegistry:
    """Единственный владелец комнат, привязок соединение→комната и очереди подбора."""

    def __init__(self, sink: StatsSink, coin: Coin = fair_coin):
        self.sink = sink
        self.coin = coin
        self._rooms: dict[str, Room] = {}
        self._room_by_conn: dict[str, str] = {}
        # Очередью управляет Matchmaker; реестр лишь чистит её при выходе
        self.matchmaking_queue: deque[str] = deque()

    # --- чтение ---

    def get_room(self, room_id: str) -> RoomView | None:
        room = self._rooms.get(room_id)
        return room_view(room) if room else None

    def get_room_by_connection(self, connection_id: str) -> RoomView | None:
        room = self._room_of(connection_id)
        return room_view(room) if room else None

    def participants(self, room_id: str) -> list[str]:
        room = self._rooms.get(room_id)
        return room.participant_ids() if room else []

    def room_count(self) -> int:
        return len(self._rooms)

    def _room_of(self, connection_id: str) -> Room | None:
        room_id = self._room_by_conn.get(connection_id)
        return self._rooms.get(room_id) if room_id else None

    # --- изменение ---

    def create_room(self, player: Player) -> str:
        self._detach(player.connection_id)
        player.mark = None
        player.ready_for_rematch = False
        room = Room(id=str(uuid.uuid4()), game=Game(players=[player]))
        self._rooms[room.id] = room
        self._room_by_conn[player.connection_id] = room.id
        logger.info("Room %s created by %s", room.id, player.connection_id)
        return room.id

    def join_room(self, room_id: str, player: Player) -> Result[JoinInfo]:
        room = self._rooms.get(room_id)
        if not room:
            return Result.failure(ErrorCode.ROOM_NOT_FOUND)
        conn_id = player.connection_id
        if self._room_by_conn.get(conn_id) == room_id:
            as_spectator = room.game.find_player(conn_id) is None
            return Result.success(JoinInfo(room=room_view(room), as_spectator=as_spectator))
        self._detach(conn_id)
        # Соединение не состояло в этой комнате, так что _detach её не удалит
        if len(room.game.players) >= 2:
            room.spectators.add(conn_id)
            self._room_by_conn[conn_id] = room_id
            logger.info("Room %s: %s joined as spectator", room_id, conn_id)
            return Result.success(JoinInfo(room=room_view(room), as_spectator=True))
        if not room.game.players:
            # Игроки ушли, остались зрители: входящий открывает новую партию
            player.mark = None
            player.ready_for_rematch = False
            room.game = Game(players=[player])
            self._room_by_conn[conn_id] = room_id
            logger.info("Room %s: %s took the empty seat", room_id, conn_id)
            return Result.success(JoinInfo(room=room_view(room), as_spectator=False))
        first = room.game.players[0]
        room.game = self._start_game(first, player)
        self._room_by_conn[conn_id] = room_id
        logger.info(
            "Room %s: game %s started, X=%s O=%s",
            room_id,
            room.game.id,
            room.game.player_with_mark(Mark.X).connection_id,
            room.game.player_with_mark(Mark.O).connection_id,
        )
        return Result.success(JoinInfo(room=room_view(room), as_spectator=False))

    def _start_game(self, first: Player, second: Player) -> Game:
        first_gets_x = self.coin()
        first.mark = Mark.X if first_gets_x else Mark.O
        second.mark = Mark.O if first_gets_x else Mark.X
        for p in (first, second):
            p.ready_for_rematch = False
        return Game(players=[first, second], turn=FIRST_MARK, status=GameStatus.ACTIVE)

    async def make_move(self, connection_id: str, row: int, col: int) -> Result[MoveInfo]:
        room = self._room_of(connection_id)
        if not room:
            return Result.failure(ErrorCode.PLAYER_NOT_IN_ROOM)
        game = room.game
        if game.status != GameStatus.ACTIVE:
            return Result.failure(ErrorCode.GAME_NOT_ACTIVE)
        player = game.find_player(connection_id)
        if not player:
            return Result.failure(ErrorCode.PLAYER_NOT_FOUND)
        if player.mark != game.turn:
            return Result.failure(ErrorCode.NOT_YOUR_TURN)
        if not rules.is_legal(game.board, row, col):
            return Result.failure(ErrorCode.INVALID_MOVE)

        rules.place(game.board, row, col, player.mark)
        game.touch()
        outcome = rules.evaluate(game.board)
        if outcome:
            game.status = GameStatus.FINISHED
            game.outcome = outcome
            logger.info("Room %s: game %s finished, result=%s", room.id, game.id, outcome.value)
        else:
            game.turn = rules.other_mark(game.turn)
        snapshot = room_view(room)
        # Игроков и их метки читаем до await: во время записи они могут уйти в другую комнату
        first_id, second_id = (p.external_identity for p in game.players)
        labels = outcome_labels(outcome, game.players) if outcome else []

        # Состояние уже зафиксировано, дальше только хранилище
        await self._save_game(game, first_id, second_id)
        await self._record_outcome(labels)
        return Result.success(MoveInfo(room=snapshot, finished=outcome is not None))

    async def _save_game(self, game: Game, first_id: int, second_id: int) -> None:
        try:
            await self.sink.save_game(game, first_id, second_id)
        except Exception:
            logger.exception("Failed to save game %s", game.id)

    async def _record_outcome(self, labels: list[tuple[int, str]]) -> None:
        for identity, label in labels:
            try:
                await self.sink.record_outcome(identity, label)
            except Exception:
                logger.exception("Failed to record %s for %s", label, identity)

    def leave_room(self, connection_id: str) -> Result[LeaveInfo]:
        """Повторный выход безопасен: вернёт PLAYER_NOT_IN_ROOM."""
        room = self._room_of(connection_id)
        if not room:
            self._room_by_conn.pop(connection_id, None)
            self._dequeue(connection_id)
            return Result.failure(ErrorCode.PLAYER_NOT_IN_ROOM)
        info = self._detach(connection_id)
        return Result.success(info)

    def _detach(self, connection_id: str) -> LeaveInfo | None:
        self._dequeue(connection_id)
        room = self._room_of(connection_id)
        self._room_by_conn.pop(connection_id, None)
        if not room:
            return None
        game = room.game
        leaving = game.find_player(connection_id)
        if leaving:
            game.players.remove(leaving)
            if game.status == GameStatus.ACTIVE:
                # Оставшийся получает победу за неявку (в статистику не пишется)
                winner = game.players[0]
                game.status = GameStatus.FINISHED
                game.outcome = Outcome(winner.mark.value)
                game.touch()
                logger.info("Room %s: game %s abandoned by %s", room.id, game.id, connection_id)
            elif game.status == GameStatus.WAITING and not game.players:
                # Ожидающая партия без игроков закрывается ничьей, зрители ждут нового игрока
                game.status = GameStatus.FINISHED
                game.outcome = Outcome.DRAW
                game.touch()
                logger.info("Room %s: waiting game %s closed, no players left", room.id, game.id)
            for p in game.players:
                p.ready_for_rematch = False
        room.spectators.discard(connection_id)
        if room.is_empty:
            del self._rooms[room.id]
            logger.info("Room %s deleted (empty)", room.id)
            return LeaveInfo(room_id=room.id, room_deleted=True, room=None)
        return LeaveInfo(room_id=room.id, room_deleted=False, room=room_view(room))

    def _dequeue(self, connection_id: str) -> None:
        try:
            self.matchmaking_queue.remove(connection_id)
        except ValueError:
            pass

    # --- для Matchmaker и RematchCoordinator ---

    def owns_waiting_room(self, connection_id: str) -> bool:
        room = self._room_of(connection_id)
        if not room:
            return False
        game = room.game
        return (
            game.status == GameStatus.WAITING
            and len(game.players) == 1
            and game.players[0].connection_id == connection_id
        )

    def room_state(self, connection_id: str) -> Room | None:
        """Изменяемая комната соединения. Только для компонентов ядра."""
        return self._room_of(connection_id)
