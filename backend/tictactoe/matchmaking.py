"""
Очередь подбора соперника (FIFO).
Ждущий игрок сидит в своей комнате со статусом WAITING; новый игрок
подсаживается к первому ждущему, чья комната всё ещё свободна.
"""
import logging
from dataclasses import dataclass

from .models import Player
from .rooms import RoomRegistry
from .snapshots import RoomView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    room: RoomView


class Matchmaker:
    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    @property
    def _queue(self):
        return self.registry.matchmaking_queue

    def waiting_count(self) -> int:
        return len(self._queue)

    def is_waiting(self, connection_id: str) -> bool:
        return connection_id in self._queue

    def cancel(self, connection_id: str) -> bool:
        """Убрать из очереди. Комната ожидания остаётся. True если был в очереди."""
        if connection_id not in self._queue:
            return False
        self._queue.remove(connection_id)
        return True

    def find_match(self, player: Player) -> MatchResult:
        conn_id = player.connection_id
        # Повторный вызов не должен занимать второе место в очереди
        self.cancel(conn_id)

        while self._queue:
            waiting_id = self._queue.popleft()
            if not self.registry.owns_waiting_room(waiting_id):
                logger.info("Matchmaking: dropping stale waiter %s", waiting_id)
                continue
            room_id = self.registry.room_state(waiting_id).id
            joined = self.registry.join_room(room_id, player)
            if joined.ok:
                logger.info("Matchmaking: %s matched with %s in room %s", conn_id, waiting_id, room_id)
                return MatchResult(matched=True, room=joined.value.room)

        room_id = self.registry.create_room(player)
        self._queue.append(conn_id)
        logger.info("Matchmaking: %s waiting in room %s (queue=%d)", conn_id, room_id, len(self._queue))
        return MatchResult(matched=False, room=self.registry.get_room(room_id))
