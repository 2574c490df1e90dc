"""
Обработка сообщений WebSocket: auth, комнаты, подбор, ходы, реванш.
Ядро возвращает снимки, здесь они рассылаются всем участникам комнаты.
"""
import json
import logging
import uuid

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .auth import validate_init_data
from .config import get_config
from .errors import ErrorCode
from .matchmaking import Matchmaker
from .models import Player
from .rematch import RematchCoordinator
from .rooms import Coin, RoomRegistry, fair_coin
from .snapshots import GameView
from .storage import StatsSink
from .ws_manager import WSManager

logger = logging.getLogger(__name__)


class GameServices:
    """Всё состояние сервера: реестр, очередь, реванш, подключения, хранилище."""

    def __init__(self, sink: StatsSink, coin: Coin = fair_coin):
        self.sink = sink
        self.registry = RoomRegistry(sink, coin)
        self.matchmaker = Matchmaker(self.registry)
        self.rematch = RematchCoordinator(self.registry)
        self.manager = WSManager()


async def _send_error(svc: GameServices, player: Player, code: ErrorCode) -> None:
    await svc.manager.send(player.connection_id, "error", message=code.message, code=code.value)


async def _stats_for(svc: GameServices, game: GameView) -> list[dict]:
    stats = []
    for p in game.players:
        try:
            s = await svc.sink.get_stats(p.external_identity)
        except Exception:
            logger.exception("Failed to load stats for %s", p.external_identity)
            continue
        if s:
            stats.append(s)
    return stats


async def leave_current_room(svc: GameServices, player: Player) -> bool:
    """Общий путь для leave-room и разрыва соединения."""
    result = svc.registry.leave_room(player.connection_id)
    if not result.ok:
        return False
    info = result.value
    if info.room:
        others = info.room.participant_ids()
        await svc.manager.send_many(others, "player-left", player_id=player.connection_id)
        await svc.manager.send_many(others, "game-updated", game=info.room.game.to_payload())
    logger.info("Room %s: %s left (deleted=%s)", info.room_id, player.connection_id, info.room_deleted)
    return True


async def _leave_other_room(svc: GameServices, player: Player, room_id: str | None = None) -> None:
    current = svc.registry.get_room_by_connection(player.connection_id)
    if current and current.room_id != room_id:
        await leave_current_room(svc, player)


async def on_create_room(svc: GameServices, player: Player, data: dict) -> None:
    await _leave_other_room(svc, player)
    room_id = svc.registry.create_room(player)
    await svc.manager.send(player.connection_id, "room-created", room_id=room_id)
    room = svc.registry.get_room(room_id)
    await svc.manager.send(player.connection_id, "room-joined", room=room.to_payload())


async def on_join_room(svc: GameServices, player: Player, data: dict) -> None:
    room_id = data.get("room_id")
    if not isinstance(room_id, str) or svc.registry.get_room(room_id) is None:
        await _send_error(svc, player, ErrorCode.ROOM_NOT_FOUND)
        return
    await _leave_other_room(svc, player, room_id)
    result = svc.registry.join_room(room_id, player)
    if not result.ok:
        await _send_error(svc, player, result.error)
        return
    room = result.value.room
    await svc.manager.send(player.connection_id, "room-joined", room=room.to_payload())
    await svc.manager.send_many(
        room.participant_ids(),
        "game-updated",
        exclude=player.connection_id,
        game=room.game.to_payload(),
    )


async def on_find_match(svc: GameServices, player: Player, data: dict) -> None:
    if not svc.registry.owns_waiting_room(player.connection_id):
        await _leave_other_room(svc, player)
    result = svc.matchmaker.find_match(player)
    room = result.room
    if not result.matched:
        await svc.manager.send(player.connection_id, "room-joined", room=room.to_payload())
        return
    participants = room.participant_ids()
    await svc.manager.send_many(participants, "match-found", room=room.to_payload())
    await svc.manager.send_many(participants, "game-updated", game=room.game.to_payload())


async def on_make_move(svc: GameServices, player: Player, data: dict) -> None:
    result = await svc.registry.make_move(player.connection_id, data.get("row"), data.get("col"))
    if not result.ok:
        await _send_error(svc, player, result.error)
        return
    move = result.value
    participants = move.room.participant_ids()
    await svc.manager.send_many(participants, "move-made", game=move.game.to_payload())
    if move.finished:
        stats = await _stats_for(svc, move.game)
        await svc.manager.send_many(participants, "game-ended", game=move.game.to_payload(), stats=stats)


async def on_request_rematch(svc: GameServices, player: Player, data: dict) -> None:
    result = svc.rematch.request_rematch(player.connection_id)
    if not result.ok:
        await _send_error(svc, player, result.error)
        return
    info = result.value
    if info.started:
        participants = info.room.participant_ids()
        await svc.manager.send_many(participants, "rematch-accepted", room=info.room.to_payload())
        await svc.manager.send_many(participants, "game-updated", game=info.room.game.to_payload())
        return
    await svc.manager.send(info.opponent_id, "rematch-requested", player_id=player.connection_id)


async def on_decline_rematch(svc: GameServices, player: Player, data: dict) -> None:
    result = svc.rematch.decline_rematch(player.connection_id)
    if not result.ok:
        await _send_error(svc, player, result.error)
        return
    await svc.manager.send(result.value.opponent_id, "rematch-declined")


async def on_leave_room(svc: GameServices, player: Player, data: dict) -> None:
    if not await leave_current_room(svc, player):
        await _send_error(svc, player, ErrorCode.PLAYER_NOT_IN_ROOM)


HANDLERS = {
    "create-room": on_create_room,
    "join-room": on_join_room,
    "find-match": on_find_match,
    "make-move": on_make_move,
    "request-rematch": on_request_rematch,
    # Согласие — тот же шаг, что и запрос: отмечаем готовность
    "accept-rematch": on_request_rematch,
    "decline-rematch": on_decline_rematch,
    "leave-room": on_leave_room,
}


async def handle_ws_message(svc: GameServices, player: Player, raw: str) -> bool:
    """
    Обрабатывает одно сообщение от уже авторизованного клиента.
    Возвращает False если соединение нужно закрыть.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("WS: invalid JSON from %s: %s", player.connection_id, e)
        return True
    if not isinstance(data, dict):
        logger.warning("WS: non-object message from %s", player.connection_id)
        return True
    t = data.get("type")
    logger.info("WS: msg from %s type=%s", player.connection_id, t)
    handler = HANDLERS.get(t)
    if handler is None:
        logger.warning("WS: unknown message type %s from %s", t, player.connection_id)
        return True
    try:
        await handler(svc, player, data)
    except Exception:
        logger.exception("WS: handler %s failed for %s", t, player.connection_id)
        await svc.manager.send(player.connection_id, "error", message=f"Failed to handle {t}")
    return True


async def _authenticate(ws: WebSocket) -> dict | None:
    config = get_config()
    raw = await ws.receive_text()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = {}
    msg_type = data.get("type") if isinstance(data, dict) else None
    logger.info("WS: first message type=%s", msg_type)
    if msg_type != "auth":
        logger.warning("WS: expected auth, got %s, closing 4001", msg_type)
        await ws.close(code=4001)
        return None
    init_data = data.get("init_data", "")
    if config.debug and not init_data:
        uid = int(data.get("debug_uid", 0))
        user = {"id": uid, "first_name": "Dev", "username": f"dev{uid}"}
        logger.info("WS: debug auth, uid=%s", uid)
    else:
        user = validate_init_data(init_data)
    if not user:
        logger.warning("WS: auth failed (invalid init_data or not debug)")
        await ws.close(code=4003)
        return None
    return user


async def ws_auth_and_loop(ws: WebSocket, svc: GameServices) -> None:
    """
    Первое сообщение — auth с init_data. Дальше цикл приёма сообщений.
    """
    player = None
    try:
        await ws.accept()
        logger.info("WS: accepted, waiting for auth")
        user = await _authenticate(ws)
        if not user:
            return
        telegram_id = int(user["id"])
        username = user.get("username") or user.get("first_name") or ""
        player = Player(
            connection_id=uuid.uuid4().hex,
            external_identity=telegram_id,
            display_name=username,
        )
        svc.manager.connect(ws, player.connection_id)
        logger.info("WS: auth ok connection_id=%s telegram_id=%s username=%s", player.connection_id, telegram_id, username)
        try:
            stats = await svc.sink.get_or_create_player(telegram_id, username)
        except Exception:
            logger.exception("Failed to initialize player %s", telegram_id)
            stats = None
        await svc.manager.send(
            player.connection_id,
            "connected",
            connection_id=player.connection_id,
            player={"telegram_id": telegram_id, "username": username},
            stats=stats,
        )
        while True:
            msg = await ws.receive_text()
            if not await handle_ws_message(svc, player, msg):
                break
    except WebSocketDisconnect as e:
        logger.info("WS: client disconnected code=%s connection_id=%s", e.code, player.connection_id if player else None)
    except Exception as e:
        logger.exception("WS: error connection_id=%s: %s", player.connection_id if player else None, e)
    finally:
        if player:
            await leave_current_room(svc, player)
            svc.manager.disconnect(player.connection_id)
            logger.info("WS: disconnected connection_id=%s", player.connection_id)
