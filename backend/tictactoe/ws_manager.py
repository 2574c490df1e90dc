"""
Менеджер WebSocket: подключения по connection_id, рассылка событий комнаты.
"""
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    def __init__(self, ws: WebSocket, connection_id: str):
        self.ws = ws
        self.connection_id = connection_id


class WSManager:
    def __init__(self):
        self._by_conn: dict[str, Connection] = {}

    def connect(self, ws: WebSocket, connection_id: str) -> Connection:
        conn = Connection(ws, connection_id)
        self._by_conn[connection_id] = conn
        return conn

    def disconnect(self, connection_id: str) -> None:
        self._by_conn.pop(connection_id, None)

    # Адресат и событие только позиционные: любое имя свободно для полей сообщения
    async def send(self, to: str, event: str, /, **data: Any) -> bool:
        conn = self._by_conn.get(to)
        if not conn:
            return False
        try:
            await conn.ws.send_json({"type": event, **data})
            return True
        except Exception as e:
            logger.warning("send %s to %s: %s", event, to, e)
            return False

    async def send_many(
        self,
        recipients: list[str],
        event: str,
        /,
        exclude: str | None = None,
        **data: Any,
    ) -> None:
        for to in recipients:
            if to != exclude:
                await self.send(to, event, **data)
