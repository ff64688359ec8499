"""
deskrelay.services.hub
~~~~~~~~~~~~~~~~~~~~~~

连接中心 —— 维护所有在线连接，提供单发与房间广播能力。

每条连接持有一个出站队列，``emit`` / ``broadcast`` 只做同步入队，
不会在中途让出事件循环，因此同一房间内的事件顺序与发出顺序一致。
真正写 WebSocket 的是每条连接自己的 ``pump`` 协程。
"""
from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable
from typing import Any

from fastapi import WebSocket
from pydantic import BaseModel

from deskrelay.core.logging import get_logger

logger = get_logger(__name__)

Payload = BaseModel | dict[str, Any]


def _to_wire(payload: Payload) -> dict[str, Any]:
    to_wire = getattr(payload, "to_wire", None)
    if to_wire is not None:
        return to_wire()
    if isinstance(payload, BaseModel):
        return payload.model_dump(by_alias=True)
    return payload


class Connection:
    """一条实时连接。

    Attributes:
        connection_id: 连接 ID，建立连接时分配。
        outbox: 待发送的 ``{"event", "data"}`` 帧，``None`` 表示关闭。
        closed: 写端是否已关闭。
    """

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.outbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self.closed: bool = False

    def send(self, event: str, payload: Payload) -> None:
        if self.closed:
            return
        self.outbox.put_nowait({"event": event, "data": _to_wire(payload)})

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.outbox.put_nowait(None)

    async def pump(self, websocket: WebSocket) -> None:
        """把出站队列里的帧依次写入 WebSocket，直到连接关闭。"""
        while True:
            frame = await self.outbox.get()
            if frame is None:
                break
            try:
                await websocket.send_json(frame)
            except Exception as e:
                logger.debug("推送失败，停止写入 | conn=%s | %s", self.connection_id, e)
                self.closed = True
                break


class ConnectionHub:
    """连接注册表 + 广播器。"""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def register(self, connection_id: str | None = None) -> Connection:
        """登记一条新连接，未指定 ID 时自动生成。"""
        connection = Connection(connection_id or uuid.uuid4().hex[:12])
        self._connections[connection.connection_id] = connection
        return connection

    def unregister(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.close()

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def emit(self, connection_id: str, event: str, payload: Payload) -> None:
        """发给单条连接；连接不存在或已关闭时静默忽略。"""
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.send(event, payload)

    def broadcast(
        self,
        members: Iterable[str],
        event: str,
        payload: Payload,
        exclude: str | None = None,
    ) -> None:
        """发给一组连接（通常是房间成员），可排除其中一条。"""
        frame_payload = _to_wire(payload)
        for connection_id in list(members):
            if connection_id != exclude:
                self.emit(connection_id, event, frame_payload)

    @property
    def online_count(self) -> int:
        """当前在线连接数。"""
        return len(self._connections)
