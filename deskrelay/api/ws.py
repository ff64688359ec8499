"""
deskrelay.api.ws
~~~~~~~~~~~~~~~~

WebSocket 实时通道 —— 所有客户端事件都经由 ``/ws`` 进出。

帧格式:
  - 客户端 → 服务端: ``{"event": "join_room" | "audio_message" | "text_message" | "get_room_info", "data": {...}}``
  - 服务端 → 客户端: ``{"event": <事件名>, "data": {...}}``

每条连接分三个协程:
  - 接收协程: 读帧 + 限流，放入待处理队列；连接断开时立刻执行断开清理
  - 处理协程: 按到达顺序把事件交给 ``EventGateway``
  - 推送协程: 把出站队列写入 WebSocket
"""
from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from deskrelay.core.logging import get_logger, request_id_ctx_var
from deskrelay.core.rate_limit import WebSocketRateLimiter
from deskrelay.core.settings import settings
from deskrelay.schemas.events import ErrorData
from deskrelay.services.relay import Relay

logger = get_logger(__name__)

router: APIRouter = APIRouter()

# 所有连接共享一个限流器，按连接 ID 记录
ws_limiter = WebSocketRateLimiter(interval_seconds=settings.WS_RATE_LIMIT_INTERVAL)

# 只对会触发外部调用的消息限流
_RATE_LIMITED_EVENTS: frozenset[str] = frozenset({"audio_message", "text_message"})

# 连接断开后仍留在队列里的这类消息直接丢弃，否则会替已断开的连接重新建立会话
_LIFECYCLE_EVENTS: frozenset[str] = frozenset({"join_room", "get_room_info"})


def _event_name(frame: Any) -> Any:
    return frame.get("event") if isinstance(frame, dict) else None


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """实时事件通道。"""
    relay: Relay = websocket.app.state.relay
    await websocket.accept()

    connection = relay.hub.register()
    connection_id = connection.connection_id
    token = request_id_ctx_var.set(f"ws-{connection_id}")
    logger.info("连接建立 | conn=%s | 在线: %d", connection_id, relay.hub.online_count)

    pump_task = asyncio.create_task(connection.pump(websocket), name=f"ws-pump:{connection_id}")
    # 隔离接收与处理，外部服务再慢也不影响接收端按到达时间判断限流
    queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=settings.WS_QUEUE_SIZE)
    closed = object()
    transport_closed = asyncio.Event()

    async def receive_loop() -> None:
        try:
            while True:
                raw: str = await websocket.receive_text()
                try:
                    frame = json.loads(raw)
                except ValueError:
                    relay.hub.emit(connection_id, "error", ErrorData(message="Invalid message format"))
                    continue

                if _event_name(frame) in _RATE_LIMITED_EVENTS and not ws_limiter.is_allowed(connection_id):
                    relay.hub.emit(connection_id, "error", ErrorData(message="Sending too fast, please slow down"))
                    continue

                try:
                    queue.put_nowait(frame)
                except asyncio.QueueFull:
                    relay.hub.emit(connection_id, "error", ErrorData(message="Server busy, please retry"))
                    logger.warning("WS 队列已满，丢弃消息 | conn=%s", connection_id)
        except WebSocketDisconnect:
            pass  # 正常断开
        except Exception as e:
            logger.error("WebSocket 接收异常: %s | conn=%s", e, connection_id, exc_info=True)
        finally:
            # 传输层断开即离开房间；正在处理的消息仍会完成并广播给房间
            transport_closed.set()
            relay.gateway.disconnect(connection_id)
            await queue.put(closed)

    async def process_loop() -> None:
        while True:
            frame = await queue.get()
            if frame is closed:
                break
            if transport_closed.is_set() and _event_name(frame) in _LIFECYCLE_EVENTS:
                logger.debug("连接已断开，丢弃排队中的 %s | conn=%s", _event_name(frame), connection_id)
                continue
            await relay.gateway.dispatch(connection_id, frame)

    try:
        await asyncio.gather(receive_loop(), process_loop())
    finally:
        relay.hub.unregister(connection_id)
        ws_limiter.remove_client(connection_id)
        await pump_task
        logger.info("连接关闭 | conn=%s | 在线: %d", connection_id, relay.hub.online_count)
        request_id_ctx_var.reset(token)
