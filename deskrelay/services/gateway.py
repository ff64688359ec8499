"""
deskrelay.services.gateway
~~~~~~~~~~~~~~~~~~~~~~~~~~

事件网关 —— 把客户端帧校验后分发给生命周期管理器或消息流水线。

这里是事件处理的异常边界：任何异常都会转换为发给该连接的 ``error`` 事件，
不会关闭连接，也不会向上抛出。
"""
from __future__ import annotations

from typing import Any

from deskrelay.core.errors import PayloadValidationError, RelayError
from deskrelay.core.logging import get_logger
from deskrelay.schemas.events import (
    AudioMessageEvent,
    ErrorData,
    GetRoomInfoEvent,
    JoinRoomEvent,
    TextMessageEvent,
    parse_client_event,
)
from deskrelay.services.hub import ConnectionHub
from deskrelay.services.lifecycle import RoomLifecycleManager
from deskrelay.services.pipeline import MessagePipeline

logger = get_logger(__name__)


class EventGateway:
    """客户端事件分发器。"""

    def __init__(
        self,
        hub: ConnectionHub,
        lifecycle: RoomLifecycleManager,
        pipeline: MessagePipeline,
    ) -> None:
        self.hub = hub
        self.lifecycle = lifecycle
        self.pipeline = pipeline

    async def dispatch(self, connection_id: str, frame: Any) -> None:
        """处理一条客户端帧。"""
        try:
            event, payload = parse_client_event(frame)
        except PayloadValidationError as e:
            logger.info("客户端帧校验失败 | conn=%s | %s", connection_id, e.message)
            self.hub.emit(connection_id, "error", ErrorData(message=e.message))
            return

        try:
            if isinstance(payload, JoinRoomEvent):
                self.lifecycle.join(connection_id, payload.room, payload.role, payload.language)
            elif isinstance(payload, GetRoomInfoEvent):
                self.lifecycle.room_info(connection_id, payload.room)
            elif isinstance(payload, AudioMessageEvent):
                await self.pipeline.handle_audio_message(
                    connection_id, payload.room, payload.role, payload.language, payload.audio_bytes,
                )
            elif isinstance(payload, TextMessageEvent):
                await self.pipeline.handle_text_message(
                    connection_id, payload.room, payload.role, payload.language, payload.text,
                )
        except RelayError as e:
            self.hub.emit(connection_id, "error", ErrorData(message=e.message))
        except Exception as e:
            logger.error("事件处理异常 | conn=%s | event=%s | %s", connection_id, event, e, exc_info=True)
            self.hub.emit(connection_id, "error", ErrorData(message=f"Failed to process {event}", error=str(e)))

    def disconnect(self, connection_id: str) -> None:
        """传输层断开。"""
        try:
            self.lifecycle.disconnect(connection_id)
        except Exception as e:
            logger.error("断开清理异常 | conn=%s | %s", connection_id, e, exc_info=True)
