"""
deskrelay.services.lifecycle
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间生命周期 —— 加入、断开、房间查询，以及空房间的延迟清理。

- ``RoomLifecycleManager.join()``       → 加入（或切换）房间
- ``RoomLifecycleManager.disconnect()`` → 传输层断开后的清理
- ``RoomLifecycleManager.room_info()``  → ``get_room_info`` 查询
- ``RoomCleanupScheduler``              → 房间清空后延迟删除

房间在最后一名成员离开时不会立即删除：刷新页面后重连的客户端仍能回到原房间。
"""
from __future__ import annotations

import asyncio

from deskrelay.core.errors import PayloadValidationError
from deskrelay.core.logging import get_logger
from deskrelay.languages import language_name
from deskrelay.schemas.events import (
    ErrorData,
    Role,
    RoomJoinedData,
    UserJoinedData,
    UserLeftData,
)
from deskrelay.services.hub import ConnectionHub
from deskrelay.services.resolver import effective_language
from deskrelay.services.stores import Room, RoomStore, SessionStore

logger = get_logger(__name__)


class RoomCleanupScheduler:
    """空房间延迟清理。

    每个房间最多一个待执行的清理任务，重复调度会取消旧任务。
    任务触发时重新确认房间仍存在且仍为空才删除，期间有人重新加入则什么都不做。

    Attributes:
        delay: 延迟秒数。
    """

    def __init__(self, rooms: RoomStore, delay: float = 300.0) -> None:
        self.rooms = rooms
        self.delay = delay
        self._pending: dict[str, asyncio.Task[None]] = {}

    def schedule(self, room_id: str) -> asyncio.Task[None]:
        """为房间安排一次延迟清理。必须在事件循环中调用。"""
        self.cancel(room_id)
        task = asyncio.get_running_loop().create_task(
            self._run(room_id), name=f"room-cleanup:{room_id}",
        )
        self._pending[room_id] = task
        logger.debug("已安排房间清理 | room=%s | delay=%.1fs", room_id, self.delay)
        return task

    def cancel(self, room_id: str) -> None:
        task = self._pending.pop(room_id, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        """取消所有待执行的清理任务（应用关闭时调用）。"""
        for room_id in list(self._pending):
            self.cancel(room_id)

    def is_pending(self, room_id: str) -> bool:
        task = self._pending.get(room_id)
        return task is not None and not task.done()

    async def _run(self, room_id: str) -> None:
        try:
            await asyncio.sleep(self.delay)
            self.purge_if_empty(room_id)
        finally:
            if self._pending.get(room_id) is asyncio.current_task():
                del self._pending[room_id]

    def purge_if_empty(self, room_id: str) -> bool:
        """房间存在且为空时删除，返回是否删除。"""
        room = self.rooms.get(room_id)
        if room is None or not room.is_empty:
            return False
        self.rooms.delete(room_id)
        logger.info("已清理空房间 | room=%s", room_id)
        return True


class RoomLifecycleManager:
    """房间加入 / 断开状态机。

    所有方法都是同步的：一次状态转换（会话写入 + 成员增删 + 事件入队）
    在返回前完成，不会与其他连接的事件交错。
    """

    def __init__(
        self,
        sessions: SessionStore,
        rooms: RoomStore,
        hub: ConnectionHub,
        cleanup: RoomCleanupScheduler,
    ) -> None:
        self.sessions = sessions
        self.rooms = rooms
        self.hub = hub
        self.cleanup = cleanup

    def join(self, connection_id: str, room_id: str, role: Role, language: str | None = None) -> Room:
        """加入房间；已在其他房间时先离开原房间。

        Raises:
            PayloadValidationError: 缺少房间 ID。
        """
        if not room_id:
            raise PayloadValidationError("room and role are required")

        previous = self.sessions.get(connection_id)
        if previous is not None:
            self._detach(connection_id, previous.room_id, previous.role, announce=previous.room_id != room_id)

        room = self.rooms.get_or_create(room_id)
        self.cleanup.cancel(room_id)
        user_language = effective_language(role, language)

        self.sessions.upsert(connection_id, room_id, role, user_language)
        self.rooms.add_member(room_id, connection_id)
        if role == "guest":
            room.guest_language = user_language

        logger.info(
            "加入房间 | conn=%s | room=%s | role=%s | lang=%s",
            connection_id, room_id, role, user_language,
        )

        display = language_name(user_language)
        self.hub.emit(connection_id, "room_joined", RoomJoinedData(room=room_id, role=role, language=display))
        self.hub.broadcast(
            room.members,
            "user_joined",
            UserJoinedData(role=role, language=display, user_id=connection_id),
            exclude=connection_id,
        )
        self.hub.broadcast(room.members, "room_stats", room.stats())
        return room

    def disconnect(self, connection_id: str) -> None:
        """连接断开：离开房间、通知其他成员，房间变空时安排延迟清理。"""
        session = self.sessions.get(connection_id)
        if session is None:
            return

        self._detach(connection_id, session.room_id, session.role, announce=True)
        self.sessions.remove(connection_id)
        logger.info("连接断开 | conn=%s | room=%s | role=%s", connection_id, session.room_id, session.role)

    def room_info(self, connection_id: str, room_id: str) -> None:
        """把房间摘要私下发给查询者；房间不存在时回一条 error。"""
        room = self.rooms.get(room_id)
        if room is None:
            self.hub.emit(connection_id, "error", ErrorData(message="Room not found"))
            return
        self.hub.emit(connection_id, "room_info", room.info())

    def _detach(self, connection_id: str, room_id: str, role: Role, announce: bool) -> None:
        room = self.rooms.remove_member(room_id, connection_id)
        if room is None:
            return
        if role == "guest":
            room.guest_language = None

        if announce:
            self.hub.broadcast(room.members, "user_left", UserLeftData(role=role, user_id=connection_id))
            self.hub.broadcast(room.members, "room_stats", room.stats())

        if room.is_empty:
            self.cleanup.schedule(room_id)
