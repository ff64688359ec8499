"""
deskrelay.services.stores
~~~~~~~~~~~~~~~~~~~~~~~~~

会话与房间的内存存储。

- ``SessionStore``: 连接 ID → 当前所在房间 / 角色 / 语言
- ``RoomStore``:    房间 ID → 酒店名、创建时间、成员集合、当前房客语言

所有操作都是同步的，在单线程事件循环内执行完毕前不会被其他事件打断，
因此一次状态转换中的成员增删与会话写入对其他事件总是原子可见的。
两个存储都由 ``build_relay()`` 显式创建并注入，不是模块级单例。
"""
from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone

from deskrelay.core.logging import get_logger
from deskrelay.schemas.events import Role, RoomInfoData, RoomStatsData

logger = get_logger(__name__)


def _generate_id(prefix: str) -> str:
    """毫秒时间戳 + 随机后缀，冲突概率可忽略。"""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def generate_room_id() -> str:
    """生成新的房间 ID，如 ``room_1718000000000_a1b2c3``。"""
    return _generate_id("room")


def generate_message_id() -> str:
    """生成新的消息 ID，如 ``msg_1718000000000_a1b2c3``。"""
    return _generate_id("msg")


class Session:
    """一条连接与房间 / 角色 / 语言的绑定。

    Attributes:
        connection_id: 连接 ID。
        room_id: 所在房间 ID。
        role: 角色（guest / receptionist / admin）。
        language: 生效语言标签。
    """

    def __init__(self, connection_id: str, room_id: str, role: Role, language: str) -> None:
        self.connection_id = connection_id
        self.room_id = room_id
        self.role = role
        self.language = language

    def __repr__(self) -> str:
        return (
            f"Session(connection_id={self.connection_id!r}, room_id={self.room_id!r}, "
            f"role={self.role!r}, language={self.language!r})"
        )


class Room:
    """一个前台会话房间。

    Attributes:
        room_id: 房间唯一标识。
        hotel_name: 酒店显示名称。
        created_at: 创建时间（UTC）。
        members: 当前加入房间的连接 ID 集合。
        guest_language: 当前在场房客的语言，无房客时为 ``None``。
    """

    def __init__(self, room_id: str, hotel_name: str) -> None:
        self.room_id = room_id
        self.hotel_name = hotel_name
        self.created_at: datetime = datetime.now(timezone.utc)
        self.members: set[str] = set()
        self.guest_language: str | None = None

    @property
    def user_count(self) -> int:
        """当前成员数。"""
        return len(self.members)

    @property
    def is_empty(self) -> bool:
        return not self.members

    def stats(self) -> RoomStatsData:
        """``room_stats`` 事件负载。"""
        return RoomStatsData(
            user_count=self.user_count,
            hotel_name=self.hotel_name,
            guest_language=self.guest_language,
        )

    def info(self) -> RoomInfoData:
        """``room_info`` 事件负载。"""
        return RoomInfoData(
            hotel_name=self.hotel_name,
            user_count=self.user_count,
            created_at=self.created_at.isoformat(),
            guest_language=self.guest_language,
        )


class SessionStore:
    """连接 ID → ``Session`` 的映射。"""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def upsert(self, connection_id: str, room_id: str, role: Role, language: str) -> Session:
        """写入（或覆盖）连接的会话。"""
        session = Session(connection_id, room_id, role, language)
        self._sessions[connection_id] = session
        return session

    def get(self, connection_id: str) -> Session | None:
        return self._sessions.get(connection_id)

    def remove(self, connection_id: str) -> Session | None:
        """删除并返回连接的会话，不存在时返回 ``None``。"""
        return self._sessions.pop(connection_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


class RoomStore:
    """房间 ID → ``Room`` 的映射。

    显式建房（HTTP）和首次 join 隐式建房都走 ``get_or_create``，保证初始化逻辑一致。
    """

    def __init__(self, default_hotel_name: str = "Unknown Hotel") -> None:
        self.default_hotel_name = default_hotel_name
        self._rooms: dict[str, Room] = {}

    def get_or_create(self, room_id: str, hotel_name: str | None = None) -> Room:
        """获取指定房间，不存在则按默认值创建。

        Args:
            room_id: 房间 ID。
            hotel_name: 新建房间时使用的酒店名，为空时使用占位名称。已存在的房间不受影响。
        """
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id, hotel_name or self.default_hotel_name)
            self._rooms[room_id] = room
            logger.info("房间已创建 | room=%s | hotel=%s", room_id, room.hotel_name)
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def delete(self, room_id: str) -> bool:
        """删除房间，返回是否确实删除了。"""
        return self._rooms.pop(room_id, None) is not None

    def add_member(self, room_id: str, connection_id: str) -> Room:
        room = self.get_or_create(room_id)
        room.members.add(connection_id)
        return room

    def remove_member(self, room_id: str, connection_id: str) -> Room | None:
        """从房间成员集合移除连接；房间不存在时返回 ``None``。"""
        room = self._rooms.get(room_id)
        if room is not None:
            room.members.discard(connection_id)
        return room

    def list_rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms
