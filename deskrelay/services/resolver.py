"""
deskrelay.services.resolver
~~~~~~~~~~~~~~~~~~~~~~~~~~~

翻译方向解析 —— 根据房间与发送方角色计算 (源语言, 目标语言)。

- 前台（receptionist / admin）: 源语言固定为 ``en-US``，目标语言取房间当前房客语言，
  尚无房客时退回 ``hi-IN``。
- 房客（guest）: 源语言依次取本条消息显式指定的语言、会话语言、``hi-IN``；
  目标语言固定为 ``en-US``。

房间只记录一个"当前房客语言"，多个房客时以最后加入且仍在场的为准。
"""
from __future__ import annotations

from typing import NamedTuple

from deskrelay.languages import DEFAULT_GUEST_LANGUAGE, STAFF_LANGUAGE
from deskrelay.schemas.events import Role
from deskrelay.services.stores import Room


class LanguageDirection(NamedTuple):
    source: str
    target: str


def is_staff(role: Role) -> bool:
    return role in ("receptionist", "admin")


def effective_language(role: Role, requested: str | None) -> str:
    """加入房间时实际生效的语言：员工一律归一为员工语言。"""
    if is_staff(role):
        return STAFF_LANGUAGE
    return requested or DEFAULT_GUEST_LANGUAGE


def resolve_direction(
    room: Room | None,
    role: Role,
    explicit_language: str | None = None,
    session_language: str | None = None,
) -> LanguageDirection:
    """计算一条消息的翻译方向。

    Args:
        room: 消息所属房间；为 ``None`` 时视为尚无房客。
        role: 发送方角色。
        explicit_language: 消息上显式携带的语言。
        session_language: 发送方会话中记录的语言。

    Returns:
        ``LanguageDirection(source, target)``。
    """
    if is_staff(role):
        guest_language = room.guest_language if room is not None else None
        return LanguageDirection(STAFF_LANGUAGE, guest_language or DEFAULT_GUEST_LANGUAGE)

    source = explicit_language or session_language or DEFAULT_GUEST_LANGUAGE
    return LanguageDirection(source, STAFF_LANGUAGE)
