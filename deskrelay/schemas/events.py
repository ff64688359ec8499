"""
deskrelay.schemas.events
~~~~~~~~~~~~~~~~~~~~~~~~

实时通道事件的 Pydantic 模型。

客户端帧格式统一为 ``{"event": <事件名>, "data": {...}}``，服务端推送同样结构。
线上字段一律使用 camelCase（``audioData``、``userCount`` 等），
Python 侧使用 snake_case，通过 ``alias_generator`` 自动转换。
"""
from __future__ import annotations

import base64
import binascii
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from deskrelay.core.errors import PayloadValidationError

Role = Literal["guest", "receptionist", "admin"]
ProcessingStatus = Literal["transcribing", "translating", "complete", "error"]


class CamelModel(BaseModel):
    """线上字段为 camelCase 的基类。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # 为 True 时推送前去掉值为 None 的可选字段
    omit_none: ClassVar[bool] = False

    def to_wire(self) -> dict[str, Any]:
        """序列化为推送给客户端的字典。"""
        return self.model_dump(by_alias=True, exclude_none=self.omit_none)


# ── 客户端 → 服务端 ───────────────────────────────────────────────────

class JoinRoomEvent(CamelModel):
    """``join_room``：加入（或切换到）指定房间。"""

    room: str = Field(..., min_length=1, description="房间 ID")
    role: Role = Field(..., description="角色")
    language: str | None = Field(default=None, description="房客语言标签，如 bn-IN")


class AudioMessageEvent(CamelModel):
    """``audio_message``：一段 base64 编码的 PCM / WAV 语音。"""

    room: str = Field(..., min_length=1)
    role: Role | None = None
    language: str | None = None
    audio_data: str = Field(default="", description="base64 编码的音频")

    @field_validator("audio_data")
    @classmethod
    def _check_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("audioData is not valid base64") from e
        return value

    @property
    def audio_bytes(self) -> bytes:
        return base64.b64decode(self.audio_data)


class TextMessageEvent(CamelModel):
    """``text_message``：一条文本消息。"""

    room: str = Field(..., min_length=1)
    role: Role | None = None
    language: str | None = None
    text: str = Field(..., max_length=2000)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value


class GetRoomInfoEvent(CamelModel):
    """``get_room_info``：查询房间摘要。"""

    room: str = Field(..., min_length=1)


CLIENT_EVENTS: dict[str, type[CamelModel]] = {
    "join_room": JoinRoomEvent,
    "audio_message": AudioMessageEvent,
    "text_message": TextMessageEvent,
    "get_room_info": GetRoomInfoEvent,
}


def parse_client_event(frame: Any) -> tuple[str, CamelModel]:
    """校验客户端帧并返回 ``(事件名, 事件模型)``。

    Raises:
        PayloadValidationError: 帧结构不对、事件名未知或字段校验失败。
    """
    if not isinstance(frame, dict):
        raise PayloadValidationError("Invalid message format")

    event = frame.get("event")
    model = CLIENT_EVENTS.get(event) if isinstance(event, str) else None
    if model is None:
        raise PayloadValidationError(f"Unknown event: {event}")

    data = frame.get("data")
    if data is None:
        data = {}
    try:
        return event, model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or event for err in e.errors())
        raise PayloadValidationError(f"Invalid {event} payload: {fields}") from e


# ── 服务端 → 客户端 ───────────────────────────────────────────────────

class RoomJoinedData(CamelModel):
    """``room_joined``：仅发给加入者。``language`` 为显示名称。"""

    room: str
    role: Role
    language: str


class UserJoinedData(CamelModel):
    """``user_joined``：发给房间内其他成员。"""

    role: Role
    language: str
    user_id: str


class UserLeftData(CamelModel):
    """``user_left``：发给房间内剩余成员。"""

    role: Role
    user_id: str


class RoomStatsData(CamelModel):
    """``room_stats``：广播给整个房间。"""

    user_count: int
    hotel_name: str
    guest_language: str | None


class RoomInfoData(CamelModel):
    """``room_info``：仅发给查询者。"""

    hotel_name: str
    user_count: int
    created_at: str
    guest_language: str | None


class ProcessingStatusData(CamelModel):
    """``processing_status``：广播给整个房间。"""

    omit_none: ClassVar[bool] = True

    status: ProcessingStatus
    speaker: Role | None = None
    message: str | None = None


class LanguageText(CamelModel):
    text: str
    language: str
    language_name: str


class TranslationData(CamelModel):
    """``translation``：一条已翻译的消息，广播给整个房间，不落库。"""

    id: str
    timestamp: str
    room: str
    speaker: Role
    original: LanguageText
    translated: LanguageText
    confidence: float = Field(..., ge=0.0, le=1.0)
    speaker_id: str
    tts_available: bool = False


class ErrorData(CamelModel):
    """``error``：仅发给出错的连接。"""

    omit_none: ClassVar[bool] = True

    message: str
    error: str | None = None
