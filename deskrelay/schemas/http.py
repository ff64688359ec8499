"""
deskrelay.schemas.http
~~~~~~~~~~~~~~~~~~~~~~

HTTP 接口的请求/响应模型。
"""
from __future__ import annotations

from pydantic import Field

from deskrelay.schemas.events import CamelModel


class GenerateRoomRequest(CamelModel):
    """建房请求体。"""

    hotel_name: str | None = Field(default=None, max_length=200, description="酒店名称")


class GenerateRoomResponse(CamelModel):
    """建房响应：房间 ID 与房客扫码链接。"""

    room_id: str = Field(..., description="房间 ID")
    guest_url: str = Field(..., description="房客加入链接")
    qr_data: str = Field(..., description="二维码内容（与 guest_url 相同）")


class HealthResponse(CamelModel):
    """健康检查：只报告配置是否就绪，不调用外部服务。"""

    status: str = "ok"
    environment: str
    azure_speech: bool
    azure_translator: bool
    rooms: int
    timestamp: str
