"""
deskrelay.api.endpoints
~~~~~~~~~~~~~~~~~~~~~~~

HTTP 接口 —— 健康检查、建房、TTS 占位。

端点:
  - ``GET  /health``            → 配置就绪情况（不调用外部服务）
  - ``POST /api/generate-room`` → 创建房间并返回房客链接
  - ``POST /api/tts``           → 固定返回 501（语音合成已禁用）
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from deskrelay.api.deps import get_relay
from deskrelay.core.logging import get_logger
from deskrelay.core.rate_limit import limiter
from deskrelay.core.settings import settings
from deskrelay.schemas.http import GenerateRoomRequest, GenerateRoomResponse, HealthResponse
from deskrelay.services.relay import Relay
from deskrelay.services.stores import generate_room_id

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.get("/health", tags=["System"])
async def health_check(relay: Relay = Depends(get_relay)) -> JSONResponse:
    """报告外部服务是否已配置。"""
    health = HealthResponse(
        environment=settings.ENVIRONMENT,
        azure_speech=settings.speech_configured,
        azure_translator=settings.translator_configured,
        rooms=len(relay.rooms),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    return JSONResponse(content=health.to_wire())


@router.post("/api/generate-room", summary="创建房间", tags=["Room"])
@limiter.limit("5/second")
async def generate_room(
    request: Request,
    body: GenerateRoomRequest | None = Body(default=None),
    relay: Relay = Depends(get_relay),
) -> JSONResponse:
    """创建一个新房间，返回房客扫码加入的链接。

    Args:
        request: FastAPI Request 对象（用于限流和拼接链接）。
        body: 可选的请求体，``hotelName`` 为空时使用占位名称。
    """
    hotel_name = body.hotel_name if body is not None else None
    room = relay.rooms.get_or_create(generate_room_id(), hotel_name=hotel_name)

    base_url = (settings.PUBLIC_BASE_URL or str(request.base_url)).rstrip("/")
    guest_url = f"{base_url}?room={room.room_id}"

    response = GenerateRoomResponse(room_id=room.room_id, guest_url=guest_url, qr_data=guest_url)
    return JSONResponse(content=response.to_wire())


@router.post("/api/tts", tags=["Speech"])
async def text_to_speech() -> JSONResponse:
    """语音合成已禁用。"""
    return JSONResponse(status_code=501, content={"error": "TTS disabled"})
