"""
deskrelay.services.relay
~~~~~~~~~~~~~~~~~~~~~~~~

中继服务装配 —— 创建存储、连接中心、生命周期、流水线与网关，并把它们串起来。

在 FastAPI lifespan 中调用 ``build_relay()``，结果挂载于 ``app.state.relay``。
测试可以注入假的语音识别 / 翻译服务。
"""
from __future__ import annotations

from deskrelay.core.logging import get_logger
from deskrelay.core.settings import Settings
from deskrelay.services.gateway import EventGateway
from deskrelay.services.hub import ConnectionHub
from deskrelay.services.lifecycle import RoomCleanupScheduler, RoomLifecycleManager
from deskrelay.services.pipeline import MessagePipeline
from deskrelay.services.speech import AzureSpeechClient, SpeechToText
from deskrelay.services.stores import RoomStore, SessionStore
from deskrelay.services.translator import AzureTranslatorClient, Translator

logger = get_logger(__name__)


class Relay:
    """一组显式持有的中继组件。

    Attributes:
        sessions: 会话存储。
        rooms: 房间存储。
        hub: 连接中心。
        cleanup: 空房间清理调度器。
        lifecycle: 房间生命周期管理器。
        pipeline: 消息流水线。
        gateway: 事件网关。
    """

    def __init__(
        self,
        sessions: SessionStore,
        rooms: RoomStore,
        hub: ConnectionHub,
        cleanup: RoomCleanupScheduler,
        lifecycle: RoomLifecycleManager,
        pipeline: MessagePipeline,
        gateway: EventGateway,
    ) -> None:
        self.sessions = sessions
        self.rooms = rooms
        self.hub = hub
        self.cleanup = cleanup
        self.lifecycle = lifecycle
        self.pipeline = pipeline
        self.gateway = gateway

    async def aclose(self) -> None:
        """取消待执行的清理任务并关闭外部服务客户端。"""
        self.cleanup.cancel_all()
        for collaborator in (self.pipeline.speech, self.pipeline.translator):
            aclose = getattr(collaborator, "aclose", None)
            if aclose is not None:
                await aclose()


def build_relay(
    config: Settings,
    speech: SpeechToText | None = None,
    translator: Translator | None = None,
) -> Relay:
    """按配置装配中继组件；未传入的外部服务使用 Azure 客户端。"""
    sessions = SessionStore()
    rooms = RoomStore(default_hotel_name=config.DEFAULT_HOTEL_NAME)
    hub = ConnectionHub()
    cleanup = RoomCleanupScheduler(rooms, delay=config.ROOM_CLEANUP_DELAY)
    lifecycle = RoomLifecycleManager(sessions, rooms, hub, cleanup)

    if speech is None:
        speech = AzureSpeechClient(
            key=config.AZURE_SPEECH_KEY,
            region=config.AZURE_SPEECH_REGION,
            sample_rate=config.AUDIO_SAMPLE_RATE,
            timeout=config.COLLABORATOR_TIMEOUT,
        )
    if translator is None:
        translator = AzureTranslatorClient(
            key=config.AZURE_TRANSLATOR_KEY,
            region=config.AZURE_TRANSLATOR_REGION,
            endpoint=config.AZURE_TRANSLATOR_ENDPOINT,
            timeout=config.COLLABORATOR_TIMEOUT,
        )

    pipeline = MessagePipeline(sessions, rooms, hub, speech, translator)
    gateway = EventGateway(hub, lifecycle, pipeline)

    if not config.speech_configured:
        logger.warning("Azure Speech 未配置，语音消息将无法识别")
    if not config.translator_configured:
        logger.warning("Azure Translator 未配置，消息将无法翻译")

    return Relay(sessions, rooms, hub, cleanup, lifecycle, pipeline, gateway)
