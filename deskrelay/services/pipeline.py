"""
deskrelay.services.pipeline
~~~~~~~~~~~~~~~~~~~~~~~~~~~

消息处理流水线 —— 唯一调用外部语音识别 / 翻译服务的组件。

音频消息的处理阶段:
  1. 广播 ``processing_status=transcribing``
  2. 语音识别（识别为空 → 广播 ``status=error`` 后结束）
  3. 广播 ``processing_status=translating``
  4. 解析翻译方向并翻译
  5. 广播 ``translation``，随后广播 ``processing_status=complete``

文本消息跳过第 1、2 步，置信度固定为 1.0。

每次尝试最终都会向房间广播一个终态（``complete`` 或 ``error``），客户端据此清除
"处理中"状态。外部服务失败不会重试，消息直接丢弃，由用户重新发送。
"""
from __future__ import annotations

from datetime import datetime, timezone

from deskrelay.core.errors import CollaboratorFailure, EmptyTranscript, Unauthorized
from deskrelay.core.logging import get_logger
from deskrelay.languages import language_name
from deskrelay.schemas.events import (
    ErrorData,
    LanguageText,
    ProcessingStatusData,
    Role,
    TranslationData,
)
from deskrelay.services.hub import ConnectionHub, Payload
from deskrelay.services.resolver import LanguageDirection, resolve_direction
from deskrelay.services.speech import SpeechToText
from deskrelay.services.stores import RoomStore, Session, SessionStore, generate_message_id
from deskrelay.services.translator import Translator

logger = get_logger(__name__)

# 识别服务未给出置信度时使用的默认值
DEFAULT_AUDIO_CONFIDENCE: float = 0.95
TEXT_CONFIDENCE: float = 1.0


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MessagePipeline:
    """单条消息的转写 → 翻译 → 广播流程。

    Attributes:
        sessions: 会话存储。
        rooms: 房间存储。
        hub: 连接中心，用于广播。
        speech: 语音识别服务。
        translator: 文本翻译服务。
    """

    def __init__(
        self,
        sessions: SessionStore,
        rooms: RoomStore,
        hub: ConnectionHub,
        speech: SpeechToText,
        translator: Translator,
    ) -> None:
        self.sessions = sessions
        self.rooms = rooms
        self.hub = hub
        self.speech = speech
        self.translator = translator

    # ── 入口 ──────────────────────────────────────────────────────────

    async def handle_audio_message(
        self,
        connection_id: str,
        room_id: str,
        role: Role | None,
        language: str | None,
        audio: bytes,
    ) -> TranslationData | None:
        """处理一段语音消息，返回广播出去的译文（失败时为 ``None``）。"""
        session = self._authorize(connection_id, room_id)
        if session is None:
            return None
        speaker: Role = role or session.role

        try:
            self._to_room(room_id, "processing_status", ProcessingStatusData(status="transcribing", speaker=speaker))

            # 识别语言与翻译源语言一致：房客用显式/会话语言，员工用员工语言
            source_language = self._direction(room_id, speaker, language, session).source
            transcript, confidence = await self._transcribe(audio, source_language)

            self._to_room(room_id, "processing_status", ProcessingStatusData(status="translating", speaker=speaker))
            return await self._translate_and_publish(
                connection_id, room_id, speaker, language, session, transcript,
                DEFAULT_AUDIO_CONFIDENCE if confidence is None else confidence,
            )
        except EmptyTranscript as e:
            logger.info("未检测到语音 | room=%s | conn=%s", room_id, connection_id)
            self._to_room(room_id, "processing_status", ProcessingStatusData(status="error", message=e.message))
        except Exception as e:
            self._fail(connection_id, room_id, "audio_message", e)
        return None

    async def handle_text_message(
        self,
        connection_id: str,
        room_id: str,
        role: Role | None,
        language: str | None,
        text: str,
    ) -> TranslationData | None:
        """处理一条文本消息，返回广播出去的译文（失败时为 ``None``）。"""
        session = self._authorize(connection_id, room_id)
        if session is None:
            return None
        speaker: Role = role or session.role

        try:
            self._to_room(room_id, "processing_status", ProcessingStatusData(status="translating", speaker=speaker))
            return await self._translate_and_publish(
                connection_id, room_id, speaker, language, session, text, TEXT_CONFIDENCE,
            )
        except Exception as e:
            self._fail(connection_id, room_id, "text_message", e)
        return None

    # ── 内部步骤 ──────────────────────────────────────────────────────

    def _authorize(self, connection_id: str, room_id: str) -> Session | None:
        session = self.sessions.get(connection_id)
        if session is None or session.room_id != room_id:
            logger.warning("拒绝非成员消息 | conn=%s | room=%s", connection_id, room_id)
            self.hub.emit(connection_id, "error", ErrorData(message=Unauthorized().message))
            return None
        return session

    def _direction(
        self, room_id: str, role: Role, language: str | None, session: Session,
    ) -> LanguageDirection:
        # 每次都重新读取房间，外部调用期间房客语言可能已经变化
        return resolve_direction(self.rooms.get(room_id), role, language, session.language)

    async def _transcribe(self, audio: bytes, language: str) -> tuple[str, float | None]:
        if not audio:
            raise EmptyTranscript()
        result = await self.speech.transcribe(audio, language)
        transcript = (result.transcript or "").strip()
        if not transcript:
            raise EmptyTranscript()
        return transcript, result.confidence

    async def _translate_and_publish(
        self,
        connection_id: str,
        room_id: str,
        speaker: Role,
        language: str | None,
        session: Session,
        text: str,
        confidence: float,
    ) -> TranslationData:
        direction = self._direction(room_id, speaker, language, session)
        translation = await self.translator.translate(text, direction.source, direction.target)

        message = TranslationData(
            id=generate_message_id(),
            timestamp=_utc_timestamp(),
            room=room_id,
            speaker=speaker,
            original=LanguageText(
                text=text,
                language=direction.source,
                language_name=language_name(direction.source),
            ),
            translated=LanguageText(
                text=translation.text,
                language=direction.target,
                language_name=language_name(direction.target),
            ),
            confidence=confidence,
            speaker_id=connection_id,
            tts_available=False,
        )
        self._to_room(room_id, "translation", message)
        self._to_room(room_id, "processing_status", ProcessingStatusData(status="complete"))
        logger.info(
            "消息已翻译 | room=%s | speaker=%s | %s -> %s",
            room_id, speaker, direction.source, direction.target,
        )
        return message

    def _fail(self, connection_id: str, room_id: str, event: str, exc: Exception) -> None:
        if isinstance(exc, CollaboratorFailure):
            description = exc.message
            logger.error("%s 处理失败: %s | room=%s", event, description, room_id)
        else:
            description = str(exc) or exc.__class__.__name__
            logger.error("%s 处理异常: %s | room=%s", event, description, room_id, exc_info=True)
        self.hub.emit(connection_id, "error", ErrorData(message=f"Failed to process {event}", error=description))
        self._to_room(room_id, "processing_status", ProcessingStatusData(status="error", message=description))

    def _to_room(self, room_id: str, event: str, payload: Payload) -> None:
        room = self.rooms.get(room_id)
        if room is not None:
            self.hub.broadcast(room.members, event, payload)
