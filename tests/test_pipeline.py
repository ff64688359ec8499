"""
tests.test_pipeline
~~~~~~~~~~~~~~~~~~~

MessagePipeline 单元测试。

外部语音识别 / 翻译服务全部由 conftest 中的 mock 替代。
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import drain, event_names, first
from deskrelay.core.errors import CollaboratorFailure
from deskrelay.services.relay import Relay
from deskrelay.services.speech import TranscriptionResult
from deskrelay.services.translator import TranslationResult


def setup_room(relay: Relay, guest_language: str = "bn-IN") -> None:
    """房客与前台都加入房间 R，并清空加入时产生的事件。"""
    relay.hub.register("guest")
    relay.hub.register("desk")
    relay.lifecycle.join("guest", "R", "guest", guest_language)
    relay.lifecycle.join("desk", "R", "receptionist")
    drain(relay, "guest")
    drain(relay, "desk")


class TestTextMessage:
    """测试文本消息流程。"""

    @pytest.mark.asyncio
    async def test_receptionist_text_translated_to_guest_language(
        self, relay: Relay, translator: MagicMock,
    ) -> None:
        """前台发送 "Room is ready"：en-US → bn-IN，整个房间收到译文。"""
        setup_room(relay)

        message = await relay.pipeline.handle_text_message("desk", "R", "receptionist", None, "Room is ready")

        translator.translate.assert_awaited_once_with("Room is ready", "en-US", "bn-IN")
        assert message is not None

        for member in ("guest", "desk"):
            frames = drain(relay, member)
            assert event_names(frames) == ["processing_status", "translation", "processing_status"]
            assert frames[0]["data"] == {"status": "translating", "speaker": "receptionist"}
            assert frames[2]["data"] == {"status": "complete"}

            translation = frames[1]["data"]
            assert translation["room"] == "R"
            assert translation["speaker"] == "receptionist"
            assert translation["speakerId"] == "desk"
            assert translation["original"] == {
                "text": "Room is ready",
                "language": "en-US",
                "languageName": "English (US)",
            }
            assert translation["translated"] == {
                "text": "[bn-IN] Room is ready",
                "language": "bn-IN",
                "languageName": "Bengali",
            }
            assert translation["confidence"] == 1.0
            assert translation["ttsAvailable"] is False
            assert translation["id"].startswith("msg_")
            assert translation["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_guest_text_uses_session_language(self, relay: Relay, translator: MagicMock) -> None:
        setup_room(relay, guest_language="ta-IN")

        await relay.pipeline.handle_text_message("guest", "R", "guest", None, "வணக்கம்")

        translator.translate.assert_awaited_once_with("வணக்கம்", "ta-IN", "en-US")

    @pytest.mark.asyncio
    async def test_guest_explicit_language_overrides_session(self, relay: Relay, translator: MagicMock) -> None:
        setup_room(relay, guest_language="ta-IN")

        await relay.pipeline.handle_text_message("guest", "R", "guest", "bn-IN", "নমস্কার")

        translator.translate.assert_awaited_once_with("নমস্কার", "bn-IN", "en-US")

    @pytest.mark.asyncio
    async def test_role_defaults_to_session_role(self, relay: Relay) -> None:
        setup_room(relay)

        message = await relay.pipeline.handle_text_message("desk", "R", None, None, "Welcome")

        assert message.speaker == "receptionist"

    @pytest.mark.asyncio
    async def test_target_falls_back_after_guest_leaves(self, relay: Relay, translator: MagicMock) -> None:
        """房客断开后房客语言被清空，前台消息目标语言回到默认 hi-IN。"""
        setup_room(relay)
        relay.lifecycle.disconnect("guest")

        await relay.pipeline.handle_text_message("desk", "R", "receptionist", None, "Hello?")

        translator.translate.assert_awaited_once_with("Hello?", "en-US", "hi-IN")

    @pytest.mark.asyncio
    async def test_unauthorized_sender(self, relay: Relay, translator: MagicMock) -> None:
        """非房间成员发消息：只有发送方收到 error，房间内无任何广播。"""
        setup_room(relay)
        relay.hub.register("stranger")
        relay.hub.register("elsewhere")
        relay.lifecycle.join("elsewhere", "OTHER", "guest", "bn-IN")
        drain(relay, "elsewhere")

        stranger = await relay.pipeline.handle_text_message("stranger", "R", "guest", None, "hi")
        wrong_room = await relay.pipeline.handle_text_message("elsewhere", "R", "guest", None, "hi")

        assert stranger is None and wrong_room is None
        assert drain(relay, "stranger") == [
            {"event": "error", "data": {"message": "Not authorized for this room"}},
        ]
        assert first(drain(relay, "elsewhere"), "error")["message"] == "Not authorized for this room"
        assert drain(relay, "guest") == []
        assert drain(relay, "desk") == []
        translator.translate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_translation_failure(self, relay: Relay, translator: MagicMock) -> None:
        """翻译失败：发送方收到私有 error，房间收到 status=error，不产生译文。"""
        setup_room(relay)
        translator.translate.side_effect = CollaboratorFailure("Translation failed: 503")

        message = await relay.pipeline.handle_text_message("desk", "R", "receptionist", None, "Room is ready")

        assert message is None
        desk_frames = drain(relay, "desk")
        assert "translation" not in event_names(desk_frames)
        assert first(desk_frames, "error") == {
            "message": "Failed to process text_message",
            "error": "Translation failed: 503",
        }
        guest_frames = drain(relay, "guest")
        assert event_names(guest_frames) == ["processing_status", "processing_status"]
        assert guest_frames[-1]["data"] == {"status": "error", "message": "Translation failed: 503"}
        translator.translate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_still_ends_with_terminal_status(
        self, relay: Relay, translator: MagicMock,
    ) -> None:
        setup_room(relay)
        translator.translate.side_effect = RuntimeError("boom")

        await relay.pipeline.handle_text_message("desk", "R", "receptionist", None, "Room is ready")

        assert drain(relay, "guest")[-1]["data"] == {"status": "error", "message": "boom"}

    @pytest.mark.asyncio
    async def test_sender_disconnect_mid_flight(self, relay: Relay, translator: MagicMock) -> None:
        """翻译期间发送方断开，消息仍然完成并广播给房间其他成员。"""
        setup_room(relay)

        async def _disconnect_then_translate(text: str, source: str, target: str) -> TranslationResult:
            relay.lifecycle.disconnect("desk")
            relay.hub.unregister("desk")
            return TranslationResult("কক্ষ প্রস্তুত")

        translator.translate.side_effect = _disconnect_then_translate

        message = await relay.pipeline.handle_text_message("desk", "R", "receptionist", None, "Room is ready")

        assert message is not None
        guest_frames = drain(relay, "guest")
        assert event_names(guest_frames) == [
            "processing_status", "user_left", "room_stats", "translation", "processing_status",
        ]
        assert first(guest_frames, "translation")["translated"]["text"] == "কক্ষ প্রস্তুত"


class TestAudioMessage:
    """测试语音消息流程。"""

    @pytest.mark.asyncio
    async def test_guest_audio_full_sequence(
        self, relay: Relay, speech: MagicMock, translator: MagicMock,
    ) -> None:
        setup_room(relay)

        message = await relay.pipeline.handle_audio_message("guest", "R", "guest", None, b"\x01\x02")

        speech.transcribe.assert_awaited_once_with(b"\x01\x02", "bn-IN")
        translator.translate.assert_awaited_once_with("Where is the pool", "bn-IN", "en-US")
        assert message.confidence == 0.88

        frames = drain(relay, "desk")
        assert event_names(frames) == [
            "processing_status", "processing_status", "translation", "processing_status",
        ]
        assert [f["data"]["status"] for f in frames if f["event"] == "processing_status"] == [
            "transcribing", "translating", "complete",
        ]
        assert first(frames, "translation")["original"]["languageName"] == "Bengali"

    @pytest.mark.asyncio
    async def test_receptionist_audio_transcribed_in_staff_language(
        self, relay: Relay, speech: MagicMock,
    ) -> None:
        setup_room(relay)

        await relay.pipeline.handle_audio_message("desk", "R", "receptionist", "bn-IN", b"\x01\x02")

        speech.transcribe.assert_awaited_once_with(b"\x01\x02", "en-US")

    @pytest.mark.asyncio
    async def test_missing_confidence_defaults(self, relay: Relay, speech: MagicMock) -> None:
        setup_room(relay)
        speech.transcribe.return_value = TranscriptionResult("Need towels", None)

        message = await relay.pipeline.handle_audio_message("guest", "R", "guest", None, b"\x01")

        assert message.confidence == 0.95

    @pytest.mark.asyncio
    @pytest.mark.parametrize("audio", [b"", b"\x01\x02"])
    async def test_no_speech(self, relay: Relay, speech: MagicMock, translator: MagicMock, audio: bytes) -> None:
        """识别结果去掉空白后为空：只广播 status=error，不翻译、不产生译文。"""
        setup_room(relay)
        speech.transcribe.return_value = TranscriptionResult("   ", 0.1)

        message = await relay.pipeline.handle_audio_message("guest", "R", "guest", None, audio)

        assert message is None
        frames = drain(relay, "desk")
        assert event_names(frames) == ["processing_status", "processing_status"]
        assert frames[0]["data"]["status"] == "transcribing"
        assert frames[1]["data"] == {"status": "error", "message": "No speech detected"}
        assert drain(relay, "guest") == frames
        translator.translate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transcription_failure(self, relay: Relay, speech: MagicMock, translator: MagicMock) -> None:
        setup_room(relay)
        speech.transcribe = AsyncMock(side_effect=CollaboratorFailure("Speech recognition failed: 401"))

        message = await relay.pipeline.handle_audio_message("guest", "R", "guest", None, b"\x01")

        assert message is None
        guest_frames = drain(relay, "guest")
        assert first(guest_frames, "error")["error"] == "Speech recognition failed: 401"
        assert guest_frames[-1]["data"] == {"status": "error", "message": "Speech recognition failed: 401"}
        desk_frames = drain(relay, "desk")
        assert "error" not in event_names(desk_frames)
        translator.translate.assert_not_awaited()
