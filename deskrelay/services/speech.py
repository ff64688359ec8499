"""
deskrelay.services.speech
~~~~~~~~~~~~~~~~~~~~~~~~~

语音识别外部服务 —— 接口定义 + Azure Speech 短音频 REST 客户端。

一次请求识别一整段音频（单次识别，非流式）。客户端上传的裸 PCM
会先包上 WAV 头再发送。
"""
from __future__ import annotations

import io
import wave
from typing import NamedTuple, Protocol

import httpx

from deskrelay.core.errors import CollaboratorFailure
from deskrelay.core.logging import get_logger

logger = get_logger(__name__)

# 没有识别出语音时服务端返回的状态，不视为调用失败
_NO_SPEECH_STATUSES: frozenset[str] = frozenset({"NoMatch", "InitialSilenceTimeout", "BabbleTimeout"})


class TranscriptionResult(NamedTuple):
    transcript: str
    confidence: float | None = None


class SpeechToText(Protocol):
    """语音识别服务接口。"""

    async def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        ...


def pcm_to_wav(audio: bytes, sample_rate: int = 16000) -> bytes:
    """把 16-bit 单声道裸 PCM 包装为 WAV；已经是 WAV（RIFF 头）则原样返回。"""
    if audio[:4] == b"RIFF":
        return audio
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(audio)
    return buffer.getvalue()


class AzureSpeechClient:
    """Azure Speech 短音频识别客户端。

    Attributes:
        key: 订阅密钥。
        region: 服务区域。
        sample_rate: 裸 PCM 的采样率。
    """

    def __init__(
        self,
        key: str | None,
        region: str | None,
        sample_rate: int = 16000,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.key = key
        self.region = region
        self.sample_rate = sample_rate
        self._client: httpx.AsyncClient = client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.region}.stt.speech.microsoft.com"
            "/speech/recognition/conversation/cognitiveservices/v1"
        )

    async def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        """识别一段音频。

        Args:
            audio: 裸 PCM 或 WAV 字节。
            language: 识别语言标签，如 ``bn-IN``。

        Returns:
            识别结果；没有检测到语音时 ``transcript`` 为空字符串。

        Raises:
            CollaboratorFailure: 未配置密钥、网络错误或服务返回错误。
        """
        if not (self.key and self.region):
            raise CollaboratorFailure("Azure Speech is not configured")

        try:
            response = await self._client.post(
                self.endpoint,
                params={"language": language, "format": "detailed"},
                headers={
                    "Ocp-Apim-Subscription-Key": self.key,
                    "Content-Type": f"audio/wav; codecs=audio/pcm; samplerate={self.sample_rate}",
                    "Accept": "application/json",
                },
                content=pcm_to_wav(audio, self.sample_rate),
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("语音识别调用失败: %s", e)
            raise CollaboratorFailure(f"Speech recognition failed: {e}") from e

        status = payload.get("RecognitionStatus")
        if status in _NO_SPEECH_STATUSES:
            logger.info("语音识别未检测到语音 | status=%s", status)
            return TranscriptionResult("")
        if status != "Success":
            raise CollaboratorFailure(f"Speech recognition failed: {status}")

        best = (payload.get("NBest") or [{}])[0]
        transcript = best.get("Display") or payload.get("DisplayText") or ""
        return TranscriptionResult(transcript, best.get("Confidence"))

    async def aclose(self) -> None:
        await self._client.aclose()
