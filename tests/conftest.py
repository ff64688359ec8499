"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— mock 掉外部语音识别与翻译服务，
使单元测试可在无网络环境下快速运行。
"""
from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("WS_RATE_LIMIT_INTERVAL", "0")

from deskrelay.core.settings import settings  # noqa: E402
from deskrelay.main import app  # noqa: E402
from deskrelay.services.relay import Relay, build_relay  # noqa: E402
from deskrelay.services.speech import TranscriptionResult  # noqa: E402
from deskrelay.services.translator import TranslationResult  # noqa: E402


@pytest.fixture()
def speech() -> MagicMock:
    """假的语音识别服务，默认识别出 ``Where is the pool``。"""
    mock = MagicMock()
    mock.transcribe = AsyncMock(return_value=TranscriptionResult("Where is the pool", 0.88))
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture()
def translator() -> MagicMock:
    """假的翻译服务，把文本包一层目标语言标记返回。"""
    mock = MagicMock()

    async def _fake_translate(text: str, source: str, target: str) -> TranslationResult:
        return TranslationResult(f"[{target}] {text}")

    mock.translate = AsyncMock(side_effect=_fake_translate)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture()
def relay(speech: MagicMock, translator: MagicMock) -> Relay:
    """注入假外部服务的完整中继组件。"""
    return build_relay(settings, speech=speech, translator=translator)


@pytest.fixture()
def client(relay: Relay, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """lifespan 启动时使用注入了假外部服务的 relay。"""
    monkeypatch.setattr("deskrelay.main.build_relay", lambda config: relay)
    with TestClient(app) as test_client:
        yield test_client


def drain(relay: Relay, connection_id: str) -> list[dict[str, Any]]:
    """取出某条连接出站队列中的全部帧。"""
    connection = relay.hub.get(connection_id)
    assert connection is not None
    frames: list[dict[str, Any]] = []
    while not connection.outbox.empty():
        frame = connection.outbox.get_nowait()
        if frame is not None:
            frames.append(frame)
    return frames


def event_names(frames: list[dict[str, Any]]) -> list[str]:
    return [frame["event"] for frame in frames]


def first(frames: list[dict[str, Any]], event: str) -> dict[str, Any]:
    """返回第一条指定事件的 data。"""
    for frame in frames:
        if frame["event"] == event:
            return frame["data"]
    raise AssertionError(f"没有收到 {event} 事件: {event_names(frames)}")
