import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from deskrelay.core.rate_limit import WebSocketRateLimiter


# ==============================================================================
# 单元测试: 测试 WebSocketRateLimiter 逻辑
# ==============================================================================
def test_websocket_rate_limiter_unit():
    """测试 WebSocket 内存限流器的基础逻辑"""
    limiter = WebSocketRateLimiter(interval_seconds=0.5)
    client_id = "conn-1"

    # 第一次发消息应该允许
    assert limiter.is_allowed(client_id) is True

    # 立刻发第二次应该被拦截
    assert limiter.is_allowed(client_id) is False

    # 其他连接互不影响
    assert limiter.is_allowed("conn-2") is True

    # 等待超过间隔时间后应该放行
    time.sleep(0.6)
    assert limiter.is_allowed(client_id) is True

    # 最后清理记录
    limiter.remove_client(client_id)
    assert client_id not in limiter._last_message_time


def test_zero_interval_disables_limit():
    limiter = WebSocketRateLimiter(interval_seconds=0)

    assert all(limiter.is_allowed("conn-1") for _ in range(5))


# ==============================================================================
# 集成测试: 测试 WebSocket 端点的限流机制
# ==============================================================================
def test_websocket_endpoint_rate_limit(
    client: TestClient, translator: MagicMock, monkeypatch: pytest.MonkeyPatch,
):
    """连续发送两条文本消息，第二条被拦截且不会触发翻译。"""
    monkeypatch.setattr("deskrelay.api.ws.ws_limiter", WebSocketRateLimiter(interval_seconds=10))
    message = {"event": "text_message", "data": {"room": "R", "text": "Where is the pool"}}

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "join_room", "data": {"room": "R", "role": "guest", "language": "bn-IN"}})
        assert [ws.receive_json()["event"] for _ in range(2)] == ["room_joined", "room_stats"]

        ws.send_json(message)
        ws.send_json(message)
        # 第一条: translating / translation / complete，第二条: 限流提示
        frames = [ws.receive_json() for _ in range(4)]

    errors = [frame["data"] for frame in frames if frame["event"] == "error"]
    assert errors == [{"message": "Sending too fast, please slow down"}]
    assert [frame["event"] for frame in frames].count("translation") == 1
    assert translator.translate.await_count == 1
