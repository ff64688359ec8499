"""
deskrelay.core.errors
~~~~~~~~~~~~~~~~~~~~~

业务异常分类。

所有异常都在事件处理边界（网关 / 消息流水线）被捕获并转换为协议层的
``error`` 或 ``processing_status`` 事件，不会中断连接或进程。
"""
from __future__ import annotations


class RelayError(Exception):
    """中继业务异常基类。

    Attributes:
        message: 可直接回传给客户端的说明文字。
    """

    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message: str = message or self.default_message
        super().__init__(self.message)


class Unauthorized(RelayError):
    """发送方不是所声明房间的成员。仅私下通知发送方，不广播。"""

    default_message = "Not authorized for this room"


class EmptyTranscript(RelayError):
    """音频中没有可用的语音。房间内广播一次 error 状态，不产生译文。"""

    default_message = "No speech detected"


class CollaboratorFailure(RelayError):
    """外部语音识别 / 翻译服务调用失败。"""

    default_message = "External service failure"


class PayloadValidationError(RelayError):
    """客户端事件缺少必填字段或字段非法。仅私下通知发送方。"""

    default_message = "Invalid event payload"
