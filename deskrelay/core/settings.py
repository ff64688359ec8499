"""
deskrelay.core.settings
~~~~~~~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="Front Desk Relay", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── Azure 语音识别 ────────────────────────────────────────────────
    AZURE_SPEECH_KEY: str | None = Field(default=None, description="Azure Speech 订阅密钥")
    AZURE_SPEECH_REGION: str | None = Field(default=None, description="Azure Speech 区域，如 eastus")
    AUDIO_SAMPLE_RATE: int = Field(
        default=16000,
        description="客户端上传的裸 PCM 采样率（16-bit 单声道）",
    )

    # ── Azure 文本翻译 ────────────────────────────────────────────────
    AZURE_TRANSLATOR_KEY: str | None = Field(default=None, description="Azure Translator 订阅密钥")
    AZURE_TRANSLATOR_REGION: str | None = Field(default=None, description="Azure Translator 区域")
    AZURE_TRANSLATOR_ENDPOINT: str = Field(
        default="https://api.cognitive.microsofttranslator.com",
        description="Azure Translator 服务地址",
    )

    COLLABORATOR_TIMEOUT: float = Field(
        default=15.0,
        description="调用外部语音/翻译服务的超时时间（秒）",
    )

    # ── 房间 ──────────────────────────────────────────────────────────
    DEFAULT_HOTEL_NAME: str = Field(default="Unknown Hotel", description="未指定酒店名时的占位名称")
    ROOM_CLEANUP_DELAY: float = Field(
        default=300.0,
        description="房间清空后延迟删除的秒数",
    )
    PUBLIC_BASE_URL: str | None = Field(
        default=None,
        description="生成房客链接时使用的对外地址；为空时取请求地址",
    )

    # ── WebSocket ─────────────────────────────────────────────────────
    WS_RATE_LIMIT_INTERVAL: float = Field(
        default=0.5,
        description="单个连接两条消息之间的最小间隔（秒），0 表示不限流",
    )
    WS_QUEUE_SIZE: int = Field(default=20, description="单个连接待处理事件队列长度")

    # ── 服务 ──────────────────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0", description="服务监听地址")
    PORT: int = Field(default=3000, description="服务监听端口")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_dev(self) -> bool:
        """当前是否为开发环境。"""
        return self.ENVIRONMENT == "dev"

    @property
    def debug(self) -> bool:
        """是否开启 debug 模式。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def reload(self) -> bool:
        """是否开启热重载。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        如果环境变量中显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        env_log = os.getenv("LOG_LEVEL")
        if env_log:
            return env_log
        return {
            "dev": "INFO",
            "test": "DEBUG",
            "prod": "WARNING",
        }.get(self.ENVIRONMENT, "INFO")

    @property
    def allow_cors_all_origins(self) -> bool:
        """是否允许所有 CORS 来源。非 prod 环境允许，方便本地调试。"""
        return not self.is_prod

    # ── 外部服务就绪状态 ──────────────────────────────────────────────

    @property
    def speech_configured(self) -> bool:
        """Azure Speech 密钥与区域是否都已配置。"""
        return bool(self.AZURE_SPEECH_KEY and self.AZURE_SPEECH_REGION)

    @property
    def translator_configured(self) -> bool:
        """Azure Translator 密钥与区域是否都已配置。"""
        return bool(self.AZURE_TRANSLATOR_KEY and self.AZURE_TRANSLATOR_REGION)


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()
