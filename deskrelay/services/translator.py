"""
deskrelay.services.translator
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

文本翻译外部服务 —— 接口定义 + Azure Translator v3 REST 客户端。
"""
from __future__ import annotations

from typing import NamedTuple, Protocol

import httpx

from deskrelay.core.errors import CollaboratorFailure
from deskrelay.core.logging import get_logger
from deskrelay.languages import translator_code

logger = get_logger(__name__)


class TranslationResult(NamedTuple):
    text: str


class Translator(Protocol):
    """文本翻译服务接口。"""

    async def translate(self, text: str, source: str, target: str) -> TranslationResult:
        ...


class AzureTranslatorClient:
    """Azure Translator 客户端。

    语言标签会先转换为服务使用的语种代码（``hi-IN`` → ``hi``），
    源语种与目标语种相同时直接返回原文，不发起请求。
    """

    def __init__(
        self,
        key: str | None,
        region: str | None,
        endpoint: str = "https://api.cognitive.microsofttranslator.com",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.key = key
        self.region = region
        self.endpoint = endpoint.rstrip("/")
        self._client: httpx.AsyncClient = client or httpx.AsyncClient(timeout=timeout)

    async def translate(self, text: str, source: str, target: str) -> TranslationResult:
        """翻译一段文本。

        Raises:
            CollaboratorFailure: 未配置密钥、网络错误或返回结构异常。
        """
        source_code, target_code = translator_code(source), translator_code(target)
        if source_code == target_code:
            return TranslationResult(text)

        if not (self.key and self.region):
            raise CollaboratorFailure("Azure Translator is not configured")

        try:
            response = await self._client.post(
                f"{self.endpoint}/translate",
                params={"api-version": "3.0", "from": source_code, "to": target_code},
                headers={
                    "Ocp-Apim-Subscription-Key": self.key,
                    "Ocp-Apim-Subscription-Region": self.region,
                    "Content-Type": "application/json",
                },
                json=[{"Text": text}],
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("翻译调用失败: %s", e)
            raise CollaboratorFailure(f"Translation failed: {e}") from e

        try:
            return TranslationResult(payload[0]["translations"][0]["text"])
        except (KeyError, IndexError, TypeError) as e:
            raise CollaboratorFailure("Translation failed: unexpected response") from e

    async def aclose(self) -> None:
        await self._client.aclose()
