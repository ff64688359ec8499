"""
deskrelay.languages
~~~~~~~~~~~~~~~~~~~

语言注册表 —— 语言标签到显示名称的静态映射，纯查找，无状态。
"""
from __future__ import annotations

# 前台员工固定使用的语言
STAFF_LANGUAGE: str = "en-US"

# 房间内尚无房客语言时的兜底语言
DEFAULT_GUEST_LANGUAGE: str = "hi-IN"

LANGUAGE_NAMES: dict[str, str] = {
    "hi-IN": "Hindi",
    "bn-IN": "Bengali",
    "ta-IN": "Tamil",
    "te-IN": "Telugu",
    "mr-IN": "Marathi",
    "gu-IN": "Gujarati",
    "kn-IN": "Kannada",
    "ml-IN": "Malayalam",
    "pa-IN": "Punjabi",
    "or-IN": "Odia",
    "od-IN": "Odia",
    "es-ES": "Spanish",
    "de-DE": "German",
    "fr-FR": "French",
    "en-IN": "English (India)",
    "en-US": "English (US)",
}

# 翻译服务使用的语种代码与 BCP-47 主标签不一致的情况
_TRANSLATOR_ALIASES: dict[str, str] = {
    "od": "or",
}


def language_name(tag: str) -> str:
    """返回语言标签的显示名称，未知标签原样返回。"""
    return LANGUAGE_NAMES.get(tag, tag)


def translator_code(tag: str) -> str:
    """将 ``hi-IN`` 这类标签转换为翻译服务使用的语种代码（``hi``）。"""
    primary = tag.split("-", 1)[0].lower()
    return _TRANSLATOR_ALIASES.get(primary, primary)
