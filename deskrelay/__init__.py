"""
deskrelay
~~~~~~~~~

酒店前台实时翻译中继服务 —— 房客与前台之间的语音/文本消息转写、翻译与房间广播。
"""

__version__ = "0.1.0"
