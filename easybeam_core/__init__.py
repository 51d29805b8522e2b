"""Easybeam Core 顶层包。

该包提供 Easybeam 托管 prompt / agent / portal / workflow 接口的 Python 客户端，
包括配置加载、领域模型、请求构造、SSE 流式解码与生命周期控制、
以及面向聊天界面的会话封装。
"""

from easybeam_core.domain.conversation import Conversation
from easybeam_core.domain.models import ChatMessage, ChatResponse, ChatRole
from easybeam_core.providers.easybeam_client import EasybeamClient
from easybeam_core.streaming.controller import StreamHandle, StreamState

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "ChatRole",
    "Conversation",
    "EasybeamClient",
    "StreamHandle",
    "StreamState",
]
