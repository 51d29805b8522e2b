"""Easybeam API 集成层。

该包下的模块负责：
- 维护端点名与 URL 路径 (registry)。
- 构造阻塞与流式调用共享的请求体与请求头 (request_builder)。
- 提供对外的客户端实现 (easybeam_client)。
"""

from typing import Optional

from easybeam_core.config.settings import settings
from easybeam_core.providers.easybeam_client import EasybeamClient


def create_client(token: Optional[str] = None, base_url: Optional[str] = None) -> EasybeamClient:
    """根据配置创建客户端实例，token/base_url 可单独覆盖。"""

    return EasybeamClient(settings, token=token, base_url=base_url)
