"""Easybeam 端点配置。

本模块集中维护 SDK 可调用的远程端点：

- 对话端点（prompt / agent / portal / workflow）：POST {base}/{path}/{id}，
  同时支持阻塞调用与流式调用。
- review 端点：POST {base}/review，不带 id。

上层只使用逻辑端点名，具体路径与能力由这里集中配置。"""

from dataclasses import dataclass
from typing import Mapping, Optional

from easybeam_core.domain.exceptions import ConfigError


@dataclass(frozen=True)
class EndpointConfig:
    """单个端点的配置。"""

    name: str
    path: str
    requires_id: bool = True
    streamable: bool = True


PROMPT = EndpointConfig(name="prompt", path="prompt")
AGENT = EndpointConfig(name="agent", path="agent")
PORTAL = EndpointConfig(name="portal", path="portal")
WORKFLOW = EndpointConfig(name="workflow", path="workflow")
REVIEW = EndpointConfig(name="review", path="review", requires_id=False, streamable=False)


ENDPOINT_REGISTRY: Mapping[str, EndpointConfig] = {
    "prompt": PROMPT,
    "agent": AGENT,
    "portal": PORTAL,
    "workflow": WORKFLOW,
    "review": REVIEW,
}


def get_endpoint(name: str) -> EndpointConfig:
    """根据名称获取 EndpointConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in ENDPOINT_REGISTRY.items():
        if k == key:
            return cfg
    raise ConfigError(code="UNKNOWN_ENDPOINT", message=f"Unknown endpoint: {name!r}")


def endpoint_url(base_url: str, endpoint: EndpointConfig, resource_id: Optional[str] = None) -> str:
    base = base_url.rstrip("/")
    if not endpoint.requires_id:
        return f"{base}/{endpoint.path}"
    if not resource_id:
        raise ConfigError(code="INVALID_BODY", message=f"{endpoint.name} id must not be empty")
    return f"{base}/{endpoint.path}/{resource_id}"
