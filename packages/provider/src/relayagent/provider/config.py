"""ProviderConfig -- 模型调用层配置

只从环境变量读取；provider 与具体模型名由 LiteLLM Proxy 决定，这里不出现。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

from .alias import parse_alias_overrides

log = structlog.get_logger()

DEFAULT_TIMEOUT_S = 60


class ProviderConfig(BaseModel):
    """环境变量:

    LITELLM_PROXY_URL, LITELLM_PROXY_KEY, RELAY_LLM_MODE (litellm|echo),
    RELAY_LLM_TIMEOUT_S, RELAY_MODEL_ALIASES ("planner=main,executor=cheap")
    """

    proxy_base_url: str = "http://localhost:4000"
    proxy_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Proxy 访问密钥，不是 provider 的 API key",
    )
    llm_mode: Literal["litellm", "echo"] = "litellm"
    timeout_s: int = Field(default=DEFAULT_TIMEOUT_S, ge=1, description="单次模型调用超时（秒）")
    model_aliases: dict[str, str] = Field(
        default_factory=dict,
        description="语义 alias -> 运行时 group 覆盖",
    )


def _env_timeout(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        # 非法值不阻塞启动
        log.warning("invalid_timeout_config", env_var="RELAY_LLM_TIMEOUT_S", value=raw)
        return None


def load_provider_config() -> ProviderConfig:
    env = os.environ
    overrides: dict = {}

    if url := env.get("LITELLM_PROXY_URL"):
        overrides["proxy_base_url"] = url
    if key := env.get("LITELLM_PROXY_KEY"):
        overrides["proxy_api_key"] = SecretStr(key)
    if mode := env.get("RELAY_LLM_MODE"):
        overrides["llm_mode"] = mode
    if (raw_timeout := env.get("RELAY_LLM_TIMEOUT_S")) and (
        timeout := _env_timeout(raw_timeout)
    ) is not None:
        overrides["timeout_s"] = timeout
    if aliases := env.get("RELAY_MODEL_ALIASES"):
        overrides["model_aliases"] = parse_alias_overrides(aliases)

    return ProviderConfig(**overrides)
