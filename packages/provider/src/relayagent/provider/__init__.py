"""RelayAgent Provider -- LLM 调用抽象层

packages/provider 的公开接口导出。
"""

# 数据模型
from .alias import AliasConfig, AliasRegistry, parse_alias_overrides

# 核心组件
from .client import LiteLLMClient

# 配置
from .config import ProviderConfig, load_provider_config
from .echo_adapter import EchoMessageAdapter

# 异常
from .exceptions import (
    ProviderError,
    ProxyUnreachableError,
    ToolArgumentsError,
    ToolError,
    ToolNotFoundError,
)
from .fallback import FallbackManager
from .models import ModelCallResult, TokenUsage, ToolCall

# 工具契约
from .tools import FunctionTool, Tool, ToolRegistry

__all__ = [
    "ModelCallResult",
    "TokenUsage",
    "ToolCall",
    "LiteLLMClient",
    "AliasConfig",
    "AliasRegistry",
    "parse_alias_overrides",
    "FallbackManager",
    "EchoMessageAdapter",
    "ProviderConfig",
    "load_provider_config",
    "Tool",
    "FunctionTool",
    "ToolRegistry",
    "ProviderError",
    "ProxyUnreachableError",
    "ToolError",
    "ToolNotFoundError",
    "ToolArgumentsError",
]
