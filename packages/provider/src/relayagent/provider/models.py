"""数据模型 -- TokenUsage + ToolCall + ModelCallResult

所有 provider（LiteLLM、Echo、测试替身）统一返回 ModelCallResult。
"""

import json
from typing import Any

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token 使用统计

    key 命名对齐 OpenAI/LiteLLM 行业标准：
    prompt_tokens / completion_tokens / total_tokens
    """

    prompt_tokens: int = Field(default=0, ge=0, description="输入 token 数")
    completion_tokens: int = Field(default=0, ge=0, description="输出 token 数")
    total_tokens: int = Field(default=0, ge=0, description="总 token 数")


class ToolCall(BaseModel):
    """模型发起的一次工具调用

    arguments 为 None 表示模型给出的参数不是合法的 JSON 对象，
    原始文本保留在 raw_arguments 中。
    """

    id: str = Field(description="调用 ID，用于回填 tool 消息")
    name: str = Field(description="工具名")
    arguments: dict[str, Any] | None = Field(default_factory=dict)
    raw_arguments: str = Field(default="{}")

    def to_message_dict(self) -> dict[str, Any]:
        """转换为 assistant 消息中的 tool_calls 元素（OpenAI 格式）"""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }

    @classmethod
    def from_raw(cls, call_id: str, name: str, raw_arguments: str | None) -> "ToolCall":
        raw = raw_arguments or "{}"
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            parsed = None
        if not isinstance(parsed, dict):
            parsed = None
        return cls(id=call_id, name=name, arguments=parsed, raw_arguments=raw)


class ModelCallResult(BaseModel):
    """LLM 调用结果

    包含响应内容、工具调用、路由信息、成本数据、降级标记等完整信息。
    """

    # 响应内容
    content: str = Field(description="LLM 响应文本内容")
    tool_calls: list[ToolCall] = Field(
        default_factory=list,
        description="模型请求的工具调用，空列表表示最终回答",
    )

    # 路由信息
    model_alias: str = Field(description="请求时使用的语义 alias 或运行时 group")
    model_name: str = Field(default="", description="实际调用的模型名称（如 gpt-4o-mini）")
    provider: str = Field(default="", description="实际 provider（如 openai/anthropic）")

    # 性能指标
    duration_ms: int = Field(ge=0, description="端到端耗时（毫秒）")

    # Token 使用
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage,
        description="Token 使用详情",
    )

    # 成本数据
    cost_usd: float = Field(default=0.0, ge=0.0, description="本次调用的 USD 成本")
    cost_unavailable: bool = Field(
        default=False,
        description="成本数据是否不可用（双通道均失败时为 True）",
    )

    # 降级信息
    is_fallback: bool = Field(default=False, description="是否为降级调用")
    fallback_reason: str = Field(default="", description="降级原因说明")
