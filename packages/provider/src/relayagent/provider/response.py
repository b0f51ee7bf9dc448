"""LiteLLM 响应解析 -- 内容、工具调用、token、成本、模型信息

所有函数不抛异常：解析失败时返回空值并记录 debug 日志。
成本采用双通道策略: completion_cost() -> _hidden_params -> (0.0, True)。
"""

import contextlib

import structlog
from litellm import completion_cost

from .models import ModelCallResult, TokenUsage, ToolCall

log = structlog.get_logger()


def extract_content(response) -> str:
    """第一个 choice 的文本内容（工具调用轮次通常为空）"""
    try:
        return response.choices[0].message.content or ""
    except (AttributeError, IndexError, TypeError):
        return ""


def parse_tool_calls(response) -> list[ToolCall]:
    """解析 message.tool_calls 为 ToolCall 列表

    兼容对象属性与 dict 两种形态（LiteLLM 不同版本返回类型不同）。
    """
    try:
        raw_calls = response.choices[0].message.tool_calls or []
    except (AttributeError, IndexError, TypeError):
        return []

    calls: list[ToolCall] = []
    for index, raw in enumerate(raw_calls):
        function = _get(raw, "function")
        name = _get(function, "name") or ""
        if not name:
            log.debug("tool_call_without_name", index=index)
            continue
        calls.append(
            ToolCall.from_raw(
                call_id=_get(raw, "id") or f"call_{index}",
                name=name,
                raw_arguments=_get(function, "arguments"),
            )
        )
    return calls


def calculate_cost(response) -> tuple[float, bool]:
    """从 LiteLLM 响应计算 USD 成本

    Returns:
        (cost_usd, cost_unavailable) 元组
    """
    # 主路径: litellm.completion_cost()
    try:
        cost = completion_cost(completion_response=response)
        if cost is not None and cost >= 0:
            return float(cost), False
    except Exception as e:
        log.debug("completion_cost_failed", error=str(e))

    # 兜底路径: _hidden_params.response_cost
    hidden = getattr(response, "_hidden_params", None)
    if isinstance(hidden, dict):
        cost = hidden.get("response_cost")
        if isinstance(cost, int | float) and cost >= 0:
            return float(cost), False

    log.debug("cost_unavailable")
    return 0.0, True


def parse_usage(response) -> TokenUsage:
    """解析 token 使用数据（失败时返回全零）"""
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    try:
        return TokenUsage(
            prompt_tokens=_get(usage, "prompt_tokens") or 0,
            completion_tokens=_get(usage, "completion_tokens") or 0,
            total_tokens=_get(usage, "total_tokens") or 0,
        )
    except ValueError as e:
        log.debug("parse_usage_failed", error=str(e))
        return TokenUsage()


def extract_model_info(response) -> tuple[str, str]:
    """提取 (model_name, provider)"""
    model_name = ""
    provider = ""

    with contextlib.suppress(Exception):
        model_name = getattr(response, "model", "") or ""

    hidden = getattr(response, "_hidden_params", None)
    if isinstance(hidden, dict):
        provider = hidden.get("custom_llm_provider", "") or ""

    return model_name, provider


def _get(obj, key: str):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def to_call_result(response, model_alias: str, duration_ms: int) -> ModelCallResult:
    """把一次 acompletion 响应组装为 ModelCallResult"""
    model_name, provider = extract_model_info(response)
    cost_usd, cost_unavailable = calculate_cost(response)
    return ModelCallResult(
        content=extract_content(response),
        tool_calls=parse_tool_calls(response),
        model_alias=model_alias,
        model_name=model_name,
        provider=provider,
        duration_ms=duration_ms,
        token_usage=parse_usage(response),
        cost_usd=cost_usd,
        cost_unavailable=cost_unavailable,
    )
