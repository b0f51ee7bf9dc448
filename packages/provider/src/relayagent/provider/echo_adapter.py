"""EchoMessageAdapter -- 无 Proxy 环境下的回声模型

把最后一条 user 消息原样回显为 "Echo: ..."，从不发起工具调用。
规划请求的 user 消息就是目标文本：目标本身是 JSON 步骤数组时，
回显结果能被 Planner 解析，整条规划 -> 执行链路可以离线走通。
"""

import time
from typing import Any

from .models import ModelCallResult, TokenUsage

_EMPTY = "(empty)"


def _last_user_text(messages: list[dict[str, Any]]) -> str:
    user_texts = [m.get("content") or "" for m in messages if m.get("role") == "user"]
    if user_texts:
        return user_texts[-1]
    if messages:
        return messages[-1].get("content") or _EMPTY
    return _EMPTY


class EchoMessageAdapter:
    async def complete(
        self,
        messages: list[dict[str, Any]],
        model_alias: str = "echo",
        **kwargs,
    ) -> ModelCallResult:
        """tools 等参数一律忽略"""
        started = time.monotonic()
        prompt = _last_user_text(messages)
        reply = f"Echo: {prompt}"

        # 以空白分词粗略估算 token
        usage = TokenUsage(
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(reply.split()),
            total_tokens=len(prompt.split()) + len(reply.split()),
        )
        return ModelCallResult(
            content=reply,
            model_alias=model_alias,
            model_name="echo",
            provider="echo",
            duration_ms=int((time.monotonic() - started) * 1000),
            token_usage=usage,
        )
