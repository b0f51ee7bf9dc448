"""LiteLLMClient -- 经 LiteLLM Proxy 调用模型

Planner 与 Executor 共用同一个客户端，区别只在运行时 group 与是否开放工具。
工具以 OpenAI function tools 形态透传，模型返回的 tool_calls 解析为 ToolCall。
"""

import time
from typing import Any

import httpx
import structlog
from litellm import acompletion

from . import response as response_parser
from .exceptions import ProviderError, ProxyUnreachableError
from .models import ModelCallResult

log = structlog.get_logger()

# /health/liveliness 探测超时
HEALTH_CHECK_TIMEOUT_S = 5

# 这些异常视为 Proxy 不可达，交给 FallbackManager 降级
_UNREACHABLE_TYPES = (
    ConnectionError,
    OSError,
    TimeoutError,
    httpx.TransportError,
)
_UNREACHABLE_NAMES = frozenset({"APIConnectionError", "APITimeoutError"})


def _is_connection_error(e: Exception) -> bool:
    return isinstance(e, _UNREACHABLE_TYPES) or type(e).__name__ in _UNREACHABLE_NAMES


class LiteLLMClient:
    """LiteLLM Proxy 客户端

    proxy_api_key 是 Proxy 的访问密钥，真实 provider 密钥只存在于 Proxy 一侧。
    """

    def __init__(
        self,
        proxy_base_url: str = "http://localhost:4000",
        proxy_api_key: str = "",
        timeout_s: int = 60,
    ) -> None:
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxy_api_key = proxy_api_key
        self._timeout_s = timeout_s

    def _request_kwargs(
        self,
        messages: list[dict[str, Any]],
        model_alias: str,
        temperature: float,
        max_tokens: int | None,
        tools: list[dict[str, Any]] | None,
        extra: dict[str, Any],
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": model_alias,
            "messages": messages,
            "api_base": self._proxy_base_url,
            "api_key": self._proxy_api_key or "no-key",
            "temperature": temperature,
            "timeout": self._timeout_s,
        }
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        # 空工具列表等同于不开放工具（Executor 强制收尾轮次）
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        request.update(extra)
        return request

    def _wrap_error(self, e: Exception) -> ProviderError:
        if _is_connection_error(e):
            return ProxyUnreachableError(proxy_url=self._proxy_base_url, original_error=e)
        return ProviderError(f"LLM 调用失败: {type(e).__name__}: {e}", recoverable=True)

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model_alias: str = "main",
        temperature: float = 0.7,
        max_tokens: int | None = None,
        tools: list[dict[str, Any]] | None = None,
        **kwargs,
    ) -> ModelCallResult:
        """发送一次 chat completion

        Args:
            messages: 对话消息，可包含 assistant tool_calls 与 tool 结果消息
            model_alias: 运行时 group（AliasRegistry.resolve() 的结果）
            tools: OpenAI function tools，None 或空列表表示本轮不开放工具

        Raises:
            ProxyUnreachableError: 连接失败或超时
            ProviderError: Proxy 返回错误
        """
        request = self._request_kwargs(messages, model_alias, temperature, max_tokens, tools, kwargs)
        log.debug(
            "model_call_start",
            model_alias=model_alias,
            message_count=len(messages),
            tool_count=len(request.get("tools", [])),
        )

        started = time.monotonic()
        try:
            raw = await acompletion(**request)
        except ProviderError:
            raise
        except Exception as e:
            log.error(
                "model_call_failed",
                model_alias=model_alias,
                error_type=type(e).__name__,
                error=str(e),
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            raise self._wrap_error(e) from e

        result = response_parser.to_call_result(
            raw,
            model_alias=model_alias,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        log.info(
            "model_call_completed",
            model_alias=model_alias,
            model_name=result.model_name,
            provider=result.provider,
            duration_ms=result.duration_ms,
            tool_calls=len(result.tool_calls),
        )
        return result

    async def health_check(self) -> bool:
        """GET {proxy}/health/liveliness，不可达时返回 False 而不抛异常"""
        url = f"{self._proxy_base_url}/health/liveliness"
        try:
            async with httpx.AsyncClient() as http_client:
                resp = await http_client.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
        except httpx.HTTPError as e:
            log.debug("proxy_liveliness_failed", url=url, error=str(e))
            return False
        return resp.status_code == 200
