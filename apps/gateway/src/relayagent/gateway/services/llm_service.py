"""LLMService -- 引擎侧的模型调用入口

语义 alias（planner / executor）经 AliasRegistry 解析为运行时 group，
再通过 FallbackManager 调用，返回 ModelCallResult。
"""

from typing import Any, Protocol

from relayagent.provider import (
    AliasRegistry,
    EchoMessageAdapter,
    FallbackManager,
    ModelCallResult,
)


class ModelCaller(Protocol):
    """Planner / Executor 依赖的最小模型调用接口"""

    async def call(
        self,
        messages: list[dict[str, Any]],
        model_alias: str | None = None,
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelCallResult: ...


class LLMService:
    """LLM 服务

    无参构造时使用 Echo 模式（无降级）。
    """

    def __init__(
        self,
        fallback_manager: FallbackManager | None = None,
        alias_registry: AliasRegistry | None = None,
    ) -> None:
        """初始化 LLM 服务

        Args:
            fallback_manager: 包含 primary + fallback 的降级管理器
            alias_registry: 语义 alias 注册表
        """
        self._fallback_manager = fallback_manager or FallbackManager(
            primary=EchoMessageAdapter(),
            fallback=None,
        )
        self._alias_registry = alias_registry or AliasRegistry()

    async def call(
        self,
        messages: list[dict[str, Any]],
        model_alias: str | None = None,
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelCallResult:
        """调用 LLM

        Args:
            messages: OpenAI 格式消息列表
            model_alias: 语义 alias 或运行时 group，None 使用 "main"
            tools: OpenAI function tools，None 表示不开放工具
        """
        resolved_alias = self._alias_registry.resolve(model_alias or "main")

        kwargs: dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
        return await self._fallback_manager.call_with_fallback(
            messages=messages,
            model_alias=resolved_alias,
            **kwargs,
        )
