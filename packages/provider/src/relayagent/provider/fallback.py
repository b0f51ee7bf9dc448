"""FallbackManager -- 主 group 失败时切换到备用 group

每次调用都先走 primary，不记忆上一次的降级结果。
一次步骤执行内的重试由 Executor 负责，这里只做单次调用内的切换。
"""

from typing import Any

import structlog

from .exceptions import ProviderError
from .models import ModelCallResult

log = structlog.get_logger()


class FallbackManager:
    """primary -> fallback 的两级调用链

    fallback 可以与 primary 是同一个 LiteLLMClient，此时只切换运行时 group。
    """

    def __init__(
        self,
        primary,
        fallback=None,
        fallback_alias: str | None = None,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._fallback_alias = fallback_alias

    @property
    def has_fallback(self) -> bool:
        return self._fallback is not None

    async def call_with_fallback(
        self,
        messages: list[dict[str, Any]],
        model_alias: str = "main",
        **kwargs,
    ) -> ModelCallResult:
        """调用模型，primary 失败时尝试 fallback

        kwargs（包括 tools）原样传给两级调用。降级成功的结果带
        is_fallback=True 与 fallback_reason。

        Raises:
            ProviderError: primary 失败且没有 fallback，或两级都失败（不可恢复）
        """
        try:
            return await self._primary.complete(messages=messages, model_alias=model_alias, **kwargs)
        except Exception as e:
            primary_error = e

        log.warning(
            "model_primary_failed",
            model_alias=model_alias,
            error=str(primary_error),
            has_fallback=self.has_fallback,
        )
        if not self.has_fallback:
            raise ProviderError(
                f"Primary 调用失败且无 fallback 配置: {primary_error}",
                recoverable=False,
            ) from primary_error

        fallback_alias = self._fallback_alias or model_alias
        try:
            result = await self._fallback.complete(
                messages=messages, model_alias=fallback_alias, **kwargs
            )
        except Exception as fallback_error:
            log.error(
                "model_fallback_failed",
                model_alias=model_alias,
                fallback_alias=fallback_alias,
                primary_error=str(primary_error),
                fallback_error=str(fallback_error),
            )
            raise ProviderError(
                f"Primary: {primary_error}; Fallback: {fallback_error}",
                recoverable=False,
            ) from fallback_error

        log.info("model_fallback_used", model_alias=model_alias, fallback_alias=fallback_alias)
        return result.model_copy(
            update={"is_fallback": True, "fallback_reason": f"{type(primary_error).__name__}: {primary_error}"}
        )
