"""FallbackManager 单元测试

验证 primary 成功不触发 fallback、primary 失败触发 fallback
（is_fallback=True + fallback_reason）、fallback group 切换、双方失败抛 ProviderError。
"""

from unittest.mock import AsyncMock

import pytest
from relayagent.provider.exceptions import ProviderError, ProxyUnreachableError
from relayagent.provider.fallback import FallbackManager
from relayagent.provider.models import ModelCallResult


def _make_result(content: str = "ok") -> ModelCallResult:
    return ModelCallResult(
        content=content,
        model_alias="main",
        model_name="gpt-4o",
        provider="openai",
        duration_ms=100,
    )


@pytest.fixture
def mock_primary():
    client = AsyncMock()
    client.complete = AsyncMock(return_value=_make_result("primary response"))
    return client


@pytest.fixture
def mock_fallback():
    client = AsyncMock()
    client.complete = AsyncMock(return_value=_make_result("fallback response"))
    return client


class TestPrimarySuccess:
    async def test_primary_success_no_fallback(self, mock_primary, mock_fallback):
        """Primary 成功时不调用 fallback"""
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        result = await fm.call_with_fallback([{"role": "user", "content": "t"}], "main")

        assert result.content == "primary response"
        assert result.is_fallback is False
        mock_fallback.complete.assert_not_called()

    async def test_kwargs_forwarded(self, mock_primary):
        fm = FallbackManager(primary=mock_primary)
        tools = [{"type": "function", "function": {"name": "x"}}]

        await fm.call_with_fallback([{"role": "user", "content": "t"}], "main", tools=tools)

        assert mock_primary.complete.call_args.kwargs["tools"] == tools


class TestPrimaryFailure:
    async def test_proxy_unreachable_triggers_fallback(self, mock_primary, mock_fallback):
        mock_primary.complete.side_effect = ProxyUnreachableError(
            "http://localhost:4000", ConnectionError("refused")
        )
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        result = await fm.call_with_fallback([{"role": "user", "content": "t"}])

        assert result.is_fallback is True
        assert result.fallback_reason != ""
        assert result.content == "fallback response"

    async def test_fallback_alias_and_tools(self, mock_primary, mock_fallback):
        """降级调用切换到 fallback group，且仍携带工具定义"""
        mock_primary.complete.side_effect = ProviderError("quota exceeded")
        fm = FallbackManager(
            primary=mock_primary, fallback=mock_fallback, fallback_alias="fallback"
        )
        tools = [{"type": "function", "function": {"name": "x"}}]

        await fm.call_with_fallback([{"role": "user", "content": "t"}], "main", tools=tools)

        kwargs = mock_fallback.complete.call_args.kwargs
        assert kwargs["model_alias"] == "fallback"
        assert kwargs["tools"] == tools

    async def test_no_fallback_raises(self, mock_primary):
        mock_primary.complete.side_effect = ProviderError("boom")
        fm = FallbackManager(primary=mock_primary, fallback=None)

        with pytest.raises(ProviderError) as exc_info:
            await fm.call_with_fallback([{"role": "user", "content": "t"}])
        assert exc_info.value.recoverable is False

    async def test_both_fail_raises(self, mock_primary, mock_fallback):
        mock_primary.complete.side_effect = ProviderError("primary down")
        mock_fallback.complete.side_effect = ProviderError("fallback down")
        fm = FallbackManager(primary=mock_primary, fallback=mock_fallback)

        with pytest.raises(ProviderError) as exc_info:
            await fm.call_with_fallback([{"role": "user", "content": "t"}])
        assert "primary down" in str(exc_info.value)
        assert "fallback down" in str(exc_info.value)
