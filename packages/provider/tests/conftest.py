"""Provider 包测试 fixtures"""

from unittest.mock import MagicMock

import pytest


@pytest.fixture
def sample_messages() -> list[dict[str, str]]:
    """标准 messages 格式测试数据"""
    return [{"role": "user", "content": "Hello, world!"}]


@pytest.fixture
def multi_turn_messages() -> list[dict[str, str]]:
    """多轮对话 messages 测试数据"""
    return [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "What is Python?"},
        {"role": "assistant", "content": "Python is a programming language."},
        {"role": "user", "content": "Tell me more."},
    ]


@pytest.fixture
def make_litellm_response():
    """构造 Mock LiteLLM acompletion 返回"""

    def _make(
        content: str | None = "Hello!",
        model: str = "gpt-4o-mini",
        tool_calls: list | None = None,
        prompt_tokens: int = 10,
        completion_tokens: int = 20,
        total_tokens: int = 30,
    ):
        response = MagicMock()
        response.model = model

        choice = MagicMock()
        choice.message.content = content
        choice.message.tool_calls = tool_calls
        response.choices = [choice]

        usage = MagicMock()
        usage.prompt_tokens = prompt_tokens
        usage.completion_tokens = completion_tokens
        usage.total_tokens = total_tokens
        response.usage = usage

        response._hidden_params = {
            "custom_llm_provider": "openai",
            "response_cost": 0.001,
        }
        return response

    return _make
