"""Provider 数据模型测试"""

from relayagent.provider.models import ModelCallResult, TokenUsage, ToolCall


class TestToolCall:
    def test_from_raw_valid_json(self):
        call = ToolCall.from_raw("call_1", "web_search", '{"query": "x"}')
        assert call.arguments == {"query": "x"}
        assert call.raw_arguments == '{"query": "x"}'

    def test_from_raw_invalid_json(self):
        call = ToolCall.from_raw("call_1", "web_search", "{not json")
        assert call.arguments is None
        assert call.raw_arguments == "{not json"

    def test_from_raw_non_object(self):
        assert ToolCall.from_raw("c", "t", "[1, 2]").arguments is None

    def test_from_raw_missing_arguments(self):
        call = ToolCall.from_raw("c", "t", None)
        assert call.arguments == {}
        assert call.raw_arguments == "{}"

    def test_to_message_dict(self):
        call = ToolCall.from_raw("call_9", "send_notification", '{"title": "a"}')
        assert call.to_message_dict() == {
            "id": "call_9",
            "type": "function",
            "function": {"name": "send_notification", "arguments": '{"title": "a"}'},
        }


class TestModelCallResult:
    def test_defaults(self):
        result = ModelCallResult(content="hi", model_alias="main", duration_ms=0)
        assert result.tool_calls == []
        assert result.token_usage == TokenUsage()
        assert result.is_fallback is False
        assert result.fallback_reason == ""
