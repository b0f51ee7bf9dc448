"""工具能力契约 -- Tool / FunctionTool / ToolRegistry

工具以 {name, description, input_schema, execute(arguments)} 描述，
以 OpenAI function tools 形态暴露给模型。工具失败是普通的步骤失败。
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import structlog

from .exceptions import ToolArgumentsError, ToolError, ToolNotFoundError

log = structlog.get_logger()

# JSON Schema 基础类型 -> Python 类型
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
}


@runtime_checkable
class Tool(Protocol):
    """工具能力接口"""

    name: str
    description: str
    input_schema: dict[str, Any]

    async def execute(self, arguments: dict[str, Any]) -> Any:
        """执行工具，返回可 JSON 序列化的结果或文本"""
        ...


class FunctionTool:
    """把一个 async 函数包装成 Tool"""

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        func: Callable[[dict[str, Any]], Awaitable[Any]],
    ) -> None:
        self.name = name
        self.description = description
        self.input_schema = input_schema
        self._func = func

    async def execute(self, arguments: dict[str, Any]) -> Any:
        return await self._func(arguments)


def validate_arguments(tool: Tool, arguments: dict[str, Any] | None) -> dict[str, Any]:
    """按 input_schema 做轻量校验：必须是对象、必填字段存在、基础类型匹配"""
    if not isinstance(arguments, dict):
        raise ToolArgumentsError(tool.name, "arguments must be a JSON object")

    schema = tool.input_schema or {}
    for field in schema.get("required", []):
        if field not in arguments:
            raise ToolArgumentsError(tool.name, f"missing required argument '{field}'")

    for field, prop in (schema.get("properties") or {}).items():
        if field not in arguments or not isinstance(prop, dict):
            continue
        expected = _JSON_TYPES.get(prop.get("type", ""))
        value = arguments[field]
        if expected is None:
            continue
        # bool 是 int 的子类，单独排除
        if isinstance(value, bool) and bool not in expected:
            raise ToolArgumentsError(tool.name, f"argument '{field}' must be {prop['type']}")
        if not isinstance(value, expected):
            raise ToolArgumentsError(tool.name, f"argument '{field}' must be {prop['type']}")
    return arguments


class ToolRegistry:
    """已注册工具集合"""

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            log.warning("tool_replaced", tool_name=tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def to_openai_tools(self) -> list[dict[str, Any]]:
        """转换为 OpenAI function tools 定义"""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.input_schema or {"type": "object", "properties": {}},
                },
            }
            for tool in self._tools.values()
        ]

    def describe(self) -> str:
        """供规划提示词使用的工具清单，每行 "- name: description" """
        if not self._tools:
            return "(no tools available)"
        return "\n".join(f"- {tool.name}: {tool.description}" for tool in self._tools.values())

    async def invoke(self, name: str, arguments: dict[str, Any] | None) -> str:
        """调用工具并把结果序列化为文本

        Raises:
            ToolNotFoundError: 工具未注册
            ToolArgumentsError: 参数不合法
            ToolError: 工具执行失败
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        valid_arguments = validate_arguments(tool, arguments)
        try:
            result = await tool.execute(valid_arguments)
        except ToolError:
            raise
        except Exception as e:
            raise ToolError(name, f"{type(e).__name__}: {e}") from e

        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False, default=str)
