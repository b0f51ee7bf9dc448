"""模型调用与工具调用的异常

对 Executor 而言这些都是普通的步骤失败，统一计入重试次数。
"""


class ProviderError(Exception):
    """模型调用失败

    recoverable=False 表示降级链已经用尽。
    """

    def __init__(self, message: str, recoverable: bool = True) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class ProxyUnreachableError(ProviderError):
    """连不上 LiteLLM Proxy（拒绝连接、超时、DNS 失败）"""

    def __init__(self, proxy_url: str, original_error: Exception) -> None:
        super().__init__(f"LiteLLM Proxy 不可达: {proxy_url} ({original_error})")
        self.proxy_url = proxy_url
        self.original_error = original_error


class ToolError(Exception):
    """工具执行失败"""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """模型请求了未注册的工具"""

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, "tool is not registered")


class ToolArgumentsError(ToolError):
    """参数不是 JSON 对象、缺少必填字段或类型不符"""
