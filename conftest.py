"""全局 pytest 配置 -- 临时 SQLite、脚本化模型替身、装配好的 Gateway app"""

import json
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from relayagent.core.config import EngineConfig
from relayagent.core.store import StoreGroup, create_store_group
from relayagent.provider import ModelCallResult


@dataclass
class LLMCall:
    model_alias: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] | None


class ScriptedLLM:
    """按 alias 依次返回预设结果的模型替身

    队列元素：
    - str: 作为文本内容返回
    - list[ToolCall]: 作为工具调用返回
    - Exception 实例: 抛出
    - async 可调用对象: 以 messages 调用，返回值再按上述规则处理
    队列为空时 planner 返回三步计划，executor 返回 "Done: <步骤行>"。
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list] = {"planner": [], "executor": []}
        self.calls: list[LLMCall] = []

    @staticmethod
    def plan(*titles: str, tool_name: str | None = None) -> str:
        return json.dumps(
            [
                {"title": title, "instruction": f"Carry out: {title}", "tool_name": tool_name}
                for title in titles
            ]
        )

    def script(self, alias: str, *items) -> None:
        self.scripts.setdefault(alias, []).extend(items)

    def calls_for(self, alias: str) -> list[LLMCall]:
        return [c for c in self.calls if c.model_alias == alias]

    async def call(
        self,
        messages: list[dict[str, Any]],
        model_alias: str | None = None,
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelCallResult:
        alias = model_alias or "main"
        self.calls.append(LLMCall(alias, list(messages), tools))

        queue = self.scripts.get(alias, [])
        item = queue.pop(0) if queue else self._default(alias, messages)
        if callable(item):
            item = await item(messages)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ModelCallResult):
            return item
        if isinstance(item, list):
            return ModelCallResult(
                content="", tool_calls=item, model_alias=alias, duration_ms=0
            )
        return ModelCallResult(content=str(item), model_alias=alias, duration_ms=0)

    def _default(self, alias: str, messages: list[dict[str, Any]]) -> str:
        if alias == "planner":
            return self.plan("Step one", "Step two", "Step three")
        step_line = messages[1]["content"].splitlines()[0]
        return f"Done: {step_line}"


class RecordingScheduler:
    """只记录调度请求的链式调度器"""

    def __init__(self) -> None:
        self.runs: list[tuple[str, float]] = []
        self.plans: list[tuple[str, float]] = []

    def schedule_run(self, task_id: str, delay_s: float = 0.0) -> None:
        self.runs.append((task_id, delay_s))

    def schedule_plan(self, task_id: str, delay_s: float = 0.0) -> None:
        self.plans.append((task_id, delay_s))

    async def aclose(self) -> None:
        return None


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest.fixture
def engine_config() -> EngineConfig:
    """测试用引擎配置：进程内链式调度，无延迟"""
    return EngineConfig(
        chain_mode="inprocess",
        chain_delay_s=0.0,
        retry_backoff_s=0.0,
        step_timeout_s=5.0,
        step_lease_s=10.0,
        stall_threshold_s=120.0,
    )


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def recording_scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest_asyncio.fixture
async def app(tmp_path: Path, store_group: StoreGroup, llm: ScriptedLLM, engine_config, monkeypatch):
    """创建测试用 FastAPI app（绕过 lifespan，手动装配服务）"""
    monkeypatch.setenv("RELAY_DB_PATH", str(tmp_path / "sqlite" / "test.db"))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from relayagent.gateway.main import create_app, wire_services
    from relayagent.gateway.services.chain import InProcessChainScheduler

    application = create_app()
    scheduler = InProcessChainScheduler()
    wire_services(
        application,
        store_group,
        llm,
        scheduler=scheduler,
        config=engine_config,
    )
    yield application
    await scheduler.aclose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def scheduler(app):
    """app 使用的进程内调度器，wait_idle() 等待整条执行链结束"""
    return app.state.scheduler
