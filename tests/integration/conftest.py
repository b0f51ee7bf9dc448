"""集成测试共享 fixture

- http_app: 链式调度走 HTTP 自调用（经 ASGITransport 回到同一个 app），带内部密钥
- echo_app: 使用默认 LLMService（Echo 模式）的完整装配
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from relayagent.core.config import EngineConfig
from relayagent.core.store import StoreGroup

INTERNAL_TOKEN = "integration-secret"


def _config(**overrides) -> EngineConfig:
    return EngineConfig(
        chain_delay_s=0.0,
        retry_backoff_s=0.0,
        step_timeout_s=5.0,
        step_lease_s=10.0,
        **overrides,
    )


@pytest_asyncio.fixture
async def http_app(tmp_path: Path, store_group: StoreGroup, llm, monkeypatch):
    """HTTP 链式调度：每个 cycle 都是一次独立的 POST /api/tasks/{id}/run"""
    monkeypatch.setenv("RELAY_DB_PATH", str(tmp_path / "sqlite" / "test.db"))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from relayagent.gateway.main import create_app, wire_services
    from relayagent.gateway.services.chain import HttpChainScheduler

    application = create_app()
    chain_client = AsyncClient(transport=ASGITransport(app=application))
    scheduler = HttpChainScheduler(
        base_url="http://test",
        internal_token=INTERNAL_TOKEN,
        client=chain_client,
    )
    wire_services(
        application,
        store_group,
        llm,
        scheduler=scheduler,
        config=_config(chain_mode="http", internal_token=INTERNAL_TOKEN),
    )
    yield application
    await scheduler.aclose()
    await chain_client.aclose()


@pytest_asyncio.fixture
async def http_client(http_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=http_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def echo_app(tmp_path: Path, store_group: StoreGroup, monkeypatch):
    """Echo 模式：不注入模型替身，走真实的 LLMService -> FallbackManager -> EchoMessageAdapter"""
    monkeypatch.setenv("RELAY_DB_PATH", str(tmp_path / "sqlite" / "test.db"))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from relayagent.gateway.main import create_app, wire_services
    from relayagent.gateway.services.chain import InProcessChainScheduler
    from relayagent.gateway.services.llm_service import LLMService

    application = create_app()
    scheduler = InProcessChainScheduler()
    wire_services(
        application,
        store_group,
        LLMService(),
        scheduler=scheduler,
        config=_config(chain_mode="inprocess"),
    )
    yield application
    await scheduler.aclose()


@pytest_asyncio.fixture
async def echo_client(echo_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=echo_app),
        base_url="http://test",
    ) as ac:
        yield ac
