"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭、LLM 组件初始化、
编排引擎服务装配（wire_services）、路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from relayagent.core.config import EngineConfig, get_db_path, load_engine_config
from relayagent.core.store import StoreGroup, create_store_group
from relayagent.provider import (
    AliasRegistry,
    EchoMessageAdapter,
    FallbackManager,
    LiteLLMClient,
    ToolRegistry,
    load_provider_config,
)

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import health, lifecycle, notifications, runner, sweep, tasks
from .services.builtin_tools import default_tool_registry
from .services.chain import ChainScheduler, HttpChainScheduler, InProcessChainScheduler
from .services.executor import StepExecutor
from .services.lifecycle import LifecycleController
from .services.llm_service import LLMService, ModelCaller
from .services.notifier import TaskNotifier
from .services.planner import GoalPlanner
from .services.runner import TaskRunner
from .services.sweeper import StallSweeper
from .services.task_service import TaskService

log = structlog.get_logger()


def build_scheduler(config: EngineConfig) -> ChainScheduler:
    """按 chain_mode 创建链式调度器"""
    if config.chain_mode == "inprocess":
        return InProcessChainScheduler()
    # 派发超时覆盖一个完整 cycle
    return HttpChainScheduler(
        base_url=config.base_url,
        internal_token=config.internal_token,
        timeout_s=config.step_lease_s,
    )


def wire_services(
    app: FastAPI,
    store_group: StoreGroup,
    llm_service: ModelCaller,
    tools: ToolRegistry | None = None,
    scheduler: ChainScheduler | None = None,
    config: EngineConfig | None = None,
) -> TaskRunner:
    """装配编排引擎服务并挂到 app.state

    lifespan 与测试共用；测试可注入脚本化的 llm_service 与进程内调度器。
    """
    config = config or load_engine_config()
    sink = store_group.notification_store
    tools = tools if tools is not None else default_tool_registry(sink)
    scheduler = scheduler or build_scheduler(config)
    notifier = TaskNotifier(store_group, sink)

    planner = GoalPlanner(store_group, llm_service, tools, notifier, config)
    executor = StepExecutor(store_group, llm_service, tools, notifier, config)
    task_runner = TaskRunner(planner, executor, scheduler, config)
    if isinstance(scheduler, InProcessChainScheduler):
        scheduler.bind(task_runner.run_cycle, task_runner.plan)

    app.state.store_group = store_group
    app.state.engine_config = config
    app.state.llm_service = llm_service
    app.state.tool_registry = tools
    app.state.scheduler = scheduler
    app.state.runner = task_runner
    app.state.sweeper = StallSweeper(store_group, scheduler, config)
    app.state.lifecycle = LifecycleController(store_group, scheduler, config)
    app.state.task_service = TaskService(store_group, scheduler)
    return task_runner


def build_llm_service(app: FastAPI) -> LLMService:
    """根据 RELAY_LLM_MODE 选择 LiteLLM 或 Echo 模式"""
    provider_config = load_provider_config()
    app.state.provider_config = provider_config
    alias_registry = AliasRegistry(overrides=provider_config.model_aliases)

    if provider_config.llm_mode == "litellm":
        litellm_client = LiteLLMClient(
            proxy_base_url=provider_config.proxy_base_url,
            proxy_api_key=provider_config.proxy_api_key.get_secret_value(),
            timeout_s=provider_config.timeout_s,
        )
        # 同一个 Proxy 客户端，降级时切换到 fallback group
        fallback_manager = FallbackManager(
            primary=litellm_client,
            fallback=litellm_client,
            fallback_alias=alias_registry.resolve("fallback"),
        )
        app.state.litellm_client = litellm_client
        log.info(
            "llm_service_initialized",
            mode="litellm",
            proxy_url=provider_config.proxy_base_url,
            timeout_s=provider_config.timeout_s,
        )
    else:
        fallback_manager = FallbackManager(primary=EchoMessageAdapter(), fallback=None)
        app.state.litellm_client = None
        log.info("llm_service_initialized", mode="echo")

    app.state.alias_registry = alias_registry
    return LLMService(fallback_manager=fallback_manager, alias_registry=alias_registry)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB / LLM / 引擎服务，关闭时清理"""
    store_group = await create_store_group(get_db_path())
    llm_service = build_llm_service(app)
    config = load_engine_config()
    wire_services(app, store_group, llm_service, config=config)
    log.info(
        "engine_started",
        chain_mode=config.chain_mode,
        max_step_retries=config.max_step_retries,
        stall_threshold_s=config.stall_threshold_s,
    )

    yield

    await app.state.scheduler.aclose()
    await store_group.close()
    log.info("engine_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="RelayAgent Gateway",
        version="0.1.0",
        description="RelayAgent 任务编排引擎 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging，Logging 在外层先清空 contextvars）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(lifecycle.router, tags=["lifecycle"])
    app.include_router(runner.router, tags=["internal"])
    app.include_router(sweep.router, tags=["internal"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
