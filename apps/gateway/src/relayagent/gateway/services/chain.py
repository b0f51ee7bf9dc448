"""Chain Scheduler -- 异步触发下一个执行 cycle

调度只携带 task_id，不等待也不依赖下一 cycle 的结果。
重复触发是安全的（步骤认领是唯一的互斥点），丢失的触发由 stall sweep 兜底。

- HttpChainScheduler: 后台 POST 自身的内部端点（多实例 / 无常驻进程部署）
- InProcessChainScheduler: 在当前事件循环内以后台 asyncio task 运行（单节点与测试）
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx
import structlog

log = structlog.get_logger()

# 内部端点鉴权头
INTERNAL_HEADER = "X-Relay-Internal"


class ChainScheduler(Protocol):
    """链式调度接口"""

    def schedule_run(self, task_id: str, delay_s: float = 0.0) -> None:
        """触发一个执行 cycle"""
        ...

    def schedule_plan(self, task_id: str, delay_s: float = 0.0) -> None:
        """触发一次规划"""
        ...

    async def aclose(self) -> None: ...


class _BackgroundTasks:
    """持有后台 task 的强引用，避免被垃圾回收"""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        # 后台 task 可能继续派生新的 task，直到集合清空
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class HttpChainScheduler:
    """通过 HTTP 自调用触发下一 cycle"""

    def __init__(
        self,
        base_url: str,
        internal_token: str = "",
        timeout_s: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            base_url: 服务自身的基础 URL
            internal_token: 内部端点共享密钥
            timeout_s: 单次派发超时，应覆盖一个 cycle 的计算预算
            client: 可注入的 httpx 客户端（测试用）；None 时自行创建并负责关闭
        """
        self._base_url = base_url.rstrip("/")
        self._internal_token = internal_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._background = _BackgroundTasks()

    def schedule_run(self, task_id: str, delay_s: float = 0.0) -> None:
        self._background.spawn(
            self._dispatch(f"/api/tasks/{task_id}/run", task_id, delay_s),
            name=f"chain-run-{task_id}",
        )

    def schedule_plan(self, task_id: str, delay_s: float = 0.0) -> None:
        self._background.spawn(
            self._dispatch(f"/api/tasks/{task_id}/plan", task_id, delay_s),
            name=f"chain-plan-{task_id}",
        )

    async def _dispatch(self, path: str, task_id: str, delay_s: float) -> None:
        if delay_s > 0:
            await asyncio.sleep(delay_s)
        url = f"{self._base_url}{path}"
        headers = {INTERNAL_HEADER: self._internal_token} if self._internal_token else {}
        try:
            response = await self._client.post(url, headers=headers)
        except httpx.HTTPError as e:
            # 不重试：stall sweep 会重新拉起任务
            log.warning(
                "chain_dispatch_failed",
                task_id=task_id,
                url=url,
                error_type=type(e).__name__,
                error=str(e),
            )
            return
        if response.status_code >= 400:
            log.warning(
                "chain_dispatch_failed",
                task_id=task_id,
                url=url,
                status_code=response.status_code,
            )
        else:
            log.debug("chain_dispatched", task_id=task_id, url=url)

    async def wait_idle(self) -> None:
        await self._background.wait_idle()

    async def aclose(self) -> None:
        await self._background.cancel_all()
        if self._owns_client:
            await self._client.aclose()


class InProcessChainScheduler:
    """在当前进程内运行下一 cycle

    需通过 bind() 注入实际执行 cycle / 规划的协程函数。
    """

    def __init__(self) -> None:
        self._run: Callable[[str], Awaitable[Any]] | None = None
        self._plan: Callable[[str], Awaitable[Any]] | None = None
        self._background = _BackgroundTasks()

    def bind(
        self,
        run: Callable[[str], Awaitable[Any]],
        plan: Callable[[str], Awaitable[Any]],
    ) -> None:
        self._run = run
        self._plan = plan

    def schedule_run(self, task_id: str, delay_s: float = 0.0) -> None:
        self._spawn(self._run, "run", task_id, delay_s)

    def schedule_plan(self, task_id: str, delay_s: float = 0.0) -> None:
        self._spawn(self._plan, "plan", task_id, delay_s)

    def _spawn(self, fn, kind: str, task_id: str, delay_s: float) -> None:
        if fn is None:
            raise RuntimeError("InProcessChainScheduler is not bound to a runner")
        self._background.spawn(
            self._invoke(fn, kind, task_id, delay_s),
            name=f"chain-{kind}-{task_id}",
        )

    async def _invoke(self, fn, kind: str, task_id: str, delay_s: float) -> None:
        if delay_s > 0:
            await asyncio.sleep(delay_s)
        try:
            await fn(task_id)
        except Exception as e:
            log.error(
                "chain_cycle_failed",
                task_id=task_id,
                kind=kind,
                error_type=type(e).__name__,
                error=str(e),
            )

    @property
    def pending(self) -> int:
        return self._background.pending

    async def wait_idle(self) -> None:
        """等待所有后台 cycle（包括它们继续派生的 cycle）结束"""
        await self._background.wait_idle()

    async def aclose(self) -> None:
        await self._background.cancel_all()
