"""健康检查路由

GET /health  进程存活，永远 200
GET /ready   SQLite 连通、WAL、磁盘；profile=llm/full 时额外探测 LiteLLM Proxy
"""

import shutil

import structlog
from fastapi import APIRouter, Query, Request
from relayagent.core.store.sqlite_init import verify_wal_mode
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()

_PROXY_PROFILES = ("llm", "full")


@router.get("/health")
async def health():
    return {"status": "ok"}


async def _check_sqlite(store_group, checks: dict) -> bool:
    if store_group is None:
        checks["sqlite"] = "error: store not initialized"
        return False
    try:
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
    except Exception as e:
        checks["sqlite"] = f"error: {e}"
        return False
    checks["sqlite"] = "ok"
    # WAL 不可用只影响并发，不判定为未就绪
    checks["wal_mode"] = "ok" if await verify_wal_mode(store_group.conn) else "degraded"
    return True


def _check_disk(checks: dict) -> bool:
    try:
        checks["disk_space_mb"] = shutil.disk_usage("/").free // (1024 * 1024)
    except OSError:
        checks["disk_space_mb"] = 0
        return False
    return True


async def _check_proxy(litellm_client, checks: dict) -> bool:
    # Echo 模式没有 litellm_client
    if litellm_client is None:
        checks["litellm_proxy"] = "skipped"
        return True
    try:
        healthy = await litellm_client.health_check()
    except Exception as e:
        log.warning("proxy_probe_error", error=str(e))
        healthy = False
    checks["litellm_proxy"] = "ok" if healthy else "unreachable"
    return healthy


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="core（默认）只查本地依赖；llm/full 额外探测 LiteLLM Proxy",
    ),
):
    state = request.app.state
    effective_profile = profile or "core"
    checks: dict = {}

    results = [
        await _check_sqlite(getattr(state, "store_group", None), checks),
        _check_disk(checks),
    ]
    if effective_profile in _PROXY_PROFILES:
        results.append(await _check_proxy(getattr(state, "litellm_client", None), checks))
    else:
        checks["litellm_proxy"] = "skipped"

    engine_config = getattr(state, "engine_config", None)
    if engine_config is not None:
        checks["chain_mode"] = engine_config.chain_mode

    all_ok = all(results)
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "profile": effective_profile,
            "checks": checks,
        },
    )
