"""CLI 入口模块 -- python -m relayagent.gateway <command>

支持的命令：
  serve [--host H] [--port P]  以 uvicorn 运行 Gateway
  sweep [--every SECONDS]      触发一次 stall sweep；带 --every 时按固定间隔循环（外部 cron）
"""

import asyncio
import os
import sys

import httpx
import structlog
from relayagent.core.config import load_engine_config

from .services.chain import INTERNAL_HEADER

log = structlog.get_logger()

_USAGE = """用法: python -m relayagent.gateway <command>
命令:
  serve [--host H] [--port P]  运行 Gateway（默认 0.0.0.0:8000）
  sweep [--every SECONDS]      触发 stall sweep（POST {RELAY_BASE_URL}/api/cron/tasks）"""


def _option(args: list[str], name: str, default: str | None = None) -> str | None:
    if name in args:
        index = args.index(name)
        if index + 1 < len(args):
            return args[index + 1]
        print(f"缺少参数值: {name}")
        sys.exit(1)
    return default


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]
    args = sys.argv[2:]

    if command == "serve":
        host = _option(args, "--host", os.environ.get("RELAY_HOST", "0.0.0.0"))
        port = _option(args, "--port", os.environ.get("RELAY_PORT", "8000"))
        serve(host, int(port))
    elif command == "sweep":
        every = _option(args, "--every")
        interval = None
        if every is not None:
            try:
                interval = float(every)
            except ValueError:
                print(f"无效的间隔: {every}")
                sys.exit(1)
            if interval <= 0:
                print("间隔必须大于 0")
                sys.exit(1)
        ok = asyncio.run(sweep(interval))
        sys.exit(0 if ok else 1)
    else:
        print(f"未知命令: {command}")
        print("可用命令: serve, sweep")
        sys.exit(1)


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("relayagent.gateway.main:app", host=host, port=port)


async def trigger_sweep(client: httpx.AsyncClient, base_url: str, token: str) -> dict | None:
    """调用一次 sweep 端点，失败时返回 None"""
    headers = {INTERNAL_HEADER: token} if token else {}
    try:
        response = await client.post(f"{base_url.rstrip('/')}/api/cron/tasks", headers=headers)
        response.raise_for_status()
    except httpx.HTTPError as e:
        log.error("sweep_trigger_failed", error_type=type(e).__name__, error=str(e))
        return None
    return response.json()


async def sweep(interval_s: float | None = None) -> bool:
    """触发 sweep；interval_s 为 None 时只执行一次"""
    config = load_engine_config()
    async with httpx.AsyncClient(timeout=30.0) as client:
        while True:
            report = await trigger_sweep(client, config.base_url, config.internal_token)
            if report is not None:
                print(
                    f"stalled={report['stalled']} waiting={report['waiting']} "
                    f"restarted={report['restarted']}"
                )
            if interval_s is None:
                return report is not None
            await asyncio.sleep(interval_s)


if __name__ == "__main__":
    main()
