"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与引擎服务

实例通过 app.state 管理，在 lifespan（或测试中的 wire_services）中初始化/清理。
"""

import secrets

from fastapi import Request
from relayagent.core.store import StoreGroup
from starlette.responses import JSONResponse

from .services.chain import INTERNAL_HEADER


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_task_service(request: Request):
    return request.app.state.task_service


def get_lifecycle(request: Request):
    return request.app.state.lifecycle


def get_runner(request: Request):
    return request.app.state.runner


def get_sweeper(request: Request):
    return request.app.state.sweeper


def get_current_user(request: Request) -> str:
    """当前用户：X-User-Id 请求头，缺省为配置的默认用户"""
    user_id = request.headers.get("X-User-Id", "").strip()
    return user_id or request.app.state.engine_config.default_user_id


def internal_allowed(request: Request) -> bool:
    """内部端点鉴权：配置了共享密钥时必须携带匹配的 X-Relay-Internal 头"""
    token = request.app.state.engine_config.internal_token
    if not token:
        return True
    provided = request.headers.get(INTERNAL_HEADER, "")
    return secrets.compare_digest(provided.encode(), token.encode())


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """统一错误响应体 {"error": {"code", "message"}}"""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def forbidden_response() -> JSONResponse:
    return error_response(403, "FORBIDDEN", "Internal endpoint requires a valid token")
