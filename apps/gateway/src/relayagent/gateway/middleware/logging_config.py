"""structlog 配置模块

RELAY_LOG_FORMAT=dev（默认）：ConsoleRenderer 可读输出
RELAY_LOG_FORMAT=json：结构化 JSON 输出，每行一条
Logfire APM 由 LOGFIRE_SEND_TO_LOGFIRE 控制，初始化失败时只保留本地日志。
"""

import logging
import os

import structlog

# 第三方库日志过于冗长，统一提升到 WARNING
_NOISY_LOGGERS = ("httpx", "httpcore", "LiteLLM", "litellm", "aiosqlite")


def setup_logging() -> None:
    """初始化 structlog，并接管标准库 logging 的输出格式"""
    log_format = os.environ.get("RELAY_LOG_FORMAT", "dev")
    log_level = os.environ.get("RELAY_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        # JSON 模式下异常堆栈序列化为字段
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logfire(app=None) -> bool:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE=true 时启用（需要 LOGFIRE_TOKEN），
    传入 app 时同时注入 FastAPI 与 httpx instrumentation。

    Returns:
        是否启用成功
    """
    send_to_logfire = os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return False
    try:
        import logfire

        logfire.configure(service_name="relayagent-gateway")
        if app is not None:
            logfire.instrument_fastapi(app)
        logfire.instrument_httpx()
    except Exception as e:
        structlog.get_logger().warning(
            "logfire_init_failed",
            error_type=type(e).__name__,
            message="Logfire 初始化失败，降级为纯本地日志",
        )
        return False
    return True
