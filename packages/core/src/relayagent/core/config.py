"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、编排引擎参数（重试上限、租约、停滞阈值、链式调度）等可配置项。
路径类配置沿用模块函数形式；引擎参数集中在 EngineConfig，由 load_engine_config() 加载。
"""

import os
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field, model_validator

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("RELAY_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "RELAY_DB_PATH",
        str(_get_base_dir() / "sqlite" / "relayagent.db"),
    )


# 任务标题默认截断长度（未显式提供 title 时取 goal 前缀）
TITLE_MAX_LENGTH: int = 80

# 创建任务时 max_steps 的默认值与上限
DEFAULT_MAX_STEPS: int = 20
MAX_STEPS_LIMIT: int = 20

# 错误信息落库截断长度
ERROR_MAX_LENGTH: int = 500


class EngineConfig(BaseModel):
    """编排引擎配置 -- 从环境变量加载

    环境变量:
        RELAY_MAX_STEP_RETRIES: 单步最大尝试次数（默认 3）
        RELAY_MAX_TOOL_ROUNDS: 单步内工具调用轮数上限（默认 5）
        RELAY_STEP_TIMEOUT_S: 单次 cycle 的计算预算（秒）
        RELAY_STEP_LEASE_S: running 步骤租约（秒），超时视为执行者已崩溃
        RELAY_STALL_THRESHOLD_S: 停滞判定阈值（秒）
        RELAY_SWEEP_BATCH_LIMIT: 每轮 sweep 每类任务最多处理数
        RELAY_CHAIN_DELAY_S: 链式触发下一 cycle 前的延迟（秒）
        RELAY_RETRY_BACKOFF_S: 重试退避基数（秒），0 表示立即重试
        RELAY_CONTEXT_ENTRY_MAX_CHARS: 单步摘要写入 context 的最大长度
        RELAY_PRIOR_CONTEXT_MAX_CHARS: 传给模型的历史步骤上下文总长度上限
        RELAY_CHAIN_MODE: 链式调度模式（http / inprocess）
        RELAY_BASE_URL: http 模式下自调用的基础 URL
        RELAY_INTERNAL_TOKEN: 内部端点共享密钥（为空时不校验）
        RELAY_DEFAULT_USER_ID: 未携带 X-User-Id 时的默认用户
    """

    max_step_retries: int = Field(default=3, ge=1, description="单步最大尝试次数")
    max_tool_rounds: int = Field(default=5, ge=1, description="单步内工具调用轮数上限")
    step_timeout_s: float = Field(default=240.0, gt=0, description="单次 cycle 计算预算")
    step_lease_s: float = Field(default=300.0, gt=0, description="running 步骤租约")
    stall_threshold_s: float = Field(default=120.0, gt=0, description="停滞判定阈值")
    sweep_batch_limit: int = Field(default=5, ge=1, description="每轮 sweep 每类上限")
    chain_delay_s: float = Field(default=0.5, ge=0, description="链式触发延迟")
    retry_backoff_s: float = Field(default=2.0, ge=0, description="重试退避基数")
    context_entry_max_chars: int = Field(default=2000, ge=1)
    prior_context_max_chars: int = Field(default=8000, ge=1)
    chain_mode: Literal["http", "inprocess"] = Field(default="http")
    base_url: str = Field(default="http://localhost:8000")
    internal_token: str = Field(default="", description="内部端点共享密钥")
    default_user_id: str = Field(default="owner")

    @model_validator(mode="after")
    def _lease_exceeds_timeout(self) -> "EngineConfig":
        # 租约必须长于计算预算，否则仍在执行的步骤会被误回收
        if self.step_lease_s <= self.step_timeout_s:
            raise ValueError("step_lease_s must be greater than step_timeout_s")
        return self

    def retry_delay_s(self, retry_count: int) -> float:
        """第 retry_count 次重试前的链式延迟（指数退避）"""
        if retry_count <= 0 or self.retry_backoff_s == 0:
            return self.chain_delay_s
        return self.chain_delay_s + self.retry_backoff_s * 2 ** (retry_count - 1)


# 环境变量 -> (字段名, 类型转换)
_ENV_FIELDS: dict[str, tuple[str, type]] = {
    "RELAY_MAX_STEP_RETRIES": ("max_step_retries", int),
    "RELAY_MAX_TOOL_ROUNDS": ("max_tool_rounds", int),
    "RELAY_STEP_TIMEOUT_S": ("step_timeout_s", float),
    "RELAY_STEP_LEASE_S": ("step_lease_s", float),
    "RELAY_STALL_THRESHOLD_S": ("stall_threshold_s", float),
    "RELAY_SWEEP_BATCH_LIMIT": ("sweep_batch_limit", int),
    "RELAY_CHAIN_DELAY_S": ("chain_delay_s", float),
    "RELAY_RETRY_BACKOFF_S": ("retry_backoff_s", float),
    "RELAY_CONTEXT_ENTRY_MAX_CHARS": ("context_entry_max_chars", int),
    "RELAY_PRIOR_CONTEXT_MAX_CHARS": ("prior_context_max_chars", int),
    "RELAY_CHAIN_MODE": ("chain_mode", str),
    "RELAY_BASE_URL": ("base_url", str),
    "RELAY_INTERNAL_TOKEN": ("internal_token", str),
    "RELAY_DEFAULT_USER_ID": ("default_user_id", str),
}


def load_engine_config() -> EngineConfig:
    """从环境变量加载引擎配置

    数值解析失败时记录 warning 并使用默认值，不阻塞启动。

    Returns:
        EngineConfig 实例
    """
    kwargs: dict = {}

    for env_var, (field_name, caster) in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            kwargs[field_name] = caster(val)
        except ValueError:
            log.warning(
                "invalid_engine_config",
                env_var=env_var,
                value=val,
                fallback=EngineConfig.model_fields[field_name].default,
            )

    return EngineConfig(**kwargs)
