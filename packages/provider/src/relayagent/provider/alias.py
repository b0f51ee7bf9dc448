"""AliasRegistry -- 语义 alias 注册表

管理语义 alias -> runtime_group 映射。引擎只使用语义 alias
（planner / executor），Proxy 侧只认识运行时 group（cheap / main / fallback）。
"""

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

# 已知运行时 group 名称
KNOWN_RUNTIME_GROUPS = {"cheap", "main", "fallback"}


class AliasConfig(BaseModel):
    """单个语义 alias 的配置"""

    name: str = Field(description="语义 alias 名称（如 planner, executor）")
    description: str = Field(default="", description="alias 用途描述")
    runtime_group: str = Field(
        default="main",
        description="运行时 group（对应 Proxy model_name）",
    )


def _get_default_aliases() -> list[AliasConfig]:
    return [
        AliasConfig(name="planner", runtime_group="main", description="目标拆解"),
        AliasConfig(name="executor", runtime_group="main", description="步骤执行与工具调用"),
        AliasConfig(name="fallback", runtime_group="fallback", description="降级备选"),
    ]


def parse_alias_overrides(raw: str) -> dict[str, str]:
    """解析 "planner=main,executor=cheap" 形式的覆盖配置

    格式错误的片段记录 warning 后跳过。
    """
    overrides: dict[str, str] = {}
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, group = chunk.partition("=")
        name, group = name.strip(), group.strip()
        if not sep or not name or not group:
            log.warning("invalid_alias_override", value=chunk)
            continue
        overrides[name] = group
    return overrides


class AliasRegistry:
    """Alias 注册表

    启动时从配置加载，运行期间不变。
    """

    def __init__(
        self,
        aliases: list[AliasConfig] | None = None,
        overrides: dict[str, str] | None = None,
    ) -> None:
        """初始化注册表

        Args:
            aliases: alias 配置列表，None 时使用默认配置
            overrides: alias -> runtime_group 覆盖（来自 RELAY_MODEL_ALIASES）
        """
        alias_list = aliases if aliases is not None else _get_default_aliases()
        self._aliases: dict[str, AliasConfig] = {a.name: a for a in alias_list}
        for name, group in (overrides or {}).items():
            existing = self._aliases.get(name)
            if existing is None:
                self._aliases[name] = AliasConfig(name=name, runtime_group=group)
            else:
                self._aliases[name] = existing.model_copy(update={"runtime_group": group})

    def resolve(self, alias: str) -> str:
        """将语义 alias 解析为运行时 group

        1. 注册表内的 alias -> 对应 runtime_group
        2. 已知运行时 group -> 透传
        3. 其余 -> "main"，并记录 warning
        """
        if alias in self._aliases:
            return self._aliases[alias].runtime_group

        if alias in KNOWN_RUNTIME_GROUPS:
            return alias

        log.warning("unknown_alias_fallback_to_main", alias=alias)
        return "main"

    def get_alias(self, alias: str) -> AliasConfig | None:
        return self._aliases.get(alias)

    def list_all(self) -> list[AliasConfig]:
        """列出所有已注册的 alias（按 name 排序）"""
        return sorted(self._aliases.values(), key=lambda a: a.name)
