"""配置管理器

两类配置：
- 用户配置（~/.config/wt/config.yaml）：worktree 路径模板、提交信息生成命令、
  Hook 超时、合并默认值，以及按项目保存的命令授权记录。
- 项目配置（<repo>/.wt.yaml）：各生命周期阶段的 Hook 命令声明。
"""

import copy
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from wt.core.data_structures import (
    CommitGenerationConfig,
    HookCommand,
    HookStage,
    HookStageName,
)
from wt.core.exceptions import ConfigIOError, ConfigParseError, ConfigValidationError
from wt.core.file_lock import atomic_write_text, exclusive_lock
from wt.core.logger import get_logger

logger = get_logger("config_manager")


def default_user_config_path() -> Path:
    """用户配置文件路径，优先 WT_CONFIG_PATH，其次 XDG_CONFIG_HOME"""
    override = os.environ.get("WT_CONFIG_PATH")
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME")
    config_home = Path(base).expanduser() if base else Path.home() / ".config"
    return config_home / "wt" / "config.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件，文件不存在或为空时返回空字典"""
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", path=str(path), error=str(e))
        raise ConfigParseError(f"Failed to parse YAML configuration: {path}", details=str(e))
    except IOError as e:
        logger.error("Failed to read configuration file", path=str(path), error=str(e))
        raise ConfigIOError(f"Failed to read configuration file: {path}", details=str(e))

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError(f"配置文件顶层必须是映射：{path}")
    return data


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """深度合并配置，override 中的值优先；列表整体替换"""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class ConfigManager:
    """用户配置管理器

    负责加载、验证和原子更新用户配置文件。
    """

    DEFAULT_CONFIG = {
        "worktree-path": "../{repo}.{branch}",
        "default-branch": None,
        "commit-generation": {
            "command": None,
            "args": [],
            "template": None,
            "template-file": None,
        },
        "hooks": {
            "timeout": None,
        },
        "merge": {
            "squash": True,
            "remove": False,
        },
        "projects": {},
    }

    def __init__(self, config_path: Optional[Path] = None):
        """初始化配置管理器

        Args:
            config_path: 用户配置文件路径，默认见 default_user_config_path()
        """
        self.config_path = Path(config_path) if config_path else default_user_config_path()
        self._config: Optional[Dict[str, Any]] = None
        logger.debug("ConfigManager initialized", config_path=str(self.config_path))

    def get_default_config(self) -> Dict[str, Any]:
        """获取默认配置的深拷贝"""
        return copy.deepcopy(self.DEFAULT_CONFIG)

    def load_config(self) -> Dict[str, Any]:
        """加载配置文件并与默认配置合并

        Raises:
            ConfigIOError: 文件读取失败时抛出
            ConfigParseError: YAML 解析失败时抛出
            ConfigValidationError: 配置验证失败时抛出
        """
        raw = _read_yaml(self.config_path)
        config = merge_configs(self.get_default_config(), raw)
        self.validate_config(config)
        self._config = config
        logger.debug("Configuration loaded", path=str(self.config_path), exists=bool(raw))
        return self._config

    def validate_config(self, config: Optional[Dict[str, Any]] = None) -> bool:
        """验证配置结构和值

        Raises:
            ConfigValidationError: 配置验证失败时抛出
        """
        cfg = config if config is not None else self._config
        if cfg is None:
            raise ConfigValidationError("No configuration loaded or provided")

        errors = []

        if not isinstance(cfg.get("worktree-path"), str) or not cfg["worktree-path"].strip():
            errors.append("worktree-path must be a non-empty string")

        default_branch = cfg.get("default-branch")
        if default_branch is not None and not isinstance(default_branch, str):
            errors.append("default-branch must be a string")

        generation = cfg.get("commit-generation")
        if not isinstance(generation, dict):
            errors.append("commit-generation must be a dictionary")
        else:
            command = generation.get("command")
            if command is not None and not isinstance(command, str):
                errors.append("commit-generation.command must be a string")
            args = generation.get("args") or []
            if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
                errors.append("commit-generation.args must be a list of strings")
            if generation.get("template") is not None and generation.get("template-file") is not None:
                errors.append("commit-generation.template and commit-generation.template-file are mutually exclusive")

        hooks = cfg.get("hooks")
        if not isinstance(hooks, dict):
            errors.append("hooks must be a dictionary")
        else:
            timeout = hooks.get("timeout")
            if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
                errors.append("hooks.timeout must be a positive number")

        merge = cfg.get("merge")
        if not isinstance(merge, dict):
            errors.append("merge must be a dictionary")
        else:
            for key in ("squash", "remove"):
                if key in merge and not isinstance(merge[key], bool):
                    errors.append(f"merge.{key} must be a boolean")

        if not isinstance(cfg.get("projects"), dict):
            errors.append("projects must be a dictionary")

        if errors:
            logger.error("Configuration validation failed", errors=errors)
            raise ConfigValidationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                details=errors,
            )
        return True

    def update(self, mutator: Callable[[Dict[str, Any]], None]) -> Dict[str, Any]:
        """在排他锁内对配置文件做读-改-写

        mutator 接收文件中的原始配置（不含默认值）并原地修改。
        锁内重新读取文件，因此不会覆盖并发进程写入的内容。

        Returns:
            更新后的完整配置（已合并默认值）
        """
        with exclusive_lock(self.config_path):
            raw = _read_yaml(self.config_path)
            mutator(raw)
            merged = merge_configs(self.get_default_config(), raw)
            self.validate_config(merged)
            try:
                atomic_write_text(
                    self.config_path,
                    yaml.safe_dump(raw, default_flow_style=False, sort_keys=False, allow_unicode=True),
                )
            except OSError as e:
                logger.error("Failed to write configuration file", path=str(self.config_path), error=str(e))
                raise ConfigIOError(f"Failed to write configuration file: {self.config_path}", details=str(e))

        self._config = merged
        logger.info("Configuration updated", path=str(self.config_path))
        return merged

    def get(self, key_path: str, default: Any = None) -> Any:
        """获取配置值，支持点号分隔的路径

        例如: get("merge.squash") 返回 True
        """
        if self._config is None:
            self.load_config()

        value: Any = self._config
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_commit_generation(self) -> CommitGenerationConfig:
        """获取提交信息生成配置"""
        section = self.get("commit-generation", {}) or {}
        return CommitGenerationConfig(
            command=section.get("command"),
            args=list(section.get("args") or []),
            template=section.get("template"),
            template_file=section.get("template-file"),
        )

    def get_hook_timeout(self) -> Optional[float]:
        return self.get("hooks.timeout")

    def reload(self) -> Dict[str, Any]:
        """重新加载配置文件"""
        self._config = None
        return self.load_config()


class ProjectConfig:
    """项目配置（.wt.yaml）

    hooks 段把阶段名映射到命令。每个阶段可以写成：
    - 映射：命令名 -> 命令字符串（保持声明顺序）
    - 列表：命令名依次为 1..n
    - 单个字符串：命令名与阶段名相同
    """

    CONFIG_FILENAME = ".wt.yaml"

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)
        self._stages: Optional[Dict[str, HookStage]] = None
        self._exists = False

    @property
    def config_path(self) -> Path:
        return self.project_root / self.CONFIG_FILENAME

    @property
    def exists(self) -> bool:
        if self._stages is None:
            self.load()
        return self._exists

    def load(self) -> Dict[str, HookStage]:
        """加载并解析 Hook 声明

        Raises:
            ConfigParseError: YAML 解析失败
            ConfigValidationError: 阶段名未知或命令不是字符串
        """
        self._exists = self.config_path.exists()
        data = _read_yaml(self.config_path)
        hooks = data.get("hooks") or {}
        if not isinstance(hooks, dict):
            raise ConfigValidationError(f"hooks must be a dictionary: {self.config_path}")

        stages: Dict[str, HookStage] = {}
        for stage_name, declaration in hooks.items():
            if stage_name not in HookStageName.ALL:
                raise ConfigValidationError(
                    f"Unknown hook stage '{stage_name}' in {self.config_path}. "
                    f"Known stages: {', '.join(HookStageName.ALL)}"
                )
            stages[stage_name] = HookStage(
                name=stage_name,
                commands=tuple(self._parse_commands(stage_name, declaration)),
            )

        self._stages = stages
        logger.debug("Project configuration loaded", path=str(self.config_path), stages=list(stages))
        return stages

    def _parse_commands(self, stage_name: str, declaration: Any) -> List[HookCommand]:
        if isinstance(declaration, str):
            items = [(stage_name, declaration)]
        elif isinstance(declaration, list):
            items = [(str(i), cmd) for i, cmd in enumerate(declaration, 1)]
        elif isinstance(declaration, dict):
            items = [(str(name), cmd) for name, cmd in declaration.items()]
        else:
            raise ConfigValidationError(
                f"hooks.{stage_name} must be a string, list or mapping"
            )

        commands = []
        for name, command in items:
            if not isinstance(command, str) or not command.strip():
                raise ConfigValidationError(
                    f"hooks.{stage_name}.{name} must be a non-empty command string"
                )
            commands.append(HookCommand(name=name, command=command))
        return commands

    def declared_stages(self) -> List[str]:
        if self._stages is None:
            self.load()
        return list(self._stages)

    def has_stage(self, name: str) -> bool:
        return name in self.declared_stages()

    def stage(self, name: str) -> HookStage:
        """获取阶段声明，未声明时返回空阶段"""
        if self._stages is None:
            self.load()
        return self._stages.get(name, HookStage(name=name))
