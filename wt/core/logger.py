"""结构化日志系统

基于 structlog 的日志记录器，支持操作追踪与耗时统计。
默认不向终端输出任何日志；--verbose 时输出到 stderr。"""

import logging
import time
import uuid
import contextvars
from pathlib import Path
from typing import Any, Dict, Optional

import structlog


ROOT_LOGGER_NAME = "wt"

# 当前操作 ID，用于串联一次步骤中的所有日志
_operation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    'operation_id', default=""
)


class LoggerConfig:
    """日志配置类"""

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        level: str = "WARNING",
        json_output: bool = False,
        console_output: bool = False,
    ):
        """初始化日志配置
        Args:
            log_dir: 日志目录，如果为 None 则不写入文件
            level: 日志级别 (DEBUG, INFO, WARNING, ERROR)
            json_output: 是否输出 JSON 格式
            console_output: 是否输出到控制台
        """
        self.log_dir = log_dir
        self.level = level
        self.json_output = json_output
        self.console_output = console_output


def _setup_logging(config: LoggerConfig) -> None:
    """配置 stdlib logging 与 structlog 处理链"""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.console_output:
        root.addHandler(logging.StreamHandler())

    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(logging.FileHandler(log_dir / "wt.log"))

    # 没有任何输出目标时挂 NullHandler，避免 logging.lastResort 把警告打到终端
    if not root.handlers:
        root.addHandler(logging.NullHandler())

    for handler in root.handlers:
        handler.setFormatter(logging.Formatter("%(message)s"))

    root.setLevel(getattr(logging, config.level.upper(), logging.WARNING))
    root.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
            if config.json_output
            else structlog.dev.ConsoleRenderer(colors=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class Logger:
    """结构化日志记录器"""

    def __init__(self, name: str = ROOT_LOGGER_NAME, bound: Any = None):
        """初始化日志记录器

        Args:
            name: 组件名称，会挂在 wt 日志树下
            bound: 已绑定上下文的 structlog logger
        """
        if not name.startswith(ROOT_LOGGER_NAME):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        self.name = name
        self.logger = bound if bound is not None else structlog.get_logger(name)

    def debug(self, event: str, **kwargs) -> None:
        """记录 DEBUG 级别日志"""
        self._log("debug", event, **kwargs)

    def info(self, event: str, **kwargs) -> None:
        """记录 INFO 级别日志"""
        self._log("info", event, **kwargs)

    def warning(self, event: str, **kwargs) -> None:
        """记录 WARNING 级别日志"""
        self._log("warning", event, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        """记录 ERROR 级别日志"""
        self._log("error", event, **kwargs)

    def bind(self, **kwargs) -> 'Logger':
        """返回绑定了额外上下文的新记录器"""
        return Logger(self.name, self.logger.bind(**kwargs))

    def _log(self, level: str, event: str, **kwargs) -> None:
        operation_id = _operation_id.get()
        if operation_id and 'operation_id' not in kwargs:
            kwargs['operation_id'] = operation_id
        getattr(self.logger, level)(event, **kwargs)


class OperationScope:
    """操作范围上下文管理器

    进入时记录 <name>_started，退出时根据是否有异常记录
    <name>_succeeded 或 <name>_failed，并附带耗时。异常总是继续传播。
    """

    def __init__(
        self,
        operation_name: str,
        context: Optional[Dict[str, Any]] = None,
        logger: Optional[Logger] = None,
        operation_id: Optional[str] = None,
    ):
        """初始化操作范围
        Args:
            operation_name: 操作名称
            context: 操作上下文信息
            logger: 日志记录器实例
            operation_id: 操作 ID，如果为 None 则自动生成
        """
        self.operation_name = operation_name
        self.context = context or {}
        self.logger = logger or get_logger()
        self.operation_id = operation_id or str(uuid.uuid4())
        self.start_time = 0.0
        self.duration_ms: Optional[int] = None
        self.status = "pending"
        self._token = None

    def __enter__(self) -> 'OperationScope':
        self._token = _operation_id.set(self.operation_id)
        self.start_time = time.time()
        self.status = "running"
        self.logger.info(f"{self.operation_name}_started", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.duration_ms = int((time.time() - self.start_time) * 1000)
        if exc_type is not None:
            self.status = "failure"
            self.logger.error(
                f"{self.operation_name}_failed",
                duration_ms=self.duration_ms,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **self.context,
            )
        else:
            self.status = "success"
            self.logger.info(
                f"{self.operation_name}_succeeded",
                duration_ms=self.duration_ms,
                **self.context,
            )
        if self._token is not None:
            _operation_id.reset(self._token)
            self._token = None
        return False


_configured = False


def get_logger(name: str = ROOT_LOGGER_NAME) -> Logger:
    """获取指定组件的日志记录器

    首次调用时使用默认配置（静默）初始化日志系统。
    """
    global _configured
    if not _configured:
        _setup_logging(LoggerConfig())
        _configured = True
    return Logger(name)


def configure_logger(config: LoggerConfig) -> None:
    """按给定配置重新初始化日志系统"""
    global _configured
    _setup_logging(config)
    _configured = True
