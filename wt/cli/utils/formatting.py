"""CLI 输出格式化工具

提供带前缀和颜色的消息、表格与错误详情的格式化功能。"""

from typing import Any, List, Optional

from wt.core.exceptions import (
    Ambiguous,
    ApprovalRequired,
    HookFailed,
    MergeConflict,
    NotFound,
    WTException,
)


class Color:
    """ANSI 颜色代码"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    BLUE = '\033[34m'
    CYAN = '\033[36m'


class FormatterConfig:
    """格式化配置中心"""

    def __init__(self, no_color: bool = False):
        """初始化配置
        Args:
            no_color: 是否禁用颜色输出
        """
        self.no_color = no_color

    def colorize(self, text: str, color: str) -> str:
        if self.no_color:
            return text
        return f"{color}{text}{Color.RESET}"


class OutputFormatter:
    """CLI 输出格式化器实现"""

    def __init__(self, config: Optional[FormatterConfig] = None):
        self.config = config or FormatterConfig()

    def success(self, message: str) -> str:
        """格式化成功消息"""
        prefix = self.config.colorize("+", Color.GREEN)
        return f"{prefix} {message}"

    def error(self, message: str) -> str:
        """格式化错误消息"""
        prefix = self.config.colorize("-", Color.RED)
        return f"{prefix} {message}"

    def warning(self, message: str) -> str:
        """格式化警告消息"""
        prefix = self.config.colorize("!", Color.YELLOW)
        return f"{prefix} {message}"

    def info(self, message: str) -> str:
        """格式化普通信息消息"""
        prefix = self.config.colorize("*", Color.BLUE)
        return f"{prefix} {message}"

    def dim(self, text: str) -> str:
        return self.config.colorize(text, Color.DIM)

    def format_exception(self, operation: str, exc: WTException) -> str:
        """把异常渲染为一行错误，必要时附带缩进的详情行

        第一行总是 "<操作> 失败：<消息>"。
        """
        lines = [self.error(f"{operation} 失败：{exc.message}")]

        if isinstance(exc, HookFailed):
            for failure in exc.failures:
                lines.append(f"    {failure['name']}: {failure['command']} (exit {failure['exit_code']})")
                for output_line in (failure.get('output') or "").splitlines()[-10:]:
                    lines.append(self.dim(f"      {output_line}"))
        elif isinstance(exc, ApprovalRequired):
            for name, command in exc.commands.items():
                lines.append(f"    {name}: {command}")
        elif isinstance(exc, MergeConflict):
            for path in exc.conflicts:
                lines.append(f"    {path}")
        elif isinstance(exc, (NotFound, Ambiguous)):
            pass
        elif isinstance(exc.details, str) and exc.details:
            lines.append(self.dim(f"    {exc.details}"))
        return "\n".join(lines)

    def format_table(
        self,
        headers: List[str],
        rows: List[List[Any]],
        column_widths: Optional[List[int]] = None
    ) -> str:
        """格式化对齐的表格字符串"""
        if not headers:
            return ""

        if column_widths is None:
            column_widths = []
            for i, header in enumerate(headers):
                max_width = len(str(header))
                for row in rows:
                    if i < len(row):
                        max_width = max(max_width, len(str(row[i])))
                column_widths.append(max_width)

        lines = []
        header_row = "  ".join(
            str(header).ljust(column_widths[i]) for i, header in enumerate(headers)
        )
        lines.append(self.config.colorize(header_row.rstrip(), Color.BOLD))
        lines.append("  ".join("-" * width for width in column_widths))

        for row in rows:
            data_row = "  ".join(
                str(cell).ljust(column_widths[i]) for i, cell in enumerate(row)
            )
            lines.append(data_row.rstrip())

        return "\n".join(lines)


def formatter_from_context(ctx) -> OutputFormatter:
    """根据全局选项（--no-color）构造格式化器"""
    options = (ctx.obj or {}).get('formatter_config', {}) if ctx is not None else {}
    return OutputFormatter(FormatterConfig(**options))
