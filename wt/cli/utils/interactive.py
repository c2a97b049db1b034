"""CLI 交互输入工具封装"""

import sys
from typing import List

import click

from wt.core.data_structures import HookCommand


def is_interactive() -> bool:
    """标准输入是终端时视为可交互会话"""
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


class InteractivePrompt:
    """交互式提示工具"""

    @staticmethod
    def approve_commands(stage: str, commands: List[HookCommand]) -> bool:
        """列出待授权的 Hook 命令并请求确认"""
        click.echo(f"{stage} 阶段以下命令需要授权：", err=True)
        for command in commands:
            click.echo(f"  {command.name}: {command.command}", err=True)
        return click.confirm("允许执行并记住这些命令吗？", default=False, err=True)
