"""wt CLI 主入口"""

import sys

import click

from wt import __version__
from wt.cli.commands.approvals import approvals
from wt.cli.commands.hook import hook
from wt.cli.commands.list import list_command
from wt.cli.commands.merge import continue_command, merge, step
from wt.cli.commands.remove import remove
from wt.cli.commands.switch import switch
from wt.cli.utils import RepoNotFoundError
from wt.core.exceptions import WTException
from wt.core.logger import LoggerConfig, configure_logger


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--verbose',
    is_flag=True,
    help='详细日志输出（调试用）'
)
@click.option(
    '--no-color',
    is_flag=True,
    help='关闭彩色输出'
)
@click.pass_context
def cli(ctx, verbose, no_color):
    """wt - Git Worktree 工作流工具

    \b
    核心命令：
      switch <name> [options]   切换（或创建）worktree
      remove [name] [options]   删除 worktree
      list                      列出所有 worktree
      merge [target] [options]  合并当前分支（commit → squash → rebase → merge）
      continue                  解决冲突后继续合并
      step <step>               单独执行合并流程中的一个步骤
    Hook 与授权：
      hook run <stage>          手动执行 Hook
      hook show                 查看 Hook 声明与授权状态
      approvals list|clear      查看或撤销命令授权

    \b
    示例:
      wt switch feat
      wt switch feature/login --create
      wt merge --remove
      wt hook run pre-merge --force
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['no_color'] = no_color
    ctx.obj['formatter_config'] = {'no_color': no_color}

    if verbose:
        configure_logger(LoggerConfig(level="DEBUG", console_output=True))


cli.add_command(switch)
cli.add_command(remove)
cli.add_command(list_command, name="list")
cli.add_command(merge)
cli.add_command(continue_command, name="continue")
cli.add_command(step)
cli.add_command(hook)
cli.add_command(approvals)


def main():
    """CLI 入口点，处理全局异常"""
    try:
        cli()
    except (RepoNotFoundError, WTException) as e:
        click.echo(str(e), err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
