"""wt switch 命令实现

切换到分支对应的 worktree，必要时创建 worktree 或新分支。
"""

from typing import Optional

import click

from wt.cli.utils import OutputFormatter, RepoNotFoundError, formatter_from_context, open_session
from wt.core.exceptions import WTException
from wt.core.logger import get_logger
from wt.core.worktree_manager import SwitchResult

logger = get_logger("switch_command")


def render_switch(formatter: OutputFormatter, name: str, result: SwitchResult) -> None:
    if result.resolved.is_fuzzy:
        click.echo(formatter.info(f"'{name}' 模糊匹配到 {result.resolved.branch}"))
    for stage in result.hooks:
        click.echo(formatter.info(f"{stage.stage}: {len(stage.results)} 条命令已执行"))
    if result.created:
        click.echo(formatter.success(f"已创建 worktree {result.resolved.branch}：{result.path}"))
    else:
        click.echo(formatter.success(f"已切换到 {result.resolved.branch}：{result.path}"))


@click.command()
@click.argument("name")
@click.option("-c", "--create", is_flag=True, help="从 --base（默认为默认分支）创建新分支")
@click.option("-b", "--base", default=None, help="新分支的起点，必须是已有分支的完整名称")
@click.option("--exact", is_flag=True, help="只接受完整的分支名，不做模糊匹配")
@click.option("-f", "--force", is_flag=True, help="授权并执行未授权的 Hook 命令")
@click.pass_context
def switch(ctx, name: str, create: bool, base: Optional[str], exact: bool, force: bool) -> None:
    """切换到 worktree，不存在时创建

    \b
    使用示例:
    wt switch feat              # 模糊匹配 feature/auth 等分支
    wt switch feature/x -c      # 从默认分支新建 feature/x
    wt switch fix -c -b release # 从 release 新建 fix
    """
    formatter = formatter_from_context(ctx)
    if base is not None and not create:
        click.echo(formatter.error("--base 只能与 --create 一起使用"), err=True)
        raise SystemExit(1)

    try:
        session = open_session(force=force)
        result = session.manager.switch(name, create=create, base=base, exact=exact)
    except WTException as e:
        logger.error("Switch failed", name=name, error=e.message)
        click.echo(formatter.format_exception("switch", e), err=True)
        raise SystemExit(1)
    except RepoNotFoundError as e:
        click.echo(formatter.error(str(e)), err=True)
        raise SystemExit(1)

    render_switch(formatter, name, result)
