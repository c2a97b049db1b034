"""wt remove 命令实现

删除 worktree 并可选删除 Git 分支。
"""

from pathlib import Path
from typing import Optional

import click

from wt.cli.utils import RepoNotFoundError, formatter_from_context, open_session
from wt.core.exceptions import WTException
from wt.core.logger import get_logger

logger = get_logger("remove_command")


@click.command()
@click.argument("name", required=False)
@click.option("-f", "--force", is_flag=True, help="强制删除，忽略未提交改动")
@click.option("-D", "--delete-branch", is_flag=True, help="同时删除分支")
@click.pass_context
def remove(ctx, name: Optional[str], force: bool, delete_branch: bool) -> None:
    """删除 worktree（默认删除当前所在的 worktree）

    \b
    使用示例:
    wt remove                    # 删除当前 worktree
    wt remove feature/ui -D      # 删除 worktree 和分支
    wt remove feature/ui --force # 忽略未提交改动
    """
    formatter = formatter_from_context(ctx)
    try:
        session = open_session()
        result = session.manager.remove(
            name,
            cwd=session.cwd,
            force=force,
            delete_branch=delete_branch,
        )
    except WTException as e:
        logger.error("Remove failed", name=name, error=e.message)
        click.echo(formatter.format_exception("remove", e), err=True)
        raise SystemExit(1)
    except RepoNotFoundError as e:
        click.echo(formatter.error(str(e)), err=True)
        raise SystemExit(1)

    if not result.removed:
        click.echo(formatter.info(result.message))
        return

    click.echo(formatter.success(f"worktree 已删除：{result.path}"))
    if result.branch_deleted:
        click.echo(formatter.success(f"分支已删除：{result.branch}"))
    elif result.branch:
        click.echo(formatter.info(f"分支已保留：{result.branch}"))
    if session.cwd == Path(result.path).resolve() or Path(result.path).resolve() in session.cwd.parents:
        click.echo(formatter.info(f"返回主 worktree：{result.main_path}"))
