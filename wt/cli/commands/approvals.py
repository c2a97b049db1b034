"""wt approvals 命令组：查看与撤销 Hook 命令授权"""

from typing import Optional

import click

from wt.cli.utils import RepoNotFoundError, formatter_from_context, open_session
from wt.core.data_structures import HookStageName
from wt.core.exceptions import WTException


@click.group()
def approvals():
    """Hook 命令授权管理"""
    pass


@approvals.command(name="list")
@click.pass_context
def list_approvals(ctx) -> None:
    """列出当前项目已授权的命令"""
    formatter = formatter_from_context(ctx)
    try:
        session = open_session()
        project = session.hook_runner.project_id
        records = session.approvals.list_approvals(project)
    except WTException as e:
        click.echo(formatter.format_exception("approvals list", e), err=True)
        raise SystemExit(1)
    except RepoNotFoundError as e:
        click.echo(formatter.error(str(e)), err=True)
        raise SystemExit(1)

    if not records:
        click.echo(formatter.info(f"项目 {project} 没有已授权的命令"))
        return
    rows = [[r.stage, r.name, r.command] for r in records]
    click.echo(formatter.format_table(["STAGE", "NAME", "COMMAND"], rows))


@approvals.command(name="clear")
@click.option("-s", "--stage", type=click.Choice(HookStageName.ALL), default=None, help="只撤销该阶段的授权")
@click.pass_context
def clear_approvals(ctx, stage: Optional[str]) -> None:
    """撤销当前项目的命令授权"""
    formatter = formatter_from_context(ctx)
    try:
        session = open_session()
        project = session.hook_runner.project_id
        count = session.approvals.revoke(project, stage=stage)
    except WTException as e:
        click.echo(formatter.format_exception("approvals clear", e), err=True)
        raise SystemExit(1)
    except RepoNotFoundError as e:
        click.echo(formatter.error(str(e)), err=True)
        raise SystemExit(1)

    scope = f"{stage} 阶段" if stage else "全部"
    click.echo(formatter.success(f"已撤销 {project} 的{scope}授权（{count} 条）"))
