"""wt hook 命令组

手动执行某个生命周期阶段的 Hook，查看项目声明的 Hook 与授权状态。
"""

from typing import Optional

import click

from wt.cli.utils import Color, OutputFormatter, RepoNotFoundError, formatter_from_context, open_session
from wt.core.data_structures import CommandStatus, FailurePolicy, StageResult
from wt.core.exceptions import WTException


def render_stage(formatter: OutputFormatter, result: StageResult) -> None:
    for command in result.results:
        if command.status == CommandStatus.SUCCEEDED:
            click.echo(formatter.success(f"{command.name}: {command.command}"))
        elif command.status == CommandStatus.FAILED:
            click.echo(formatter.error(f"{command.name}: {command.command} (exit {command.exit_code})"))
        else:
            click.echo(formatter.warning(f"{command.name}: 未执行（{command.reason}）"))


@click.group()
def hook():
    """Hook 执行与查看"""
    pass


@hook.command(name="run")
@click.argument("stage")
@click.option("-w", "--worktree", default=None, help="在指定 worktree 中执行（默认当前 worktree）")
@click.option("--exact", is_flag=True, help="--worktree 只接受完整的分支名")
@click.option("--continue-on-failure", is_flag=True, help="某条命令失败后继续执行后续命令")
@click.option("-f", "--force", is_flag=True, help="授权并执行未授权的命令")
@click.pass_context
def run_hook(ctx, stage: str, worktree: Optional[str], exact: bool, continue_on_failure: bool, force: bool) -> None:
    """执行 STAGE 阶段的全部命令

    \b
    使用示例:
    wt hook run pre-merge
    wt hook run post-create --worktree feat --force
    """
    formatter = formatter_from_context(ctx)
    policy = FailurePolicy.CONTINUE if continue_on_failure else FailurePolicy.STOP_ON_FIRST_FAILURE
    try:
        session = open_session(force=force)
        result = session.manager.run_hook(
            stage,
            worktree=worktree,
            cwd=session.cwd,
            policy=policy,
            exact=exact,
        )
        render_stage(formatter, result)
        result.raise_for_failure()
    except WTException as e:
        click.echo(formatter.format_exception(f"hook run {stage}", e), err=True)
        raise SystemExit(1)
    except RepoNotFoundError as e:
        click.echo(formatter.error(str(e)), err=True)
        raise SystemExit(1)

    click.echo(formatter.success(f"{stage} 阶段全部命令执行成功"))


@hook.command(name="show")
@click.pass_context
def show_hooks(ctx) -> None:
    """列出项目声明的 Hook 及其授权状态"""
    formatter = formatter_from_context(ctx)
    try:
        session = open_session()
        if not session.project_config.exists:
            click.echo(formatter.info(f"没有项目配置：{session.project_config.config_path}"))
            return
        project = session.hook_runner.project_id
        for stage_name in session.project_config.declared_stages():
            stage = session.project_config.stage(stage_name)
            click.echo(formatter.config.colorize(f"{stage_name}:", Color.BOLD))
            for command in stage.commands:
                approved = session.approvals.is_approved(project, stage_name, command.name, command.command)
                status = "已授权" if approved else "需要授权"
                click.echo(f"  {command.name}: {command.command}  [{status}]")
    except WTException as e:
        click.echo(formatter.format_exception("hook show", e), err=True)
        raise SystemExit(1)
    except RepoNotFoundError as e:
        click.echo(formatter.error(str(e)), err=True)
        raise SystemExit(1)
