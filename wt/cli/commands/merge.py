"""wt merge / continue / step 命令实现

驱动 commit → squash → rebase → merge 合并流程。
"""

from typing import Optional

import click

from wt.cli.utils import OutputFormatter, RepoNotFoundError, formatter_from_context, open_session
from wt.cli.utils.project_utils import Session
from wt.core.data_structures import MergeOptions, MergeResult, MergeStep, ResolutionMode
from wt.core.exceptions import MergeConflict, WTException
from wt.core.logger import get_logger

logger = get_logger("merge_command")


def _resolve_target(session: Session, target: Optional[str]) -> Optional[str]:
    """显式给出的目标分支必须是已有分支的完整名称"""
    if target is None:
        return None
    return session.manager.resolve(target, ResolutionMode.STRICT).branch


def render_result(formatter: OutputFormatter, result: MergeResult) -> None:
    state = result.state
    for step in result.executed_steps:
        record = state.record(step)
        if record.detail.get("skipped"):
            click.echo(formatter.info(f"{step.value}: 跳过（{record.detail.get('reason')}）"))
        else:
            click.echo(formatter.success(f"{step.value}: 完成"))
    for warning in result.warnings:
        click.echo(formatter.warning(warning))
    if result.completed:
        kind = {"fast-forward": "快进", "merge": "合并提交"}.get(result.merge_kind, result.merge_kind)
        click.echo(formatter.success(f"{state.branch} 已合并到 {state.target}（{kind}）"))


def _fail(formatter: OutputFormatter, operation: str, exc: Exception) -> None:
    if isinstance(exc, WTException):
        click.echo(formatter.format_exception(operation, exc), err=True)
        if isinstance(exc, MergeConflict):
            logger.warning("Merge paused on conflict", step=exc.step, conflicts=exc.conflicts)
    else:
        click.echo(formatter.error(str(exc)), err=True)
    raise SystemExit(1)


@click.command()
@click.argument("target", required=False)
@click.option("--no-squash", is_flag=True, help="不压缩提交")
@click.option("-m", "--message", default=None, help="提交信息（不调用生成命令）")
@click.option("--discard", is_flag=True, help="丢弃进行中的合并流程后重新开始")
@click.option("--remove/--no-remove", "remove_worktree", default=None, help="合并成功后删除 worktree 和分支")
@click.option("-f", "--force", is_flag=True, help="授权并执行未授权的 Hook 命令")
@click.pass_context
def merge(ctx, target: Optional[str], no_squash: bool, message: Optional[str],
          discard: bool, remove_worktree: Optional[bool], force: bool) -> None:
    """把当前 worktree 的分支合并到 TARGET（默认为默认分支）

    已有进行中的流程时从暂停的步骤继续。

    \b
    使用示例:
    wt merge
    wt merge release --no-squash
    wt merge -m "feat: add login" --remove
    """
    formatter = formatter_from_context(ctx)
    try:
        session = open_session(force=force)
        squash = session.config.get("merge.squash", True) and not no_squash
        if remove_worktree is None:
            remove_worktree = session.config.get("merge.remove", False)
        options = MergeOptions(squash=squash, commit_message=message, remove_worktree=remove_worktree)
        result = session.workflow.run(
            session.worktree_root,
            _resolve_target(session, target),
            options,
            discard=discard,
        )
    except (WTException, RepoNotFoundError) as e:
        _fail(formatter, "merge", e)

    render_result(formatter, result)
    if result.completed and options.remove_worktree:
        click.echo(formatter.info(f"返回主 worktree：{session.repository.repo_root()}"))


@click.command(name="continue")
@click.option("-f", "--force", is_flag=True, help="授权并执行未授权的 Hook 命令")
@click.pass_context
def continue_command(ctx, force: bool) -> None:
    """继续暂停中的合并流程（解决冲突后使用）"""
    formatter = formatter_from_context(ctx)
    try:
        session = open_session(force=force)
        options = MergeOptions(
            squash=session.config.get("merge.squash", True),
            remove_worktree=session.config.get("merge.remove", False),
        )
        result = session.workflow.resume(session.worktree_root, options)
    except (WTException, RepoNotFoundError) as e:
        _fail(formatter, "continue", e)

    render_result(formatter, result)


@click.group()
def step():
    """单独执行合并流程中的一个步骤"""
    pass


def _make_step_command(merge_step: MergeStep):
    @click.command(name=merge_step.value, help=f"执行 {merge_step.value} 步骤")
    @click.option("-t", "--target", default=None, help="目标分支（默认为默认分支）")
    @click.option("-m", "--message", default=None, help="提交信息")
    @click.option("-f", "--force", is_flag=True, help="授权并执行未授权的 Hook 命令")
    @click.pass_context
    def step_command(ctx, target: Optional[str], message: Optional[str], force: bool) -> None:
        formatter = formatter_from_context(ctx)
        try:
            session = open_session(force=force)
            options = MergeOptions(
                squash=session.config.get("merge.squash", True),
                commit_message=message,
            )
            result = session.workflow.run_step(
                session.worktree_root,
                merge_step,
                _resolve_target(session, target),
                options,
            )
        except (WTException, RepoNotFoundError) as e:
            _fail(formatter, f"step {merge_step.value}", e)

        render_result(formatter, result)

    return step_command


for _merge_step in MergeStep.ordered():
    step.add_command(_make_step_command(_merge_step))
