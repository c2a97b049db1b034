"""wt list 命令实现"""

import json

import click

from wt.cli.utils import RepoNotFoundError, formatter_from_context, open_session
from wt.core.exceptions import WTException


@click.command(name="list")
@click.option("--json", "as_json", is_flag=True, help="以 JSON 格式输出")
@click.pass_context
def list_command(ctx, as_json: bool) -> None:
    """列出所有 worktree 及进行中的合并流程"""
    formatter = formatter_from_context(ctx)
    try:
        session = open_session()
        worktrees = session.manager.list_worktrees(session.state_store)
    except WTException as e:
        click.echo(formatter.format_exception("list", e), err=True)
        raise SystemExit(1)
    except RepoNotFoundError as e:
        click.echo(formatter.error(str(e)), err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps([w.to_dict() for w in worktrees], indent=2, ensure_ascii=False))
        return

    current = session.worktree_root
    rows = []
    for info in worktrees:
        marker = "@" if info.path.resolve() == current else ""
        rows.append([
            marker,
            info.display_name,
            info.head[:8],
            f"merging ({info.merge_phase})" if info.merge_phase else "",
            str(info.path),
        ])
    click.echo(formatter.format_table(["", "BRANCH", "HEAD", "MERGE", "PATH"], rows))
