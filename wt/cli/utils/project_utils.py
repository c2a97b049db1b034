"""项目路径查找与服务装配

提供类似 git 的目录查找机制，从当前目录逐级向上查找仓库根目录，
并把核心组件装配成一次 CLI 调用使用的 Session。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from wt.cli.utils.interactive import InteractivePrompt, is_interactive
from wt.core.approval_store import ApprovalStore
from wt.core.command_executor import SubprocessExecutor
from wt.core.commit_message import CommitMessageGenerator
from wt.core.config_manager import ConfigManager, ProjectConfig
from wt.core.git_client import GitClient
from wt.core.hook_runner import HookRunner
from wt.core.merge_workflow import MergeWorkflow
from wt.core.path_mapper import WorktreePathMapper
from wt.core.state_store import MergeStateStore
from wt.core.worktree_manager import WorktreeManager


class RepoNotFoundError(Exception):
    """未找到 Git 仓库的异常"""

    def __init__(self, start_path: Path):
        self.start_path = start_path
        super().__init__(
            f"fatal: not a git repository (or any of the parent directories): .git\n"
            f"searched from: {start_path}"
        )


def find_repo_root(start_path: Optional[Path] = None) -> Path:
    """查找所在 worktree 的根目录

    从起始目录开始逐级向上查找 .git（主 worktree 中是目录，
    链接的 worktree 中是文件）。

    Raises:
        RepoNotFoundError: 如果未找到
    """
    if start_path is None:
        start_path = Path.cwd()

    current = Path(start_path).resolve()
    while True:
        if (current / ".git").exists():
            return current

        parent = current.parent
        if parent == current:
            raise RepoNotFoundError(start_path)
        current = parent


@dataclass
class Session:
    """一次 CLI 调用使用的组件"""
    cwd: Path
    worktree_root: Path
    repository: GitClient
    config: ConfigManager
    project_config: ProjectConfig
    approvals: ApprovalStore
    hook_runner: HookRunner
    state_store: MergeStateStore
    manager: WorktreeManager
    workflow: MergeWorkflow


def open_session(
    start_path: Optional[Path] = None,
    force: bool = False,
    config_path: Optional[Path] = None,
) -> Session:
    """装配核心组件

    git 命令始终在主 worktree 中执行，避免当前 worktree 被删除后失效。

    Args:
        start_path: 起始目录，默认为当前目录
        force: 对未授权的 Hook 命令自动授权并执行
        config_path: 用户配置文件路径
    """
    cwd = Path(start_path or Path.cwd()).resolve()
    worktree_root = find_repo_root(cwd)

    main_root = GitClient(worktree_root).repo_root()
    repository = GitClient(main_root)
    config = ConfigManager(config_path)
    config.load_config()
    project_config = ProjectConfig(main_root)
    approvals = ApprovalStore(config)
    executor = SubprocessExecutor()

    hook_runner = HookRunner(
        approval_store=approvals,
        executor=executor,
        project_id=repository.project_identifier(),
        interactive=is_interactive(),
        approver=InteractivePrompt.approve_commands,
        auto_approve=force,
        timeout=config.get_hook_timeout(),
    )
    state_store = MergeStateStore.for_repository(repository)
    manager = WorktreeManager(
        repository=repository,
        hook_runner=hook_runner,
        project_config=project_config,
        path_mapper=WorktreePathMapper(config.get("worktree-path")),
        default_branch=config.get("default-branch"),
    )
    workflow = MergeWorkflow(
        repository=repository,
        hook_runner=hook_runner,
        state_store=state_store,
        message_generator=CommitMessageGenerator(config.get_commit_generation(), executor, repository),
        project_config=project_config,
    )
    return Session(
        cwd=cwd,
        worktree_root=worktree_root,
        repository=repository,
        config=config,
        project_config=project_config,
        approvals=approvals,
        hook_runner=hook_runner,
        state_store=state_store,
        manager=manager,
        workflow=workflow,
    )
