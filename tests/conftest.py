"""测试共用的假实现与 fixture"""

import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest
import yaml

from wt.core.approval_store import ApprovalStore
from wt.core.config_manager import ConfigManager, ProjectConfig
from wt.core.data_structures import ExecutionResult, WorktreeInfo
from wt.core.interfaces.executor import ICommandExecutor
from wt.core.interfaces.repository import IRepository


class FakeExecutor(ICommandExecutor):
    """记录调用并按命令文本返回预设结果的执行器

    results 的值可以是退出码或完整的 ExecutionResult，未配置的命令返回 0。
    """

    def __init__(self, results: Optional[Dict[str, Union[int, ExecutionResult]]] = None):
        self.results = dict(results or {})
        self.calls: List[Dict] = []

    def run(self, command, cwd=None, env=None, stdin=None, timeout=None, shell=False) -> ExecutionResult:
        key = command if isinstance(command, str) else " ".join(command)
        self.calls.append({
            "command": key,
            "cwd": cwd,
            "env": env,
            "stdin": stdin,
            "timeout": timeout,
            "shell": shell,
        })
        result = self.results.get(key, 0)
        if isinstance(result, int):
            return ExecutionResult(returncode=result)
        return result

    @property
    def commands(self) -> List[str]:
        return [call["command"] for call in self.calls]


class FakeRepository(IRepository):
    """内存中的仓库，行为由属性控制，调用记录在 calls 中"""

    def __init__(self, root: Path, default: str = "main"):
        self.root = Path(root)
        self.common_dir = self.root / ".git"
        self.project = "example.com/acme/app"
        self.default = default
        self.branches: List[str] = [default]
        self.worktrees: List[WorktreeInfo] = [
            WorktreeInfo(path=self.root, branch=default, head="aaaa1111", is_main=True)
        ]
        self.dirty: Dict[str, bool] = {}
        self.diff = "diff --git a/app.py b/app.py"
        self.recent: List[str] = ["Add login form", "Fix typo"]
        self.subjects: List[str] = []
        self.target_is_ancestor = False
        self.rebase_conflicts: List[str] = []
        self.continue_conflicts: List[str] = []
        self.in_rebase = False
        self.merge_conflicts: List[str] = []
        self.commit_messages: List[str] = []
        self.calls: List[Tuple] = []

    # 测试辅助

    def add_worktree(self, branch: str, path: Path) -> Path:
        path = Path(path)
        if branch not in self.branches:
            self.branches.append(branch)
        self.worktrees.append(WorktreeInfo(path=path, branch=branch, head="bbbb2222"))
        return path

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    # IRepository

    def repo_root(self) -> Path:
        return self.root

    def git_common_dir(self) -> Path:
        return self.common_dir

    def project_identifier(self) -> str:
        return self.project

    def default_branch(self) -> str:
        return self.default

    def list_worktrees(self) -> List[WorktreeInfo]:
        return list(self.worktrees)

    def list_branches(self) -> List[str]:
        return list(self.branches)

    def branch_exists(self, branch: str) -> bool:
        return branch in self.branches

    def current_branch(self, path: Path) -> Optional[str]:
        if self.in_rebase:
            return None
        for info in self.worktrees:
            if Path(info.path) == Path(path):
                return info.branch
        return None

    def create_worktree(self, path: Path, branch: str, base: Optional[str] = None) -> None:
        self.calls.append(("create_worktree", Path(path), branch, base))
        self.add_worktree(branch, path)

    def remove_worktree(self, path: Path, force: bool = False) -> None:
        self.calls.append(("remove_worktree", Path(path), force))
        self.worktrees = [w for w in self.worktrees if Path(w.path) != Path(path)]

    def delete_branch(self, branch: str, force: bool = False) -> None:
        self.calls.append(("delete_branch", branch, force))
        self.branches = [b for b in self.branches if b != branch]

    def has_uncommitted_changes(self, path: Path) -> bool:
        return self.dirty.get(str(path), False)

    def stage_all(self, path: Path) -> None:
        self.calls.append(("stage_all", Path(path)))

    def commit(self, path: Path, message: str) -> str:
        self.calls.append(("commit", Path(path), message))
        self.commit_messages.append(message)
        self.dirty[str(path)] = False
        return f"c{len(self.commit_messages)}"

    def staged_diff(self, path: Path) -> str:
        return self.diff

    def recent_subjects(self, path: Path, count: int = 5) -> List[str]:
        return self.recent[:count]

    def merge_base(self, path: Path, target: str) -> str:
        return "base0000"

    def commit_subjects(self, path: Path, base: str) -> List[str]:
        return list(self.subjects)

    def soft_reset(self, path: Path, commit: str) -> None:
        self.calls.append(("soft_reset", Path(path), commit))

    def head_commit(self, path: Path) -> str:
        return "head0000"

    def is_ancestor(self, path: Path, ancestor: str, descendant: str = "HEAD") -> bool:
        return self.target_is_ancestor

    def rebase(self, path: Path, onto: str) -> List[str]:
        self.calls.append(("rebase", Path(path), onto))
        if self.rebase_conflicts:
            self.in_rebase = True
            return list(self.rebase_conflicts)
        self.target_is_ancestor = True
        return []

    def continue_rebase(self, path: Path) -> List[str]:
        self.calls.append(("continue_rebase", Path(path)))
        if self.continue_conflicts:
            return list(self.continue_conflicts)
        self.in_rebase = False
        self.target_is_ancestor = True
        return []

    def rebase_in_progress(self, path: Path) -> bool:
        return self.in_rebase

    def merge_into(self, target: str, branch: str, target_path: Optional[Path]) -> Tuple[str, List[str]]:
        self.calls.append(("merge_into", target, branch, target_path))
        if self.merge_conflicts:
            conflicts, self.merge_conflicts = self.merge_conflicts, []
            return "merge", conflicts
        return ("fast-forward" if self.target_is_ancestor else "merge"), []


def write_project_config(root: Path, hooks: Dict) -> ProjectConfig:
    """写入 .wt.yaml 并返回 ProjectConfig"""
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    with open(root / ProjectConfig.CONFIG_FILENAME, "w", encoding="utf-8") as f:
        yaml.safe_dump({"hooks": hooks}, f, sort_keys=False)
    return ProjectConfig(root)


@pytest.fixture
def config_manager(tmp_path):
    """指向临时目录的用户配置"""
    return ConfigManager(tmp_path / "config" / "wt" / "config.yaml")


@pytest.fixture
def approval_store(config_manager):
    return ApprovalStore(config_manager)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def fake_repo(tmp_path):
    root = tmp_path / "app"
    root.mkdir()
    return FakeRepository(root)


@pytest.fixture
def make_project_config():
    """返回写入 .wt.yaml 的函数：make_project_config(root, hooks)"""
    return write_project_config


class GitSandbox:
    """临时 Git 仓库，主分支为 main，含一个初始提交"""

    def __init__(self, tmp_path: Path):
        self.tmp_path = Path(tmp_path)
        self.repo_path = self.tmp_path / "repo"
        self.config_path = self.tmp_path / "wt-config" / "config.yaml"

    def git(self, *args: str, cwd: Optional[Path] = None) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd or self.repo_path,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()

    def setup(self) -> Path:
        self.repo_path.mkdir(parents=True)
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")
        self.git("config", "user.email", "test@example.com")
        self.git("config", "user.name", "Test User")
        self.git("config", "commit.gpgsign", "false")
        self.commit_file("README.md", "# Test Repository\n", "Initial commit")
        return self.repo_path

    def commit_file(self, name: str, content: str, message: str, cwd: Optional[Path] = None) -> None:
        root = Path(cwd or self.repo_path)
        (root / name).write_text(content, encoding="utf-8")
        self.git("add", name, cwd=root)
        self.git("commit", "-q", "-m", message, cwd=root)

    def add_worktree(self, branch: str) -> Path:
        path = self.tmp_path / f"repo.{branch.replace('/', '-')}"
        self.git("worktree", "add", "-q", "-b", branch, str(path), "main")
        return path

    def write_hooks(self, hooks: Dict) -> None:
        write_project_config(self.repo_path, hooks)

    def branches(self) -> List[str]:
        return self.git("for-each-ref", "--format=%(refname:short)", "refs/heads/").split()

    def log(self, ref: str = "main", cwd: Optional[Path] = None) -> List[str]:
        return self.git("log", "--format=%s", ref, cwd=cwd).splitlines()


@pytest.fixture
def git_sandbox(tmp_path, monkeypatch):
    """初始化好的 Git 仓库，cwd 位于主 worktree，用户配置指向临时文件"""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    sandbox = GitSandbox(tmp_path)
    sandbox.setup()
    monkeypatch.setenv("WT_CONFIG_PATH", str(sandbox.config_path))
    monkeypatch.chdir(sandbox.repo_path)
    return sandbox
