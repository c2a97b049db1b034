"""Git 操作封装类

通过 git 命令行实现仓库门面接口，包括 worktree 管理、提交、rebase 与合并。
使用 structlog 记录所有操作。
"""

import os
import re
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from wt.core.data_structures import WorktreeInfo
from wt.core.exceptions import GitCommandError
from wt.core.interfaces.repository import IRepository
from wt.core.logger import get_logger


logger = get_logger("git_client")

_SCP_LIKE_URL = re.compile(r'^(?:[^@/]+@)?([^:/]+):(.+)$')


def normalize_remote_url(url: str) -> Optional[str]:
    """把远程地址规范成 host/owner/repo 形式

    支持 https://、ssh:// 和 git@host:owner/repo 三种写法。
    """
    url = url.strip()
    if not url:
        return None

    if "://" in url:
        rest = url.split("://", 1)[1]
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
        host, _, path = rest.partition("/")
        host = host.split(":", 1)[0]
    else:
        match = _SCP_LIKE_URL.match(url)
        if not match:
            return None
        host, path = match.group(1), match.group(2)

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    if not host or not path:
        return None
    return f"{host.lower()}/{path}"


class GitClient(IRepository):
    """Git 操作客户端

    提供 Git 命令的统一接口和异常处理。
    """

    def __init__(self, repo_path: Optional[Path] = None):
        """初始化 GitClient

        Args:
            repo_path: 仓库内任意路径，默认为当前目录
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        logger.debug("GitClient initialized", repo_path=str(self.repo_path))

    def _run(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """运行命令，不检查返回码"""
        cwd = cwd or self.repo_path
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        logger.debug("Running git command", command=" ".join(cmd), cwd=str(cwd))
        try:
            return subprocess.run(
                cmd,
                cwd=cwd,
                env=full_env,
                capture_output=True,
                text=True,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("Git command error", command=" ".join(cmd), error=str(e))
            raise GitCommandError(f"Failed to execute git command: {e}") from e

    def run_command(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        """运行 Git 命令

        Args:
            cmd: 命令列表
            cwd: 工作目录，默认使用 repo_path
            check: 是否在命令失败时抛出异常
            env: 额外的环境变量

        Returns:
            去掉首尾空白的标准输出

        Raises:
            GitCommandError: 命令执行失败时抛出
        """
        result = self._run(cmd, cwd=cwd, env=env)

        if check and result.returncode != 0:
            error_msg = (result.stderr or result.stdout or "").strip()
            logger.error(
                "Git command failed",
                command=" ".join(cmd),
                return_code=result.returncode,
                error=error_msg,
            )
            raise GitCommandError(
                f"Git command failed: {' '.join(cmd)}",
                details=error_msg,
            )

        output = (result.stdout or "").strip()
        logger.debug("Git command succeeded", output_length=len(output))
        return output

    # 仓库信息

    def repo_root(self) -> Path:
        """主 worktree 根目录（worktree 列表的第一项）"""
        worktrees = self.list_worktrees()
        if worktrees:
            return worktrees[0].path
        return Path(self.run_command(["git", "rev-parse", "--show-toplevel"]))

    def git_common_dir(self) -> Path:
        output = self.run_command(["git", "rev-parse", "--git-common-dir"])
        path = Path(output)
        if not path.is_absolute():
            path = self.repo_path / path
        return Path(os.path.normpath(str(path)))

    def project_identifier(self) -> str:
        """origin 地址规范化后的形式，没有 origin 时使用主 worktree 路径"""
        url = self.run_command(["git", "config", "--get", "remote.origin.url"], check=False)
        identifier = normalize_remote_url(url) if url else None
        if identifier:
            return identifier
        return str(self.repo_root())

    def default_branch(self) -> str:
        """推断默认分支

        依次尝试 origin/HEAD、本地 main/master、init.defaultBranch，
        最后退回主 worktree 的当前分支。
        """
        remote_head = self.run_command(
            ["git", "symbolic-ref", "--quiet", "--short", "refs/remotes/origin/HEAD"],
            check=False,
        )
        if remote_head.startswith("origin/"):
            branch = remote_head[len("origin/"):]
            logger.debug("Default branch from origin/HEAD", branch=branch)
            return branch

        for candidate in ("main", "master"):
            if self.branch_exists(candidate):
                return candidate

        configured = self.run_command(["git", "config", "--get", "init.defaultBranch"], check=False)
        if configured:
            return configured

        current = self.current_branch(self.repo_root())
        if current:
            return current
        raise GitCommandError("Cannot determine the default branch")

    # 分支与 worktree

    def list_worktrees(self) -> List[WorktreeInfo]:
        """解析 git worktree list --porcelain 的输出

        每个 worktree 是一段以空行分隔的记录：
            worktree /path/to/worktree
            HEAD <sha>
            branch refs/heads/branch-name | detached
        """
        output = self.run_command(["git", "worktree", "list", "--porcelain"])

        worktrees: List[WorktreeInfo] = []
        current: Dict[str, str] = {}
        for line in output.split("\n") + [""]:
            if not line.strip():
                if current.get("worktree") and "bare" not in current:
                    worktrees.append(
                        WorktreeInfo(
                            path=Path(current["worktree"]),
                            branch=current.get("branch"),
                            head=current.get("HEAD", ""),
                            is_main=not worktrees,
                            is_detached="detached" in current,
                        )
                    )
                current = {}
                continue

            key, _, value = line.partition(" ")
            if key == "branch":
                value = value[len("refs/heads/"):] if value.startswith("refs/heads/") else value
            current[key] = value

        logger.debug("Worktree list retrieved", count=len(worktrees))
        return worktrees

    def list_branches(self) -> List[str]:
        output = self.run_command(
            ["git", "for-each-ref", "--format=%(refname:short)", "refs/heads/"]
        )
        return [line.strip() for line in output.split("\n") if line.strip()]

    def branch_exists(self, branch: str) -> bool:
        result = self._run(["git", "show-ref", "--verify", "--quiet", f"refs/heads/{branch}"])
        return result.returncode == 0

    def current_branch(self, path: Path) -> Optional[str]:
        output = self.run_command(
            ["git", "symbolic-ref", "--quiet", "--short", "HEAD"], cwd=path, check=False
        )
        return output or None

    def create_worktree(self, path: Path, branch: str, base: Optional[str] = None) -> None:
        """创建 worktree

        Args:
            path: worktree 路径
            branch: 分支名
            base: 给定时从 base 新建 branch

        Raises:
            GitCommandError: 创建失败时抛出
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if base is not None:
            cmd = ["git", "worktree", "add", "-b", branch, str(path), base]
        else:
            cmd = ["git", "worktree", "add", str(path), branch]
        self.run_command(cmd)
        logger.info("Worktree created", path=str(path), branch=branch, base=base)

    def remove_worktree(self, path: Path, force: bool = False) -> None:
        cmd = ["git", "worktree", "remove"]
        if force:
            cmd.append("--force")
        cmd.append(str(path))
        self.run_command(cmd)
        logger.info("Worktree removed", path=str(path), force=force)

    def delete_branch(self, branch: str, force: bool = False) -> None:
        self.run_command(["git", "branch", "-D" if force else "-d", branch])
        logger.info("Branch deleted", branch=branch, force=force)

    # 提交

    def has_uncommitted_changes(self, path: Path) -> bool:
        status = self.run_command(["git", "status", "--porcelain"], cwd=path)
        return bool(status.strip())

    def stage_all(self, path: Path) -> None:
        self.run_command(["git", "add", "-A"], cwd=path)

    def commit(self, path: Path, message: str) -> str:
        self.run_command(["git", "commit", "-m", message], cwd=path)
        sha = self.head_commit(path)
        logger.info("Commit created", path=str(path), commit=sha)
        return sha

    def staged_diff(self, path: Path) -> str:
        return self.run_command(["git", "diff", "--cached"], cwd=path)

    def recent_subjects(self, path: Path, count: int = 5) -> List[str]:
        # 新仓库没有任何提交时 git log 会失败
        output = self.run_command(
            ["git", "log", "--no-merges", "--format=%s", f"-n{count}"], cwd=path, check=False
        )
        return [line for line in output.split("\n") if line.strip()]

    def merge_base(self, path: Path, target: str) -> str:
        return self.run_command(["git", "merge-base", "HEAD", target], cwd=path)

    def commit_subjects(self, path: Path, base: str) -> List[str]:
        output = self.run_command(
            ["git", "log", "--reverse", "--format=%s", f"{base}..HEAD"], cwd=path
        )
        return [line for line in output.split("\n") if line.strip()]

    def soft_reset(self, path: Path, commit: str) -> None:
        self.run_command(["git", "reset", "--soft", commit], cwd=path)

    def head_commit(self, path: Path) -> str:
        return self.run_command(["git", "rev-parse", "HEAD"], cwd=path)

    def is_ancestor(self, path: Path, ancestor: str, descendant: str = "HEAD") -> bool:
        result = self._run(["git", "merge-base", "--is-ancestor", ancestor, descendant], cwd=path)
        if result.returncode in (0, 1):
            return result.returncode == 0
        raise GitCommandError(
            f"Git command failed: git merge-base --is-ancestor {ancestor} {descendant}",
            details=(result.stderr or "").strip(),
        )

    # rebase 与合并

    def rebase(self, path: Path, onto: str) -> List[str]:
        result = self._run(["git", "rebase", onto], cwd=path)
        if result.returncode == 0:
            logger.info("Rebase completed", path=str(path), onto=onto)
            return []
        if not self.rebase_in_progress(path):
            raise GitCommandError(
                f"Git command failed: git rebase {onto}",
                details=(result.stderr or result.stdout or "").strip(),
            )
        conflicts = self.conflicted_files(path)
        logger.warning("Rebase stopped on conflicts", path=str(path), onto=onto, conflicts=conflicts)
        return conflicts

    def continue_rebase(self, path: Path) -> List[str]:
        result = self._run(["git", "rebase", "--continue"], cwd=path, env={"GIT_EDITOR": "true"})
        if result.returncode == 0 and not self.rebase_in_progress(path):
            logger.info("Rebase continued to completion", path=str(path))
            return []
        if not self.rebase_in_progress(path):
            raise GitCommandError(
                "Git command failed: git rebase --continue",
                details=(result.stderr or result.stdout or "").strip(),
            )
        return self.conflicted_files(path)

    def rebase_in_progress(self, path: Path) -> bool:
        for name in ("rebase-merge", "rebase-apply"):
            output = self.run_command(["git", "rev-parse", "--git-path", name], cwd=path)
            git_path = Path(output)
            if not git_path.is_absolute():
                git_path = Path(path) / git_path
            if git_path.exists():
                return True
        return False

    def conflicted_files(self, path: Path) -> List[str]:
        output = self.run_command(["git", "diff", "--name-only", "--diff-filter=U"], cwd=path)
        return [line for line in output.split("\n") if line.strip()]

    def merge_into(self, target: str, branch: str, target_path: Optional[Path]) -> Tuple[str, List[str]]:
        if self.is_ancestor(self.repo_path, target, branch):
            if target_path is not None:
                self.run_command(["git", "merge", "--ff-only", branch], cwd=target_path)
            else:
                new_sha = self.run_command(["git", "rev-parse", f"refs/heads/{branch}"])
                old_sha = self.run_command(["git", "rev-parse", f"refs/heads/{target}"])
                self.run_command(["git", "update-ref", f"refs/heads/{target}", new_sha, old_sha])
            logger.info("Fast-forwarded target", target=target, branch=branch)
            return "fast-forward", []

        if target_path is None:
            raise GitCommandError(
                f"Cannot merge {branch} into {target}: {target} is not checked out in any worktree "
                "and cannot be fast-forwarded"
            )

        result = self._run(["git", "merge", "--no-ff", "--no-edit", branch], cwd=target_path)
        if result.returncode == 0:
            logger.info("Merge commit created", target=target, branch=branch)
            return "merge", []

        conflicts = self.conflicted_files(target_path)
        if not conflicts:
            raise GitCommandError(
                f"Git command failed: git merge --no-ff --no-edit {branch}",
                details=(result.stderr or result.stdout or "").strip(),
            )
        self.run_command(["git", "merge", "--abort"], cwd=target_path)
        logger.warning("Merge aborted on conflicts", target=target, branch=branch, conflicts=conflicts)
        return "merge", conflicts
