"""Git 仓库操作接口定义"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

from wt.core.data_structures import WorktreeInfo


class IRepository(ABC):
    """仓库门面接口

    所有按 worktree 执行的操作都以 worktree 路径为第一个参数。
    """

    @abstractmethod
    def repo_root(self) -> Path:
        """主 worktree 根目录"""
        pass

    @abstractmethod
    def git_common_dir(self) -> Path:
        """所有 worktree 共享的 .git 目录"""
        pass

    @abstractmethod
    def project_identifier(self) -> str:
        """项目标识，用于区分授权记录"""
        pass

    @abstractmethod
    def default_branch(self) -> str:
        """默认分支名"""
        pass

    @abstractmethod
    def list_worktrees(self) -> List[WorktreeInfo]:
        """列出所有 worktree"""
        pass

    @abstractmethod
    def list_branches(self) -> List[str]:
        """列出本地分支"""
        pass

    @abstractmethod
    def branch_exists(self, branch: str) -> bool:
        pass

    @abstractmethod
    def current_branch(self, path: Path) -> Optional[str]:
        """worktree 当前分支，分离头指针时为 None"""
        pass

    @abstractmethod
    def create_worktree(self, path: Path, branch: str, base: Optional[str] = None) -> None:
        """创建 worktree；给定 base 时同时从 base 创建新分支"""
        pass

    @abstractmethod
    def remove_worktree(self, path: Path, force: bool = False) -> None:
        pass

    @abstractmethod
    def delete_branch(self, branch: str, force: bool = False) -> None:
        pass

    @abstractmethod
    def has_uncommitted_changes(self, path: Path) -> bool:
        pass

    @abstractmethod
    def stage_all(self, path: Path) -> None:
        pass

    @abstractmethod
    def commit(self, path: Path, message: str) -> str:
        """提交暂存区，返回新提交的 SHA"""
        pass

    @abstractmethod
    def staged_diff(self, path: Path) -> str:
        pass

    @abstractmethod
    def recent_subjects(self, path: Path, count: int = 5) -> List[str]:
        """最近的非合并提交标题，新的在前"""
        pass

    @abstractmethod
    def merge_base(self, path: Path, target: str) -> str:
        """HEAD 与 target 的合并基点"""
        pass

    @abstractmethod
    def commit_subjects(self, path: Path, base: str) -> List[str]:
        """base..HEAD 的提交标题，按时间顺序"""
        pass

    @abstractmethod
    def soft_reset(self, path: Path, commit: str) -> None:
        pass

    @abstractmethod
    def head_commit(self, path: Path) -> str:
        pass

    @abstractmethod
    def is_ancestor(self, path: Path, ancestor: str, descendant: str = "HEAD") -> bool:
        pass

    @abstractmethod
    def rebase(self, path: Path, onto: str) -> List[str]:
        """rebase 到 onto，冲突时保留 rebase 现场并返回冲突文件"""
        pass

    @abstractmethod
    def continue_rebase(self, path: Path) -> List[str]:
        """继续进行中的 rebase，返回仍存在的冲突文件"""
        pass

    @abstractmethod
    def rebase_in_progress(self, path: Path) -> bool:
        pass

    @abstractmethod
    def merge_into(self, target: str, branch: str, target_path: Optional[Path]) -> Tuple[str, List[str]]:
        """把 branch 合并进 target

        Returns:
            (合并方式, 冲突文件)。合并方式为 "fast-forward" 或 "merge"；
            有冲突时合并已被中止。
        """
        pass
