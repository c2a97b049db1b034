"""合并流程状态持久化

每个 worktree 至多一个进行中的合并流程，状态以 JSON 保存在
<git-common-dir>/wt/merge-state/<hash>.json，任何后续调用都能读取并续跑。

写入时检查 revision：磁盘上的版本与内存中读到的版本不一致，说明有
另一个进程同时在推进同一个 worktree 的合并，此时拒绝写入。
"""

import hashlib
import json
import os
from pathlib import Path
from typing import List, Optional

from wt.core.data_structures import MergeWorkflowState
from wt.core.exceptions import StateConflict, WorkflowException
from wt.core.file_lock import atomic_write_text, exclusive_lock
from wt.core.interfaces.repository import IRepository
from wt.core.logger import get_logger

logger = get_logger("state_store")


def _worktree_key(worktree: Path) -> str:
    return os.path.normpath(str(Path(worktree).resolve()))


class MergeStateStore:
    """合并状态存储"""

    def __init__(self, state_dir: Path):
        """
        Args:
            state_dir: 状态文件目录
        """
        self.state_dir = Path(state_dir)

    @classmethod
    def for_repository(cls, repository: IRepository) -> 'MergeStateStore':
        return cls(repository.git_common_dir() / "wt" / "merge-state")

    def state_path(self, worktree: Path) -> Path:
        digest = hashlib.sha1(_worktree_key(worktree).encode("utf-8")).hexdigest()[:16]
        return self.state_dir / f"{digest}.json"

    def _read(self, path: Path) -> Optional[MergeWorkflowState]:
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return MergeWorkflowState.from_dict(json.load(f))
        except (ValueError, KeyError) as e:
            logger.error("Corrupt merge state file", path=str(path), error=str(e))
            raise WorkflowException(
                f"合并状态文件已损坏：{path}。可使用 'wt merge --discard' 丢弃",
                details=str(e),
            )

    def load(self, worktree: Path) -> Optional[MergeWorkflowState]:
        """读取 worktree 的合并状态，不存在时返回 None"""
        state = self._read(self.state_path(worktree))
        if state is not None:
            logger.debug("Merge state loaded", worktree=str(worktree), phase=state.phase, revision=state.revision)
        return state

    def save(self, state: MergeWorkflowState) -> None:
        """保存状态并递增 revision

        Raises:
            StateConflict: 磁盘上的状态已被其他进程修改或删除
        """
        path = self.state_path(Path(state.worktree_path))
        with exclusive_lock(path):
            on_disk = self._read(path)
            disk_revision = on_disk.revision if on_disk is not None else 0
            if disk_revision != state.revision:
                logger.error(
                    "Merge state changed concurrently",
                    worktree=state.worktree_path,
                    expected=state.revision,
                    found=disk_revision,
                )
                raise StateConflict(
                    f"{state.worktree_path} 的合并状态已被另一个 wt 进程修改，请重新运行"
                )
            state.revision += 1
            atomic_write_text(path, json.dumps(state.to_dict(), indent=2, ensure_ascii=False))
        logger.debug("Merge state saved", worktree=state.worktree_path, phase=state.phase, revision=state.revision)

    def delete(self, worktree: Path) -> bool:
        """删除状态文件，返回是否确有文件被删除"""
        path = self.state_path(worktree)
        with exclusive_lock(path):
            if not path.exists():
                return False
            path.unlink()
        logger.info("Merge state deleted", worktree=str(worktree))
        return True

    def list_states(self) -> List[MergeWorkflowState]:
        if not self.state_dir.exists():
            return []
        states = []
        for path in sorted(self.state_dir.glob("*.json")):
            state = self._read(path)
            if state is not None:
                states.append(state)
        return states
