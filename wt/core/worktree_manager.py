"""Worktree 管理器

把名称解析、路径映射、Hook 执行组合成 switch / remove / list / hook run 操作。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from wt.core.config_manager import ProjectConfig
from wt.core.data_structures import (
    CandidateMap,
    FailurePolicy,
    HookContext,
    HookStageName,
    ResolutionMode,
    ResolvedWorktree,
    StageResult,
    WorktreeInfo,
)
from wt.core.exceptions import (
    ConfigException,
    DirtyWorktree,
    HookNotConfigured,
    NotFound,
    UnknownHookStage,
    WorktreeAlreadyExists,
    WorktreeNotFound,
)
from wt.core.hook_runner import HookRunner
from wt.core.interfaces.repository import IRepository
from wt.core.logger import get_logger
from wt.core.name_resolver import NameResolver
from wt.core.path_mapper import WorktreePathMapper
from wt.core.state_store import MergeStateStore

logger = get_logger("worktree_manager")


@dataclass
class SwitchResult:
    """switch 的结果"""
    resolved: ResolvedWorktree
    path: Path
    created: bool = False
    hooks: List[StageResult] = field(default_factory=list)


@dataclass
class RemoveResult:
    """remove 的结果"""
    branch: Optional[str]
    path: Path
    main_path: Path
    removed: bool = False
    branch_deleted: bool = False
    message: str = ""


class WorktreeManager:
    """Worktree 管理器

    选择类操作（switch、hook run --worktree）默认模糊解析；
    创建类操作（--create、--base、remove）只接受精确名称。
    """

    def __init__(
        self,
        repository: IRepository,
        hook_runner: HookRunner,
        project_config: ProjectConfig,
        path_mapper: Optional[WorktreePathMapper] = None,
        resolver: Optional[NameResolver] = None,
        default_branch: Optional[str] = None,
    ):
        """
        Args:
            repository: 仓库门面
            hook_runner: Hook 执行器
            project_config: 项目 Hook 配置
            path_mapper: worktree 路径映射
            resolver: 名称解析器
            default_branch: 用户配置中指定的默认分支
        """
        self.repository = repository
        self.hook_runner = hook_runner
        self.project_config = project_config
        self.path_mapper = path_mapper or WorktreePathMapper()
        self.resolver = resolver or NameResolver()
        self._default_branch = default_branch

    def default_branch(self) -> str:
        if not self._default_branch:
            self._default_branch = self.repository.default_branch()
        return self._default_branch

    def candidates(self) -> CandidateMap:
        """所有本地分支及其 worktree 路径（没有 worktree 的为 None）"""
        result: CandidateMap = {branch: None for branch in self.repository.list_branches()}
        for info in self.repository.list_worktrees():
            if info.branch:
                result[info.branch] = info.path
        return result

    def resolve(self, name: str, mode: ResolutionMode) -> ResolvedWorktree:
        return self.resolver.resolve(name, mode, self.candidates())

    def current_worktree(self, cwd: Path) -> WorktreeInfo:
        """包含 cwd 的 worktree（取最深的一个）"""
        cwd = Path(cwd).resolve()
        best: Optional[WorktreeInfo] = None
        for info in self.repository.list_worktrees():
            path = Path(info.path).resolve()
            if cwd == path or path in cwd.parents:
                if best is None or len(path.parts) > len(Path(best.path).resolve().parts):
                    best = info
        if best is None:
            raise WorktreeNotFound(f"当前目录不在任何 worktree 中：{cwd}")
        return best

    # switch

    def switch(
        self,
        name: str,
        create: bool = False,
        base: Optional[str] = None,
        exact: bool = False,
    ) -> SwitchResult:
        """切换到（必要时创建）分支对应的 worktree

        Raises:
            NotFound / Ambiguous: 名称无法解析
            WorktreeAlreadyExists: --create 时分支或目录已存在
            ApprovalRequired / HookFailed: Hook 未获授权或执行失败
        """
        candidates = self.candidates()

        if create:
            if not name or not name.strip():
                raise NotFound(name, list(candidates))
            if name in candidates:
                raise WorktreeAlreadyExists(f"分支已存在：{name}。去掉 --create 切换到它")
            if base is not None:
                base_branch = self.resolver.resolve(base, ResolutionMode.STRICT, candidates).branch
            else:
                base_branch = self.default_branch()
            resolved = self.resolver.resolve(name, ResolutionMode.STRICT, {name: None})
            path = self._create(name, base=base_branch)
            result = SwitchResult(resolved=resolved, path=path, created=True)
            result.hooks = self._run_start_hooks(name, path, created=True)
            return result

        mode = ResolutionMode.STRICT if exact else ResolutionMode.FUZZY
        resolved = self.resolver.resolve(name, mode, candidates)

        if resolved.has_worktree:
            logger.info("Switching to existing worktree", branch=resolved.branch, path=str(resolved.path))
            result = SwitchResult(resolved=resolved, path=resolved.path)
            result.hooks = self._run_start_hooks(resolved.branch, resolved.path, created=False)
            return result

        path = self._create(resolved.branch, base=None)
        result = SwitchResult(resolved=resolved, path=path, created=True)
        result.hooks = self._run_start_hooks(resolved.branch, path, created=True)
        return result

    def _create(self, branch: str, base: Optional[str]) -> Path:
        root = self.repository.repo_root()
        path = self.path_mapper.worktree_path(root, branch)
        if path.exists():
            raise WorktreeAlreadyExists(f"目录已存在：{path}")

        stages = [HookStageName.POST_CREATE, HookStageName.POST_START]
        for stage_name in stages:
            self.hook_runner.ensure_approved(self.project_config.stage(stage_name))

        self.repository.create_worktree(path, branch, base=base)
        logger.info("Worktree created", branch=branch, path=str(path), base=base)
        return path

    def _run_start_hooks(self, branch: str, path: Path, created: bool) -> List[StageResult]:
        stages = [HookStageName.POST_START]
        if created:
            stages.insert(0, HookStageName.POST_CREATE)

        results = []
        for stage_name in stages:
            stage = self.project_config.stage(stage_name)
            if stage.is_empty:
                continue
            stage_result = self.hook_runner.run_stage(stage, self._context(branch, path))
            results.append(stage_result)
            stage_result.raise_for_failure()
        return results

    # remove

    def remove(
        self,
        name: Optional[str] = None,
        cwd: Optional[Path] = None,
        force: bool = False,
        delete_branch: bool = False,
    ) -> RemoveResult:
        """删除 worktree

        不给名称时删除 cwd 所在的 worktree。主 worktree 或默认分支不会被删除。

        Raises:
            NotFound: 名称不是已有分支
            WorktreeNotFound: 分支没有 worktree
            DirtyWorktree: 有未提交的改动且未指定 --force
        """
        main_path = self.repository.repo_root()

        if name is None:
            info = self.current_worktree(cwd or Path.cwd())
            branch, path, is_main = info.branch, Path(info.path), info.is_main
        else:
            resolved = self.resolve(name, ResolutionMode.STRICT)
            if not resolved.has_worktree:
                raise WorktreeNotFound(f"分支 {resolved.branch} 没有 worktree")
            branch, path = resolved.branch, Path(resolved.path)
            is_main = path.resolve() == Path(main_path).resolve()

        if is_main or branch == self.default_branch():
            logger.info("Refusing to remove default worktree", branch=branch, path=str(path))
            return RemoveResult(
                branch=branch,
                path=path,
                main_path=main_path,
                message=f"已在默认分支 {branch} 上（{path}），无需删除",
            )

        if not force and self.repository.has_uncommitted_changes(path):
            raise DirtyWorktree(
                f"worktree 有未提交的改动：{path}。提交改动或使用 --force",
                details={"branch": branch, "path": str(path)},
            )

        self.repository.remove_worktree(path, force=force)
        result = RemoveResult(branch=branch, path=path, main_path=main_path, removed=True)
        if delete_branch and branch:
            self.repository.delete_branch(branch, force=force)
            result.branch_deleted = True
        logger.info("Worktree removed", branch=branch, path=str(path), branch_deleted=result.branch_deleted)
        return result

    # list

    def list_worktrees(self, state_store: Optional[MergeStateStore] = None) -> List[WorktreeInfo]:
        """列出 worktree，并标注进行中的合并流程"""
        worktrees = self.repository.list_worktrees()
        if state_store is None:
            return worktrees

        phases = {
            state_store.state_path(Path(state.worktree_path)): state.phase
            for state in state_store.list_states()
        }
        for info in worktrees:
            info.merge_phase = phases.pop(state_store.state_path(info.path), None)
        if phases:
            logger.warning("Merge state left for missing worktrees", count=len(phases))
        return worktrees

    # hook run

    def run_hook(
        self,
        stage_name: str,
        worktree: Optional[str] = None,
        cwd: Optional[Path] = None,
        policy: FailurePolicy = FailurePolicy.STOP_ON_FIRST_FAILURE,
        exact: bool = False,
    ) -> StageResult:
        """手动执行某个阶段的 Hook

        Raises:
            UnknownHookStage: 阶段名未知
            ConfigException: 项目没有 .wt.yaml
            HookNotConfigured: .wt.yaml 中没有该阶段
        """
        if stage_name not in HookStageName.ALL:
            raise UnknownHookStage(
                f"未知的 Hook 阶段：{stage_name}。可用阶段：{', '.join(HookStageName.ALL)}"
            )
        if not self.project_config.exists:
            raise ConfigException(
                "No project configuration found",
                details=f"Create {self.project_config.config_path} with a 'hooks:' section",
            )
        if not self.project_config.has_stage(stage_name):
            raise HookNotConfigured(
                f"{self.project_config.config_path} 中没有配置 {stage_name} 阶段",
                details={"declared": self.project_config.declared_stages()},
            )

        if worktree is not None:
            mode = ResolutionMode.STRICT if exact else ResolutionMode.FUZZY
            resolved = self.resolve(worktree, mode)
            if not resolved.has_worktree:
                raise WorktreeNotFound(f"分支 {resolved.branch} 没有 worktree")
            branch, path = resolved.branch, Path(resolved.path)
        else:
            info = self.current_worktree(cwd or Path.cwd())
            branch, path = info.branch or "HEAD", Path(info.path)

        target = None
        if stage_name in (HookStageName.PRE_MERGE, HookStageName.POST_MERGE):
            target = self.default_branch()

        stage = self.project_config.stage(stage_name)
        return self.hook_runner.run_stage(stage, self._context(branch, path, target), policy)

    def _context(self, branch: str, path: Path, target: Optional[str] = None) -> HookContext:
        return HookContext(
            branch=branch,
            worktree_path=Path(path),
            repo_root=self.repository.repo_root(),
            project=self.hook_runner.project_id,
            target_branch=target,
        )
