"""合并工作流

把一个 worktree 的分支合并进目标分支，依次执行：

    COMMIT  提交未提交的改动（工作区干净时跳过）
    SQUASH  把合并基点之后的多个提交压缩成一个
    REBASE  rebase 到目标分支最新提交
    MERGE   pre-merge Hook → 合并 → post-merge Hook

每次状态变化后都把 MergeWorkflowState 写回磁盘，流程可以在任意
步骤中断后由另一次调用（wt continue / wt step）继续。冲突是可恢复的
暂停，不是终止。
"""

from pathlib import Path
from typing import Callable, Dict, Optional

from wt.core.commit_message import CommitMessageGenerator
from wt.core.config_manager import ProjectConfig
from wt.core.data_structures import (
    HookContext,
    HookStageName,
    MergeOptions,
    MergeResult,
    MergeStep,
    MergeWorkflowState,
    StepStatus,
)
from wt.core.exceptions import (
    GitCommandError,
    MergeConflict,
    MergeStateMismatch,
    StepOutOfOrder,
    WorkflowException,
    WorkflowNotFound,
    WTException,
)
from wt.core.hook_runner import HookRunner
from wt.core.interfaces.repository import IRepository
from wt.core.logger import Logger, OperationScope, get_logger
from wt.core.state_store import MergeStateStore


class MergeWorkflow:
    """可恢复的合并状态机"""

    def __init__(
        self,
        repository: IRepository,
        hook_runner: HookRunner,
        state_store: MergeStateStore,
        message_generator: CommitMessageGenerator,
        project_config: ProjectConfig,
        logger: Optional[Logger] = None,
    ):
        self.repository = repository
        self.hook_runner = hook_runner
        self.state_store = state_store
        self.message_generator = message_generator
        self.project_config = project_config
        self.logger = logger or get_logger("merge_workflow")

    # 入口

    def run(
        self,
        worktree: Path,
        target: Optional[str] = None,
        options: Optional[MergeOptions] = None,
        discard: bool = False,
    ) -> MergeResult:
        """开始或续跑合并流程

        已有状态时从第一个未完成的步骤继续；discard 为 True 时先丢弃旧状态。

        Raises:
            MergeStateMismatch: 已有状态的目标分支与 target 不一致
            ApprovalRequired: pre-merge / post-merge 命令未获授权（此时不写入任何状态）
            MergeConflict: rebase 或合并出现冲突，状态已保存
        """
        worktree = Path(worktree)
        options = options or MergeOptions()

        if discard and self.state_store.delete(worktree):
            self.logger.info("Discarded previous merge state", worktree=str(worktree))

        state = self.state_store.load(worktree)
        if state is not None:
            self._check_matches(state, worktree, target)
            self.logger.info("Resuming merge", worktree=str(worktree), phase=state.phase)
            self._preflight()
        else:
            state = self._new_state(worktree, target)
            self._preflight()
            self.state_store.save(state)
            self.logger.info("Merge started", branch=state.branch, target=state.target)

        return self._drive(state, options)

    def resume(self, worktree: Path, options: Optional[MergeOptions] = None) -> MergeResult:
        """继续暂停中的合并流程（wt continue）

        暂停在 REBASE 时只重试 rebase（git rebase --continue）；
        如果用户已经手动完成了 rebase，校验祖先关系后标记完成。

        Raises:
            WorkflowNotFound: 没有进行中的合并流程
        """
        worktree = Path(worktree)
        state = self.state_store.load(worktree)
        if state is None:
            raise WorkflowNotFound(f"{worktree} 没有进行中的合并流程")
        self._check_matches(state, worktree, None)
        self._preflight()
        self.logger.info("Continuing merge", worktree=str(worktree), phase=state.phase)
        return self._drive(state, options or MergeOptions())

    def run_step(
        self,
        worktree: Path,
        step: MergeStep,
        target: Optional[str] = None,
        options: Optional[MergeOptions] = None,
    ) -> MergeResult:
        """只执行一个步骤

        有进行中的流程时，step 必须是暂停位置的那一步；
        没有流程时该步骤单独执行，不写入任何状态。

        Raises:
            StepOutOfOrder: step 与暂停位置不一致
        """
        worktree = Path(worktree)
        options = options or MergeOptions()
        state = self.state_store.load(worktree)
        persist = state is not None

        if state is not None:
            self._check_matches(state, worktree, target)
            current = state.current_step
            if current is not None and step != current:
                raise StepOutOfOrder(step.value, current.value)
        else:
            state = self._new_state(worktree, target)

        if step == MergeStep.MERGE:
            self._preflight()

        result = MergeResult(state=state)
        self._execute(state, step, options, result, persist=persist)
        result.executed_steps.append(step)
        result.completed = step == MergeStep.MERGE
        return result

    # 状态机

    def _new_state(self, worktree: Path, target: Optional[str]) -> MergeWorkflowState:
        branch = self.repository.current_branch(worktree)
        if branch is None:
            raise WorkflowException(f"{worktree} 处于分离头指针状态，无法合并")
        target = target or self.repository.default_branch()
        if branch == target:
            raise WorkflowException(f"当前已在目标分支 {target} 上，没有可合并的内容")
        return MergeWorkflowState(worktree_path=str(worktree), branch=branch, target=target)

    def _check_matches(self, state: MergeWorkflowState, worktree: Path, target: Optional[str]) -> None:
        if target is not None and target != state.target:
            raise MergeStateMismatch(
                f"{worktree} 已有合并到 {state.target} 的流程（{state.phase}）。"
                f"使用 'wt continue' 继续，或 'wt merge {target} --discard' 放弃旧流程",
                details={"existing_target": state.target, "requested_target": target},
            )
        # rebase 进行中时 HEAD 是分离的，current_branch 为 None
        branch = self.repository.current_branch(worktree)
        if branch is not None and branch != state.branch:
            raise MergeStateMismatch(
                f"合并流程属于分支 {state.branch}，但 {worktree} 当前在 {branch} 上",
                details={"existing_branch": state.branch, "current_branch": branch},
            )

    def _preflight(self) -> None:
        """在修改任何东西之前确认合并相关阶段的授权"""
        for stage_name in (HookStageName.PRE_MERGE, HookStageName.POST_MERGE):
            self.hook_runner.ensure_approved(self.project_config.stage(stage_name))

    def _drive(self, state: MergeWorkflowState, options: MergeOptions) -> MergeResult:
        result = MergeResult(state=state)
        while not state.is_done:
            step = state.current_step
            self._execute(state, step, options, result, persist=True)
            result.executed_steps.append(step)
        result.completed = True
        self.logger.info(
            "Merge completed",
            branch=state.branch,
            target=state.target,
            merge_kind=result.merge_kind,
        )
        return result

    def _execute(
        self,
        state: MergeWorkflowState,
        step: MergeStep,
        options: MergeOptions,
        result: MergeResult,
        persist: bool,
    ) -> None:
        handlers: Dict[MergeStep, Callable[..., None]] = {
            MergeStep.COMMIT: self._commit,
            MergeStep.SQUASH: self._squash,
            MergeStep.REBASE: self._rebase,
            MergeStep.MERGE: self._merge,
        }
        context = {"step": step.value, "branch": state.branch, "target": state.target}

        with OperationScope(f"merge_{step.value}", context, self.logger):
            try:
                handlers[step](state, options, result, persist)
            except MergeConflict:
                self._persist(state, persist)
                raise
            except WTException as e:
                if state.record(step).status != StepStatus.FAILED:
                    state.mark_failed(step, error=e.message)
                self._persist(state, persist)
                raise

        if step == MergeStep.MERGE:
            if persist:
                self.state_store.delete(Path(state.worktree_path))
            self._after_merge(state, options, result)
        else:
            self._persist(state, persist)

    def _persist(self, state: MergeWorkflowState, persist: bool) -> None:
        if persist:
            self.state_store.save(state)

    # 步骤

    def _commit(self, state: MergeWorkflowState, options: MergeOptions, result: MergeResult, persist: bool) -> None:
        worktree = Path(state.worktree_path)
        if not self.repository.has_uncommitted_changes(worktree):
            state.mark_done(MergeStep.COMMIT, skipped=True, reason="clean")
            return

        self.repository.stage_all(worktree)
        message = options.commit_message or self.message_generator.commit_message(worktree)
        sha = self.repository.commit(worktree, message)
        state.mark_done(MergeStep.COMMIT, commit=sha)

    def _squash(self, state: MergeWorkflowState, options: MergeOptions, result: MergeResult, persist: bool) -> None:
        worktree = Path(state.worktree_path)
        if not options.squash:
            state.mark_done(MergeStep.SQUASH, skipped=True, reason="disabled")
            return

        base = self.repository.merge_base(worktree, state.target)
        subjects = self.repository.commit_subjects(worktree, base)
        if len(subjects) < 2:
            state.mark_done(MergeStep.SQUASH, skipped=True, reason="single-commit", commits=len(subjects))
            return

        original_head = self.repository.head_commit(worktree)
        message = options.commit_message or self.message_generator.squash_message(worktree, state.target, subjects)
        self.repository.soft_reset(worktree, base)
        try:
            sha = self.repository.commit(worktree, message)
        except GitCommandError:
            # 回到压缩前的提交，索引与其一致
            self.repository.soft_reset(worktree, original_head)
            raise
        state.mark_done(
            MergeStep.SQUASH,
            original_head=original_head,
            commit=sha,
            squashed=len(subjects),
        )

    def _rebase(self, state: MergeWorkflowState, options: MergeOptions, result: MergeResult, persist: bool) -> None:
        worktree = Path(state.worktree_path)
        target = state.target
        was_paused = state.record(MergeStep.REBASE).status == StepStatus.FAILED

        if self.repository.rebase_in_progress(worktree):
            conflicts = self.repository.continue_rebase(worktree)
        elif self.repository.is_ancestor(worktree, target):
            if was_paused:
                state.mark_done(MergeStep.REBASE, onto=target, resolved_manually=True)
            else:
                state.mark_done(MergeStep.REBASE, skipped=True, reason="up-to-date")
            return
        else:
            conflicts = self.repository.rebase(worktree, target)

        if conflicts or self.repository.rebase_in_progress(worktree):
            listed = ", ".join(conflicts) or "(未知文件)"
            if persist:
                hint = "解决冲突并 git add 后运行 'wt continue'"
            else:
                hint = "解决冲突并 git add 后运行 'git rebase --continue'"
            state.mark_failed(
                MergeStep.REBASE,
                resume_data={"conflicts": list(conflicts), "onto": target},
                conflicts=list(conflicts),
            )
            raise MergeConflict(
                MergeStep.REBASE.value,
                conflicts,
                message=f"rebase 到 {target} 时出现冲突：{listed}。{hint}",
            )

        state.mark_done(MergeStep.REBASE, onto=target, head=self.repository.head_commit(worktree))

    def _merge(self, state: MergeWorkflowState, options: MergeOptions, result: MergeResult, persist: bool) -> None:
        worktree = Path(state.worktree_path)
        target = state.target
        target_path = self._worktree_for(target)

        context = self._hook_context(state, worktree)
        result.pre_merge = self.hook_runner.run_stage(
            self.project_config.stage(HookStageName.PRE_MERGE), context, options.policy
        )
        result.pre_merge.raise_for_failure()

        if target_path is None and not self.repository.is_ancestor(worktree, target):
            state.mark_failed(
                MergeStep.MERGE,
                resume_data={"conflicts": [], "onto": target},
                error="target-moved",
            )
            state.mark_pending(MergeStep.REBASE)
            raise MergeConflict(
                MergeStep.MERGE.value,
                [],
                message=f"{target} 在 rebase 之后又有新提交，且没有检出到任何 worktree，无法快进。"
                        "运行 'wt continue' 重新 rebase 后再合并",
            )

        merge_kind, conflicts = self.repository.merge_into(target, state.branch, target_path)
        if conflicts:
            state.mark_failed(
                MergeStep.MERGE,
                resume_data={"conflicts": list(conflicts), "onto": target},
                conflicts=list(conflicts),
            )
            state.mark_pending(MergeStep.REBASE)
            raise MergeConflict(
                MergeStep.MERGE.value,
                conflicts,
                message=f"合并到 {target} 时出现冲突：{', '.join(conflicts)}。"
                        "合并已中止，运行 'wt continue' 重新 rebase 后再合并",
            )

        result.merge_kind = merge_kind
        state.mark_done(MergeStep.MERGE, kind=merge_kind)

    def _after_merge(self, state: MergeWorkflowState, options: MergeOptions, result: MergeResult) -> None:
        """post-merge Hook 与可选的 worktree 清理，失败只记为警告"""
        worktree = Path(state.worktree_path)
        target_path = self._worktree_for(state.target) or worktree

        post = self.hook_runner.run_stage(
            self.project_config.stage(HookStageName.POST_MERGE),
            self._hook_context(state, target_path),
            options.policy,
        )
        result.post_merge = post
        for failure in post.failures:
            result.warnings.append(
                f"post-merge 命令 {failure.name} 失败（exit {failure.exit_code}）：{failure.command}"
            )
        for blocked in post.blocked:
            result.warnings.append(f"post-merge 命令 {blocked.name} 未获授权，未执行")

        if options.remove_worktree:
            self._remove_worktree(state, result)

    def _remove_worktree(self, state: MergeWorkflowState, result: MergeResult) -> None:
        worktree = Path(state.worktree_path)
        main = self.repository.repo_root()
        if Path(worktree).resolve() == Path(main).resolve():
            result.warnings.append("当前是主 worktree，未删除")
            return
        try:
            self.repository.remove_worktree(worktree)
            if self.repository.is_ancestor(main, state.branch, state.target):
                self.repository.delete_branch(state.branch, force=True)
            else:
                result.warnings.append(f"分支 {state.branch} 未完全合并到 {state.target}，已保留")
        except GitCommandError as e:
            self.logger.warning("Worktree removal after merge failed", worktree=str(worktree), error=e.message)
            result.warnings.append(f"删除 worktree 失败：{e.message}")

    # 工具方法

    def _worktree_for(self, branch: str) -> Optional[Path]:
        for info in self.repository.list_worktrees():
            if info.branch == branch:
                return info.path
        return None

    def _hook_context(self, state: MergeWorkflowState, worktree: Path) -> HookContext:
        return HookContext(
            branch=state.branch,
            worktree_path=worktree,
            repo_root=self.repository.repo_root(),
            project=self.hook_runner.project_id,
            target_branch=state.target,
        )
